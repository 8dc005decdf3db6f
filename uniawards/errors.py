class AwardsError(Exception):
    """Base class for errors raised by the awards rules"""

    status_code = 400
    code = "error"

    def __init__(self, message: str = None):
        super().__init__(message or self.__doc__)
        self.message = message or self.__doc__


class ValidationError(AwardsError):
    """Invalid input"""

    status_code = 422
    code = "validation_error"


class AuthError(AwardsError):
    """Not authenticated"""

    status_code = 401
    code = "not_authenticated"


class Forbidden(AwardsError):
    """Not allowed for this account"""

    status_code = 403
    code = "forbidden"


class NotFound(AwardsError):
    """Not found"""

    status_code = 404
    code = "not_found"


class PollNotOpen(AwardsError):
    """Poll is not open for this action"""

    status_code = 409
    code = "poll_not_open"


class InvalidTarget(AwardsError):
    """Nomination is not a valid choice in this poll"""

    status_code = 422
    code = "invalid_target"


class NotEligible(AwardsError):
    """This account may not vote"""

    status_code = 403
    code = "not_eligible"


class AlreadyVoted(AwardsError):
    """You have already voted in this poll."""

    status_code = 409
    code = "already_voted"
