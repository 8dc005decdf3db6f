"""
Vote ledger: one vote per account per poll.

Uniqueness is enforced by the ``uq_votes_poll_user`` constraint, not by reading
first. ``cast_vote`` inserts optimistically and turns the constraint violation
into ``AlreadyVoted``, which also settles two concurrent attempts by the same
account. Votes are never edited or withdrawn.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from uniawards.accounts import can_vote
from uniawards.errors import AlreadyVoted, InvalidTarget, NotEligible, PollNotOpen
from uniawards.logger import get_logger
from uniawards.models import Account, Nomination, Poll, Vote
from uniawards.polls import voting_open

log = get_logger("ledger")

UNIQUE_VOTE_CONSTRAINT = "uq_votes_poll_user"
UNIQUE_VIOLATION = "23505"


def _is_duplicate_vote(error: IntegrityError) -> bool:
    """True when the insert hit the one-vote-per-poll constraint rather than another rule"""
    orig = getattr(error, "orig", None)
    if getattr(orig, "pgcode", None) == UNIQUE_VIOLATION:
        return True
    message = str(orig if orig is not None else error)
    return UNIQUE_VOTE_CONSTRAINT in message or "votes.poll_id, votes.user_id" in message


def cast_vote(
    db: Session,
    poll_id: str,
    nomination_id: str,
    account: Account,
    now: datetime,
    allow_admin_votes: bool = False,
) -> Vote:
    poll = db.query(Poll).filter(Poll.id == poll_id).first()
    if not poll:
        raise PollNotOpen("Poll not found")
    if not voting_open(poll, now):
        raise PollNotOpen("Voting is not open for this poll")

    nomination = db.query(Nomination).filter(Nomination.id == nomination_id).first()
    if not nomination or nomination.poll_id != poll_id or not nomination.approved:
        raise InvalidTarget("Nomination is not a valid choice in this poll")

    if not can_vote(account, allow_admin_votes):
        raise NotEligible("Only voters can cast votes.")

    vote = Vote(poll_id=poll_id, nomination_id=nomination_id, user_id=account.id, created_at=now)
    db.add(vote)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if not _is_duplicate_vote(e):
            raise
        log.info("Rejected second vote by %s in poll %s", account.email, poll_id)
        raise AlreadyVoted()

    db.refresh(vote)
    log.info("Vote %s recorded in poll %s", vote.id, poll_id)
    return vote


def has_voted(db: Session, poll_id: str, account_id: str) -> bool:
    return db.query(Vote.id).filter(Vote.poll_id == poll_id, Vote.user_id == account_id).first() is not None


def get_vote(db: Session, poll_id: str, account_id: str) -> Optional[Vote]:
    return db.query(Vote).filter(Vote.poll_id == poll_id, Vote.user_id == account_id).first()


def votes_for_poll(db: Session, poll_id: str):
    return db.query(Vote).filter(Vote.poll_id == poll_id).order_by(Vote.created_at.asc()).all()
