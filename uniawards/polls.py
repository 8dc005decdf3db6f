"""
Poll lifecycle.

A poll moves through NOMINATION_OPEN, NOMINATION_CLOSED, VOTING_OPEN and
VOTING_CLOSED. Admins may set any of the four states directly. The only
automatic transition is the deadline close, which is applied lazily whenever
the poll list is read for display rather than by a background timer, so a
poll's stored status can lag its deadline until the next read.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from uniawards.accounts import can_moderate
from uniawards.errors import Forbidden, NotFound, ValidationError
from uniawards.logger import get_logger
from uniawards.models import Account, Poll, PollStatus

log = get_logger("polls")

POLL_STATUS_LABELS = {
    PollStatus.NOMINATION_OPEN.value: "Nominations Open",
    PollStatus.NOMINATION_CLOSED.value: "Nominations Closed",
    PollStatus.VOTING_OPEN.value: "Voting Open",
    PollStatus.VOTING_CLOSED.value: "Voting Closed",
}

STATUSES = tuple(s.value for s in PollStatus)

_UNSET = object()


def _require_admin(actor: Optional[Account]) -> None:
    if not can_moderate(actor):
        raise Forbidden("Only admins can manage polls")


def _check_status(status: str) -> str:
    if status not in STATUSES:
        raise ValidationError(f"Unknown poll status: {status}")
    return status


def get_poll(db: Session, poll_id: str) -> Poll:
    poll = db.query(Poll).filter(Poll.id == poll_id).first()
    if not poll:
        raise NotFound("Poll not found")
    return poll


def nomination_open(poll: Poll) -> bool:
    return poll.status == PollStatus.NOMINATION_OPEN.value


def voting_open(poll: Poll, now: datetime) -> bool:
    if poll.status != PollStatus.VOTING_OPEN.value:
        return False
    return poll.ends_at is None or now < poll.ends_at


def close_expired_polls(db: Session, now: datetime) -> int:
    """Close every open vote whose deadline has passed; returns how many changed"""
    closed = (
        db.query(Poll)
        .filter(
            Poll.status == PollStatus.VOTING_OPEN.value,
            Poll.ends_at.isnot(None),
            Poll.ends_at < now,
        )
        .update({Poll.status: PollStatus.VOTING_CLOSED.value}, synchronize_session="fetch")
    )
    db.commit()
    if closed:
        log.info("Closed %d poll(s) past their voting deadline", closed)
    return closed


def list_polls(db: Session, now: datetime) -> List[Poll]:
    close_expired_polls(db, now)
    return db.query(Poll).order_by(Poll.created_at.desc()).all()


def create_poll(
    db: Session,
    actor: Account,
    title: str,
    description: Optional[str] = None,
    status: str = PollStatus.NOMINATION_OPEN.value,
    ends_at: Optional[datetime] = None,
) -> Poll:
    _require_admin(actor)
    title = (title or "").strip()
    if not title:
        raise ValidationError("Poll title is required")

    poll = Poll(
        title=title,
        description=(description or "").strip() or None,
        status=_check_status(status),
        ends_at=ends_at,
    )
    db.add(poll)
    db.commit()
    db.refresh(poll)
    log.info("Poll %s created by %s", poll.id, actor.email)
    return poll


def update_poll(
    db: Session,
    poll_id: str,
    actor: Account,
    title: Optional[str] = None,
    description=_UNSET,
    status: Optional[str] = None,
    ends_at=_UNSET,
) -> Poll:
    """Edit a poll; fields left out are unchanged, last write wins"""
    _require_admin(actor)
    poll = get_poll(db, poll_id)

    if title is not None:
        title = title.strip()
        if not title:
            raise ValidationError("Poll title is required")
        poll.title = title
    if description is not _UNSET:
        poll.description = (description or "").strip() or None
    if status is not None:
        previous = poll.status
        poll.status = _check_status(status)
        if previous != poll.status:
            log.info("Poll %s moved %s -> %s by %s", poll.id, previous, poll.status, actor.email)
    if ends_at is not _UNSET:
        poll.ends_at = ends_at

    db.commit()
    db.refresh(poll)
    return poll


def set_status(db: Session, poll_id: str, status: str, actor: Account) -> Poll:
    return update_poll(db, poll_id, actor, status=status)


def open_voting(db: Session, poll_id: str, actor: Account) -> Poll:
    return set_status(db, poll_id, PollStatus.VOTING_OPEN.value, actor)


def close_voting(db: Session, poll_id: str, actor: Account) -> Poll:
    return set_status(db, poll_id, PollStatus.VOTING_CLOSED.value, actor)
