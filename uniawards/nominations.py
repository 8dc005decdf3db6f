from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from uniawards.accounts import can_moderate, can_nominate
from uniawards.errors import Forbidden, NotFound, PollNotOpen, ValidationError
from uniawards.logger import get_logger
from uniawards.models import Account, Nomination
from uniawards.polls import get_poll, nomination_open

log = get_logger("nominations")


def clean_nominee_name(nominee_name: Optional[str]) -> str:
    name = (nominee_name or "").strip()
    if not name:
        raise ValidationError("Nominee name is required")
    return name


def check_open_for_nominations(db: Session, poll_id: str):
    poll = get_poll(db, poll_id)
    if not nomination_open(poll):
        raise PollNotOpen("Nominations are not open for this poll")
    return poll


def submit_nomination(
    db: Session,
    poll_id: str,
    account: Account,
    nominee_name: str,
    image_url: Optional[str] = None,
) -> Nomination:
    """Submit a nomination; it stays hidden from voters until an admin approves it"""
    name = clean_nominee_name(nominee_name)
    if not can_nominate(account):
        raise Forbidden("Sign in to nominate")
    check_open_for_nominations(db, poll_id)

    nomination = Nomination(
        poll_id=poll_id,
        nominee_name=name,
        image_url=image_url,
        nominated_by_user_id=account.id,
        approved=False,
    )
    db.add(nomination)
    db.commit()
    db.refresh(nomination)
    log.info("Nomination %s submitted to poll %s by %s", nomination.id, poll_id, account.email)
    return nomination


def get_nomination(db: Session, nomination_id: str) -> Nomination:
    nomination = db.query(Nomination).filter(Nomination.id == nomination_id).first()
    if not nomination:
        raise NotFound("Nomination not found")
    return nomination


def set_approval(db: Session, nomination_id: str, approved: bool, actor: Account) -> Nomination:
    if not can_moderate(actor):
        raise Forbidden("Only admins can moderate nominations")
    nomination = get_nomination(db, nomination_id)
    nomination.approved = bool(approved)
    db.commit()
    db.refresh(nomination)
    log.info(
        "Nomination %s %s by %s",
        nomination.id,
        "approved" if nomination.approved else "rejected",
        actor.email,
    )
    return nomination


def approved_nominations(db: Session, poll_id: str) -> List[Nomination]:
    return (
        db.query(Nomination)
        .filter(Nomination.poll_id == poll_id, Nomination.approved.is_(True))
        .order_by(Nomination.created_at.asc())
        .all()
    )


def approved_nominations_for(db: Session, poll_ids: List[str]) -> List[Nomination]:
    if not poll_ids:
        return []
    return (
        db.query(Nomination)
        .filter(Nomination.poll_id.in_(poll_ids), Nomination.approved.is_(True))
        .order_by(Nomination.created_at.asc())
        .all()
    )


def moderation_queue(db: Session) -> List[Tuple[Nomination, Optional[str]]]:
    """Every nomination, newest first, with the submitter's email"""
    rows = (
        db.query(Nomination, Account.email)
        .outerjoin(Account, Account.id == Nomination.nominated_by_user_id)
        .order_by(Nomination.created_at.desc())
        .all()
    )
    return [(nomination, email) for nomination, email in rows]
