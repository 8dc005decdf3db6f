"""
Vote tallies, computed on read from the ledger.

Nothing here is persisted: counts are derived from the approved nominations
and the votes of a poll every time results are shown, and ``LiveTally`` keeps
a running copy for a live view by applying one increment per new vote.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import func
from sqlalchemy.orm import Session

from uniawards.models import Account, Nomination, Poll, Vote
from uniawards.nominations import approved_nominations, approved_nominations_for
from uniawards.polls import get_poll


@dataclass
class RankedNomination:
    id: str
    poll_id: str
    nominee_name: str
    image_url: Optional[str]
    vote_count: int = 0
    rank: int = 0

    def to_dict(self, total: int) -> Dict[str, Any]:
        return {
            "id": self.id,
            "poll_id": self.poll_id,
            "nominee_name": self.nominee_name,
            "image_url": self.image_url,
            "vote_count": self.vote_count,
            "rank": self.rank,
            "percentage": round(percentage(self.vote_count, total), 1),
        }


def percentage(count: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return count / total * 100


def total_votes(ranked: Iterable[RankedNomination]) -> int:
    return sum(n.vote_count for n in ranked)


def rank(nominations: List[RankedNomination]) -> List[RankedNomination]:
    """Sort by count descending; equal counts keep their input order"""
    ranked = sorted(nominations, key=lambda n: -n.vote_count)
    for position, nomination in enumerate(ranked, start=1):
        nomination.rank = position
    return ranked


def tally(nominations: Iterable[Nomination], votes: Iterable[Vote]) -> List[RankedNomination]:
    """Count votes per approved nomination and rank them"""
    entries = [
        RankedNomination(
            id=n.id,
            poll_id=n.poll_id,
            nominee_name=n.nominee_name,
            image_url=n.image_url,
        )
        for n in nominations
        if n.approved
    ]
    by_id = {entry.id: entry for entry in entries}
    for vote in votes:
        entry = by_id.get(vote.nomination_id)
        if entry is not None and entry.poll_id == vote.poll_id:
            entry.vote_count += 1
    return rank(entries)


class LiveTally:
    """
    Running tally for a live results view.

    Seeded from a snapshot of ranked nominations and the ids of the votes it
    already counts; each new-vote notification then adds one to its
    nomination. Notifications may arrive more than once or out of order, so
    increments are keyed by vote id and a repeated id is ignored.
    """

    def __init__(self, poll_id: str, nominations: List[RankedNomination], seen_vote_ids: Iterable[str] = ()):
        self.poll_id = poll_id
        self._nominations = {n.id: n for n in nominations}
        self._order = [n.id for n in nominations]
        self._seen: Set[str] = set(seen_vote_ids)

    def apply(self, event: Dict[str, Any]) -> bool:
        """Count a vote event; returns False when it was ignored"""
        vote_id = event.get("id")
        if not vote_id or vote_id in self._seen:
            return False
        if event.get("poll_id") != self.poll_id:
            return False
        nomination = self._nominations.get(event.get("nomination_id"))
        if nomination is None:
            return False
        self._seen.add(vote_id)
        nomination.vote_count += 1
        return True

    @property
    def total(self) -> int:
        return total_votes(self._nominations.values())

    def ranked(self) -> List[RankedNomination]:
        return rank([self._nominations[i] for i in self._order])

    def leader(self) -> Optional[RankedNomination]:
        ranked = self.ranked()
        if ranked and ranked[0].vote_count > 0:
            return ranked[0]
        return None


def format_countdown(ends_at: Optional[datetime], now: datetime) -> Optional[str]:
    """Time left until ``ends_at`` for display; None when there is no deadline"""
    if ends_at is None:
        return None
    remaining = int((ends_at - now).total_seconds())
    if remaining <= 0:
        return "Voting ended"

    days, rest = divmod(remaining, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    return f"{minutes}m {seconds}s"


@dataclass
class Leaderboard:
    poll: Poll
    nominations: List[RankedNomination] = field(default_factory=list)
    vote_ids: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return total_votes(self.nominations)

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        total = self.total
        doc = {
            "poll_id": self.poll.id,
            "title": self.poll.title,
            "description": self.poll.description,
            "status": self.poll.status,
            "ends_at": self.poll.ends_at.isoformat() if self.poll.ends_at else None,
            "total_votes": total,
            "nominations": [n.to_dict(total) for n in self.nominations],
        }
        if now is not None:
            doc["countdown"] = format_countdown(self.poll.ends_at, now)
        return doc


def leaderboard(db: Session, poll_id: str) -> Leaderboard:
    poll = get_poll(db, poll_id)
    votes = db.query(Vote).filter(Vote.poll_id == poll_id).all()
    return Leaderboard(
        poll=poll,
        nominations=tally(approved_nominations(db, poll_id), votes),
        vote_ids=[v.id for v in votes],
    )


def public_leaderboard(db: Session) -> List[Leaderboard]:
    """Every poll with its ranked approved nominations, newest poll first"""
    polls = db.query(Poll).order_by(Poll.created_at.desc()).all()
    if not polls:
        return []
    poll_ids = [p.id for p in polls]
    nominations = approved_nominations_for(db, poll_ids)
    votes = db.query(Vote).filter(Vote.poll_id.in_(poll_ids)).all()

    nominations_by_poll: Dict[str, List[Nomination]] = {}
    for nomination in nominations:
        nominations_by_poll.setdefault(nomination.poll_id, []).append(nomination)
    votes_by_poll: Dict[str, List[Vote]] = {}
    for vote in votes:
        votes_by_poll.setdefault(vote.poll_id, []).append(vote)

    return [
        Leaderboard(
            poll=poll,
            nominations=tally(nominations_by_poll.get(poll.id, []), votes_by_poll.get(poll.id, [])),
        )
        for poll in polls
    ]


def analytics(db: Session) -> Dict[str, Any]:
    polls = db.query(Poll).order_by(Poll.created_at.desc()).all()
    per_poll = dict(db.query(Vote.poll_id, func.count(Vote.id)).group_by(Vote.poll_id).all())
    return {
        "poll_count": len(polls),
        "nomination_count": db.query(func.count(Nomination.id)).scalar() or 0,
        "vote_count": db.query(func.count(Vote.id)).scalar() or 0,
        "user_count": db.query(func.count(Account.id)).scalar() or 0,
        "votes_per_poll": [
            {"poll_id": p.id, "title": p.title, "votes": per_poll.get(p.id, 0)} for p in polls
        ],
    }
