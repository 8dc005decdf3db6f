"""
In-process change feed of vote inserts.

Live result views subscribe per poll and receive one event per vote stored
after they subscribed. Delivery is at-least-once from the consumer's point of
view, so consumers apply events idempotently by vote id (see ``LiveTally``).
"""
import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional, Set

from uniawards.logger import get_logger
from uniawards.models import Vote

log = get_logger("feed")


def vote_event(vote: Vote) -> Dict[str, Any]:
    return {
        "id": vote.id,
        "poll_id": vote.poll_id,
        "nomination_id": vote.nomination_id,
        "created_at": vote.created_at.isoformat() if vote.created_at else None,
    }


@dataclass(eq=False)
class Subscription:
    poll_id: str
    queue: "asyncio.Queue[Dict[str, Any]]" = field(default_factory=asyncio.Queue)
    closed: bool = False

    async def get(self, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Next event, or None when ``timeout`` elapses first"""
        try:
            return await asyncio.wait_for(self.queue.get(), timeout)
        except asyncio.TimeoutError:
            return None


class VoteFeed:
    def __init__(self) -> None:
        self._subscribers: Dict[str, Set[Subscription]] = {}

    def subscriber_count(self, poll_id: str) -> int:
        return len(self._subscribers.get(poll_id, ()))

    def _add(self, subscription: Subscription) -> None:
        self._subscribers.setdefault(subscription.poll_id, set()).add(subscription)
        log.debug("Subscribed to poll %s (%d listening)", subscription.poll_id, self.subscriber_count(subscription.poll_id))

    def _remove(self, subscription: Subscription) -> None:
        subscription.closed = True
        subscribers = self._subscribers.get(subscription.poll_id)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.poll_id]
        log.debug("Unsubscribed from poll %s", subscription.poll_id)

    @asynccontextmanager
    async def subscribe(self, poll_id: str) -> AsyncIterator[Subscription]:
        subscription = Subscription(poll_id=poll_id)
        self._add(subscription)
        try:
            yield subscription
        finally:
            self._remove(subscription)

    def publish(self, event: Dict[str, Any]) -> int:
        """Hand an event to every subscriber of its poll; returns how many got it"""
        subscribers = list(self._subscribers.get(event.get("poll_id"), ()))
        for subscription in subscribers:
            subscription.queue.put_nowait(event)
        return len(subscribers)

    def publish_vote(self, vote: Vote) -> int:
        return self.publish(vote_event(vote))
