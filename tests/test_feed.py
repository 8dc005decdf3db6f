import asyncio
from datetime import datetime
from types import SimpleNamespace

from uniawards.feed import VoteFeed, vote_event


def test_vote_event():
    vote = SimpleNamespace(id="v1", poll_id="p1", nomination_id="n1", created_at=datetime(2026, 3, 1, 12, 0))
    assert vote_event(vote) == {
        "id": "v1",
        "poll_id": "p1",
        "nomination_id": "n1",
        "created_at": "2026-03-01T12:00:00",
    }


def test_events_filtered_by_poll():
    feed = VoteFeed()

    async def scenario():
        async with feed.subscribe("p1") as mine, feed.subscribe("p2") as theirs:
            assert feed.publish({"id": "v1", "poll_id": "p1", "nomination_id": "n1"}) == 1
            assert (await mine.get(timeout=1))["id"] == "v1"
            assert await theirs.get(timeout=0.01) is None

    asyncio.run(scenario())


def test_leaving_context_unsubscribes():
    feed = VoteFeed()

    async def scenario():
        async with feed.subscribe("p1") as subscription:
            assert feed.subscriber_count("p1") == 1
        assert subscription.closed
        assert feed.subscriber_count("p1") == 0
        assert feed.publish({"id": "v1", "poll_id": "p1"}) == 0

    asyncio.run(scenario())


def test_unsubscribes_on_error():
    feed = VoteFeed()

    async def scenario():
        try:
            async with feed.subscribe("p1"):
                raise RuntimeError("client went away")
        except RuntimeError:
            pass
        assert feed.subscriber_count("p1") == 0

    asyncio.run(scenario())


def test_every_subscriber_receives_vote():
    feed = VoteFeed()
    vote = SimpleNamespace(id="v9", poll_id="p1", nomination_id="n1", created_at=None)

    async def scenario():
        async with feed.subscribe("p1") as a, feed.subscribe("p1") as b:
            assert feed.publish_vote(vote) == 2
            assert (await a.get(timeout=1))["id"] == "v9"
            assert (await b.get(timeout=1))["id"] == "v9"

    asyncio.run(scenario())
