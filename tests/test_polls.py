from datetime import timedelta

import pytest

from conftest import NOW, make_poll
from uniawards import polls
from uniawards.errors import Forbidden, NotFound, ValidationError
from uniawards.models import Poll, PollStatus


def test_dashboard_load_closes_expired_poll(db):
    poll = make_poll(db, ends_at=NOW - timedelta(hours=1))
    listed = polls.list_polls(db, NOW)
    assert [p.id for p in listed] == [poll.id]
    assert listed[0].status == PollStatus.VOTING_CLOSED.value


def test_auto_close_is_idempotent(db):
    expired = make_poll(db, "Expired", ends_at=NOW - timedelta(minutes=1))
    running = make_poll(db, "Running", ends_at=NOW + timedelta(hours=1))
    no_deadline = make_poll(db, "Open ended")
    nominating = make_poll(db, "Nominating", status=PollStatus.NOMINATION_OPEN.value, ends_at=NOW - timedelta(days=1))

    assert polls.close_expired_polls(db, NOW) == 1
    assert polls.close_expired_polls(db, NOW) == 0

    statuses = {p.id: p.status for p in db.query(Poll).all()}
    assert statuses == {
        expired.id: "VOTING_CLOSED",
        running.id: "VOTING_OPEN",
        no_deadline.id: "VOTING_OPEN",
        nominating.id: "NOMINATION_OPEN",
    }


def test_voting_open_respects_deadline(db):
    poll = make_poll(db, ends_at=NOW + timedelta(minutes=5))
    assert polls.voting_open(poll, NOW)
    assert not polls.voting_open(poll, NOW + timedelta(minutes=5))
    assert polls.voting_open(make_poll(db), NOW)
    assert not polls.voting_open(make_poll(db, status="VOTING_CLOSED"), NOW)


def test_admin_transitions_unrestricted(db, admin):
    poll = polls.create_poll(db, admin, "  Best Tutor ", status="VOTING_CLOSED")
    assert poll.title == "Best Tutor"
    for status in ("NOMINATION_OPEN", "VOTING_OPEN", "NOMINATION_CLOSED", "VOTING_CLOSED"):
        assert polls.set_status(db, poll.id, status, admin).status == status
    assert polls.open_voting(db, poll.id, admin).status == "VOTING_OPEN"
    assert polls.close_voting(db, poll.id, admin).status == "VOTING_CLOSED"


def test_only_admin_manages_polls(db, voter, admin):
    with pytest.raises(Forbidden):
        polls.create_poll(db, voter, "Sneaky")
    poll = polls.create_poll(db, admin, "Best Tutor")
    with pytest.raises(Forbidden):
        polls.set_status(db, poll.id, "VOTING_OPEN", voter)
    assert db.query(Poll).count() == 1


def test_update_validation(db, admin):
    with pytest.raises(ValidationError):
        polls.create_poll(db, admin, "   ")
    assert db.query(Poll).count() == 0

    poll = polls.create_poll(db, admin, "Best Tutor", description="Who helped most")
    with pytest.raises(ValidationError):
        polls.set_status(db, poll.id, "ARCHIVED", admin)
    with pytest.raises(NotFound):
        polls.set_status(db, "missing", "VOTING_OPEN", admin)

    updated = polls.update_poll(db, poll.id, admin, ends_at=NOW)
    assert updated.description == "Who helped most"
    assert updated.ends_at == NOW
    assert polls.update_poll(db, poll.id, admin, ends_at=None).ends_at is None
