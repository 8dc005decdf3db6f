import pytest

from conftest import make_poll
from uniawards import nominations
from uniawards.errors import Forbidden, PollNotOpen, ValidationError
from uniawards.models import Nomination


@pytest.fixture
def poll(db):
    return make_poll(db, status="NOMINATION_OPEN")


def test_submitted_nomination_hidden_until_approved(db, poll, voter, admin):
    nomination = nominations.submit_nomination(db, poll.id, voter, "  Dr Alice  ")
    assert nomination.nominee_name == "Dr Alice"
    assert nomination.approved is False
    assert nominations.approved_nominations(db, poll.id) == []

    nominations.set_approval(db, nomination.id, True, admin)
    assert [n.id for n in nominations.approved_nominations(db, poll.id)] == [nomination.id]

    nominations.set_approval(db, nomination.id, False, admin)
    assert nominations.approved_nominations(db, poll.id) == []


def test_empty_name_rejected_before_write(db, poll, voter):
    with pytest.raises(ValidationError):
        nominations.submit_nomination(db, poll.id, voter, "   ")
    assert db.query(Nomination).count() == 0


def test_poll_must_be_open_for_nominations(db, voter):
    for status in ("NOMINATION_CLOSED", "VOTING_OPEN", "VOTING_CLOSED"):
        closed = make_poll(db, status=status)
        with pytest.raises(PollNotOpen):
            nominations.submit_nomination(db, closed.id, voter, "Dr Alice")
    assert db.query(Nomination).count() == 0


def test_only_admin_moderates(db, poll, voter):
    nomination = nominations.submit_nomination(db, poll.id, voter, "Dr Alice")
    with pytest.raises(Forbidden):
        nominations.set_approval(db, nomination.id, True, voter)
    db.refresh(nomination)
    assert nomination.approved is False


def test_moderation_queue_includes_submitter(db, poll, voter, admin):
    first = nominations.submit_nomination(db, poll.id, voter, "Dr Alice")
    second = nominations.submit_nomination(db, poll.id, admin, "Dr Bob", image_url="http://api.local/uploads/x.png")
    queue = nominations.moderation_queue(db)
    assert [(n.id, email) for n, email in queue] == [
        (second.id, admin.email),
        (first.id, voter.email),
    ]


def test_approved_nominations_scoped_to_poll(db, poll, voter, admin):
    other = make_poll(db, "Other", status="NOMINATION_OPEN")
    mine = nominations.submit_nomination(db, poll.id, voter, "Dr Alice")
    theirs = nominations.submit_nomination(db, other.id, voter, "Dr Bob")
    for n in (mine, theirs):
        nominations.set_approval(db, n.id, True, admin)
    assert [n.id for n in nominations.approved_nominations(db, poll.id)] == [mine.id]
    assert {n.id for n in nominations.approved_nominations_for(db, [poll.id, other.id])} == {mine.id, theirs.id}
