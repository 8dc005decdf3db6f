import threading
from datetime import timedelta

import pytest

from conftest import NOW, make_account, make_nomination, make_poll
from uniawards import ledger, tally
from uniawards.errors import AlreadyVoted, InvalidTarget, NotEligible, PollNotOpen
from uniawards.models import Account, Vote


@pytest.fixture
def poll(db):
    return make_poll(db, ends_at=NOW + timedelta(hours=1))


@pytest.fixture
def n1(db, poll, admin):
    return make_nomination(db, poll, admin, "N1")


@pytest.fixture
def n2(db, poll, admin):
    return make_nomination(db, poll, admin, "N2")


def counts(db, poll):
    return {n.nominee_name: n.vote_count for n in tally.leaderboard(db, poll.id).nominations}


def test_second_vote_rejected(db, poll, voter, n1, n2):
    vote = ledger.cast_vote(db, poll.id, n1.id, voter, NOW)
    assert vote.user_id == voter.id
    assert ledger.has_voted(db, poll.id, voter.id)

    with pytest.raises(AlreadyVoted) as exc:
        ledger.cast_vote(db, poll.id, n2.id, voter, NOW)
    assert exc.value.message == "You have already voted in this poll."
    assert counts(db, poll) == {"N1": 1, "N2": 0}


def test_concurrent_votes_store_one(session_factory, db, poll, voter, n1, n2):
    poll_id, voter_id = poll.id, voter.id
    barrier = threading.Barrier(2)
    results = []

    def attempt(nomination_id):
        session = session_factory()
        account = session.get(Account, voter_id)
        barrier.wait()
        try:
            ledger.cast_vote(session, poll_id, nomination_id, account, NOW)
            results.append("ok")
        except AlreadyVoted:
            results.append("duplicate")
        finally:
            session.close()

    threads = [threading.Thread(target=attempt, args=(n,)) for n in (n1.id, n2.id)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(results) == ["duplicate", "ok"]
    assert db.query(Vote).filter(Vote.poll_id == poll_id, Vote.user_id == voter_id).count() == 1


def test_votes_in_different_polls_are_independent(db, poll, voter, n1, admin):
    other = make_poll(db, "Other")
    other_nomination = make_nomination(db, other, admin, "M1")
    ledger.cast_vote(db, poll.id, n1.id, voter, NOW)
    ledger.cast_vote(db, other.id, other_nomination.id, voter, NOW)
    assert db.query(Vote).count() == 2


def test_poll_must_be_open(db, voter, admin):
    for status in ("NOMINATION_OPEN", "NOMINATION_CLOSED", "VOTING_CLOSED"):
        closed = make_poll(db, status=status)
        nomination = make_nomination(db, closed, admin, "N1")
        with pytest.raises(PollNotOpen):
            ledger.cast_vote(db, closed.id, nomination.id, voter, NOW)
    with pytest.raises(PollNotOpen):
        ledger.cast_vote(db, "missing", "missing", voter, NOW)
    assert db.query(Vote).count() == 0


def test_deadline_passed_rejects_before_auto_close(db, poll, voter, n1):
    # status is still VOTING_OPEN, nobody has loaded the dashboard yet
    with pytest.raises(PollNotOpen):
        ledger.cast_vote(db, poll.id, n1.id, voter, NOW + timedelta(hours=2))
    assert poll.status == "VOTING_OPEN"


def test_invalid_targets(db, poll, voter, admin):
    pending = make_nomination(db, poll, admin, "Pending", approved=False)
    other = make_poll(db, "Other")
    elsewhere = make_nomination(db, other, admin, "Elsewhere")
    for nomination_id in (pending.id, elsewhere.id, "missing"):
        with pytest.raises(InvalidTarget):
            ledger.cast_vote(db, poll.id, nomination_id, voter, NOW)
    assert db.query(Vote).count() == 0


def test_eligibility(db, poll, n1, admin):
    viewer = make_account(db, "viewer@university.edu", "viewer")
    with pytest.raises(NotEligible):
        ledger.cast_vote(db, poll.id, n1.id, viewer, NOW)
    with pytest.raises(NotEligible):
        ledger.cast_vote(db, poll.id, n1.id, admin, NOW)

    ledger.cast_vote(db, poll.id, n1.id, admin, NOW, allow_admin_votes=True)
    assert counts(db, poll) == {"N1": 1}
