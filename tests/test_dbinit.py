from uniawards import dbinit, email_gate
from uniawards.database import make_session_factory
from uniawards.models import Nomination, Poll, Setting


def test_init_creates_schema_and_settings(database_url):
    engine = dbinit.init_database(database_url)
    with make_session_factory(engine)() as db:
        assert db.query(Setting).count() == 3
        assert db.query(Poll).count() == 0
        assert email_gate.load_allowlist(db).enabled is False


def test_sample_data_and_reset(database_url):
    engine = dbinit.init_database(database_url, seed=True)
    with make_session_factory(engine)() as db:
        poll = db.query(Poll).one()
        assert poll.status == "VOTING_OPEN"
        assert db.query(Nomination).filter(Nomination.approved.is_(True)).count() == len(dbinit.SAMPLE_NOMINEES)

    engine = dbinit.init_database(database_url, reset=True)
    with make_session_factory(engine)() as db:
        assert db.query(Poll).count() == 0
        assert db.query(Setting).count() == 3


def test_cli(database_url, capsys):
    assert dbinit.main(["--database-url", database_url, "--sample"]) == 0
    assert "DATABASE INITIALIZATION COMPLETE" in capsys.readouterr().out
