from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from uniawards.api import create_app
from uniawards.config import Config
from uniawards.database import init_db, make_engine, make_session_factory
from uniawards.models import Account, Identity, Nomination, Poll, PollStatus, Role

NOW = datetime(2026, 3, 1, 12, 0, 0)
ADMIN_EMAIL = "admin@university.edu"


@pytest.fixture
def database_url(tmp_path):
    # A file database so worker threads share it
    return f"sqlite:///{tmp_path / 'awards.db'}"


@pytest.fixture
def session_factory(database_url):
    engine = make_engine(database_url)
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def make_account(db, email, role=Role.VOTER.value):
    identity = Identity(email=email)
    db.add(identity)
    db.flush()
    account = Account(id=identity.id, email=email, role=role)
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def make_poll(db, title="Best Tutor", status=PollStatus.VOTING_OPEN.value, ends_at=None):
    poll = Poll(title=title, status=status, ends_at=ends_at)
    db.add(poll)
    db.commit()
    db.refresh(poll)
    return poll


def make_nomination(db, poll, account, name, approved=True):
    nomination = Nomination(poll_id=poll.id, nominee_name=name, nominated_by_user_id=account.id, approved=approved)
    db.add(nomination)
    db.commit()
    db.refresh(nomination)
    return nomination


@pytest.fixture
def admin(db):
    return make_account(db, ADMIN_EMAIL, Role.ADMIN.value)


@pytest.fixture
def voter(db):
    return make_account(db, "student@university.edu")


@pytest.fixture
def config(database_url, tmp_path):
    return Config(
        database_url=database_url,
        jwt_secret="test-secret",
        admin_emails=[ADMIN_EMAIL],
        upload_dir=str(tmp_path / "uploads"),
        public_base_url="http://api.local",
        log_level="WARNING",
    )


@pytest.fixture
def app(config):
    app = create_app(config)
    app.state.clock = lambda: NOW
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def sign_in(client, app):
    """Run the code sign-in flow and return auth headers"""

    def _sign_in(email):
        response = client.post("/api/auth/otp", json={"email": email})
        assert response.status_code == 200, response.text
        code = [c for e, c in app.state.mailer.sent if e == email][-1]
        response = client.post("/api/auth/callback", json={"email": email, "code": code})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return _sign_in
