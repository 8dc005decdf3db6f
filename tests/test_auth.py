from datetime import timedelta

import jwt
import pytest

from uniawards import auth
from uniawards.errors import AuthError, ValidationError
from uniawards.models import Identity, LoginCode


def test_code_exchange_creates_identity_once(db):
    mailer = auth.Mailer("http://web.local/auth/callback")
    auth.request_code(db, " Student@University.edu ", mailer)
    email, code = mailer.sent[-1]
    assert email == "student@university.edu"
    assert len(code) == 6 and code.isdigit()

    identity = auth.verify_code(db, "student@university.edu", code)
    assert identity.email == "student@university.edu"

    # codes are single use
    with pytest.raises(AuthError):
        auth.verify_code(db, "student@university.edu", code)

    auth.request_code(db, "student@university.edu", mailer)
    again = auth.verify_code(db, "student@university.edu", mailer.sent[-1][1])
    assert again.id == identity.id
    assert db.query(Identity).count() == 1


def test_code_stored_hashed(db):
    mailer = auth.Mailer()
    auth.request_code(db, "student@university.edu", mailer)
    code = mailer.sent[-1][1]
    row = db.query(LoginCode).one()
    assert row.code_hash == auth.hash_code("student@university.edu", code)


def test_wrong_or_expired_code(db):
    mailer = auth.Mailer()
    auth.request_code(db, "student@university.edu", mailer)
    code = mailer.sent[-1][1]
    wrong = "000000" if code != "000000" else "111111"
    with pytest.raises(AuthError):
        auth.verify_code(db, "student@university.edu", wrong)
    with pytest.raises(AuthError):
        auth.verify_code(db, "other@university.edu", code)

    row = db.query(LoginCode).one()
    row.expires_at = row.created_at - timedelta(minutes=1)
    db.commit()
    with pytest.raises(AuthError):
        auth.verify_code(db, "student@university.edu", code)


def test_request_code_needs_email(db):
    with pytest.raises(ValidationError):
        auth.request_code(db, "   ", auth.Mailer())
    with pytest.raises(ValidationError):
        auth.verify_code(db, "student@university.edu", " ")


def test_session_tokens():
    token = auth.create_session_token("acc-1", "a@university.edu", "secret", hours=1)
    claims = auth.decode_session_token(token, "secret")
    assert claims["sub"] == "acc-1"
    assert claims["email"] == "a@university.edu"

    with pytest.raises(AuthError):
        auth.decode_session_token(token, "other-secret")
    with pytest.raises(AuthError):
        auth.decode_session_token(auth.create_session_token("acc-1", "a@university.edu", "secret", hours=-1), "secret")
    with pytest.raises(AuthError):
        auth.decode_session_token(jwt.encode({"sub": "x"}, "secret", algorithm="HS384"), "secret")
