"""
Passwordless sign-in and API session tokens.

A six digit code is emailed to the address, stored only as a hash, and can be
exchanged once within ``CODE_TTL_MINUTES`` for an identity. The API then
issues a signed session token (JWT) that identifies the account.
"""
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

import jwt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from uniawards.accounts import normalize_email
from uniawards.database import utcnow
from uniawards.errors import AuthError, ValidationError
from uniawards.logger import get_logger
from uniawards.models import Identity, LoginCode

log = get_logger("auth")

CODE_LENGTH = 6
CODE_TTL_MINUTES = 10
JWT_ALGORITHM = "HS256"


def generate_code() -> str:
    """Generate a numeric one-time sign-in code"""
    return "".join(secrets.choice("0123456789") for _ in range(CODE_LENGTH))


def hash_code(email: str, code: str) -> str:
    return hashlib.sha256(f"{normalize_email(email)}:{code}".encode()).hexdigest()


class Mailer:
    """Delivers sign-in codes; this one writes them to the log"""

    def __init__(self, callback_url: Optional[str] = None):
        self.callback_url = callback_url
        self.sent = []

    def send_code(self, email: str, code: str) -> None:
        link = None
        if self.callback_url:
            link = f"{self.callback_url}?{urlencode({'email': email, 'code': code})}"
        self.sent.append((email, code))
        log.info("Sign-in code for %s: %s%s", email, code, f" ({link})" if link else "")


def request_code(db: Session, email: str, mailer: Mailer) -> LoginCode:
    email = normalize_email(email)
    if not email or "@" not in email:
        raise ValidationError("Please enter your email address.")

    code = generate_code()
    login_code = LoginCode(
        email=email,
        code_hash=hash_code(email, code),
        expires_at=utcnow() + timedelta(minutes=CODE_TTL_MINUTES),
    )
    db.add(login_code)
    db.commit()
    mailer.send_code(email, code)
    return login_code


def _get_or_create_identity(db: Session, email: str) -> Identity:
    identity = db.query(Identity).filter(Identity.email == email).first()
    if identity:
        return identity
    identity = Identity(email=email)
    db.add(identity)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        identity = db.query(Identity).filter(Identity.email == email).first()
        if identity is None:
            raise
        return identity
    db.refresh(identity)
    log.info("New identity %s for %s", identity.id, email)
    return identity


def verify_code(db: Session, email: str, code: str) -> Identity:
    """Exchange a one-time code for the identity it was sent to"""
    email = normalize_email(email)
    code = (code or "").strip()
    if not email:
        raise ValidationError("Email is required")
    if not code:
        raise ValidationError("Please enter the verification code.")

    now = utcnow()
    expected = hash_code(email, code)
    candidates = (
        db.query(LoginCode)
        .filter(LoginCode.email == email, LoginCode.used.is_(False), LoginCode.expires_at > now)
        .order_by(LoginCode.created_at.desc())
        .all()
    )
    match = next((c for c in candidates if hmac.compare_digest(c.code_hash, expected)), None)
    if match is None:
        raise AuthError("Invalid or expired code")

    # Only one request may consume the code
    consumed = (
        db.query(LoginCode)
        .filter(LoginCode.id == match.id, LoginCode.used.is_(False))
        .update({LoginCode.used: True}, synchronize_session="fetch")
    )
    db.commit()
    if not consumed:
        raise AuthError("Invalid or expired code")

    return _get_or_create_identity(db, email)


def create_session_token(account_id: str, email: str, secret: str, hours: int = 24) -> str:
    payload = {
        "sub": account_id,
        "email": email,
        "exp": datetime.now(timezone.utc) + timedelta(hours=hours),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_session_token(token: str, secret: str) -> dict:
    try:
        return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError("Session expired")
    except jwt.InvalidTokenError:
        raise AuthError("Invalid session token")
