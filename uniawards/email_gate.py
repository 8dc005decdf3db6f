"""
Email allowlist checked before a sign-in code is sent.

The gate fails open: when the settings cannot be read, the allowlist is
disabled, or the configured pattern does not compile, every address is allowed.
"""
import re
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from uniawards.accounts import normalize_email
from uniawards.database import utcnow
from uniawards.errors import ValidationError
from uniawards.logger import get_logger
from uniawards.models import Setting

log = get_logger("email_gate")

ENABLED_KEY = "email_allowlist_enabled"
REGEX_KEY = "email_allowlist_regex"
MESSAGE_KEY = "email_allowlist_message"
ALLOWLIST_KEYS = (ENABLED_KEY, REGEX_KEY, MESSAGE_KEY)

DEFAULT_MESSAGE = "Access is currently limited. Please contact an administrator."

DEFAULT_SETTINGS = {
    ENABLED_KEY: ("false", "Restrict sign-in to emails matching the pattern"),
    REGEX_KEY: (r".*@university\.edu$", "Case-insensitive pattern an email must match"),
    MESSAGE_KEY: (
        "Access is currently limited to university students. "
        "Please use your university email address to sign in.",
        "Shown to users whose email is rejected",
    ),
}


@dataclass
class AllowlistConfig:
    enabled: bool = False
    pattern: str = ".*"
    message: str = DEFAULT_MESSAGE


@dataclass
class GateResult:
    allowed: bool
    message: Optional[str] = None

    def to_dict(self) -> dict:
        if self.allowed:
            return {"allowed": True}
        return {"allowed": False, "message": self.message}


def load_allowlist(db: Session) -> Optional[AllowlistConfig]:
    """Read the allowlist settings, or None when they cannot be read"""
    try:
        rows = db.query(Setting).filter(Setting.key.in_(ALLOWLIST_KEYS)).all()
    except Exception as e:
        log.error("Settings error: %s", e)
        db.rollback()
        return None

    values = {row.key: row.value for row in rows}
    return AllowlistConfig(
        enabled=values.get(ENABLED_KEY) == "true",
        pattern=values.get(REGEX_KEY) or ".*",
        message=values.get(MESSAGE_KEY) or DEFAULT_MESSAGE,
    )


def is_allowed(email: str, config: Optional[AllowlistConfig]) -> GateResult:
    if config is None or not config.enabled:
        return GateResult(allowed=True)

    try:
        regex = re.compile(config.pattern, re.IGNORECASE)
    except re.error as e:
        log.error("Invalid regex pattern %r: %s", config.pattern, e)
        return GateResult(allowed=True)

    if regex.search(normalize_email(email)):
        return GateResult(allowed=True)
    return GateResult(allowed=False, message=config.message)


def check_email(db: Session, email: str) -> GateResult:
    try:
        return is_allowed(email, load_allowlist(db))
    except Exception as e:
        log.error("Email validation error: %s", e)
        return GateResult(allowed=True)


def match_pattern(pattern: str, email: str) -> bool:
    """Admin helper: does ``email`` match ``pattern``? Raises on a bad pattern"""
    try:
        regex = re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise ValidationError(f"Invalid regex pattern: {e}")
    return regex.search(normalize_email(email)) is not None


def save_allowlist(db: Session, config: AllowlistConfig) -> AllowlistConfig:
    values = {
        ENABLED_KEY: "true" if config.enabled else "false",
        REGEX_KEY: config.pattern,
        MESSAGE_KEY: config.message,
    }
    for key, value in values.items():
        row = db.query(Setting).filter(Setting.key == key).first()
        if row is None:
            row = Setting(key=key, description=DEFAULT_SETTINGS[key][1])
            db.add(row)
        row.value = value
        row.updated_at = utcnow()
    db.commit()
    log.info("Allowlist settings saved (enabled=%s)", config.enabled)
    return config


def seed_default_settings(db: Session) -> int:
    """Insert any missing allowlist keys with their defaults"""
    existing = {row.key for row in db.query(Setting).filter(Setting.key.in_(ALLOWLIST_KEYS)).all()}
    added = 0
    for key, (value, description) in DEFAULT_SETTINGS.items():
        if key in existing:
            continue
        db.add(Setting(key=key, value=value, description=description))
        added += 1
    db.commit()
    return added
