import pytest

from uniawards import email_gate
from uniawards.email_gate import AllowlistConfig, is_allowed
from uniawards.errors import ValidationError


def test_uni_pattern():
    config = AllowlistConfig(enabled=True, pattern=r".*@uni\.edu$", message="Uni emails only")
    assert is_allowed("a@uni.edu", config).allowed
    result = is_allowed("a@gmail.com", config)
    assert not result.allowed
    assert result.message == "Uni emails only"
    assert result.to_dict() == {"allowed": False, "message": "Uni emails only"}


def test_case_and_whitespace_ignored():
    config = AllowlistConfig(enabled=True, pattern=r".*@uni\.edu$")
    assert is_allowed("  Someone@UNI.EDU ", config).allowed


def test_unanchored_pattern_searches():
    config = AllowlistConfig(enabled=True, pattern="uni")
    assert is_allowed("student@uni.edu.au", config).allowed


def test_fail_open():
    assert is_allowed("anyone@gmail.com", None).allowed
    assert is_allowed("anyone@gmail.com", AllowlistConfig(enabled=False, pattern="^nobody$")).allowed
    assert is_allowed("anyone@gmail.com", AllowlistConfig(enabled=True, pattern="([unclosed")).allowed


def test_check_email_reads_settings(db):
    assert email_gate.seed_default_settings(db) == 3
    assert email_gate.seed_default_settings(db) == 0
    # seeded disabled
    assert email_gate.check_email(db, "x@gmail.com").allowed

    email_gate.save_allowlist(db, AllowlistConfig(enabled=True, pattern=r".*@uni\.edu$", message="Nope"))
    assert email_gate.check_email(db, "a@uni.edu").allowed
    assert email_gate.check_email(db, "a@gmail.com").to_dict() == {"allowed": False, "message": "Nope"}


def test_check_email_fails_open_when_settings_unreadable(db, monkeypatch):
    def broken(db):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(email_gate, "load_allowlist", broken)
    assert email_gate.check_email(db, "a@gmail.com").allowed


def test_missing_settings_mean_disabled(db):
    config = email_gate.load_allowlist(db)
    assert config == AllowlistConfig(enabled=False, pattern=".*", message=email_gate.DEFAULT_MESSAGE)


def test_match_pattern():
    assert email_gate.match_pattern(r".*@uni\.edu$", "A@Uni.edu")
    assert not email_gate.match_pattern(r".*@uni\.edu$", "a@gmail.com")
    with pytest.raises(ValidationError):
        email_gate.match_pattern("([unclosed", "a@uni.edu")
