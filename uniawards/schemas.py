from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from uniawards.models import PollStatus, Role


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Deadlines are stored as naive UTC"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# Auth
class EmailCheck(BaseModel):
    email: Optional[str] = None


class CodeRequest(BaseModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class CodeExchange(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=1)

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


# Polls
class PollCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: PollStatus = PollStatus.NOMINATION_OPEN
    ends_at: Optional[datetime] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Poll title is required")
        return v.strip()

    @field_validator("ends_at")
    @classmethod
    def deadline_utc(cls, v):
        return to_naive_utc(v)


class PollUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[PollStatus] = None
    ends_at: Optional[datetime] = None

    @field_validator("ends_at")
    @classmethod
    def deadline_utc(cls, v):
        return to_naive_utc(v)


# Votes and moderation
class VoteCast(BaseModel):
    nomination_id: str = Field(..., min_length=1)


class ApprovalUpdate(BaseModel):
    approved: bool


class RoleUpdate(BaseModel):
    role: Role


class AllowlistSettings(BaseModel):
    enabled: bool
    pattern: str = ".*"
    message: str = Field(..., min_length=1)


class PatternTest(BaseModel):
    pattern: str
    email: str
