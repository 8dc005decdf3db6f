import enum
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from uniawards.database import Base, utcnow


def new_id() -> str:
    return str(uuid.uuid4())


class Role(str, enum.Enum):
    ADMIN = "admin"
    VOTER = "voter"
    VIEWER = "viewer"


class PollStatus(str, enum.Enum):
    NOMINATION_OPEN = "NOMINATION_OPEN"
    NOMINATION_CLOSED = "NOMINATION_CLOSED"
    VOTING_OPEN = "VOTING_OPEN"
    VOTING_CLOSED = "VOTING_CLOSED"


# Authentication collaborator tables
class Identity(Base):
    __tablename__ = "identities"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String, nullable=False, unique=True, index=True)
    created_at = Column(DateTime, default=utcnow)


class LoginCode(Base):
    __tablename__ = "login_codes"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String, nullable=False, index=True)
    code_hash = Column(String(64), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow)


# Application tables
class Account(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # identity id
    email = Column(String, nullable=False, unique=True, index=True)
    role = Column(String(16), nullable=False, default=Role.VOTER.value)
    created_at = Column(DateTime, default=utcnow)

    nominations = relationship("Nomination", back_populates="nominated_by")
    votes = relationship("Vote", back_populates="user")


class Poll(Base):
    __tablename__ = "polls"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    description = Column(Text)
    status = Column(String(32), nullable=False, default=PollStatus.NOMINATION_OPEN.value)
    ends_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    nominations = relationship("Nomination", back_populates="poll")
    votes = relationship("Vote", back_populates="poll")

    __table_args__ = (Index("idx_polls_status_ends_at", "status", "ends_at"),)


class Nomination(Base):
    __tablename__ = "nominations"

    id = Column(String(36), primary_key=True, default=new_id)
    poll_id = Column(String(36), ForeignKey("polls.id"), nullable=False)
    nominee_name = Column(String, nullable=False)
    image_url = Column(String, nullable=True)
    nominated_by_user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    approved = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    poll = relationship("Poll", back_populates="nominations")
    nominated_by = relationship("Account", back_populates="nominations")
    votes = relationship("Vote", back_populates="nomination")

    __table_args__ = (Index("idx_nominations_poll_approved", "poll_id", "approved"),)


class Vote(Base):
    __tablename__ = "votes"

    id = Column(String(36), primary_key=True, default=new_id)
    poll_id = Column(String(36), ForeignKey("polls.id"), nullable=False)
    nomination_id = Column(String(36), ForeignKey("nominations.id"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    poll = relationship("Poll", back_populates="votes")
    nomination = relationship("Nomination", back_populates="votes")
    user = relationship("Account", back_populates="votes")

    __table_args__ = (
        Index("idx_votes_poll", "poll_id"),
        # One vote per account per poll; the ledger relies on this to reject doubles
        UniqueConstraint("poll_id", "user_id", name="uq_votes_poll_user"),
    )


class Setting(Base):
    __tablename__ = "settings"

    id = Column(String(36), primary_key=True, default=new_id)
    key = Column(String, nullable=False, unique=True)
    value = Column(Text, nullable=False, default="")
    description = Column(String)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
