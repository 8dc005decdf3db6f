from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the way rows store it"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def make_engine(database_url: str):
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    return create_engine(database_url, connect_args=connect_args)


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine) -> None:
    # Importing registers every table on Base.metadata
    from uniawards import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
