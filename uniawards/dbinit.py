#!/usr/bin/env python3
"""
Database initialization for UniAwards
Creates the schema, seeds the allowlist settings and optionally a sample poll
"""

import argparse
import sys
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from uniawards import email_gate
from uniawards.config import Config
from uniawards.database import Base, init_db, make_engine, make_session_factory, utcnow
from uniawards.logger import get_logger
from uniawards.models import Account, Identity, Nomination, Poll, PollStatus, Role

log = get_logger("dbinit")

SAMPLE_ADMIN_EMAIL = "admin@university.edu"
SAMPLE_NOMINEES = ["Alice Chen", "Bob Smith", "Carol Wang"]


def create_sample_data(db) -> Poll:
    """One open poll with approved nominations, submitted by a sample admin"""
    admin = db.query(Account).filter(Account.email == SAMPLE_ADMIN_EMAIL).first()
    if admin is None:
        identity = Identity(email=SAMPLE_ADMIN_EMAIL)
        db.add(identity)
        db.flush()
        admin = Account(id=identity.id, email=SAMPLE_ADMIN_EMAIL, role=Role.ADMIN.value)
        db.add(admin)

    poll = Poll(
        title="Most Inspiring Lecturer",
        description="Vote for the lecturer who made the biggest difference this year",
        status=PollStatus.VOTING_OPEN.value,
        ends_at=utcnow() + timedelta(days=7),
    )
    db.add(poll)
    db.flush()

    for name in SAMPLE_NOMINEES:
        db.add(Nomination(poll_id=poll.id, nominee_name=name, nominated_by_user_id=admin.id, approved=True))
    db.commit()
    db.refresh(poll)
    return poll


def init_database(database_url: str, reset: bool = False, seed: bool = False):
    """Initialize (or reset) the database and return the engine"""
    engine = make_engine(database_url)
    if reset:
        # Importing registers every table before the drop
        from uniawards import models  # noqa: F401

        Base.metadata.drop_all(bind=engine)
        log.warning("Dropped all tables")

    init_db(engine)
    log.info("All tables created")

    SessionLocal = make_session_factory(engine)
    with SessionLocal() as db:
        added = email_gate.seed_default_settings(db)
        log.info("Seeded %d default settings", added)
        if seed:
            poll = create_sample_data(db)
            log.info("Sample poll created: %s (%d nominations)", poll.title, len(SAMPLE_NOMINEES))
    return engine


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Initialize the UniAwards database")
    parser.add_argument("--database-url", help="SQLAlchemy URL (defaults to DATABASE_URL)")
    parser.add_argument("--reset", action="store_true", help="drop every table first")
    parser.add_argument("--sample", action="store_true", help="create a sample poll with nominations")
    args = parser.parse_args(argv)

    database_url = args.database_url or Config.from_env().database_url

    print("=" * 60)
    print("UNIAWARDS - DATABASE INITIALIZATION")
    print("=" * 60)
    try:
        init_database(database_url, reset=args.reset, seed=args.sample)
    except SQLAlchemyError as e:
        print(f"❌ Error creating database: {e}")
        return 1

    print("\n✅ DATABASE INITIALIZATION COMPLETE!")
    print("\nYou can now run:")
    print("  1. python -m uniawards.api  - Start the backend API")
    print("  2. python -m uniawards.web  - Start the web pages")
    return 0


if __name__ == "__main__":
    sys.exit(main())
