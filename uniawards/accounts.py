"""
Account records and role resolution.

An Account mirrors an authenticated identity one-to-one. It is created on the
first successful sign-in and never rewritten by later sign-ins, so a role an
admin has granted survives re-authentication.
"""
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from uniawards.errors import NotFound, ValidationError
from uniawards.logger import get_logger
from uniawards.models import Account, Role

log = get_logger("accounts")

ROLES = tuple(r.value for r in Role)


def normalize_email(email: Optional[str]) -> str:
    """Trim and lowercase; every email comparison goes through this"""
    return (email or "").strip().lower()


def email_domain(email: str) -> str:
    _, _, domain = normalize_email(email).rpartition("@")
    return domain


@dataclass
class RolePolicy:
    """How a role is picked for an account created on first sign-in"""

    mode: str = "fixed"
    default_role: str = Role.VOTER.value
    restricted_role: str = Role.VIEWER.value
    university_domain: str = ""
    admin_emails: List[str] = field(default_factory=list)

    @classmethod
    def from_config(cls, config) -> "RolePolicy":
        return cls(
            mode=config.role_policy,
            default_role=config.default_role,
            restricted_role=config.restricted_role,
            university_domain=config.university_domain,
            admin_emails=list(config.admin_emails),
        )

    def role_for(self, email: str) -> str:
        email = normalize_email(email)
        if email in {normalize_email(e) for e in self.admin_emails}:
            return Role.ADMIN.value
        if self.mode == "domain":
            if email_domain(email) == self.university_domain.strip().lower():
                return self.default_role
            return self.restricted_role
        return self.default_role


def get_account(db: Session, account_id: str) -> Optional[Account]:
    return db.query(Account).filter(Account.id == account_id).first()


def ensure_account(db: Session, identity_id: str, email: str, policy: RolePolicy) -> Account:
    """Return the account for an identity, creating it on first sign-in"""
    existing = get_account(db, identity_id)
    if existing:
        return existing

    email = normalize_email(email)
    account = Account(id=identity_id, email=email, role=policy.role_for(email))
    db.add(account)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent sign-in created the row first
        db.rollback()
        existing = get_account(db, identity_id)
        if existing is None:
            raise
        return existing

    db.refresh(account)
    log.info("Created account %s (%s) with role %s", account.id, account.email, account.role)
    return account


def list_accounts(db: Session, search: Optional[str] = None) -> List[Account]:
    query = db.query(Account)
    if search:
        query = query.filter(Account.email.contains(normalize_email(search)))
    return query.order_by(Account.created_at.desc()).all()


def set_role(db: Session, account_id: str, role: str) -> Account:
    if role not in ROLES:
        raise ValidationError(f"Unknown role: {role}")
    account = get_account(db, account_id)
    if not account:
        raise NotFound("Account not found")
    account.role = role
    db.commit()
    db.refresh(account)
    log.info("Role of %s set to %s", account.email, role)
    return account


# Capabilities
def can_moderate(account: Optional[Account]) -> bool:
    return account is not None and account.role == Role.ADMIN.value


def can_vote(account: Optional[Account], allow_admin_votes: bool = False) -> bool:
    if account is None:
        return False
    if account.role == Role.VOTER.value:
        return True
    return allow_admin_votes and account.role == Role.ADMIN.value


def can_nominate(account: Optional[Account]) -> bool:
    return account is not None


def capabilities(account: Optional[Account], allow_admin_votes: bool = False) -> dict:
    return {
        "can_vote": can_vote(account, allow_admin_votes),
        "can_moderate": can_moderate(account),
        "can_nominate": can_nominate(account),
    }
