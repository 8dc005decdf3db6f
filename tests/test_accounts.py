import pytest

from conftest import make_account
from uniawards import accounts
from uniawards.accounts import RolePolicy, ensure_account
from uniawards.errors import NotFound, ValidationError
from uniawards.models import Account, Identity, Role


def _identity(db, email):
    identity = Identity(email=email)
    db.add(identity)
    db.commit()
    return identity


def test_first_sign_in_creates_voter(db):
    identity = _identity(db, "student@university.edu")
    account = ensure_account(db, identity.id, " Student@University.edu ", RolePolicy())
    assert account.id == identity.id
    assert account.email == "student@university.edu"
    assert account.role == "voter"


def test_role_survives_re_authentication(db):
    identity = _identity(db, "student@university.edu")
    account = ensure_account(db, identity.id, identity.email, RolePolicy())
    accounts.set_role(db, account.id, "admin")

    again = ensure_account(db, identity.id, identity.email, RolePolicy(default_role="viewer"))
    assert again.role == "admin"
    assert db.query(Account).count() == 1


def test_domain_policy():
    policy = RolePolicy(mode="domain", university_domain="university.edu", admin_emails=["boss@university.edu"])
    assert policy.role_for("a@university.edu") == "voter"
    assert policy.role_for("a@gmail.com") == "viewer"
    assert policy.role_for("Boss@University.edu") == "admin"


def test_fixed_policy_ignores_domain():
    assert RolePolicy(mode="fixed").role_for("a@gmail.com") == "voter"


def test_list_accounts_search(db):
    make_account(db, "alice@university.edu")
    make_account(db, "bob@gmail.com")
    found = accounts.list_accounts(db, "ALICE")
    assert [a.email for a in found] == ["alice@university.edu"]
    assert len(accounts.list_accounts(db)) == 2


def test_set_role_errors(db, voter):
    with pytest.raises(ValidationError):
        accounts.set_role(db, voter.id, "superuser")
    with pytest.raises(NotFound):
        accounts.set_role(db, "missing", "admin")


def test_capabilities(db, admin, voter):
    viewer = make_account(db, "viewer@university.edu", Role.VIEWER.value)
    assert accounts.can_vote(voter)
    assert not accounts.can_vote(viewer)
    assert not accounts.can_vote(admin)
    assert accounts.can_vote(admin, allow_admin_votes=True)
    assert not accounts.can_vote(viewer, allow_admin_votes=True)
    assert accounts.can_moderate(admin)
    assert not accounts.can_moderate(voter)
    assert accounts.capabilities(None) == {"can_vote": False, "can_moderate": False, "can_nominate": False}
