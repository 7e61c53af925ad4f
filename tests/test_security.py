import pytest

from server.errors import Forbidden, Unauthorized
from server.security import (
    AccessPolicy,
    Decision,
    Identity,
    Role,
    WriteGrant,
    authenticate,
    check_grant,
    decide_ownership,
    require_admin,
    require_owner,
)
from storage.errors import GrantError
from storage.memory_store import InMemoryStore

POLICY = AccessPolicy.from_emails(["boss@psuleases.com"])


def test_roles_resolved_from_allow_list_and_metadata():
    store = InMemoryStore()
    admin = store.issue_session("a", "boss@psuleases.com")
    agency = store.issue_session("b", "rentals@acme.com", user_metadata={"user_type": "agency"})
    tenant = store.issue_session("c", "student@psu.edu")

    assert authenticate(store, admin, POLICY).role is Role.ADMIN
    assert authenticate(store, agency, POLICY).role is Role.AGENCY
    assert authenticate(store, tenant, POLICY).role is Role.TENANT


@pytest.mark.parametrize("token", [None, "", "   ", 42, "unknown"])
def test_authenticate_rejects_bad_tokens(token):
    with pytest.raises(Unauthorized):
        authenticate(InMemoryStore(), token, POLICY)


def test_admin_check_is_exact():
    assert POLICY.is_admin("boss@psuleases.com")
    assert not POLICY.is_admin("Boss@psuleases.com")
    assert not POLICY.is_admin(" boss@psuleases.com")
    assert not POLICY.is_admin(None)


def test_decide_ownership():
    me = Identity(id="u1", email="me@psu.edu")
    assert decide_ownership(me, "u1") is Decision.ALLOW
    assert decide_ownership(me, "u2") is Decision.DENY
    assert decide_ownership(me, "") is Decision.DENY
    assert decide_ownership(me, None) is Decision.DENY
    assert decide_ownership(me, 1) is Decision.DENY


def test_require_owner_mints_table_scoped_grant():
    me = Identity(id="u1", email="me@psu.edu")
    grant = require_owner(me, "u1", table="agencies", record_id="ag-1")
    assert grant == WriteGrant(subject_id="u1", table="agencies", record_id="ag-1", reason="owner")
    with pytest.raises(Forbidden, match="nope"):
        require_owner(me, "u2", table="agencies", message="nope")


def test_require_admin():
    admin = Identity(id="a", email="boss@psuleases.com", role=Role.ADMIN)
    tenant = Identity(id="t", email="t@psu.edu")
    assert require_admin(admin, table="profiles").reason == "admin"
    with pytest.raises(Forbidden):
        require_admin(tenant, table="profiles")


def test_store_writes_refuse_missing_or_foreign_grants():
    store = InMemoryStore()
    with pytest.raises(GrantError):
        store.insert_agency(None, {"user_id": "u1"})
    profile_grant = WriteGrant(subject_id="u1", table="profiles", record_id="u1", reason="owner")
    with pytest.raises(GrantError):
        store.insert_agency(profile_grant, {"user_id": "u1"})
    assert store.writes == []
    assert check_grant(profile_grant, "profiles") is profile_grant
