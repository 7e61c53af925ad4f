from __future__ import annotations

import hmac
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional

from server.errors import Forbidden, Unauthorized
from storage.errors import GrantError
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)


class Role(str, Enum):
    TENANT = "tenant"
    AGENCY = "agency"
    ADMIN = "admin"


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class Identity:
    id: str
    email: Optional[str]
    role: Role = Role.TENANT

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


@dataclass(frozen=True)
class AccessPolicy:
    """Administrator allow-list, matched exactly and case-sensitively."""

    admin_emails: FrozenSet[str]

    @classmethod
    def from_emails(cls, emails: Iterable[str]) -> "AccessPolicy":
        return cls(admin_emails=frozenset(emails))

    def is_admin(self, email: Optional[str]) -> bool:
        return isinstance(email, str) and email in self.admin_emails

    def resolve_role(self, email: Optional[str], metadata: Optional[Dict[str, Any]] = None) -> Role:
        if self.is_admin(email):
            return Role.ADMIN
        if (metadata or {}).get("user_type") == Role.AGENCY.value:
            return Role.AGENCY
        return Role.TENANT


@dataclass(frozen=True)
class WriteGrant:
    """Permission for exactly one elevated write against `table`.

    Only `require_owner` and `require_admin` mint grants; store writes refuse
    to run without one.
    """

    subject_id: str
    table: str
    record_id: Optional[str]
    reason: str


def check_grant(grant: Any, table: str) -> WriteGrant:
    if not isinstance(grant, WriteGrant):
        raise GrantError(f"Elevated write to {table} attempted without a grant")
    if grant.table != table:
        raise GrantError(f"Grant for {grant.table} cannot be used to write {table}")
    return grant


def authenticate(store: Any, token: Any, policy: AccessPolicy) -> Identity:
    """Exchange a bearer token for an Identity or raise Unauthorized."""
    if not isinstance(token, str) or not token.strip():
        raise Unauthorized("Invalid user token")
    user = store.get_user_for_token(token.strip())
    if not user or not user.get("id"):
        logger.warning("auth_invalid_token")
        raise Unauthorized("Invalid user token")
    email = user.get("email")
    return Identity(
        id=str(user["id"]),
        email=email,
        role=policy.resolve_role(email, user.get("user_metadata")),
    )


def decide_ownership(identity: Identity, owner_id: Any) -> Decision:
    if not isinstance(owner_id, str) or not owner_id:
        return Decision.DENY
    if hmac.compare_digest(owner_id.encode("utf-8"), identity.id.encode("utf-8")):
        return Decision.ALLOW
    return Decision.DENY


def require_owner(
    identity: Identity,
    owner_id: Any,
    *,
    table: str,
    record_id: Optional[str] = None,
    message: str = "Forbidden",
) -> WriteGrant:
    if decide_ownership(identity, owner_id) is Decision.DENY:
        logger.warning("ownership_denied", extra={"table": table, "record_id": record_id, "user_id": identity.id})
        raise Forbidden(message)
    return WriteGrant(subject_id=identity.id, table=table, record_id=record_id, reason="owner")


def ensure_admin(identity: Identity, message: str = "Forbidden") -> Identity:
    if not identity.is_admin:
        logger.warning("admin_denied", extra={"user_id": identity.id})
        raise Forbidden(message)
    return identity


def require_admin(
    identity: Identity,
    *,
    table: str,
    record_id: Optional[str] = None,
    message: str = "Forbidden",
) -> WriteGrant:
    ensure_admin(identity, message)
    return WriteGrant(subject_id=identity.id, table=table, record_id=record_id, reason="admin")
