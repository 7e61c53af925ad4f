from __future__ import annotations

import uuid
from copy import deepcopy
from typing import Any, Dict, List, Optional, Sequence, Tuple

from server.security import WriteGrant, check_grant
from storage.errors import StoreError
from storage.supabase_store import AGENCY_OWNER_FIELD

TABLES = ("profiles", "agencies", "agency_listings", "floor_plans", "facebook_listings")


class InMemoryStore:
    """Demo-mode store used when Supabase is unavailable.

    Mirrors SupabaseStore's interface. Every mutation is appended to `writes`
    as `(operation, table)`.
    """

    def __init__(self) -> None:
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {name: {} for name in TABLES}
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.objects: Dict[str, bytes] = {}
        self.writes: List[Tuple[str, str]] = []

    def _record(self, operation: str, table: str) -> None:
        self.writes.append((operation, table))

    def _insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        stored = deepcopy(row)
        stored.setdefault("id", str(uuid.uuid4()))
        self.tables[table][str(stored["id"])] = stored
        return deepcopy(stored)

    # Sessions ------------------------------------------------------------

    def issue_session(
        self,
        user_id: str,
        email: Optional[str],
        *,
        user_metadata: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
    ) -> str:
        token = token or uuid.uuid4().hex
        self.sessions[token] = {"id": user_id, "email": email, "user_metadata": dict(user_metadata or {})}
        return token

    def get_user_for_token(self, token: str) -> Optional[Dict[str, Any]]:
        user = self.sessions.get(token)
        return dict(user) if user else None

    # Reads ---------------------------------------------------------------

    def get_agency_owned_by(self, agency_id: str, owner_id: str) -> Optional[Dict[str, Any]]:
        agency = self.tables["agencies"].get(str(agency_id))
        if agency and agency.get(AGENCY_OWNER_FIELD) == owner_id:
            return {"id": agency["id"], AGENCY_OWNER_FIELD: owner_id}
        return None

    def fetch_profile_contacts(self, user_ids: Sequence[str]) -> List[Dict[str, Any]]:
        wanted = set(user_ids)
        return [
            {"id": profile["id"], "email": profile.get("email")}
            for profile in self.tables["profiles"].values()
            if profile["id"] in wanted
        ]

    def get_profile_created_at(self, user_id: str) -> Optional[str]:
        profile = self.tables["profiles"].get(str(user_id))
        return profile.get("created_at") if profile else None

    def get_facebook_listing(self, listing_id: str) -> Optional[Dict[str, Any]]:
        row = self.tables["facebook_listings"].get(str(listing_id))
        return deepcopy(row) if row else None

    # Elevated writes -----------------------------------------------------

    def upsert_profile(self, grant: WriteGrant, row: Dict[str, Any]) -> Dict[str, Any]:
        check_grant(grant, "profiles")
        self._record("upsert", "profiles")
        existing = self.tables["profiles"].get(str(row["id"]), {})
        merged = {**existing, **deepcopy(row)}
        self.tables["profiles"][str(row["id"])] = merged
        return deepcopy(merged)

    def set_profile_verified(self, grant: WriteGrant, user_id: str) -> None:
        check_grant(grant, "profiles")
        self._record("update", "profiles")
        profile = self.tables["profiles"].get(str(user_id))
        if profile is not None:
            profile["is_verified"] = True

    def insert_agency(self, grant: WriteGrant, row: Dict[str, Any]) -> Dict[str, Any]:
        check_grant(grant, "agencies")
        self._record("insert", "agencies")
        return self._insert("agencies", row)

    def update_agency(self, grant: WriteGrant, agency_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        check_grant(grant, "agencies")
        self._record("update", "agencies")
        agency = self.tables["agencies"].get(str(agency_id))
        if agency is None:
            raise StoreError("Agency update returned no rows")
        agency.update(deepcopy(changes))
        return deepcopy(agency)

    def set_agency_verified(self, grant: WriteGrant, agency_id: str) -> None:
        check_grant(grant, "agencies")
        self._record("update", "agencies")
        agency = self.tables["agencies"].get(str(agency_id))
        if agency is not None:
            agency["is_verified"] = True

    def insert_agency_listing(self, grant: WriteGrant, row: Dict[str, Any]) -> Dict[str, Any]:
        check_grant(grant, "agency_listings")
        self._record("insert", "agency_listings")
        return self._insert("agency_listings", row)

    def insert_floor_plans(self, grant: WriteGrant, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        check_grant(grant, "floor_plans")
        self._record("insert", "floor_plans")
        return [self._insert("floor_plans", row) for row in rows]

    def insert_facebook_listing(self, grant: WriteGrant, row: Dict[str, Any]) -> Dict[str, Any]:
        check_grant(grant, "facebook_listings")
        self._record("insert", "facebook_listings")
        return self._insert("facebook_listings", row)

    def upload_public_image(
        self,
        grant: WriteGrant,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str,
    ) -> str:
        check_grant(grant, f"storage:{bucket}")
        self._record("upload", bucket)
        self.objects[f"{bucket}/{path}"] = content
        return f"memory://{bucket}/{path}"

    # Health --------------------------------------------------------------

    def ping(self) -> bool:
        return True
