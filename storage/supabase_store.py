from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx
from postgrest import APIError
from supabase import Client, create_client

from server.security import WriteGrant, check_grant
from storage.errors import StoreError
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

# Owner column on `agencies`, used for inserts and ownership lookups alike.
AGENCY_OWNER_FIELD = "user_id"


def _api_error_details(exc: APIError) -> Dict[str, Any]:
    return {"code": exc.code, "details": exc.details, "hint": exc.hint}


class SupabaseStore:
    """Record store backed by Supabase, authenticated with the service-role key.

    The service role bypasses row-level security, so every write method takes
    a WriteGrant minted by the authorization layer for that table.
    """

    def __init__(self, url: str, key: str) -> None:
        self.client: Client = create_client(url, key)

    def _table(self, name: str):
        return self.client.table(name)

    def _run(self, label: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except APIError as exc:
            raise StoreError(exc.message or str(exc), _api_error_details(exc)) from exc
        except httpx.HTTPError as exc:
            logger.error("store_unreachable", extra={"operation": label, "error": str(exc)})
            raise StoreError("Record store is unreachable") from exc

    @staticmethod
    def _first(resp: Any, label: str) -> Dict[str, Any]:
        rows = getattr(resp, "data", None) or []
        if not rows:
            raise StoreError(f"{label} returned no rows")
        return rows[0]

    # Sessions ----------------------------------------------------------------

    def get_user_for_token(self, token: str) -> Optional[Dict[str, Any]]:
        try:
            resp = self.client.auth.get_user(token)
        except Exception as exc:  # the auth client raises its own error types for bad tokens
            logger.info("session_lookup_failed", extra={"error": type(exc).__name__})
            return None
        user = getattr(resp, "user", None) if resp else None
        if user is None:
            return None
        return {
            "id": user.id,
            "email": user.email,
            "user_metadata": dict(user.user_metadata or {}),
        }

    # Reads -------------------------------------------------------------------

    def get_agency_owned_by(self, agency_id: str, owner_id: str) -> Optional[Dict[str, Any]]:
        resp = self._run(
            "agencies.owned_by",
            lambda: self._table("agencies")
            .select(f"id, {AGENCY_OWNER_FIELD}")
            .eq("id", agency_id)
            .eq(AGENCY_OWNER_FIELD, owner_id)
            .limit(1)
            .execute(),
        )
        rows = resp.data or []
        return rows[0] if rows else None

    def fetch_profile_contacts(self, user_ids: Sequence[str]) -> List[Dict[str, Any]]:
        resp = self._run(
            "profiles.contacts",
            lambda: self._table("profiles").select("id, email").in_("id", list(user_ids)).execute(),
        )
        return resp.data or []

    def get_profile_created_at(self, user_id: str) -> Optional[str]:
        resp = self._run(
            "profiles.created_at",
            lambda: self._table("profiles").select("id, created_at").eq("id", user_id).limit(1).execute(),
        )
        rows = resp.data or []
        return rows[0].get("created_at") if rows else None

    def get_facebook_listing(self, listing_id: str) -> Optional[Dict[str, Any]]:
        resp = self._run(
            "facebook_listings.get",
            lambda: self._table("facebook_listings").select("*").eq("id", listing_id).limit(1).execute(),
        )
        rows = resp.data or []
        return rows[0] if rows else None

    # Health ------------------------------------------------------------------

    def ping(self) -> bool:
        self._run("health.ping", lambda: self._table("profiles").select("id").limit(1).execute())
        return True

    # Elevated writes ---------------------------------------------------------

    def upsert_profile(self, grant: WriteGrant, row: Dict[str, Any]) -> Dict[str, Any]:
        check_grant(grant, "profiles")
        resp = self._run("profiles.upsert", lambda: self._table("profiles").upsert(row).execute())
        return self._first(resp, "Profile upsert")

    def set_profile_verified(self, grant: WriteGrant, user_id: str) -> None:
        check_grant(grant, "profiles")
        self._run(
            "profiles.verify",
            lambda: self._table("profiles").update({"is_verified": True}).eq("id", user_id).execute(),
        )

    def insert_agency(self, grant: WriteGrant, row: Dict[str, Any]) -> Dict[str, Any]:
        check_grant(grant, "agencies")
        resp = self._run("agencies.insert", lambda: self._table("agencies").insert(row).execute())
        return self._first(resp, "Agency insert")

    def update_agency(self, grant: WriteGrant, agency_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        check_grant(grant, "agencies")
        resp = self._run(
            "agencies.update",
            lambda: self._table("agencies").update(changes).eq("id", agency_id).execute(),
        )
        return self._first(resp, "Agency update")

    def set_agency_verified(self, grant: WriteGrant, agency_id: str) -> None:
        check_grant(grant, "agencies")
        self._run(
            "agencies.verify",
            lambda: self._table("agencies").update({"is_verified": True}).eq("id", agency_id).execute(),
        )

    def insert_agency_listing(self, grant: WriteGrant, row: Dict[str, Any]) -> Dict[str, Any]:
        check_grant(grant, "agency_listings")
        resp = self._run("agency_listings.insert", lambda: self._table("agency_listings").insert(row).execute())
        return self._first(resp, "Listing insert")

    def insert_floor_plans(self, grant: WriteGrant, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        check_grant(grant, "floor_plans")
        resp = self._run("floor_plans.insert", lambda: self._table("floor_plans").insert(rows).execute())
        return resp.data or []

    def insert_facebook_listing(self, grant: WriteGrant, row: Dict[str, Any]) -> Dict[str, Any]:
        check_grant(grant, "facebook_listings")
        resp = self._run(
            "facebook_listings.insert",
            lambda: self._table("facebook_listings").insert(row).execute(),
        )
        return self._first(resp, "Facebook listing insert")

    def upload_public_image(
        self,
        grant: WriteGrant,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str,
    ) -> str:
        check_grant(grant, f"storage:{bucket}")
        bucket_api = self.client.storage.from_(bucket)
        try:
            bucket_api.upload(path, content, {"content-type": content_type, "upsert": "true"})
        except Exception as exc:  # storage client errors are not APIError subclasses
            raise StoreError(f"Image upload failed: {exc}") from exc
        return bucket_api.get_public_url(path)
