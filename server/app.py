from __future__ import annotations

import base64
import binascii
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from extraction.errors import ExtractionError
from extraction.facebook import (
    DEFAULT_IMAGE,
    IMAGE_BUCKET,
    build_facebook_row,
    guess_author_name,
    image_path,
    process_extracted_data,
    to_listing_view,
)
from extraction.openai_extractor import ListingExtractor
from notifications.dispatcher import DispatchError, DispatchRequest, NotificationDispatcher, run_delivery_check
from notifications.email_provider import get_provider
from server.config import load_settings
from server.errors import BadRequest, NotFound, UpstreamFailure, install_error_handlers
from server.security import (
    AccessPolicy,
    Identity,
    authenticate,
    ensure_admin,
    require_admin,
    require_owner,
)
from storage.errors import StoreError
from storage.memory_store import InMemoryStore
from storage.supabase_store import AGENCY_OWNER_FIELD, SupabaseStore
from telemetry.logging_utils import configure_logging, get_logger

settings = load_settings()
configure_logging(settings.log_level)
logger = get_logger(__name__)


def _build_store():
    if settings.supabase_configured:
        return SupabaseStore(settings.supabase_url, settings.supabase_service_role_key)
    # No session issuer in demo mode: every authenticated endpoint answers 401.
    log = logger.warning if settings.is_dev else logger.error
    log(
        "supabase_not_configured",
        extra={"mode": "demo", "env": settings.app_env, "sessions": "none"},
    )
    return InMemoryStore()


store = _build_store()
policy = AccessPolicy.from_emails(settings.admin_emails)
email_provider = get_provider(settings.resend_api_key)
extractor = ListingExtractor(api_key=settings.openai_api_key, model=settings.openai_model)

# Fields a caller may never change through update-agency.
PROTECTED_AGENCY_FIELDS = ("id", AGENCY_OWNER_FIELD, "created_at", "is_verified")


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CreateProfilePayload(_Payload):
    profile: Optional[Dict[str, Any]] = None
    user_token: Any = Field(None, alias="userToken")


class CreateAgencyPayload(_Payload):
    agency_data: Optional[Dict[str, Any]] = Field(None, alias="agencyData")
    user_token: Any = Field(None, alias="userToken")


class UpdateAgencyPayload(_Payload):
    agency_id: Optional[str] = Field(None, alias="agencyId")
    agency_data: Optional[Dict[str, Any]] = Field(None, alias="agencyData")
    user_token: Any = Field(None, alias="userToken")


class CreateAgencyListingPayload(_Payload):
    listing_data: Optional[Dict[str, Any]] = Field(None, alias="listingData")
    floor_plans: Optional[List[Dict[str, Any]]] = Field(None, alias="floorPlans")
    user_token: Any = Field(None, alias="userToken")


class VerifyAgencyPayload(_Payload):
    agency_id: Optional[str] = Field(None, alias="agencyId")
    admin_token: Any = Field(None, alias="adminToken")


class VerifyUserPayload(_Payload):
    user_id: Optional[str] = Field(None, alias="userId")
    admin_token: Any = Field(None, alias="adminToken")


class SendEmailsPayload(_Payload):
    type: Optional[str] = None
    from_email: Optional[str] = Field(None, alias="fromEmail")
    subject: Optional[str] = None
    message: Optional[str] = None
    emails: Any = None
    user_ids: Any = Field(None, alias="userIds")
    invite_link: Optional[str] = Field(None, alias="inviteLink")


class AutofillPayload(_Payload):
    text: Optional[str] = None
    image_base64: Optional[str] = None
    image_mime_type: Optional[str] = None


class ImageUpload(_Payload):
    data: str
    mime_type: str = Field("image/png", alias="mimeType")
    filename: str = "image.png"


class FacebookPostPayload(_Payload):
    post_text: str = Field("", alias="postText")
    facebook_post_link: Optional[str] = Field(None, alias="facebookPostLink")
    author_profile_link: Optional[str] = Field(None, alias="authorProfileLink")
    author_username: Optional[str] = Field(None, alias="authorUsername")
    analyze_images: List[ImageUpload] = Field(default_factory=list, alias="analyzeImages")


class AddFacebookListingPayload(FacebookPostPayload):
    listing_images: List[ImageUpload] = Field(default_factory=list, alias="listingImages")
    extracted_info: Optional[Dict[str, Any]] = Field(None, alias="extractedInfo")


app = FastAPI(title="PSU Leases API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_error_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        logger.info(
            "http_request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )


def get_session_identity(request: Request) -> Identity:
    auth_header = request.headers.get("Authorization") or ""
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer":
        token = ""
    return authenticate(store, token, policy)


def get_admin_identity(identity: Identity = Depends(get_session_identity)) -> Identity:
    return ensure_admin(identity)


@app.get("/health")
def health():
    try:
        status = "ok" if store.ping() else "degraded"
    except StoreError as exc:
        logger.warning("health_check_failed", extra={"error": exc.message})
        status = "degraded"
    return {
        "status": status,
        "mode": "supabase" if isinstance(store, SupabaseStore) else "demo",
        "env": settings.app_env,
    }


@app.post("/api/create-profile")
def create_profile(payload: CreateProfilePayload):
    profile = payload.profile
    if not profile or not payload.user_token:
        raise BadRequest("Missing profile data or user token")
    identity = authenticate(store, payload.user_token, policy)
    grant = require_owner(
        identity,
        profile.get("id"),
        table="profiles",
        record_id=identity.id,
        message="Profile ID does not match authenticated user",
    )

    now = _now_iso()
    row = {
        "id": profile["id"],
        "first_name": profile.get("first_name"),
        "last_name": profile.get("last_name"),
        "phone": profile.get("phone"),
        "email": profile.get("email"),
        "preferred_contact": profile.get("preferred_contact") or "email",
        "user_type": profile.get("user_type") or "tenant",
        "updated_at": now,
    }
    try:
        row["created_at"] = store.get_profile_created_at(identity.id) or now
        store.upsert_profile(grant, row)
    except StoreError as exc:
        raise UpstreamFailure(f"Failed to create profile: {exc.message}") from exc
    logger.info("profile_upserted", extra={"user_id": identity.id})
    return {"success": True}


@app.post("/api/create-agency")
def create_agency(payload: CreateAgencyPayload):
    agency_data = payload.agency_data
    if not agency_data or not payload.user_token:
        raise BadRequest("Missing agency data or user token")
    identity = authenticate(store, payload.user_token, policy)
    grant = require_owner(
        identity,
        agency_data.get(AGENCY_OWNER_FIELD),
        table="agencies",
        message="Agency user_id does not match authenticated user",
    )

    now = _now_iso()
    row = {**agency_data, "is_verified": False, "created_at": now, "updated_at": now}
    try:
        created = store.insert_agency(grant, row)
    except StoreError as exc:
        raise UpstreamFailure(f"Error creating agency: {exc.message}") from exc
    logger.info("agency_created", extra={"agency_id": created.get("id"), "user_id": identity.id})
    return {"success": True, "data": created}


@app.post("/api/update-agency")
def update_agency(payload: UpdateAgencyPayload):
    if not payload.agency_id or payload.agency_data is None or not payload.user_token:
        raise BadRequest("Missing required parameters")
    identity = authenticate(store, payload.user_token, policy)
    agency = store.get_agency_owned_by(payload.agency_id, identity.id)
    grant = require_owner(
        identity,
        (agency or {}).get(AGENCY_OWNER_FIELD),
        table="agencies",
        record_id=payload.agency_id,
        message="You do not have permission to update this agency",
    )

    changes = {k: v for k, v in payload.agency_data.items() if k not in PROTECTED_AGENCY_FIELDS}
    changes["updated_at"] = _now_iso()
    try:
        updated = store.update_agency(grant, payload.agency_id, changes)
    except StoreError as exc:
        raise UpstreamFailure(f"Error updating agency: {exc.message}", details=exc.details) from exc
    logger.info("agency_updated", extra={"agency_id": payload.agency_id, "fields": sorted(changes)})
    return {"success": True, "data": updated}


@app.post("/api/create-agency-listing")
def create_agency_listing(payload: CreateAgencyListingPayload):
    listing_data = payload.listing_data
    if not listing_data or not payload.user_token:
        raise BadRequest("Missing listing data or user token")
    identity = authenticate(store, payload.user_token, policy)
    agency_id = listing_data.get("agency_id")
    agency = store.get_agency_owned_by(str(agency_id), identity.id) if agency_id else None
    denied = "You do not have permission to create listings for this agency"
    owner_id = (agency or {}).get(AGENCY_OWNER_FIELD)
    listing_grant = require_owner(identity, owner_id, table="agency_listings", record_id=agency_id, message=denied)
    floor_plan_grant = require_owner(identity, owner_id, table="floor_plans", record_id=agency_id, message=denied)

    now = _now_iso()
    row = {**listing_data, "floor_plan": listing_data.get("floor_plan") or "", "created_at": now, "updated_at": now}
    try:
        listing = store.insert_agency_listing(listing_grant, row)
    except StoreError as exc:
        raise UpstreamFailure(f"Error creating listing: {exc.message}") from exc
    logger.info("agency_listing_created", extra={"agency_id": agency_id, "listing_id": listing.get("id")})

    result: Dict[str, Any] = {"success": True, "data": listing}
    if payload.floor_plans:
        plans = [
            {**plan, "agency_listing_id": listing["id"], "created_at": now, "updated_at": now}
            for plan in payload.floor_plans
        ]
        try:
            store.insert_floor_plans(floor_plan_grant, plans)
        except StoreError as exc:
            # The listing stays; the caller is told the plans did not land.
            logger.warning("floor_plans_failed", extra={"listing_id": listing.get("id"), "error": exc.message})
            result["warning"] = f"Listing created but floor plans failed: {exc.message}"
    return result


@app.post("/api/verify-agency")
def verify_agency(payload: VerifyAgencyPayload):
    if not payload.agency_id or not payload.admin_token:
        raise BadRequest("Missing agencyId or adminToken")
    identity = authenticate(store, payload.admin_token, policy)
    grant = require_admin(identity, table="agencies", record_id=payload.agency_id, message="Unauthorized")
    try:
        store.set_agency_verified(grant, payload.agency_id)
    except StoreError as exc:
        raise UpstreamFailure(exc.message) from exc
    logger.info("agency_verified", extra={"agency_id": payload.agency_id, "admin_id": identity.id})
    return {"success": True}


@app.post("/api/verify-user")
def verify_user(payload: VerifyUserPayload):
    if not payload.user_id or not payload.admin_token:
        raise BadRequest("Missing userId or adminToken")
    identity = authenticate(store, payload.admin_token, policy)
    grant = require_admin(identity, table="profiles", record_id=payload.user_id, message="Unauthorized")
    try:
        store.set_profile_verified(grant, payload.user_id)
    except StoreError as exc:
        raise UpstreamFailure(exc.message) from exc
    logger.info("user_verified", extra={"user_id": payload.user_id, "admin_id": identity.id})
    return {"success": True}


@app.post("/api/admin/send-emails")
def send_emails(payload: SendEmailsPayload, admin: Identity = Depends(get_admin_identity)):
    dispatcher = NotificationDispatcher(email_provider, store)
    request = DispatchRequest(
        kind=payload.type,
        from_email=payload.from_email,
        subject=payload.subject,
        message=payload.message,
        emails=payload.emails,
        user_ids=payload.user_ids,
        invite_link=payload.invite_link,
    )
    try:
        report = dispatcher.dispatch(request)
    except DispatchError as exc:
        raise BadRequest(str(exc)) from exc
    logger.info(
        "emails_dispatched",
        extra={"admin_id": admin.id, "kind": payload.type, "sent": report.total_sent, "failed": report.total_failed},
    )
    return report.to_payload()


@app.get("/api/admin/test-email")
def send_test_email(admin: Identity = Depends(get_admin_identity)):
    return run_delivery_check(email_provider)


@app.post("/api/autofill-listing")
def autofill_listing(payload: AutofillPayload, identity: Identity = Depends(get_session_identity)):
    if not payload.text and not payload.image_base64:
        raise BadRequest("Please provide either text or an image")
    try:
        result = extractor.autofill(payload.text, payload.image_base64, payload.image_mime_type)
    except ExtractionError as exc:
        logger.error("autofill_failed", extra={"user_id": identity.id, "error": str(exc)})
        raise UpstreamFailure("Failed to process the autofill request") from exc
    return result


@app.post("/api/admin/analyze-facebook-listing")
def analyze_facebook_listing(payload: FacebookPostPayload, admin: Identity = Depends(get_admin_identity)):
    ocr_texts = [extractor.ocr_image(image.data, image.mime_type) for image in payload.analyze_images]
    author_name = guess_author_name(payload.post_text)
    parsed = extractor.extract_facebook_post(
        payload.post_text,
        ocr_texts,
        _facebook_links(payload),
        author_name,
    )
    if author_name and parsed.get("author_username") in (None, "", "N/A"):
        parsed["author_username"] = author_name
    parsed = process_extracted_data(parsed, payload.post_text, ocr_texts)
    logger.info("facebook_post_analyzed", extra={"admin_id": admin.id, "images": len(ocr_texts)})
    return {
        "success": True,
        "parsed_listing_data": parsed,
        "ocrTexts": ocr_texts,
        "postText": payload.post_text,
    }


@app.post("/api/admin/add-facebook-listing")
def add_facebook_listing(payload: AddFacebookListingPayload, admin: Identity = Depends(get_admin_identity)):
    decoded = [(image, _decode_image(image)) for image in payload.listing_images]
    upload_grant = require_admin(admin, table=f"storage:{IMAGE_BUCKET}")
    image_urls = [
        store.upload_public_image(upload_grant, IMAGE_BUCKET, image_path(image.filename), content, image.mime_type)
        for image, content in decoded
    ] or [DEFAULT_IMAGE]

    parsed = payload.extracted_info
    if parsed:
        ocr_texts = [t for t in parsed.get("ocrTexts") or [] if isinstance(t, str)]
    else:
        ocr_texts = [extractor.ocr_image(image.data, image.mime_type) for image in payload.analyze_images]
        parsed = extractor.extract_facebook_post(
            payload.post_text,
            ocr_texts,
            _facebook_links(payload, image_urls),
        )
    parsed = process_extracted_data(parsed, payload.post_text, ocr_texts)
    parsed["images"] = image_urls

    row = build_facebook_row(
        parsed,
        post_text=payload.post_text,
        images=image_urls,
        facebook_post_link=payload.facebook_post_link,
        facebook_group_link=settings.facebook_group_link,
        author_profile_link=payload.author_profile_link,
        author_username=payload.author_username,
    )
    grant = require_admin(admin, table="facebook_listings")
    inserted = store.insert_facebook_listing(grant, row)
    logger.info("facebook_listing_added", extra={"listing_id": inserted.get("id"), "admin_id": admin.id})
    return {"success": True, "id": inserted["id"]}


@app.get("/api/facebook-listings/{listing_id}")
def get_facebook_listing(listing_id: str):
    row = store.get_facebook_listing(listing_id)
    if not row:
        raise NotFound("Listing not found")
    return to_listing_view(row)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _decode_image(image: ImageUpload) -> bytes:
    data = image.data
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise BadRequest(f"Invalid image data: {image.filename}") from exc


def _facebook_links(payload: FacebookPostPayload, images: Optional[List[str]] = None) -> Dict[str, Any]:
    links: Dict[str, Any] = {
        "facebookPostLink": payload.facebook_post_link,
        "authorProfileLink": payload.author_profile_link,
        "authorUsername": payload.author_username,
        "facebookGroupLink": settings.facebook_group_link,
    }
    if images is not None:
        links["images"] = images
    return links


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("server.app:app", host="0.0.0.0", port=8000, reload=False)
