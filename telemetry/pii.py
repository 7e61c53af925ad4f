from __future__ import annotations

import hashlib
import re
from typing import Any, Dict

EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
# Phone-like numbers: optional country code and separators, at least 9 digits.
PHONE_RE = re.compile(r"\+?\d[\d\s().-]{8,}\d")
GOV_ID_RE = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
BEARER_RE = re.compile(r"(?i)bearer\s+[A-Za-z0-9._~+/=-]+")

# Keys whose values must never reach a log line.
SECRET_FIELDS = {
    "usertoken",
    "admintoken",
    "access_token",
    "refresh_token",
    "authorization",
    "service_role_key",
    "api_key",
    "password",
}

# Keys holding bulky or free-text user content; logged as a size summary only.
CONTENT_FIELDS = {
    "message",
    "html",
    "text",
    "post_text",
    "posttext",
    "ocr_texts",
    "ocrtexts",
    "image_base64",
    "description",
}


def _hash_token(text: str) -> str:
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]
    return f"[HASH:{digest}]"


def scrub_text(text: str) -> str:
    """Hash email addresses, phone numbers and ID numbers; drop bearer tokens."""
    if not text:
        return text

    def _replace(match: re.Match, label: str) -> str:
        return f"[{label}_{_hash_token(match.group(0))}]"

    scrubbed = BEARER_RE.sub("Bearer [REDACTED]", text)
    scrubbed = EMAIL_RE.sub(lambda m: _replace(m, "EMAIL"), scrubbed)
    scrubbed = PHONE_RE.sub(lambda m: _replace(m, "PHONE"), scrubbed)
    scrubbed = GOV_ID_RE.sub(lambda m: _replace(m, "ID"), scrubbed)
    return scrubbed


def _summarize(value: Any) -> Dict[str, Any]:
    length = len(value) if hasattr(value, "__len__") else None
    return {"redacted": True, "size": length}


def _is_secret_key(key: str) -> bool:
    lowered = key.lower()
    if lowered in SECRET_FIELDS:
        return True
    return lowered.endswith("token") or lowered.endswith("secret")


def scrub_value(value: Any) -> Any:
    if isinstance(value, str):
        cleaned = scrub_text(value)
        if len(cleaned) > 500:
            return _hash_token(cleaned)
        return cleaned
    if isinstance(value, dict):
        return sanitize_log_payload(value)
    if isinstance(value, (list, tuple)):
        return [scrub_value(item) for item in value]
    return value


def sanitize_log_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Strip secrets and user content from a structured log payload."""
    if not isinstance(payload, dict):
        return {}

    cleaned: Dict[str, Any] = {}
    for key, value in payload.items():
        name = str(key)
        if value is None:
            cleaned[name] = value
        elif _is_secret_key(name):
            cleaned[name] = "[REDACTED]"
        elif name.lower() in CONTENT_FIELDS:
            cleaned[name] = _summarize(value)
        else:
            cleaned[name] = scrub_value(value)
    return cleaned
