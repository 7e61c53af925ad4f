"""Environment-driven settings for the PSU Leases backend."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional

from dotenv import load_dotenv

# Administrators known at deploy time. ADMIN_EMAILS overrides the whole set.
DEFAULT_ADMIN_EMAILS = ("pranavkarra001@gmail.com", "machinelearningpennstate@gmail.com")
DEFAULT_FACEBOOK_GROUP_LINK = "https://www.facebook.com/groups/pennstatehousingsubleases/"
DEFAULT_OPENAI_MODEL = "gpt-4o"


def _split_csv(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    app_env: str = "dev"
    supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = None
    resend_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = DEFAULT_OPENAI_MODEL
    admin_emails: FrozenSet[str] = field(default_factory=lambda: frozenset(DEFAULT_ADMIN_EMAILS))
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    facebook_group_link: str = DEFAULT_FACEBOOK_GROUP_LINK

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)


def load_settings() -> Settings:
    """Read settings from the process environment (and `.env` when present)."""
    load_dotenv()
    admins = _split_csv(os.getenv("ADMIN_EMAILS")) or list(DEFAULT_ADMIN_EMAILS)
    return Settings(
        app_env=(os.getenv("APP_ENV") or "dev").strip().lower(),
        supabase_url=os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL"),
        supabase_service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY"),
        resend_api_key=os.getenv("RESEND_API_KEY") or None,
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_model=os.getenv("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL,
        admin_emails=frozenset(admins),
        cors_origins=_split_csv(os.getenv("CORS_ORIGINS")) or ["*"],
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        facebook_group_link=os.getenv("FACEBOOK_GROUP_LINK") or DEFAULT_FACEBOOK_GROUP_LINK,
    )
