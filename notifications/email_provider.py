from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

RESEND_API_URL = "https://api.resend.com/emails"


class EmailProviderError(RuntimeError):
    pass


class EmailProvider:
    def send(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """Deliver one message; return the provider's response (with an `id`)."""
        raise NotImplementedError


class ResendProvider(EmailProvider):
    def __init__(self, api_key: str, *, api_url: str = RESEND_API_URL, timeout: float = 30.0) -> None:
        if not api_key:
            raise EmailProviderError("Email service configuration error")
        self._api_key = api_key
        self._api_url = api_url
        self._timeout = timeout

    def send(self, message: Dict[str, Any]) -> Dict[str, Any]:
        from_email = message.get("from_email")
        to = message.get("to")
        if not from_email:
            raise EmailProviderError("Missing from_email")
        if not to:
            raise EmailProviderError("Missing recipients")
        payload = {
            "from": from_email,
            "to": [to] if isinstance(to, str) else list(to),
            "subject": message.get("subject") or "",
            "html": message.get("body_html"),
            "text": message.get("body_text"),
        }
        payload = {key: value for key, value in payload.items() if value is not None}
        headers = {"Authorization": f"Bearer {self._api_key}"}
        resp = httpx.post(self._api_url, json=payload, headers=headers, timeout=self._timeout)
        if resp.status_code >= 400:
            raise EmailProviderError(f"Resend error: {resp.status_code} {resp.text}")
        return resp.json()


def get_provider(api_key: Optional[str]) -> Optional[EmailProvider]:
    """Return a configured provider, or None when no API key is set."""
    if not api_key:
        return None
    return ResendProvider(api_key)
