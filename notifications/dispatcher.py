"""Batch email sends for the admin invite and blast flows."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from notifications.email_provider import EmailProvider, EmailProviderError
from notifications.templates import render_invite_email
from storage.errors import StoreError
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

INVITE = "invite"
BLAST = "blast"


class DispatchError(ValueError):
    """The request cannot be dispatched as given."""


def is_plausible_address(value: Any) -> bool:
    return isinstance(value, str) and "@" in value


@dataclass
class DispatchRequest:
    kind: Optional[str]
    from_email: Optional[str]
    subject: Optional[str]
    message: Optional[str]
    emails: Optional[List[Any]] = None
    user_ids: Optional[List[Any]] = None
    invite_link: Optional[str] = None


@dataclass
class DispatchReport:
    results: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def total_sent(self) -> int:
        return len(self.results)

    @property
    def total_failed(self) -> int:
        return len(self.errors)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "success": True,
            "results": self.results,
            "errors": self.errors,
            "totalSent": self.total_sent,
            "totalFailed": self.total_failed,
        }


class NotificationDispatcher:
    def __init__(self, provider: Optional[EmailProvider], store: Any) -> None:
        self._provider = provider
        self._store = store

    def dispatch(self, request: DispatchRequest) -> DispatchReport:
        if not request.from_email or not request.subject or not request.message:
            raise DispatchError("Missing required fields")
        if self._provider is None:
            logger.error("email_provider_missing")
            raise EmailProviderError("Email service configuration error")

        if request.kind == INVITE:
            if not isinstance(request.emails, list) or not request.emails:
                raise DispatchError("No valid emails provided")
            addresses: Sequence[Any] = request.emails
        elif request.kind == BLAST:
            addresses = self.resolve_addresses(request.user_ids)
        else:
            raise DispatchError("Invalid email type")

        return self.send_batch(
            addresses,
            from_email=request.from_email,
            subject=request.subject,
            message=request.message,
            invite_link=request.invite_link,
        )

    def resolve_addresses(self, user_ids: Optional[List[Any]]) -> List[str]:
        if not isinstance(user_ids, list) or not user_ids:
            raise DispatchError("No valid user IDs provided")
        try:
            profiles = self._store.fetch_profile_contacts([str(uid) for uid in user_ids])
        except StoreError as exc:
            raise StoreError("Error fetching user data", {"message": exc.message, "details": exc.details}) from exc
        if not profiles:
            raise DispatchError("No users found with the provided IDs")
        addresses = [p["email"] for p in profiles if p and is_plausible_address(p.get("email"))]
        logger.info("blast_recipients_resolved", extra={"requested": len(user_ids), "valid": len(addresses)})
        if not addresses:
            raise DispatchError("No valid user emails found")
        return addresses

    def send_batch(
        self,
        addresses: Sequence[Any],
        *,
        from_email: str,
        subject: str,
        message: str,
        invite_link: Optional[str] = None,
    ) -> DispatchReport:
        """Send one message per address, in order, recording every outcome."""
        if self._provider is None:
            raise EmailProviderError("Email service configuration error")
        html, text = render_invite_email(message, invite_link)
        report = DispatchReport()
        for address in addresses:
            if not is_plausible_address(address):
                report.errors.append({"email": address, "error": "Invalid email address"})
                continue
            try:
                sent = self._provider.send(
                    {
                        "from_email": from_email,
                        "to": address,
                        "subject": subject,
                        "body_html": html,
                        "body_text": text,
                    }
                )
            except Exception as exc:  # one bad address must not stop the batch
                logger.warning("email_send_failed", extra={"email": address, "error": str(exc)})
                report.errors.append({"email": address, "error": str(exc)})
                continue
            report.results.append({"email": address, "id": (sent or {}).get("id")})
        logger.info(
            "email_batch_finished",
            extra={"total_sent": report.total_sent, "total_failed": report.total_failed},
        )
        return report


DELIVERY_CHECK_TO = "delivered@resend.dev"
DELIVERY_CHECKS = (
    ("default_domain", "PSU Leases <onboarding@resend.dev>", "Default Domain"),
    ("custom_domain", "PSU Leases <hi@psuleases.com>", "Custom Domain"),
)


def run_delivery_check(provider: Optional[EmailProvider]) -> Dict[str, Any]:
    """Send one message from each sender domain to the provider's sink address."""
    if provider is None:
        raise EmailProviderError("Email service configuration error")
    results: List[Dict[str, Any]] = []
    for test, sender, label in DELIVERY_CHECKS:
        try:
            data = provider.send(
                {
                    "from_email": sender,
                    "to": DELIVERY_CHECK_TO,
                    "subject": f"Test Email from PSU Leases ({label})",
                    "body_text": (
                        "This is a test email to verify the email service is working correctly "
                        f"with the {label.lower()}."
                    ),
                }
            )
        except Exception as exc:  # each sender is reported independently
            logger.warning("delivery_check_failed", extra={"test": test, "error": str(exc)})
            results.append({"test": test, "success": False, "error": str(exc)})
            continue
        results.append({"test": test, "success": True, "data": data})
    success = any(r["success"] for r in results)
    return {
        "message": "At least one test email sent successfully" if success else "All test emails failed",
        "results": results,
        "success": success,
        "hasError": not all(r["success"] for r in results),
    }
