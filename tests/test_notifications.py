import httpx
import pytest

from conftest import ADMIN_EMAIL, FakeEmailProvider
from notifications import email_provider as email_module
from notifications.dispatcher import (
    BLAST,
    INVITE,
    DispatchError,
    DispatchRequest,
    NotificationDispatcher,
    run_delivery_check,
)
from notifications.email_provider import EmailProviderError, ResendProvider
from notifications.templates import render_invite_email
from storage.errors import StoreError
from storage.memory_store import InMemoryStore


def _request(**overrides):
    fields = {
        "kind": INVITE,
        "from_email": "PSU Leases <hi@psuleases.com>",
        "subject": "Join us",
        "message": "Hello\nWelcome aboard",
        "emails": ["a@x.com"],
    }
    fields.update(overrides)
    return DispatchRequest(**fields)


def test_invite_batch_continues_after_failures():
    provider = FakeEmailProvider(fail_for={"c@y.com"})
    dispatcher = NotificationDispatcher(provider, InMemoryStore())
    report = dispatcher.dispatch(_request(emails=["a@x.com", "bad", "c@y.com", "d@z.com"]))

    assert report.total_sent == 2
    assert report.total_failed == 2
    assert report.total_sent + report.total_failed == 4
    assert [r["email"] for r in report.results] == ["a@x.com", "d@z.com"]
    assert report.errors[0] == {"email": "bad", "error": "Invalid email address"}
    assert "422" in report.errors[1]["error"]
    # The invalid entry never reached the provider.
    assert [m["to"] for m in provider.sent] == ["a@x.com", "d@z.com"]


def test_blast_resolves_profiles_and_skips_bad_addresses():
    store = InMemoryStore()
    store.tables["profiles"].update(
        {
            "u1": {"id": "u1", "email": "one@psu.edu"},
            "u2": {"id": "u2", "email": "not-an-address"},
            "u3": {"id": "u3", "email": None},
        }
    )
    provider = FakeEmailProvider()
    report = NotificationDispatcher(provider, store).dispatch(_request(kind=BLAST, emails=None, user_ids=["u1", "u2", "u3"]))
    assert report.to_payload() == {
        "success": True,
        "results": [{"email": "one@psu.edu", "id": "msg-1"}],
        "errors": [],
        "totalSent": 1,
        "totalFailed": 0,
    }


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"subject": ""}, "Missing required fields"),
        ({"kind": "newsletter"}, "Invalid email type"),
        ({"emails": []}, "No valid emails provided"),
        ({"kind": BLAST, "user_ids": []}, "No valid user IDs provided"),
        ({"kind": BLAST, "user_ids": ["ghost"]}, "No users found with the provided IDs"),
    ],
)
def test_dispatch_rejections(overrides, message):
    dispatcher = NotificationDispatcher(FakeEmailProvider(), InMemoryStore())
    with pytest.raises(DispatchError, match=message):
        dispatcher.dispatch(_request(**overrides))


def test_blast_without_any_valid_address():
    store = InMemoryStore()
    store.tables["profiles"]["u1"] = {"id": "u1", "email": "nobody"}
    dispatcher = NotificationDispatcher(FakeEmailProvider(), store)
    with pytest.raises(DispatchError, match="No valid user emails found"):
        dispatcher.dispatch(_request(kind=BLAST, user_ids=["u1"]))


def test_blast_store_failure(monkeypatch):
    store = InMemoryStore()

    def boom(user_ids):
        raise StoreError("connection reset", {"code": "08006"})

    monkeypatch.setattr(store, "fetch_profile_contacts", boom)
    dispatcher = NotificationDispatcher(FakeEmailProvider(), store)
    with pytest.raises(StoreError) as excinfo:
        dispatcher.dispatch(_request(kind=BLAST, user_ids=["u1"]))
    assert excinfo.value.message == "Error fetching user data"


def test_missing_provider_is_configuration_error():
    dispatcher = NotificationDispatcher(None, InMemoryStore())
    with pytest.raises(EmailProviderError, match="Email service configuration error"):
        dispatcher.dispatch(_request())


def test_invite_template_escapes_message_and_links():
    html, text = render_invite_email("Hi <b>there</b>\nSecond line", "https://psuleases.com/join?a=1&b=2")
    assert "&lt;b&gt;there&lt;/b&gt;" in html
    assert html.count("<p ") == 3
    assert "Join PSU Leases" in html
    assert text.endswith("Join PSU Leases: https://psuleases.com/join?a=1&b=2")


def test_resend_provider_posts_message(monkeypatch):
    captured = {}

    def fake_post(url, json, headers, timeout):
        captured.update({"url": url, "json": json, "headers": headers})
        return httpx.Response(200, json={"id": "re_123"})

    monkeypatch.setattr(email_module.httpx, "post", fake_post)
    provider = ResendProvider("re_key")
    result = provider.send({"from_email": "a@psuleases.com", "to": "b@psu.edu", "subject": "Hi", "body_text": "yo"})
    assert result == {"id": "re_123"}
    assert captured["url"] == "https://api.resend.com/emails"
    assert captured["json"] == {"from": "a@psuleases.com", "to": ["b@psu.edu"], "subject": "Hi", "text": "yo"}
    assert captured["headers"]["Authorization"] == "Bearer re_key"


def test_resend_provider_raises_on_error_status(monkeypatch):
    monkeypatch.setattr(
        email_module.httpx,
        "post",
        lambda url, json, headers, timeout: httpx.Response(403, json={"message": "domain not verified"}),
    )
    with pytest.raises(EmailProviderError, match="Resend error: 403"):
        ResendProvider("re_key").send({"from_email": "a@psuleases.com", "to": "b@psu.edu"})


def test_delivery_check_reports_each_sender():
    provider = FakeEmailProvider()
    outcome = run_delivery_check(provider)
    assert outcome["success"] is True
    assert outcome["hasError"] is False
    assert [r["test"] for r in outcome["results"]] == ["default_domain", "custom_domain"]
    assert {m["to"] for m in provider.sent} == {"delivered@resend.dev"}


def test_send_emails_endpoint(client, store, email_provider, admin_token):
    resp = client.post(
        "/api/admin/send-emails",
        headers={"Authorization": f"Bearer {admin_token}"},
        json={
            "type": "invite",
            "fromEmail": "PSU Leases <hi@psuleases.com>",
            "subject": "Join",
            "message": "Come find a sublease",
            "emails": ["a@x.com", "nope"],
            "inviteLink": "https://psuleases.com",
        },
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["totalSent"] == 1
    assert body["totalFailed"] == 1
    assert email_provider.sent[0]["from_email"] == "PSU Leases <hi@psuleases.com>"


def test_send_emails_requires_session(client):
    resp = client.post("/api/admin/send-emails", json={"type": "invite"})
    assert resp.status_code == 401


def test_send_emails_rejects_non_admin_before_validation(client, tenant_token):
    resp = client.post("/api/admin/send-emails", headers={"Authorization": f"Bearer {tenant_token}"}, json={})
    assert resp.status_code == 403
    assert resp.json() == {"error": "Forbidden"}


def test_send_emails_validation_errors_are_400(client, admin_token):
    resp = client.post(
        "/api/admin/send-emails",
        headers={"Authorization": f"Bearer {admin_token}"},
        json={"type": "smoke", "fromEmail": ADMIN_EMAIL, "subject": "s", "message": "m"},
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid email type"}


def test_send_emails_without_provider(client, admin_token, monkeypatch):
    import server.app as app_module

    monkeypatch.setattr(app_module, "email_provider", None)
    resp = client.post(
        "/api/admin/send-emails",
        headers={"Authorization": f"Bearer {admin_token}"},
        json={"type": "invite", "fromEmail": ADMIN_EMAIL, "subject": "s", "message": "m", "emails": ["a@x.com"]},
    )
    assert resp.status_code == 500
    assert resp.json() == {"error": "Email service configuration error"}


def test_test_email_endpoint(client, email_provider, admin_token):
    resp = client.get("/api/admin/test-email", headers={"Authorization": f"Bearer {admin_token}"})
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert len(email_provider.sent) == 2
