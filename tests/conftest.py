import pytest
from fastapi.testclient import TestClient

import server.app as app_module
from extraction.schemas import validate_autofill
from notifications.email_provider import EmailProvider, EmailProviderError
from server.security import AccessPolicy
from storage.memory_store import InMemoryStore

ADMIN_EMAIL = "admin@psuleases.test"
TENANT_ID = "tenant-1"
OTHER_ID = "tenant-2"
ADMIN_ID = "admin-1"


class FakeEmailProvider(EmailProvider):
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send(self, message):
        if message["to"] in self.fail_for:
            raise EmailProviderError(f"Resend error: 422 rejected {message['to']}")
        self.sent.append(message)
        return {"id": f"msg-{len(self.sent)}"}


class FakeExtractor:
    """Stands in for ListingExtractor; no network calls."""

    def __init__(self):
        self.calls = []
        self.facebook_reply = {
            "apartment_name": "The Rise",
            "price": "750",
            "description": "Sublease at The Rise, pool and gym.",
            "amenities": ["Pool"],
        }

    def autofill(self, text=None, image_base64=None, mime_type=None):
        self.calls.append(("autofill", text, bool(image_base64)))
        return validate_autofill({"customApartment": "The Rise", "bedrooms": 2, "unexpected": "drop me"})

    def ocr_image(self, image_base64, mime_type=None):
        self.calls.append(("ocr", mime_type))
        return "2B2B at The Rise, $750 + utilities"

    def extract_facebook_post(self, post_text, ocr_texts, links=None, author_name=None):
        self.calls.append(("facebook", post_text, list(ocr_texts), author_name))
        return dict(self.facebook_reply)


@pytest.fixture()
def store(monkeypatch):
    memory = InMemoryStore()
    monkeypatch.setattr(app_module, "store", memory)
    return memory


@pytest.fixture(autouse=True)
def admin_policy(monkeypatch):
    policy = AccessPolicy.from_emails([ADMIN_EMAIL])
    monkeypatch.setattr(app_module, "policy", policy)
    return policy


@pytest.fixture()
def email_provider(monkeypatch):
    provider = FakeEmailProvider()
    monkeypatch.setattr(app_module, "email_provider", provider)
    return provider


@pytest.fixture()
def extractor(monkeypatch):
    fake = FakeExtractor()
    monkeypatch.setattr(app_module, "extractor", fake)
    return fake


@pytest.fixture()
def client(store, email_provider, extractor):
    return TestClient(app_module.app)


@pytest.fixture()
def tenant_token(store):
    return store.issue_session(TENANT_ID, "tenant@psu.edu", token="tenant-token")


@pytest.fixture()
def other_token(store):
    return store.issue_session(OTHER_ID, "other@psu.edu", token="other-token")


@pytest.fixture()
def admin_token(store):
    return store.issue_session(ADMIN_ID, ADMIN_EMAIL, token="admin-token")


def bearer(token):
    return {"Authorization": f"Bearer {token}"}
