import json
import logging

from telemetry.logging_utils import JsonFormatter
from telemetry.pii import sanitize_log_payload, scrub_text


def test_scrub_text_hashes_contacts_and_drops_bearer_tokens():
    scrubbed = scrub_text("Bearer abc.def.ghi from jane@psu.edu call 814-555-0199")
    assert "abc.def.ghi" not in scrubbed
    assert "jane@psu.edu" not in scrubbed
    assert "814-555-0199" not in scrubbed
    assert "[EMAIL_" in scrubbed


def test_sanitize_redacts_tokens_and_summarizes_content():
    cleaned = sanitize_log_payload(
        {
            "userToken": "eyJhbGciOi",
            "adminToken": "eyJhbGciOi",
            "refresh_token": "r1",
            "image_base64": "A" * 2048,
            "message": "hello",
            "agency_id": "ag-1",
        }
    )
    assert cleaned["userToken"] == "[REDACTED]"
    assert cleaned["adminToken"] == "[REDACTED]"
    assert cleaned["refresh_token"] == "[REDACTED]"
    assert cleaned["image_base64"] == {"redacted": True, "size": 2048}
    assert cleaned["message"] == {"redacted": True, "size": 5}
    assert cleaned["agency_id"] == "ag-1"


def test_json_formatter_never_emits_credentials():
    record = logging.LogRecord("server.app", logging.INFO, __file__, 1, "email_send_failed", None, None)
    record.email = "student@psu.edu"
    record.service_role_key = "super-secret"
    line = json.loads(JsonFormatter().format(record))
    assert line["event"] == "email_send_failed"
    assert line["service"] == "psu-leases"
    assert line["service_role_key"] == "[REDACTED]"
    assert "student@psu.edu" not in json.dumps(line)
