"""
JSON log formatter: structured context and credential redaction.
"""
import json
import logging
import sys
from uuid import UUID

from core.logging import JSONFormatter, redact


def _record(extra_fields=None, exc_info=None) -> logging.LogRecord:
    record = logging.LogRecord("services.auth_service", logging.INFO, __file__, 10, "User logged in", None, exc_info)
    if extra_fields is not None:
        record.extra_fields = extra_fields
    return record


def test_extra_fields_are_merged():
    line = json.loads(JSONFormatter().format(_record({"user_id": "u1", "role": "athlete"})))
    assert line["message"] == "User logged in"
    assert line["level"] == "INFO"
    assert line["user_id"] == "u1"
    assert line["role"] == "athlete"


def test_credentials_are_redacted():
    line = json.loads(JSONFormatter().format(_record({"email": "a@example.com", "refresh_token": "abc", "Password": "x"})))
    assert line["email"] == "a@example.com"
    assert line["refresh_token"] == "[REDACTED]"
    assert line["Password"] == "[REDACTED]"


def test_non_json_values_are_stringified():
    line = json.loads(JSONFormatter().format(_record({"user_id": UUID(int=1)})))
    assert line["user_id"] == "00000000-0000-0000-0000-000000000001"


def test_exception_is_included():
    try:
        raise ValueError("boom")
    except ValueError:
        record = _record(exc_info=sys.exc_info())
    line = json.loads(JSONFormatter().format(record))
    assert "ValueError: boom" in line["exception"]


def test_redact_leaves_other_keys():
    assert redact({"path": "/v1/auth/login", "token": "t"}) == {"path": "/v1/auth/login", "token": "[REDACTED]"}
