import json
import logging
import re

import pytest
from sqlalchemy.exc import IntegrityError

from utils.secure_logger import (
    create_request_context,
    extract_safe_user_id,
    log_health_check,
    log_secure_error,
    log_secure_info,
)


@pytest.fixture(autouse=True)
def moderate_redaction(monkeypatch):
    monkeypatch.setenv("PII_REDACTION_LEVEL", "moderate")


def test_request_context():
    context = create_request_context("update_activity", "PUT", activity_id="cabc")

    assert context["operation"] == "update_activity"
    assert context["method"] == "PUT"
    assert context["activityId"] == "cabc"
    assert "userId" not in context
    assert re.match(r"^req_\d+_[a-z0-9]{9}$", context["requestId"])
    assert context["timestamp"].endswith("Z")


def test_only_cuid_user_ids_are_extracted():
    assert extract_safe_user_id({"user_id": "c" + "a" * 24}) == "c" + "a" * 24
    assert extract_safe_user_id({"user_id": "+27821234567"}) is None
    assert extract_safe_user_id("user_id") is None


def test_error_entry_is_scrubbed(caplog):
    context = {**create_request_context("create_user", "POST"), "statusCode": 500}

    with caplog.at_level(logging.ERROR, logger="workload.secure"):
        entry = log_secure_error(
            "Failed for thandi@school.za",
            context,
            ValueError("duplicate +27821234567"),
            {"phone_number": "+27821234567", "role": "Teacher"},
        )

    assert entry["level"] == "error"
    assert entry["message"] == "Failed for [EMAIL_REDACTED]"
    assert entry["errorType"] == "ValueError"
    assert entry["errorMessage"] == "duplicate [PHONE_REDACTED]"
    assert entry["statusCode"] == 500
    assert entry["data"] == {"phone_number": "+27XXXXXX567", "role": "Teacher"}
    assert json.loads(caplog.records[-1].getMessage()) == entry


def test_sql_errors_log_driver_message_only(caplog):
    error = IntegrityError(
        "INSERT INTO users (name, phone_number) VALUES (?, ?)",
        ("Thandi", "+27821234567"),
        Exception("UNIQUE constraint failed: users.phone_number"),
    )

    with caplog.at_level(logging.ERROR, logger="workload.secure"):
        entry = log_secure_error("Create user failed", create_request_context("create_user", "POST"), error)

    assert entry["errorType"] == "IntegrityError"
    assert entry["errorMessage"] == "UNIQUE constraint failed: users.phone_number"
    assert "INSERT" not in caplog.text
    assert "+2782" not in caplog.text


def test_info_entry_without_data(caplog):
    with caplog.at_level(logging.INFO, logger="workload.secure"):
        entry = log_secure_info("Activity created", create_request_context("create_activity", "POST"))

    assert "data" not in entry
    assert "errorType" not in entry
    assert caplog.records[-1].levelno == logging.INFO


def test_health_check_entry():
    entry = log_health_check("database", "healthy", create_request_context("health_check", "GET"), {"latencyMs": 3})

    assert entry["component"] == "database"
    assert entry["status"] == "healthy"
    assert entry["details"] == {"latencyMs": 3}
