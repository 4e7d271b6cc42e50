"""
Structured, PII-safe request logging.

Each entry is a single JSON document written through the standard logging
module so it lands wherever the process log handlers point. Messages and
exception text are scrubbed with redact_for_pii; extra data is redacted field
by field at the configured level. Stack traces are never logged.
"""
from __future__ import annotations

import json
import logging
import random
import re
import string
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.exc import StatementError

import config
from .pii_redaction import redact_for_pii, redact_object

logger = logging.getLogger("workload.secure")

CUID_PATTERN = re.compile(r"^c[a-z0-9]{24}$")

_CONTEXT_FIELDS = ("userId", "activityId", "categoryId", "method", "statusCode", "requestId", "count")


def _random_suffix(length: int = 9) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(random.choice(alphabet) for _ in range(length))


def generate_request_id() -> str:
    return f"req_{int(time.time() * 1000)}_{_random_suffix()}"


def create_request_context(
    operation: str,
    method: str,
    user_id: Optional[str] = None,
    activity_id: Optional[str] = None,
    category_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Base context shared by every log line emitted for one request."""
    context: Dict[str, Any] = {
        "operation": operation,
        "method": method,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "requestId": generate_request_id(),
    }
    if user_id:
        context["userId"] = user_id
    if activity_id:
        context["activityId"] = activity_id
    if category_id:
        context["categoryId"] = category_id
    return context


def extract_safe_user_id(body: Any) -> Optional[str]:
    """Only CUID-shaped user ids are considered safe to log."""
    if not isinstance(body, dict):
        return None
    user_id = body.get("user_id")
    if isinstance(user_id, str) and CUID_PATTERN.match(user_id):
        return user_id
    return None


def _error_text(error: BaseException) -> str:
    """Exception text without SQL statements or bound parameters."""
    if isinstance(error, StatementError):
        return str(error.orig) if error.orig is not None else type(error).__name__
    return str(error)


def _build_entry(
    level: str,
    message: str,
    context: Dict[str, Any],
    error: Optional[BaseException] = None,
    additional_data: Any = None,
) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "level": level,
        "message": redact_for_pii(message),
        "timestamp": context.get("timestamp") or datetime.now(timezone.utc).isoformat(),
        "operation": context.get("operation", "unknown"),
    }
    for field in _CONTEXT_FIELDS:
        if context.get(field):
            entry[field] = context[field]
    if error is not None:
        entry["errorType"] = type(error).__name__
        entry["errorMessage"] = redact_for_pii(_error_text(error))
    if additional_data:
        entry["data"] = redact_object(additional_data, config.redaction_level())
    return entry


def log_secure_error(
    message: str,
    context: Dict[str, Any],
    error: Optional[BaseException] = None,
    additional_data: Any = None,
) -> Dict[str, Any]:
    entry = _build_entry("error", message, context, error, additional_data)
    logger.error(json.dumps(entry, default=str))
    return entry


def log_secure_warning(message: str, context: Dict[str, Any], additional_data: Any = None) -> Dict[str, Any]:
    entry = _build_entry("warning", message, context, None, additional_data)
    logger.warning(json.dumps(entry, default=str))
    return entry


def log_secure_info(message: str, context: Dict[str, Any], additional_data: Any = None) -> Dict[str, Any]:
    entry = _build_entry("info", message, context, None, additional_data)
    logger.info(json.dumps(entry, default=str))
    return entry


def log_health_check(component: str, status: str, context: Dict[str, Any], details: Any = None) -> Dict[str, Any]:
    entry = {
        "level": "info",
        "message": f"Health check: {component}",
        "status": status,
        "timestamp": context.get("timestamp"),
        "operation": context.get("operation"),
        "requestId": context.get("requestId"),
        "component": component,
    }
    if details:
        entry["details"] = details
    entry = redact_object(entry, config.redaction_level())
    logger.info(json.dumps(entry, default=str))
    return entry
