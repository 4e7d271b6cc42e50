"""
PII redaction for structured logs.

Field-name rules decide how a value is masked. The rule set depends on the
redaction level:
- strict: personal fields are fully masked, credentials removed
- moderate: phone/email/location keep a debugging hint
- minimal: only credentials are touched

Free-form text (log messages, exception text) goes through redact_for_pii,
which replaces anything that looks like an email, card, ID or phone number.
"""
from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Pattern

REDACTION_LEVELS = ("strict", "moderate", "minimal")
MAX_DEPTH = 10


@dataclass(frozen=True)
class RedactionConfig:
    mode: str  # mask | partial | remove | hash
    preserve_length: bool = False
    custom_mask: Optional[str] = None
    hash_salt: Optional[str] = None


@dataclass(frozen=True)
class RedactionRule:
    field: Pattern
    config: RedactionConfig
    description: str = ""


PHONE = RedactionConfig(mode="partial", preserve_length=True, custom_mask="X")
EMAIL = RedactionConfig(mode="partial", custom_mask="***")
NAME = RedactionConfig(mode="mask", custom_mask="[REDACTED]")
LOCATION = RedactionConfig(mode="partial", custom_mask="***")
NOTES = RedactionConfig(mode="mask", custom_mask="[CONTENT_REDACTED]")
CREDENTIAL = RedactionConfig(mode="remove")


def _rule(pattern: str, config: RedactionConfig, description: str) -> RedactionRule:
    return RedactionRule(re.compile(pattern, re.IGNORECASE), config, description)


_CREDENTIAL_RULES = [
    _rule(r"password", CREDENTIAL, "Passwords"),
    _rule(r"token", CREDENTIAL, "API tokens"),
    _rule(r"secret", CREDENTIAL, "Secrets"),
]

REDACTION_RULES: Dict[str, List[RedactionRule]] = {
    "strict": [
        _rule(r"phone_?number", CREDENTIAL, "Phone numbers"),
        _rule(r"email", CREDENTIAL, "Email addresses"),
        _rule(r"name", NAME, "Personal names"),
        _rule(r"location", NAME, "Location data"),
        _rule(r"address", NAME, "Addresses"),
        _rule(r"notes?", NOTES, "Notes"),
        _rule(r"comments?", NOTES, "Comments"),
        *_CREDENTIAL_RULES,
        _rule(r"key", CREDENTIAL, "API keys"),
    ],
    "moderate": [
        _rule(r"phone_?number", PHONE, "Phone numbers"),
        _rule(r"email", EMAIL, "Email addresses"),
        _rule(r"name", NAME, "Personal names"),
        _rule(r"location", LOCATION, "Location data"),
        _rule(r"address", LOCATION, "Addresses"),
        _rule(r"notes?", NOTES, "Notes"),
        *_CREDENTIAL_RULES,
        _rule(r"key", CREDENTIAL, "API keys"),
    ],
    "minimal": [
        *_CREDENTIAL_RULES,
        _rule(r"api_?key", CREDENTIAL, "API keys"),
    ],
}

_PHONE_VALUE = re.compile(r"^\+?[1-9]\d{1,14}$")
_EMAIL_VALUE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_CARD_VALUE = re.compile(r"^\d{4}[\s\-]?\d{4}[\s\-]?\d{4}[\s\-]?\d{4}$")
_PARTIAL_NUMERIC = re.compile(r"^\+?[0-9\s\-()]+$")

# Order matters: specific shapes first, generic digit runs last.
_TEXT_PATTERNS = [
    (re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"), "[EMAIL_REDACTED]"),
    (re.compile(r"\b\d{4}[\s\-]?\d{4}[\s\-]?\d{4}[\s\-]?\d{4}\b"), "[CARD_REDACTED]"),
    (re.compile(r"\b\d{13}\b"), "[ID_REDACTED]"),
    (re.compile(r"\+\d{9,14}\b|\b0\d{9}\b"), "[PHONE_REDACTED]"),
    (re.compile(r"\b\d{8,}\b"), "[NUMBER_REDACTED]"),
]


def _mask(value: str, config: RedactionConfig) -> str:
    if config.mode == "remove":
        return "[REMOVED]"
    if config.mode == "mask":
        if config.preserve_length and value:
            return (config.custom_mask or "*") * len(value)
        return config.custom_mask or "[REDACTED]"
    if config.mode == "partial":
        return _partial(value, config)
    if config.mode == "hash":
        return _hash(value, config.hash_salt)
    return "[REDACTED]"


def _as_mask(config: RedactionConfig) -> RedactionConfig:
    return RedactionConfig(mode="mask", preserve_length=config.preserve_length, custom_mask=config.custom_mask)


def _partial(value: str, config: RedactionConfig) -> str:
    if not value:
        return value
    filler = config.custom_mask or "*"

    # +27821234567 -> +27XXXXXX567
    if _PARTIAL_NUMERIC.match(value):
        if len(value) <= 6:
            return _mask(value, _as_mask(config))
        return f"{value[:3]}{filler * (len(value) - 6)}{value[-3:]}"

    # user@example.com -> u***@example.com
    if "@" in value:
        local, _, domain = value.partition("@")
        if len(local) <= 1:
            return f"{config.custom_mask or '***'}@{domain}"
        return f"{local[0]}{config.custom_mask or '***'}@{domain}"

    if len(value) <= 4:
        return _mask(value, _as_mask(config))
    return f"{value[0]}{filler * (len(value) - 2)}{value[-1]}"


def _hash(value: str, salt: Optional[str] = None) -> str:
    digest = hashlib.sha256(f"{salt or 'default_salt'}{value}".encode("utf-8")).hexdigest()
    return f"[HASH_{digest[:12].upper()}]"


def redact_value(value: Any, field_name: str, level: str = "moderate") -> Any:
    """Redact a single scalar according to its field name and the level."""
    if value is None:
        return value

    for rule in REDACTION_RULES.get(level, REDACTION_RULES["moderate"]):
        if rule.field.search(field_name):
            return _mask(str(value), rule.config)

    if isinstance(value, str):
        compact = re.sub(r"[\s\-()]", "", value)
        if _PHONE_VALUE.match(compact) and len(compact) >= 9:
            return _mask(value, PHONE)
        if _EMAIL_VALUE.match(value):
            return _mask(value, EMAIL)
        if _CARD_VALUE.match(value):
            return _mask(value, CREDENTIAL)

    return value


def redact_object(obj: Any, level: str = "moderate", max_depth: int = MAX_DEPTH) -> Any:
    """Recursively redact dicts and lists, keeping their shape."""
    if max_depth <= 0:
        return "[MAX_DEPTH_REACHED]"
    if obj is None or not isinstance(obj, (dict, list, tuple)):
        return obj
    if isinstance(obj, (list, tuple)):
        return [redact_object(item, level, max_depth - 1) for item in obj]

    redacted: Dict[str, Any] = {}
    for key, value in obj.items():
        if isinstance(value, (dict, list, tuple)):
            redacted[key] = redact_object(value, level, max_depth - 1)
        else:
            redacted[key] = redact_value(value, str(key), level)
    return redacted


def redact_for_pii(text: Any) -> Any:
    """Strip PII-looking substrings out of free-form text."""
    if not text or not isinstance(text, str):
        return text
    redacted = text
    for pattern, replacement in _TEXT_PATTERNS:
        redacted = pattern.sub(replacement, redacted)
    return redacted


def is_valid_level(level: str) -> bool:
    return level in REDACTION_LEVELS
