"""
Runtime configuration.

Values come from the process environment, optionally seeded from a local
.env file. Everything is read once at import time.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).parent

load_dotenv(PROJECT_ROOT / ".env")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name, "").strip()
    return Path(raw).expanduser() if raw else default


APP_ENV = os.getenv("APP_ENV", "development").strip().lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

DATABASE_URL = os.getenv("DATABASE_URL", "").strip()

cors_origins_raw = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
CORS_ORIGINS: List[str] = [origin.strip() for origin in cors_origins_raw.split(",") if origin.strip()]

AUDIT_LOG_DIR = _env_path("AUDIT_LOG_DIR", PROJECT_ROOT / "logs" / "audit")
AUDIT_RETENTION_DAYS = _env_int("AUDIT_RETENTION_DAYS", 90)
REPORTS_DIR = _env_path("REPORTS_DIR", PROJECT_ROOT / "reports")

SSE_HEARTBEAT_SECONDS = _env_int("SSE_HEARTBEAT_SECONDS", 30)
SSE_CLEANUP_SECONDS = _env_int("SSE_CLEANUP_SECONDS", 60)
SSE_MAX_CONNECTION_AGE_SECONDS = _env_int("SSE_MAX_CONNECTION_AGE_SECONDS", 300)
PRESENCE_TIMEOUT_SECONDS = _env_int("PRESENCE_TIMEOUT_SECONDS", 300)

AI_PROVIDER = os.getenv("AI_PROVIDER", "").strip().lower()


def redaction_level() -> str:
    """Resolve the PII redaction level for structured logs."""
    explicit = os.getenv("PII_REDACTION_LEVEL", "").strip().lower()
    if explicit in ("strict", "moderate", "minimal"):
        return explicit
    if APP_ENV == "production":
        return "strict"
    if APP_ENV in ("development", "test"):
        return "minimal"
    return "moderate"


def provider_key(name: str) -> str:
    """Return the trimmed API key for an AI provider, or an empty string."""
    return os.getenv(f"{name.upper()}_API_KEY", "").strip()
