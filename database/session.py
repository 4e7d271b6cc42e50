# ---------------------------------------------------------------------
# Engine, sessions and resilient execution
# ---------------------------------------------------------------------
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Iterator, Optional, Tuple

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

import config
from utils.error_recovery import call_with_retry
from .models import Base, Category, User, UNPLANNED_CATEGORY_ID

logger = logging.getLogger(__name__)

TRANSIENT_DB_ERRORS = (OperationalError, DisconnectionError, InterfaceError, ConnectionError, TimeoutError)

SYSTEM_CATEGORIES = (
    ("learner_wellness", "Learner Wellness"),
    ("maintenance", "Maintenance"),
    (UNPLANNED_CATEGORY_ID, "Unplanned Incident"),
)


def _normalize_db_url(url: str) -> str:
    if not url:
        return f"sqlite:///{config.PROJECT_ROOT / 'workload.db'}"
    # Use psycopg (v3) driver explicitly
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)
    elif url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _make_engine(url: str):
    kwargs: dict = {"pool_pre_ping": True, "future": True}
    if url.startswith("sqlite"):
        # Sessions are used from the request thread pool.
        kwargs["connect_args"] = {"check_same_thread": False}
    engine = create_engine(url, **kwargs)
    if url.startswith("sqlite"):
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


DATABASE_URL = _normalize_db_url(config.DATABASE_URL)
ENGINE = _make_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=ENGINE, expire_on_commit=False, future=True)


def configure(url: str) -> None:
    """Rebind the module engine, e.g. for a CLI override or a test database."""
    global DATABASE_URL, ENGINE
    ENGINE.dispose()
    DATABASE_URL = _normalize_db_url(url)
    ENGINE = _make_engine(DATABASE_URL)
    SessionLocal.configure(bind=ENGINE)


def new_session() -> Session:
    return SessionLocal()


def get_db() -> Iterator[Session]:
    """FastAPI dependency: one session per request."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def init_db() -> None:
    Base.metadata.create_all(ENGINE)


def drop_db() -> None:
    Base.metadata.drop_all(ENGINE)


def with_db(
    operation: Callable[[Session], Any],
    session: Optional[Session] = None,
    max_attempts: int = 3,
    base_delay: float = 1.0,
) -> Any:
    """
    Run operation(session), retrying transient connection failures.

    The session is rolled back between attempts. When no session is passed,
    a private one is opened and closed around the call.
    """
    own_session = session is None
    db = session if session is not None else SessionLocal()

    def _rollback(_error: BaseException) -> None:
        db.rollback()

    try:
        return call_with_retry(
            lambda: operation(db),
            max_attempts=max_attempts,
            base_delay=base_delay,
            max_delay=30.0,
            retryable_exceptions=TRANSIENT_DB_ERRORS,
            on_retry=_rollback,
            name=getattr(operation, "__name__", "db_operation"),
        )
    finally:
        if own_session:
            db.close()


def with_db_critical(operation: Callable[[Session], Any], session: Optional[Session] = None) -> Any:
    """Extra resilience for writes that must not be lost."""
    return with_db(operation, session=session, max_attempts=5, base_delay=2.0)


def health_check(timeout: float = 5.0) -> Tuple[bool, Optional[float], Optional[str]]:
    """Return (ok, latency_ms, error) for a trivial round trip."""

    def _ping() -> None:
        with ENGINE.connect() as conn:
            conn.execute(text("SELECT 1"))

    started = time.perf_counter()
    executor = ThreadPoolExecutor(max_workers=1)
    try:
        executor.submit(_ping).result(timeout=timeout)
    except FutureTimeout:
        return False, None, f"Timed out after {timeout:.1f}s"
    except Exception as e:
        logger.warning(f"Database health check failed: {type(e).__name__}")
        return False, None, type(e).__name__
    finally:
        executor.shutdown(wait=False)
    return True, round((time.perf_counter() - started) * 1000, 2), None


def seed_defaults(session: Session, admin_phone: str = "+27000000001", admin_name: str = "System Admin") -> dict:
    """Insert system categories and a first admin when missing."""
    created = {"categories": 0, "admin": False}

    for category_id, name in SYSTEM_CATEGORIES:
        if session.get(Category, category_id) is None:
            session.add(Category(id=category_id, name=name, is_system=True))
            created["categories"] += 1

    if session.query(User).filter(User.role == "Admin").count() == 0:
        session.add(User(phone_number=admin_phone, name=admin_name, role="Admin"))
        created["admin"] = True

    session.commit()
    return created
