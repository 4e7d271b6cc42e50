"""
Shared fixtures. The environment is pinned before any project module is
imported: config reads it once at import time.
"""
import os
import tempfile
from datetime import timedelta
from pathlib import Path

_TMP = Path(tempfile.mkdtemp(prefix="workload-tests-"))
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ["AUDIT_LOG_DIR"] = str(_TMP / "audit")
os.environ["REPORTS_DIR"] = str(_TMP / "reports")
os.environ["AI_PROVIDER"] = ""
for _provider in ("CLAUDE", "GEMINI", "DEEPSEEK", "KIMI"):
    # Empty values stop a developer .env from leaking real keys in
    os.environ[f"{_provider}_API_KEY"] = ""

import pytest
from fastapi.testclient import TestClient

import api_server
from database import Activity, ActivityUpdate, Category, User, drop_db, init_db, new_session, seed_defaults, utcnow
from services import event_publisher, presence_service
from utils import AuditLogger, health_monitor, set_audit_logger


@pytest.fixture(autouse=True)
def fresh_state(tmp_path):
    init_db()
    set_audit_logger(AuditLogger(log_dir=tmp_path / "audit"))
    health_monitor.reset()
    presence_service.reset()
    yield
    event_publisher.close_all()
    drop_db()
    set_audit_logger(None)


@pytest.fixture
def client():
    return TestClient(api_server.app)


@pytest.fixture
def db():
    session = new_session()
    yield session
    session.close()


@pytest.fixture
def admin(db):
    seed_defaults(db)
    return db.query(User).filter(User.role == "Admin").one()


def make_user(db, name="Thandi Mokoena", phone="+27821234567", role="Teacher"):
    user = User(name=name, phone_number=phone, role=role)
    db.add(user)
    db.commit()
    return user


def make_category(db, name="Sports", is_system=False):
    category = Category(name=name, is_system=is_system)
    db.add(category)
    db.commit()
    return category


def make_activity(db, user, category_id="maintenance", hours_ago=0, **fields):
    values = {
        "subcategory": "Broken window",
        "location": "Classroom A",
        "timestamp": utcnow() - timedelta(hours=hours_ago),
    }
    values.update(fields)
    activity = Activity(user_id=user.id, category_id=category_id, **values)
    db.add(activity)
    db.commit()
    return activity


def make_update(db, activity, author, notes="Checked the frame"):
    update = ActivityUpdate(activity_id=activity.id, author_id=author.id, notes=notes)
    db.add(update)
    db.commit()
    return update
