# ---------------------------------------------------------------------
# ORM models for the workload dashboard
# ---------------------------------------------------------------------
from __future__ import annotations

import datetime as dt
import secrets
import string

from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Index, String, Text, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

USER_ROLES = ("Teacher", "Admin", "Maintenance", "Support Staff")
ACTIVITY_STATUSES = ("Unassigned", "Open", "In Progress", "Resolved")
ASSIGNMENT_TYPES = ("primary", "secondary", "observer")
ASSIGNMENT_STATUSES = ("active", "inactive", "completed")

UNPLANNED_CATEGORY_ID = "unplanned"

_CUID_ALPHABET = string.ascii_lowercase + string.digits


def new_cuid() -> str:
    """Collision-resistant id shaped like a CUID: 'c' + 24 lowercase alphanumerics."""
    return "c" + "".join(secrets.choice(_CUID_ALPHABET) for _ in range(24))


def utcnow() -> dt.datetime:
    # Stored naive, always UTC.
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def iso(value: dt.datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


class User(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_cuid)
    phone_number = Column(String(16), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    role = Column(String(32), nullable=False)  # Teacher | Admin | Maintenance | Support Staff


class Category(Base):
    __tablename__ = "categories"

    id = Column(String(32), primary_key=True, default=new_cuid)
    name = Column(String(50), unique=True, nullable=False)
    is_system = Column(Boolean, default=False, nullable=False)


class Activity(Base):
    __tablename__ = "activities"

    id = Column(String(32), primary_key=True, default=new_cuid)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    category_id = Column(String(32), ForeignKey("categories.id"), nullable=False, index=True)
    subcategory = Column(String(100), nullable=False)
    location = Column(String(100), nullable=False)
    timestamp = Column(DateTime, default=utcnow, nullable=False)
    notes = Column(Text, nullable=True)
    photo_url = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    status = Column(String(16), default="Unassigned", nullable=False)
    assigned_to_user_id = Column(
        String(32), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    assignment_instructions = Column(Text, nullable=True)
    resolution_notes = Column(Text, nullable=True)

    user = relationship("User", foreign_keys=[user_id])
    category = relationship("Category")
    assigned_to = relationship("User", foreign_keys=[assigned_to_user_id])
    updates = relationship(
        "ActivityUpdate",
        back_populates="activity",
        order_by="ActivityUpdate.timestamp",
        cascade="all, delete-orphan",
    )
    assignments = relationship(
        "ActivityAssignment",
        back_populates="activity",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_activities_timestamp", "timestamp"),
        Index("ix_activities_status", "status"),
    )


class ActivityUpdate(Base):
    __tablename__ = "activity_updates"

    id = Column(String(32), primary_key=True, default=new_cuid)
    activity_id = Column(
        String(32), ForeignKey("activities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    timestamp = Column(DateTime, default=utcnow, nullable=False)
    notes = Column(Text, nullable=False)
    photo_url = Column(Text, nullable=True)
    author_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    status_context = Column(String(16), nullable=True)
    update_type = Column(String(32), default="progress", nullable=False)

    activity = relationship("Activity", back_populates="updates")
    author = relationship("User")


class ActivityAssignment(Base):
    __tablename__ = "activity_assignments"

    id = Column(String(32), primary_key=True, default=new_cuid)
    activity_id = Column(
        String(32), ForeignKey("activities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_at = Column(DateTime, default=utcnow, nullable=False)
    assigned_by = Column(String(32), ForeignKey("users.id"), nullable=False)
    assignment_type = Column(String(16), default="secondary", nullable=False)  # primary | secondary | observer
    status = Column(String(16), default="active", nullable=False)  # active | inactive | completed
    role_instructions = Column(String(500), nullable=True)
    receive_notifications = Column(Boolean, default=True, nullable=False)

    activity = relationship("Activity", back_populates="assignments")
    assigned_user = relationship("User", foreign_keys=[user_id])
    assigned_by_user = relationship("User", foreign_keys=[assigned_by])

    __table_args__ = (
        UniqueConstraint("activity_id", "user_id", name="unique_activity_user_assignment"),
    )
