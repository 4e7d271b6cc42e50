# ---------------------------------------------------------------------
# JSON shapes shared by the API, reports and the CLI
# ---------------------------------------------------------------------
from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy.orm import Session, selectinload

from .models import Activity, ActivityAssignment, ActivityUpdate, Category, User, iso


def serialize_user(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "phone_number": user.phone_number,
        "role": user.role,
    }


def serialize_category(category: Category) -> Dict[str, Any]:
    return {"id": category.id, "name": category.name, "isSystem": bool(category.is_system)}


def serialize_update(update: ActivityUpdate) -> Dict[str, Any]:
    return {
        "id": update.id,
        "activity_id": update.activity_id,
        "timestamp": iso(update.timestamp),
        "notes": update.notes,
        "photo_url": update.photo_url,
        "author_id": update.author_id,
        "status_context": update.status_context,
        "update_type": update.update_type,
    }


def serialize_activity(activity: Activity, include_updates: bool = True) -> Dict[str, Any]:
    payload = {
        "id": activity.id,
        "user_id": activity.user_id,
        "category_id": activity.category_id,
        "subcategory": activity.subcategory,
        "location": activity.location,
        "timestamp": iso(activity.timestamp),
        "notes": activity.notes,
        "photo_url": activity.photo_url,
        "latitude": activity.latitude,
        "longitude": activity.longitude,
        "status": activity.status,
        "assigned_to_user_id": activity.assigned_to_user_id,
        "assignment_instructions": activity.assignment_instructions,
        "resolution_notes": activity.resolution_notes,
    }
    payload["updates"] = [serialize_update(u) for u in activity.updates] if include_updates else []
    return payload


def serialize_assignment(assignment: ActivityAssignment) -> Dict[str, Any]:
    assigned_user = assignment.assigned_user
    assigned_by = assignment.assigned_by_user
    return {
        "id": assignment.id,
        "activity_id": assignment.activity_id,
        "user_id": assignment.user_id,
        "assigned_at": iso(assignment.assigned_at),
        "assigned_by": assignment.assigned_by,
        "assignment_type": assignment.assignment_type,
        "status": assignment.status,
        "role_instructions": assignment.role_instructions,
        "receive_notifications": bool(assignment.receive_notifications),
        "assigned_user_name": assigned_user.name if assigned_user else "",
        "assigned_user_role": assigned_user.role if assigned_user else "",
        "assigned_by_name": assigned_by.name if assigned_by else "",
    }


def load_snapshot(session: Session) -> Dict[str, List[Dict[str, Any]]]:
    """Every activity, user and category as plain dicts (no update history)."""
    activities = session.query(Activity).order_by(Activity.timestamp.desc()).all()
    users = session.query(User).order_by(User.name).all()
    categories = session.query(Category).order_by(Category.name).all()
    return {
        "activities": [serialize_activity(a, include_updates=False) for a in activities],
        "users": [serialize_user(u) for u in users],
        "categories": [serialize_category(c) for c in categories],
    }


def activity_page(session: Session, page: int, limit: int) -> Dict[str, Any]:
    """Newest-first page of activities with their updates."""
    total = session.query(Activity).count()
    rows = (
        session.query(Activity)
        .options(selectinload(Activity.updates))
        .order_by(Activity.timestamp.desc(), Activity.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    total_pages = (total + limit - 1) // limit if total else 0
    return {
        "activities": [serialize_activity(a) for a in rows],
        "pagination": {
            "currentPage": page,
            "totalPages": total_pages,
            "totalRecords": total,
            "pageSize": limit,
            "hasNextPage": page < total_pages,
            "hasPreviousPage": page > 1,
        },
    }
