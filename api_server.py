"""
FastAPI backend for the Workload Insights dashboard.

Serves activity, assignment, user and category CRUD over SQLAlchemy, pushes
change notifications over Server-Sent Events, and relays AI chat about the
workload data. Sync routes run in the thread pool; broadcasts hop back to the
event loop inside the publisher.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple, Type

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import config
from ai_providers import (
    ANALYSIS_SCHEMA,
    CHAT_SYSTEM_INSTRUCTION,
    INITIAL_SUMMARY_MESSAGE,
    build_analysis_prompt,
    configured_providers,
    default_provider_name,
    provider_catalog,
    provider_from_request,
)
from database import (
    UNPLANNED_CATEGORY_ID,
    Activity,
    ActivityAssignment,
    ActivityUpdate,
    Category,
    User,
    activity_page,
    get_db,
    health_check,
    load_snapshot,
    serialize_activity,
    serialize_assignment,
    serialize_category,
    serialize_user,
    with_db,
    with_db_critical,
)
from services import (
    SSE_HEADERS,
    ChatRelay,
    calculate_user_workloads,
    collect,
    event_publisher,
    get_workload_insights,
    presence_service,
    serialize_for_ai,
)
from utils import (
    create_request_context,
    extract_safe_user_id,
    get_audit_logger,
    health_monitor,
    log_health_check,
    log_secure_error,
    log_secure_info,
)
from utils.secure_logger import CUID_PATTERN

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

PHONE_PATTERN = r"^\+27[0-9]{9}$"
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 50
MAX_LIMIT = 100
AI_FAILURE_MESSAGE = "Failed to communicate with AI."

ActivityStatus = Literal["Unassigned", "Open", "In Progress", "Resolved"]
UserRole = Literal["Teacher", "Admin", "Maintenance", "Support Staff"]
AssignmentType = Literal["primary", "secondary", "observer"]
AssignmentStatus = Literal["active", "inactive", "completed"]


async def _maintenance_loop() -> None:
    while True:
        await asyncio.sleep(config.SSE_CLEANUP_SECONDS)
        try:
            event_publisher.cleanup_stale()
            presence_service.cleanup_stale()
        except Exception as e:
            logger.error(f"Background cleanup failed: {type(e).__name__}: {e}")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    task = asyncio.create_task(_maintenance_loop())
    logger.info("Workload Insights API started")
    try:
        yield
    finally:
        task.cancel()
        closed = event_publisher.close_all()
        logger.info(f"Workload Insights API stopped ({closed} event streams closed)")


app = FastAPI(title="Workload Insights API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request models

class HealthzResponse(BaseModel):
    status: Literal["ok"]


class ActivityCreate(BaseModel):
    user_id: str = Field(min_length=1)
    category_id: str = Field(min_length=1)
    subcategory: str = Field(min_length=1, max_length=100)
    location: str = Field(min_length=1, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=1000)
    photo_url: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    status: Optional[ActivityStatus] = None
    assigned_to_user_id: Optional[str] = None


class ActivityFullUpdate(BaseModel):
    user_id: Optional[str] = Field(default=None, min_length=1)
    category_id: Optional[str] = Field(default=None, min_length=1)
    subcategory: Optional[str] = Field(default=None, min_length=1, max_length=100)
    location: Optional[str] = Field(default=None, min_length=1, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=1000)
    photo_url: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    # Optional means "may be omitted"; these columns are NOT NULL.
    @field_validator("user_id", "category_id", "subcategory", "location")
    @classmethod
    def _not_null(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("may not be null")
        return value


class ActivityStatusUpdate(BaseModel):
    status: Optional[ActivityStatus] = None
    resolutionNotes: Optional[str] = Field(default=None, max_length=1000)
    instructions: Optional[str] = Field(default=None, max_length=500)
    assignToUserId: Optional[str] = None


class ActivityChangeRequest(BaseModel):
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class UpdateCreate(BaseModel):
    notes: str = Field(min_length=1, max_length=1000)
    author_id: str = Field(min_length=1)
    photo_url: Optional[str] = None
    status_context: Optional[ActivityStatus] = None
    update_type: str = Field(default="progress", min_length=1, max_length=32)


class AssignmentCreate(BaseModel):
    user_id: str = Field(min_length=1)
    assigned_by: str = Field(min_length=1)
    assignment_type: AssignmentType = "secondary"
    role_instructions: Optional[str] = Field(default=None, max_length=500)
    receive_notifications: bool = True


class AssignmentChange(BaseModel):
    assignment_type: Optional[AssignmentType] = None
    status: Optional[AssignmentStatus] = None
    role_instructions: Optional[str] = Field(default=None, max_length=500)
    receive_notifications: Optional[bool] = None


class UserCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    phone_number: str = Field(pattern=PHONE_PATTERN)
    role: UserRole


class UserChange(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone_number: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    role: Optional[UserRole] = None


class CategoryCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=50)
    isSystem: bool = False


class PresenceRequest(BaseModel):
    userId: str = Field(min_length=1)
    userName: str = Field(min_length=1, max_length=100)
    activityId: Optional[str] = None
    status: Literal["active", "away", "offline"] = "active"


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatContext(BaseModel):
    activities: List[Dict[str, Any]] = Field(default_factory=list)
    users: List[Dict[str, Any]] = Field(default_factory=list)
    allCategories: List[Dict[str, Any]] = Field(default_factory=list)


class ChatRequest(BaseModel):
    history: List[ChatMessage] = Field(default_factory=list)
    message: str = Field(min_length=1)
    context: Optional[ChatContext] = None
    stream: bool = True


# Error mapping

def _validation_message(errors: List[Dict[str, Any]]) -> str:
    parts = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        parts.append(f"{'.'.join(loc) or 'request'}: {error.get('msg')}")
    return "Validation failed: " + "; ".join(parts)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": _validation_message(exc.errors())})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    context = {**create_request_context(request.url.path, request.method), "statusCode": 500}
    log_secure_error("Unhandled error while processing request", context, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


# Helpers

def _validate(model: Type[BaseModel], payload: Dict[str, Any]) -> BaseModel:
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=_validation_message(e.errors())) from e


def _to_int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value not in (None, "") else default
    except ValueError:
        return default


def _page_params(page: Optional[str], limit: Optional[str]) -> Tuple[int, int]:
    page_number = max(_to_int(page, DEFAULT_PAGE), 1)
    page_size = min(max(_to_int(limit, DEFAULT_LIMIT), 1), MAX_LIMIT)
    return page_number, page_size


def _require_cuid(value: str, label: str) -> None:
    if not CUID_PATTERN.match(value or ""):
        raise HTTPException(status_code=400, detail=f"Invalid {label} ID format. Must be a valid CUID.")


def _get_or_404(db: Session, model: Type[Any], row_id: str, label: str) -> Any:
    row = with_db(lambda session: session.get(model, row_id), session=db)
    if row is None:
        raise HTTPException(status_code=404, detail=f"{label} '{row_id}' not found")
    return row


def _ensure_exists(session: Session, model: Type[Any], row_id: Optional[str], label: str) -> None:
    if row_id is not None and session.get(model, row_id) is None:
        raise HTTPException(status_code=404, detail=f"{label} '{row_id}' not found")


def _context(operation: str, method: str, status_code: int, **ids: Optional[str]) -> Dict[str, Any]:
    return {**create_request_context(operation, method, **ids), "statusCode": status_code}


def _apply_status_update(activity: Activity, data: ActivityStatusUpdate) -> Dict[str, Any]:
    """Mutate activity per a status_update payload and return the changed columns."""
    sent = data.model_fields_set
    changes: Dict[str, Any] = {}

    if data.status:
        changes["status"] = data.status
        if activity.status == "Resolved" and data.status == "Open":
            changes["resolution_notes"] = None
    if "resolutionNotes" in sent:
        changes["resolution_notes"] = data.resolutionNotes
    if "instructions" in sent:
        changes["assignment_instructions"] = data.instructions
    if "assignToUserId" in sent:
        changes["assigned_to_user_id"] = data.assignToUserId
        if activity.status == "Unassigned":
            changes["status"] = "Open"
    if data.status == "Unassigned":
        changes["assigned_to_user_id"] = None
        changes["assignment_instructions"] = None

    for column, value in changes.items():
        setattr(activity, column, value)
    return changes


def _ai_dataset(db: Session, context: Optional[ChatContext]) -> Tuple[List[Dict[str, Any]], ...]:
    if context is not None and context.activities:
        return context.activities, context.users, context.allCategories
    snapshot = with_db(load_snapshot, session=db)
    return snapshot["activities"], snapshot["users"], snapshot["categories"]


# Health

@app.get("/healthz", response_model=HealthzResponse)
def healthz() -> HealthzResponse:
    return HealthzResponse(status="ok")


@app.get("/api/health")
def health() -> JSONResponse:
    ok, latency_ms, error = health_check()
    context = create_request_context("health_check", "GET")
    log_health_check("database", "healthy" if ok else "unhealthy", context, {"latencyMs": latency_ms})

    payload = {
        "status": "healthy" if ok else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "database": {"connected": ok, "latencyMs": latency_ms, "error": error},
        "environment": config.APP_ENV,
        "aiProviders": {
            "configured": configured_providers(),
            "status": health_monitor.get_all_status(),
        },
        "events": event_publisher.stats(),
    }
    return JSONResponse(status_code=200 if ok else 503, content=payload)


# Activities

@app.get("/api/activities")
def list_activities(
    page: Optional[str] = Query(default=None),
    limit: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    page_number, page_size = _page_params(page, limit)
    result = with_db(lambda session: activity_page(session, page_number, page_size), session=db)
    log_secure_info(
        "Activities fetched successfully",
        {**_context("fetch_activities", "GET", 200), "count": len(result["activities"])},
    )
    return result


@app.post("/api/activities", status_code=201)
def create_activity(body: ActivityCreate, db: Session = Depends(get_db)) -> Dict[str, Any]:
    def _create(session: Session) -> Activity:
        _ensure_exists(session, User, body.user_id, "User")
        _ensure_exists(session, Category, body.category_id, "Category")
        _ensure_exists(session, User, body.assigned_to_user_id, "User")
        activity = Activity(**body.model_dump(exclude_none=True))
        if activity.status is None:
            activity.status = "Unassigned"
        session.add(activity)
        session.commit()
        return activity

    activity = with_db_critical(_create, session=db)
    payload = serialize_activity(activity)

    log_secure_info(
        "Activity created successfully",
        _context("create_activity", "POST", 201, user_id=extract_safe_user_id(body.model_dump()),
                 activity_id=activity.id, category_id=activity.category_id),
    )
    get_audit_logger().log_activity_created(activity.id, activity.category_id)
    event_publisher.broadcast_activity_created(db, activity.id)
    return payload


@app.get("/api/activities/{activity_id}")
def get_activity(activity_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    activity = _get_or_404(db, Activity, activity_id, "Activity")
    return serialize_activity(activity)


@app.put("/api/activities/{activity_id}")
def update_activity(activity_id: str, body: ActivityChangeRequest, db: Session = Depends(get_db)) -> Dict[str, Any]:
    if body.type == "full_update":
        data = _validate(ActivityFullUpdate, body.payload)
    elif body.type == "status_update":
        data = _validate(ActivityStatusUpdate, body.payload)
    else:
        raise HTTPException(status_code=400, detail="Invalid update type")

    def _update(session: Session) -> Tuple[Activity, Optional[str], Dict[str, Any]]:
        activity = session.get(Activity, activity_id)
        if activity is None:
            raise HTTPException(status_code=404, detail=f"Activity '{activity_id}' not found")
        previous_assignee = activity.assigned_to_user_id

        if isinstance(data, ActivityFullUpdate):
            changes = data.model_dump(exclude_unset=True)
            _ensure_exists(session, User, changes.get("user_id"), "User")
            _ensure_exists(session, Category, changes.get("category_id"), "Category")
            for column, value in changes.items():
                setattr(activity, column, value)
        else:
            _ensure_exists(session, User, data.assignToUserId, "User")
            changes = _apply_status_update(activity, data)

        session.commit()
        return activity, previous_assignee, changes

    activity, previous_assignee, changes = with_db_critical(_update, session=db)

    assignee_changed = activity.assigned_to_user_id != previous_assignee
    if assignee_changed:
        update_type = "assignment"
    elif "status" in changes:
        update_type = "status"
    else:
        update_type = "general"

    payload = serialize_activity(activity)
    log_secure_info(
        "Activity updated successfully",
        _context("update_activity", "PUT", 200, activity_id=activity_id),
        {"updateType": update_type},
    )
    get_audit_logger().log_activity_updated(activity_id, update_type, changes)
    event_publisher.broadcast_activity_updated(db, activity_id, update_type)
    if assignee_changed:
        event_publisher.broadcast_assignment_changed(
            db, activity_id, previous_assignee, activity.assigned_to_user_id
        )
    return payload


@app.delete("/api/activities/{activity_id}", status_code=204)
def delete_activity(activity_id: str, db: Session = Depends(get_db)) -> Response:
    def _delete(session: Session) -> None:
        activity = session.get(Activity, activity_id)
        if activity is None:
            raise HTTPException(status_code=404, detail=f"Activity '{activity_id}' not found")
        session.delete(activity)
        session.commit()

    with_db_critical(_delete, session=db)
    log_secure_info("Activity deleted successfully", _context("delete_activity", "DELETE", 204, activity_id=activity_id))
    get_audit_logger().log_activity_deleted(activity_id)
    return Response(status_code=204)


@app.post("/api/activities/{activity_id}/updates", status_code=201)
def add_activity_update(activity_id: str, body: UpdateCreate, db: Session = Depends(get_db)) -> Dict[str, Any]:
    def _add(session: Session) -> Tuple[Activity, ActivityUpdate]:
        activity = session.get(Activity, activity_id)
        if activity is None:
            raise HTTPException(status_code=404, detail=f"Activity '{activity_id}' not found")
        _ensure_exists(session, User, body.author_id, "Author")
        update = ActivityUpdate(**body.model_dump())
        activity.updates.append(update)
        session.commit()
        return activity, update

    activity, update = with_db_critical(_add, session=db)
    payload = serialize_activity(activity)

    log_secure_info(
        "Activity update added successfully",
        _context("add_activity_update", "POST", 201, activity_id=activity_id),
    )
    get_audit_logger().log_update_added(activity_id, update.id, body.author_id)
    event_publisher.broadcast_activity_updated(db, activity_id, "status" if body.status_context else "general")
    return payload


# Assignments

def _assignment_or_404(session: Session, activity_id: str, assignment_id: str) -> ActivityAssignment:
    assignment = session.get(ActivityAssignment, assignment_id)
    if assignment is None or assignment.activity_id != activity_id:
        raise HTTPException(status_code=404, detail="Assignment not found")
    return assignment


@app.get("/api/activities/{activity_id}/assignments")
def list_assignments(activity_id: str, db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    _require_cuid(activity_id, "activity")

    def _list(session: Session) -> List[ActivityAssignment]:
        return (
            session.query(ActivityAssignment)
            .filter(ActivityAssignment.activity_id == activity_id)
            .order_by(ActivityAssignment.assignment_type.asc(), ActivityAssignment.assigned_at.desc())
            .all()
        )

    assignments = with_db(_list, session=db)
    log_secure_info(
        "Activity assignments retrieved successfully",
        {**_context("get_activity_assignments", "GET", 200, activity_id=activity_id), "count": len(assignments)},
    )
    return [serialize_assignment(a) for a in assignments]


@app.post("/api/activities/{activity_id}/assignments", status_code=201)
def create_assignment(activity_id: str, body: AssignmentCreate, db: Session = Depends(get_db)) -> Dict[str, Any]:
    _require_cuid(activity_id, "activity")

    def _create(session: Session) -> ActivityAssignment:
        _ensure_exists(session, Activity, activity_id, "Activity")
        _ensure_exists(session, User, body.user_id, "User")
        _ensure_exists(session, User, body.assigned_by, "User")
        existing = (
            session.query(ActivityAssignment)
            .filter(ActivityAssignment.activity_id == activity_id, ActivityAssignment.user_id == body.user_id)
            .first()
        )
        if existing is not None:
            raise HTTPException(status_code=409, detail="User is already assigned to this activity")
        assignment = ActivityAssignment(activity_id=activity_id, **body.model_dump())
        session.add(assignment)
        try:
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise HTTPException(status_code=409, detail="User is already assigned to this activity") from e
        return assignment

    assignment = with_db_critical(_create, session=db)
    payload = serialize_assignment(assignment)

    log_secure_info(
        "Activity assignment created successfully",
        _context("create_activity_assignment", "POST", 201,
                 user_id=extract_safe_user_id(body.model_dump()), activity_id=activity_id),
    )
    get_audit_logger().log_assignment_changed(activity_id, "added", body.user_id)
    event_publisher.broadcast_assignment_changed(db, activity_id, None, body.user_id)
    return payload


@app.get("/api/activities/{activity_id}/assignments/{assignment_id}")
def get_assignment(activity_id: str, assignment_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    _require_cuid(activity_id, "activity")
    _require_cuid(assignment_id, "assignment")
    assignment = with_db(lambda session: _assignment_or_404(session, activity_id, assignment_id), session=db)
    return serialize_assignment(assignment)


@app.put("/api/activities/{activity_id}/assignments/{assignment_id}")
def update_assignment(
    activity_id: str, assignment_id: str, body: AssignmentChange, db: Session = Depends(get_db)
) -> Dict[str, Any]:
    _require_cuid(activity_id, "activity")
    _require_cuid(assignment_id, "assignment")
    changes = body.model_dump(exclude_unset=True)

    def _update(session: Session) -> ActivityAssignment:
        assignment = _assignment_or_404(session, activity_id, assignment_id)
        for column, value in changes.items():
            if value is None and column in ("assignment_type", "status", "receive_notifications"):
                continue
            setattr(assignment, column, value)
        session.commit()
        return assignment

    assignment = with_db_critical(_update, session=db)
    payload = serialize_assignment(assignment)

    log_secure_info(
        "Activity assignment updated successfully",
        _context("update_activity_assignment", "PUT", 200, activity_id=activity_id),
    )
    get_audit_logger().log_assignment_changed(activity_id, "updated", assignment.user_id)
    event_publisher.broadcast_assignment_changed(db, activity_id, assignment.user_id, assignment.user_id)
    return payload


@app.delete("/api/activities/{activity_id}/assignments/{assignment_id}", status_code=204)
def delete_assignment(activity_id: str, assignment_id: str, db: Session = Depends(get_db)) -> Response:
    _require_cuid(activity_id, "activity")
    _require_cuid(assignment_id, "assignment")

    def _delete(session: Session) -> str:
        assignment = _assignment_or_404(session, activity_id, assignment_id)
        user_id = assignment.user_id
        session.delete(assignment)
        session.commit()
        return user_id

    removed_user_id = with_db_critical(_delete, session=db)
    log_secure_info(
        "Activity assignment removed successfully",
        _context("delete_activity_assignment", "DELETE", 204, activity_id=activity_id),
    )
    get_audit_logger().log_assignment_changed(activity_id, "removed", removed_user_id)
    event_publisher.broadcast_assignment_changed(db, activity_id, removed_user_id, None)
    return Response(status_code=204)


# Users

@app.get("/api/users")
def list_users(db: Session = Depends(get_db)) -> Dict[str, Any]:
    users = with_db(lambda session: session.query(User).order_by(User.name).all(), session=db)
    return {"users": [serialize_user(u) for u in users]}


@app.post("/api/users", status_code=201)
def create_user(body: UserCreate, db: Session = Depends(get_db)) -> Dict[str, Any]:
    def _create(session: Session) -> User:
        if session.query(User).filter(User.phone_number == body.phone_number).first() is not None:
            raise HTTPException(status_code=409, detail="A user with this phone number already exists.")
        user = User(**body.model_dump())
        session.add(user)
        try:
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise HTTPException(status_code=409, detail="A user with this phone number already exists.") from e
        return user

    user = with_db_critical(_create, session=db)
    log_secure_info("User created successfully", _context("create_user", "POST", 201, user_id=user.id))
    get_audit_logger().log_user_changed(user.id, "created", {"role": user.role})
    return serialize_user(user)


@app.put("/api/users/{user_id}")
def update_user(user_id: str, body: UserChange, db: Session = Depends(get_db)) -> Dict[str, Any]:
    _require_cuid(user_id, "user")
    changes = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}

    def _update(session: Session) -> User:
        user = session.get(User, user_id)
        if user is None:
            raise HTTPException(status_code=404, detail=f"User '{user_id}' not found")
        phone = changes.get("phone_number")
        if phone and phone != user.phone_number:
            clash = session.query(User).filter(User.phone_number == phone, User.id != user_id).first()
            if clash is not None:
                raise HTTPException(status_code=409, detail="A user with this phone number already exists.")
        for column, value in changes.items():
            setattr(user, column, value)
        session.commit()
        return user

    user = with_db_critical(_update, session=db)
    log_secure_info("User updated successfully", _context("update_user", "PUT", 200, user_id=user_id))
    get_audit_logger().log_user_changed(user_id, "updated", changes)
    return serialize_user(user)


@app.delete("/api/users/{user_id}")
def delete_user(user_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    _require_cuid(user_id, "user")

    def _delete(session: Session) -> Tuple[str, List[str]]:
        user = session.get(User, user_id)
        if user is None:
            raise HTTPException(status_code=404, detail=f"User '{user_id}' not found")

        admin_count = session.query(User).filter(User.role == "Admin").count()
        if user.role == "Admin" and admin_count <= 1:
            raise HTTPException(status_code=403, detail="Cannot delete the last administrative user.")

        fallback = (
            session.query(User)
            .filter(User.role == "Admin", User.id != user_id)
            .order_by(User.name)
            .first()
        )
        if fallback is None:
            raise HTTPException(
                status_code=500,
                detail="No admin user available to reassign activities. Cannot delete user.",
            )

        logged = [row.id for row in session.query(Activity.id).filter(Activity.user_id == user_id)]
        session.query(Activity).filter(Activity.user_id == user_id).update(
            {Activity.user_id: fallback.id}, synchronize_session=False
        )
        session.query(Activity).filter(Activity.assigned_to_user_id == user_id).update(
            {Activity.assigned_to_user_id: fallback.id}, synchronize_session=False
        )
        session.query(ActivityUpdate).filter(ActivityUpdate.author_id == user_id).delete(synchronize_session=False)
        session.query(ActivityAssignment).filter(ActivityAssignment.user_id == user_id).delete(
            synchronize_session=False
        )
        session.query(ActivityAssignment).filter(ActivityAssignment.assigned_by == user_id).update(
            {ActivityAssignment.assigned_by: fallback.id}, synchronize_session=False
        )
        session.delete(user)
        session.commit()
        return fallback.id, logged

    fallback_id, reassigned = with_db_critical(_delete, session=db)
    log_secure_info(
        "User deleted successfully",
        _context("delete_user", "DELETE", 200, user_id=user_id),
        {"activitiesReassigned": len(reassigned)},
    )
    get_audit_logger().log_user_changed(user_id, "deleted", {"reassigned_to": fallback_id, "activities": len(reassigned)})
    return {
        "message": "User deleted successfully",
        "activitiesToReassign": [{"id": activity_id, "user_id": fallback_id} for activity_id in reassigned],
    }


# Categories

@app.get("/api/categories")
def list_categories(db: Session = Depends(get_db)) -> Dict[str, Any]:
    categories = with_db(lambda session: session.query(Category).order_by(Category.name).all(), session=db)
    return {"categories": [serialize_category(c) for c in categories]}


@app.post("/api/categories", status_code=201)
def create_category(body: CategoryCreate, db: Session = Depends(get_db)) -> Dict[str, Any]:
    def _create(session: Session) -> Category:
        if session.query(Category).filter(Category.name == body.name).first() is not None:
            raise HTTPException(status_code=409, detail="A category with this name already exists.")
        category = Category(name=body.name, is_system=body.isSystem)
        session.add(category)
        try:
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise HTTPException(status_code=409, detail="A category with this name already exists.") from e
        return category

    category = with_db_critical(_create, session=db)
    log_secure_info("Category created successfully", _context("create_category", "POST", 201, category_id=category.id))
    get_audit_logger().log_category_changed(category.id, "created", {"name": category.name})
    return serialize_category(category)


@app.delete("/api/categories/{category_id}")
def delete_category(category_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    def _delete(session: Session) -> List[str]:
        category = session.get(Category, category_id)
        if category is None:
            raise HTTPException(status_code=404, detail="Category not found.")
        if category.is_system:
            raise HTTPException(status_code=403, detail="System categories cannot be deleted.")
        if session.get(Category, UNPLANNED_CATEGORY_ID) is None:
            session.add(Category(id=UNPLANNED_CATEGORY_ID, name="Unplanned Incident", is_system=True))
            session.flush()

        moved = [row.id for row in session.query(Activity.id).filter(Activity.category_id == category_id)]
        session.query(Activity).filter(Activity.category_id == category_id).update(
            {Activity.category_id: UNPLANNED_CATEGORY_ID}, synchronize_session=False
        )
        session.delete(category)
        session.commit()
        return moved

    moved = with_db_critical(_delete, session=db)
    log_secure_info(
        "Category deleted successfully",
        _context("delete_category", "DELETE", 200, category_id=category_id),
        {"activitiesMoved": len(moved)},
    )
    get_audit_logger().log_category_changed(category_id, "deleted", {"activities": len(moved)})
    return {
        "message": "Category deleted successfully",
        "activitiesToUpdate": [{"id": activity_id, "category_id": UNPLANNED_CATEGORY_ID} for activity_id in moved],
    }


# Dashboard bundle

@app.get("/api/data")
def dashboard_data(
    page: Optional[str] = Query(default=None),
    limit: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    page_number, page_size = _page_params(page, limit)

    def _load(session: Session) -> Dict[str, Any]:
        users = session.query(User).order_by(User.name).all()
        categories = session.query(Category).order_by(Category.name).all()
        bundle = activity_page(session, page_number, page_size)
        return {
            "users": [serialize_user(u) for u in users],
            "categories": [serialize_category(c) for c in categories],
            **bundle,
        }

    return with_db(_load, session=db)


# Events

@app.get("/api/events")
async def events(request: Request) -> StreamingResponse:
    connection = event_publisher.register()
    return StreamingResponse(
        event_publisher.stream(connection, request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@app.get("/api/events/stats")
def events_stats() -> Dict[str, Any]:
    return event_publisher.stats()


# Presence

@app.post("/api/presence")
def update_presence(body: PresenceRequest) -> Dict[str, Any]:
    if body.status == "active":
        presence = presence_service.update_presence(body.userId, body.userName, body.activityId)
    elif body.status == "away":
        presence = presence_service.mark_away(body.userId)
    else:
        presence = presence_service.mark_offline(body.userId)
    if presence is None:
        raise HTTPException(status_code=404, detail=f"No presence recorded for user '{body.userId}'")
    return {"presence": presence}


@app.get("/api/presence/activities/{activity_id}")
def activity_presence(
    activity_id: str,
    exclude_user_id: Optional[str] = Query(default=None, alias="excludeUserId"),
) -> Dict[str, Any]:
    return presence_service.get_activity_presence(activity_id, exclude_user_id)


@app.get("/api/presence/stats")
def presence_stats() -> Dict[str, Any]:
    return {**presence_service.stats(), "users": presence_service.get_all_active_users()}


# AI

@app.get("/api/ai/providers")
def ai_providers() -> Dict[str, Any]:
    return {
        "providers": provider_catalog(),
        "configured": configured_providers(),
        "default": default_provider_name(),
    }


@app.post("/api/ai/chat")
def ai_chat(
    body: ChatRequest,
    provider: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    ai = provider_from_request(provider)
    context = create_request_context("ai_chat", "POST")

    if body.message == INITIAL_SUMMARY_MESSAGE:
        activities, users, categories = _ai_dataset(db, body.context)
        prompt = build_analysis_prompt(serialize_for_ai(activities, users, categories))
        try:
            parsed = ai.generate_structured_content(prompt, ANALYSIS_SCHEMA)
        except Exception as e:
            log_secure_error("AI initial summary failed", {**context, "statusCode": 500}, e, {"provider": ai.name})
            raise HTTPException(status_code=500, detail=AI_FAILURE_MESSAGE) from e
        history = [
            {"role": "user", "content": prompt},
            {"role": "assistant", "content": parsed["analysis"]},
        ]
        return {"analysis": parsed["analysis"], "suggestions": parsed.get("suggestions", []), "history": history}

    messages = [m.model_dump() for m in body.history] + [{"role": "user", "content": body.message}]
    deltas = ai.generate_content_stream(messages, system_instruction=CHAT_SYSTEM_INSTRUCTION)

    if body.stream:
        log_secure_info("AI chat stream started", context, {"provider": ai.name, "historyLength": len(body.history)})
        return StreamingResponse(ChatRelay().relay_sse(deltas), media_type="text/event-stream", headers=SSE_HEADERS)

    try:
        content = collect(deltas)
    except Exception as e:
        log_secure_error("AI chat failed", {**context, "statusCode": 500}, e, {"provider": ai.name})
        raise HTTPException(status_code=500, detail=AI_FAILURE_MESSAGE) from e
    return {"content": content, "provider": ai.name}


# Analytics

@app.get("/api/analytics/workload")
def workload_analytics(days: int = Query(default=7, ge=1, le=365), db: Session = Depends(get_db)) -> Dict[str, Any]:
    snapshot = with_db(load_snapshot, session=db)
    now = datetime.now(timezone.utc)
    result = calculate_user_workloads(
        snapshot["activities"],
        snapshot["users"],
        snapshot["categories"],
        date_range=(now - timedelta(days=days), now),
        now=now,
    )
    result["insights"] = get_workload_insights(result["userWorkloads"], result["teamSummary"])
    return result
