"""
Server-Sent Events broadcast registry.

A process-wide map of connection id -> SSEConnection. Each connection owns an
asyncio.Queue drained by its streaming response; producers may broadcast from
any thread (sync route handlers run in the thread pool), so frames are handed
to the owning event loop with call_soon_threadsafe.

Delivery is best effort: no ordering across connections, no replay, nothing
survives a restart. Clients refetch on every event.
"""
from __future__ import annotations

import asyncio
import json
import logging
import random
import string
import threading
import time
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Literal, Optional

from sqlalchemy.orm import Session

import config
from database import Activity, ActivityUpdate, iso, with_db
from utils.secure_logger import create_request_context, log_secure_error, log_secure_info

logger = logging.getLogger(__name__)

EventType = Literal["activity_created", "activity_updated", "assignment_changed", "presence_updated", "heartbeat"]
UpdateType = Literal["status", "assignment", "general"]

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _now_ms() -> int:
    return int(time.time() * 1000)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def make_event(event_type: EventType, data: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": event_type, "data": data, "timestamp": _now_ms()}


def format_sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, default=str)}\n\n"


def generate_connection_id() -> str:
    suffix = "".join(random.choice(string.ascii_lowercase + string.digits) for _ in range(9))
    return f"conn-{_now_ms()}-{suffix}"


class SSEConnection:
    """One open event stream."""

    def __init__(self, connection_id: str, loop: asyncio.AbstractEventLoop):
        self.id = connection_id
        self.loop = loop
        self.queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        self.created_at = time.time()
        self.last_sent_at: Optional[float] = None
        self.closed = False

    def age_seconds(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.time()) - self.created_at

    def send(self, frame: str) -> None:
        """Queue a frame; raises ConnectionError when the stream is gone."""
        if self.closed or self.loop.is_closed():
            raise ConnectionError(f"connection {self.id} is closed")
        self.loop.call_soon_threadsafe(self.queue.put_nowait, frame)
        self.last_sent_at = time.time()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if not self.loop.is_closed():
            # None tells the stream loop to finish.
            self.loop.call_soon_threadsafe(self.queue.put_nowait, None)


class EventPublisher:
    """Registry of live SSE connections plus typed broadcast helpers."""

    def __init__(self):
        self._connections: Dict[str, SSEConnection] = {}
        self._lock = threading.Lock()
        self.total_broadcasts = 0

    # Connection lifecycle

    def register(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> SSEConnection:
        """Open a connection; its first frame is a 'connected' heartbeat."""
        connection = SSEConnection(generate_connection_id(), loop or asyncio.get_running_loop())
        connection.queue.put_nowait(format_sse(make_event(
            "heartbeat", {"status": "connected", "connectionId": connection.id}
        )))
        with self._lock:
            self._connections[connection.id] = connection
        logger.info(f"SSE connection opened: {connection.id} ({self.connection_count()} open)")
        return connection

    def unregister(self, connection_id: str) -> None:
        with self._lock:
            connection = self._connections.pop(connection_id, None)
        if connection is not None:
            connection.closed = True
            logger.info(f"SSE connection closed: {connection_id}")

    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def has_connection(self, connection_id: str) -> bool:
        with self._lock:
            return connection_id in self._connections

    def cleanup_stale(self, max_age_seconds: Optional[float] = None, now: Optional[float] = None) -> List[str]:
        """Close connections older than max_age_seconds; clients reconnect."""
        max_age = max_age_seconds if max_age_seconds is not None else config.SSE_MAX_CONNECTION_AGE_SECONDS
        with self._lock:
            stale = [c for c in self._connections.values() if c.age_seconds(now) > max_age]
            for connection in stale:
                self._connections.pop(connection.id, None)
        for connection in stale:
            connection.close()
        if stale:
            logger.info(f"Closed {len(stale)} stale SSE connections")
        return [c.id for c in stale]

    def close_all(self) -> int:
        with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
        for connection in connections:
            connection.close()
        return len(connections)

    async def stream(
        self,
        connection: SSEConnection,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
        heartbeat_seconds: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """Yield frames for one connection until it is closed or the client leaves."""
        interval = heartbeat_seconds or config.SSE_HEARTBEAT_SECONDS
        try:
            while True:
                try:
                    frame = await asyncio.wait_for(connection.queue.get(), timeout=interval)
                except asyncio.TimeoutError:
                    if is_disconnected is not None and await is_disconnected():
                        break
                    frame = format_sse(make_event("heartbeat", {"status": "alive", "connectionId": connection.id}))
                if frame is None:
                    break
                yield frame
        finally:
            self.unregister(connection.id)

    # Broadcasting

    def broadcast(self, event: Dict[str, Any]) -> Dict[str, int]:
        """Write an event to every live connection, dropping broken ones."""
        frame = format_sse(event)
        with self._lock:
            connections = list(self._connections.values())

        delivered = 0
        broken: List[str] = []
        for connection in connections:
            try:
                connection.send(frame)
                delivered += 1
            except (ConnectionError, RuntimeError) as e:
                broken.append(connection.id)
                log_secure_error(
                    "Failed to broadcast event to SSE connection",
                    create_request_context("sse_broadcast", "POST"),
                    e,
                    {"connectionId": connection.id},
                )

        for connection_id in broken:
            self.unregister(connection_id)

        self.total_broadcasts += 1
        if connections:
            log_secure_info(
                "Event broadcast completed",
                create_request_context("broadcast_event", "POST"),
                {"eventType": event.get("type"), "successCount": delivered, "failCount": len(broken)},
            )
        return {"delivered": delivered, "failed": len(broken)}

    @staticmethod
    def _activity_summary(activity: Activity) -> Dict[str, Any]:
        return {
            "id": activity.id,
            "category": activity.category.name if activity.category else None,
            "subcategory": activity.subcategory,
            "location": activity.location,
            "status": activity.status,
            "reporter": activity.user.name if activity.user else None,
            "assignedTo": activity.assigned_to.name if activity.assigned_to else None,
        }

    def _load_activity(self, session: Session, activity_id: str) -> Optional[Activity]:
        return with_db(lambda db: db.get(Activity, activity_id), session=session)

    def broadcast_activity_created(self, session: Session, activity_id: str) -> Optional[Dict[str, int]]:
        context = create_request_context("broadcast_activity_created", "POST", activity_id=activity_id)
        try:
            activity = self._load_activity(session, activity_id)
            if activity is None:
                log_secure_error("Activity not found for broadcast", context)
                return None
            data = self._activity_summary(activity)
            data["timestamp"] = iso(activity.timestamp)
            return self.broadcast(make_event("activity_created", data))
        except Exception as e:
            log_secure_error("Failed to broadcast activity creation", context, e)
            return None

    def broadcast_activity_updated(
        self, session: Session, activity_id: str, update_type: UpdateType = "general"
    ) -> Optional[Dict[str, int]]:
        context = create_request_context("broadcast_activity_updated", "POST", activity_id=activity_id)
        try:
            activity = self._load_activity(session, activity_id)
            if activity is None:
                log_secure_error("Activity not found for broadcast", context)
                return None
            latest = (
                session.query(ActivityUpdate)
                .filter(ActivityUpdate.activity_id == activity_id)
                .order_by(ActivityUpdate.timestamp.desc())
                .first()
            )
            data = self._activity_summary(activity)
            data["updateType"] = update_type
            data["latestUpdate"] = (
                {"notes": latest.notes, "authorId": latest.author_id, "updateType": latest.update_type}
                if latest else None
            )
            data["timestamp"] = _now_iso()
            return self.broadcast(make_event("activity_updated", data))
        except Exception as e:
            log_secure_error("Failed to broadcast activity update", context, e)
            return None

    def broadcast_assignment_changed(
        self,
        session: Session,
        activity_id: str,
        old_assignee_id: Optional[str] = None,
        new_assignee_id: Optional[str] = None,
    ) -> Optional[Dict[str, int]]:
        context = create_request_context("broadcast_assignment_changed", "POST", activity_id=activity_id)
        try:
            activity = self._load_activity(session, activity_id)
            if activity is None:
                log_secure_error("Activity not found for broadcast", context)
                return None
            data = self._activity_summary(activity)
            data["oldAssigneeId"] = old_assignee_id
            data["newAssigneeId"] = new_assignee_id if new_assignee_id is not None else activity.assigned_to_user_id
            data["timestamp"] = _now_iso()
            return self.broadcast(make_event("assignment_changed", data))
        except Exception as e:
            log_secure_error("Failed to broadcast assignment change", context, e)
            return None

    def broadcast_presence_updated(
        self, user_id: str, is_online: bool, last_seen: Optional[str] = None
    ) -> Dict[str, int]:
        return self.broadcast(make_event("presence_updated", {
            "userId": user_id,
            "isOnline": is_online,
            "lastSeen": last_seen or _now_iso(),
        }))

    def stats(self) -> Dict[str, Any]:
        now = time.time()
        with self._lock:
            connections = list(self._connections.values())
        ages = [c.age_seconds(now) for c in connections]
        return {
            "totalConnections": len(connections),
            "activeConnections": sum(1 for c in connections if not c.closed),
            "oldestConnectionAgeSeconds": round(max(ages), 1) if ages else 0.0,
            "totalBroadcasts": self.total_broadcasts,
            "heartbeatSeconds": config.SSE_HEARTBEAT_SECONDS,
            "maxConnectionAgeSeconds": config.SSE_MAX_CONNECTION_AGE_SECONDS,
        }


event_publisher = EventPublisher()
