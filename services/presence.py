"""
In-memory staff presence: who is online and which activity they are viewing.
"""
from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Set

import config
from utils.secure_logger import create_request_context, log_secure_info
from .event_publisher import EventPublisher, event_publisher

logger = logging.getLogger(__name__)

PresenceStatus = Literal["active", "away", "offline"]


def _iso(epoch: float) -> str:
    return datetime.fromtimestamp(epoch, timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class PresenceService:
    def __init__(self, publisher: Optional[EventPublisher] = None, timeout_seconds: Optional[float] = None):
        self.publisher = publisher or event_publisher
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else config.PRESENCE_TIMEOUT_SECONDS
        self._presence: Dict[str, Dict[str, Any]] = {}
        self._viewers: Dict[str, Set[str]] = {}  # activity id -> user ids
        self._lock = threading.Lock()

    def update_presence(self, user_id: str, user_name: str, activity_id: Optional[str] = None,
                        now: Optional[float] = None) -> Dict[str, Any]:
        """Mark a user active, optionally viewing an activity."""
        now = now if now is not None else time.time()
        with self._lock:
            previous = self._presence.get(user_id)
            if previous and previous.get("currentActivity") and previous["currentActivity"] != activity_id:
                self._drop_viewer(previous["currentActivity"], user_id)
            presence = {
                "userId": user_id,
                "userName": user_name,
                "status": "active",
                "lastActivity": now,
                "currentActivity": activity_id,
                "lastSeen": now,
            }
            self._presence[user_id] = presence
            if activity_id:
                self._viewers.setdefault(activity_id, set()).add(user_id)
        self._broadcast(user_id)
        return self._public(presence)

    def mark_away(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._set_status(user_id, "away")

    def mark_offline(self, user_id: str) -> Optional[Dict[str, Any]]:
        result = self._set_status(user_id, "offline")
        with self._lock:
            self._remove_from_activities(user_id)
        return result

    def _set_status(self, user_id: str, status: PresenceStatus) -> Optional[Dict[str, Any]]:
        with self._lock:
            presence = self._presence.get(user_id)
            if presence is None:
                return None
            presence["status"] = status
            presence["lastSeen"] = time.time()
        self._broadcast(user_id)
        return self._public(presence)

    def get_user_presence(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            presence = self._presence.get(user_id)
            return self._public(presence) if presence else None

    def get_activity_viewers(self, activity_id: str, exclude_user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            viewers = []
            for user_id in self._viewers.get(activity_id, set()):
                if user_id == exclude_user_id:
                    continue
                presence = self._presence.get(user_id)
                if presence and presence["status"] == "active":
                    viewers.append(self._public(presence))
        return sorted(viewers, key=lambda p: p["userName"])

    def get_activity_presence(self, activity_id: str, exclude_user_id: Optional[str] = None) -> Dict[str, Any]:
        viewers = self.get_activity_viewers(activity_id, exclude_user_id)
        return {
            "activityId": activity_id,
            "viewers": viewers,
            "totalViewers": len(viewers),
            "lastUpdated": _iso(time.time()),
        }

    def get_all_active_users(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [self._public(p) for p in self._presence.values() if p["status"] == "active"]

    def cleanup_stale(self, now: Optional[float] = None) -> Dict[str, int]:
        """Active users idle past the timeout go away; twice the timeout drops them."""
        now = now if now is not None else time.time()
        to_away: List[str] = []
        removed: List[str] = []
        with self._lock:
            for user_id, presence in list(self._presence.items()):
                idle = now - presence["lastActivity"]
                if idle <= self.timeout_seconds:
                    continue
                if presence["status"] == "active":
                    to_away.append(user_id)
                elif idle > self.timeout_seconds * 2:
                    removed.append(user_id)
            for user_id in removed:
                self._presence.pop(user_id, None)
                self._remove_from_activities(user_id)

        for user_id in to_away:
            self.mark_away(user_id)

        if removed:
            log_secure_info(
                "Cleaned up stale presence data",
                create_request_context("presence_cleanup", "POST"),
                {"staleUserCount": len(removed)},
            )
        return {"markedAway": len(to_away), "removed": len(removed)}

    def stats(self) -> Dict[str, int]:
        with self._lock:
            statuses = [p["status"] for p in self._presence.values()]
            tracked = len(self._viewers)
        return {
            "totalUsers": len(statuses),
            "activeUsers": statuses.count("active"),
            "awayUsers": statuses.count("away"),
            "offlineUsers": statuses.count("offline"),
            "trackedActivities": tracked,
        }

    def reset(self) -> None:
        with self._lock:
            self._presence.clear()
            self._viewers.clear()

    # Internals (caller holds the lock)

    def _drop_viewer(self, activity_id: str, user_id: str) -> None:
        viewers = self._viewers.get(activity_id)
        if viewers is None:
            return
        viewers.discard(user_id)
        if not viewers:
            del self._viewers[activity_id]

    def _remove_from_activities(self, user_id: str) -> None:
        for activity_id in list(self._viewers):
            self._drop_viewer(activity_id, user_id)

    def _broadcast(self, user_id: str) -> None:
        with self._lock:
            presence = self._presence.get(user_id)
            if presence is None:
                return
            is_online = presence["status"] == "active"
            last_seen = _iso(presence["lastSeen"])
        self.publisher.broadcast_presence_updated(user_id, is_online, last_seen)

    @staticmethod
    def _public(presence: Dict[str, Any]) -> Dict[str, Any]:
        return {
            **presence,
            "lastActivity": _iso(presence["lastActivity"]),
            "lastSeen": _iso(presence["lastSeen"]),
        }


presence_service = PresenceService()
