"""
Audit trail for data changes.

Every successful mutation made through the API is appended as one JSON line
to audit/YYYY-MM-DD.jsonl:
- when: ISO timestamp
- action_type / category: what happened and to which kind of row
- actor: user id when known, otherwise "api" or "system"
- target: id of the affected row
- parameters: PII redacted at the configured level
- result / error_message
"""
import json
import logging
import threading
from collections import Counter
from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Literal, Optional, Union

import config
from .pii_redaction import redact_object

logger = logging.getLogger(__name__)

AUDIT_SUFFIX = ".jsonl"


class ActionCategory(str, Enum):
    ACTIVITY = "activity"
    ASSIGNMENT = "assignment"
    UPDATE = "update"
    USER = "user"
    CATEGORY = "category"
    AI = "ai"
    SYSTEM = "system"


def _category_value(category: Union[ActionCategory, str]) -> str:
    return category.value if isinstance(category, ActionCategory) else category


class AuditLogger:
    """
    Append-only audit log, one JSON Lines file per day.

    Appends are serialized with a lock since the API serves requests from a
    thread pool.
    """

    def __init__(self, log_dir: Optional[Path] = None, retention_days: Optional[int] = None):
        self.log_dir = Path(log_dir) if log_dir else config.AUDIT_LOG_DIR
        self.retention_days = retention_days if retention_days is not None else config.AUDIT_RETENTION_DAYS
        self._lock = threading.Lock()

    def path_for(self, day: date) -> Path:
        return self.log_dir / f"{day:%Y-%m-%d}{AUDIT_SUFFIX}"

    def _append(self, entry: Dict[str, Any]) -> None:
        line = json.dumps(entry, default=str)
        with self._lock:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(self.path_for(datetime.now().date()), "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def _read_day(self, day: date) -> Iterator[Dict[str, Any]]:
        path = self.path_for(day)
        if not path.exists():
            return
        with open(path, "r", encoding="utf-8") as f:
            for number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    logger.warning(f"Skipping unreadable audit line {path.name}:{number}")

    def log(
        self,
        action_type: str,
        category: Union[ActionCategory, str],
        target: str,
        parameters: Optional[Dict[str, Any]] = None,
        actor: str = "api",
        result: Literal["success", "failure"] = "success",
        error_message: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Record one action and return the stored entry.

        Args:
            action_type: e.g. "activity_created", "user_deleted"
            category: Kind of row the action touched
            target: Id of the affected row
            parameters: Action details, redacted before writing
            actor: Who performed the action
            result: "success" or "failure"
            error_message: Failure detail
        """
        entry = {
            "when": datetime.now().isoformat(),
            "action_type": action_type,
            "category": _category_value(category),
            "actor": actor,
            "target": target,
            "parameters": redact_object(parameters or {}, config.redaction_level()),
            "result": result,
            "error_message": error_message,
        }
        self._append(entry)
        return entry

    # Domain shortcuts

    def log_activity_created(self, activity_id: str, category_id: str, actor: str = "api"):
        return self.log("activity_created", ActionCategory.ACTIVITY, activity_id,
                        {"category_id": category_id}, actor=actor)

    def log_activity_updated(self, activity_id: str, update_type: str, changes: Dict[str, Any]):
        return self.log(f"activity_{update_type}", ActionCategory.ACTIVITY, activity_id, changes)

    def log_activity_deleted(self, activity_id: str):
        return self.log("activity_deleted", ActionCategory.ACTIVITY, activity_id)

    def log_update_added(self, activity_id: str, update_id: str, author_id: str):
        return self.log("update_added", ActionCategory.UPDATE, activity_id,
                        {"update_id": update_id}, actor=author_id)

    def log_assignment_changed(self, activity_id: str, change: str, user_id: Optional[str]):
        return self.log(f"assignment_{change}", ActionCategory.ASSIGNMENT, activity_id, {"user_id": user_id})

    def log_user_changed(self, user_id: str, change: str, details: Optional[Dict[str, Any]] = None):
        return self.log(f"user_{change}", ActionCategory.USER, user_id, details)

    def log_category_changed(self, category_id: str, change: str, details: Optional[Dict[str, Any]] = None):
        return self.log(f"category_{change}", ActionCategory.CATEGORY, category_id, details)

    def log_error(self, action_type: str, category: Union[ActionCategory, str], error_message: str,
                  target: str = "system"):
        return self.log(action_type, category, target, result="failure", error_message=error_message)

    def log_system_event(self, event_type: str, details: Optional[Dict[str, Any]] = None):
        return self.log(event_type, ActionCategory.SYSTEM, "system", details, actor="system")

    # Reading back

    def get_logs_for_period(self, days: int = 7) -> List[Dict[str, Any]]:
        """Entries from the last `days` days (today included), newest first."""
        today = datetime.now().date()
        entries: List[Dict[str, Any]] = []
        for offset in range(days):
            entries.extend(self._read_day(today - timedelta(days=offset)))
        entries.sort(key=lambda e: e.get("when", ""), reverse=True)
        return entries

    def get_logs_by_category(self, category: Union[ActionCategory, str], days: int = 7) -> List[Dict[str, Any]]:
        wanted = _category_value(category)
        return [e for e in self.get_logs_for_period(days) if e.get("category") == wanted]

    def get_failed_actions(self, days: int = 7) -> List[Dict[str, Any]]:
        return [e for e in self.get_logs_for_period(days) if e.get("result") == "failure"]

    def cleanup_old_logs(self) -> int:
        """Delete day files older than the retention window; returns how many went."""
        if not self.log_dir.exists():
            return 0

        cutoff = datetime.now().date() - timedelta(days=self.retention_days)
        removed = 0
        for path in self.log_dir.glob(f"*{AUDIT_SUFFIX}"):
            try:
                day = datetime.strptime(path.stem, "%Y-%m-%d").date()
            except ValueError:
                continue
            if day < cutoff:
                path.unlink()
                removed += 1

        if removed:
            logger.info(f"Removed {removed} audit files older than {self.retention_days} days")
        return removed

    def generate_audit_report(self, days: int = 7) -> str:
        """Markdown digest of recent changes."""
        entries = self.get_logs_for_period(days)
        by_category = Counter(e.get("category", "unknown") for e in entries)
        by_action = Counter(e.get("action_type", "unknown") for e in entries)
        failures = [e for e in entries if e.get("result") == "failure"]

        lines = [
            "# Audit Report",
            "",
            f"Last {days} days, generated {datetime.now():%Y-%m-%d %H:%M}",
            "",
            f"- Total Actions: {len(entries)}",
            f"- Failed: {len(failures)}",
            "",
            "| Category | Actions |",
            "|---|---:|",
        ]
        lines += [f"| {name} | {count} |" for name, count in by_category.most_common()]
        lines += ["", "| Action | Count |", "|---|---:|"]
        lines += [f"| {name} | {count} |" for name, count in by_action.most_common()]

        if failures:
            lines += ["", f"## Failures ({len(failures)})", ""]
            for e in failures[:10]:
                lines.append(f"- {e['when'][:16]} {e['action_type']}: {e.get('error_message') or 'no detail'}")

        return "\n".join(lines) + "\n"


_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def set_audit_logger(audit_logger: Optional[AuditLogger]) -> None:
    """Swap the process-wide logger (tests point it at a temporary directory)."""
    global _audit_logger
    _audit_logger = audit_logger


def log_action(action_type: str, category: Union[ActionCategory, str], target: str, **kwargs) -> Dict[str, Any]:
    return get_audit_logger().log(action_type, category, target, **kwargs)
