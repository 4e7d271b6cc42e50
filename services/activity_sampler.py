"""
Priority sampling of activities for LLM context.

The model sees a bounded slice of the data. Pure recency would let one busy
staff member crowd everyone else out, so selection runs in two passes:
1. newest first, take an activity while the total is under max_total and
   its staff member has fewer than max_per_staff picks
2. fill whatever slots remain by recency, skipping activities already taken
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

DEFAULT_MAX_TOTAL = 75
DEFAULT_MAX_PER_STAFF = 3
NOTES_PREVIEW_CHARS = 150


def _sort_key(activity: Mapping[str, Any]) -> float:
    value = activity.get("timestamp")
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
        except ValueError:
            return 0.0
    return 0.0


def sample_activities(
    activities: Sequence[Mapping[str, Any]],
    max_total: int = DEFAULT_MAX_TOTAL,
    max_per_staff: int = DEFAULT_MAX_PER_STAFF,
) -> List[Mapping[str, Any]]:
    """Return at most max_total activities, newest first, spread across staff."""
    if max_total <= 0 or not activities:
        return []

    ordered = sorted(activities, key=_sort_key, reverse=True)
    chosen: List[int] = []
    taken = set()
    per_staff: Dict[Any, int] = {}

    for index, activity in enumerate(ordered):
        if len(chosen) >= max_total:
            break
        staff = activity.get("user_id")
        if per_staff.get(staff, 0) < max_per_staff:
            chosen.append(index)
            taken.add(index)
            per_staff[staff] = per_staff.get(staff, 0) + 1

    for index in range(len(ordered)):
        if len(chosen) >= max_total:
            break
        if index not in taken:
            chosen.append(index)
            taken.add(index)

    return [ordered[i] for i in sorted(chosen)]


def serialize_for_ai(
    activities: Iterable[Mapping[str, Any]],
    users: Iterable[Mapping[str, Any]],
    categories: Iterable[Mapping[str, Any]],
    max_total: int = DEFAULT_MAX_TOTAL,
    max_per_staff: int = DEFAULT_MAX_PER_STAFF,
) -> str:
    """Compact JSON rendering of sampled activities for a prompt."""
    activities = list(activities)
    if not activities:
        return "[]"

    staff_names = {u.get("id"): u.get("name") for u in users}
    category_names = {c.get("id"): c.get("name") for c in categories}

    rows = []
    for act in sample_activities(activities, max_total, max_per_staff):
        row: Dict[str, Any] = {
            "id": act.get("id"),
            "staff": staff_names.get(act.get("user_id")) or "Unknown",
            "category": category_names.get(act.get("category_id")) or act.get("category_id"),
            "details": act.get("subcategory"),
            "location": act.get("location"),
        }
        notes: Optional[str] = act.get("notes")
        if notes:
            row["notes"] = notes[:NOTES_PREVIEW_CHARS]
        row["has_photo"] = bool(act.get("photo_url"))
        rows.append(row)

    return json.dumps(rows, indent=2)
