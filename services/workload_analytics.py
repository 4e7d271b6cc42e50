"""
Per-staff workload metrics and dashboard insights.

Works on plain dicts (the API's serialized rows) so it can run on data from
the database or from a client-supplied context alike.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

ACTIVE_STATUSES = ("Open", "In Progress")
RESOLVED = "Resolved"
OVERDUE_AFTER = timedelta(hours=48)
MAX_CAPACITY = 10


def _parse_ts(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def calculate_user_workloads(
    activities: Sequence[Mapping[str, Any]],
    users: Sequence[Mapping[str, Any]],
    categories: Sequence[Mapping[str, Any]],
    date_range: Optional[Tuple[datetime, datetime]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Return {'userWorkloads': [...], 'teamSummary': {...}}; range defaults to the last 7 days."""
    now = now or datetime.now(timezone.utc)
    start, end = date_range or (now - timedelta(days=7), now)
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)

    user_workloads: List[Dict[str, Any]] = []
    for user in users:
        assigned = [a for a in activities if a.get("assigned_to_user_id") == user.get("id")]
        active = sum(1 for a in assigned if a.get("status") in ACTIVE_STATUSES)
        completed = [a for a in assigned if a.get("status") == RESOLVED]

        completed_this_week = 0
        for a in completed:
            ts = _parse_ts(a.get("timestamp"))
            if ts is not None and start <= ts <= end:
                completed_this_week += 1

        overdue = 0
        for a in assigned:
            if a.get("status") == RESOLVED:
                continue
            ts = _parse_ts(a.get("timestamp"))
            if ts is not None and now - ts > OVERDUE_AFTER:
                overdue += 1

        completion_rate = (len(completed) / len(assigned) * 100) if assigned else 0.0

        # Resolution time is not tracked separately from the log time.
        average_completion_time = 0.0

        workload_score = round(active * 2 + overdue * 3 + completed_this_week * 0.5)
        capacity = min(100.0, active / MAX_CAPACITY * 100)

        expertise = []
        for category in categories:
            in_category = [a for a in assigned if a.get("category_id") == category.get("id")]
            if not in_category:
                continue
            resolved = sum(1 for a in in_category if a.get("status") == RESOLVED)
            expertise.append({
                "categoryId": category.get("id"),
                "categoryName": category.get("name"),
                "assignmentCount": len(in_category),
                "successRate": resolved / len(in_category) * 100,
            })

        user_workloads.append({
            "userId": user.get("id"),
            "userName": user.get("name"),
            "userRole": user.get("role"),
            "workloadMetrics": {
                "activeAssignments": active,
                "completedThisWeek": completed_this_week,
                "overdueAssignments": overdue,
                "averageCompletionTime": average_completion_time,
                "completionRate": completion_rate,
                "workloadScore": workload_score,
                "capacityUtilization": capacity,
            },
            "categoryExpertise": expertise,
        })

    return {"userWorkloads": user_workloads, "teamSummary": _team_summary(user_workloads)}


def _team_summary(user_workloads: List[Dict[str, Any]]) -> Dict[str, Any]:
    metrics = [u["workloadMetrics"] for u in user_workloads]
    total_score = sum(m["workloadScore"] for m in metrics)
    ranked = sorted(user_workloads, key=lambda u: u["workloadMetrics"]["workloadScore"], reverse=True)

    return {
        "totalActiveAssignments": sum(m["activeAssignments"] for m in metrics),
        "totalOverdue": sum(m["overdueAssignments"] for m in metrics),
        "averageCompletionRate": (sum(m["completionRate"] for m in metrics) / len(metrics)) if metrics else 0.0,
        "mostLoadedUser": ranked[0]["userName"] if ranked else None,
        "leastLoadedUser": ranked[-1]["userName"] if ranked else None,
        "workloadDistribution": [
            {
                "userId": u["userId"],
                "userName": u["userName"],
                "workloadPercentage": (u["workloadMetrics"]["workloadScore"] / total_score * 100) if total_score else 0.0,
            }
            for u in user_workloads
        ],
    }


def get_workload_insights(user_workloads: List[Dict[str, Any]], team_summary: Dict[str, Any]) -> List[Dict[str, str]]:
    insights: List[Dict[str, str]] = []

    if team_summary["totalOverdue"] > 0:
        insights.append({
            "type": "warning",
            "title": "Overdue Assignments",
            "message": f"{team_summary['totalOverdue']} assignments are overdue. "
                       f"Consider reassigning or prioritizing these tasks.",
            "priority": "high",
        })

    scores = [u["workloadMetrics"]["workloadScore"] for u in user_workloads]
    if scores:
        highest, lowest = max(scores), min(scores)
        if highest > lowest * 3 and highest > 10:
            insights.append({
                "type": "info",
                "title": "Workload Imbalance",
                "message": f"Significant workload imbalance detected. {team_summary['mostLoadedUser']} has "
                           f"{round(highest)} workload points while {team_summary['leastLoadedUser']} has {round(lowest)}.",
                "priority": "medium",
            })

    stretched = [u for u in user_workloads if u["workloadMetrics"]["capacityUtilization"] > 80]
    if stretched:
        insights.append({
            "type": "warning",
            "title": "High Capacity Utilization",
            "message": f"{len(stretched)} staff members are at over 80% capacity. Consider redistributing workload.",
            "priority": "medium",
        })

    performers = [
        u for u in user_workloads
        if u["workloadMetrics"]["completionRate"] > 75 and u["workloadMetrics"]["activeAssignments"] > 0
    ]
    if performers:
        insights.append({
            "type": "success",
            "title": "High Performance",
            "message": f"{len(performers)} staff members are maintaining excellent completion rates above 75%.",
            "priority": "low",
        })

    return insights
