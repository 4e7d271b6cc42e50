"""
Scheduled Task: Workload Report
Writes reports/workload_YYYY-MM-DD.md with per-staff load and insights

Run from the project root: python -m scheduler.tasks.workload_report [days]
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import config
from database import load_snapshot, new_session, with_db
from services.workload_analytics import calculate_user_workloads, get_workload_insights
from utils.audit_logger import get_audit_logger

SEVERITY = {"warning": "🔴", "info": "⚠️", "success": "🟢"}


def capacity_health(utilization: float) -> str:
    if utilization == 0:
        return "🟢 Idle"
    if utilization <= 80:
        return "🟢 Healthy"
    return "🔴 Over"


def render_report(result: Dict[str, Any], insights: List[Dict[str, str]], days: int, generated_at: datetime) -> str:
    summary = result["teamSummary"]
    timestamp_iso = generated_at.isoformat()
    timestamp_human = generated_at.strftime('%Y-%m-%d %H:%M')

    report = f'''---
last_updated: {timestamp_iso}
period_days: {days}
---

# Workload Report

Generated {timestamp_human} UTC for the last {days} days.

## Team Snapshot

| Metric | Value |
|---|---:|
| Active assignments | {summary["totalActiveAssignments"]} |
| Overdue | {summary["totalOverdue"]} |
| Average completion rate | {summary["averageCompletionRate"]:.0f}% |
| Most loaded | {summary["mostLoadedUser"] or "-"} |
| Least loaded | {summary["leastLoadedUser"] or "-"} |

## Staff Workload

| Staff | Role | Active | Overdue | Done (period) | Completion | Score | Capacity |
|---|---|---:|---:|---:|---:|---:|---|
'''
    ranked = sorted(result["userWorkloads"], key=lambda u: u["workloadMetrics"]["workloadScore"], reverse=True)
    for user in ranked:
        m = user["workloadMetrics"]
        report += (
            f'| {user["userName"]} | {user["userRole"]} | {m["activeAssignments"]} | {m["overdueAssignments"]} '
            f'| {m["completedThisWeek"]} | {m["completionRate"]:.0f}% | {m["workloadScore"]} '
            f'| {capacity_health(m["capacityUtilization"])} {m["capacityUtilization"]:.0f}% |\n'
        )
    if not ranked:
        report += '| - | - | 0 | 0 | 0 | 0% | 0 | 🟢 Idle |\n'

    report += '\n## Insights\n\n'
    if insights:
        report += '| Severity | Insight | Detail |\n|---|---|---|\n'
        for insight in insights:
            report += f'| {SEVERITY.get(insight["type"], "⚠️")} {insight["priority"].title()} | {insight["title"]} | {insight["message"]} |\n'
    else:
        report += 'No issues detected.\n'

    return report


def generate_report(days: int = 7, reports_dir: Optional[Path] = None, now: Optional[datetime] = None) -> Path:
    """Write today's workload report and return its path"""
    now = now or datetime.now(timezone.utc)
    reports_dir = reports_dir or config.REPORTS_DIR

    session = new_session()
    try:
        snapshot = with_db(load_snapshot, session=session)
    finally:
        session.close()

    result = calculate_user_workloads(
        snapshot["activities"],
        snapshot["users"],
        snapshot["categories"],
        date_range=(now - timedelta(days=days), now),
        now=now,
    )
    insights = get_workload_insights(result["userWorkloads"], result["teamSummary"])

    reports_dir.mkdir(parents=True, exist_ok=True)
    report_path = reports_dir / f'workload_{now.strftime("%Y-%m-%d")}.md'
    report_path.write_text(render_report(result, insights, days, now), encoding='utf-8')

    get_audit_logger().log_system_event('workload_report_generated', {
        'file': report_path.name,
        'staff': len(result["userWorkloads"]),
        'insights': len(insights),
    })
    return report_path


if __name__ == '__main__':
    period = int(sys.argv[1]) if len(sys.argv) > 1 else 7
    path = generate_report(days=period)
    print(f'[Workload Report] Written to {path}')
