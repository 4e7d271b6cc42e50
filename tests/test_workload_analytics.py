from datetime import datetime, timedelta, timezone

from conftest import make_activity

from services.workload_analytics import calculate_user_workloads, get_workload_insights

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)
USERS = [
    {"id": "u1", "name": "Thandi", "role": "Maintenance"},
    {"id": "u2", "name": "Bongani", "role": "Teacher"},
]
CATEGORIES = [{"id": "maintenance", "name": "Maintenance"}, {"id": "sports", "name": "Sports"}]


def _activity(user_id, status, hours_ago, category_id="maintenance"):
    return {
        "assigned_to_user_id": user_id,
        "status": status,
        "category_id": category_id,
        "timestamp": (NOW - timedelta(hours=hours_ago)).isoformat(),
    }


def _metrics(result, user_id):
    return next(u for u in result["userWorkloads"] if u["userId"] == user_id)


def test_metrics_for_mixed_assignments():
    activities = [
        _activity("u1", "Open", 72),
        _activity("u1", "In Progress", 1),
        _activity("u1", "Resolved", 1),
        _activity("u1", "Resolved", 1, category_id="sports"),
    ]

    result = calculate_user_workloads(activities, USERS, CATEGORIES, now=NOW)
    thandi = _metrics(result, "u1")

    assert thandi["workloadMetrics"] == {
        "activeAssignments": 2,
        "completedThisWeek": 2,
        "overdueAssignments": 1,
        "averageCompletionTime": 0.0,
        "completionRate": 50.0,
        "workloadScore": 8,
        "capacityUtilization": 20.0,
    }
    assert [e["categoryName"] for e in thandi["categoryExpertise"]] == ["Maintenance", "Sports"]
    assert thandi["categoryExpertise"][1]["successRate"] == 100.0

    summary = result["teamSummary"]
    assert summary["totalActiveAssignments"] == 2
    assert summary["totalOverdue"] == 1
    assert summary["mostLoadedUser"] == "Thandi"
    assert summary["leastLoadedUser"] == "Bongani"
    assert summary["workloadDistribution"][0]["workloadPercentage"] == 100.0

    insights = get_workload_insights(result["userWorkloads"], summary)
    assert [i["title"] for i in insights] == ["Overdue Assignments"]


def test_old_completions_fall_outside_range():
    activities = [_activity("u1", "Resolved", 24 * 10)]

    result = calculate_user_workloads(activities, USERS, CATEGORIES, now=NOW)

    assert _metrics(result, "u1")["workloadMetrics"]["completedThisWeek"] == 0
    assert _metrics(result, "u1")["workloadMetrics"]["overdueAssignments"] == 0


def test_imbalance_and_capacity_insights():
    activities = [_activity("u1", "Open", 1) for _ in range(9)]

    result = calculate_user_workloads(activities, USERS, CATEGORIES, now=NOW)
    titles = [i["title"] for i in get_workload_insights(result["userWorkloads"], result["teamSummary"])]

    assert titles == ["Workload Imbalance", "High Capacity Utilization"]


def test_high_performance_insight():
    activities = [_activity("u1", "Open", 1)] + [_activity("u1", "Resolved", 1) for _ in range(4)]

    result = calculate_user_workloads(activities, USERS, CATEGORIES, now=NOW)
    insights = get_workload_insights(result["userWorkloads"], result["teamSummary"])

    assert insights[-1]["title"] == "High Performance"
    assert insights[-1]["priority"] == "low"


def test_empty_team():
    result = calculate_user_workloads([], [], [], now=NOW)

    assert result["userWorkloads"] == []
    assert result["teamSummary"]["mostLoadedUser"] is None
    assert get_workload_insights(result["userWorkloads"], result["teamSummary"]) == []


def test_analytics_endpoint(client, db, admin):
    make_activity(db, admin, status="Open", assigned_to_user_id=admin.id)

    response = client.get("/api/analytics/workload?days=7")

    assert response.status_code == 200
    data = response.json()
    admin_row = next(u for u in data["userWorkloads"] if u["userId"] == admin.id)
    assert admin_row["workloadMetrics"]["activeAssignments"] == 1
    assert isinstance(data["insights"], list)
    assert client.get("/api/analytics/workload?days=0").status_code == 400


def test_completions_after_range_end_are_not_counted():
    activities = [
        _activity("u1", "Resolved", 1),
        _activity("u1", "Resolved", 72),
        _activity("u1", "Resolved", 24 * 8),
    ]

    result = calculate_user_workloads(
        activities, USERS, CATEGORIES, date_range=(NOW - timedelta(days=7), NOW - timedelta(days=2)), now=NOW
    )

    assert _metrics(result, "u1")["workloadMetrics"]["completedThisWeek"] == 1
