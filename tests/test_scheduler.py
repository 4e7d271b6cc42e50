import pytest
from conftest import make_activity
from crontab import CronTab

from scheduler import DEFAULT_JOBS, JobSpec, WorkloadScheduler
from scheduler.tasks.audit_cleanup import cleanup_audit_logs
from scheduler.tasks.workload_report import capacity_health, generate_report
from utils import get_audit_logger


@pytest.fixture
def scheduler(tmp_path):
    tabfile = tmp_path / "crontab"
    tabfile.write_text("")
    return WorkloadScheduler(cron=CronTab(tabfile=str(tabfile)), project_root=tmp_path)


def test_default_schedule(scheduler):
    results = scheduler.setup_default_schedule()

    assert [r["status"] for r in results] == ["success", "success"]
    jobs = scheduler.list_jobs()
    assert [j["name"] for j in jobs] == [spec.name for spec in DEFAULT_JOBS]
    assert jobs[0]["schedule"] == "0 7 * * *"
    assert "-m scheduler.tasks.workload_report" in jobs[0]["command"]
    assert jobs[0]["command"].endswith("cron_workload_report.log 2>&1")


def test_add_replaces_job_with_same_name(scheduler):
    scheduler.add_job(JobSpec("weekly", "scheduler.tasks.workload_report", "0 18 * * 5", "14"))
    scheduler.add_job(JobSpec("weekly", "scheduler.tasks.workload_report", "0 17 * * 5", "14"))

    jobs = scheduler.list_jobs()
    assert len(jobs) == 1
    assert jobs[0]["schedule"] == "0 17 * * 5"
    assert "workload_report 14 >>" in jobs[0]["command"]


def test_invalid_schedule_is_rejected(scheduler):
    result = scheduler.add_job(JobSpec("broken", "scheduler.tasks.audit_cleanup", "every day"))

    assert result["status"] == "error"
    assert scheduler.list_jobs() == []


def test_remove_and_clear(scheduler):
    scheduler.setup_default_schedule()

    assert scheduler.remove_job("audit_cleanup")["status"] == "success"
    assert scheduler.remove_job("audit_cleanup")["status"] == "not_found"
    assert scheduler.clear_all_jobs()["message"] == "Removed 1 jobs"
    assert scheduler.list_jobs() == []


def test_foreign_jobs_are_left_alone(tmp_path):
    tabfile = tmp_path / "crontab"
    tabfile.write_text("0 * * * * echo hello # backup\n")
    scheduler = WorkloadScheduler(cron=CronTab(tabfile=str(tabfile)), project_root=tmp_path)

    scheduler.setup_default_schedule()
    scheduler.clear_all_jobs()

    assert [job.comment for job in scheduler.cron] == ["backup"]


def test_capacity_health_labels():
    assert capacity_health(0) == "🟢 Idle"
    assert capacity_health(50) == "🟢 Healthy"
    assert capacity_health(90) == "🔴 Over"


def test_generate_report(tmp_path, db, admin):
    make_activity(db, admin, hours_ago=72, status="Open", assigned_to_user_id=admin.id)

    path = generate_report(days=7, reports_dir=tmp_path)

    assert path.name.startswith("workload_") and path.suffix == ".md"
    text = path.read_text(encoding="utf-8")
    assert "# Workload Report" in text
    assert f"| {admin.name} | Admin | 1 | 1 |" in text
    assert "Overdue Assignments" in text
    events = [e["action_type"] for e in get_audit_logger().get_logs_for_period(1)]
    assert "workload_report_generated" in events


def test_audit_cleanup_task():
    assert cleanup_audit_logs() == 0
    assert get_audit_logger().get_logs_for_period(1)[0]["action_type"] == "audit_cleanup"
