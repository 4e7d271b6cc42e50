import json
from datetime import datetime

from utils.audit_logger import ActionCategory, AuditLogger, get_audit_logger, log_action


def _today_file(directory):
    return directory / f"{datetime.now():%Y-%m-%d}.jsonl"


def test_entries_append_to_daily_file(tmp_path):
    audit = AuditLogger(log_dir=tmp_path, retention_days=30)

    audit.log_activity_created("c1", "maintenance")
    audit.log_update_added("c1", "u9", "author1")

    entries = [json.loads(line) for line in _today_file(tmp_path).read_text().splitlines()]
    assert [e["action_type"] for e in entries] == ["activity_created", "update_added"]
    assert entries[1]["actor"] == "author1"
    assert entries[0]["category"] == "activity"


def test_parameters_are_redacted(tmp_path, monkeypatch):
    monkeypatch.setenv("PII_REDACTION_LEVEL", "strict")
    audit = AuditLogger(log_dir=tmp_path)

    entry = audit.log_user_changed("c1", "created", {"phone_number": "+27821234567", "role": "Teacher"})

    assert entry["parameters"] == {"phone_number": "[REMOVED]", "role": "Teacher"}


def test_queries_and_report(tmp_path):
    audit = AuditLogger(log_dir=tmp_path)
    audit.log_category_changed("sports", "created")
    audit.log_error("user_deleted", ActionCategory.USER, "No fallback admin", target="c2")

    assert len(audit.get_logs_for_period(1)) == 2
    assert [e["target"] for e in audit.get_logs_by_category(ActionCategory.CATEGORY, 1)] == ["sports"]
    assert [e["error_message"] for e in audit.get_failed_actions(1)] == ["No fallback admin"]

    report = audit.generate_audit_report(1)
    assert "- Total Actions: 2" in report
    assert "- Failed: 1" in report
    assert "| category_created | 1 |" in report
    assert "user_deleted: No fallback admin" in report


def test_cleanup_removes_only_expired_audit_files(tmp_path):
    audit = AuditLogger(log_dir=tmp_path, retention_days=30)
    (tmp_path / "2000-01-01.jsonl").write_text("")
    (tmp_path / "notes.jsonl").write_text("")
    audit.log_system_event("startup")

    assert audit.cleanup_old_logs() == 1
    assert not (tmp_path / "2000-01-01.jsonl").exists()
    assert (tmp_path / "notes.jsonl").exists()
    assert _today_file(tmp_path).exists()


def test_unreadable_lines_are_skipped(tmp_path):
    audit = AuditLogger(log_dir=tmp_path)
    _today_file(tmp_path).write_text("{not json\n")

    audit.log_activity_deleted("c1")

    assert [e["action_type"] for e in audit.get_logs_for_period(1)] == ["activity_deleted"]


def test_module_helper_uses_singleton():
    entry = log_action("ai_chat", ActionCategory.AI, "mock")

    assert entry["category"] == "ai"
    assert get_audit_logger().get_logs_for_period(1)[0]["target"] == "mock"
