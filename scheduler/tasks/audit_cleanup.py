"""
Scheduled Task: Audit Cleanup
Deletes audit files older than AUDIT_RETENTION_DAYS
"""
from utils.audit_logger import get_audit_logger


def cleanup_audit_logs() -> int:
    audit = get_audit_logger()
    removed = audit.cleanup_old_logs()
    audit.log_system_event('audit_cleanup', {
        'removed_files': removed,
        'retention_days': audit.retention_days,
    })
    return removed


if __name__ == '__main__':
    count = cleanup_audit_logs()
    print(f'[Audit Cleanup] Removed {count} files')
