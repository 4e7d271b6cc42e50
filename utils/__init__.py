"""
Workload Insights utilities

- audit_logger: JSON audit trail of data changes
- error_recovery: retry with backoff and service health tracking
- pii_redaction: field and free-text PII scrubbing
- secure_logger: structured request logging on top of pii_redaction
"""

from .audit_logger import (
    AuditLogger,
    ActionCategory,
    get_audit_logger,
    set_audit_logger,
    log_action
)

from .error_recovery import (
    with_retry,
    call_with_retry,
    backoff_delay,
    TransientError,
    PermanentError,
    ServiceStatus,
    ServiceHealthMonitor,
    health_monitor
)

from .pii_redaction import (
    redact_for_pii,
    redact_object,
    redact_value
)

from .secure_logger import (
    create_request_context,
    extract_safe_user_id,
    log_secure_error,
    log_secure_info,
    log_secure_warning,
    log_health_check
)

__all__ = [
    # Audit Logger
    'AuditLogger',
    'ActionCategory',
    'get_audit_logger',
    'set_audit_logger',
    'log_action',

    # Error Recovery
    'with_retry',
    'call_with_retry',
    'backoff_delay',
    'TransientError',
    'PermanentError',
    'ServiceStatus',
    'ServiceHealthMonitor',
    'health_monitor',

    # PII Redaction
    'redact_for_pii',
    'redact_object',
    'redact_value',

    # Secure Logger
    'create_request_context',
    'extract_safe_user_id',
    'log_secure_error',
    'log_secure_info',
    'log_secure_warning',
    'log_health_check'
]
