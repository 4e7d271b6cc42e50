"""
Cron scheduling for background tasks

- scheduler: python-crontab job management
- tasks: workload_report, audit_cleanup
"""

from .scheduler import WorkloadScheduler, JobSpec, DEFAULT_JOBS, JOB_PREFIX

__all__ = [
    'WorkloadScheduler',
    'JobSpec',
    'DEFAULT_JOBS',
    'JOB_PREFIX'
]
