"""
Cron jobs for the dashboard backend.

Jobs live in the user's crontab, tagged with a 'workload_<name>' comment so
they can be found again without touching unrelated entries. Each job runs a
task module with `python -m` from the project root and appends its output to
logs/cron_<task>.log.
"""
import argparse
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from crontab import CronTab

import config
from utils.audit_logger import get_audit_logger

JOB_PREFIX = 'workload_'


@dataclass(frozen=True)
class JobSpec:
    name: str
    module: str
    schedule: str
    args: str = ""


DEFAULT_JOBS = (
    JobSpec('workload_report', 'scheduler.tasks.workload_report', '0 7 * * *'),
    JobSpec('audit_cleanup', 'scheduler.tasks.audit_cleanup', '0 2 * * *'),
)


def _interpreter(project_root: Path) -> Union[Path, str]:
    venv_python = project_root / '.venv' / 'bin' / 'python'
    return venv_python if venv_python.exists() else 'python3'


class WorkloadScheduler:
    """
    Install, list and remove the backend's cron jobs.

    Usage:
        WorkloadScheduler().setup_default_schedule()
    """

    def __init__(self, cron: Optional[CronTab] = None, project_root: Optional[Path] = None):
        self.project_root = project_root or config.PROJECT_ROOT
        self.log_dir = self.project_root / 'logs'
        self.python = _interpreter(self.project_root)
        self.cron = cron if cron is not None else CronTab(user=True)

    def command_for(self, spec: JobSpec) -> str:
        task = spec.module.rsplit('.', 1)[-1]
        parts = [f'cd {self.project_root} &&', str(self.python), '-m', spec.module]
        if spec.args:
            parts.append(spec.args)
        parts.append(f'>> {self.log_dir / f"cron_{task}.log"} 2>&1')
        return ' '.join(parts)

    def _owned(self) -> List:
        return [job for job in self.cron if (job.comment or '').startswith(JOB_PREFIX)]

    def add_job(self, spec: JobSpec) -> Dict[str, str]:
        """Install spec, replacing any job with the same name."""
        self._drop(spec.name)
        command = self.command_for(spec)
        job = self.cron.new(command=command, comment=f'{JOB_PREFIX}{spec.name}')
        try:
            job.setall(spec.schedule)
        except (KeyError, ValueError) as e:
            self.cron.remove(job)
            return {'status': 'error', 'message': f'Invalid schedule "{spec.schedule}": {e}'}

        self.cron.write()
        get_audit_logger().log_system_event('job_added', {
            'name': spec.name, 'module': spec.module, 'schedule': spec.schedule,
        })
        return {'status': 'success', 'message': f'{spec.name} runs at "{spec.schedule}"', 'command': command}

    def _drop(self, name: str) -> int:
        matches = [job for job in self._owned() if job.comment == f'{JOB_PREFIX}{name}']
        for job in matches:
            self.cron.remove(job)
        return len(matches)

    def remove_job(self, name: str) -> Dict[str, str]:
        if not self._drop(name):
            return {'status': 'not_found', 'message': f'No job named {name}'}
        self.cron.write()
        return {'status': 'success', 'message': f'Removed {name}'}

    def list_jobs(self) -> List[Dict[str, object]]:
        return [
            {
                'name': job.comment[len(JOB_PREFIX):],
                'schedule': str(job.slices),
                'command': job.command,
                'enabled': job.is_enabled(),
            }
            for job in self._owned()
        ]

    def setup_default_schedule(self) -> List[Dict[str, str]]:
        """Daily report at 07:00 and audit cleanup at 02:00."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        return [self.add_job(spec) for spec in DEFAULT_JOBS]

    def clear_all_jobs(self) -> Dict[str, str]:
        owned = self._owned()
        for job in owned:
            self.cron.remove(job)
        self.cron.write()
        return {'status': 'success', 'message': f'Removed {len(owned)} jobs'}


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog='python -m scheduler.scheduler', description='Manage workload cron jobs')
    subparsers = parser.add_subparsers(dest='command', required=True)
    subparsers.add_parser('setup', help='Install the default schedule')
    subparsers.add_parser('list', help='Show installed jobs')
    add_parser = subparsers.add_parser('add', help='Install one job')
    add_parser.add_argument('name')
    add_parser.add_argument('module', help='e.g. scheduler.tasks.workload_report')
    add_parser.add_argument('schedule', help='Cron expression, e.g. "0 18 * * 5"')
    add_parser.add_argument('--args', default='', help='Arguments passed to the module')
    remove_parser = subparsers.add_parser('remove', help='Remove one job')
    remove_parser.add_argument('name')
    subparsers.add_parser('clear', help='Remove every workload job')

    args = parser.parse_args(argv)
    scheduler = WorkloadScheduler()

    if args.command == 'setup':
        for result in scheduler.setup_default_schedule():
            print(f"  - {result['message']}")
    elif args.command == 'list':
        jobs = scheduler.list_jobs()
        if not jobs:
            print('No workload jobs installed.')
        for job in jobs:
            print(f"  [{'on' if job['enabled'] else 'off'}] {job['name']}: {job['schedule']}")
    elif args.command == 'add':
        print(json.dumps(scheduler.add_job(JobSpec(args.name, args.module, args.schedule, args.args)), indent=2))
    elif args.command == 'remove':
        print(json.dumps(scheduler.remove_job(args.name), indent=2))
    elif args.command == 'clear':
        print(json.dumps(scheduler.clear_all_jobs(), indent=2))


if __name__ == '__main__':
    main()
