"""
APScheduler configuration for s3backup.

Manages:
- Scheduled backup runs (CRON_SCHEDULE_BACKUP)
- Scheduled retention cleanup runs (CRON_SCHEDULE_CLEAN)

Every trigger runs one complete, self-contained backup or cleanup run with
the configuration validated at startup.
"""

import logging
import re
from typing import List

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.util import astimezone

from s3backup.backup.executor import run_backup
from s3backup.backup.retention import enforce_retention_policies
from s3backup.config import Config
from s3backup.exceptions import BackupToolError, ConfigurationError
from s3backup.models import BackupGroup


logger = logging.getLogger(__name__)

BACKUP_JOB_ID = 's3_backup'
CLEANUP_JOB_ID = 's3_cleanup'

# crontab numbers weekdays from Sunday (0 or 7), APScheduler 3 from Monday
CRON_WEEKDAYS = ('sun', 'mon', 'tue', 'wed', 'thu', 'fri', 'sat', 'sun')
_WEEKDAY_NUMBER = re.compile(r'(?<![/\d])\d+')


def _run_job(name: str, func, config: Config, groups: List[BackupGroup]):
    """Run one scheduled job, logging failures so the scheduler keeps running."""
    try:
        func(config, groups)
    except BackupToolError as e:
        logger.error(f"Scheduled {name} run failed: {e}")


def scheduled_backup(config: Config, groups: List[BackupGroup]):
    _run_job('backup', run_backup, config, groups)


def scheduled_cleanup(config: Config, groups: List[BackupGroup]):
    _run_job('cleanup', enforce_retention_policies, config, groups)


def _resolve_timezone(name: str):
    """Resolve TZ, falling back to UTC when the zone is unknown."""
    try:
        return astimezone(name)
    except (KeyError, ValueError, TypeError):
        logger.error(f"Invalid TZ value '{name}'. Falling back to UTC.")
        return astimezone('UTC')


def _weekday_names(field: str) -> str:
    """Rewrite numeric crontab weekdays as names, leaving step values alone."""
    def to_name(match):
        number = int(match.group())
        if number >= len(CRON_WEEKDAYS):
            raise ValueError(f"day of week out of range: {number}")
        return CRON_WEEKDAYS[number]
    return _WEEKDAY_NUMBER.sub(to_name, field)


def _cron_trigger(expression: str, setting: str, timezone) -> CronTrigger:
    """
    Build a trigger from a standard five-field crontab expression.

    Raises:
        ConfigurationError: If the expression is invalid
    """
    try:
        fields = expression.strip().split()
        if len(fields) != 5:
            raise ValueError(f"expected 5 fields, got {len(fields)}")
        minute, hour, day, month, day_of_week = fields
        return CronTrigger(
            minute=minute, hour=hour, day=day, month=month,
            day_of_week=_weekday_names(day_of_week), timezone=timezone
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid {setting} '{expression}': {e}")


def init_scheduler(config: Config, groups: List[BackupGroup]) -> BlockingScheduler:
    """
    Initialize and configure the scheduler.

    Args:
        config: Configuration returned by validate_config(config, 'schedule')
        groups: Groups returned by validate_config

    Returns:
        Configured, not yet started, BlockingScheduler

    Raises:
        ConfigurationError: If a cron expression is invalid
    """
    # Backup and cleanup never overlap
    executors = {
        'default': ThreadPoolExecutor(max_workers=1)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one instance of a job at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    timezone = _resolve_timezone(config.timezone)
    logger.info(f"Timezone set to: {timezone}")

    backup_trigger = _cron_trigger(config.cron_schedule_backup, 'CRON_SCHEDULE_BACKUP', timezone)
    cleanup_trigger = _cron_trigger(config.cron_schedule_clean, 'CRON_SCHEDULE_CLEAN', timezone)

    scheduler = BlockingScheduler(executors=executors, job_defaults=job_defaults, timezone=timezone)

    scheduler.add_job(
        func=scheduled_backup,
        trigger=backup_trigger,
        args=[config, groups],
        id=BACKUP_JOB_ID,
        name='S3 Backup',
        replace_existing=True
    )

    scheduler.add_job(
        func=scheduled_cleanup,
        trigger=cleanup_trigger,
        args=[config, groups],
        id=CLEANUP_JOB_ID,
        name='Old Backup Cleanup',
        replace_existing=True
    )

    return scheduler


def start_scheduler(scheduler: BlockingScheduler):
    """
    Start the scheduler. Blocks until the process is stopped.
    """
    for job in scheduler.get_jobs():
        logger.info(f"Scheduled job: {job.id} ({job.name}) trigger={job.trigger}")

    logger.info("Setup complete. Starting scheduler...")
    try:
        scheduler.start()
    except KeyboardInterrupt:
        logger.info("Scheduler stopped")
    except SystemExit:
        # Propagates the signal exit status, e.g. 143 for SIGTERM
        logger.info("Scheduler stopped")
        raise
