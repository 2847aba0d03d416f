"""
Configuration validation.

Runs once before either job. Any problem aborts the run before a single
group is touched.
"""

import logging
from typing import List, Tuple

from s3backup.backup.compression import ARCHIVE_FORMATS
from s3backup.backup.groups import parse_groups
from s3backup.backup.providers import apply_provider_defaults
from s3backup.backup.sources import SUPPORTED_DRIVERS
from s3backup.backup.storage import SUPPORTED_TRANSPORTS
from s3backup.config import Config
from s3backup.exceptions import ConfigurationError
from s3backup.models import BackupGroup


logger = logging.getLogger(__name__)

JOBS = ('backup', 'cleanup', 'check', 'schedule')

# (Config attribute, environment variable) always required
REQUIRED_SETTINGS = [
    ('db_driver', 'DB_DRIVER'),
    ('databases', 'DATABASES'),
    ('directories', 'DIRECTORIES_TO_BACKUP'),
    ('s3_provider', 'S3_PROVIDER'),
    ('bucket_name', 'BUCKET_NAME'),
    ('access_key_id', 'AWS_ACCESS_KEY_ID'),
    ('secret_access_key', 'AWS_SECRET_ACCESS_KEY'),
]

SCHEDULE_SETTINGS = [
    ('cron_schedule_backup', 'CRON_SCHEDULE_BACKUP'),
    ('cron_schedule_clean', 'CRON_SCHEDULE_CLEAN'),
]


def _require(config: Config, settings) -> None:
    missing = [name for attr, name in settings if not getattr(config, attr)]
    if missing:
        raise ConfigurationError(f"Required setting(s) not set: {', '.join(missing)}")


def _validate_retention(config: Config) -> None:
    if config.number_of_days is None:
        raise ConfigurationError("NUMBER_OF_DAYS is required")
    try:
        days = int(config.number_of_days)
    except ValueError:
        raise ConfigurationError(f"NUMBER_OF_DAYS must be an integer, got '{config.number_of_days}'")
    if days < 0:
        raise ConfigurationError(f"NUMBER_OF_DAYS must not be negative, got {days}")


def validate_config(config: Config, job: str = 'backup') -> Tuple[Config, List[BackupGroup]]:
    """
    Validate configuration for a job.

    Args:
        config: Configuration built from the environment
        job: 'backup', 'cleanup', 'check' or 'schedule'

    Returns:
        Tuple of (config with provider defaults applied, parsed groups)

    Raises:
        ConfigurationError: If any setting is missing or invalid
        ValueError: If job is unknown
    """
    if job not in JOBS:
        raise ValueError(f"Invalid job: {job}. Valid options: {list(JOBS)}")

    _require(config, REQUIRED_SETTINGS)

    if config.db_driver.strip().lower() not in SUPPORTED_DRIVERS:
        raise ConfigurationError(
            f"Unknown DB_DRIVER: '{config.db_driver}'. Must be one of {', '.join(SUPPORTED_DRIVERS)}"
        )
    logger.info(f"Using DB_DRIVER: {config.db_driver}")

    groups = parse_groups(config.databases, config.directories)
    logger.info(f"All {len(groups)} backup group(s) are correctly configured.")

    config = apply_provider_defaults(config)
    logger.info(f"All required S3 settings for provider '{config.s3_provider}' are present.")

    if config.transport not in SUPPORTED_TRANSPORTS:
        raise ConfigurationError(
            f"Invalid S3_TRANSPORT: '{config.transport}'. Must be one of {', '.join(SUPPORTED_TRANSPORTS)}"
        )

    if config.archive_format not in ARCHIVE_FORMATS:
        raise ConfigurationError(
            f"Invalid BACKUP_ARCHIVE_FORMAT: '{config.archive_format}'. "
            f"Must be one of {', '.join(ARCHIVE_FORMATS)}"
        )

    if job in ('cleanup', 'schedule'):
        _validate_retention(config)

    if job == 'schedule':
        _require(config, SCHEDULE_SETTINGS)

    return config, groups
