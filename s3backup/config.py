import os
import tempfile
from dataclasses import dataclass
from typing import Mapping, Optional


def _get(environ: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    """Read a setting, treating empty strings as unset."""
    value = environ.get(name)
    if value is None or value.strip() == '':
        return default
    return value


@dataclass(frozen=True)
class Config:
    """Runtime configuration, built once at startup and passed to both jobs"""

    # Backup groups
    db_driver: Optional[str] = None
    databases: Optional[str] = None
    directories: Optional[str] = None

    # S3 provider
    s3_provider: Optional[str] = None
    bucket_name: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    backup_path_prefix: Optional[str] = None

    # Retention
    number_of_days: Optional[str] = None
    dry_run: bool = False

    # Transport
    transport: str = 'rclone'
    rclone_binary: str = 'rclone'
    rclone_flags: str = ''

    # Dump adapters
    dump_adapter_dir: str = '/usr/local/bin'
    pg_dump_adapter: Optional[str] = None
    mysql_dump_adapter: Optional[str] = None

    # Archives / scratch space
    work_dir: str = tempfile.gettempdir()
    archive_format: str = 'tar.gz'

    # Scheduler
    cron_schedule_backup: Optional[str] = None
    cron_schedule_clean: Optional[str] = None
    timezone: str = 'UTC'

    # Logging
    log_level: str = 'INFO'
    log_dir: Optional[str] = None

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> 'Config':
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)

        Returns:
            Config instance. Nothing is validated here, see validation.validate_config
        """
        env = os.environ if environ is None else environ

        return cls(
            db_driver=_get(env, 'DB_DRIVER'),
            databases=_get(env, 'DATABASES'),
            directories=_get(env, 'DIRECTORIES_TO_BACKUP'),
            s3_provider=_get(env, 'S3_PROVIDER'),
            bucket_name=_get(env, 'BUCKET_NAME'),
            access_key_id=_get(env, 'AWS_ACCESS_KEY_ID'),
            secret_access_key=_get(env, 'AWS_SECRET_ACCESS_KEY'),
            region=_get(env, 'AWS_REGION'),
            endpoint_url=_get(env, 'AWS_S3_ENDPOINT_URL'),
            backup_path_prefix=_get(env, 'BACKUP_PATH_PREFIX'),
            number_of_days=_get(env, 'NUMBER_OF_DAYS'),
            dry_run=(_get(env, 'DRY_RUN', 'false').strip().lower() == 'true'),
            transport=_get(env, 'S3_TRANSPORT', 'rclone').strip().lower(),
            rclone_binary=_get(env, 'RCLONE_BINARY', 'rclone'),
            rclone_flags=_get(env, 'RCLONE_FLAGS', ''),
            dump_adapter_dir=_get(env, 'DUMP_ADAPTER_DIR', '/usr/local/bin'),
            pg_dump_adapter=_get(env, 'PG_DUMP_ADAPTER'),
            mysql_dump_adapter=_get(env, 'MYSQL_DUMP_ADAPTER'),
            work_dir=_get(env, 'BACKUP_WORK_DIR', tempfile.gettempdir()),
            archive_format=_get(env, 'BACKUP_ARCHIVE_FORMAT', 'tar.gz'),
            cron_schedule_backup=_get(env, 'CRON_SCHEDULE_BACKUP'),
            cron_schedule_clean=_get(env, 'CRON_SCHEDULE_CLEAN'),
            timezone=_get(env, 'TZ', 'UTC'),
            log_level=_get(env, 'LOG_LEVEL', 'INFO').upper(),
            log_dir=_get(env, 'LOG_DIR'),
        )

    @property
    def retention_days(self) -> Optional[int]:
        """NUMBER_OF_DAYS as an integer, or None when unset."""
        if self.number_of_days is None:
            return None
        return int(self.number_of_days)

    def __repr__(self):
        # Never include credentials
        return (
            f'<Config provider={self.s3_provider} bucket={self.bucket_name} '
            f'driver={self.db_driver} transport={self.transport}>'
        )
