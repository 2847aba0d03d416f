"""Command line interface for s3backup."""

import argparse
import dataclasses
import logging
import signal
import sys
from typing import Iterable, Optional

from s3backup import __version__, configure_logging
from s3backup.backup.executor import run_backup
from s3backup.backup.retention import enforce_retention_policies
from s3backup.backup.storage import StorageError, create_storage
from s3backup.backup.transport import build_transport_config, transport_config_file
from s3backup.config import Config
from s3backup.exceptions import ConfigurationError, RunSummaryError, TransportSetupError
from s3backup.validation import validate_config


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_GROUPS_FAILED = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='s3backup',
        description='Back up database/directory groups to S3-compatible storage and prune old archives.'
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument(
        '--log-level',
        choices=['CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG'],
        help='Logging verbosity (default: LOG_LEVEL or INFO).'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('backup', help='Back up every group and upload the archives.')

    parser_cleanup = subparsers.add_parser('cleanup', help='Delete archives older than NUMBER_OF_DAYS.')
    parser_cleanup.add_argument(
        '--dry-run',
        action='store_true',
        help='Show what would be deleted without deleting anything (same as DRY_RUN=true).'
    )

    subparsers.add_parser('check', help='Validate configuration and test bucket access.')
    subparsers.add_parser('schedule', help='Run backup and cleanup on their cron schedules.')

    return parser


def probe_connection(config: Config) -> None:
    """
    Probe bucket access with the configured transport.

    Raises:
        TransportSetupError: If the transport config cannot be rendered or the probe fails
    """
    logger.info(f"Performing S3 connection test for bucket '{config.bucket_name}'...")
    with transport_config_file(build_transport_config(config), prefix='rclone_test.') as config_path:
        try:
            create_storage(config, config_path).test_connection()
        except StorageError as e:
            raise TransportSetupError(f"S3 connection test failed: {e}")
    logger.info("S3 connection test successful.")


def _raise_system_exit(signum, frame):
    # Unwinds through the context managers that remove temp files
    raise SystemExit(128 + signum)


def main(argv: Optional[Iterable[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = Config.from_environ()

    configure_logging(args.log_level or config.log_level, config.log_dir)
    signal.signal(signal.SIGTERM, _raise_system_exit)

    if args.command == 'cleanup' and args.dry_run:
        config = dataclasses.replace(config, dry_run=True)

    try:
        config, groups = validate_config(config, args.command)

        if args.command == 'backup':
            run_backup(config, groups)
        elif args.command == 'cleanup':
            enforce_retention_policies(config, groups)
        elif args.command == 'check':
            probe_connection(config)
        elif args.command == 'schedule':
            from s3backup.scheduler import init_scheduler, start_scheduler
            scheduler = init_scheduler(config, groups)
            probe_connection(config)
            start_scheduler(scheduler)

    except (ConfigurationError, TransportSetupError) as e:
        logger.error(str(e))
        return EXIT_CONFIG_ERROR
    except RunSummaryError as e:
        logger.error(str(e))
        return EXIT_GROUPS_FAILED

    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
