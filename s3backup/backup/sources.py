"""
Source handlers for backup operations.

Supports:
- DirectorySource: Copy directories/files from the local filesystem
- DatabaseSource: Dump databases through the driver's dump adapter
"""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from s3backup.backup.groups import sanitize_identifier
from s3backup.config import Config
from s3backup.exceptions import GroupError
from s3backup.models import DatabaseSpec


logger = logging.getLogger(__name__)

SUPPORTED_DRIVERS = ('postgres', 'mysql', 'mariadb')

# Adapter program per driver, looked up in DUMP_ADAPTER_DIR
DUMP_ADAPTERS = {
    'postgres': 'perform-db-dump.pg',
    'mysql': 'perform-db-dump.mysql',
    'mariadb': 'perform-db-dump.mysql',
}

# Connection environment variable names per driver
CONNECTION_ENV = {
    'postgres': ('PGHOST', 'PGPORT', 'PGUSER', 'PGPASSWORD'),
    'mysql': ('MYSQL_HOST', 'MYSQL_PORT', 'MYSQL_USER', 'MYSQL_PASSWORD'),
    'mariadb': ('MYSQL_HOST', 'MYSQL_PORT', 'MYSQL_USER', 'MYSQL_PASSWORD'),
}

DUMP_EXTENSION = '.dump'


class SourceError(GroupError):
    """Raised when source acquisition fails."""
    pass


class DumpError(GroupError):
    """Raised when a database dump fails."""
    pass


def mask_secrets(text: str, secrets: Sequence[str]) -> str:
    """Replace every non-empty secret in text with '***'."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, '***')
    return text


class DirectorySource:
    """
    Handler for local filesystem sources.

    Copies files/directories into the group's working folder, each under its
    base name. Missing paths are skipped.
    """

    def __init__(self, paths: Sequence[str]):
        """
        Initialize directory source handler.

        Args:
            paths: List of file/directory paths to backup
        """
        self.paths = list(paths)

    def acquire(self, dest_dir: str) -> List[str]:
        """
        Copy source paths into dest_dir, preserving permissions and symlinks.

        Args:
            dest_dir: Working folder to copy into

        Returns:
            List of paths in dest_dir that were copied

        Raises:
            SourceError: If an existing path cannot be copied
        """
        acquired_paths = []

        for path in self.paths:
            source_path = Path(path)

            if not os.path.lexists(source_path):
                logger.info(f"  - Skipping missing file/directory: {path}")
                continue

            dest_name = source_path.name or source_path.resolve().name or 'root'
            dest_path = Path(dest_dir) / dest_name
            logger.info(f"  - Adding: {path}")

            try:
                if source_path.is_dir() and not source_path.is_symlink():
                    shutil.copytree(source_path, dest_path, symlinks=True, dirs_exist_ok=True)
                else:
                    shutil.copy2(source_path, dest_path, follow_symlinks=False)
                acquired_paths.append(str(dest_path))
            except PermissionError as e:
                raise SourceError(f"Permission denied accessing {path}: {e}")
            except (OSError, shutil.Error) as e:
                raise SourceError(f"Failed to copy {path}: {e}")

        return acquired_paths


class DatabaseSource:
    """
    Dispatcher for database dump adapters.

    Each adapter is invoked as `<adapter> <database name>`. Connection
    parameters are passed through an environment overlay that only the
    adapter process sees. The adapter's stdout is the dump.
    """

    def __init__(self, driver: str, adapter_dir: str = '/usr/local/bin',
                 adapter_overrides: Optional[Dict[str, str]] = None):
        """
        Initialize database source handler.

        Args:
            driver: 'postgres', 'mysql' or 'mariadb'
            adapter_dir: Directory that holds the dump adapters
            adapter_overrides: Optional explicit adapter path per driver
        """
        self.driver = (driver or '').strip().lower()
        self.adapter_dir = adapter_dir
        self.adapter_overrides = adapter_overrides or {}

    @classmethod
    def from_config(cls, config: Config) -> 'DatabaseSource':
        overrides = {}
        if config.pg_dump_adapter:
            overrides['postgres'] = config.pg_dump_adapter
        if config.mysql_dump_adapter:
            overrides['mysql'] = config.mysql_dump_adapter
            overrides['mariadb'] = config.mysql_dump_adapter
        return cls(config.db_driver, config.dump_adapter_dir, overrides)

    def adapter_path(self) -> str:
        """
        Resolve the adapter executable for the configured driver.

        Raises:
            DumpError: If the driver is unsupported or the adapter is not executable
        """
        if self.driver not in DUMP_ADAPTERS:
            raise DumpError(f"Unsupported DB_DRIVER '{self.driver}'")

        path = self.adapter_overrides.get(self.driver) or os.path.join(self.adapter_dir, DUMP_ADAPTERS[self.driver])

        if not (os.path.isfile(path) and os.access(path, os.X_OK)):
            raise DumpError(f"Dump script '{path}' not found or not executable")

        return path

    def connection_env(self, spec: DatabaseSpec) -> Dict[str, str]:
        """Build the environment for one adapter invocation."""
        host_var, port_var, user_var, password_var = CONNECTION_ENV[self.driver]
        env = os.environ.copy()
        env.update({
            host_var: spec.host,
            port_var: spec.port,
            user_var: spec.user,
            password_var: spec.password,
        })
        return env

    def dump(self, spec: DatabaseSpec, dest_dir: str, adapter: Optional[str] = None) -> str:
        """
        Dump one database to {dest_dir}/{name}.dump.

        Args:
            spec: Connection parameters
            dest_dir: Working folder of the group
            adapter: Adapter path (resolved when omitted)

        Returns:
            Path to the dump file

        Raises:
            DumpError: If the adapter fails or exits non-zero
        """
        adapter = adapter or self.adapter_path()
        dump_path = os.path.join(dest_dir, f"{sanitize_identifier(spec.name)}{DUMP_EXTENSION}")

        logger.info(f"  - Dumping database '{spec.name}'...")

        try:
            with open(dump_path, 'wb') as out:
                result = subprocess.run(
                    [adapter, spec.name],
                    stdout=out,
                    stderr=subprocess.PIPE,
                    env=self.connection_env(spec)
                )
        except OSError as e:
            raise DumpError(f"Failed to run dump adapter for '{spec.name}': {e}")

        if result.returncode != 0:
            stderr = mask_secrets(result.stderr.decode(errors='replace').strip(), [spec.password])
            raise DumpError(
                f"Database dump for '{spec.name}' failed with exit code {result.returncode}"
                + (f": {stderr}" if stderr else '')
            )

        return dump_path

    def acquire(self, databases: Sequence[DatabaseSpec], dest_dir: str) -> List[str]:
        """
        Dump every database of a group, stopping at the first failure.

        Raises:
            DumpError: If the adapter is unavailable or any dump fails
        """
        if not databases:
            return []

        adapter = self.adapter_path()
        return [self.dump(spec, dest_dir, adapter) for spec in databases]
