"""
Backup executor - orchestrates the backup workflow for every group.

Workflow per group:
1. Create a scratch directory and the group's working folder
2. Copy directories into the working folder (missing ones are skipped)
3. Dump databases into the working folder
4. Create one compressed archive from the working folder
5. Upload to {bucket}/{prefix}/{identifier}/
6. Remove the scratch directory, success or failure

Groups run strictly one after another. A failed group is logged and
counted; the remaining groups still run.
"""

import logging
import os
import shutil
import tempfile
from typing import List, Optional

from s3backup.config import Config
from s3backup.exceptions import GroupError, RunSummaryError, TransportSetupError
from s3backup.models import BackupGroup, GroupResult, GroupState, RunSummary
from .compression import create_archive, generate_archive_name, get_archive_size, utc_timestamp
from .groups import remote_folder
from .sources import DatabaseSource, DirectorySource, SourceError
from .storage import create_storage
from .transport import build_transport_config, transport_config_file


logger = logging.getLogger(__name__)


class GroupBackupExecutor:
    """
    Runs the backup workflow for a single group.
    """

    def __init__(self, group: BackupGroup, config: Config, storage, database_source: DatabaseSource):
        """
        Initialize group executor.

        Args:
            group: Group to back up
            config: Validated configuration
            storage: RcloneStorage or S3Storage instance shared by the run
            database_source: Dump adapter dispatcher
        """
        self.group = group
        self.config = config
        self.storage = storage
        self.database_source = database_source
        self.result = GroupResult(group=group)
        self.scratch_dir = None
        self.archive_path = None

    def execute(self) -> GroupResult:
        """
        Execute the backup of this group.

        Returns:
            GroupResult with state DONE or FAILED
        """
        identifier = self.group.identifier
        logger.info(f"--- Starting backup for application group '{identifier}' ---")

        try:
            self._execute_workflow()
            self._transition(GroupState.DONE)
            logger.info(f"--- Backup for application group '{identifier}' complete. ---")

        except GroupError as e:
            failed_in = self.result.state.value
            self.result.state = GroupState.FAILED
            self.result.error = str(e)
            logger.error(f"[{identifier}] Backup failed while {failed_in}: {e}")

        finally:
            self._cleanup()

        return self.result

    def _transition(self, state: GroupState):
        logger.debug(f"[{self.group.identifier}] {self.result.state.value} -> {state.value}")
        self.result.state = state

    def _execute_workflow(self):
        """Execute the main backup workflow steps."""
        # One timestamp per group, taken before any work starts
        backup_name = generate_archive_name(self.group.identifier, utc_timestamp())

        self._transition(GroupState.STAGING)
        try:
            self.scratch_dir = tempfile.mkdtemp(prefix=f'{self.group.identifier}_', dir=self.config.work_dir)
            working_folder = os.path.join(self.scratch_dir, backup_name)
            os.makedirs(working_folder)
        except OSError as e:
            raise SourceError(f"Failed to create working folder in {self.config.work_dir}: {e}")

        if self.group.directories:
            logger.info(f"Backing up directories for group '{self.group.identifier}'...")
            DirectorySource(self.group.directories).acquire(working_folder)

        if self.group.databases:
            self._transition(GroupState.DUMPING)
            logger.info(f"Backing up databases for group '{self.group.identifier}'...")
            self.database_source.acquire(self.group.databases, working_folder)

        self._transition(GroupState.ARCHIVING)
        self.archive_path = create_archive(
            [working_folder],
            os.path.join(self.scratch_dir, backup_name),
            self.config.archive_format
        )
        size = get_archive_size(self.archive_path)
        logger.info(f"Archive created: {os.path.basename(self.archive_path)} ({size / 1024 / 1024:.2f} MB)")

        self._transition(GroupState.UPLOADING)
        folder = remote_folder(self.config.backup_path_prefix, self.group.identifier)
        self.result.remote_path = self.storage.upload(self.archive_path, folder)

    def _cleanup(self):
        """Remove the scratch directory with the working folder and archive."""
        if self.scratch_dir and os.path.exists(self.scratch_dir):
            logger.info(f"Cleaning up local files for group '{self.group.identifier}'...")
            shutil.rmtree(self.scratch_dir, ignore_errors=True)
        self.scratch_dir = None


class BackupOrchestrator:
    """
    Backs up all groups with one shared transport configuration.
    """

    def __init__(self, config: Config, groups: List[BackupGroup],
                 database_source: Optional[DatabaseSource] = None):
        """
        Initialize backup orchestrator.

        Args:
            config: Configuration returned by validate_config
            groups: Groups returned by validate_config
            database_source: Dump adapter dispatcher (built from config when omitted)
        """
        self.config = config
        self.groups = groups
        self.database_source = database_source or DatabaseSource.from_config(config)

    def run(self) -> RunSummary:
        """
        Back up every group in configuration order.

        Returns:
            RunSummary when every group succeeded

        Raises:
            TransportSetupError: If the transport config cannot be rendered
            RunSummaryError: If one or more groups failed
        """
        logger.info("Starting S3 backup job orchestrator...")
        logger.info(f"Found {len(self.groups)} application group(s) to back up.")

        summary = RunSummary(job='backup')

        with transport_config_file(build_transport_config(self.config)) as config_path:
            try:
                storage = create_storage(self.config, config_path)
            except GroupError as e:
                raise TransportSetupError(f"Failed to set up storage transport: {e}")

            for group in self.groups:
                result = GroupBackupExecutor(group, self.config, storage, self.database_source).execute()
                if result.failed:
                    logger.error(
                        f"A failure occurred during the backup of group #{group.index} "
                        f"('{group.identifier}'). Continuing with the next group."
                    )
                summary.results.append(result)

        logger.info(
            f"Backup job finished. Total groups processed: {summary.total}. "
            f"Failed groups: {summary.failed}."
        )

        if summary.failed:
            logger.error("One or more backup groups failed. Please check the logs.")
            raise RunSummaryError('backup', summary.total, summary.failed)

        return summary


def run_backup(config: Config, groups: List[BackupGroup]) -> RunSummary:
    """
    Run a backup of all groups.

    Args:
        config: Configuration returned by validate_config
        groups: Groups returned by validate_config

    Returns:
        RunSummary of the run
    """
    return BackupOrchestrator(config, groups).run()
