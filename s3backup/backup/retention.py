"""
Retention policy enforcement for backups.

Deletes remote archives older than NUMBER_OF_DAYS from every group's remote
folder. The folder is derived with the same parse_groups()/remote_folder()
calls the backup job uses, so cleanup targets exactly what backup created.
"""

import logging
from typing import List

from s3backup.config import Config
from s3backup.exceptions import GroupError, RunSummaryError, TransportSetupError
from s3backup.models import BackupGroup, GroupResult, GroupState, RunSummary
from .groups import remote_folder
from .storage import create_storage
from .transport import build_transport_config, transport_config_file


logger = logging.getLogger(__name__)


class RetentionManager:
    """
    Manages retention policy enforcement for all backup groups.
    """

    def __init__(self, config: Config, groups: List[BackupGroup]):
        """
        Initialize retention manager.

        Args:
            config: Configuration returned by validate_config (NUMBER_OF_DAYS set)
            groups: Groups returned by validate_config
        """
        self.config = config
        self.groups = groups
        self.days = config.retention_days
        self.dry_run = config.dry_run

    def enforce_all_policies(self) -> RunSummary:
        """
        Enforce the retention policy for every group in configuration order.

        Returns:
            RunSummary when every group succeeded

        Raises:
            TransportSetupError: If the transport config cannot be rendered
            RunSummaryError: If one or more groups failed
        """
        logger.info("Starting old backup cleanup orchestrator...")
        logger.info(f"Found {len(self.groups)} application group(s) to clean.")
        if self.dry_run:
            logger.info("DRY RUN enabled: no files will be deleted.")

        summary = RunSummary(job='cleanup')

        with transport_config_file(build_transport_config(self.config), prefix='rclone_cleanup.') as config_path:
            try:
                storage = create_storage(self.config, config_path)
            except GroupError as e:
                raise TransportSetupError(f"Failed to set up storage transport: {e}")

            for group in self.groups:
                result = self.enforce_group_policy(group, storage)
                if result.failed:
                    logger.error(
                        f"A failure occurred during the cleanup of group #{group.index} "
                        f"('{group.identifier}'). Continuing with the next group."
                    )
                summary.results.append(result)

        logger.info(
            f"Cleanup job finished. Total groups processed: {summary.total}. "
            f"Failed groups: {summary.failed}."
        )

        if summary.failed:
            logger.error("One or more cleanup groups failed. Please check the logs.")
            raise RunSummaryError('cleanup', summary.total, summary.failed)

        return summary

    def enforce_group_policy(self, group: BackupGroup, storage) -> GroupResult:
        """
        Delete aged archives from one group's remote folder.

        Args:
            group: Group to clean up
            storage: RcloneStorage or S3Storage instance shared by the run

        Returns:
            GroupResult with state DONE or FAILED
        """
        result = GroupResult(group=group)
        folder = remote_folder(self.config.backup_path_prefix, group.identifier)
        result.remote_path = folder

        logger.info(f"--- Cleaning up old backups for application group '{group.identifier}' ---")
        if self.dry_run:
            logger.info(f"Executing in DRY RUN mode for group '{group.identifier}'. No files will be deleted.")

        result.state = GroupState.DELETING
        try:
            deleted = storage.delete_older_than(folder, self.days, dry_run=self.dry_run)
        except GroupError as e:
            result.state = GroupState.FAILED
            result.error = str(e)
            logger.error(f"[{group.identifier}] Cleanup failed: {e}")
            return result

        if deleted is not None:
            verb = 'Would delete' if self.dry_run else 'Deleted'
            logger.info(f"{verb} {len(deleted)} object(s) for group '{group.identifier}'.")

        result.state = GroupState.DONE
        logger.info(f"Cleanup for group '{group.identifier}' completed successfully.")
        return result


def enforce_retention_policies(config: Config, groups: List[BackupGroup]) -> RunSummary:
    """
    Enforce retention policies for all groups.

    Returns:
        Summary from RetentionManager.enforce_all_policies()
    """
    manager = RetentionManager(config, groups)
    return manager.enforce_all_policies()
