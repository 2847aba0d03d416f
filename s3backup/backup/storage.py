"""
Storage handlers for backup archives.

Supports:
- RcloneStorage: copy/delete/size through the rclone program (default)
- S3Storage: the same operations through boto3

Both handlers are keyed by the rendered transport config file and store
archives under {bucket}/{prefix}/{identifier}/{archive filename}.
"""

import logging
import os
import subprocess
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError

from s3backup.config import Config
from s3backup.exceptions import ConfigurationError, GroupError
from .transport import REMOTE_NAME, load_transport_config


logger = logging.getLogger(__name__)

UPLOAD_CONCURRENCY = 4
CHUNK_SIZE_MB = 64

BASELINE_UPLOAD_FLAGS = [
    f'--s3-upload-concurrency={UPLOAD_CONCURRENCY}',
    f'--s3-chunk-size={CHUNK_SIZE_MB}M',
    '--s3-no-check-bucket',
]

# S3 DeleteObjects accepts at most 1000 keys per request
DELETE_BATCH_SIZE = 1000

SUPPORTED_TRANSPORTS = ('rclone', 'boto3')


class StorageError(GroupError):
    """Raised when storage operation fails."""
    pass


class RcloneStorage:
    """
    Handler for uploading and pruning backups with rclone.

    Every call runs `rclone --config <file> <command> ...` and blocks until
    rclone exits. No timeout is imposed.
    """

    def __init__(self, config_path: str, bucket_name: str, rclone_binary: str = 'rclone',
                 extra_flags: Optional[List[str]] = None):
        """
        Initialize rclone storage handler.

        Args:
            config_path: Path to the rendered transport config file
            bucket_name: Bucket that holds all backups
            rclone_binary: rclone executable
            extra_flags: Additional flags appended verbatim to uploads
        """
        self.config_path = config_path
        self.bucket_name = bucket_name
        self.rclone_binary = rclone_binary
        self.extra_flags = list(extra_flags or [])

    def _remote(self, path: str = '') -> str:
        return f"{REMOTE_NAME}:{self.bucket_name}/{path}" if path else f"{REMOTE_NAME}:{self.bucket_name}"

    def _run(self, args: List[str], action: str) -> subprocess.CompletedProcess:
        """
        Run an rclone command.

        Raises:
            StorageError: If rclone cannot be started or exits non-zero
        """
        command = [self.rclone_binary, '--config', self.config_path] + args
        logger.debug(f"Running: {' '.join(command)}")

        try:
            result = subprocess.run(command, capture_output=True, text=True)
        except OSError as e:
            raise StorageError(f"Failed to run rclone for {action}: {e}")

        for line in (result.stdout or '').splitlines():
            logger.info(f"rclone: {line}")
        for line in (result.stderr or '').splitlines():
            logger.info(f"rclone: {line}")

        if result.returncode != 0:
            raise StorageError(f"rclone {action} failed with exit code {result.returncode}")

        return result

    def upload(self, local_path: str, remote_folder: str) -> str:
        """
        Upload archive to {bucket}/{remote_folder}/{filename}.

        Returns:
            Remote path of the uploaded file

        Raises:
            StorageError: If the file is missing or the upload fails
        """
        if not os.path.exists(local_path):
            raise StorageError(f"Local file not found: {local_path}")

        destination = self._remote(f"{remote_folder}/{os.path.basename(local_path)}")
        logger.info(f"Uploading to: {destination}")

        self._run(['copyto', local_path, destination] + BASELINE_UPLOAD_FLAGS + self.extra_flags, 'upload')
        return destination

    def delete_older_than(self, remote_folder: str, days: int, dry_run: bool = False) -> Optional[List[str]]:
        """
        Delete files older than `days` under {bucket}/{remote_folder}/.

        With dry_run, rclone reports what it would delete and deletes nothing.

        Returns:
            None, rclone does not report deleted keys in a parseable form

        Raises:
            StorageError: If rclone fails
        """
        target = self._remote(f"{remote_folder}/")
        args = ['delete', target, '--min-age', f'{days}d']
        if dry_run:
            args.append('--dry-run')

        logger.info(f"Deleting files older than {days} days from '{target}'...")
        self._run(args, 'delete')
        return None

    def test_connection(self) -> bool:
        """
        Test bucket access with `rclone size`.

        Raises:
            StorageError: If the probe fails
        """
        self._run(['size', self._remote()], 'size')
        return True


class S3Storage:
    """
    Handler for uploading and pruning backups with boto3.

    Reads credentials, region and endpoint from the rendered transport
    config file.
    """

    def __init__(self, config_path: str, bucket_name: str):
        """
        Initialize S3 storage handler.

        Args:
            config_path: Path to the rendered transport config file
            bucket_name: Bucket that holds all backups
        """
        self.bucket_name = bucket_name
        transport_config = load_transport_config(config_path)
        self.acl = transport_config.acl

        try:
            self.s3_client = boto3.client(
                's3',
                aws_access_key_id=transport_config.access_key_id,
                aws_secret_access_key=transport_config.secret_access_key,
                region_name=transport_config.region or None,
                endpoint_url=transport_config.endpoint or None
            )
        except (BotoCoreError, ValueError) as e:
            raise StorageError(f"Failed to initialize S3 client: {e}")

        self.transfer_config = TransferConfig(
            max_concurrency=UPLOAD_CONCURRENCY,
            multipart_chunksize=CHUNK_SIZE_MB * 1024 * 1024
        )

    def upload(self, local_path: str, remote_folder: str) -> str:
        """
        Upload archive to {remote_folder}/{filename}.

        Returns:
            S3 key of uploaded file

        Raises:
            StorageError: If upload fails
        """
        if not os.path.exists(local_path):
            raise StorageError(f"Local file not found: {local_path}")

        s3_key = f"{remote_folder}/{os.path.basename(local_path)}"
        logger.info(f"Uploading to: s3://{self.bucket_name}/{s3_key}")

        try:
            self.s3_client.upload_file(
                local_path,
                self.bucket_name,
                s3_key,
                ExtraArgs={'ACL': self.acl},
                Config=self.transfer_config
            )
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise StorageError(f"S3 upload failed ({error_code}): {e}")
        except (BotoCoreError, S3UploadFailedError) as e:
            raise StorageError(f"S3 upload failed: {e}")

        return s3_key

    def list_objects(self, prefix: str) -> list:
        """
        List objects in S3 with given prefix.

        Returns:
            List of dicts with 'Key', 'LastModified', and 'Size' keys

        Raises:
            StorageError: If listing fails
        """
        try:
            objects = []
            paginator = self.s3_client.get_paginator('list_objects_v2')

            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                for obj in page.get('Contents', []):
                    objects.append({
                        'Key': obj['Key'],
                        'LastModified': obj['LastModified'],
                        'Size': obj['Size']
                    })

            return objects

        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise StorageError(f"S3 list failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"Failed to list S3 objects: {e}")

    def delete_older_than(self, remote_folder: str, days: int, dry_run: bool = False) -> List[str]:
        """
        Delete objects under {remote_folder}/ last modified at least `days` ago.

        Args:
            remote_folder: Folder relative to the bucket root
            days: Minimum age in days
            dry_run: Select and log, but do not delete

        Returns:
            Keys that were deleted (or would be, with dry_run)

        Raises:
            StorageError: If listing or deletion fails
        """
        prefix = f"{remote_folder}/"
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        logger.info(f"Deleting files older than {days} days from 's3://{self.bucket_name}/{prefix}'...")

        to_delete = [
            obj['Key'] for obj in self.list_objects(prefix)
            if obj['LastModified'] <= cutoff
        ]

        if dry_run:
            for key in to_delete:
                logger.info(f"Would delete (dry run): {key}")
            return to_delete

        for start in range(0, len(to_delete), DELETE_BATCH_SIZE):
            batch = to_delete[start:start + DELETE_BATCH_SIZE]
            try:
                response = self.s3_client.delete_objects(
                    Bucket=self.bucket_name,
                    Delete={'Objects': [{'Key': key} for key in batch], 'Quiet': True}
                )
            except ClientError as e:
                error_code = e.response.get('Error', {}).get('Code', 'Unknown')
                raise StorageError(f"S3 delete failed ({error_code}): {e}")
            except BotoCoreError as e:
                raise StorageError(f"Failed to delete from S3: {e}")

            errors = response.get('Errors', [])
            if errors:
                failed = ', '.join(error['Key'] for error in errors)
                raise StorageError(f"S3 delete failed for: {failed}")

            for key in batch:
                logger.info(f"Deleted S3 object: {key}")

        return to_delete

    def test_connection(self) -> bool:
        """
        Test S3 connection and bucket access.

        Raises:
            StorageError: If connection test fails
        """
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            return True
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            if error_code == '404':
                raise StorageError(f"Bucket does not exist: {self.bucket_name}")
            elif error_code == '403':
                raise StorageError(f"Access denied to bucket: {self.bucket_name}")
            else:
                raise StorageError(f"S3 connection test failed ({error_code}): {e}")
        except BotoCoreError as e:
            raise StorageError(f"Failed to connect to S3: {e}")


def create_storage(config: Config, config_path: str):
    """
    Factory function to create the configured storage handler.

    Args:
        config: Validated configuration
        config_path: Path to the rendered transport config file

    Returns:
        RcloneStorage or S3Storage instance

    Raises:
        ConfigurationError: If the transport is not supported
    """
    if config.transport == 'rclone':
        return RcloneStorage(
            config_path,
            config.bucket_name,
            rclone_binary=config.rclone_binary,
            extra_flags=config.rclone_flags.split()
        )
    elif config.transport == 'boto3':
        if config.rclone_flags:
            logger.warning("RCLONE_FLAGS is set but S3_TRANSPORT is 'boto3'. The flags will be ignored.")
        return S3Storage(config_path, config.bucket_name)
    else:
        raise ConfigurationError(
            f"Invalid S3_TRANSPORT: {config.transport}. Valid options: {list(SUPPORTED_TRANSPORTS)}"
        )
