"""
Backup module for s3backup.

This module handles the core backup functionality including:
- Group parsing and identifier resolution
- Provider profiles and transport configuration
- Source acquisition (directories and database dumps)
- Compression
- Storage (rclone and boto3)
- Execution orchestration
- Retention policy enforcement
"""

from .executor import BackupOrchestrator, GroupBackupExecutor, run_backup
from .groups import parse_groups, remote_folder, resolve_identifier
from .sources import DatabaseSource, DirectorySource
from .compression import create_archive
from .storage import RcloneStorage, S3Storage, create_storage
from .retention import RetentionManager, enforce_retention_policies

__all__ = [
    'BackupOrchestrator',
    'GroupBackupExecutor',
    'run_backup',
    'parse_groups',
    'remote_folder',
    'resolve_identifier',
    'DatabaseSource',
    'DirectorySource',
    'create_archive',
    'RcloneStorage',
    'S3Storage',
    'create_storage',
    'RetentionManager',
    'enforce_retention_policies'
]
