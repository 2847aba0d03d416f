"""
Archive creation and naming for backup groups.

Every group produces one archive whose only top-level entry is the group's
working folder, so extracting it yields {identifier}_backup_{timestamp}/.

Archive formats (BACKUP_ARCHIVE_FORMAT):
- tar.gz: gzip compressed tar (default)
- tar.bz2: bzip2 compressed tar
- tar.xz: xz compressed tar
- zip: deflate compressed zip
"""

import os
import tarfile
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from s3backup.exceptions import GroupError


TIMESTAMP_FORMAT = '%Y-%m-%dT%H-%M-%SZ'

# Format -> (extension, tarfile mode or None for zip)
ARCHIVE_FORMATS = {
    'tar.gz': ('tar.gz', 'w:gz'),
    'tar.bz2': ('tar.bz2', 'w:bz2'),
    'tar.xz': ('tar.xz', 'w:xz'),
    'zip': ('zip', None),
}


class CompressionError(GroupError):
    """Raised when a group archive cannot be written."""
    pass


def create_archive(
    source_paths: List[str],
    output_path: str,
    compression_format: str = 'tar.gz'
) -> str:
    """
    Archive source paths, each stored under its own base name.

    Args:
        source_paths: Paths to archive, normally just the working folder
        output_path: Archive path without extension
        compression_format: One of ARCHIVE_FORMATS

    Returns:
        Path of the written archive ({output_path}.{extension})

    Raises:
        CompressionError: If nothing is given or writing fails
        ValueError: If compression_format is unknown
    """
    if not source_paths:
        raise CompressionError("Nothing to archive: no source paths given")

    try:
        extension, mode = ARCHIVE_FORMATS[compression_format]
    except KeyError:
        raise ValueError(
            f"Invalid compression format: {compression_format}. "
            f"Valid options: {list(ARCHIVE_FORMATS)}"
        )

    archive_path = f"{output_path}.{extension}"
    writer = _write_zip if mode is None else _write_tar

    try:
        writer(source_paths, archive_path, mode)
    except (OSError, tarfile.TarError, zipfile.BadZipFile, CompressionError) as e:
        # No partial archives left behind
        if os.path.exists(archive_path):
            os.remove(archive_path)
        raise CompressionError(f"Failed to write archive {os.path.basename(archive_path)}: {e}")

    return archive_path


def _write_zip(source_paths: List[str], archive_path: str, mode=None):
    with zipfile.ZipFile(archive_path, 'w', zipfile.ZIP_DEFLATED) as archive:
        for path in map(Path, source_paths):
            if not (path.is_file() or path.is_dir()):
                raise CompressionError(f"Cannot archive {path}: not a file or directory")

            archive.write(path, path.name)
            if path.is_dir():
                for entry in sorted(path.rglob('*')):
                    archive.write(entry, entry.relative_to(path.parent))


def _write_tar(source_paths: List[str], archive_path: str, mode: str):
    with tarfile.open(archive_path, mode) as archive:
        for path in map(Path, source_paths):
            if not os.path.lexists(path):
                raise CompressionError(f"Cannot archive {path}: no such file or directory")
            archive.add(path, arcname=path.name, recursive=True)


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """
    Filesystem-safe UTC timestamp, e.g. 2024-01-15T12-00-00Z.

    Args:
        now: Instant to format (default: current time)
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime(TIMESTAMP_FORMAT)


def generate_archive_name(identifier: str, timestamp: str) -> str:
    """Working folder and archive base name: {identifier}_backup_{timestamp}"""
    return f"{identifier}_backup_{timestamp}"


def get_archive_size(archive_path: str) -> int:
    """
    Size of an archive in bytes.

    Raises:
        CompressionError: If the archive cannot be stat'ed
    """
    try:
        return os.stat(archive_path).st_size
    except OSError as e:
        raise CompressionError(f"Failed to get archive size: {e}")
