"""
Unit tests for backup sources (s3backup/backup/sources.py).

Tests DirectorySource copying and DatabaseSource adapter dispatch.
"""

import os
import stat
from unittest.mock import patch

import pytest

from s3backup.backup.sources import (
    DatabaseSource,
    DirectorySource,
    DumpError,
    SourceError,
    mask_secrets,
)
from s3backup.config import Config
from s3backup.models import DatabaseSpec


APPDB = DatabaseSpec('appdb', 'db.internal', '5432', 'backup', 's3cret')


class TestDirectorySource:
    """Test DirectorySource for local filesystem copies."""

    def test_copy_directory(self, temp_files, tmp_path):
        dest = tmp_path / 'dest'
        dest.mkdir()

        acquired = DirectorySource([str(temp_files / 'var' / 'log' / 'app2')]).acquire(str(dest))

        assert acquired == [str(dest / 'app2')]
        assert (dest / 'app2' / 'app.log').read_text() == 'started\n'

    def test_same_basename_merges(self, temp_files, tmp_path):
        """Test that two directories with the same base name land in one folder."""
        dest = tmp_path / 'dest'
        dest.mkdir()

        DirectorySource([
            str(temp_files / 'data' / 'app1'),
            str(temp_files / 'etc' / 'app1'),
        ]).acquire(str(dest))

        assert (dest / 'app1' / 'config.ini').exists()
        assert (dest / 'app1' / 'uploads' / 'image.bin').exists()
        assert (dest / 'app1' / 'nginx.conf').exists()

    def test_permissions_preserved(self, temp_files, tmp_path):
        dest = tmp_path / 'dest'
        dest.mkdir()

        DirectorySource([str(temp_files / 'data' / 'app1')]).acquire(str(dest))

        mode = stat.S_IMODE(os.stat(dest / 'app1' / 'config.ini').st_mode)
        assert mode == 0o640

    def test_copy_single_file(self, temp_files, tmp_path):
        dest = tmp_path / 'dest'
        dest.mkdir()

        DirectorySource([str(temp_files / 'etc' / 'app1' / 'nginx.conf')]).acquire(str(dest))

        assert (dest / 'nginx.conf').read_text() == 'server {}\n'

    def test_symlink_copied_as_link(self, tmp_path):
        source = tmp_path / 'src'
        source.mkdir()
        (source / 'target.txt').write_text('data')
        os.symlink('target.txt', source / 'link.txt')
        dest = tmp_path / 'dest'
        dest.mkdir()

        DirectorySource([str(source)]).acquire(str(dest))

        assert os.path.islink(dest / 'src' / 'link.txt')
        assert os.readlink(dest / 'src' / 'link.txt') == 'target.txt'

    def test_missing_path_skipped(self, temp_files, tmp_path, caplog):
        dest = tmp_path / 'dest'
        dest.mkdir()
        missing = str(tmp_path / 'does-not-exist')

        with caplog.at_level('INFO'):
            acquired = DirectorySource([missing, str(temp_files / 'etc' / 'app1')]).acquire(str(dest))

        assert acquired == [str(dest / 'app1')]
        assert f'Skipping missing file/directory: {missing}' in caplog.text

    def test_all_paths_missing(self, tmp_path):
        dest = tmp_path / 'dest'
        dest.mkdir()

        assert DirectorySource([str(tmp_path / 'a'), str(tmp_path / 'b')]).acquire(str(dest)) == []

    @patch('s3backup.backup.sources.shutil.copytree')
    def test_permission_error(self, mock_copytree, temp_files, tmp_path):
        mock_copytree.side_effect = PermissionError('denied')
        dest = tmp_path / 'dest'
        dest.mkdir()

        with pytest.raises(SourceError, match='Permission denied'):
            DirectorySource([str(temp_files / 'data' / 'app1')]).acquire(str(dest))

    @patch('s3backup.backup.sources.shutil.copy2')
    def test_os_error(self, mock_copy2, temp_files, tmp_path):
        mock_copy2.side_effect = OSError('disk full')
        dest = tmp_path / 'dest'
        dest.mkdir()

        with pytest.raises(SourceError, match='disk full'):
            DirectorySource([str(temp_files / 'etc' / 'app1' / 'nginx.conf')]).acquire(str(dest))


class TestDatabaseSource:
    """Test DatabaseSource adapter dispatch."""

    def test_dump_passes_connection_env(self, adapter_dir, tmp_path):
        source = DatabaseSource('postgres', str(adapter_dir))

        dump_path = source.dump(APPDB, str(tmp_path))

        assert dump_path == str(tmp_path / 'appdb.dump')
        assert (tmp_path / 'appdb.dump').read_text() == (
            'dump:appdb host=db.internal port=5432 user=backup password=s3cret\n'
        )

    @pytest.mark.parametrize('driver', ['mysql', 'mariadb', 'MySQL'])
    def test_mysql_family_uses_mysql_adapter(self, driver, adapter_dir, tmp_path):
        source = DatabaseSource(driver, str(adapter_dir))

        source.dump(APPDB, str(tmp_path))

        assert (tmp_path / 'appdb.dump').read_text() == (
            'dump:appdb host=db.internal port=5432 user=backup password=s3cret\n'
        )
        assert source.adapter_path().endswith('perform-db-dump.mysql')

    def test_dump_file_name_sanitized(self, adapter_dir, tmp_path):
        """Test that a database name with path separators stays inside the working folder."""
        spec = DatabaseSpec('sales/../2024', 'db.internal', '5432', 'backup', 's3cret')

        dump_path = DatabaseSource('postgres', str(adapter_dir)).dump(spec, str(tmp_path))

        assert dump_path == str(tmp_path / 'sales_.._2024.dump')
        assert (tmp_path / 'sales_.._2024.dump').read_text().startswith('dump:sales/../2024 ')

    def test_connection_env_does_not_leak(self, adapter_dir, tmp_path):
        DatabaseSource('postgres', str(adapter_dir)).dump(APPDB, str(tmp_path))

        assert os.environ.get('PGPASSWORD') != 's3cret'

    def test_acquire_several_databases(self, adapter_dir, tmp_path):
        other = DatabaseSpec('reports', 'db2', '5433', 'ro', 'pw2')

        paths = DatabaseSource('postgres', str(adapter_dir)).acquire([APPDB, other], str(tmp_path))

        assert paths == [str(tmp_path / 'appdb.dump'), str(tmp_path / 'reports.dump')]
        assert 'host=db2 port=5433' in (tmp_path / 'reports.dump').read_text()

    def test_acquire_no_databases(self, tmp_path):
        assert DatabaseSource('postgres', str(tmp_path / 'nowhere')).acquire([], str(tmp_path)) == []

    def test_failing_adapter_masks_password(self, failing_adapter, tmp_path):
        source = DatabaseSource('postgres', str(failing_adapter.parent))

        with pytest.raises(DumpError) as exc_info:
            source.dump(APPDB, str(tmp_path))

        message = str(exc_info.value)
        assert 'exit code 3' in message
        assert 'password authentication failed' in message
        assert 's3cret' not in message

    def test_missing_adapter(self, tmp_path):
        source = DatabaseSource('postgres', str(tmp_path))

        with pytest.raises(DumpError, match='not found or not executable'):
            source.acquire([APPDB], str(tmp_path))

    def test_adapter_not_executable(self, tmp_path):
        (tmp_path / 'perform-db-dump.pg').write_text('#!/bin/sh\n')

        with pytest.raises(DumpError, match='not found or not executable'):
            DatabaseSource('postgres', str(tmp_path)).adapter_path()

    def test_unsupported_driver(self, adapter_dir):
        with pytest.raises(DumpError, match='Unsupported DB_DRIVER'):
            DatabaseSource('oracle', str(adapter_dir)).adapter_path()

    def test_from_config_overrides(self, adapter_dir):
        custom = str(adapter_dir / 'perform-db-dump.mysql')
        config = Config(db_driver='postgres', dump_adapter_dir='/nowhere', pg_dump_adapter=custom)

        source = DatabaseSource.from_config(config)

        assert source.adapter_path() == custom


class TestMaskSecrets:
    """Test secret masking in adapter output."""

    def test_mask(self):
        assert mask_secrets('login with s3cret failed', ['s3cret']) == 'login with *** failed'

    def test_empty_secret_ignored(self):
        assert mask_secrets('unchanged', ['']) == 'unchanged'
