"""
Unit tests for configuration loading (s3backup/config.py) and logging setup.
"""

import logging
import tempfile

from s3backup import configure_logging
from s3backup.config import Config


class TestConfigFromEnviron:
    """Test building Config from environment mappings."""

    def test_defaults(self):
        config = Config.from_environ({})

        assert config.db_driver is None
        assert config.transport == 'rclone'
        assert config.rclone_binary == 'rclone'
        assert config.dump_adapter_dir == '/usr/local/bin'
        assert config.archive_format == 'tar.gz'
        assert config.work_dir == tempfile.gettempdir()
        assert config.timezone == 'UTC'
        assert config.log_level == 'INFO'
        assert config.dry_run is False
        assert config.retention_days is None

    def test_reads_settings(self, base_env):
        config = Config.from_environ(base_env)

        assert config.db_driver == 'postgres'
        assert config.bucket_name == 'test-bucket'
        assert config.region == 'us-east-1'
        assert config.transport == 'boto3'
        assert config.retention_days == 15

    def test_empty_values_are_unset(self):
        config = Config.from_environ({'AWS_S3_ENDPOINT_URL': '', 'BACKUP_PATH_PREFIX': '  ', 'TZ': ''})

        assert config.endpoint_url is None
        assert config.backup_path_prefix is None
        assert config.timezone == 'UTC'

    def test_dry_run_case_insensitive(self):
        assert Config.from_environ({'DRY_RUN': 'TRUE'}).dry_run is True
        assert Config.from_environ({'DRY_RUN': 'yes'}).dry_run is False

    def test_normalization(self):
        config = Config.from_environ({'S3_TRANSPORT': ' Boto3 ', 'LOG_LEVEL': 'debug'})

        assert config.transport == 'boto3'
        assert config.log_level == 'DEBUG'

    def test_reads_os_environ_by_default(self, monkeypatch):
        monkeypatch.setenv('BUCKET_NAME', 'from-env')

        assert Config.from_environ().bucket_name == 'from-env'

    def test_repr_hides_credentials(self, base_env):
        text = repr(Config.from_environ(base_env))

        assert 'test_secret_key' not in text
        assert 'test_access_key' not in text
        assert 's3cret' not in text
        assert 'test-bucket' in text


class TestConfigureLogging:
    """Test logging setup."""

    def teardown_method(self):
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        root.setLevel(logging.WARNING)

    def test_log_file_created(self, tmp_path):
        configure_logging('DEBUG', str(tmp_path / 'logs'))
        logging.getLogger('s3backup.test').info('hello')

        assert 'hello' in (tmp_path / 'logs' / 's3backup.log').read_text()

    def test_level(self):
        configure_logging('WARNING')

        assert logging.getLogger().level == logging.WARNING

    def test_invalid_level_falls_back_to_info(self):
        configure_logging('LOUD')

        assert logging.getLogger().level == logging.INFO

    def test_noisy_loggers_quieted(self):
        configure_logging('DEBUG')

        assert logging.getLogger('botocore').level == logging.WARNING
