"""
Shared pytest fixtures for s3backup tests.

This module provides fixtures for:
- Environment mappings and Config objects
- Executable dump adapter scripts
- Mock S3 service (moto)
- Temporary file fixtures
"""

import os
import stat

import pytest
import boto3
from moto import mock_aws

from s3backup.config import Config


BUCKET = 'test-bucket'

# Echoes its argument and the connection environment it was given
PG_ADAPTER_OK = """#!/bin/sh
echo "dump:$1 host=$PGHOST port=$PGPORT user=$PGUSER password=$PGPASSWORD"
"""

MYSQL_ADAPTER_OK = """#!/bin/sh
echo "dump:$1 host=$MYSQL_HOST port=$MYSQL_PORT user=$MYSQL_USER password=$MYSQL_PASSWORD"
"""

ADAPTER_FAIL = """#!/bin/sh
echo "FATAL: password authentication failed (password=$PGPASSWORD)" >&2
exit 3
"""


def write_adapter(directory, name, body):
    """Write an executable adapter script and return its path."""
    path = directory / name
    path.write_text(body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def adapter_dir(tmp_path):
    """
    Directory with working postgres and mysql dump adapters.
    """
    directory = tmp_path / 'adapters'
    directory.mkdir()
    write_adapter(directory, 'perform-db-dump.pg', PG_ADAPTER_OK)
    write_adapter(directory, 'perform-db-dump.mysql', MYSQL_ADAPTER_OK)
    return directory


@pytest.fixture
def failing_adapter(tmp_path):
    """
    Postgres dump adapter that always exits non-zero.
    """
    directory = tmp_path / 'failing_adapters'
    directory.mkdir()
    return write_adapter(directory, 'perform-db-dump.pg', ADAPTER_FAIL)


@pytest.fixture
def work_dir(tmp_path):
    """Scratch space for per-group working folders."""
    directory = tmp_path / 'work'
    directory.mkdir()
    return directory


@pytest.fixture
def base_env(adapter_dir, work_dir):
    """
    Minimal valid environment for an AWS-backed, boto3-transport run.
    """
    return {
        'DB_DRIVER': 'postgres',
        'DATABASES': 'appdb:localhost:5432:backup:s3cret',
        'DIRECTORIES_TO_BACKUP': 'NONE',
        'S3_PROVIDER': 'aws',
        'BUCKET_NAME': BUCKET,
        'AWS_ACCESS_KEY_ID': 'test_access_key',
        'AWS_SECRET_ACCESS_KEY': 'test_secret_key',
        'AWS_REGION': 'us-east-1',
        'NUMBER_OF_DAYS': '15',
        'S3_TRANSPORT': 'boto3',
        'DUMP_ADAPTER_DIR': str(adapter_dir),
        'BACKUP_WORK_DIR': str(work_dir),
    }


@pytest.fixture
def config(base_env):
    """Config built from base_env."""
    return Config.from_environ(base_env)


@pytest.fixture
def mock_s3():
    """
    Mock AWS S3 service using moto.

    Creates a test bucket 'test-bucket' in us-east-1 region.
    """
    with mock_aws():
        s3 = boto3.resource('s3', region_name='us-east-1')
        s3.create_bucket(Bucket=BUCKET)
        yield s3


@pytest.fixture
def temp_files(tmp_path):
    """
    Create test directories that look like application data.

    Creates:
    - data/app1/config.ini
    - data/app1/uploads/image.bin
    - etc/app1/nginx.conf
    - var/log/app2/app.log
    """
    app1 = tmp_path / 'data' / 'app1'
    (app1 / 'uploads').mkdir(parents=True)
    (app1 / 'config.ini').write_text('[app]\nname = app1\n')
    (app1 / 'uploads' / 'image.bin').write_bytes(b'\x89PNG')
    os.chmod(app1 / 'config.ini', 0o640)

    etc_app1 = tmp_path / 'etc' / 'app1'
    etc_app1.mkdir(parents=True)
    (etc_app1 / 'nginx.conf').write_text('server {}\n')

    app2 = tmp_path / 'var' / 'log' / 'app2'
    app2.mkdir(parents=True)
    (app2 / 'app.log').write_text('started\n')

    return tmp_path
