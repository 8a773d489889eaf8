"""
Shared pytest fixtures for dbbackup tests.

This module provides fixtures for:
- Flask app and test client
- Database, store and retention settings
- Orchestrator with a fake pg_dump
- Mock S3 via moto
"""

import logging
from unittest.mock import MagicMock, patch

import pytest
import boto3
from moto import mock_aws

from dbbackup import create_app
from dbbackup import scheduler as scheduler_module
from dbbackup.backup.models import BackupConfig, StoreConfig, RetentionPolicy
from dbbackup.backup.executor import BackupOrchestrator


@pytest.fixture(scope='function')
def app_config(tmp_path):
    """Complete configuration overrides for a test app."""
    return {
        'TEMP_DIR': str(tmp_path / 'temp'),
        'LOG_DIR': str(tmp_path / 'logs'),
        'BACKUP_ENABLED': True,
        'BACKUP_CRON': '0 3 * * *',
        'BACKUP_RETENTION_DAYS': 7,
        'DB_HOST': 'db.example.com',
        'DB_PORT': 5432,
        'DB_NAME': 'appdb',
        'DB_USER': 'backup',
        'DB_PASSWORD': 's3cret',
        'AWS_S3_BUCKET': 'mybucket',
        'AWS_REGION': 'us-east-1',
        'AWS_ACCESS_KEY_ID': 'test_access_key',
        'AWS_SECRET_ACCESS_KEY': 'test_secret_key',
        'AWS_S3_PREFIX': 'backups/',
    }


@pytest.fixture(scope='function')
def app(app_config):
    """
    Create Flask app with test configuration.

    The scheduler is not started; tests that need it install a mock.
    """
    app = create_app('testing', config_overrides=app_config)

    yield app

    scheduler_module.scheduler = None
    scheduler_module.flask_app = None


@pytest.fixture(scope='function')
def client(app):
    """Flask test client for making HTTP requests."""
    return app.test_client()


@pytest.fixture
def backup_config():
    return BackupConfig(
        host='db.example.com',
        port=5432,
        database_name='appdb',
        user='backup',
        password='s3cret'
    )


@pytest.fixture
def store_config():
    return StoreConfig(
        bucket='mybucket',
        region='us-east-1',
        access_key_id='test_access_key',
        secret_access_key='test_secret_key'
    )


@pytest.fixture
def retention_policy():
    return RetentionPolicy(retention_days=7)


class FakeDumpProducer:
    """Stands in for pg_dump by writing a file of the requested size."""

    def __init__(self, size=1024 * 1024):
        self.size = size
        self.calls = []

    def produce_dump(self, config, output_path):
        config.validate()
        self.calls.append(output_path)
        chunk = b'COPY public.items (id, name) FROM stdin;\n1\tpostgres\n' * 1024
        written = 0
        with open(output_path, 'wb') as f:
            while written < self.size:
                data = chunk[:self.size - written]
                f.write(data)
                written += len(data)
        return output_path


@pytest.fixture
def fake_dump_producer():
    return FakeDumpProducer()


@pytest.fixture
def mock_storage():
    """MagicMock store client with the real URI format."""
    storage = MagicMock()
    storage.uri_for.side_effect = lambda key: f"store://mybucket/{key}"
    storage.list_objects.return_value = []
    return storage


@pytest.fixture
def orchestrator(tmp_path, backup_config, store_config, retention_policy,
                 fake_dump_producer, mock_storage):
    """Orchestrator with a fake pg_dump and a mocked store client."""
    return BackupOrchestrator(
        backup_config,
        store_config,
        retention_policy,
        logger=logging.getLogger('tests.dbbackup'),
        temp_dir=str(tmp_path / 'work'),
        dump_producer=fake_dump_producer,
        storage=mock_storage
    )


@pytest.fixture
def mock_s3():
    """
    Mock AWS S3 service using moto.

    Creates a test bucket 'mybucket' in us-east-1 region.
    """
    with mock_aws():
        s3 = boto3.resource('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='mybucket')
        yield s3


@pytest.fixture(scope='function')
def mock_scheduler():
    """
    Mock APScheduler for testing scheduler functionality.
    """
    with patch('dbbackup.scheduler.BackgroundScheduler') as mock_sched:
        scheduler_instance = MagicMock()
        mock_sched.return_value = scheduler_instance

        scheduler_instance.running = False
        scheduler_instance.state = 0
        scheduler_instance.get_jobs.return_value = []

        yield scheduler_instance
