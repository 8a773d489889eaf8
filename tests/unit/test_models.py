"""
Unit tests for pipeline settings and data records (dbbackup/backup/models.py).
"""

from datetime import datetime, timezone

import pytest

from dbbackup.backup.models import (
    BackupConfig,
    StoreConfig,
    RetentionPolicy,
    CleanupResult,
    ConfigurationError,
    BackupError,
    load_backup_settings
)


class TestBackupConfig:
    """Test BackupConfig validation."""

    def test_valid_config(self, backup_config):
        backup_config.validate()
        assert backup_config.missing_fields() == []

    @pytest.mark.parametrize("field_name", ['host', 'port', 'database_name', 'user', 'password'])
    def test_missing_field_raises(self, backup_config, field_name):
        """Each of the five connection fields is required."""
        setattr(backup_config, field_name, None)

        with pytest.raises(ConfigurationError, match=field_name):
            backup_config.validate()

    def test_empty_string_counts_as_missing(self, backup_config):
        backup_config.password = ''

        with pytest.raises(ConfigurationError, match='password'):
            backup_config.validate()

    def test_port_string_is_normalized(self, backup_config):
        backup_config.port = '6432'
        backup_config.validate()
        assert backup_config.port == 6432

    @pytest.mark.parametrize("port", ['abc', 0, 70000])
    def test_invalid_port(self, backup_config, port):
        backup_config.port = port

        with pytest.raises(ConfigurationError, match='port'):
            backup_config.validate()

    def test_from_mapping_accepts_plugin_keys(self):
        config = BackupConfig.from_mapping({
            'host': 'localhost',
            'port': 5432,
            'name': 'strapi',
            'user': 'postgres',
            'password': 'pw'
        })

        assert config.database_name == 'strapi'
        config.validate()

    def test_from_mapping_none(self):
        config = BackupConfig.from_mapping(None)
        assert len(config.missing_fields()) == 5


class TestStoreConfig:
    """Test StoreConfig validation and defaults."""

    def test_default_prefix(self, store_config):
        assert store_config.key_prefix == 'backups/'

    @pytest.mark.parametrize("field_name", ['bucket', 'region', 'access_key_id', 'secret_access_key'])
    def test_missing_field_raises(self, store_config, field_name):
        setattr(store_config, field_name, None)

        with pytest.raises(ConfigurationError, match=field_name):
            store_config.validate()

    def test_from_mapping_accepts_plugin_keys(self):
        config = StoreConfig.from_mapping({
            'bucket': 'b',
            'region': 'eu-west-1',
            'accessKeyId': 'AK',
            'secretAccessKey': 'SK',
            'prefix': 'db/'
        })

        assert config.access_key_id == 'AK'
        assert config.secret_access_key == 'SK'
        assert config.key_prefix == 'db/'
        config.validate()

    def test_from_mapping_prefix_defaults(self):
        config = StoreConfig.from_mapping({'bucket': 'b'})
        assert config.key_prefix == 'backups/'


class TestRetentionPolicy:

    def test_valid(self):
        RetentionPolicy(retention_days=30).validate()

    @pytest.mark.parametrize("days", [0, -1, 1.5, '7', True])
    def test_invalid(self, days):
        with pytest.raises(ConfigurationError):
            RetentionPolicy(retention_days=days).validate()


def test_configuration_error_is_backup_error():
    assert issubclass(ConfigurationError, BackupError)


def test_cleanup_result_counts():
    result = CleanupResult(cutoff=datetime(2024, 1, 8, tzinfo=timezone.utc), examined=3)
    result.deleted.append('backups/a.dump.gz')
    result.failed['backups/b.dump.gz'] = 'AccessDenied'

    data = result.to_dict()

    assert result.failure_count == 1
    assert data['examined'] == 3
    assert data['deleted'] == ['backups/a.dump.gz']
    assert data['failure_count'] == 1
    assert data['cutoff'].startswith('2024-01-08')


def test_load_backup_settings(app_config):
    database, store, retention = load_backup_settings(app_config)

    assert database.host == 'db.example.com'
    assert database.database_name == 'appdb'
    assert store.bucket == 'mybucket'
    assert store.key_prefix == 'backups/'
    assert retention.retention_days == 7


def test_load_backup_settings_defaults_prefix():
    _, store, retention = load_backup_settings({})

    assert store.key_prefix == 'backups/'
    assert retention.retention_days == 7
    with pytest.raises(ConfigurationError):
        store.validate()


def test_load_backup_settings_nested_sections(app_config):
    """Plugin-style sections replace the flat keys."""
    app_config['BACKUP_DATABASE'] = {
        'host': 'pg.internal',
        'port': 6432,
        'name': 'strapi',
        'user': 'strapi',
        'password': 'pw'
    }
    app_config['BACKUP_AWS'] = {
        'bucket': 'plugin-bucket',
        'region': 'eu-west-1',
        'accessKeyId': 'AKIA',
        'secretAccessKey': 'secret',
        'prefix': 'strapi/'
    }

    database, store, _ = load_backup_settings(app_config)

    assert database.host == 'pg.internal'
    assert database.database_name == 'strapi'
    assert store.bucket == 'plugin-bucket'
    assert store.access_key_id == 'AKIA'
    assert store.key_prefix == 'strapi/'
    database.validate()
    store.validate()
