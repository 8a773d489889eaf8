"""
Data model for the backup pipeline.

Holds the connection/store/retention settings handed to the orchestrator,
the per-cycle artifact record and the objects read back from a store
listing. Also defines the error base class shared by every stage.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple


DEFAULT_KEY_PREFIX = 'backups/'


class BackupError(Exception):
    """Base class for every error raised by the backup pipeline."""
    pass


class ConfigurationError(BackupError):
    """Raised when required settings are missing or invalid."""
    pass


def _first(mapping: Mapping[str, Any], *keys: str) -> Any:
    """Return the first non-empty value among keys."""
    for key in keys:
        value = mapping.get(key)
        if value not in (None, ''):
            return value
    return None


@dataclass
class BackupConfig:
    """PostgreSQL connection parameters passed to pg_dump."""

    host: Optional[str] = None
    port: Optional[int] = None
    database_name: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None

    REQUIRED = ('host', 'port', 'database_name', 'user', 'password')

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> 'BackupConfig':
        """
        Build from a plugin-style ``database`` dict.

        Accepts both ``name`` and ``database_name`` for the database.
        """
        data = data or {}
        return cls(
            host=_first(data, 'host'),
            port=_first(data, 'port'),
            database_name=_first(data, 'database_name', 'databaseName', 'name'),
            user=_first(data, 'user'),
            password=_first(data, 'password'),
        )

    def missing_fields(self) -> List[str]:
        return [name for name in self.REQUIRED if getattr(self, name) in (None, '')]

    def validate(self):
        """
        Check that all connection fields are present and usable.

        Raises:
            ConfigurationError: If a field is missing or the port is invalid
        """
        missing = self.missing_fields()
        if missing:
            raise ConfigurationError(
                f"Invalid or incomplete database configuration (missing: {', '.join(missing)})"
            )

        try:
            port = int(self.port)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid database port: {self.port!r}")
        if not 0 < port < 65536:
            raise ConfigurationError(f"Database port out of range: {port}")
        self.port = port


@dataclass
class StoreConfig:
    """S3 bucket, credentials and key prefix for uploaded backups."""

    bucket: Optional[str] = None
    region: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    key_prefix: str = DEFAULT_KEY_PREFIX
    endpoint_url: Optional[str] = None

    REQUIRED = ('bucket', 'region', 'access_key_id', 'secret_access_key')

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> 'StoreConfig':
        """Build from a plugin-style ``aws`` dict."""
        data = data or {}
        return cls(
            bucket=_first(data, 'bucket'),
            region=_first(data, 'region'),
            access_key_id=_first(data, 'access_key_id', 'accessKeyId'),
            secret_access_key=_first(data, 'secret_access_key', 'secretAccessKey'),
            key_prefix=_first(data, 'key_prefix', 'keyPrefix', 'prefix') or DEFAULT_KEY_PREFIX,
            endpoint_url=_first(data, 'endpoint_url', 'endpointUrl'),
        )

    def missing_fields(self) -> List[str]:
        return [name for name in self.REQUIRED if getattr(self, name) in (None, '')]

    def validate(self):
        """
        Check that bucket, region and credentials are present.

        Raises:
            ConfigurationError: If a required field is missing
        """
        missing = self.missing_fields()
        if missing:
            raise ConfigurationError(
                f"Invalid AWS S3 configuration (missing: {', '.join(missing)})"
            )


@dataclass
class RetentionPolicy:
    """How many days an uploaded backup is kept."""

    retention_days: int = 7

    def validate(self):
        """
        Raises:
            ConfigurationError: If retention_days is not a positive integer
        """
        if isinstance(self.retention_days, bool) or not isinstance(self.retention_days, int):
            raise ConfigurationError(f"retention_days must be an integer, got {self.retention_days!r}")
        if self.retention_days <= 0:
            raise ConfigurationError(f"retention_days must be positive, got {self.retention_days}")


@dataclass
class BackupArtifact:
    """Local and remote names for one backup cycle."""

    timestamp: str
    raw_path: str
    compressed_path: str
    remote_key: str


@dataclass
class RemoteObject:
    """One object from a store listing."""

    key: str
    last_modified: datetime
    size: int = 0


@dataclass
class CleanupResult:
    """Outcome of one retention sweep."""

    cutoff: datetime
    examined: int = 0
    deleted: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'cutoff': self.cutoff.isoformat(),
            'examined': self.examined,
            'deleted': list(self.deleted),
            'failed': dict(self.failed),
            'failure_count': self.failure_count,
        }


def load_backup_settings(config: Mapping[str, Any]) -> Tuple[BackupConfig, StoreConfig, RetentionPolicy]:
    """
    Build pipeline settings from a flat application config mapping.

    A nested plugin-style section in BACKUP_DATABASE or BACKUP_AWS takes
    precedence over the flat keys for that section.

    Args:
        config: Mapping with DB_*, AWS_* and BACKUP_RETENTION_DAYS keys
            (typically ``app.config``)

    Returns:
        Tuple of (BackupConfig, StoreConfig, RetentionPolicy). The values are
        not validated here; the orchestrator validates at call time.
    """
    if config.get('BACKUP_DATABASE'):
        database = BackupConfig.from_mapping(config['BACKUP_DATABASE'])
    else:
        database = BackupConfig(
            host=config.get('DB_HOST'),
            port=config.get('DB_PORT'),
            database_name=config.get('DB_NAME'),
            user=config.get('DB_USER'),
            password=config.get('DB_PASSWORD'),
        )

    if config.get('BACKUP_AWS'):
        store = StoreConfig.from_mapping(config['BACKUP_AWS'])
    else:
        store = StoreConfig(
            bucket=config.get('AWS_S3_BUCKET'),
            region=config.get('AWS_REGION'),
            access_key_id=config.get('AWS_ACCESS_KEY_ID'),
            secret_access_key=config.get('AWS_SECRET_ACCESS_KEY'),
            key_prefix=config.get('AWS_S3_PREFIX') or DEFAULT_KEY_PREFIX,
            endpoint_url=config.get('AWS_S3_ENDPOINT_URL'),
        )
    retention = RetentionPolicy(retention_days=config.get('BACKUP_RETENTION_DAYS', 7))
    return database, store, retention
