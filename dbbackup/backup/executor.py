"""
Backup orchestrator - sequences one backup cycle and the retention sweep.

Backup cycle:
1. Validate database and store settings
2. Create a per-cycle temporary directory and derive file names
3. Dump the database (pg_dump)
4. Gzip the dump
5. Upload the .gz to S3
6. Remove local files, whatever happened above

Cleanup cycle:
1. List the backup prefix
2. Delete objects older than the retention window
"""

import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .compression import compress_file, compressed_path_for, get_file_size
from .dump import DumpProducer
from .models import (
    BackupArtifact,
    BackupConfig,
    BackupError,
    CleanupResult,
    ConfigurationError,
    RetentionPolicy,
    StoreConfig,
    load_backup_settings,
)
from .retention import RetentionManager
from .storage import S3Storage, StoreError


class BackupInProgressError(BackupError):
    """Raised when run_backup() is called while another cycle is running."""
    pass


def make_timestamp(now: Optional[datetime] = None) -> str:
    """
    Build a filename-safe UTC timestamp with millisecond resolution.

    Example: 2024-01-15T03:00:00.123Z becomes 2024-01-15T03-00-00-123Z
    """
    now = now or datetime.now(timezone.utc)
    iso = f"{now.strftime('%Y-%m-%dT%H:%M:%S')}.{now.microsecond // 1000:03d}Z"
    return iso.replace(':', '-').replace('.', '-')


class BackupOrchestrator:
    """
    Runs dump -> compress -> upload cycles and retention sweeps.

    All settings are bound at construction; nothing is read from global
    state. The orchestrator owns every local file it creates and removes
    them at the end of each cycle.
    """

    def __init__(self, database: BackupConfig, store: StoreConfig, retention: RetentionPolicy,
                 logger: Optional[logging.Logger] = None, temp_dir: Optional[str] = None,
                 dump_producer: Optional[DumpProducer] = None, storage=None,
                 compression_level: int = 9):
        """
        Initialize backup orchestrator.

        Args:
            database: pg_dump connection parameters
            store: S3 bucket, credentials and key prefix
            retention: Retention window for the cleanup sweep
            logger: Logger for progress and failures
            temp_dir: Base directory for per-cycle temp directories
                (system default when None)
            dump_producer: DumpProducer to use (default: pg_dump on PATH)
            storage: Store client to use instead of building an S3Storage
            compression_level: gzip level 1-9
        """
        self.database = database
        self.store = store
        self.retention = retention
        self.logger = logger or logging.getLogger(__name__)
        self.temp_dir = temp_dir
        self.dump_producer = dump_producer or DumpProducer(logger=self.logger)
        self.compression_level = compression_level
        self._storage = storage

        self.state = 'idle'
        self.artifact = None
        self.work_dir = None
        self.logs = []
        self.last_backup = None
        self.last_cleanup = None
        self._lock = threading.Lock()

    @property
    def storage(self):
        """
        Store client, built from the store settings on first use.

        Raises:
            ConfigurationError: If the S3 client cannot be created from them
        """
        if self._storage is None:
            try:
                self._storage = S3Storage.from_config(self.store, logger=self.logger)
            except StoreError as e:
                raise ConfigurationError(str(e)) from e
        return self._storage

    def run_backup(self) -> str:
        """
        Run one backup cycle.

        Returns:
            URI of the uploaded object (store://{bucket}/{key})

        Raises:
            ConfigurationError: If settings are incomplete (nothing is created)
            BackupInProgressError: If another cycle holds the lock
            DumpError, CompressionError, UploadError: The first stage that
                failed, re-raised unchanged after local cleanup
        """
        if not self._lock.acquire(blocking=False):
            raise BackupInProgressError('A backup cycle is already running')

        try:
            return self._run_cycle()
        finally:
            self._lock.release()

    def _run_cycle(self) -> str:
        self.logs = []
        self.artifact = None
        self.work_dir = None

        # Nothing is spawned or uploaded until every setting checks out
        try:
            self.database.validate()
            self.store.validate()
            storage = self.storage
            self.artifact = self._prepare_artifact()
        except BackupError as e:
            self.state = 'failed'
            self._log(f"Backup aborted: {e}", logging.ERROR)
            self._record_backup('failed', error=e)
            raise

        self._log(f"Starting backup cycle {self.artifact.timestamp}")

        uri = None
        try:
            self.state = 'dumping'
            self.dump_producer.produce_dump(self.database, self.artifact.raw_path)
            self._log(f"Dump written: {os.path.basename(self.artifact.raw_path)}")

            self.state = 'compressing'
            raw_size = get_file_size(self.artifact.raw_path)
            compress_file(self.artifact.raw_path, self.compression_level)
            compressed_size = get_file_size(self.artifact.compressed_path)
            ratio = (1 - compressed_size / raw_size) * 100 if raw_size else 0
            self._log(
                f"Compressed: {raw_size:,} bytes -> {compressed_size:,} bytes "
                f"({ratio:.1f}% compression)"
            )

            self.state = 'uploading'
            self._log(f"Uploading {os.path.basename(self.artifact.compressed_path)} to S3...")
            storage.upload(self.artifact.compressed_path, self.artifact.remote_key)
            uri = storage.uri_for(self.artifact.remote_key)
            self._log(f"Backup uploaded: {uri}")

            return uri

        except Exception as e:
            self._log(f"Backup failed while {self.state}: {e}", logging.ERROR)
            self._record_backup('failed', error=e)
            raise

        finally:
            self.state = 'cleanup'
            self._cleanup()
            self.state = 'done' if uri else 'failed'
            if uri:
                self._record_backup('success', uri=uri)

    def _prepare_artifact(self) -> BackupArtifact:
        """
        Create the cycle's temp directory and derive its file names.

        Raises:
            ConfigurationError: If the temp directory cannot be created
        """
        timestamp = make_timestamp()
        file_name = f"backup-{timestamp}.dump"

        try:
            if self.temp_dir:
                os.makedirs(self.temp_dir, exist_ok=True)
            self.work_dir = tempfile.mkdtemp(prefix='dbbackup_', dir=self.temp_dir)
        except OSError as e:
            raise ConfigurationError(f"Cannot create temporary directory under {self.temp_dir}: {e}") from e

        raw_path = os.path.join(self.work_dir, file_name)
        return BackupArtifact(
            timestamp=timestamp,
            raw_path=raw_path,
            compressed_path=compressed_path_for(raw_path),
            remote_key=f"{self.store.key_prefix}{file_name}.gz"
        )

    def _cleanup(self):
        """Remove the cycle's local files. Failures are only logged."""
        if self.artifact:
            for path in (self.artifact.raw_path, self.artifact.compressed_path):
                try:
                    if os.path.exists(path):
                        os.remove(path)
                        self._log(f"Temporary file removed: {path}", logging.DEBUG)
                except OSError as e:
                    self._log(f"Failed to delete temporary file {path}: {e}", logging.WARNING)

        if self.work_dir:
            try:
                if os.path.isdir(self.work_dir):
                    os.rmdir(self.work_dir)
            except OSError as e:
                self._log(f"Failed to remove temporary directory {self.work_dir}: {e}", logging.WARNING)

    def cleanup_old_backups(self) -> CleanupResult:
        """
        Run one retention sweep over the configured prefix.

        Returns:
            CleanupResult; failure_count > 0 means some deletes failed

        Raises:
            ConfigurationError: If store or retention settings are invalid
            StoreError: If the listing fails (nothing is deleted)
        """
        self.store.validate()
        self.retention.validate()

        manager = RetentionManager(self.storage, self.retention, logger=self.logger)
        result = manager.enforce(self.store.key_prefix)
        self.last_cleanup = result
        return result

    def status(self) -> Dict[str, Any]:
        return {
            'state': self.state,
            'running': self._lock.locked(),
            'last_backup': self.last_backup,
            'last_cleanup': self.last_cleanup.to_dict() if self.last_cleanup else None,
            'logs': list(self.logs[-50:])
        }

    def _record_backup(self, status: str, uri: Optional[str] = None, error: Optional[Exception] = None):
        self.last_backup = {
            'status': status,
            'finished_at': datetime.now(timezone.utc).isoformat(),
            'uri': uri,
            'error': f"{type(error).__name__}: {error}" if error else None
        }

    def _log(self, message: str, level: int = logging.INFO):
        """
        Record a timestamped line for this cycle and forward it to the logger.

        Args:
            message: Log message
            level: logging level
        """
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        self.logger.log(level, f"[db-backup] {message}")


def build_orchestrator(config, logger: Optional[logging.Logger] = None) -> BackupOrchestrator:
    """
    Build an orchestrator from a flat application config mapping.

    Args:
        config: Mapping with DB_*, AWS_*, BACKUP_* and dump settings
        logger: Logger handed to every stage

    Returns:
        BackupOrchestrator bound to the settings in config
    """
    database, store, retention = load_backup_settings(config)
    dump_producer = DumpProducer(
        executable=config.get('PG_DUMP_PATH') or 'pg_dump',
        timeout=config.get('DUMP_TIMEOUT'),
        logger=logger
    )
    return BackupOrchestrator(
        database,
        store,
        retention,
        logger=logger,
        temp_dir=config.get('TEMP_DIR'),
        dump_producer=dump_producer,
        compression_level=config.get('COMPRESSION_LEVEL', 9)
    )
