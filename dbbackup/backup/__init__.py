"""
Backup module for dbbackup.

This module handles the core backup pipeline:
- Database dumps (pg_dump)
- Gzip compression
- Storage (S3)
- Orchestration and local cleanup
- Retention policy enforcement
"""

from .models import (
    BackupError,
    ConfigurationError,
    BackupConfig,
    StoreConfig,
    RetentionPolicy,
    BackupArtifact,
    RemoteObject,
    CleanupResult,
    load_backup_settings,
)
from .dump import DumpProducer, DumpError
from .compression import compress_file, CompressionError
from .storage import S3Storage, StoreError, UploadError
from .retention import RetentionManager
from .executor import BackupOrchestrator, BackupInProgressError, build_orchestrator

__all__ = [
    'BackupError',
    'ConfigurationError',
    'BackupConfig',
    'StoreConfig',
    'RetentionPolicy',
    'BackupArtifact',
    'RemoteObject',
    'CleanupResult',
    'load_backup_settings',
    'DumpProducer',
    'DumpError',
    'compress_file',
    'CompressionError',
    'S3Storage',
    'StoreError',
    'UploadError',
    'RetentionManager',
    'BackupOrchestrator',
    'BackupInProgressError',
    'build_orchestrator'
]
