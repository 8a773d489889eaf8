"""
Retention policy enforcement for uploaded backups.

Decides which objects under the backup prefix are past the retention window
and deletes them one by one. Nothing is persisted between sweeps; every run
works from a fresh listing.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from .models import CleanupResult, RemoteObject, RetentionPolicy
from .storage import StoreError


def compute_cutoff(retention_days: int, now: Optional[datetime] = None) -> datetime:
    """Return the instant before which objects are stale (elapsed days, not calendar days)."""
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=retention_days)


def find_stale(objects: Iterable[RemoteObject], cutoff: datetime) -> List[RemoteObject]:
    """
    Select objects strictly older than cutoff.

    An object whose age equals the retention window exactly is kept.
    """
    return [obj for obj in objects if obj.last_modified < cutoff]


class RetentionManager:
    """
    Sweeps a store prefix and removes backups older than the retention window.
    """

    def __init__(self, storage, policy: RetentionPolicy, logger: Optional[logging.Logger] = None):
        """
        Initialize retention manager.

        Args:
            storage: Store client exposing list_objects(prefix) and delete(key)
            policy: Retention window
            logger: Logger for sweep progress
        """
        self.storage = storage
        self.policy = policy
        self.logger = logger or logging.getLogger(__name__)

    def enforce(self, prefix: str, now: Optional[datetime] = None) -> CleanupResult:
        """
        Delete every stale object under prefix.

        A failed delete is logged and recorded and the sweep moves on to the
        next object.

        Args:
            prefix: Key prefix holding the backups
            now: Reference time (defaults to current UTC time)

        Returns:
            CleanupResult with deleted keys and per-key failures

        Raises:
            StoreError: If the listing fails; nothing is deleted in that case
        """
        retention_days = self.policy.retention_days
        cutoff = compute_cutoff(retention_days, now)

        self.logger.info(f"[db-backup] Cleaning up backups older than {retention_days} days...")

        try:
            objects = self.storage.list_objects(prefix)
        except StoreError as e:
            self.logger.error(f"[db-backup] Cleanup failed, could not list {prefix}: {e}")
            raise

        result = CleanupResult(cutoff=cutoff, examined=len(objects))
        stale = find_stale(objects, cutoff)

        if not stale:
            self.logger.info('[db-backup] No old backups to remove.')
            return result

        for obj in stale:
            try:
                self.storage.delete(obj.key)
                result.deleted.append(obj.key)
                self.logger.info(f"[db-backup] Deleted old backup: {obj.key}")
            except StoreError as e:
                result.failed[obj.key] = str(e)
                self.logger.error(f"[db-backup] Failed to delete {obj.key}: {e}")

        self.logger.info(
            f"[db-backup] Cleanup complete. "
            f"Deleted: {len(result.deleted)}, "
            f"Failures: {result.failure_count}"
        )
        return result
