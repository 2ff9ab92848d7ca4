"""The scheduled job that takes a recurrent backup of a cluster."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from .api import MysqlBackup, MysqlBackupSpec, ObjectMeta
from .store import NamespacedName, NotFoundError, ObjectStore, StoreError

log = logging.getLogger(__name__)

RECURRENT_LABELS = {"recurrent": "true"}
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def sort_newest_first(backups: Iterable[MysqlBackup]) -> List[MysqlBackup]:
    """Return the backups ordered by creation time, newest first."""
    return sorted(
        backups,
        key=lambda b: b.metadata.creation_timestamp or _OLDEST,
        reverse=True,
    )


@dataclass(eq=False)
class BackupJob:
    """Creates a backup for a cluster and waits for it to complete."""

    name: str
    namespace: str
    store: ObjectStore
    history_limit: Optional[int] = None
    polling_interval: float = 5.0
    watch_timeout: float = 3600.0
    retry_delay: float = 5.0
    max_tries: int = 5
    backup_running: bool = field(default=False, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def run(self) -> None:
        """Create a backup unless one is running, wait for it, then prune."""
        backup_name = f"{self.name}-auto-backup-{datetime.now().strftime('%Y-%m-%dt%H-%M-%S')}"
        log.info("scheduled backup job started: %s/%s", self.namespace, backup_name)
        try:
            if not self._create(backup_name):
                return
            try:
                self._wait(NamespacedName(name=backup_name, namespace=self.namespace))
            finally:
                with self._lock:
                    self.backup_running = False
        finally:
            if self.history_limit is not None:
                self.backup_gc()

    def _create(self, backup_name: str) -> bool:
        with self._lock:
            if self.backup_running:
                log.info(
                    "last scheduled backup still running for %s/%s",
                    self.namespace,
                    self.name,
                )
                return False
            tries = 0
            while True:
                backup = MysqlBackup(
                    metadata=ObjectMeta(
                        name=backup_name,
                        namespace=self.namespace,
                        labels=dict(RECURRENT_LABELS),
                    ),
                    spec=MysqlBackupSpec(cluster_name=self.name),
                )
                try:
                    self.store.create(backup)
                    break
                except StoreError as err:
                    if tries > self.max_tries:
                        log.error("failed to create backup %s, max tries exceeded: %s", backup_name, err)
                        return False
                    log.info("failed to create backup %s, retrying (%d): %s", backup_name, tries, err)
                    time.sleep(self.retry_delay)
                    tries += 1
            self.backup_running = True
            return True

    def _wait(self, key: NamespacedName) -> None:
        deadline = time.monotonic() + self.watch_timeout
        while True:
            try:
                backup = self.store.get(MysqlBackup, key)
                if backup.status.completed:
                    log.info("backup finished: %s", key)
                    return
            except NotFoundError as err:
                log.info("failed to get backup %s: %s", key, err)
            if time.monotonic() >= deadline:
                log.error("waiting for backup %s to finish timed out", key)
                return
            time.sleep(self.polling_interval)

    def backup_gc(self) -> None:
        """Delete recurrent backups beyond the history limit, oldest first."""
        if self.history_limit is None:
            return
        backups = self.store.list(MysqlBackup, self.namespace, RECURRENT_LABELS)
        for backup in sort_newest_first(backups)[self.history_limit:]:
            try:
                self.store.delete(backup)
            except StoreError as err:
                log.error("failed to delete backup %s: %s", backup.name, err)