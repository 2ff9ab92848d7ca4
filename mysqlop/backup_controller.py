"""Reconciles backup resources against their clusters."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .api import MysqlBackup, MysqlCluster
from .store import NamespacedName, NotFoundError, ObjectStore

log = logging.getLogger(__name__)

BackupHook = Callable[[MysqlBackup, MysqlCluster], None]


class ReconcileMysqlBackup:
    """Drives a backup towards completion.

    ``set_defaults`` fills backup fields from its cluster and ``sync_job``
    creates or updates the job that takes the backup; both act in place.
    """

    def __init__(
        self,
        store: ObjectStore,
        set_defaults: Optional[BackupHook] = None,
        sync_job: Optional[BackupHook] = None,
    ) -> None:
        self.store = store
        self.set_defaults = set_defaults
        self.sync_job = sync_job

    def reconcile(self, request: NamespacedName) -> None:
        """Reconcile the backup named by the request."""
        try:
            backup = self.store.get(MysqlBackup, request)
        except NotFoundError:
            return

        log.debug("reconcile backup %s", request)

        spec, status = backup.spec, backup.status
        if not spec.backup_url and not spec.backup_uri and status.completed and status.backup_uri:
            spec.backup_url = status.backup_uri
            self.store.update(backup)
            return

        saved = backup.deep_copy()
        if not spec.cluster_name:
            raise ValueError("cluster name is not specified")

        if status.completed:
            log.debug("backup already completed: %s", backup.name)
            return

        cluster_key = NamespacedName(name=spec.cluster_name, namespace=backup.namespace)
        try:
            cluster = self.store.get(MysqlCluster, cluster_key)
        except NotFoundError as err:
            raise LookupError(f"cluster not found: {err}") from err

        if self.set_defaults is not None:
            self.set_defaults(backup, cluster)
        if self.sync_job is not None:
            self.sync_job(backup, cluster)

        if backup != saved:
            self.store.update(backup)