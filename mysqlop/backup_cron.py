"""Keeps the cron entries of clusters in step with their backup schedules."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from .api import MysqlCluster
from .backup_job import BackupJob
from .cron import Cron, CronError, Schedule, parse
from .store import NamespacedName, NotFoundError, ObjectStore

log = logging.getLogger(__name__)


class ReconcileMysqlBackupCron:
    """Registers a backup job in the cron for each cluster with a schedule."""

    def __init__(self, store: ObjectStore, cron: Optional[Cron] = None) -> None:
        self.store = store
        self.cron = cron if cron is not None else Cron()
        self._lock = threading.Lock()

    def reconcile(self, request: NamespacedName) -> None:
        """Bring the cron entry of the requested cluster up to date."""
        try:
            cluster = self.store.get(MysqlCluster, request)
        except NotFoundError:
            self.unregister_cluster(request)
            return

        if not cluster.spec.backup_schedule:
            return

        try:
            schedule = parse(cluster.spec.backup_schedule)
        except CronError as err:
            raise CronError(f"failed to parse schedule: {err}") from err

        log.debug("register cluster %s in cron", request)
        self.update_cluster_schedule(cluster, schedule)

    def update_cluster_schedule(self, cluster: MysqlCluster, schedule: Schedule) -> None:
        """Create or replace the cron job for a cluster."""
        with self._lock:
            for entry in self.cron.entries():
                job = entry.job
                if not (
                    isinstance(job, BackupJob)
                    and job.name == cluster.name
                    and job.namespace == cluster.namespace
                ):
                    continue
                if entry.schedule != schedule:
                    log.info("update cluster %s schedule: %s", cluster.name, cluster.spec.backup_schedule)
                    self.cron.remove(cluster.name)
                    break
                limit = cluster.spec.backup_schedule_jobs_history_limit
                if limit != job.history_limit:
                    log.info("update cluster %s backup limit: %s", cluster.name,
                             "inf" if limit is None else limit)
                    self.cron.remove(cluster.name)
                    break
                return

            self.cron.schedule(
                schedule,
                BackupJob(
                    name=cluster.name,
                    namespace=cluster.namespace,
                    store=self.store,
                    history_limit=cluster.spec.backup_schedule_jobs_history_limit,
                ),
                cluster.name,
            )

    def unregister_cluster(self, key: NamespacedName) -> None:
        """Remove the cron job of a cluster."""
        with self._lock:
            self.cron.remove(key.name)