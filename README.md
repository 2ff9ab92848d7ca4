# mysqlop

`mysqlop` models MySQL clusters and their backups as declarative resources. It
keeps them in an in-memory object store and drives them with reconcilers in
the style of a cluster operator. Everything runs in-process, with no
dependencies beyond the standard library.

## Modules

- **`mysqlop.api`**: the resource types.
  - `MysqlCluster` and `MysqlBackup` each have `metadata`, `spec` and `status`,
    plus a `deep_copy()` method.
  - The condition enums are `ConditionStatus`, `BackupConditionType`,
    `ClusterConditionType` and `NodeConditionType`.
  - `set_defaults_mysql_cluster(cluster)` fills unset fields in place:
    - one replica;
    - an empty MySQL configuration map;
    - `200m` CPU and `1Gi` memory pod requests when no requests are set;
    - `50%` as `min_available` when there is more than one replica;
    - `ReadWriteOnce` access and a `1Gi` storage request on
      `volume_spec.persistent_volume_claim`, when one is given.
- **`mysqlop.store`**: `ObjectStore`, a thread-safe store keyed by kind and
  `NamespacedName`.
  - It has `create`, `get`, `update`, `delete` and `list`, with `list`
    filtering by namespace and labels.
  - It raises `NotFoundError` or `AlreadyExistsError`.
  - Objects are copied on the way in and on the way out.
  - `create` sets the creation timestamp, uid and resource version.
  - The helpers are `node_conditions`, `list_all_backups`,
    `backup_has_condition`, `backup_for_cluster` and `backup_with_name`.
- **`mysqlop.cron`**: a cron scheduler.
  - `parse(spec)` accepts six fields (seconds first) or five fields (no day of
    week). It also accepts descriptors such as `@daily` and `@every 1h30m`,
    and raises `CronError` on bad input.
  - `Schedule.next(after)` gives the next matching time.
  - `Cron` keeps named entries with `schedule`, `remove` and `entries`.
  - `Cron.run_pending(now)` runs the due jobs synchronously.
  - `Cron.start()` and `Cron.stop()` run the jobs on a background thread.
- **`mysqlop.backup_job`**: `BackupJob`, the scheduled task for one cluster.
  - `run()` creates a backup labelled `recurrent: "true"`, retrying when
    creation fails, and polls until the backup is marked completed.
  - It skips the run if its previous backup is still running.
  - `backup_gc()` deletes recurrent backups beyond `history_limit`, newest
    kept first.
  - `sort_newest_first` orders backups by creation time.
- **`mysqlop.backup_cron`**: `ReconcileMysqlBackupCron`.
  - It registers a `BackupJob` in the cron for each cluster that has a
    `backup_schedule`.
  - It replaces the entry when the schedule or the history limit changes.
  - It removes the entry when the cluster no longer exists.
- **`mysqlop.backup_controller`**: `ReconcileMysqlBackup`.
  - It copies a completed backup's deprecated `status.backup_uri` into
    `spec.backup_url`.
  - It raises `ValueError` when no cluster name is set and `LookupError` when
    the cluster is missing.
  - It leaves completed backups alone.
  - Otherwise it calls the optional `set_defaults` and `sync_job` hooks and
    stores the backup if they changed it.
- **`mysqlop.manager`**: `Scheme` and `Manager`.
  - `add_to_scheme(scheme)` registers both resource types and the cluster
    defaulter, which is applied with `Scheme.default`.
  - `add_to_manager(manager)` adds the backup controller and the backup cron
    controller, together with a runnable that runs the cron while
    `Manager.start(stop_event)` runs.
  - `Manager.enqueue(kind, key)` reconciles an object in every controller
    that watches its kind.

## Install

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Example

```python
from datetime import datetime

from mysqlop.api import MysqlCluster, MysqlClusterSpec, ObjectMeta
from mysqlop.backup_cron import ReconcileMysqlBackupCron
from mysqlop.cron import parse
from mysqlop.store import NamespacedName, ObjectStore

print(parse("0 0 0 * *").next(datetime(2024, 1, 1, 12, 30)))  # 2024-01-02 00:00:00

store = ObjectStore()
store.create(MysqlCluster(
    metadata=ObjectMeta(name="db", namespace="default"),
    spec=MysqlClusterSpec(backup_schedule="0 0 0 * *"),
))

reconciler = ReconcileMysqlBackupCron(store)
reconciler.reconcile(NamespacedName(name="db", namespace="default"))
print([entry.name for entry in reconciler.cron.entries()])  # ['db']
```

## What it does not do

- There is no command-line program.
- Nothing talks to a real cluster or database server.
  - Objects live only in the `ObjectStore` in memory and are lost when the
    process ends.
  - Changes are not watched. Reconciliation happens when you call
    `reconcile` or `Manager.enqueue`.
- The backup controller does not take backups itself. The backup controller
  that `add_to_manager` wires up has no `set_defaults` or `sync_job` hooks, so
  creating and running the job that takes a backup is left to a `sync_job`
  hook you supply to `ReconcileMysqlBackup`.