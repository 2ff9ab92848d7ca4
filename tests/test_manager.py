import threading

import pytest

from mysqlop.api import (
    SCHEME_GROUP_VERSION,
    GroupVersion,
    MysqlBackup,
    MysqlBackupSpec,
    MysqlCluster,
    MysqlClusterSpec,
    ObjectMeta,
)
from mysqlop.manager import (
    Manager,
    NotRegisteredError,
    Scheme,
    add_to_manager,
    add_to_scheme,
)
from mysqlop.store import NamespacedName


def _cluster(name="cluster-1", schedule="0 0 0 * *"):
    return MysqlCluster(
        metadata=ObjectMeta(name=name, namespace="default"),
        spec=MysqlClusterSpec(replicas=2, secret_name="a-secret", backup_schedule=schedule),
    )


def test_add_to_scheme_registers_kinds():
    scheme = Scheme()
    add_to_scheme(scheme)
    assert scheme.object_kind(MysqlBackup()) == (SCHEME_GROUP_VERSION, "MysqlBackup")
    assert scheme.object_kind(MysqlCluster) == (SCHEME_GROUP_VERSION, "MysqlCluster")
    assert len(scheme.kinds()) == 2


def test_scheme_new_and_default():
    scheme = Scheme()
    add_to_scheme(scheme)
    cluster = scheme.new(SCHEME_GROUP_VERSION, "MysqlCluster")
    assert cluster.spec.replicas is None
    scheme.default(cluster)
    assert cluster.spec.replicas == 1
    assert cluster.spec.min_available == ""


def test_scheme_default_applies_min_available():
    scheme = Scheme()
    add_to_scheme(scheme)
    cluster = _cluster()
    scheme.default(cluster)
    assert cluster.spec.min_available == "50%"


def test_unregistered_kind_raises():
    scheme = Scheme()
    with pytest.raises(NotRegisteredError):
        scheme.new(SCHEME_GROUP_VERSION, "MysqlBackup")
    with pytest.raises(NotRegisteredError):
        scheme.object_kind(MysqlBackup())


def test_register_without_group_version_uses_mysql_group():
    scheme = Scheme()
    scheme.register(MysqlBackup)
    assert scheme.is_registered(MysqlBackup)
    assert scheme.object_kind(MysqlBackup)[0] == SCHEME_GROUP_VERSION


def test_conflicting_registration_raises():
    class Other:
        KIND = "MysqlBackup"

    scheme = Scheme()
    scheme.register(MysqlBackup)
    scheme.register(MysqlBackup)
    with pytest.raises(ValueError):
        scheme.register(Other)
    other_gv = GroupVersion(group="other.example.com", version="v1")
    scheme.register(other_gv, Other)
    assert scheme.object_kind(Other) == (other_gv, "MysqlBackup")


def test_add_to_manager_registers_controllers():
    manager = Manager()
    add_to_manager(manager)
    assert sorted(manager.controllers) == ["mysqlbackup-controller", "mysqlbackupcron-controller"]
    assert manager.controllers["mysqlbackup-controller"].watches == ("MysqlBackup",)
    assert manager.controllers["mysqlbackupcron-controller"].watches == ("MysqlCluster",)
    with pytest.raises(ValueError):
        add_to_manager(manager)


def test_enqueue_cluster_registers_and_unregisters_cron_entry():
    manager = Manager()
    add_to_manager(manager)
    cluster = _cluster()
    manager.store.create(cluster)
    key = NamespacedName.of(cluster)

    handled = manager.enqueue(MysqlCluster, key)
    assert handled == ["mysqlbackupcron-controller"]
    cron = manager.controllers["mysqlbackupcron-controller"].reconciler.cron
    assert [e.name for e in cron.entries()] == [cluster.name]

    manager.store.delete(cluster)
    manager.enqueue(MysqlCluster, key)
    assert cron.entries() == []


def test_enqueue_backup_without_cluster_name_raises():
    manager = Manager()
    add_to_manager(manager)
    backup = MysqlBackup(
        metadata=ObjectMeta(name="backup-1", namespace="default"),
        spec=MysqlBackupSpec(cluster_name=""),
    )
    manager.store.create(backup)
    with pytest.raises(ValueError):
        manager.enqueue(MysqlBackup, NamespacedName.of(backup))


def test_add_rejects_object_without_start():
    manager = Manager()
    with pytest.raises(TypeError):
        manager.add(object())


def test_start_runs_runnables_until_stopped():
    started = threading.Event()
    finished = []

    class Runnable:
        def start(self, stop_event):
            started.set()
            stop_event.wait()
            finished.append(True)

    manager = Manager()
    add_to_manager(manager)
    manager.add(Runnable())
    stop = threading.Event()
    thread = threading.Thread(target=manager.start, args=(stop,))
    thread.start()
    assert started.wait(2)
    stop.set()
    thread.join(2)
    assert not thread.is_alive()
    assert finished == [True]


def test_start_propagates_runnable_error():
    class Failing:
        def start(self, stop_event):
            raise RuntimeError("boom")

    manager = Manager()
    manager.add(Failing())
    with pytest.raises(RuntimeError, match="boom"):
        manager.start(threading.Event())