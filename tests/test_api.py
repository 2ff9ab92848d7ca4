import pytest

from mysqlop.api import (
    BackupCondition,
    BackupConditionType,
    ClusterConditionType,
    ConditionStatus,
    GroupVersion,
    MysqlBackup,
    MysqlBackupSpec,
    MysqlCluster,
    MysqlClusterSpec,
    NodeConditionType,
    NodeStatus,
    ObjectMeta,
    PersistentVolumeClaimSpec,
    PodSpec,
    QueryLimits,
    ResourceRequirements,
    VolumeSpec,
    set_defaults_mysql_cluster,
)


def _cluster(**spec):
    return MysqlCluster(
        metadata=ObjectMeta(name="foo", namespace="default"),
        spec=MysqlClusterSpec(secret_name="foo", **spec),
    )


def test_group_version_string():
    assert str(GroupVersion("mysql.presslabs.org", "v1alpha1")) == "mysql.presslabs.org/v1alpha1"
    assert str(GroupVersion("", "v1")) == "v1"


def test_api_version_of_resources():
    assert MysqlBackup().api_version == "mysql.presslabs.org/v1alpha1"
    assert MysqlCluster().api_version == "mysql.presslabs.org/v1alpha1"


def test_enum_values():
    assert BackupConditionType.COMPLETE.value == "Complete"
    assert BackupConditionType.FAILED.value == "Failed"
    assert ClusterConditionType.FAILOVER_ACK.value == "PendingFailoverAck"
    assert NodeConditionType.REPLICATING.value == "Replicating"
    assert ConditionStatus("Unknown") is ConditionStatus.UNKNOWN


def test_backup_deep_copy_is_equal_and_independent():
    created = MysqlBackup(metadata=ObjectMeta(name="foo", namespace="default"))
    fetched = created.deep_copy()
    assert fetched == created

    updated = fetched.deep_copy()
    updated.metadata.labels = {"hello": "world"}
    assert updated != fetched
    assert fetched.metadata.labels == {}
    assert updated.name == "foo"
    assert updated.namespace == "default"


def test_backup_deep_copy_copies_conditions():
    backup = MysqlBackup(spec=MysqlBackupSpec(cluster_name="c"))
    backup.status.conditions.append(
        BackupCondition(BackupConditionType.COMPLETE, ConditionStatus.TRUE)
    )
    clone = backup.deep_copy()
    clone.status.conditions[0].status = ConditionStatus.FALSE
    assert backup.status.conditions[0].status is ConditionStatus.TRUE


def test_cluster_deep_copy_is_equal_and_independent():
    created = _cluster()
    fetched = created.deep_copy()
    assert fetched == created

    fetched.metadata.labels["hello"] = "world"
    fetched.status.nodes.append(NodeStatus(name="node-0"))
    assert created.metadata.labels == {}
    assert created.status.nodes == []


def test_defaults_populate_mysql_conf():
    cluster = MysqlCluster(metadata=ObjectMeta(name="foo1", namespace="default"))
    cluster.spec.mysql_conf = None
    set_defaults_mysql_cluster(cluster)
    assert cluster.spec.mysql_conf == {}


def test_defaults_single_replica():
    cluster = _cluster()
    set_defaults_mysql_cluster(cluster)
    assert cluster.spec.replicas == 1
    assert cluster.spec.min_available == ""
    assert cluster.spec.pod_spec.resources.requests == {"cpu": "200m", "memory": "1Gi"}
    assert cluster.spec.volume_spec.persistent_volume_claim is None


@pytest.mark.parametrize("replicas,expected", [(2, "50%"), (3, "50%"), (1, ""), (0, "")])
def test_defaults_min_available(replicas, expected):
    cluster = _cluster(replicas=replicas)
    set_defaults_mysql_cluster(cluster)
    assert cluster.spec.min_available == expected
    assert cluster.spec.replicas == replicas


def test_defaults_keep_explicit_min_available():
    cluster = _cluster(replicas=3, min_available="1")
    set_defaults_mysql_cluster(cluster)
    assert cluster.spec.min_available == "1"


def test_defaults_keep_mysql_conf():
    cluster = _cluster(mysql_conf={"max_connections": 100})
    set_defaults_mysql_cluster(cluster)
    assert cluster.spec.mysql_conf == {"max_connections": 100}


def test_defaults_keep_existing_pod_requests():
    cluster = _cluster(
        pod_spec=PodSpec(resources=ResourceRequirements(requests={"cpu": "1"}, limits={"cpu": "2"}))
    )
    set_defaults_mysql_cluster(cluster)
    assert cluster.spec.pod_spec.resources.requests == {"cpu": "1"}
    assert cluster.spec.pod_spec.resources.limits == {"cpu": "2"}


def test_defaults_replace_pod_resources_without_requests():
    cluster = _cluster(pod_spec=PodSpec(resources=ResourceRequirements(limits={"cpu": "2"})))
    set_defaults_mysql_cluster(cluster)
    assert cluster.spec.pod_spec.resources == ResourceRequirements(
        requests={"cpu": "200m", "memory": "1Gi"}
    )


def test_defaults_persistent_volume_claim():
    cluster = _cluster(volume_spec=VolumeSpec(persistent_volume_claim=PersistentVolumeClaimSpec()))
    set_defaults_mysql_cluster(cluster)
    pvc = cluster.spec.volume_spec.persistent_volume_claim
    assert pvc.access_modes == ["ReadWriteOnce"]
    assert pvc.resources.requests == {"storage": "1Gi"}


def test_defaults_keep_persistent_volume_claim_values():
    pvc = PersistentVolumeClaimSpec(
        access_modes=["ReadWriteMany"],
        resources=ResourceRequirements(requests={"storage": "10Gi"}),
    )
    cluster = _cluster(volume_spec=VolumeSpec(persistent_volume_claim=pvc))
    set_defaults_mysql_cluster(cluster)
    assert cluster.spec.volume_spec.persistent_volume_claim.access_modes == ["ReadWriteMany"]
    assert cluster.spec.volume_spec.persistent_volume_claim.resources.requests == {
        "storage": "10Gi"
    }


def test_defaults_are_not_shared_between_clusters():
    first, second = _cluster(), _cluster()
    set_defaults_mysql_cluster(first)
    set_defaults_mysql_cluster(second)
    first.spec.pod_spec.resources.requests["cpu"] = "4"
    assert second.spec.pod_spec.resources.requests["cpu"] == "200m"


def test_query_limits_defaults():
    limits = QueryLimits(max_query_time=30)
    assert limits.max_query_time == 30
    assert limits.max_idle_time is None
    assert limits.ignore_db == []
    assert limits.kill == ""


def test_query_limits_requires_max_query_time():
    with pytest.raises(TypeError):
        QueryLimits()