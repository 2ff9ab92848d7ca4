"""Resource types for the mysql.presslabs.org/v1alpha1 API group."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Dict, List, Optional, Union


@dataclass(frozen=True)
class GroupVersion:
    """An API group together with one of its versions."""

    group: str
    version: str

    def __str__(self) -> str:
        if not self.group:
            return self.version
        return f"{self.group}/{self.version}"


GROUP_NAME = "mysql.presslabs.org"
SCHEME_GROUP_VERSION = GroupVersion(group=GROUP_NAME, version="v1alpha1")

DEFAULT_MIN_AVAILABLE = "50%"
RESOURCE_STORAGE = "1Gi"
RESOURCE_REQUEST_CPU = "200m"
RESOURCE_REQUEST_MEMORY = "1Gi"
READ_WRITE_ONCE = "ReadWriteOnce"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ConditionStatus(str, Enum):
    """Status of a condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class BackupConditionType(str, Enum):
    """Condition types of a backup resource."""

    COMPLETE = "Complete"
    FAILED = "Failed"


class ClusterConditionType(str, Enum):
    """Condition types of a cluster resource."""

    READY = "Ready"
    FAILOVER_ACK = "PendingFailoverAck"
    READ_ONLY = "ReadOnly"


class NodeConditionType(str, Enum):
    """Condition types of a cluster node."""

    LAGGED = "Lagged"
    REPLICATING = "Replicating"
    MASTER = "Master"
    READ_ONLY = "ReadOnly"


@dataclass
class ObjectMeta:
    """Identifying metadata shared by every stored object."""

    name: str = ""
    namespace: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    creation_timestamp: Optional[datetime] = None
    resource_version: str = ""
    uid: str = ""


@dataclass
class ResourceRequirements:
    """Compute resource requests and limits, as quantity strings."""

    requests: Dict[str, str] = field(default_factory=dict)
    limits: Dict[str, str] = field(default_factory=dict)


@dataclass
class PersistentVolumeClaimSpec:
    """Specification of a persistent volume claim."""

    access_modes: List[str] = field(default_factory=list)
    resources: ResourceRequirements = field(default_factory=ResourceRequirements)
    storage_class_name: Optional[str] = None
    volume_name: str = ""


# --- backups -----------------------------------------------------------------


@dataclass
class MysqlBackupSpec:
    """Desired state of a backup."""

    cluster_name: str = ""
    # Deprecated in favour of backup_url.
    backup_uri: str = ""
    backup_url: str = ""
    backup_secret_name: str = ""


@dataclass
class BackupCondition:
    """A condition of a backup resource."""

    type: BackupConditionType
    status: ConditionStatus
    last_transition_time: datetime = field(default_factory=_now)
    reason: str = ""
    message: str = ""


@dataclass
class MysqlBackupStatus:
    """Observed state of a backup."""

    completed: bool = False
    # Deprecated: full URI of the backup location.
    backup_uri: str = ""
    conditions: List[BackupCondition] = field(default_factory=list)


@dataclass
class MysqlBackup:
    """A backup of a MySQL cluster."""

    KIND: ClassVar[str] = "MysqlBackup"

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: MysqlBackupSpec = field(default_factory=MysqlBackupSpec)
    status: MysqlBackupStatus = field(default_factory=MysqlBackupStatus)

    @property
    def api_version(self) -> str:
        return str(SCHEME_GROUP_VERSION)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    def deep_copy(self) -> "MysqlBackup":
        """Return an independent copy of this backup."""
        return copy.deepcopy(self)


# --- clusters ----------------------------------------------------------------

MysqlConf = Dict[str, Union[int, str]]


@dataclass
class PodSpec:
    """Extra specification applied to cluster pods."""

    image_pull_policy: str = ""
    image_pull_secrets: List[str] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    resources: ResourceRequirements = field(default_factory=ResourceRequirements)
    affinity: Dict[str, object] = field(default_factory=dict)
    node_selector: Dict[str, str] = field(default_factory=dict)


@dataclass
class VolumeSpec(PersistentVolumeClaimSpec):
    """Storage for MySQL data; the inherited claim fields are deprecated.

    ``persistent_volume_claim`` takes precedence over ``host_path``, which
    takes precedence over ``empty_dir``.
    """

    empty_dir: Optional[Dict[str, object]] = None
    host_path: Optional[Dict[str, object]] = None
    persistent_volume_claim: Optional[PersistentVolumeClaimSpec] = None


@dataclass
class QueryLimits:
    """Limits applied to running queries (pt-kill parameters)."""

    max_query_time: int
    max_idle_time: Optional[int] = None
    kill: str = ""
    kill_mode: str = ""
    ignore_db: List[str] = field(default_factory=list)
    ignore_command: List[str] = field(default_factory=list)
    ignore_user: List[str] = field(default_factory=list)


@dataclass
class ClusterCondition:
    """A condition of a cluster resource."""

    type: ClusterConditionType
    status: ConditionStatus
    last_transition_time: datetime = field(default_factory=_now)
    reason: str = ""
    message: str = ""


@dataclass
class NodeCondition:
    """A condition of a single cluster node."""

    type: NodeConditionType
    status: ConditionStatus
    last_transition_time: datetime = field(default_factory=_now)


@dataclass
class NodeStatus:
    """Status of one node in a cluster."""

    name: str
    conditions: List[NodeCondition] = field(default_factory=list)


@dataclass
class MysqlClusterSpec:
    """Desired state of a MySQL cluster."""

    replicas: Optional[int] = None
    secret_name: str = ""
    mysql_version: str = ""
    image: str = ""
    init_bucket_uri: str = ""
    init_bucket_secret_name: str = ""
    min_available: str = ""
    backup_schedule: str = ""
    # Deprecated in favour of backup_url.
    backup_uri: str = ""
    backup_url: str = ""
    backup_secret_name: str = ""
    backup_schedule_jobs_history_limit: Optional[int] = None
    mysql_conf: MysqlConf = field(default_factory=dict)
    pod_spec: PodSpec = field(default_factory=PodSpec)
    volume_spec: VolumeSpec = field(default_factory=VolumeSpec)
    max_slave_latency: Optional[int] = None
    query_limits: Optional[QueryLimits] = None
    read_only: bool = False


@dataclass
class MysqlClusterStatus:
    """Observed state of a MySQL cluster."""

    ready_nodes: int = 0
    conditions: List[ClusterCondition] = field(default_factory=list)
    nodes: List[NodeStatus] = field(default_factory=list)


@dataclass
class MysqlCluster:
    """A replicated MySQL cluster."""

    KIND: ClassVar[str] = "MysqlCluster"

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: MysqlClusterSpec = field(default_factory=MysqlClusterSpec)
    status: MysqlClusterStatus = field(default_factory=MysqlClusterStatus)

    @property
    def api_version(self) -> str:
        return str(SCHEME_GROUP_VERSION)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    def deep_copy(self) -> "MysqlCluster":
        """Return an independent copy of this cluster."""
        return copy.deepcopy(self)


# --- defaulting --------------------------------------------------------------


def _set_pod_spec_defaults(spec: PodSpec) -> None:
    if not spec.resources.requests:
        spec.resources = ResourceRequirements(
            requests={"cpu": RESOURCE_REQUEST_CPU, "memory": RESOURCE_REQUEST_MEMORY}
        )


def _set_volume_spec_defaults(spec: PersistentVolumeClaimSpec) -> None:
    if not spec.access_modes:
        spec.access_modes = [READ_WRITE_ONCE]
    if not spec.resources.requests:
        spec.resources = ResourceRequirements(requests={"storage": RESOURCE_STORAGE})


def set_defaults_mysql_cluster(cluster: MysqlCluster) -> None:
    """Fill unset fields of a cluster with their default values, in place."""
    spec = cluster.spec
    _set_pod_spec_defaults(spec.pod_spec)

    if spec.volume_spec.persistent_volume_claim is not None:
        _set_volume_spec_defaults(spec.volume_spec.persistent_volume_claim)

    if spec.replicas is None:
        spec.replicas = 1

    if not spec.mysql_conf:
        spec.mysql_conf = {}

    if not spec.min_available and spec.replicas > 1:
        spec.min_available = DEFAULT_MIN_AVAILABLE