"""An in-memory object store for cluster and backup resources, with helpers."""

from __future__ import annotations

import copy
import itertools
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .api import (
    BackupConditionType,
    ConditionStatus,
    MysqlBackup,
    MysqlCluster,
    NodeCondition,
    NodeConditionType,
)

Resource = Union[MysqlBackup, MysqlCluster]
KindLike = Union[str, type]


@dataclass(frozen=True)
class NamespacedName:
    """The namespace and name that identify an object of a given kind."""

    name: str
    namespace: str = ""

    @classmethod
    def of(cls, obj: Resource) -> "NamespacedName":
        """Return the key of a stored object."""
        return cls(name=obj.metadata.name, namespace=obj.metadata.namespace)

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class StoreError(Exception):
    """Base class for object store errors."""

    def __init__(self, kind: str, key: NamespacedName, message: str) -> None:
        super().__init__(f"{kind} {key}: {message}")
        self.kind = kind
        self.key = key


class NotFoundError(StoreError, LookupError):
    """The requested object does not exist."""

    def __init__(self, kind: str, key: NamespacedName) -> None:
        super().__init__(kind, key, "not found")


class AlreadyExistsError(StoreError):
    """An object with the same kind and key already exists."""

    def __init__(self, kind: str, key: NamespacedName) -> None:
        super().__init__(kind, key, "already exists")


def _kind_name(kind: KindLike) -> str:
    if isinstance(kind, str):
        return kind
    return getattr(kind, "KIND", kind.__name__)


def _labels_match(labels: Mapping[str, str], selector: Optional[Mapping[str, str]]) -> bool:
    if not selector:
        return True
    return all(labels.get(k) == v for k, v in selector.items())


class ObjectStore:
    """A thread-safe store of resources keyed by kind, namespace and name.

    Objects are copied on the way in and on the way out, so callers never
    share state with what is stored.
    """

    def __init__(self) -> None:
        self._objects: Dict[Tuple[str, NamespacedName], Resource] = {}
        self._lock = threading.Lock()
        self._versions = itertools.count(1)

    def _key(self, obj: Resource) -> Tuple[str, NamespacedName]:
        key = NamespacedName.of(obj)
        if not key.name:
            raise ValueError(f"{_kind_name(type(obj))} has no name")
        return _kind_name(type(obj)), key

    def create(self, obj: Resource) -> Resource:
        """Store a new object and fill in its server-side metadata."""
        kind, key = self._key(obj)
        with self._lock:
            if (kind, key) in self._objects:
                raise AlreadyExistsError(kind, key)
            meta = obj.metadata
            if meta.creation_timestamp is None:
                meta.creation_timestamp = datetime.now(timezone.utc)
            meta.uid = str(uuid.uuid4())
            meta.resource_version = str(next(self._versions))
            self._objects[(kind, key)] = copy.deepcopy(obj)
        return obj

    def get(self, kind: KindLike, key: NamespacedName) -> Resource:
        """Return a copy of the stored object, or raise NotFoundError."""
        kind_name = _kind_name(kind)
        with self._lock:
            try:
                stored = self._objects[(kind_name, key)]
            except KeyError:
                raise NotFoundError(kind_name, key) from None
            return copy.deepcopy(stored)

    def update(self, obj: Resource) -> Resource:
        """Replace a stored object, keeping its identity metadata."""
        kind, key = self._key(obj)
        with self._lock:
            current = self._objects.get((kind, key))
            if current is None:
                raise NotFoundError(kind, key)
            meta = obj.metadata
            meta.uid = current.metadata.uid
            meta.creation_timestamp = current.metadata.creation_timestamp
            meta.resource_version = str(next(self._versions))
            self._objects[(kind, key)] = copy.deepcopy(obj)
        return obj

    def delete(self, obj: Resource) -> None:
        """Remove an object, or raise NotFoundError."""
        kind, key = self._key(obj)
        with self._lock:
            if self._objects.pop((kind, key), None) is None:
                raise NotFoundError(kind, key)

    def list(
        self,
        kind: KindLike,
        namespace: Optional[str] = None,
        labels: Optional[Mapping[str, str]] = None,
    ) -> List[Resource]:
        """Return copies of objects of a kind, filtered by namespace and labels."""
        kind_name = _kind_name(kind)
        with self._lock:
            found = [
                copy.deepcopy(obj)
                for (k, key), obj in self._objects.items()
                if k == kind_name
                and (not namespace or key.namespace == namespace)
                and _labels_match(obj.metadata.labels, labels)
            ]
        found.sort(key=lambda o: (o.metadata.namespace, o.metadata.name))
        return found


def _status(flag: bool) -> ConditionStatus:
    return ConditionStatus.TRUE if flag else ConditionStatus.FALSE


def node_conditions(
    master: bool, replicating: bool, lagged: bool, read_only: bool
) -> List[NodeCondition]:
    """Return the master, replicating, lagged and read-only conditions of a node."""
    now = datetime.now(timezone.utc)
    flags: Iterable[Tuple[NodeConditionType, bool]] = (
        (NodeConditionType.MASTER, master),
        (NodeConditionType.REPLICATING, replicating),
        (NodeConditionType.LAGGED, lagged),
        (NodeConditionType.READ_ONLY, read_only),
    )
    return [
        NodeCondition(type=cond_type, status=_status(flag), last_transition_time=now)
        for cond_type, flag in flags
    ]


def list_all_backups(
    store: ObjectStore,
    namespace: Optional[str] = None,
    labels: Optional[Mapping[str, str]] = None,
) -> List[MysqlBackup]:
    """Return every backup matching the namespace and label selector."""
    return store.list(MysqlBackup, namespace, labels)


def backup_has_condition(
    backup: MysqlBackup, cond_type: BackupConditionType, status: ConditionStatus
) -> bool:
    """Whether the backup has a condition of this type with this status."""
    return any(
        cond.type == cond_type and cond.status == status
        for cond in backup.status.conditions
    )


def backup_for_cluster(backup: MysqlBackup, cluster: MysqlCluster) -> bool:
    """Whether the backup was taken for the given cluster."""
    return backup.spec.cluster_name == cluster.name


def backup_with_name(backup: MysqlBackup, name: str) -> bool:
    """Whether the backup has the given name."""
    return backup.name == name