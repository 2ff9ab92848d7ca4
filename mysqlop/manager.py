"""Type registration and the manager that runs the controllers."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from .api import (
    SCHEME_GROUP_VERSION,
    GroupVersion,
    MysqlBackup,
    MysqlCluster,
    set_defaults_mysql_cluster,
)
from .backup_controller import ReconcileMysqlBackup
from .backup_cron import ReconcileMysqlBackupCron
from .cron import Cron
from .store import NamespacedName, ObjectStore

log = logging.getLogger(__name__)

Defaulter = Callable[[Any], None]


class NotRegisteredError(LookupError):
    """A kind or type is not known to the scheme."""


def _kind_of(kind: Any) -> str:
    if isinstance(kind, str):
        return kind
    return getattr(kind, "KIND", kind.__name__)


class Scheme:
    """Maps resource kinds to their types, group versions and defaulters."""

    def __init__(self) -> None:
        self._types: Dict[Tuple[GroupVersion, str], type] = {}
        self._kinds: Dict[type, Tuple[GroupVersion, str]] = {}
        self._defaulters: Dict[type, List[Defaulter]] = {}

    def register(self, *args: Any) -> None:
        """Register resource types.

        A leading GroupVersion sets the group they belong to; without one
        the types join the mysql group version.
        """
        group_version = SCHEME_GROUP_VERSION
        types = list(args)
        if types and isinstance(types[0], GroupVersion):
            group_version = types.pop(0)
        for obj_type in types:
            if not isinstance(obj_type, type):
                raise TypeError(f"expected a type, got {obj_type!r}")
            key = (group_version, _kind_of(obj_type))
            known = self._types.get(key)
            if known is not None and known is not obj_type:
                raise ValueError(
                    f"kind {key[1]} in {group_version} is already registered "
                    f"to {known.__name__}"
                )
            self._types[key] = obj_type
            self._kinds[obj_type] = key

    def add_defaulter(self, obj_type: type, defaulter: Defaulter) -> None:
        """Register a function that fills defaults of objects of a type."""
        if obj_type not in self._kinds:
            raise NotRegisteredError(f"{obj_type.__name__} is not registered")
        self._defaulters.setdefault(obj_type, []).append(defaulter)

    def default(self, obj: Any) -> Any:
        """Apply the registered defaulters to an object, in place."""
        for defaulter in self._defaulters.get(type(obj), ()):
            defaulter(obj)
        return obj

    def object_kind(self, obj: Any) -> Tuple[GroupVersion, str]:
        """Return the group version and kind of an object or type."""
        obj_type = obj if isinstance(obj, type) else type(obj)
        try:
            return self._kinds[obj_type]
        except KeyError:
            raise NotRegisteredError(f"{obj_type.__name__} is not registered") from None

    def new(self, group_version: GroupVersion, kind: str) -> Any:
        """Create an empty object of a registered kind."""
        try:
            obj_type = self._types[(group_version, kind)]
        except KeyError:
            raise NotRegisteredError(f"kind {kind} in {group_version} is not registered") from None
        return obj_type()

    def is_registered(self, obj_type: type) -> bool:
        """Whether a type is known to the scheme."""
        return obj_type in self._kinds

    def kinds(self) -> List[Tuple[GroupVersion, str]]:
        """Return every registered (group version, kind) pair, sorted."""
        return sorted(self._types, key=lambda k: (str(k[0]), k[1]))


def add_to_scheme(scheme: Scheme) -> None:
    """Register every resource type of the project with the scheme."""
    scheme.register(SCHEME_GROUP_VERSION, MysqlBackup, MysqlCluster)
    scheme.add_defaulter(MysqlCluster, set_defaults_mysql_cluster)


@dataclass
class Controller:
    """A named reconciler and the kinds whose changes it handles."""

    name: str
    reconciler: Any
    watches: Tuple[str, ...] = field(default_factory=tuple)


class Manager:
    """Holds shared dependencies, controllers and background runnables."""

    def __init__(self, store: Optional[ObjectStore] = None, scheme: Optional[Scheme] = None) -> None:
        self.store = store if store is not None else ObjectStore()
        self.scheme = scheme if scheme is not None else Scheme()
        self.controllers: Dict[str, Controller] = {}
        self._runnables: List[Any] = []
        self._running = False
        self._lock = threading.Lock()

    def add(self, runnable: Any) -> None:
        """Add an object whose start(stop_event) runs until the event is set."""
        if not callable(getattr(runnable, "start", None)):
            raise TypeError(f"{runnable!r} has no start method")
        with self._lock:
            self._runnables.append(runnable)

    def add_controller(self, name: str, reconciler: Any, watches: List[Any]) -> Controller:
        """Register a reconciler under a unique name for the given kinds."""
        with self._lock:
            if name in self.controllers:
                raise ValueError(f"controller {name} is already registered")
            controller = Controller(
                name=name, reconciler=reconciler, watches=tuple(_kind_of(k) for k in watches)
            )
            self.controllers[name] = controller
        return controller

    def enqueue(self, kind: Any, key: NamespacedName) -> List[str]:
        """Reconcile the object in every controller watching its kind.

        Returns the names of the controllers that ran.
        """
        kind_name = _kind_of(kind)
        handled = []
        for controller in list(self.controllers.values()):
            if kind_name in controller.watches:
                controller.reconciler.reconcile(key)
                handled.append(controller.name)
        return handled

    def start(self, stop_event: threading.Event) -> None:
        """Run the runnables until stop_event is set or one of them fails."""
        with self._lock:
            if self._running:
                raise RuntimeError("manager is already running")
            self._running = True
            runnables = list(self._runnables)

        internal_stop = threading.Event()
        failed = threading.Event()
        errors: List[BaseException] = []

        def run(runnable: Any) -> None:
            try:
                runnable.start(internal_stop)
            except Exception as err:  # reported to the caller of start
                log.error("runnable %r failed: %s", runnable, err)
                errors.append(err)
                failed.set()

        threads = [threading.Thread(target=run, args=(r,), daemon=True) for r in runnables]
        try:
            for thread in threads:
                thread.start()
            while not stop_event.wait(0.05):
                if failed.is_set():
                    break
        finally:
            internal_stop.set()
            for thread in threads:
                thread.join()
            with self._lock:
                self._running = False
        if errors:
            raise errors[0]


class _StartStopCron:
    """Runs a cron while the manager runs."""

    def __init__(self, cron: Cron) -> None:
        self.cron = cron

    def start(self, stop_event: threading.Event) -> None:
        self.cron.start()
        try:
            stop_event.wait()
        finally:
            self.cron.stop()


def add_mysqlbackup(manager: Manager) -> None:
    """Add the backup controller to the manager."""
    reconciler = ReconcileMysqlBackup(manager.store)
    manager.add_controller("mysqlbackup-controller", reconciler, [MysqlBackup])


def add_mysqlbackupcron(manager: Manager) -> None:
    """Add the backup cron controller and its running cron to the manager."""
    cron = Cron()
    manager.add(_StartStopCron(cron))
    reconciler = ReconcileMysqlBackupCron(manager.store, cron)
    manager.add_controller("mysqlbackupcron-controller", reconciler, [MysqlCluster])


ADD_TO_MANAGER_FUNCS: List[Callable[[Manager], None]] = [add_mysqlbackup, add_mysqlbackupcron]


def add_to_manager(manager: Manager) -> None:
    """Add every controller to the manager."""
    for add in ADD_TO_MANAGER_FUNCS:
        add(manager)