"""Thread-safe in-memory topology store."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from evpn_p4.errors import ObjectNotFound
from evpn_p4.objects import (
    BridgePort,
    ComponentState,
    ComponentStatus,
    LogicalBridge,
    ObjectStatus,
    OperStatus,
    Svi,
    TopologyObject,
    Vrf,
)

from .drivers.base import TopologyStore, TopologyStoreError
from .events import ObjectEvent, ObjectKind

LOG = logging.getLogger(__name__)

_KIND_OF = {
    Vrf: ObjectKind.VRF,
    LogicalBridge: ObjectKind.LOGICAL_BRIDGE,
    BridgePort: ObjectKind.BRIDGE_PORT,
    Svi: ObjectKind.SVI,
}


def kind_of(obj: TopologyObject) -> ObjectKind:
    try:
        return _KIND_OF[type(obj)]
    except KeyError:
        raise TypeError(f"Unsupported topology object: {type(obj)!r}") from None


class InMemoryTopologyStore(TopologyStore):
    """Holds the topology objects and the component status reported on them.

    Status updates carry the resource version the reporter translated; an
    update for a version that is no longer current is rejected with
    :class:`TopologyStoreError`, the same way a real store refuses a stale
    write.

    An ``error`` status arms a retry deadline ``timer`` seconds after the
    report; :meth:`due_retries` hands back the objects whose deadline passed.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._objects: Dict[ObjectKind, Dict[str, TopologyObject]] = {
            kind: {} for kind in ObjectKind
        }
        self._metadata: Dict[Tuple[ObjectKind, str], Dict[str, Any]] = {}
        self._retry_at: Dict[Tuple[ObjectKind, str], float] = {}

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------
    def put(self, obj: TopologyObject) -> TopologyObject:
        """Insert or replace ``obj``.

        An object stored with the default status inherits the component
        statuses already recorded for its predecessor.
        """

        kind = kind_of(obj)
        with self._lock:
            current = self._objects[kind].get(obj.name)
            if current is not None and obj.status == ObjectStatus():
                status = replace(obj.status, components=current.status.components)
                obj = replace(obj, status=status)
            self._objects[kind][obj.name] = obj
            # a new version gets its own event
            self._retry_at.pop((kind, obj.name), None)
        LOG.debug(
            "stored %s '%s' version %s", kind.value, obj.name, obj.resource_version
        )
        return obj

    def mark_deleted(
        self, kind: ObjectKind, name: str, resource_version: str
    ) -> TopologyObject:
        """Flag an object for deletion; it stays readable until removed."""

        with self._lock:
            current = self._get(kind, name)
            status = replace(current.status, oper_status=OperStatus.TO_BE_DELETED)
            updated = replace(current, status=status, resource_version=resource_version)
            self._objects[kind][name] = updated
        return updated

    def remove(self, kind: ObjectKind, name: str) -> Optional[TopologyObject]:
        with self._lock:
            self._forget(kind, name)
            return self._objects[kind].pop(name, None)

    def _forget(self, kind: ObjectKind, name: str) -> None:
        self._metadata.pop((kind, name), None)
        self._retry_at.pop((kind, name), None)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def _get(self, kind: ObjectKind, name: str) -> TopologyObject:
        try:
            return self._objects[kind][name]
        except KeyError:
            raise ObjectNotFound(kind.value, name) from None

    def get(self, kind: ObjectKind, name: str) -> TopologyObject:
        with self._lock:
            return self._get(kind, name)

    def names(self, kind: ObjectKind) -> List[str]:
        with self._lock:
            return sorted(self._objects[kind])

    def get_vrf(self, name: str) -> Vrf:
        return self.get(ObjectKind.VRF, name)

    def get_lb(self, name: str) -> LogicalBridge:
        return self.get(ObjectKind.LOGICAL_BRIDGE, name)

    def get_bp(self, name: str) -> BridgePort:
        return self.get(ObjectKind.BRIDGE_PORT, name)

    def get_svi(self, name: str) -> Svi:
        return self.get(ObjectKind.SVI, name)

    def metadata(self, kind: ObjectKind, name: str) -> Dict[str, Any]:
        """Metadata last reported alongside a successful status."""

        with self._lock:
            return dict(self._metadata.get((kind, name), {}))

    # ------------------------------------------------------------------
    # status
    # ------------------------------------------------------------------
    def _update_status(
        self,
        kind: ObjectKind,
        name: str,
        resource_version: str,
        notification_id: str,
        metadata: Optional[Mapping[str, Any]],
        component: ComponentStatus,
    ) -> None:
        with self._lock:
            try:
                current = self._get(kind, name)
            except ObjectNotFound as exc:
                raise TopologyStoreError(str(exc)) from exc
            if current.resource_version != resource_version:
                raise TopologyStoreError(
                    f"{kind.value} '{name}' is at version "
                    f"{current.resource_version}, not {resource_version}"
                )
            status = current.status.with_component(component)
            if status.to_be_deleted and component.status is ComponentState.SUCCESS:
                # deletion acknowledged, the object is gone for good
                del self._objects[kind][name]
                self._forget(kind, name)
            else:
                self._objects[kind][name] = replace(current, status=status)
                if metadata is not None:
                    self._metadata[(kind, name)] = dict(metadata)
                if component.status is ComponentState.ERROR and component.timer:
                    self._retry_at[(kind, name)] = self._clock() + component.timer
                else:
                    self._retry_at.pop((kind, name), None)
        LOG.debug(
            "%s '%s' component %s -> %s (notification %s)",
            kind.value,
            name,
            component.name,
            component.status.value,
            notification_id or "-",
        )

    def update_vrf_status(
        self, name, resource_version, notification_id, metadata, component
    ):
        self._update_status(
            ObjectKind.VRF, name, resource_version, notification_id, metadata, component
        )

    def update_lb_status(
        self, name, resource_version, notification_id, metadata, component
    ):
        self._update_status(
            ObjectKind.LOGICAL_BRIDGE,
            name,
            resource_version,
            notification_id,
            metadata,
            component,
        )

    def update_bp_status(
        self, name, resource_version, notification_id, metadata, component
    ):
        self._update_status(
            ObjectKind.BRIDGE_PORT,
            name,
            resource_version,
            notification_id,
            metadata,
            component,
        )

    def update_svi_status(
        self, name, resource_version, notification_id, metadata, component
    ):
        self._update_status(
            ObjectKind.SVI, name, resource_version, notification_id, metadata, component
        )

    # ------------------------------------------------------------------
    # retries
    # ------------------------------------------------------------------
    def due_retries(self, notification_id: str = "retry") -> List[ObjectEvent]:
        """Events for the objects whose retry deadline has passed.

        Each deadline fires once; the next ``error`` report re-arms it.
        """

        now = self._clock()
        events: List[ObjectEvent] = []
        with self._lock:
            for (kind, name), deadline in sorted(self._retry_at.items()):
                if deadline > now:
                    continue
                del self._retry_at[(kind, name)]
                current = self._objects[kind].get(name)
                if current is None:
                    continue
                events.append(
                    ObjectEvent(kind, name, current.resource_version, notification_id)
                )
        return events
