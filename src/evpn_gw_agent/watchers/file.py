"""File-based topology and forwarding-state watcher."""

from __future__ import annotations

import logging
from pathlib import Path
from threading import Event, Thread
from typing import Optional

import yaml

from evpn_bridge.bus import EventBus
from evpn_bridge.events import (
    ForwardingEvent,
    ForwardingKind,
    ObjectEvent,
    ObjectKind,
    Operation,
)
from evpn_bridge.store import InMemoryTopologyStore
from evpn_p4.errors import ObjectNotFound

from .utils import TopologyState, parse_topology

LOG = logging.getLogger(__name__)

_OBJECT_ORDER = (
    ObjectKind.VRF,
    ObjectKind.LOGICAL_BRIDGE,
    ObjectKind.BRIDGE_PORT,
    ObjectKind.SVI,
)
# Nexthops must exist before the routes and FDB entries pointing at them.
_FORWARDING_ADD_ORDER = (
    ForwardingKind.NEXTHOP,
    ForwardingKind.L2_NEXTHOP,
    ForwardingKind.ROUTE,
    ForwardingKind.FDB,
)
_FORWARDING_DELETE_ORDER = tuple(reversed(_FORWARDING_ADD_ORDER))


class FileTopologyWatcher(Thread):
    """Poll a YAML/JSON topology file and publish the differences.

    Topology objects are written to the store before their event is
    published; objects that disappear from the file are marked for deletion
    and stay in the store until the reconciler acknowledges the removal.
    Objects whose last status report was an error are published again once
    their retry timer has run out.
    Forwarding objects travel inside their events.  A changed forwarding
    object is published as a delete of the old one followed by an add of the
    new one.
    """

    def __init__(
        self,
        store: InMemoryTopologyStore,
        bus: EventBus,
        path: Path,
        interval: float,
        stop_event: Event,
    ) -> None:
        super().__init__(name="topology-file-watcher", daemon=True)
        self._store = store
        self._bus = bus
        self._path = Path(path)
        self._interval = interval
        self._stop_event = stop_event
        self._state = TopologyState()
        self._generation = 0

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception:  # pragma: no cover - logged below
                LOG.exception("topology watcher encountered an error")
            self._stop_event.wait(self._interval)

    def _load(self) -> Optional[TopologyState]:
        if not self._path.exists():
            LOG.debug("topology file %s does not exist yet", self._path)
            return None
        try:
            payload = yaml.safe_load(self._path.read_text())
        except yaml.YAMLError as exc:
            LOG.warning("failed to parse topology file %s: %s", self._path, exc)
            return None
        try:
            return parse_topology(payload or {})
        except ValueError as exc:
            LOG.warning("invalid topology file %s: %s", self._path, exc)
            return None

    def poll(self) -> int:
        """Publish the changes since the previous poll; returns the event count."""

        published = 0
        desired = self._load()
        if desired is not None:
            self._generation += 1
            published = self._sync_objects(desired) + self._sync_forwarding(desired)
            self._state = desired
        published += self._publish_retries()
        if published:
            LOG.info("topology file %s: published %d events", self._path, published)
        return published

    def _publish_retries(self) -> int:
        events = self._store.due_retries(f"{self._path.name}:retry")
        for event in events:
            LOG.info(
                "retrying %s '%s' version %s",
                event.kind.value,
                event.name,
                event.resource_version,
            )
            self._bus.publish(event)
        return len(events)

    def _notification(self) -> str:
        return f"{self._path.name}:{self._generation}"

    def _sync_objects(self, desired: TopologyState) -> int:
        # Objects cross-reference each other, so all of them are stored
        # before the first event goes out.
        changed = []
        for kind in _OBJECT_ORDER:
            current = self._state.objects[kind]
            for name, obj in desired.objects[kind].items():
                if current.get(name) == obj:
                    continue
                stored = self._store.put(obj)
                LOG.debug("%s '%s' changed", kind.value, name)
                changed.append(
                    ObjectEvent(
                        kind, name, stored.resource_version, self._notification()
                    )
                )
        for event in changed:
            self._bus.publish(event)
        count = len(changed)

        for kind in reversed(_OBJECT_ORDER):
            current = self._state.objects[kind]
            for name in sorted(set(current) - set(desired.objects[kind])):
                version = f"{current[name].resource_version}-deleted"
                try:
                    self._store.mark_deleted(kind, name, version)
                except ObjectNotFound:
                    LOG.warning("%s '%s' vanished from the store", kind.value, name)
                    continue
                LOG.debug("%s '%s' removed", kind.value, name)
                self._bus.publish(
                    ObjectEvent(kind, name, version, self._notification())
                )
                count += 1
        return count

    def _sync_forwarding(self, desired: TopologyState) -> int:
        count = 0
        for kind in _FORWARDING_DELETE_ORDER:
            current = self._state.forwarding[kind]
            wanted = desired.forwarding[kind]
            for key, obj in current.items():
                if wanted.get(key) != obj:
                    self._bus.publish(ForwardingEvent(kind, Operation.DELETED, obj))
                    count += 1
        for kind in _FORWARDING_ADD_ORDER:
            current = self._state.forwarding[kind]
            for key, obj in desired.forwarding[kind].items():
                if current.get(key) != obj:
                    self._bus.publish(ForwardingEvent(kind, Operation.ADDED, obj))
                    count += 1
        return count
