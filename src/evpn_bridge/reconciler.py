"""Dispatch topology and forwarding events to the decoders and the switch."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from evpn_p4.config import Representors
from evpn_p4.ecmp import EcmpBuilder
from evpn_p4.entries import TableEntry
from evpn_p4.errors import PoolExhausted, TranslationError
from evpn_p4.l3 import L3Decoder
from evpn_p4.objects import ComponentState, ComponentStatus, TopologyObject, Vrf
from evpn_p4.pod import PodDecoder
from evpn_p4.pool import ResourcePools
from evpn_p4.topology import TopologyReader
from evpn_p4.vxlan import VxlanDecoder

from .drivers.base import (
    SwitchDriver,
    SwitchError,
    TopologyStore,
    TopologyStoreError,
)
from .events import (
    ForwardingEvent,
    ForwardingKind,
    ObjectEvent,
    ObjectKind,
    Operation,
)

LOG = logging.getLogger(__name__)

DEFAULT_COMPONENT = "intel-e2000"
INITIAL_BACKOFF = 2.0

Translate = Callable[[object], List[TableEntry]]


@dataclass
class Decoders:
    l3: L3Decoder
    vxlan: VxlanDecoder
    pod: PodDecoder

    @classmethod
    def build(
        cls,
        pools: ResourcePools,
        representors: Representors,
        topology: TopologyReader,
    ) -> "Decoders":
        """Wire the three decoders to one set of pools."""

        return cls(
            l3=L3Decoder(pools, EcmpBuilder(pools), representors),
            vxlan=VxlanDecoder(pools),
            pod=PodDecoder(pools, representors, topology),
        )


def next_backoff(previous: Optional[ComponentStatus]) -> float:
    """Retry timer for a failure following ``previous``."""

    if previous is None or previous.timer <= 0:
        return INITIAL_BACKOFF
    return previous.timer * 2


def status_metadata(obj: TopologyObject) -> Optional[Dict[str, Any]]:
    """Metadata handed back with a successful status report."""

    if isinstance(obj, Vrf):
        return {"routing_table": list(obj.routing_table)}
    return None


class Reconciler:
    """Keep the switch in line with the topology store and forwarding state.

    Topology events carry only a name and a resource version: the object is
    re-read from the store and translated along the added path, or along the
    deleted path when its oper status is ``TO_BE_DELETED``.  The outcome is
    reported back to the store as this component's status, with an
    exponential retry timer on failure.

    Forwarding events carry the object and are fire-and-forget: failures are
    logged and nothing is reported.
    """

    def __init__(
        self,
        store: TopologyStore,
        switch: SwitchDriver,
        decoders: Decoders,
        component: str = DEFAULT_COMPONENT,
    ) -> None:
        self._store = store
        self._switch = switch
        self._decoders = decoders
        self.component = component

        d = decoders
        self._topology_handlers: Dict[ObjectKind, Tuple[Translate, Translate]] = {
            ObjectKind.VRF: (
                d.vxlan.translate_added_vrf,
                d.vxlan.translate_deleted_vrf,
            ),
            ObjectKind.LOGICAL_BRIDGE: (
                d.vxlan.translate_added_lb,
                d.vxlan.translate_deleted_lb,
            ),
            ObjectKind.BRIDGE_PORT: (
                d.pod.translate_added_bp,
                d.pod.translate_deleted_bp,
            ),
            ObjectKind.SVI: (d.pod.translate_added_svi, d.pod.translate_deleted_svi),
        }
        self._forwarding_handlers: Dict[
            ForwardingKind, Sequence[Tuple[Translate, Translate]]
        ] = {
            ForwardingKind.ROUTE: [
                (d.l3.translate_added_route, d.l3.translate_deleted_route),
            ],
            ForwardingKind.NEXTHOP: [
                (d.l3.translate_added_nexthop, d.l3.translate_deleted_nexthop),
                (d.vxlan.translate_added_nexthop, d.vxlan.translate_deleted_nexthop),
            ],
            ForwardingKind.FDB: [
                (d.vxlan.translate_added_fdb, d.vxlan.translate_deleted_fdb),
                (d.pod.translate_added_fdb, d.pod.translate_deleted_fdb),
            ],
            ForwardingKind.L2_NEXTHOP: [
                (
                    d.vxlan.translate_added_l2_nexthop,
                    d.vxlan.translate_deleted_l2_nexthop,
                ),
                (d.pod.translate_added_l2_nexthop, d.pod.translate_deleted_l2_nexthop),
            ],
        }
        self._status_updaters = {
            ObjectKind.VRF: store.update_vrf_status,
            ObjectKind.LOGICAL_BRIDGE: store.update_lb_status,
            ObjectKind.BRIDGE_PORT: store.update_bp_status,
            ObjectKind.SVI: store.update_svi_status,
        }
        self._getters = {
            ObjectKind.VRF: store.get_vrf,
            ObjectKind.LOGICAL_BRIDGE: store.get_lb,
            ObjectKind.BRIDGE_PORT: store.get_bp,
            ObjectKind.SVI: store.get_svi,
        }

    # ------------------------------------------------------------------
    # Topology events
    # ------------------------------------------------------------------
    def handle_topology(self, event: ObjectEvent) -> ComponentStatus:
        kind = ObjectKind(event.kind)
        try:
            obj = self._getters[kind](event.name)
        except TranslationError as exc:
            LOG.error("failed to fetch %s '%s': %s", kind.value, event.name, exc)
            return self._report(event, self._failure(None, str(exc)))

        previous = obj.status.component(self.component)
        if obj.resource_version != event.resource_version:
            details = (
                f"resource version mismatch: event {event.resource_version}, "
                f"store {obj.resource_version}"
            )
            LOG.error("%s '%s': %s", kind.value, event.name, details)
            return self._report(event, self._failure(previous, details))

        if isinstance(obj, Vrf) and obj.is_default:
            LOG.debug("default domain vrf '%s' needs no translation", obj.name)
            return self._report(event, self._success())

        added, deleted = self._topology_handlers[kind]
        deleting = obj.status.to_be_deleted
        try:
            entries = deleted(obj) if deleting else added(obj)
        except (TranslationError, PoolExhausted) as exc:
            LOG.error(
                "failed to translate %s '%s' (%s): %s",
                kind.value,
                obj.name,
                "delete" if deleting else "add",
                exc,
            )
            return self._report(event, self._failure(previous, str(exc)))

        if not self._apply(entries):
            return self._report(
                event, self._failure(previous, "switch rejected one or more entries")
            )
        LOG.info(
            "%s %s '%s' (%d entries)",
            "removed" if deleting else "programmed",
            kind.value,
            obj.name,
            len(entries),
        )
        if deleting:
            return self._report(event, self._success())
        return self._report(event, self._success(), status_metadata(obj))

    def _success(self) -> ComponentStatus:
        return ComponentStatus(name=self.component, status=ComponentState.SUCCESS)

    def _failure(
        self, previous: Optional[ComponentStatus], details: str
    ) -> ComponentStatus:
        return ComponentStatus(
            name=self.component,
            status=ComponentState.ERROR,
            details=details,
            timer=next_backoff(previous),
        )

    def _report(
        self,
        event: ObjectEvent,
        status: ComponentStatus,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ComponentStatus:
        updater = self._status_updaters[ObjectKind(event.kind)]
        try:
            updater(
                event.name,
                event.resource_version,
                event.notification_id,
                metadata,
                status,
            )
        except TopologyStoreError as exc:
            LOG.error(
                "failed to report status of %s '%s': %s",
                event.kind.value,
                event.name,
                exc,
            )
        return status

    # ------------------------------------------------------------------
    # Forwarding events
    # ------------------------------------------------------------------
    def handle_forwarding(self, event: ForwardingEvent) -> bool:
        kind = ForwardingKind(event.kind)
        operation = Operation(event.operation)
        handlers = self._forwarding_handlers[kind]
        try:
            entries = self._translate_forwarding(handlers, operation, event.payload)
        except (TranslationError, PoolExhausted) as exc:
            LOG.error(
                "failed to translate %s %s: %s", operation.value, kind.value, exc
            )
            return False
        if not self._apply(entries):
            LOG.error("failed to program %s %s", operation.value, kind.value)
            return False
        return True

    @staticmethod
    def _translate_forwarding(
        handlers: Sequence[Tuple[Translate, Translate]],
        operation: Operation,
        payload: object,
    ) -> List[TableEntry]:
        entries: List[TableEntry] = []
        if operation in (Operation.DELETED, Operation.UPDATED):
            for _, deleted in handlers:
                entries.extend(deleted(payload))
        if operation in (Operation.ADDED, Operation.UPDATED):
            for added, _ in handlers:
                entries.extend(added(payload))
        return entries

    # ------------------------------------------------------------------
    # Static entries
    # ------------------------------------------------------------------
    def _static(self, delete: bool) -> List[TableEntry]:
        d = self._decoders
        if delete:
            return d.l3.static_deletions() + d.pod.static_deletions()
        return d.l3.static_additions() + d.pod.static_additions()

    def install_static_entries(self) -> bool:
        entries = self._static(delete=False)
        ok = self._apply(entries)
        LOG.info("installed %d static entries", len(entries))
        return ok

    def remove_static_entries(self) -> bool:
        entries = self._static(delete=True)
        ok = self._apply(entries)
        LOG.info("removed %d static entries", len(entries))
        return ok

    # ------------------------------------------------------------------
    # Switch programming
    # ------------------------------------------------------------------
    def _apply(self, entries: Sequence[TableEntry]) -> bool:
        ok = True
        for entry in entries:
            try:
                if entry.is_delete:
                    self._switch.del_entry(entry)
                else:
                    self._switch.add_entry(entry)
            except SwitchError as exc:
                LOG.error(
                    "failed to %s entry in %s: %s",
                    "delete" if entry.is_delete else "add",
                    entry.table.value,
                    exc,
                )
                ok = False
        return ok
