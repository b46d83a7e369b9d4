from evpn_bridge.drivers.base import SwitchDriver, SwitchError
from evpn_bridge.drivers.file_switch import FileSwitchDriver
from evpn_bridge.events import (
    ForwardingEvent,
    ForwardingKind,
    ObjectEvent,
    ObjectKind,
    Operation,
)
from evpn_bridge.reconciler import Decoders, Reconciler, next_backoff
from evpn_bridge.store import InMemoryTopologyStore
from evpn_p4.config import Representors
from evpn_p4.entries import Table
from evpn_p4.objects import (
    ComponentState,
    ComponentStatus,
    Nexthop,
    NexthopKey,
    NexthopType,
    ObjectStatus,
    OperStatus,
    Vrf,
)
from evpn_p4.pool import ResourcePools

COMPONENT = "intel-e2000"


class RecordingSwitch(SwitchDriver):
    def __init__(self):
        self.calls = []
        self.installed = {}
        self.fail_tables = set()

    def add_entry(self, entry):
        if entry.table in self.fail_tables:
            raise SwitchError(f"{entry.table.value} rejected")
        self.calls.append(("add", entry))
        self.installed[entry.key] = entry

    def del_entry(self, entry):
        if entry.table in self.fail_tables:
            raise SwitchError(f"{entry.table.value} rejected")
        self.calls.append(("del", entry))
        self.installed.pop(entry.key, None)

    def is_ready(self):
        return True


def build_representors() -> Representors:
    return Representors.from_mapping(
        {
            "vrf_mux": (0x0A, "00:0a:00:00:00:01"),
            "port_mux": (0x0C, "00:0c:00:00:00:02"),
            "phy0_rep": (0x10, "00:10:00:00:00:10"),
            "grpc_acc": (0x13, "00:13:00:00:00:13"),
            "grpc_host": (0x14, "00:14:00:00:00:14"),
        }
    )


def blue_vrf(version="v1") -> Vrf:
    return Vrf(
        name="blue",
        vni=1000,
        vtep_ip="10.0.0.1",
        routing_table=(100,),
        resource_version=version,
        status=ObjectStatus(
            oper_status=OperStatus.UP,
            components=(
                ComponentStatus(
                    name="frr",
                    status=ComponentState.SUCCESS,
                    details='{"rmac": "00:00:5e:00:01:01"}',
                ),
            ),
        ),
    )


def phy_nexthop(nh_id=3) -> Nexthop:
    return Nexthop(
        id=nh_id,
        key=NexthopKey("GRD", f"192.0.2.{nh_id}", 2),
        nh_type=NexthopType.PHY,
        smac="00:00:00:aa:00:01",
        dmac=f"00:00:00:bb:00:{nh_id:02x}",
        egress_vport=0,
    )


def build_reconciler(store=None):
    store = store if store is not None else InMemoryTopologyStore()
    switch = RecordingSwitch()
    decoders = Decoders.build(ResourcePools(), build_representors(), store)
    return Reconciler(store, switch, decoders, COMPONENT), store, switch


def vrf_event(version="v1", name="blue") -> ObjectEvent:
    return ObjectEvent(ObjectKind.VRF, name, version, "topology.yaml:1")


def component_of(store, name="blue"):
    return store.get_vrf(name).status.component(COMPONENT)


# ----------------------------------------------------------------------
# topology events
# ----------------------------------------------------------------------
def test_vrf_is_programmed_and_success_reported():
    reconciler, store, switch = build_reconciler()
    store.put(blue_vrf())

    status = reconciler.handle_topology(vrf_event())

    assert status.status is ComponentState.SUCCESS
    assert component_of(store).status is ComponentState.SUCCESS
    assert [(op, e.table) for op, e in switch.calls] == [
        ("add", Table.PHY_INGRESS_VXLAN)
    ]


def test_default_vrf_needs_no_entries():
    reconciler, store, switch = build_reconciler()
    store.put(Vrf(name="GRD", resource_version="v1"))

    status = reconciler.handle_topology(vrf_event(name="GRD"))

    assert status.status is ComponentState.SUCCESS
    assert component_of(store, "GRD").status is ComponentState.SUCCESS
    assert switch.calls == []


def test_missing_object_reports_error():
    reconciler, _, switch = build_reconciler()

    status = reconciler.handle_topology(vrf_event(name="nope"))

    assert status.status is ComponentState.ERROR
    assert status.timer == 2.0
    assert switch.calls == []


def test_stale_event_is_not_applied():
    reconciler, store, switch = build_reconciler()
    store.put(blue_vrf("v2"))

    status = reconciler.handle_topology(vrf_event("v1"))

    assert status.status is ComponentState.ERROR
    assert status.details.startswith("resource version mismatch")
    assert switch.calls == []
    # the store refuses a report for a version it no longer holds
    assert component_of(store) is None


def test_failures_back_off_exponentially_until_success():
    reconciler, store, switch = build_reconciler()
    store.put(blue_vrf())
    switch.fail_tables.add(Table.PHY_INGRESS_VXLAN)

    timers = [reconciler.handle_topology(vrf_event()).timer for _ in range(3)]

    assert timers == [2.0, 4.0, 8.0]
    assert component_of(store).status is ComponentState.ERROR
    assert component_of(store).timer == 8.0

    switch.fail_tables.clear()
    success = reconciler.handle_topology(vrf_event())
    assert success.status is ComponentState.SUCCESS
    assert success.timer == 0.0

    switch.fail_tables.add(Table.PHY_INGRESS_VXLAN)
    assert reconciler.handle_topology(vrf_event()).timer == 2.0


def test_next_backoff():
    assert next_backoff(None) == 2.0
    assert next_backoff(ComponentStatus(name=COMPONENT)) == 2.0
    assert next_backoff(ComponentStatus(name=COMPONENT, timer=4.0)) == 8.0


def test_deletion_removes_entries_and_object():
    reconciler, store, switch = build_reconciler()
    store.put(blue_vrf())
    reconciler.handle_topology(vrf_event())

    store.mark_deleted(ObjectKind.VRF, "blue", "v1-deleted")
    status = reconciler.handle_topology(vrf_event("v1-deleted"))

    assert status.status is ComponentState.SUCCESS
    assert [op for op, _ in switch.calls] == ["add", "del"]
    assert switch.installed == {}
    assert store.names(ObjectKind.VRF) == []


# ----------------------------------------------------------------------
# forwarding events
# ----------------------------------------------------------------------
def test_forwarding_add_programs_entries():
    reconciler, _, switch = build_reconciler()

    ok = reconciler.handle_forwarding(
        ForwardingEvent(ForwardingKind.NEXTHOP, Operation.ADDED, phy_nexthop())
    )

    assert ok
    assert [e.table for _, e in switch.calls] == [
        Table.MAC_MOD,
        Table.L3_NEXTHOP_TX,
        Table.L3_NEXTHOP_RX,
        Table.INGRESS_P2P,
    ]


def test_rejected_entry_does_not_stop_the_batch():
    reconciler, _, switch = build_reconciler()
    switch.fail_tables.add(Table.L3_NEXTHOP_TX)

    ok = reconciler.handle_forwarding(
        ForwardingEvent(ForwardingKind.NEXTHOP, Operation.ADDED, phy_nexthop())
    )

    assert not ok
    assert [e.table for _, e in switch.calls] == [
        Table.MAC_MOD,
        Table.L3_NEXTHOP_RX,
        Table.INGRESS_P2P,
    ]


def test_update_deletes_before_adding():
    reconciler, _, switch = build_reconciler()
    nexthop = phy_nexthop()
    reconciler.handle_forwarding(
        ForwardingEvent(ForwardingKind.NEXTHOP, Operation.ADDED, nexthop)
    )
    switch.calls.clear()

    ok = reconciler.handle_forwarding(
        ForwardingEvent(ForwardingKind.NEXTHOP, Operation.UPDATED, nexthop)
    )

    assert ok
    assert [op for op, _ in switch.calls] == ["del"] * 4 + ["add"] * 4
    assert len(switch.installed) == 4


def test_untranslatable_forwarding_object_is_reported():
    reconciler, _, switch = build_reconciler()
    nexthop = Nexthop(
        id=8,
        key=NexthopKey("blue", "10.9.0.2", 7),
        nh_type=NexthopType.ACC,
        dmac="00:00:00:cc:00:08",
        egress_vport=0x20,
    )

    ok = reconciler.handle_forwarding(
        ForwardingEvent(ForwardingKind.NEXTHOP, Operation.ADDED, nexthop)
    )

    assert not ok
    assert switch.calls == []


# ----------------------------------------------------------------------
# static entries
# ----------------------------------------------------------------------
def test_static_entries_are_installed_and_removed():
    reconciler, _, switch = build_reconciler()

    assert reconciler.install_static_entries()
    installed = len(switch.calls)
    assert installed > 0
    assert all(op == "add" for op, _ in switch.calls)

    assert reconciler.remove_static_entries()
    assert switch.installed == {}
    assert len(switch.calls) == 2 * installed


def test_reapplying_a_change_converges_to_one_entry_per_key():
    store = InMemoryTopologyStore()
    switch = FileSwitchDriver()
    decoders = Decoders.build(ResourcePools(), build_representors(), store)
    reconciler = Reconciler(store, switch, decoders, COMPONENT)
    event = ForwardingEvent(ForwardingKind.NEXTHOP, Operation.ADDED, phy_nexthop())

    assert reconciler.handle_forwarding(event)
    first = switch.snapshot()
    assert reconciler.handle_forwarding(event)

    assert len(switch) == 4
    assert switch.snapshot() == first


# ----------------------------------------------------------------------
# retries and status metadata
# ----------------------------------------------------------------------
class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


def test_failed_object_is_retried_once_its_timer_runs_out():
    clock = FakeClock()
    reconciler, store, switch = build_reconciler(InMemoryTopologyStore(clock=clock))
    store.put(blue_vrf())
    switch.fail_tables.add(Table.PHY_INGRESS_VXLAN)

    assert reconciler.handle_topology(vrf_event()).timer == 2.0
    assert store.due_retries() == []
    assert store.metadata(ObjectKind.VRF, "blue") == {}

    clock.now += 2.0
    switch.fail_tables.clear()
    (retry,) = store.due_retries()

    assert retry == ObjectEvent(ObjectKind.VRF, "blue", "v1", "retry")
    assert reconciler.handle_topology(retry).status is ComponentState.SUCCESS
    assert component_of(store).status is ComponentState.SUCCESS
    assert len(switch.installed) == 1
    clock.now += 60.0
    assert store.due_retries() == []


def test_success_reports_vrf_metadata():
    reconciler, store, _ = build_reconciler()
    store.put(blue_vrf())

    reconciler.handle_topology(vrf_event())

    assert store.metadata(ObjectKind.VRF, "blue") == {"routing_table": [100]}
