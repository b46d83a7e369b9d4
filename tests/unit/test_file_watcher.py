import copy
import json
from pathlib import Path
from threading import Event

from evpn_bridge.events import (
    ForwardingEvent,
    ForwardingKind,
    ObjectEvent,
    ObjectKind,
    Operation,
)
from evpn_bridge.store import InMemoryTopologyStore
from evpn_gw_agent.watchers.file import FileTopologyWatcher
from evpn_p4.objects import ComponentState, ComponentStatus

TOPOLOGY = {
    "vrfs": [
        {
            "name": "blue",
            "vni": 1000,
            "vtep_ip": "10.0.0.1",
            "routing_table": 100,
            "resource_version": "1",
        }
    ],
    "logical_bridges": [{"name": "lb10", "vlan_id": 10, "resource_version": "1"}],
    "nexthops": [
        {
            "id": 3,
            "dst": "192.0.2.3",
            "dev": 2,
            "type": "phy",
            "smac": "00:00:00:aa:00:01",
            "dmac": "00:00:00:bb:00:03",
            "egress_vport": 0,
        }
    ],
    "routes": [{"dst": "192.0.2.7/32", "nexthops": [3]}],
}


class RecordingBus:
    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)
        return 1


def build_watcher(tmp_path: Path, payload=TOPOLOGY, store=None):
    topology_file = tmp_path / "topology.yaml"
    topology_file.write_text(json.dumps(payload))
    store = store if store is not None else InMemoryTopologyStore()
    bus = RecordingBus()
    watcher = FileTopologyWatcher(
        store=store,
        bus=bus,
        path=topology_file,
        interval=0.1,
        stop_event=Event(),
    )
    return watcher, store, bus, topology_file


def summary(events):
    result = []
    for event in events:
        if isinstance(event, ObjectEvent):
            result.append((event.kind, event.name))
        else:
            result.append((event.kind, event.operation))
    return result


def test_first_poll_stores_objects_and_publishes(tmp_path: Path):
    watcher, store, bus, _ = build_watcher(tmp_path)

    assert watcher.poll() == 4

    assert summary(bus.events) == [
        (ObjectKind.VRF, "blue"),
        (ObjectKind.LOGICAL_BRIDGE, "lb10"),
        (ForwardingKind.NEXTHOP, Operation.ADDED),
        (ForwardingKind.ROUTE, Operation.ADDED),
    ]
    vrf_event = bus.events[0]
    assert vrf_event.resource_version == "1"
    assert vrf_event.notification_id == "topology.yaml:1"
    assert store.get_vrf("blue").table_id == 100
    route = bus.events[-1].payload
    assert route.key == "GRD:192.0.2.7/32"
    assert route.nexthops[0].id == 3


def test_unchanged_file_publishes_nothing(tmp_path: Path):
    watcher, _, bus, _ = build_watcher(tmp_path)
    watcher.poll()
    bus.events.clear()

    assert watcher.poll() == 0
    assert bus.events == []


def test_removed_object_is_marked_for_deletion(tmp_path: Path):
    watcher, store, bus, topology_file = build_watcher(tmp_path)
    watcher.poll()
    bus.events.clear()

    payload = copy.deepcopy(TOPOLOGY)
    payload["logical_bridges"] = []
    topology_file.write_text(json.dumps(payload))

    assert watcher.poll() == 1
    (event,) = bus.events
    assert event == ObjectEvent(
        ObjectKind.LOGICAL_BRIDGE, "lb10", "1-deleted", "topology.yaml:2"
    )
    bridge = store.get_lb("lb10")
    assert bridge.status.to_be_deleted
    assert bridge.resource_version == "1-deleted"


def test_changed_nexthop_is_replaced(tmp_path: Path):
    watcher, _, bus, topology_file = build_watcher(tmp_path)
    watcher.poll()
    old_nexthop = bus.events[2].payload
    bus.events.clear()

    payload = copy.deepcopy(TOPOLOGY)
    payload["nexthops"][0]["dmac"] = "00:00:00:bb:00:33"
    topology_file.write_text(json.dumps(payload))

    assert watcher.poll() == 4
    # the route embeds its nexthops, so it is replaced as well
    assert summary(bus.events) == [
        (ForwardingKind.ROUTE, Operation.DELETED),
        (ForwardingKind.NEXTHOP, Operation.DELETED),
        (ForwardingKind.NEXTHOP, Operation.ADDED),
        (ForwardingKind.ROUTE, Operation.ADDED),
    ]
    assert bus.events[1].payload == old_nexthop
    assert bus.events[2].payload.dmac == "00:00:00:bb:00:33"
    assert all(isinstance(e, ForwardingEvent) for e in bus.events)


def test_invalid_or_missing_file_is_skipped(tmp_path: Path):
    watcher, _, bus, topology_file = build_watcher(tmp_path)

    topology_file.write_text("vrfs: [")
    assert watcher.poll() == 0

    payload = copy.deepcopy(TOPOLOGY)
    payload["routes"][0]["nexthops"] = [99]
    topology_file.write_text(json.dumps(payload))
    assert watcher.poll() == 0

    topology_file.unlink()
    assert watcher.poll() == 0
    assert bus.events == []


def test_errored_object_is_republished_after_its_timer(tmp_path: Path):
    now = [100.0]
    store = InMemoryTopologyStore(clock=lambda: now[0])
    watcher, _, bus, _ = build_watcher(tmp_path, store=store)
    watcher.poll()
    bus.events.clear()
    store.update_vrf_status(
        "blue",
        "1",
        "topology.yaml:1",
        None,
        ComponentStatus(name="intel-e2000", status=ComponentState.ERROR, timer=2.0),
    )

    assert watcher.poll() == 0
    now[0] += 2.0
    assert watcher.poll() == 1
    assert bus.events == [
        ObjectEvent(ObjectKind.VRF, "blue", "1", "topology.yaml:retry")
    ]
    assert watcher.poll() == 0
