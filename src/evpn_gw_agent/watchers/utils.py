"""Parse topology files into network objects.

A topology file is a YAML (or JSON) mapping with the optional lists
``vrfs``, ``logical_bridges``, ``bridge_ports``, ``svis``, ``nexthops``,
``routes``, ``l2_nexthops`` and ``fdb``.  Routes refer to nexthops by id.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Hashable, Iterable, List, Tuple, Type

from evpn_bridge.events import ForwardingKind, ObjectKind
from evpn_p4.constants import TrafficDirection
from evpn_p4.objects import (
    BridgePort,
    FdbEntry,
    L2Nexthop,
    L2NexthopKey,
    LogicalBridge,
    Nexthop,
    NexthopKey,
    Route,
    Svi,
    Vrf,
)


@dataclass
class TopologyState:
    """Everything described by one topology file, keyed for diffing."""

    objects: Dict[ObjectKind, Dict[str, Any]] = field(
        default_factory=lambda: {kind: {} for kind in ObjectKind}
    )
    forwarding: Dict[ForwardingKind, Dict[Hashable, Any]] = field(
        default_factory=lambda: {kind: {} for kind in ForwardingKind}
    )


def _version(entry: dict) -> str:
    explicit = entry.get("resource_version")
    if explicit is not None:
        return str(explicit)
    canonical = json.dumps(entry, sort_keys=True, default=str)
    return hashlib.sha1(canonical.encode()).hexdigest()[:12]


def _direction(value: Any) -> TrafficDirection:
    if value is None:
        return TrafficDirection.RXTX
    try:
        return TrafficDirection[str(value).upper()]
    except KeyError:
        raise ValueError(f"Unsupported direction '{value}'") from None


def _kwargs(cls: Type, entry: dict, skip: Iterable[str] = ()) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)} - set(skip)
    return {name: entry[name] for name in names if name in entry}


def _named(entry: dict, what: str) -> str:
    name = entry.get("name")
    if not name:
        raise ValueError(f"{what} entry missing 'name'")
    return str(name)


def parse_vrf(entry: dict) -> Vrf:
    table = entry.get("routing_table", ())
    if isinstance(table, int):
        table = (table,)
    return Vrf(
        name=_named(entry, "vrf"),
        vni=entry.get("vni"),
        vtep_ip=entry.get("vtep_ip"),
        routing_table=tuple(int(t) for t in table),
        mac=entry.get("mac"),
        resource_version=_version(entry),
    )


def parse_lb(entry: dict) -> LogicalBridge:
    if "vlan_id" not in entry:
        raise ValueError(f"logical bridge '{entry.get('name')}' missing 'vlan_id'")
    return LogicalBridge(
        name=_named(entry, "logical bridge"),
        vlan_id=int(entry["vlan_id"]),
        vni=entry.get("vni"),
        vtep_ip=entry.get("vtep_ip"),
        svi=entry.get("svi"),
        bridge_ports=tuple(entry.get("bridge_ports", ())),
        resource_version=_version(entry),
    )


def parse_bp(entry: dict) -> BridgePort:
    return BridgePort(
        name=_named(entry, "bridge port"),
        port_type=entry.get("port_type", entry.get("type", "access")),
        mac=str(entry["mac"]),
        vport=int(entry["vport"]),
        logical_bridges=tuple(entry.get("logical_bridges", ())),
        resource_version=_version(entry),
    )


def parse_svi(entry: dict) -> Svi:
    return Svi(
        name=_named(entry, "svi"),
        vrf=str(entry["vrf"]),
        logical_bridge=str(entry["logical_bridge"]),
        mac=str(entry["mac"]),
        resource_version=_version(entry),
    )


def parse_nexthop(entry: dict) -> Nexthop:
    key = NexthopKey(
        vrf_name=str(entry.get("vrf", "GRD")),
        dst=str(entry.get("dst", "")),
        dev=int(entry.get("dev", 0)),
        local=bool(entry.get("local", False)),
    )
    extra = _kwargs(Nexthop, entry, skip=("id", "key", "nh_type", "direction"))
    return Nexthop(
        id=int(entry["id"]),
        key=key,
        nh_type=entry.get("nh_type", entry.get("type")),
        direction=_direction(entry.get("direction")),
        **extra,
    )


def parse_route(
    entry: dict, vrfs: Dict[str, Vrf], nexthops: Dict[int, Nexthop]
) -> Route:
    vrf_name = str(entry.get("vrf", "GRD"))
    vrf = vrfs.get(vrf_name, Vrf(name=vrf_name))
    members: List[Nexthop] = []
    for nh_id in entry.get("nexthops", ()):
        try:
            members.append(nexthops[int(nh_id)])
        except KeyError:
            raise ValueError(
                f"route {entry.get('dst')} references unknown nexthop {nh_id}"
            ) from None
    dst = str(entry["dst"])
    return Route(
        key=str(entry.get("key", f"{vrf_name}:{dst}")),
        vrf=vrf,
        dst=dst,
        nexthops=tuple(members),
        direction=_direction(entry.get("direction")),
    )


def parse_l2_nexthop(entry: dict) -> L2Nexthop:
    vlan_id = int(entry["vlan_id"])
    key = L2NexthopKey(
        dev=str(entry.get("dev", "")),
        vlan_id=vlan_id,
        dst=str(entry.get("dst", "")),
    )
    extra = _kwargs(L2Nexthop, entry, skip=("id", "key", "nh_type", "vlan_id"))
    return L2Nexthop(
        id=int(entry["id"]),
        key=key,
        nh_type=entry.get("nh_type", entry.get("type")),
        vlan_id=vlan_id,
        **extra,
    )


def parse_fdb(entry: dict) -> FdbEntry:
    return FdbEntry(
        mac=str(entry["mac"]),
        vlan_id=int(entry["vlan_id"]),
        nh_type=entry.get("nh_type", entry.get("type")),
        nexthop_id=int(entry["nexthop_id"]),
        direction=_direction(entry.get("direction")),
    )


def _section(payload: dict, name: str) -> List[dict]:
    section = payload.get(name) or []
    if not isinstance(section, list):
        raise ValueError(f"'{name}' must be a list")
    return section


def parse_topology(payload: Any) -> TopologyState:
    """Build a :class:`TopologyState`; raises ``ValueError`` on bad input."""

    if not isinstance(payload, dict):
        raise ValueError("topology file must be a mapping")
    state = TopologyState()
    parsers: Tuple[Tuple[ObjectKind, str, Any], ...] = (
        (ObjectKind.VRF, "vrfs", parse_vrf),
        (ObjectKind.LOGICAL_BRIDGE, "logical_bridges", parse_lb),
        (ObjectKind.BRIDGE_PORT, "bridge_ports", parse_bp),
        (ObjectKind.SVI, "svis", parse_svi),
    )
    try:
        for kind, section, parse in parsers:
            for entry in _section(payload, section):
                obj = parse(entry)
                state.objects[kind][obj.name] = obj

        nexthops: Dict[int, Nexthop] = {}
        for entry in _section(payload, "nexthops"):
            nexthop = parse_nexthop(entry)
            nexthops[nexthop.id] = nexthop
        state.forwarding[ForwardingKind.NEXTHOP] = dict(nexthops)

        vrfs = state.objects[ObjectKind.VRF]
        for entry in _section(payload, "routes"):
            route = parse_route(entry, vrfs, nexthops)
            state.forwarding[ForwardingKind.ROUTE][route.key] = route
        for entry in _section(payload, "l2_nexthops"):
            l2_nexthop = parse_l2_nexthop(entry)
            state.forwarding[ForwardingKind.L2_NEXTHOP][l2_nexthop.id] = l2_nexthop
        for entry in _section(payload, "fdb"):
            fdb = parse_fdb(entry)
            state.forwarding[ForwardingKind.FDB][(fdb.mac, fdb.vlan_id)] = fdb
    except (KeyError, TypeError) as exc:
        raise ValueError(f"invalid topology entry: {exc!r}") from exc
    return state
