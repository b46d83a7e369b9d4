"""Network objects translated by the decoders.

Topology objects (VRFs, logical bridges, bridge ports and SVIs) are owned by
the topology store; forwarding objects (routes, nexthops, L2 nexthops and FDB
entries) are produced by the forwarding-state source.  Both are immutable
here: the decoders only read them.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple, Union

from .constants import TrafficDirection, is_default_domain
from .errors import TranslationError
from .utils import normalize_mac, optional_mac

IPv4 = Union[ipaddress.IPv4Address, str]


def _ip(value: Optional[IPv4]) -> Optional[ipaddress.IPv4Address]:
    if value is None or value == "":
        return None
    return ipaddress.IPv4Address(str(value).split("/")[0])


class ComponentState(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    PENDING = "pending"


class OperStatus(str, Enum):
    UP = "up"
    DOWN = "down"
    TO_BE_DELETED = "to-be-deleted"


@dataclass(frozen=True)
class ComponentStatus:
    """Outcome reported by one component for one topology object.

    ``timer`` is the retry backoff in seconds; zero means no retry is due.
    """

    name: str
    status: ComponentState = ComponentState.PENDING
    details: str = ""
    timer: float = 0.0


@dataclass(frozen=True)
class ObjectStatus:
    oper_status: OperStatus = OperStatus.DOWN
    components: Tuple[ComponentStatus, ...] = ()

    def component(self, name: str) -> Optional[ComponentStatus]:
        for comp in self.components:
            if comp.name == name:
                return comp
        return None

    def with_component(self, component: ComponentStatus) -> "ObjectStatus":
        others = tuple(c for c in self.components if c.name != component.name)
        return replace(self, components=others + (component,))

    @property
    def to_be_deleted(self) -> bool:
        return self.oper_status is OperStatus.TO_BE_DELETED


@dataclass(frozen=True)
class Vrf:
    name: str
    vni: Optional[int] = None
    vtep_ip: Optional[ipaddress.IPv4Address] = None
    routing_table: Tuple[int, ...] = ()
    mac: Optional[str] = None
    resource_version: str = ""
    status: ObjectStatus = field(default_factory=ObjectStatus)

    def __post_init__(self) -> None:
        object.__setattr__(self, "vtep_ip", _ip(self.vtep_ip))
        object.__setattr__(self, "routing_table", tuple(self.routing_table))
        object.__setattr__(self, "mac", optional_mac(self.mac))

    @property
    def l3vpn_enabled(self) -> bool:
        return self.vni is not None

    @property
    def is_default(self) -> bool:
        return is_default_domain(self.name)

    @property
    def table_id(self) -> int:
        """First routing table of the VRF."""

        if not self.routing_table:
            raise TranslationError(f"vrf '{self.name}' has no routing table")
        return self.routing_table[0]

    @property
    def vrf_id(self) -> int:
        """VRF id used in routing keys: 0 without a VNI, else the table id."""

        if self.vni is None:
            return 0
        return self.table_id


@dataclass(frozen=True)
class LogicalBridge:
    name: str
    vlan_id: int
    vni: Optional[int] = None
    vtep_ip: Optional[ipaddress.IPv4Address] = None
    svi: Optional[str] = None
    bridge_ports: Tuple[str, ...] = ()
    resource_version: str = ""
    status: ObjectStatus = field(default_factory=ObjectStatus)

    def __post_init__(self) -> None:
        object.__setattr__(self, "vtep_ip", _ip(self.vtep_ip))
        object.__setattr__(self, "bridge_ports", tuple(self.bridge_ports))
        if self.svi == "":
            object.__setattr__(self, "svi", None)

    @property
    def l2vpn_enabled(self) -> bool:
        return self.vni is not None


class BridgePortType(str, Enum):
    ACCESS = "access"
    TRUNK = "trunk"


@dataclass(frozen=True)
class BridgePort:
    name: str
    port_type: BridgePortType
    mac: str
    vport: int
    logical_bridges: Tuple[str, ...] = ()
    resource_version: str = ""
    status: ObjectStatus = field(default_factory=ObjectStatus)

    def __post_init__(self) -> None:
        object.__setattr__(self, "port_type", BridgePortType(self.port_type))
        object.__setattr__(self, "mac", normalize_mac(self.mac))
        object.__setattr__(self, "vport", int(self.vport))
        object.__setattr__(self, "logical_bridges", tuple(self.logical_bridges))


@dataclass(frozen=True)
class Svi:
    name: str
    vrf: str
    logical_bridge: str
    mac: str
    resource_version: str = ""
    status: ObjectStatus = field(default_factory=ObjectStatus)

    def __post_init__(self) -> None:
        object.__setattr__(self, "mac", normalize_mac(self.mac))


TopologyObject = Union[Vrf, LogicalBridge, BridgePort, Svi]


class NexthopType(str, Enum):
    PHY = "phy"
    ACC = "acc"
    SVI = "svi"
    VXLAN = "vxlan"
    ECMP = "ecmp"
    BRIDGEPORT = "bridgeport"


@dataclass(frozen=True)
class NexthopKey:
    vrf_name: str
    dst: str
    dev: int
    local: bool = False


_MAC_FIELDS = ("smac", "dmac", "phy_smac", "phy_dmac", "inner_smac", "inner_dmac")


@dataclass(frozen=True)
class Nexthop:
    id: int
    key: NexthopKey
    nh_type: NexthopType
    weight: int = 1
    direction: TrafficDirection = TrafficDirection.RXTX
    smac: Optional[str] = None
    dmac: Optional[str] = None
    egress_vport: Optional[int] = None
    vlan_id: Optional[int] = None
    port_type: Optional[BridgePortType] = None
    phy_smac: Optional[str] = None
    phy_dmac: Optional[str] = None
    local_vtep_ip: Optional[ipaddress.IPv4Address] = None
    remote_vtep_ip: Optional[ipaddress.IPv4Address] = None
    vni: Optional[int] = None
    inner_smac: Optional[str] = None
    inner_dmac: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "nh_type", NexthopType(self.nh_type))
        for name in _MAC_FIELDS:
            object.__setattr__(self, name, optional_mac(getattr(self, name)))
        object.__setattr__(self, "local_vtep_ip", _ip(self.local_vtep_ip))
        object.__setattr__(self, "remote_vtep_ip", _ip(self.remote_vtep_ip))
        if self.port_type is not None:
            object.__setattr__(self, "port_type", BridgePortType(self.port_type))


@dataclass(frozen=True)
class Route:
    key: str
    vrf: Vrf
    dst: ipaddress.IPv4Network
    nexthops: Tuple[Nexthop, ...]
    direction: TrafficDirection = TrafficDirection.RXTX

    def __post_init__(self) -> None:
        dst = ipaddress.IPv4Network(str(self.dst), strict=False)
        object.__setattr__(self, "dst", dst)
        object.__setattr__(self, "nexthops", tuple(self.nexthops))

    @property
    def is_host(self) -> bool:
        return self.dst.prefixlen == self.dst.max_prefixlen


@dataclass(frozen=True)
class L2NexthopKey:
    dev: str
    vlan_id: int
    dst: str


@dataclass(frozen=True)
class L2Nexthop:
    id: int
    key: L2NexthopKey
    nh_type: NexthopType
    vlan_id: int
    egress_vport: Optional[int] = None
    port_type: Optional[BridgePortType] = None
    phy_smac: Optional[str] = None
    phy_dmac: Optional[str] = None
    local_vtep_ip: Optional[ipaddress.IPv4Address] = None
    remote_vtep_ip: Optional[ipaddress.IPv4Address] = None
    vni: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "nh_type", NexthopType(self.nh_type))
        object.__setattr__(self, "phy_smac", optional_mac(self.phy_smac))
        object.__setattr__(self, "phy_dmac", optional_mac(self.phy_dmac))
        object.__setattr__(self, "local_vtep_ip", _ip(self.local_vtep_ip))
        object.__setattr__(self, "remote_vtep_ip", _ip(self.remote_vtep_ip))
        if self.port_type is not None:
            object.__setattr__(self, "port_type", BridgePortType(self.port_type))


@dataclass(frozen=True)
class FdbEntry:
    mac: str
    vlan_id: int
    nh_type: NexthopType
    nexthop_id: int
    direction: TrafficDirection = TrafficDirection.RXTX

    def __post_init__(self) -> None:
        object.__setattr__(self, "mac", normalize_mac(self.mac))
        object.__setattr__(self, "nh_type", NexthopType(self.nh_type))
