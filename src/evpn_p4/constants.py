"""Pipeline constants shared by the decoders.

The numeric values below are part of the contract with the ``evpn_gw_control``
P4 program and must not be changed independently of it.
"""

from __future__ import annotations

from enum import Enum, IntEnum, auto
from typing import List


class Direction(IntEnum):
    """Pipeline direction values carried in ``direction`` match fields."""

    RX = 0
    TX = 1


class TrafficDirection(Enum):
    """Direction tag attached to routes, nexthops and FDB entries."""

    RX = auto()
    TX = auto()
    RXTX = auto()


class TcamPrefix(IntEnum):
    GRD = 0
    VRF = 2
    P2P = 0x78654312


class Vlan(IntEnum):
    GRD = 4089
    PHY0 = 4090
    PHY1 = 4091
    PHY2 = 4092
    PHY3 = 4093


class PortId(IntEnum):
    PHY0 = 0
    PHY1 = 1
    PHY2 = 2
    PHY3 = 3


class EntryType(IntEnum):
    """Tag placed first in every modifier-pointer pool key."""

    BP = 1
    L3_NH = 2
    L2_NH = 3


class ModPointer(IntEnum):
    IGNORE = 0
    L2_FLOODING = 1


MOD_PTR_RANGE = (2, 1 << 16)
TRIE_INDEX_RANGE = (1, 1 << 16)
ECMP_INDEX_RANGE = (1, 1 << 16)

VXLAN_UDP_PORT = 4789
ECMP_SLOTS = 16
EGRESS_VSI_OFFSET = 16
DEFAULT_DOMAIN = "GRD"

# Default vports the L3 and VXLAN decoders hand traffic to.
L3_DEFAULT_VSI = 0x6
VXLAN_DEFAULT_VSI = 0xB


def directions_of(tag: TrafficDirection) -> List[Direction]:
    """Return the pipeline directions an entry tagged ``tag`` applies to.

    TX is always listed before RX for ``RXTX``.
    """

    directions: List[Direction] = []
    if tag in (TrafficDirection.TX, TrafficDirection.RXTX):
        directions.append(Direction.TX)
    if tag in (TrafficDirection.RX, TrafficDirection.RXTX):
        directions.append(Direction.RX)
    return directions


def to_egress_vsi(vsi: int) -> int:
    return vsi + EGRESS_VSI_OFFSET


def tcam_prefix(vrf_id: int, direction: Direction) -> int:
    """Concatenate the decimal VRF id and direction into a TCAM prefix."""

    return int(f"{vrf_id}{int(direction)}")


def p2p_qid(port_id: int) -> int:
    if port_id == PortId.PHY0:
        return 0x87
    if port_id == PortId.PHY1:
        return 0x8D
    return 0


def is_default_domain(vrf_name: str) -> bool:
    return vrf_name.rstrip("/").rsplit("/", 1)[-1] == DEFAULT_DOMAIN
