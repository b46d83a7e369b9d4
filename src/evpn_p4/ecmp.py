"""Weighted ECMP groups over the fixed 16-slot hash selection table."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any, Dict, Hashable, List, Optional, Sequence, Tuple

from .constants import ECMP_SLOTS, Direction, TrafficDirection
from .entries import ActionName, Field, Table, TableEntry, exact, make_entry
from .errors import ValueOutOfRange
from .objects import Nexthop, NexthopType
from .pool import ResourcePools
from .utils import check_u16

LOG = logging.getLogger(__name__)

_SPLIT_RX_TYPES = (NexthopType.PHY, NexthopType.VXLAN)


def nexthop_p4_id(nh_id: int, nh_type: NexthopType, direction: Direction) -> int:
    """Pipeline identity of a nexthop for ``direction``.

    Physical and VXLAN nexthops have distinct RX and TX identities; the RX one
    has the low bit set.
    """

    value = nh_id << 1
    if direction is Direction.RX and nh_type in _SPLIT_RX_TYPES:
        value += 1
    return check_u16(value, "nexthop id")


@dataclass(frozen=True)
class EcmpMember:
    nexthop_id: int
    nh_type: NexthopType
    weight: int
    direction: Direction

    def p4_id(self, direction: Direction) -> int:
        return nexthop_p4_id(self.nexthop_id, self.nh_type, direction)


@dataclass
class EcmpGroup:
    members: Tuple[EcmpMember, ...]
    direction: Direction
    id: Optional[int] = None
    slots: Tuple[int, ...] = field(default=())

    @property
    def key(self) -> Tuple[int, ...]:
        return tuple(member.nexthop_id for member in self.members)

    @classmethod
    def from_nexthops(cls, nexthops: Sequence[Nexthop]) -> Optional["EcmpGroup"]:
        """Build a group, or return ``None`` when member directions disagree."""

        members = tuple(
            EcmpMember(
                nexthop_id=nh.id,
                nh_type=nh.nh_type,
                weight=nh.weight,
                direction=Direction.RX
                if nh.direction is TrafficDirection.RX
                else Direction.TX,
            )
            for nh in nexthops
        )
        if not members:
            return None
        directions = {member.direction for member in members}
        if len(directions) != 1:
            LOG.warning(
                "ecmp members %s mix RX and TX nexthops",
                [member.nexthop_id for member in members],
            )
            return None
        return cls(members=members, direction=directions.pop())

    def assign_slots(self, num_slots: int = ECMP_SLOTS) -> Tuple[int, ...]:
        """Distribute hash slots with the Sainte-Lague/Webster method.

        Returns the member index owning each slot.
        """

        divisors = [1] * len(self.members)
        quotients = [Fraction(member.weight) for member in self.members]
        slots: List[int] = []
        for _ in range(num_slots):
            best = 0
            for index in range(1, len(self.members)):
                if quotients[index] > quotients[best]:
                    best = index
            slots.append(best)
            divisors[best] += 2
            quotients[best] = Fraction(self.members[best].weight, divisors[best])
        self.slots = tuple(slots)
        return self.slots

    def p4_nexthop_id(self, direction: Direction) -> int:
        if self.id is None:
            raise ValueError("ecmp group has no index assigned")
        value = self.id << 1
        if direction is Direction.RX and self.direction is Direction.TX:
            value += 1
        return check_u16(value, "ecmp nexthop id")

    def _table_directions(self) -> List[Direction]:
        if self.direction is Direction.RX:
            return [Direction.RX]
        return [Direction.RX, Direction.TX]

    def _selection_match(self, slot: int, direction: Direction) -> Dict[str, Any]:
        return {
            Field.NEIGHBOR: exact(self.p4_nexthop_id(direction)),
            Field.HASH: exact(slot),
            Field.BIT32_ZEROS: exact(0),
        }

    def add_entries(self) -> List[TableEntry]:
        if not self.slots:
            self.assign_slots()
        entries: List[TableEntry] = []
        for slot, member_index in enumerate(self.slots):
            member = self.members[member_index]
            for direction in self._table_directions():
                entries.append(
                    make_entry(
                        Table.ECMP_SELECTION,
                        self._selection_match(slot, direction),
                        ActionName.SET_NEIGHBOR_WITHOUTREC,
                        (member.p4_id(direction),),
                    )
                )
        return entries

    def delete_entries(self, num_slots: int = ECMP_SLOTS) -> List[TableEntry]:
        return [
            make_entry(Table.ECMP_SELECTION, self._selection_match(slot, direction))
            for slot in range(num_slots)
            for direction in self._table_directions()
        ]


@dataclass
class EcmpResult:
    group: EcmpGroup
    entries: List[TableEntry]


class EcmpBuilder:
    """Share ECMP groups between routes with identical member lists."""

    def __init__(self, pools: ResourcePools) -> None:
        self._pools = pools
        self._lock = threading.Lock()

    def acquire(
        self, nexthops: Sequence[Nexthop], route_key: Hashable
    ) -> Optional[EcmpResult]:
        if len(nexthops) < 2:
            return None
        group = EcmpGroup.from_nexthops(nexthops)
        if group is None:
            return None
        with self._lock:
            group.id, refcount = self._pools.ecmp.get_id_with_ref(group.key, route_key)
            try:
                for direction in Direction:
                    group.p4_nexthop_id(direction)
                group.assign_slots()
                entries = group.add_entries() if refcount == 1 else []
            except ValueOutOfRange:
                self._pools.ecmp.release_id_with_ref(group.key, route_key)
                raise
        LOG.debug(
            "ecmp group %d for %s holds %d route(s)", group.id, group.key, refcount
        )
        return EcmpResult(group=group, entries=entries)

    def release(
        self, nexthops: Sequence[Nexthop], route_key: Hashable
    ) -> Optional[EcmpResult]:
        if len(nexthops) < 2:
            return None
        group = EcmpGroup.from_nexthops(nexthops)
        if group is None:
            return None
        with self._lock:
            group.id, refcount = self._pools.ecmp.release_id_with_ref(
                group.key, route_key
            )
            if group.id is None or refcount > 0:
                return EcmpResult(group=group, entries=[])
            group.assign_slots()
            return EcmpResult(group=group, entries=group.delete_entries())
