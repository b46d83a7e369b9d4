from collections import Counter

from evpn_p4.constants import Direction, TrafficDirection
from evpn_p4.ecmp import EcmpBuilder, EcmpGroup, nexthop_p4_id
from evpn_p4.entries import ActionName, Table
from evpn_p4.objects import Nexthop, NexthopKey, NexthopType
from evpn_p4.pool import ResourcePools


def phy_nexthop(nh_id, weight=1, direction=TrafficDirection.RXTX):
    return Nexthop(
        id=nh_id,
        key=NexthopKey("GRD", f"192.0.2.{nh_id}", 2),
        nh_type=NexthopType.PHY,
        weight=weight,
        direction=direction,
        smac="00:00:00:aa:00:01",
        dmac=f"00:00:00:bb:00:{nh_id:02x}",
        egress_vport=0,
    )


def test_nexthop_p4_id_splits_rx_for_phy_and_vxlan():
    assert nexthop_p4_id(5, NexthopType.PHY, Direction.TX) == 10
    assert nexthop_p4_id(5, NexthopType.PHY, Direction.RX) == 11
    assert nexthop_p4_id(5, NexthopType.VXLAN, Direction.RX) == 11
    assert nexthop_p4_id(5, NexthopType.ACC, Direction.RX) == 10


def test_equal_weights_alternate_slots():
    group = EcmpGroup.from_nexthops([phy_nexthop(1), phy_nexthop(2)])

    slots = group.assign_slots()

    assert slots == (0, 1) * 8


def test_weighted_slots_follow_sainte_lague():
    members = [phy_nexthop(1, weight=3), phy_nexthop(2, weight=1)]
    group = EcmpGroup.from_nexthops(members)

    counts = Counter(group.assign_slots())

    assert counts == {0: 12, 1: 4}


def test_mixed_directions_do_not_form_a_group():
    members = [
        phy_nexthop(1, direction=TrafficDirection.RX),
        phy_nexthop(2, direction=TrafficDirection.TX),
    ]

    assert EcmpGroup.from_nexthops(members) is None
    assert EcmpBuilder(ResourcePools()).acquire(members, "route") is None


def test_single_nexthop_is_not_ecmp():
    builder = EcmpBuilder(ResourcePools())

    assert builder.acquire([phy_nexthop(1)], "route") is None


def test_tx_group_programs_both_directions():
    builder = EcmpBuilder(ResourcePools())

    result = builder.acquire([phy_nexthop(1), phy_nexthop(2)], "10.0.0.0/24")

    assert result.group.id == 1
    assert result.group.p4_nexthop_id(Direction.TX) == 2
    assert result.group.p4_nexthop_id(Direction.RX) == 3
    assert len(result.entries) == 32
    first_rx, first_tx = result.entries[0], result.entries[1]
    assert first_rx.table is Table.ECMP_SELECTION
    assert first_rx.fields == {"neighbor": 3, "hash": 0, "bit32_zeros": 0}
    assert first_rx.action.name is ActionName.SET_NEIGHBOR_WITHOUTREC
    # slot 0 belongs to nexthop 1: RX identity 3, TX identity 2
    assert first_rx.action.params == (3,)
    assert first_tx.action.params == (2,)


def test_rx_group_programs_rx_only():
    builder = EcmpBuilder(ResourcePools())
    members = [
        phy_nexthop(1, direction=TrafficDirection.RX),
        phy_nexthop(2, direction=TrafficDirection.RX),
    ]

    result = builder.acquire(members, "route")

    assert len(result.entries) == 16
    assert {e.fields["neighbor"] for e in result.entries} == {2}


def test_group_is_shared_between_routes():
    builder = EcmpBuilder(ResourcePools())
    members = [phy_nexthop(1), phy_nexthop(2)]

    first = builder.acquire(members, "10.0.0.0/24")
    second = builder.acquire(members, "10.1.0.0/24")

    assert first.group.id == second.group.id
    assert first.entries
    assert second.entries == []

    assert builder.release(members, "10.0.0.0/24").entries == []
    removed = builder.release(members, "10.1.0.0/24").entries
    assert all(entry.is_delete for entry in removed)
    assert {e.key for e in removed} == {e.key for e in first.entries}


def test_release_of_unknown_group_emits_nothing():
    builder = EcmpBuilder(ResourcePools())

    result = builder.release([phy_nexthop(1), phy_nexthop(2)], "route")

    assert result.entries == []
