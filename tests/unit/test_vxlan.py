import pytest

from evpn_p4.constants import TrafficDirection
from evpn_p4.entries import ActionName, Table
from evpn_p4.errors import TranslationError
from evpn_p4.objects import (
    ComponentState,
    ComponentStatus,
    FdbEntry,
    L2Nexthop,
    L2NexthopKey,
    LogicalBridge,
    Nexthop,
    NexthopKey,
    NexthopType,
    ObjectStatus,
    OperStatus,
    Vrf,
)
from evpn_p4.pool import ResourcePools
from evpn_p4.vxlan import VxlanDecoder, router_mac


def frr_status(details: str) -> ObjectStatus:
    return ObjectStatus(
        oper_status=OperStatus.UP,
        components=(
            ComponentStatus(name="frr", status=ComponentState.SUCCESS, details=details),
        ),
    )


def blue_vrf(details='{"rmac": "00:00:5E:00:01:01"}') -> Vrf:
    return Vrf(
        name="blue",
        vni=1000,
        vtep_ip="10.0.0.1",
        routing_table=(100,),
        status=frr_status(details),
    )


def vxlan_nexthop(nh_id=4) -> Nexthop:
    return Nexthop(
        id=nh_id,
        key=NexthopKey("blue", "10.0.0.9", 2),
        nh_type=NexthopType.VXLAN,
        phy_smac="00:00:00:aa:00:01",
        phy_dmac="00:00:00:aa:00:02",
        egress_vport=1,
        local_vtep_ip="10.0.0.1",
        remote_vtep_ip="10.0.0.9",
        vni=1000,
        inner_smac="00:00:00:bb:00:01",
        inner_dmac="00:00:00:bb:00:02",
    )


def test_router_mac_is_read_from_routing_daemon_status():
    assert router_mac(blue_vrf()) == "00:00:5e:00:01:01"
    assert router_mac(blue_vrf("not json")) is None
    assert router_mac(blue_vrf('{"other": 1}')) is None
    assert router_mac(Vrf(name="red", vni=5)) is None


def test_vrf_decap_entry():
    decoder = VxlanDecoder(ResourcePools())

    (entry,) = decoder.translate_added_vrf(blue_vrf())

    assert entry.table is Table.PHY_INGRESS_VXLAN
    assert entry.fields["vni"] == 1000
    assert entry.fields["da"] == "00:00:5e:00:01:01"
    assert entry.action.name is ActionName.POP_VXLAN_SET_VRF_ID
    assert entry.action.params == (0, 1000, 27, 100)

    (removed,) = decoder.translate_deleted_vrf(blue_vrf())
    assert removed.key == entry.key
    assert removed.is_delete


def test_vrf_without_vni_or_router_mac_is_skipped():
    decoder = VxlanDecoder(ResourcePools())

    assert decoder.translate_added_vrf(Vrf(name="red", routing_table=(200,))) == []
    assert decoder.translate_added_vrf(blue_vrf("{}")) == []


def test_logical_bridge_decap_entry():
    decoder = VxlanDecoder(ResourcePools())
    bridge = LogicalBridge(name="lb10", vlan_id=10, vni=10010, vtep_ip="10.0.0.1")

    (entry,) = decoder.translate_added_lb(bridge)

    assert entry.table is Table.PHY_INGRESS_VXLAN_VLAN
    assert entry.action.params == (0, 10, 27)
    assert decoder.translate_added_lb(LogicalBridge(name="lb20", vlan_id=20)) == []


def test_vxlan_nexthop_entries():
    pools = ResourcePools()
    decoder = VxlanDecoder(pools)

    entries = decoder.translate_added_nexthop(vxlan_nexthop())

    assert [e.table for e in entries] == [
        Table.OMAC_VXLAN_IMAC_PUSH_MOD,
        Table.L3_NEXTHOP_TX,
        Table.L3_NEXTHOP_RX,
        Table.INGRESS_P2P,
    ]
    mod, tx, rx, _ = entries
    assert mod.action.params[4] == 4789
    assert mod.action.params[5] == 1000
    assert tx.fields["neighbor"] == 8
    assert rx.fields["neighbor"] == 9
    assert rx.action.params == (2, 1, 0x8D)

    removed = decoder.translate_deleted_nexthop(vxlan_nexthop())
    assert [e.key for e in removed] == [e.key for e in entries]
    assert len(pools.mod_ptr) == 0


def test_vxlan_nexthop_requires_tunnel_fields():
    decoder = VxlanDecoder(ResourcePools())
    nexthop = Nexthop(id=4, key=NexthopKey("blue", "10.0.0.9", 2), nh_type="vxlan")

    with pytest.raises(TranslationError):
        decoder.translate_added_nexthop(nexthop)


def test_vxlan_l2_nexthop_entries():
    decoder = VxlanDecoder(ResourcePools())
    nexthop = L2Nexthop(
        id=12,
        key=L2NexthopKey("vxlan10", 10, "10.0.0.9"),
        nh_type=NexthopType.VXLAN,
        vlan_id=10,
        egress_vport=1,
        phy_smac="00:00:00:aa:00:01",
        phy_dmac="00:00:00:aa:00:02",
        local_vtep_ip="10.0.0.1",
        remote_vtep_ip="10.0.0.9",
        vni=10010,
    )

    mod, nh = decoder.translate_added_l2_nexthop(nexthop)

    assert mod.table is Table.OMAC_VXLAN_PUSH_MOD
    assert nh.table is Table.L2_NEXTHOP
    assert nh.fields["neighbor"] == 12
    assert nh.action.params == (2, 17)


def test_fdb_entries_follow_direction():
    decoder = VxlanDecoder(ResourcePools())
    fdb = FdbEntry(mac="00:00:00:ee:00:01", vlan_id=10, nh_type="vxlan", nexthop_id=12)

    entries = decoder.translate_added_fdb(fdb)

    assert [e.fields["direction"] for e in entries] == [1, 0]
    assert all(e.table is Table.L2_DMAC for e in entries)
    assert entries[0].action.params == (12,)

    rx_only = FdbEntry(
        mac="00:00:00:ee:00:01",
        vlan_id=10,
        nh_type="vxlan",
        nexthop_id=12,
        direction=TrafficDirection.RX,
    )
    assert len(decoder.translate_added_fdb(rx_only)) == 1


def test_bridge_port_fdb_is_not_overlay():
    decoder = VxlanDecoder(ResourcePools())
    fdb = FdbEntry(
        mac="00:00:00:ee:00:01", vlan_id=10, nh_type="bridgeport", nexthop_id=3
    )

    assert decoder.translate_added_fdb(fdb) == []
