"""VXLAN overlay translation.

Covers decapsulation of traffic arriving for L3 (VRF) and L2 (logical
bridge) VNIs, and encapsulation towards remote VTEPs for VXLAN nexthops,
L2 nexthops and FDB entries.
"""

from __future__ import annotations

import json
import logging
from typing import List, Optional

from .constants import (
    VXLAN_DEFAULT_VSI,
    VXLAN_UDP_PORT,
    Direction,
    EntryType,
    ModPointer,
    directions_of,
    p2p_qid,
    tcam_prefix,
    to_egress_vsi,
)
from .ecmp import nexthop_p4_id
from .entries import ActionName, Field, Table, TableEntry, exact, make_entry, retract
from .l3 import l3_nexthop_key
from .objects import FdbEntry, L2Nexthop, LogicalBridge, Nexthop, NexthopType, Vrf
from .pool import ResourcePools
from .utils import check_u16, normalize_mac, require_fields

LOG = logging.getLogger(__name__)

ROUTER_STATUS_COMPONENT = "frr"

_NEXTHOP_FIELDS = (
    "phy_smac",
    "phy_dmac",
    "egress_vport",
    "local_vtep_ip",
    "remote_vtep_ip",
    "vni",
    "inner_smac",
    "inner_dmac",
)
_L2_NEXTHOP_FIELDS = _NEXTHOP_FIELDS[:6]


def l2_nexthop_key(nexthop: L2Nexthop) -> tuple:
    key = nexthop.key
    return (EntryType.L2_NH, key.dev, key.vlan_id, key.dst)


def l2_forwarding_entries(fdb: FdbEntry) -> List[TableEntry]:
    """``l2_dmac_table`` entries for ``fdb``, one per direction."""

    vlan = check_u16(fdb.vlan_id, "fdb vlan id")
    neighbor = check_u16(fdb.nexthop_id, "fdb nexthop id")
    return [
        make_entry(
            Table.L2_DMAC,
            {
                Field.VLAN_ID: exact(vlan),
                Field.DA: exact(fdb.mac),
                Field.DIRECTION: exact(int(direction)),
            },
            ActionName.SET_NEIGHBOR,
            (neighbor,),
        )
        for direction in directions_of(fdb.direction)
    ]


def router_mac(vrf: Vrf) -> Optional[str]:
    """Router MAC published by the routing daemon in the VRF status."""

    component = vrf.status.component(ROUTER_STATUS_COMPONENT)
    if component is None:
        return None
    try:
        details = json.loads(component.details)
    except (TypeError, ValueError) as exc:
        LOG.warning("vrf %s: cannot parse router status details: %s", vrf.name, exc)
        return None
    if not isinstance(details, dict) or "rmac" not in details:
        LOG.warning("vrf %s: router status has no 'rmac' key", vrf.name)
        return None
    try:
        return normalize_mac(str(details["rmac"]))
    except ValueError as exc:
        LOG.warning("vrf %s: %s", vrf.name, exc)
        return None


class VxlanDecoder:
    def __init__(self, pools: ResourcePools) -> None:
        self._pools = pools
        self._egress_vsi = to_egress_vsi(VXLAN_DEFAULT_VSI)

    # ------------------------------------------------------------------
    # VRFs and logical bridges
    # ------------------------------------------------------------------
    def _vrf_entry(self, vrf: Vrf) -> Optional[TableEntry]:
        if not vrf.l3vpn_enabled:
            return None
        if vrf.vtep_ip is None:
            LOG.warning("vrf %s has a VNI but no VTEP address", vrf.name)
            return None
        rmac = router_mac(vrf)
        if rmac is None:
            LOG.warning(
                "router MAC not found for vrf %s (vtep %s)", vrf.name, vrf.vtep_ip
            )
            return None
        table_id = vrf.table_id
        return make_entry(
            Table.PHY_INGRESS_VXLAN,
            {
                Field.DST_IP: exact(vrf.vtep_ip),
                Field.VNI: exact(vrf.vni),
                Field.DA: exact(rmac),
            },
            ActionName.POP_VXLAN_SET_VRF_ID,
            (
                int(ModPointer.IGNORE),
                tcam_prefix(table_id, Direction.RX),
                self._egress_vsi,
                table_id,
            ),
        )

    def translate_added_vrf(self, vrf: Vrf) -> List[TableEntry]:
        entry = self._vrf_entry(vrf)
        return [entry] if entry is not None else []

    def translate_deleted_vrf(self, vrf: Vrf) -> List[TableEntry]:
        entry = self._vrf_entry(vrf)
        return [entry.as_delete()] if entry is not None else []

    def _lb_entry(self, lb: LogicalBridge) -> Optional[TableEntry]:
        if not lb.l2vpn_enabled:
            return None
        if lb.vtep_ip is None:
            LOG.warning("logical bridge %s has a VNI but no VTEP address", lb.name)
            return None
        return make_entry(
            Table.PHY_INGRESS_VXLAN_VLAN,
            {Field.DST_IP: exact(lb.vtep_ip), Field.VNI: exact(lb.vni)},
            ActionName.POP_VXLAN_SET_VLAN_ID,
            (
                int(ModPointer.IGNORE),
                check_u16(lb.vlan_id, "logical bridge vlan id"),
                self._egress_vsi,
            ),
        )

    def translate_added_lb(self, lb: LogicalBridge) -> List[TableEntry]:
        entry = self._lb_entry(lb)
        return [entry] if entry is not None else []

    def translate_deleted_lb(self, lb: LogicalBridge) -> List[TableEntry]:
        entry = self._lb_entry(lb)
        return [entry.as_delete()] if entry is not None else []

    # ------------------------------------------------------------------
    # L3 nexthops
    # ------------------------------------------------------------------
    def translate_added_nexthop(self, nexthop: Nexthop) -> List[TableEntry]:
        if nexthop.nh_type is not NexthopType.VXLAN:
            return []
        require_fields(nexthop, _NEXTHOP_FIELDS)
        mod_ptr, _ = self._pools.mod_ptr.get_id_with_ref(
            l3_nexthop_key(nexthop), nexthop.id
        )
        return self._nexthop_entries(nexthop, mod_ptr)

    def translate_deleted_nexthop(self, nexthop: Nexthop) -> List[TableEntry]:
        if nexthop.nh_type is not NexthopType.VXLAN:
            return []
        require_fields(nexthop, _NEXTHOP_FIELDS)
        mod_ptr, _ = self._pools.mod_ptr.release_id_with_ref(
            l3_nexthop_key(nexthop), nexthop.id
        )
        if mod_ptr is None:
            return []
        return retract(self._nexthop_entries(nexthop, mod_ptr))

    def _nexthop_entries(self, nexthop: Nexthop, mod_ptr: int) -> List[TableEntry]:
        vport = nexthop.egress_vport
        tx_id = nexthop_p4_id(nexthop.id, nexthop.nh_type, Direction.TX)
        rx_id = nexthop_p4_id(nexthop.id, nexthop.nh_type, Direction.RX)
        return [
            make_entry(
                Table.OMAC_VXLAN_IMAC_PUSH_MOD,
                {Field.MOD_BLOB_PTR: exact(mod_ptr)},
                ActionName.OMAC_VXLAN_IMAC_PUSH,
                (
                    nexthop.phy_smac,
                    nexthop.phy_dmac,
                    nexthop.local_vtep_ip,
                    nexthop.remote_vtep_ip,
                    VXLAN_UDP_PORT,
                    nexthop.vni,
                    nexthop.inner_smac,
                    nexthop.inner_dmac,
                ),
            ),
            make_entry(
                Table.L3_NEXTHOP_TX,
                {Field.NEIGHBOR: exact(tx_id), Field.BIT32_ZEROS: exact(0)},
                ActionName.PUSH_OUTERMAC_VXLAN_INNERMAC,
                (mod_ptr, vport),
            ),
            make_entry(
                Table.L3_NEXTHOP_RX,
                {Field.NEIGHBOR: exact(rx_id), Field.BIT32_ZEROS: exact(0)},
                ActionName.SEND_P2P_PUSH_OUTERMAC_VXLAN_INNERMAC,
                (mod_ptr, vport, p2p_qid(vport)),
            ),
            make_entry(
                Table.INGRESS_P2P,
                {Field.NEIGHBOR: exact(rx_id), Field.BIT32_ZEROS: exact(0)},
                ActionName.FWD_TO_PORT,
                (vport,),
            ),
        ]

    # ------------------------------------------------------------------
    # L2 nexthops and FDB
    # ------------------------------------------------------------------
    def translate_added_l2_nexthop(self, nexthop: L2Nexthop) -> List[TableEntry]:
        if nexthop.nh_type is not NexthopType.VXLAN:
            return []
        require_fields(nexthop, _L2_NEXTHOP_FIELDS)
        mod_ptr, _ = self._pools.mod_ptr.get_id_with_ref(
            l2_nexthop_key(nexthop), nexthop.id
        )
        return self._l2_nexthop_entries(nexthop, mod_ptr)

    def translate_deleted_l2_nexthop(self, nexthop: L2Nexthop) -> List[TableEntry]:
        if nexthop.nh_type is not NexthopType.VXLAN:
            return []
        require_fields(nexthop, _L2_NEXTHOP_FIELDS)
        mod_ptr, _ = self._pools.mod_ptr.release_id_with_ref(
            l2_nexthop_key(nexthop), nexthop.id
        )
        if mod_ptr is None:
            return []
        return retract(self._l2_nexthop_entries(nexthop, mod_ptr))

    def _l2_nexthop_entries(self, nexthop: L2Nexthop, mod_ptr: int) -> List[TableEntry]:
        return [
            make_entry(
                Table.OMAC_VXLAN_PUSH_MOD,
                {Field.MOD_BLOB_PTR: exact(mod_ptr)},
                ActionName.OMAC_VXLAN_PUSH,
                (
                    nexthop.phy_smac,
                    nexthop.phy_dmac,
                    nexthop.local_vtep_ip,
                    nexthop.remote_vtep_ip,
                    VXLAN_UDP_PORT,
                    nexthop.vni,
                ),
            ),
            make_entry(
                Table.L2_NEXTHOP,
                {
                    Field.NEIGHBOR: exact(check_u16(nexthop.id, "l2 nexthop id")),
                    Field.BIT32_ZEROS: exact(0),
                },
                ActionName.PUSH_OUTERMAC_VXLAN,
                (mod_ptr, to_egress_vsi(nexthop.egress_vport)),
            ),
        ]

    def translate_added_fdb(self, fdb: FdbEntry) -> List[TableEntry]:
        if fdb.nh_type is not NexthopType.VXLAN:
            return []
        return l2_forwarding_entries(fdb)

    def translate_deleted_fdb(self, fdb: FdbEntry) -> List[TableEntry]:
        if fdb.nh_type is not NexthopType.VXLAN:
            return []
        return retract(l2_forwarding_entries(fdb))
