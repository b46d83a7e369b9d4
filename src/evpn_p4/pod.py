"""Access side translation: bridge ports, SVIs and bridged forwarding.

Bridge ports hang off the port mux.  Traffic from the mux is untagged and
looped back to the port's vport, traffic from the port is tagged and sent to
the mux, and frames addressed to an SVI MAC are handed to the SVI's VRF.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .config import Representors
from .constants import (
    Direction,
    EntryType,
    ModPointer,
    tcam_prefix,
    to_egress_vsi,
)
from .entries import ActionName, Field, Table, TableEntry, exact, make_entry, retract
from .errors import TranslationError
from .objects import BridgePort, BridgePortType, FdbEntry, L2Nexthop, NexthopType, Svi
from .pool import ResourcePools
from .topology import TopologyReader
from .utils import check_u16, require_fields
from .vxlan import l2_forwarding_entries, l2_nexthop_key

LOG = logging.getLogger(__name__)

FLOOD_NEIGHBOR = 0


@dataclass(frozen=True)
class _SviBinding:
    mac: str
    table_id: int

    @property
    def tcam(self) -> int:
        return tcam_prefix(self.table_id, Direction.TX)


@dataclass(frozen=True)
class _Member:
    """A logical bridge a port belongs to, resolved for translation."""

    name: str
    vid: int
    svi: Optional[_SviBinding]


def _svi_entry(
    port_type: BridgePortType, vsi: int, vid: int, binding: _SviBinding
) -> TableEntry:
    if port_type is BridgePortType.TRUNK:
        return make_entry(
            Table.TAGGED_VPORT_SVI_INGRESS,
            {
                Field.VSI: exact(vsi),
                Field.VID: exact(vid),
                Field.DA: exact(binding.mac),
            },
            ActionName.POP_VLAN_SET_VRF_ID,
            (int(ModPointer.IGNORE), binding.tcam, 0, binding.table_id),
        )
    return make_entry(
        Table.VPORT_SVI_INGRESS,
        {Field.VSI: exact(vsi), Field.DA: exact(binding.mac)},
        ActionName.SET_VRF_ID_TX,
        (binding.tcam, 0, binding.table_id),
    )


class PodDecoder:
    def __init__(
        self,
        pools: ResourcePools,
        representors: Representors,
        topology: TopologyReader,
    ) -> None:
        self._pools = pools
        self._port_mux = representors.port_mux
        self._vrf_mux = representors.vrf_mux
        self._topology = topology

    # ------------------------------------------------------------------
    # Cross-reference resolution
    # ------------------------------------------------------------------
    def _resolve_member(self, bridge_name: str) -> _Member:
        bridge = self._topology.get_lb(bridge_name)
        vid = check_u16(bridge.vlan_id, f"vlan id of logical bridge {bridge.name}")
        if bridge.svi is None:
            LOG.info("no SVI on logical bridge %s (vlan %d)", bridge.name, vid)
            return _Member(bridge.name, vid, None)
        svi = self._topology.get_svi(bridge.svi)
        vrf = self._topology.get_vrf(svi.vrf)
        return _Member(bridge.name, vid, _SviBinding(svi.mac, vrf.table_id))

    def _resolve_members(self, bp: BridgePort) -> List[_Member]:
        if bp.port_type is BridgePortType.ACCESS:
            if not bp.logical_bridges:
                raise TranslationError(
                    f"access bridge port {bp.name} has no logical bridge"
                )
            return [self._resolve_member(bp.logical_bridges[0])]
        return [self._resolve_member(name) for name in bp.logical_bridges]

    # ------------------------------------------------------------------
    # Bridge ports
    # ------------------------------------------------------------------
    def translate_added_bp(self, bp: BridgePort) -> List[TableEntry]:
        vsi = check_u16(bp.vport, f"vport of bridge port {bp.name}")
        members = self._resolve_members(bp)
        pool = self._pools.mod_ptr
        mod_ptr, _ = pool.get_id_with_ref((EntryType.BP, vsi), bp.name)
        mod_ptr_d, _ = pool.get_id_with_ref((EntryType.BP, bp.mac), bp.name)
        return self._bp_entries(bp, vsi, members, mod_ptr, mod_ptr_d)

    def translate_deleted_bp(self, bp: BridgePort) -> List[TableEntry]:
        vsi = check_u16(bp.vport, f"vport of bridge port {bp.name}")
        members = self._resolve_members(bp)
        pool = self._pools.mod_ptr
        keys = ((EntryType.BP, vsi), (EntryType.BP, bp.mac))
        if any(pool.lookup(key) is None for key in keys):
            LOG.warning("bridge port %s holds no modifier pointers", bp.name)
            return []
        mod_ptr, _ = pool.release_id_with_ref(keys[0], bp.name)
        mod_ptr_d, _ = pool.release_id_with_ref(keys[1], bp.name)
        return retract(self._bp_entries(bp, vsi, members, mod_ptr, mod_ptr_d))

    def _bp_entries(
        self,
        bp: BridgePort,
        vsi: int,
        members: Sequence[_Member],
        mod_ptr: int,
        mod_ptr_d: int,
    ) -> List[TableEntry]:
        vsi_out = to_egress_vsi(vsi)
        port_mux_out = to_egress_vsi(self._port_mux.vsi)
        trunk = bp.port_type is BridgePortType.TRUNK
        entries = [
            # from the mux
            make_entry(
                Table.PORT_MUX_INGRESS,
                {Field.VSI: exact(self._port_mux.vsi), Field.VID: exact(vsi)},
                ActionName.POP_STAG_VLAN if trunk else ActionName.POP_CTAG_STAG_VLAN,
                (mod_ptr_d, vsi_out),
            ),
            make_entry(
                Table.VLAN_STAG_POP_MOD if trunk else Table.VLAN_CTAG_STAG_POP_MOD,
                {Field.MOD_BLOB_PTR: exact(mod_ptr_d)},
                ActionName.VLAN_STAG_POP if trunk else ActionName.VLAN_CTAG_STAG_POP,
                (bp.mac,),
            ),
            # recirculated towards the port
            make_entry(
                Table.L2_FWD_LOOP,
                {Field.DA: exact(bp.mac)},
                ActionName.L2_FWD,
                (vsi_out,),
            ),
        ]

        if trunk:
            entries.append(
                make_entry(
                    Table.VLAN_ENCAP_STAG_MOD,
                    {Field.MOD_BLOB_PTR: exact(mod_ptr)},
                    ActionName.VLAN_PUSH_TRUNK,
                    (0, 0, vsi),
                )
            )
            for member in members:
                tagged = {Field.VSI: exact(vsi), Field.VID: exact(member.vid)}
                entries.append(
                    make_entry(
                        Table.TAGGED_VPORT_ARP_INGRESS,
                        tagged,
                        ActionName.SEND_TO_PORT_MUX_TRUNK,
                        (mod_ptr, port_mux_out),
                    )
                )
                entries.append(
                    make_entry(
                        Table.TAGGED_VPORT_INGRESS,
                        tagged,
                        ActionName.SET_VLAN_AND_POP_VLAN,
                        (int(ModPointer.IGNORE), member.vid, 0),
                    )
                )
                if member.svi is not None:
                    svi_entry = _svi_entry(bp.port_type, vsi, member.vid, member.svi)
                    entries.append(svi_entry)
            return entries

        member = members[0]
        untagged = {Field.VSI: exact(vsi), Field.BIT32_ZEROS: exact(0)}
        entries.extend(
            [
                make_entry(
                    Table.VLAN_ENCAP_CTAG_STAG_MOD,
                    {Field.MOD_BLOB_PTR: exact(mod_ptr)},
                    ActionName.VLAN_PUSH_ACCESS,
                    (0, 0, member.vid, 0, 0, vsi),
                ),
                make_entry(
                    Table.VPORT_ARP_INGRESS,
                    untagged,
                    ActionName.SEND_TO_PORT_MUX_ACCESS,
                    (mod_ptr, port_mux_out),
                ),
                make_entry(
                    Table.VPORT_INGRESS,
                    untagged,
                    ActionName.SET_VLAN,
                    (member.vid, 0),
                ),
            ]
        )
        if member.svi is not None:
            entries.append(_svi_entry(bp.port_type, vsi, member.vid, member.svi))
        return entries

    # ------------------------------------------------------------------
    # SVIs
    # ------------------------------------------------------------------
    def translate_added_svi(self, svi: Svi) -> List[TableEntry]:
        return self._svi_entries(svi)

    def translate_deleted_svi(self, svi: Svi) -> List[TableEntry]:
        return retract(self._svi_entries(svi))

    def _svi_entries(self, svi: Svi) -> List[TableEntry]:
        bridge = self._topology.get_lb(svi.logical_bridge)
        vrf = self._topology.get_vrf(svi.vrf)
        vid = check_u16(bridge.vlan_id, f"vlan id of logical bridge {bridge.name}")
        binding = _SviBinding(svi.mac, vrf.table_id)
        ports = [self._topology.get_bp(name) for name in bridge.bridge_ports]
        return [
            _svi_entry(
                port.port_type,
                check_u16(port.vport, f"vport of bridge port {port.name}"),
                vid,
                binding,
            )
            for port in ports
        ]

    # ------------------------------------------------------------------
    # Bridged forwarding
    # ------------------------------------------------------------------
    def translate_added_fdb(self, fdb: FdbEntry) -> List[TableEntry]:
        if fdb.nh_type is not NexthopType.BRIDGEPORT:
            return []
        return l2_forwarding_entries(fdb)

    def translate_deleted_fdb(self, fdb: FdbEntry) -> List[TableEntry]:
        if fdb.nh_type is not NexthopType.BRIDGEPORT:
            return []
        return retract(l2_forwarding_entries(fdb))

    def translate_added_l2_nexthop(self, nexthop: L2Nexthop) -> List[TableEntry]:
        if nexthop.nh_type is not NexthopType.BRIDGEPORT:
            return []
        require_fields(nexthop, ("egress_vport", "port_type"))
        mod_ptr = None
        if nexthop.port_type is BridgePortType.TRUNK:
            mod_ptr, _ = self._pools.mod_ptr.get_id_with_ref(
                l2_nexthop_key(nexthop), nexthop.id
            )
        return self._l2_nexthop_entries(nexthop, mod_ptr)

    def translate_deleted_l2_nexthop(self, nexthop: L2Nexthop) -> List[TableEntry]:
        if nexthop.nh_type is not NexthopType.BRIDGEPORT:
            return []
        require_fields(nexthop, ("egress_vport", "port_type"))
        mod_ptr = None
        if nexthop.port_type is BridgePortType.TRUNK:
            mod_ptr, _ = self._pools.mod_ptr.release_id_with_ref(
                l2_nexthop_key(nexthop), nexthop.id
            )
            if mod_ptr is None:
                return []
        return retract(self._l2_nexthop_entries(nexthop, mod_ptr))

    def _l2_nexthop_entries(
        self, nexthop: L2Nexthop, mod_ptr: Optional[int]
    ) -> List[TableEntry]:
        neighbor = {
            Field.NEIGHBOR: exact(check_u16(nexthop.id, "l2 nexthop id")),
            Field.BIT32_ZEROS: exact(0),
        }
        vport = to_egress_vsi(nexthop.egress_vport)
        if mod_ptr is None:
            return [
                make_entry(
                    Table.L2_NEXTHOP, neighbor, ActionName.FWD_TO_PORT, (vport,)
                )
            ]
        return [
            make_entry(
                Table.VLAN_PUSH_MOD,
                {Field.MOD_BLOB_PTR: exact(mod_ptr)},
                ActionName.VLAN_PUSH,
                (0, 0, check_u16(nexthop.vlan_id, "l2 nexthop vlan id")),
            ),
            make_entry(
                Table.L2_NEXTHOP,
                neighbor,
                ActionName.PUSH_VLAN_L2,
                (mod_ptr, vport),
            ),
        ]

    # ------------------------------------------------------------------
    # Static entries
    # ------------------------------------------------------------------
    def static_additions(self) -> List[TableEntry]:
        port_mux_out = to_egress_vsi(self._port_mux.vsi)
        vrf_mux_out = to_egress_vsi(self._vrf_mux.vsi)
        flood_ptr = int(ModPointer.L2_FLOODING)
        return [
            make_entry(
                Table.PORT_MUX_FWD,
                {Field.BIT32_ZEROS: exact(0)},
                ActionName.SEND_TO_PORT_MUX,
                (port_mux_out,),
            ),
            make_entry(
                Table.L2_FWD_LOOP,
                {Field.DA: exact(self._port_mux.mac)},
                ActionName.L2_FWD,
                (port_mux_out,),
            ),
            make_entry(
                Table.L2_FWD_LOOP,
                {Field.DA: exact(self._vrf_mux.mac)},
                ActionName.L2_FWD,
                (vrf_mux_out,),
            ),
            # flooding nexthop
            make_entry(
                Table.VLAN_ENCAP_CTAG_STAG_FLOOD_MOD,
                {Field.MOD_BLOB_PTR: exact(flood_ptr)},
                ActionName.VLAN_PUSH_STAG_CTAG_FLOOD,
                (0,),
            ),
            make_entry(
                Table.L2_NEXTHOP,
                {Field.NEIGHBOR: exact(FLOOD_NEIGHBOR), Field.BIT32_ZEROS: exact(0)},
                ActionName.PUSH_STAG_CTAG,
                (flood_ptr, vrf_mux_out),
            ),
        ]

    def static_deletions(self) -> List[TableEntry]:
        return retract(self.static_additions())
