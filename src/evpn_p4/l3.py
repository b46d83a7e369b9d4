"""Unicast routing translation: routes, L3 nexthops and static L3 wiring."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .config import Representors
from .constants import (
    L3_DEFAULT_VSI,
    Direction,
    EntryType,
    ModPointer,
    TcamPrefix,
    Vlan,
    directions_of,
    p2p_qid,
    tcam_prefix,
    to_egress_vsi,
)
from .ecmp import EcmpBuilder, EcmpResult, nexthop_p4_id
from .entries import (
    ActionName,
    Field,
    Table,
    TableEntry,
    exact,
    lpm,
    make_entry,
    retract,
    ternary,
)
from .objects import BridgePortType, Nexthop, NexthopType, Route
from .pool import ResourcePools
from .utils import check_u16, require_fields

LOG = logging.getLogger(__name__)

_REQUIRED_FIELDS = {
    NexthopType.PHY: ("smac", "dmac", "egress_vport"),
    NexthopType.ACC: ("dmac", "vlan_id", "egress_vport"),
    NexthopType.SVI: ("smac", "dmac", "vlan_id", "egress_vport", "port_type"),
}


def l3_nexthop_key(nexthop: Nexthop) -> tuple:
    key = nexthop.key
    return (EntryType.L3_NH, key.vrf_name, key.dst, key.dev, key.local)


class L3Decoder:
    """Translate routes and PHY/ACC/SVI nexthops into L3 table entries."""

    def __init__(
        self,
        pools: ResourcePools,
        ecmp: EcmpBuilder,
        representors: Representors,
    ) -> None:
        self._pools = pools
        self._ecmp = ecmp
        self._representors = representors

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------
    def translate_added_route(self, route: Route) -> List[TableEntry]:
        return self._translate_route(route, delete=False)

    def translate_deleted_route(self, route: Route) -> List[TableEntry]:
        return self._translate_route(route, delete=True)

    def _translate_route(self, route: Route, delete: bool) -> List[TableEntry]:
        if not route.nexthops:
            LOG.warning("route %s has no nexthops, skipping", route.key)
            return []
        vrf_id = check_u16(route.vrf.vrf_id, "vrf id")
        neighbors: Dict[Direction, int] = {}
        if not delete and len(route.nexthops) == 1:
            neighbors = self._neighbors(route, None)

        entries: List[TableEntry] = []
        ecmp: Optional[EcmpResult] = None
        if len(route.nexthops) > 1:
            if delete:
                ecmp = self._ecmp.release(route.nexthops, route.key)
            else:
                # acquire range-checks the group ids before handing them out
                ecmp = self._ecmp.acquire(route.nexthops, route.key)
            if ecmp is None:
                LOG.warning("route %s: nexthops cannot form an ecmp group", route.key)
                return []
            entries.extend(ecmp.entries)
            if not delete:
                neighbors = self._neighbors(route, ecmp)

        if route.is_host:
            entries.extend(self._host_route(route, vrf_id, ecmp, neighbors, delete))
        else:
            entries.extend(self._prefix_route(route, vrf_id, ecmp, neighbors, delete))
        return entries

    def _neighbors(
        self, route: Route, ecmp: Optional[EcmpResult]
    ) -> Dict[Direction, int]:
        directions = set(directions_of(route.direction))
        if self._is_p2p(route, ecmp):
            directions.add(Direction.RX)
        return {
            direction: self._neighbor(route, ecmp, direction)
            for direction in directions
        }

    @staticmethod
    def _neighbor(
        route: Route, ecmp: Optional[EcmpResult], direction: Direction
    ) -> int:
        if ecmp is not None:
            return ecmp.group.p4_nexthop_id(direction)
        nexthop = route.nexthops[0]
        return nexthop_p4_id(nexthop.id, nexthop.nh_type, direction)

    @staticmethod
    def _is_p2p(route: Route, ecmp: Optional[EcmpResult]) -> bool:
        return (
            ecmp is None
            and route.vrf.is_default
            and route.nexthops[0].nh_type is NexthopType.PHY
        )

    def _host_route(
        self,
        route: Route,
        vrf_id: int,
        ecmp: Optional[EcmpResult],
        neighbors: Dict[Direction, int],
        delete: bool,
    ) -> List[TableEntry]:
        host = route.dst.network_address
        ecmp_flag = int(ecmp is not None)
        entries: List[TableEntry] = []

        for direction in directions_of(route.direction):
            match = {
                Field.VRF: exact(vrf_id),
                Field.DIRECTION: exact(int(direction)),
                Field.DST_IP: exact(host),
            }
            if delete:
                entries.append(make_entry(Table.L3_LEM, match))
            else:
                entries.append(
                    make_entry(
                        Table.L3_LEM,
                        match,
                        ActionName.SET_NEIGHBOR,
                        (neighbors[direction], ecmp_flag),
                    )
                )

        if self._is_p2p(route, ecmp):
            match = {
                Field.VRF: exact(vrf_id),
                Field.DIRECTION: exact(int(Direction.RX)),
                Field.DST_IP: exact(host),
            }
            if delete:
                entries.append(make_entry(Table.L3_P2P_LEM, match))
            else:
                entries.append(
                    make_entry(
                        Table.L3_P2P_LEM,
                        match,
                        ActionName.SET_P2P_NEIGHBOR,
                        (neighbors[Direction.RX], ecmp_flag),
                    )
                )
        return entries

    def _prefix_route(
        self,
        route: Route,
        vrf_id: int,
        ecmp: Optional[EcmpResult],
        neighbors: Dict[Direction, int],
        delete: bool,
    ) -> List[TableEntry]:
        ecmp_flag = int(ecmp is not None)
        trie = self._pools.trie_index
        entries: List[TableEntry] = []

        for direction in directions_of(route.direction):
            tcam = tcam_prefix(vrf_id, direction)
            if delete:
                tidx, refcount = trie.release_id_with_ref(tcam, route.dst)
                if tidx is None:
                    LOG.warning(
                        "route %s: no trie index held for prefix %d", route.key, tcam
                    )
                    continue
            else:
                tidx, refcount = trie.get_id_with_ref(tcam, route.dst)

            lut_match = {Field.TCAM_PREFIX: ternary(tcam)}
            if delete and refcount == 0:
                entries.append(
                    make_entry(Table.LPM_ROOT_LUT1, lut_match, priority=tidx)
                )
            elif not delete and refcount == 1:
                entries.append(
                    make_entry(
                        Table.LPM_ROOT_LUT1,
                        lut_match,
                        ActionName.LPM_ROOT_LUT1_ACTION,
                        (tidx,),
                        priority=tidx,
                    )
                )

            match = {Field.LPM_ROOT1: exact(tidx), Field.DST_IP: lpm(route.dst)}
            if delete:
                entries.append(make_entry(Table.L3_ROUTING, match, priority=1))
            else:
                entries.append(
                    make_entry(
                        Table.L3_ROUTING,
                        match,
                        ActionName.SET_NEIGHBOR,
                        (neighbors[direction], ecmp_flag),
                        priority=1,
                    )
                )

        if self._is_p2p(route, ecmp):
            tidx = trie.lookup(TcamPrefix.P2P)
            if tidx is None:
                LOG.warning(
                    "route %s: point-to-point root not installed, skipping", route.key
                )
                return entries
            match = {Field.LPM_ROOT2: exact(tidx), Field.DST_IP: lpm(route.dst)}
            if delete:
                entries.append(make_entry(Table.L3_P2P_ROUTING, match, priority=1))
            else:
                entries.append(
                    make_entry(
                        Table.L3_P2P_ROUTING,
                        match,
                        ActionName.SET_P2P_NEIGHBOR,
                        (neighbors[Direction.RX], ecmp_flag),
                        priority=1,
                    )
                )
        return entries

    # ------------------------------------------------------------------
    # Nexthops
    # ------------------------------------------------------------------
    def translate_added_nexthop(self, nexthop: Nexthop) -> List[TableEntry]:
        if nexthop.nh_type not in _REQUIRED_FIELDS:
            return []
        require_fields(nexthop, _REQUIRED_FIELDS[nexthop.nh_type])
        mod_ptr, _ = self._pools.mod_ptr.get_id_with_ref(
            l3_nexthop_key(nexthop), nexthop.id
        )
        return self._nexthop_entries(nexthop, mod_ptr)

    def translate_deleted_nexthop(self, nexthop: Nexthop) -> List[TableEntry]:
        if nexthop.nh_type not in _REQUIRED_FIELDS:
            return []
        require_fields(nexthop, _REQUIRED_FIELDS[nexthop.nh_type])
        mod_ptr, _ = self._pools.mod_ptr.release_id_with_ref(
            l3_nexthop_key(nexthop), nexthop.id
        )
        if mod_ptr is None:
            return []
        return retract(self._nexthop_entries(nexthop, mod_ptr))

    def _nexthop_entries(self, nexthop: Nexthop, mod_ptr: int) -> List[TableEntry]:
        tx_id = nexthop_p4_id(nexthop.id, nexthop.nh_type, Direction.TX)
        rx_id = nexthop_p4_id(nexthop.id, nexthop.nh_type, Direction.RX)
        mod_match = {Field.MOD_BLOB_PTR: exact(mod_ptr)}

        def neighbor(value: int) -> dict:
            return {Field.NEIGHBOR: exact(value), Field.BIT32_ZEROS: exact(0)}

        if nexthop.nh_type is NexthopType.PHY:
            port = nexthop.egress_vport
            return [
                make_entry(
                    Table.MAC_MOD,
                    mod_match,
                    ActionName.UPDATE_SMAC_DMAC,
                    (nexthop.smac, nexthop.dmac),
                ),
                make_entry(
                    Table.L3_NEXTHOP_TX,
                    neighbor(tx_id),
                    ActionName.PUSH_MAC,
                    (mod_ptr, port),
                ),
                make_entry(
                    Table.L3_NEXTHOP_RX,
                    neighbor(rx_id),
                    ActionName.SEND_P2P_PUSH_MAC,
                    (mod_ptr, port, p2p_qid(port)),
                ),
                make_entry(
                    Table.INGRESS_P2P,
                    neighbor(rx_id),
                    ActionName.FWD_TO_PORT,
                    (port,),
                ),
            ]

        vport = to_egress_vsi(nexthop.egress_vport)
        vlan = check_u16(nexthop.vlan_id, "nexthop vlan id")
        if nexthop.nh_type is NexthopType.ACC:
            mod = make_entry(
                Table.DMAC_VLAN_PUSH_MOD,
                mod_match,
                ActionName.DMAC_VLAN_PUSH,
                (0, 1, vlan, nexthop.dmac),
            )
            push = ActionName.PUSH_DMAC_VLAN
        elif nexthop.port_type is BridgePortType.TRUNK:
            mod = make_entry(
                Table.MAC_VLAN_PUSH_MOD,
                mod_match,
                ActionName.UPDATE_SMAC_DMAC_VLAN,
                (nexthop.smac, nexthop.dmac, 0, 1, vlan),
            )
            push = ActionName.PUSH_MAC_VLAN
        else:
            mod = make_entry(
                Table.MAC_MOD,
                mod_match,
                ActionName.UPDATE_SMAC_DMAC,
                (nexthop.smac, nexthop.dmac),
            )
            push = ActionName.PUSH_MAC

        return [
            mod,
            make_entry(Table.L3_NEXTHOP_RX, neighbor(tx_id), push, (mod_ptr, vport)),
            make_entry(Table.L3_NEXTHOP_TX, neighbor(tx_id), push, (mod_ptr, vport)),
        ]

    # ------------------------------------------------------------------
    # Static entries
    # ------------------------------------------------------------------
    def _static_entries(self) -> List[TableEntry]:
        reps = self._representors
        entries = [
            make_entry(
                Table.TAGGED_VPORT_INGRESS,
                {Field.VSI: exact(reps.vrf_mux.vsi), Field.VID: exact(int(Vlan.GRD))},
                ActionName.POP_VLAN_SET_VRFID,
                (int(ModPointer.IGNORE), 0, int(TcamPrefix.GRD), 0),
            )
        ]
        for port in reps.grpc_pairs():
            entries.append(
                make_entry(
                    Table.VPORT_SVI_INGRESS,
                    {Field.VSI: exact(port.vsi), Field.DA: exact(port.peer_mac)},
                    ActionName.FWD_TO_PORT,
                    (to_egress_vsi(port.peer_vsi),),
                )
            )
            entries.append(
                make_entry(
                    Table.L2_FWD_LOOP,
                    {Field.DA: exact(port.mac)},
                    ActionName.L2_FWD,
                    (to_egress_vsi(port.vsi),),
                )
            )
        for port in reps.phy_ports():
            vport_match = {Field.VSI: exact(port.vsi), Field.BIT32_ZEROS: exact(0)}
            entries.extend(
                [
                    make_entry(
                        Table.PHY_INGRESS_IP,
                        {Field.PORT_ID: exact(port.id), Field.DA: exact(port.mac)},
                        ActionName.SET_VRF_ID,
                        (int(TcamPrefix.GRD), to_egress_vsi(L3_DEFAULT_VSI), 0),
                    ),
                    make_entry(
                        Table.PHY_INGRESS_ARP,
                        {Field.PORT_ID: exact(port.id), Field.BIT32_ZEROS: exact(0)},
                        ActionName.FWD_TO_PORT,
                        (to_egress_vsi(port.vsi),),
                    ),
                    make_entry(
                        Table.VPORT_INGRESS,
                        vport_match,
                        ActionName.FWD_TO_PORT,
                        (port.id,),
                    ),
                    make_entry(
                        Table.VPORT_ARP_INGRESS,
                        vport_match,
                        ActionName.FWD_TO_PORT,
                        (port.id,),
                    ),
                ]
            )
        return entries

    @staticmethod
    def _p2p_root(tidx: int) -> TableEntry:
        return make_entry(
            Table.LPM_ROOT_LUT2,
            {Field.TCAM_PREFIX: ternary(int(TcamPrefix.P2P))},
            ActionName.LPM_ROOT_LUT2_ACTION,
            (tidx,),
            priority=tidx,
        )

    def static_additions(self) -> List[TableEntry]:
        entries = self._static_entries()
        tidx = self._pools.trie_index.get_id(TcamPrefix.P2P)
        entries.append(self._p2p_root(tidx))
        return entries

    def static_deletions(self) -> List[TableEntry]:
        entries = retract(self._static_entries())
        tidx = self._pools.trie_index.release_id(TcamPrefix.P2P)
        if tidx is not None:
            entries.append(self._p2p_root(tidx).as_delete())
        return entries
