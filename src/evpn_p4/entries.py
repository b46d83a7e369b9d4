"""Match-action table entries for the ``evpn_gw_control`` pipeline.

Every decoder returns lists of :class:`TableEntry`.  An entry carrying an
:class:`Action` is an upsert; the same entry without an action retracts the
entry with that match key.  Table and action names are fixed by the P4
program and are modelled as closed enumerations so a typo fails at import
time rather than on the switch.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

PIPELINE = "evpn_gw_control"


class Table(str, Enum):
    # Routing
    L3_ROUTING = f"{PIPELINE}.l3_routing_table"
    L3_LEM = f"{PIPELINE}.l3_lem_table"
    L3_P2P_ROUTING = f"{PIPELINE}.l3_p2p_routing_table"
    L3_P2P_LEM = f"{PIPELINE}.l3_p2p_lem_table"
    L3_NEXTHOP_RX = f"{PIPELINE}.l3_nexthop_table_rx"
    L3_NEXTHOP_TX = f"{PIPELINE}.l3_nexthop_table_tx"
    ECMP_SELECTION = f"{PIPELINE}.ecmp_selection_table"
    INGRESS_P2P = f"{PIPELINE}.ingress_p2p_table"
    LPM_ROOT_LUT1 = f"{PIPELINE}.ecmp_lpm_root_lut1"
    LPM_ROOT_LUT2 = f"{PIPELINE}.ecmp_lpm_root_lut2"
    # Physical ports and overlay
    PHY_INGRESS_IP = f"{PIPELINE}.phy_ingress_ip_table"
    PHY_INGRESS_ARP = f"{PIPELINE}.phy_ingress_arp_table"
    PHY_INGRESS_VXLAN = f"{PIPELINE}.phy_ingress_vxlan_table"
    PHY_INGRESS_VXLAN_VLAN = f"{PIPELINE}.phy_ingress_vxlan_vlan_table"
    # Vports
    VPORT_ARP_INGRESS = f"{PIPELINE}.vport_arp_ingress_table"
    TAGGED_VPORT_ARP_INGRESS = f"{PIPELINE}.tagged_vport_arp_ingress_table"
    VPORT_INGRESS = f"{PIPELINE}.vport_ingress_table"
    TAGGED_VPORT_INGRESS = f"{PIPELINE}.tagged_vport_ingress_table"
    VPORT_SVI_INGRESS = f"{PIPELINE}.vport_svi_ingress_table"
    TAGGED_VPORT_SVI_INGRESS = f"{PIPELINE}.tagged_vport_svi_ingress_table"
    PORT_MUX_INGRESS = f"{PIPELINE}.port_mux_ingress_table"
    PORT_MUX_FWD = f"{PIPELINE}.port_mux_fwd_table"
    # L2
    L2_FWD_LOOP = f"{PIPELINE}.l2_fwd_rx_table"
    L2_DMAC = f"{PIPELINE}.l2_dmac_table"
    L2_NEXTHOP = f"{PIPELINE}.l2_nexthop_table"
    # Packet modification
    VLAN_PUSH_MOD = f"{PIPELINE}.vlan_push_mod_table"
    MAC_VLAN_PUSH_MOD = f"{PIPELINE}.mac_vlan_push_mod_table"
    DMAC_VLAN_PUSH_MOD = f"{PIPELINE}.dmac_vlan_push_mod_table"
    MAC_MOD = f"{PIPELINE}.mac_mod_table"
    OMAC_VXLAN_IMAC_PUSH_MOD = f"{PIPELINE}.omac_vxlan_imac_push_mod_table"
    OMAC_VXLAN_PUSH_MOD = f"{PIPELINE}.omac_vxlan_push_mod_table"
    VLAN_ENCAP_CTAG_STAG_MOD = f"{PIPELINE}.vlan_encap_ctag_stag_mod_table"
    VLAN_ENCAP_STAG_MOD = f"{PIPELINE}.vlan_encap_stag_mod_table"
    VLAN_CTAG_STAG_POP_MOD = f"{PIPELINE}.vlan_ctag_stag_pop_mod_table"
    VLAN_STAG_POP_MOD = f"{PIPELINE}.vlan_stag_pop_mod_table"
    VLAN_ENCAP_CTAG_STAG_FLOOD_MOD = f"{PIPELINE}.vlan_encap_ctag_stag_flood_mod_table"


class ActionName(str, Enum):
    SET_NEIGHBOR = f"{PIPELINE}.set_neighbor"
    SET_P2P_NEIGHBOR = f"{PIPELINE}.set_p2p_neighbor"
    SET_NEIGHBOR_WITHOUTREC = f"{PIPELINE}.set_neighbor_withoutrec"
    LPM_ROOT_LUT1_ACTION = f"{PIPELINE}.ecmp_lpm_root_lut1_action"
    LPM_ROOT_LUT2_ACTION = f"{PIPELINE}.ecmp_lpm_root_lut2_action"
    FWD_TO_PORT = f"{PIPELINE}.fwd_to_port"
    L2_FWD = f"{PIPELINE}.l2_fwd"
    SET_VRF_ID = f"{PIPELINE}.set_vrf_id"
    SET_VRF_ID_TX = f"{PIPELINE}.set_vrf_id_tx"
    SET_VLAN = f"{PIPELINE}.set_vlan"
    SET_VLAN_AND_POP_VLAN = f"{PIPELINE}.set_vlan_and_pop_vlan"
    POP_VLAN_SET_VRFID = f"{PIPELINE}.pop_vlan_set_vrfid"
    POP_VLAN_SET_VRF_ID = f"{PIPELINE}.pop_vlan_set_vrf_id"
    POP_VXLAN_SET_VRF_ID = f"{PIPELINE}.pop_vxlan_set_vrf_id"
    POP_VXLAN_SET_VLAN_ID = f"{PIPELINE}.pop_vxlan_set_vlan_id"
    POP_STAG_VLAN = f"{PIPELINE}.pop_stag_vlan"
    POP_CTAG_STAG_VLAN = f"{PIPELINE}.pop_ctag_stag_vlan"
    PUSH_MAC = f"{PIPELINE}.push_mac"
    PUSH_MAC_VLAN = f"{PIPELINE}.push_mac_vlan"
    PUSH_DMAC_VLAN = f"{PIPELINE}.push_dmac_vlan"
    PUSH_VLAN_L2 = f"{PIPELINE}.push_vlan_l2"
    PUSH_STAG_CTAG = f"{PIPELINE}.push_stag_ctag"
    PUSH_OUTERMAC_VXLAN = f"{PIPELINE}.push_outermac_vxlan"
    PUSH_OUTERMAC_VXLAN_INNERMAC = f"{PIPELINE}.push_outermac_vxlan_innermac"
    SEND_P2P_PUSH_MAC = f"{PIPELINE}.send_p2p_push_mac"
    SEND_P2P_PUSH_OUTERMAC_VXLAN_INNERMAC = (
        f"{PIPELINE}.send_p2p_push_outermac_vxlan_innermac"
    )
    SEND_TO_PORT_MUX = f"{PIPELINE}.send_to_port_mux"
    SEND_TO_PORT_MUX_ACCESS = f"{PIPELINE}.send_to_port_mux_access"
    SEND_TO_PORT_MUX_TRUNK = f"{PIPELINE}.send_to_port_mux_trunk"
    # Packet modification actions
    UPDATE_SMAC_DMAC = f"{PIPELINE}.update_smac_dmac"
    UPDATE_SMAC_DMAC_VLAN = f"{PIPELINE}.update_smac_dmac_vlan"
    DMAC_VLAN_PUSH = f"{PIPELINE}.dmac_vlan_push"
    VLAN_PUSH = f"{PIPELINE}.vlan_push"
    VLAN_PUSH_ACCESS = f"{PIPELINE}.vlan_push_access"
    VLAN_PUSH_TRUNK = f"{PIPELINE}.vlan_push_trunk"
    VLAN_PUSH_STAG_CTAG_FLOOD = f"{PIPELINE}.vlan_push_stag_ctag_flood"
    VLAN_STAG_POP = f"{PIPELINE}.vlan_stag_pop"
    VLAN_CTAG_STAG_POP = f"{PIPELINE}.vlan_ctag_stag_pop"
    OMAC_VXLAN_IMAC_PUSH = f"{PIPELINE}.omac_vxlan_imac_push"
    OMAC_VXLAN_PUSH = f"{PIPELINE}.omac_vxlan_push"


class Field:
    """Match field names understood by the pipeline."""

    VRF = "vrf"
    DIRECTION = "direction"
    DST_IP = "dst_ip"
    NEIGHBOR = "neighbor"
    BIT32_ZEROS = "bit32_zeros"
    HASH = "hash"
    VSI = "vsi"
    VID = "vid"
    DA = "da"
    VNI = "vni"
    VLAN_ID = "vlan_id"
    PORT_ID = "port_id"
    LPM_ROOT1 = "ipv4_table_lpm_root1"
    LPM_ROOT2 = "ipv4_table_lpm_root2"
    MOD_BLOB_PTR = "meta.common.mod_blob_ptr"
    TCAM_PREFIX = "user_meta.cmeta.tcam_prefix"


class MatchKind(str, Enum):
    EXACT = "exact"
    LPM = "lpm"
    TERNARY = "ternary"


@dataclass(frozen=True)
class MatchField:
    name: str
    value: Any
    kind: MatchKind = MatchKind.EXACT


@dataclass(frozen=True)
class Action:
    name: ActionName
    params: Tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", ActionName(self.name))
        object.__setattr__(self, "params", tuple(self.params))


@dataclass(frozen=True)
class TableEntry:
    """A single match-action entry.

    Attributes
    ----------
    table:
        Fully qualified pipeline table name.
    match:
        Ordered match fields; the order is the order the decoder listed them
        in and carries no meaning to the pipeline.
    priority:
        Entry priority.  Only meaningful for ternary and LPM tables.
    action:
        Action to bind.  ``None`` marks the entry as a retraction.
    """

    table: Table
    match: Tuple[MatchField, ...]
    priority: int = 0
    action: Optional[Action] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "table", Table(self.table))
        object.__setattr__(self, "match", tuple(self.match))

    @property
    def key(self) -> Tuple[Table, Tuple[MatchField, ...], int]:
        return self.table, self.match, self.priority

    @property
    def is_delete(self) -> bool:
        return self.action is None

    @property
    def fields(self) -> Dict[str, Any]:
        return {f.name: f.value for f in self.match}

    def as_delete(self) -> "TableEntry":
        return replace(self, action=None)

    def to_dict(self) -> Dict[str, Any]:
        """JSON friendly rendering; addresses are rendered as strings."""

        data: Dict[str, Any] = {
            "table": self.table.value,
            "match": [
                {"name": f.name, "value": _plain(f.value), "kind": f.kind.value}
                for f in self.match
            ],
            "priority": self.priority,
        }
        if self.action is not None:
            data["action"] = {
                "name": self.action.name.value,
                "params": [_plain(p) for p in self.action.params],
            }
        return data


def _plain(value: Any) -> Any:
    return int(value) if isinstance(value, int) else str(value)


def exact(value: Any) -> Tuple[Any, MatchKind]:
    return value, MatchKind.EXACT


def lpm(value: Any) -> Tuple[Any, MatchKind]:
    return value, MatchKind.LPM


def ternary(value: Any) -> Tuple[Any, MatchKind]:
    return value, MatchKind.TERNARY


def make_entry(
    table: Table,
    match: Mapping[str, Tuple[Any, MatchKind]],
    action: Optional[ActionName] = None,
    params: Sequence[Any] = (),
    *,
    priority: int = 0,
) -> TableEntry:
    """Build a :class:`TableEntry` from a ``{field: (value, kind)}`` mapping."""

    fields = tuple(
        MatchField(name=name, value=value, kind=MatchKind(kind))
        for name, (value, kind) in match.items()
    )
    bound = Action(action, tuple(params)) if action is not None else None
    return TableEntry(table=table, match=fields, priority=priority, action=bound)


def retract(entries: Iterable[TableEntry]) -> List[TableEntry]:
    """Return delete entries matching the keys of ``entries``."""

    return [entry.as_delete() for entry in entries]
