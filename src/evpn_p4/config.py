"""Representor configuration consumed by the decoders.

A representor is a vport on the switch identified by its VSI and MAC.  The
agent resolves them once at start-up (see ``evpn_gw_agent.representors``) and
hands the result to the decoders as a :class:`Representors` bundle.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence, Tuple

from .constants import PortId
from .utils import check_u16, normalize_mac

PHY_KEYS = tuple(f"{port.name.lower()}_rep" for port in PortId)


@dataclass(frozen=True)
class PortRepresentor:
    vsi: int
    mac: str

    def __post_init__(self) -> None:
        check_u16(self.vsi, "representor vsi")
        object.__setattr__(self, "mac", normalize_mac(self.mac))


@dataclass(frozen=True)
class PhyPort:
    id: int
    vsi: int
    mac: str


@dataclass(frozen=True)
class GrpcPairPort:
    """One end of the gRPC representor pair and the peer it forwards to."""

    vsi: int
    mac: str
    peer_vsi: int
    peer_mac: str


@dataclass(frozen=True)
class Representors:
    vrf_mux: PortRepresentor
    port_mux: PortRepresentor
    grpc_acc: Optional[PortRepresentor] = None
    grpc_host: Optional[PortRepresentor] = None
    phy: Tuple[Optional[PortRepresentor], ...] = field(default=())

    @classmethod
    def from_mapping(
        cls, mapping: Mapping[str, Tuple[int, str] | PortRepresentor]
    ) -> "Representors":
        """Build the bundle from ``{name: (vsi, mac)}``.

        Recognised names are ``phy0_rep`` .. ``phy3_rep``, ``grpc_acc``,
        ``grpc_host``, ``vrf_mux`` and ``port_mux``.  The two mux
        representors are mandatory.
        """

        def _get(name: str) -> Optional[PortRepresentor]:
            value = mapping.get(name)
            if value is None:
                return None
            if isinstance(value, PortRepresentor):
                return value
            vsi, mac = value
            return PortRepresentor(vsi=int(vsi), mac=str(mac))

        vrf_mux = _get("vrf_mux")
        port_mux = _get("port_mux")
        if vrf_mux is None or port_mux is None:
            raise ValueError("representors must define 'vrf_mux' and 'port_mux'")

        return cls(
            vrf_mux=vrf_mux,
            port_mux=port_mux,
            grpc_acc=_get("grpc_acc"),
            grpc_host=_get("grpc_host"),
            phy=tuple(_get(key) for key in PHY_KEYS),
        )

    def phy_ports(self) -> List[PhyPort]:
        ports: List[PhyPort] = []
        for port_id, rep in enumerate(self.phy):
            if rep is not None:
                ports.append(PhyPort(id=port_id, vsi=rep.vsi, mac=rep.mac))
        return ports

    def grpc_pairs(self) -> Sequence[GrpcPairPort]:
        if self.grpc_acc is None or self.grpc_host is None:
            return ()
        acc, host = self.grpc_acc, self.grpc_host
        return (
            GrpcPairPort(acc.vsi, acc.mac, peer_vsi=host.vsi, peer_mac=host.mac),
            GrpcPairPort(host.vsi, host.mac, peer_vsi=acc.vsi, peer_mac=acc.mac),
        )
