"""Translation of EVPN gateway state into ``evpn_gw_control`` table entries.

The package is a pure library: decoders take network objects and return the
table entries to add or retract, sharing identifiers through
:class:`~evpn_p4.pool.ResourcePools`.  Programming the switch and reacting to
events lives in :mod:`evpn_bridge`.

* :class:`~evpn_p4.l3.L3Decoder` translates routes and L3 nexthops;
* :class:`~evpn_p4.vxlan.VxlanDecoder` handles the VXLAN overlay; and
* :class:`~evpn_p4.pod.PodDecoder` handles bridge ports and SVIs.
"""

from .config import Representors  # noqa: F401
from .ecmp import EcmpBuilder  # noqa: F401
from .entries import TableEntry  # noqa: F401
from .l3 import L3Decoder  # noqa: F401
from .pod import PodDecoder  # noqa: F401
from .pool import IDPool, ResourcePools  # noqa: F401
from .vxlan import VxlanDecoder  # noqa: F401

__all__ = [
    "EcmpBuilder",
    "IDPool",
    "L3Decoder",
    "PodDecoder",
    "Representors",
    "ResourcePools",
    "TableEntry",
    "VxlanDecoder",
]
