"""Resolve configured port representors to (VSI, MAC) pairs."""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

import pyroute2

from evpn_p4.config import PHY_KEYS, Representors
from evpn_p4.utils import is_valid_mac, normalize_mac, vsi_from_mac

from .config import InterfacesConfig

LOG = logging.getLogger(__name__)


def interface_mac(ipr, ifname: str) -> str:
    """Return the MAC address of ``ifname``; raise ``ValueError`` if unknown."""

    links = ipr.link_lookup(ifname=ifname)
    if not links:
        raise ValueError(f"interface '{ifname}' not found")
    link = ipr.get_links(links[0])[0]
    mac = link.get_attr("IFLA_ADDRESS")
    if not mac:
        raise ValueError(f"interface '{ifname}' has no link-layer address")
    return normalize_mac(mac)


def resolve(value: str, ipr) -> Tuple[int, str]:
    """A representor is either a MAC address or an interface name."""

    if is_valid_mac(value):
        mac = normalize_mac(value)
    else:
        mac = interface_mac(ipr, value)
        LOG.debug("resolved interface %s to %s", value, mac)
    return vsi_from_mac(mac), mac


def _needs_netlink(interfaces: InterfacesConfig) -> bool:
    values = [interfaces.vrf_mux, interfaces.port_mux, *interfaces.phy_ports]
    values += [v for v in (interfaces.grpc_acc, interfaces.grpc_host) if v]
    return any(not is_valid_mac(v) for v in values)


def load_representors(interfaces: InterfacesConfig, ipr=None) -> Representors:
    """Build :class:`Representors` from the ``interfaces`` configuration.

    ``ipr`` is a ``pyroute2.IPRoute`` compatible object; one is opened only
    when an interface name has to be looked up.
    """

    if ipr is None and _needs_netlink(interfaces):
        with pyroute2.IPRoute() as netlink:
            return load_representors(interfaces, netlink)

    mapping: Dict[str, Tuple[int, str]] = {
        "vrf_mux": resolve(interfaces.vrf_mux, ipr),
        "port_mux": resolve(interfaces.port_mux, ipr),
    }
    for key, value in zip(PHY_KEYS, interfaces.phy_ports):
        mapping[key] = resolve(value, ipr)
    optional: Dict[str, Optional[str]] = {
        "grpc_acc": interfaces.grpc_acc,
        "grpc_host": interfaces.grpc_host,
    }
    for key, value in optional.items():
        if value:
            mapping[key] = resolve(value, ipr)

    for key, (vsi, mac) in sorted(mapping.items()):
        LOG.info("representor %s: vsi %d mac %s", key, vsi, mac)
    return Representors.from_mapping(mapping)
