import pytest

from evpn_gw_agent.config import InterfacesConfig
from evpn_gw_agent.representors import load_representors, resolve
from evpn_p4.utils import vsi_from_mac


class FakeLink:
    def __init__(self, mac):
        self._mac = mac

    def get_attr(self, name):
        assert name == "IFLA_ADDRESS"
        return self._mac


class FakeIPRoute:
    def __init__(self, links):
        self._names = list(links)
        self._macs = links
        self.lookups = []

    def link_lookup(self, ifname):
        self.lookups.append(ifname)
        if ifname not in self._macs:
            return []
        return [self._names.index(ifname) + 1]

    def get_links(self, index):
        return [FakeLink(self._macs[self._names[index - 1]])]


def test_mac_addresses_need_no_lookup():
    interfaces = InterfacesConfig(
        vrf_mux="00:0A:00:00:00:01",
        port_mux="00:0c:00:00:00:02",
        phy_ports=["00:10:00:00:00:10"],
    )
    ipr = FakeIPRoute({})

    reps = load_representors(interfaces, ipr)

    assert ipr.lookups == []
    assert reps.vrf_mux.vsi == vsi_from_mac("00:0a:00:00:00:01")
    assert reps.vrf_mux.mac == "00:0a:00:00:00:01"
    assert reps.phy[0].mac == "00:10:00:00:00:10"


def test_interface_names_are_resolved():
    ipr = FakeIPRoute(
        {"vrfmux0": "00:0a:00:00:00:01", "portmux0": "00:0c:00:00:00:02"}
    )
    interfaces = InterfacesConfig(vrf_mux="vrfmux0", port_mux="portmux0")

    reps = load_representors(interfaces, ipr)

    assert ipr.lookups == ["vrfmux0", "portmux0"]
    assert reps.port_mux.mac == "00:0c:00:00:00:02"


def test_unknown_interface_raises():
    with pytest.raises(ValueError):
        resolve("nosuchif0", FakeIPRoute({}))
