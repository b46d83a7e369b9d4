"""YAML configuration loader for the EVPN gateway agent."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import yaml

DEFAULT_COMPONENT = "intel-e2000"


@dataclass
class P4Config:
    address: str = "127.0.0.1:9559"
    ready_timeout: float = 30.0
    ready_interval: float = 1.0


@dataclass
class InterfacesConfig:
    """Port representors, each given as a MAC address or an interface name."""

    vrf_mux: str
    port_mux: str
    phy_ports: Sequence[str] = field(default_factory=list)
    grpc_acc: Optional[str] = None
    grpc_host: Optional[str] = None


@dataclass
class SwitchConfig:
    type: str = "file"
    path: Optional[Path] = None


@dataclass
class WatcherConfig:
    type: str
    path: Path
    interval: float = 5.0


@dataclass
class AgentConfig:
    interfaces: InterfacesConfig
    component: str = DEFAULT_COMPONENT
    p4: P4Config = field(default_factory=P4Config)
    switch: SwitchConfig = field(default_factory=SwitchConfig)
    watchers: Sequence[WatcherConfig] = field(default_factory=list)


def _optional_path(value) -> Optional[Path]:
    return Path(value) if value else None


def _parse_p4(section: dict) -> P4Config:
    return P4Config(
        address=str(section.get("address", "127.0.0.1:9559")),
        ready_timeout=float(section.get("ready_timeout", 30.0)),
        ready_interval=float(section.get("ready_interval", 1.0)),
    )


def _parse_interfaces(section: dict) -> InterfacesConfig:
    for required in ("vrf_mux", "port_mux"):
        if not section.get(required):
            raise ValueError(f"'interfaces' section missing '{required}'")
    phy_ports = section.get("phy_ports", [])
    if not isinstance(phy_ports, list):
        raise ValueError("'interfaces.phy_ports' must be a list")
    if len(phy_ports) > 4:
        raise ValueError("at most 4 physical ports are supported")

    def _opt(name: str) -> Optional[str]:
        value = section.get(name)
        return str(value) if value else None

    return InterfacesConfig(
        vrf_mux=str(section["vrf_mux"]),
        port_mux=str(section["port_mux"]),
        phy_ports=[str(p) for p in phy_ports],
        grpc_acc=_opt("grpc_acc"),
        grpc_host=_opt("grpc_host"),
    )


def _parse_switch(section: dict) -> SwitchConfig:
    switch_type = str(section.get("type", "file"))
    if switch_type != "file":
        raise ValueError(f"Unsupported switch type '{switch_type}'")
    return SwitchConfig(type=switch_type, path=_optional_path(section.get("path")))


def _parse_watchers(entries: Iterable[dict]) -> List[WatcherConfig]:
    watchers: List[WatcherConfig] = []
    for entry in entries:
        if not isinstance(entry, dict) or "type" not in entry:
            raise ValueError("each watcher must be a mapping with a 'type'")
        watchers.append(
            WatcherConfig(
                type=str(entry["type"]),
                path=Path(entry.get("path", ".")),
                interval=float(entry.get("interval", 5.0)),
            )
        )
    return watchers


def load_config(path: Path) -> AgentConfig:
    data = yaml.safe_load(Path(path).read_text())
    if not isinstance(data, dict):
        raise ValueError("Agent configuration must be a mapping")

    interfaces_section = data.get("interfaces")
    if interfaces_section is None:
        raise ValueError("Configuration missing 'interfaces' section")
    interfaces = _parse_interfaces(interfaces_section)

    watchers_section = data.get("watchers", [])
    if not isinstance(watchers_section, list):
        raise ValueError("'watchers' section must be a list")

    return AgentConfig(
        interfaces=interfaces,
        component=str(data.get("component", DEFAULT_COMPONENT)),
        p4=_parse_p4(data.get("p4") or {}),
        switch=_parse_switch(data.get("switch") or {}),
        watchers=_parse_watchers(watchers_section),
    )
