"""Watcher implementations used by the EVPN gateway agent."""

from .file import FileTopologyWatcher  # noqa: F401
from .utils import TopologyState, parse_topology  # noqa: F401

__all__ = ["FileTopologyWatcher", "TopologyState", "parse_topology"]
