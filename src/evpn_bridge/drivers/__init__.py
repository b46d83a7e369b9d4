"""Switch drivers and the abstract store/switch interfaces."""

from .base import (  # noqa: F401
    SwitchDriver,
    SwitchError,
    TopologyReader,
    TopologyStore,
    TopologyStoreError,
    wait_for_ready,
)
from .file_switch import FileSwitchDriver  # noqa: F401

__all__ = [
    "FileSwitchDriver",
    "SwitchDriver",
    "SwitchError",
    "TopologyReader",
    "TopologyStore",
    "TopologyStoreError",
    "wait_for_ready",
]
