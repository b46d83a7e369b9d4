"""Abstract interfaces for the switch and the topology store."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

from evpn_p4.entries import TableEntry
from evpn_p4.objects import ComponentStatus
from evpn_p4.topology import TopologyReader

LOG = logging.getLogger(__name__)

__all__ = [
    "SwitchDriver",
    "SwitchError",
    "TopologyReader",
    "TopologyStore",
    "TopologyStoreError",
    "wait_for_ready",
]


class SwitchError(RuntimeError):
    """The switch rejected or could not process a table entry."""


class TopologyStoreError(RuntimeError):
    """A status update could not be written to the topology store."""


class SwitchDriver(ABC):
    """Programs table entries into the forwarding pipeline."""

    @abstractmethod
    def add_entry(self, entry: TableEntry) -> None:
        """Insert or overwrite ``entry``; raise :class:`SwitchError` on failure."""

    @abstractmethod
    def del_entry(self, entry: TableEntry) -> None:
        """Remove the entry matching ``entry.key``."""

    @abstractmethod
    def is_ready(self) -> bool:
        """Whether the pipeline accepts entries."""


class TopologyStore(TopologyReader):
    """Topology store with per-component status reporting."""

    @abstractmethod
    def update_vrf_status(
        self, name: str, resource_version: str, notification_id: str,
        metadata: Optional[Mapping[str, Any]],
        component: ComponentStatus,
    ) -> None:
        ...

    @abstractmethod
    def update_lb_status(
        self, name: str, resource_version: str, notification_id: str,
        metadata: Optional[Mapping[str, Any]],
        component: ComponentStatus,
    ) -> None:
        ...

    @abstractmethod
    def update_bp_status(
        self, name: str, resource_version: str, notification_id: str,
        metadata: Optional[Mapping[str, Any]],
        component: ComponentStatus,
    ) -> None:
        ...

    @abstractmethod
    def update_svi_status(
        self, name: str, resource_version: str, notification_id: str,
        metadata: Optional[Mapping[str, Any]],
        component: ComponentStatus,
    ) -> None:
        ...


def wait_for_ready(
    driver: SwitchDriver, timeout: float = 30.0, interval: float = 1.0
) -> bool:
    """Poll ``driver.is_ready()`` until it succeeds or ``timeout`` expires."""

    deadline = time.monotonic() + timeout
    while True:
        if driver.is_ready():
            return True
        if time.monotonic() >= deadline:
            LOG.error("switch not ready after %.1fs", timeout)
            return False
        LOG.debug("switch not ready yet, retrying in %.1fs", interval)
        time.sleep(interval)
