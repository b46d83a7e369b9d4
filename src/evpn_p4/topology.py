"""Read access to the topology store used for cross-reference resolution."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .objects import BridgePort, LogicalBridge, Svi, Vrf


class TopologyReader(ABC):
    """Look up topology objects by name.

    Every getter raises :class:`evpn_p4.errors.ObjectNotFound` when the
    object does not exist.
    """

    @abstractmethod
    def get_vrf(self, name: str) -> Vrf:
        ...

    @abstractmethod
    def get_lb(self, name: str) -> LogicalBridge:
        ...

    @abstractmethod
    def get_bp(self, name: str) -> BridgePort:
        ...

    @abstractmethod
    def get_svi(self, name: str) -> Svi:
        ...
