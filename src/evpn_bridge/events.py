"""Event primitives delivered to the reconciler."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class ObjectKind(str, Enum):
    VRF = "vrf"
    LOGICAL_BRIDGE = "logical-bridge"
    BRIDGE_PORT = "bridge-port"
    SVI = "svi"


class ForwardingKind(str, Enum):
    ROUTE = "route"
    NEXTHOP = "nexthop"
    FDB = "fdb"
    L2_NEXTHOP = "l2-nexthop"


class Operation(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"


Category = Union[ObjectKind, ForwardingKind]


@dataclass(frozen=True)
class ObjectEvent:
    """A topology object changed.

    Only the identity travels with the event; the reconciler re-reads the
    object from the store and compares ``resource_version`` to detect stale
    notifications.
    """

    kind: ObjectKind
    name: str
    resource_version: str
    notification_id: str = ""

    @property
    def category(self) -> Category:
        return self.kind


@dataclass(frozen=True)
class ForwardingEvent:
    """Forwarding state observed on the host, carrying the object itself."""

    kind: ForwardingKind
    operation: Operation
    payload: Any

    @property
    def category(self) -> Category:
        return self.kind


Event = Union[ObjectEvent, ForwardingEvent]
