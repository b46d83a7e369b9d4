"""Event-driven integration between the topology store and the switch."""

from .bus import EventBus  # noqa: F401
from .events import (  # noqa: F401
    ForwardingEvent,
    ForwardingKind,
    ObjectEvent,
    ObjectKind,
    Operation,
)
from .listener import SubscriptionListener  # noqa: F401
from .reconciler import Decoders, Reconciler  # noqa: F401
from .store import InMemoryTopologyStore  # noqa: F401

__all__ = [
    "Decoders",
    "EventBus",
    "ForwardingEvent",
    "ForwardingKind",
    "InMemoryTopologyStore",
    "ObjectEvent",
    "ObjectKind",
    "Operation",
    "Reconciler",
    "SubscriptionListener",
]
