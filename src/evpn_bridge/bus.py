"""In-process publish/subscribe bus with one queue per subscription."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Dict, List, Optional

from .events import Category, Event

LOG = logging.getLogger(__name__)


class Subscription:
    """Ordered stream of events for a single category."""

    def __init__(self, category: Category) -> None:
        self.category = category
        self._queue: "queue.Queue[Event]" = queue.Queue()
        self.closed = False

    def put(self, event: Event) -> None:
        self._queue.put(event)

    def get(self, timeout: Optional[float] = None) -> Event:
        """Return the next event; raises :class:`queue.Empty` on timeout."""

        return self._queue.get(timeout=timeout)

    def pending(self) -> int:
        return self._queue.qsize()


class EventBus:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: Dict[Category, List[Subscription]] = {}

    def subscribe(self, category: Category) -> Subscription:
        subscription = Subscription(category)
        with self._lock:
            self._subscriptions.setdefault(category, []).append(subscription)
        LOG.debug("subscribed to %s", category.value)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscriptions.get(subscription.category, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
        subscription.closed = True
        LOG.debug("unsubscribed from %s", subscription.category.value)

    def publish(self, event: Event) -> int:
        """Deliver ``event`` to every subscriber of its category.

        Returns the number of subscriptions that received it.
        """

        with self._lock:
            subscribers = list(self._subscriptions.get(event.category, []))
        if not subscribers:
            LOG.debug("no subscribers for %s event", event.category.value)
        for subscription in subscribers:
            subscription.put(event)
        return len(subscribers)
