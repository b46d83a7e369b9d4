"""Long-lived consumer thread for one event subscription."""

from __future__ import annotations

import logging
import queue
from threading import Event, Thread
from typing import Callable, Optional

from .bus import EventBus
from .events import Category
from .events import Event as BusEvent

LOG = logging.getLogger(__name__)

Handler = Callable[[BusEvent], object]


class SubscriptionListener(Thread):
    """Consume one category from the bus, strictly in delivery order.

    The listener runs until ``stop_event`` is set.  Exceptions raised by the
    handler are logged and the next event is processed.
    """

    def __init__(
        self,
        bus: EventBus,
        category: Category,
        handler: Handler,
        stop_event: Event,
        poll_interval: float = 0.2,
    ) -> None:
        super().__init__(name=f"listener-{category.value}", daemon=True)
        self._bus = bus
        self._category = category
        self._handler = handler
        self._stop_event = stop_event
        self._poll_interval = poll_interval
        self._subscription = bus.subscribe(category)
        self.processed = 0

    @property
    def category(self) -> Category:
        return self._category

    def run(self) -> None:
        LOG.debug("listener for %s started", self._category.value)
        while not self._stop_event.is_set():
            self.process_next(self._poll_interval)
        LOG.debug("listener for %s stopped", self._category.value)

    def process_next(self, timeout: Optional[float] = None) -> bool:
        """Handle a single event if one arrives within ``timeout``."""

        try:
            event = self._subscription.get(timeout=timeout)
        except queue.Empty:
            return False
        LOG.debug("listener for %s received %s", self._category.value, event)
        try:
            self._handler(event)
        except Exception:  # pragma: no cover - logged, listener keeps running
            LOG.exception("handler for %s event failed", self._category.value)
        self.processed += 1
        return True

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Unsubscribe and wait for the thread; ``stop_event`` must be set."""

        self._bus.unsubscribe(self._subscription)
        if self.is_alive():
            self.join(timeout)
