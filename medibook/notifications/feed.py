"""In-process publish/subscribe feed for committed row changes.

Delivery is best effort: each subscriber owns a bounded queue and, once it
is full, the oldest pending event is dropped to make room. A dropped event
never means a lost state change; subscribers re-read to reconcile.
"""

from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import Any, Callable, Optional

from medibook.config import get_settings
from medibook.notifications.events import ChangeEvent

logger = logging.getLogger(__name__)


class Subscription:
    """A subscriber's view of the feed, filtered by table and row values."""

    def __init__(
        self,
        feed: "ChangeFeed",
        table: str,
        filters: Optional[dict[str, Any]] = None,
        maxsize: int = 100,
    ):
        self._feed = feed
        self.table = table
        self.filters = dict(filters or {})
        self.dropped = 0
        self.closed = False
        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=maxsize)

    def matches(self, event: ChangeEvent) -> bool:
        return event.table == self.table and event.matches(self.filters)

    def offer(self, event: ChangeEvent) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            logger.warning(
                "Change feed subscriber on %s %s is full; dropped oldest event",
                self.table,
                self.filters,
            )
        self._queue.put_nowait(event)

    def pending(self) -> int:
        return self._queue.qsize()

    async def get(self, timeout: Optional[float] = None) -> ChangeEvent:
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout)

    def get_nowait(self) -> ChangeEvent:
        return self._queue.get_nowait()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._feed.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        if self.closed:
            raise StopAsyncIteration
        return await self.get()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc) -> None:
        self.close()


class ChangeFeed:
    """Fan-out of committed mutations to interested subscribers."""

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscriptions: list[Subscription] = []
        self._callbacks: list[Callable[[ChangeEvent], None]] = []

    def subscribe(self, table: str, filters: Optional[dict[str, Any]] = None) -> Subscription:
        """Subscribe to events on *table* whose row matches all *filters*.

        Example:
            async with feed.subscribe("appointments", {"doctor_id": doctor_id}) as sub:
                event = await sub.get()
        """
        sub = Subscription(self, table, filters, maxsize=self.queue_size)
        self._subscriptions.append(sub)
        logger.debug("Subscribed to %s %s", table, sub.filters)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    def add_callback(self, callback: Callable[[ChangeEvent], None]) -> None:
        """Add a synchronous callback invoked for every published event."""
        self._callbacks.append(callback)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, event: ChangeEvent) -> int:
        """Deliver *event* to matching subscribers. Returns the delivery count."""
        delivered = 0
        for sub in list(self._subscriptions):
            if sub.matches(event):
                sub.offer(event)
                delivered += 1

        for callback in self._callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Change feed callback failed: {e}")

        return delivered


@lru_cache
def get_change_feed() -> ChangeFeed:
    """Get the process-wide change feed."""
    return ChangeFeed(queue_size=get_settings().feed_queue_size)
