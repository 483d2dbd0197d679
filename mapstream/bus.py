"""
Notification Bus
================

Broadcast delivery of ``MapUpdate`` events to any number of subscribers.

Subscribers either receive every event or restrict themselves to a set of
keys. A filtered subscriber is notified when the event changed one of its
keys, and always for resend-all events (those with an empty ``changed``).

Delivery is breadth-first: an event emitted while another one is being
delivered (a subscriber writing to the map, say) is queued and delivered
once every subscriber has seen the current one. Each subscriber therefore
sees events in the order they were emitted.
"""

import asyncio
import logging
import threading
import weakref
from collections import deque
from typing import Any, Callable, Deque, Dict, Hashable, Iterable, Optional

from .errors import ClosedStream
from .events import MapUpdate


def key_set(keys: Optional[Iterable[Hashable]]) -> Optional[frozenset]:
    """Normalise a key filter; a lone str or bytes is one key, not characters."""
    if keys is None:
        return None
    if isinstance(keys, (str, bytes)):
        return frozenset([keys])
    return frozenset(keys)


class Subscription:
    """
    Handle returned by ``subscribe``.

    Provides methods to pause, resume, and cancel delivery.
    """

    def __init__(
        self,
        subscription_id: int,
        callback: Callable[[MapUpdate], Any],
        bus: "NotificationBus",
        keys: Optional[Iterable[Hashable]] = None,
        on_close: Optional[Callable[[], Any]] = None,
    ):
        self.id = subscription_id
        self.callback = callback
        self._bus_ref = weakref.ref(bus)
        self.keys = key_set(keys)  # None = all keys
        self._on_close = on_close
        self.active = True
        self.cancelled = False

    def pause(self):
        """Pause this subscription (events are skipped, not buffered)."""
        self.active = False

    def resume(self):
        """Resume this subscription."""
        self.active = True

    def cancel(self):
        """Stop all further delivery. Safe to call more than once."""
        bus = self._bus_ref()
        if bus is not None:
            bus.unsubscribe(self)
        self.cancelled = True

    def matches(self, event: MapUpdate) -> bool:
        """Check if this subscription is interested in the given event."""
        if self.keys is None or not event.changed:
            return True
        return event.touches(self.keys)

    def notify(self, event: MapUpdate):
        """Deliver an event, isolating the bus from callback failures."""
        if self.cancelled or not self.active or not self.matches(event):
            return
        try:
            self.callback(event)
        except Exception as e:
            logging.error(f"Error in subscription {self.id}: {e}", exc_info=True)

    def _bus_closed(self):
        self.cancelled = True
        if self._on_close is not None:
            self._on_close()

    def __repr__(self):
        if self.cancelled:
            state = "cancelled"
        else:
            state = "active" if self.active else "paused"
        keys = "*" if self.keys is None else sorted(map(repr, self.keys))
        return f"Subscription(id={self.id}, keys={keys}, {state})"


class NotificationBus:
    """
    Subscriber registry plus dispatch loop for one MapStream.

    Usage:
        bus = NotificationBus()
        sub = bus.subscribe(print, keys=["a"])
        bus.emit(MapUpdate.create({"a": 1}, {"a": 1}, {}))
        sub.cancel()
        bus.close()
    """

    def __init__(self):
        self._subscriptions: Dict[int, Subscription] = {}
        self._next_id = 0
        self._lock = threading.RLock()
        self._pending: Deque[MapUpdate] = deque()
        self._is_propagating = False
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def has_subscribers(self) -> bool:
        return bool(self._subscriptions)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        callback: Callable[[MapUpdate], Any],
        keys: Optional[Iterable[Hashable]] = None,
        on_close: Optional[Callable[[], Any]] = None,
    ) -> Subscription:
        """
        Register a callback.

        Args:
            callback: Called with each matching MapUpdate
            keys: Optional keys to watch. None = watch all keys.
            on_close: Optional hook called once when the bus closes

        Returns:
            Subscription handle

        Raises:
            ClosedStream: If the bus is closed
        """
        with self._lock:
            if self._closed:
                raise ClosedStream("Cannot subscribe to MapStream because it is closed")

            subscription_id = self._next_id
            self._next_id += 1
            subscription = Subscription(
                subscription_id, callback, self, keys=keys, on_close=on_close
            )
            self._subscriptions[subscription_id] = subscription
            return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """
        Remove a subscription.

        Returns:
            True if the subscription was removed, False if it was not registered
        """
        with self._lock:
            if self._subscriptions.get(subscription.id) is not subscription:
                return False
            subscription.cancelled = True
            del self._subscriptions[subscription.id]
            return True

    def emit(self, event: MapUpdate) -> None:
        """
        Deliver ``event`` to all interested subscribers.

        Raises:
            ClosedStream: If the bus is closed
        """
        if self._closed:
            raise ClosedStream("Cannot update MapStream because it is closed")

        # Nobody to tell
        if not self._subscriptions:
            return

        self._pending.append(event)
        self._process_pending()

    def close(self) -> None:
        """
        Deliver queued events, then stop accepting events and subscribers.

        Closing is permanent; calling it again does nothing.
        """
        if self._closed:
            return
        self._closed = True
        # A close from inside a callback is finished by the running loop
        self._process_pending()

    def _process_pending(self) -> None:
        if self._is_propagating:
            return

        self._is_propagating = True
        try:
            while self._pending:
                event = self._pending.popleft()
                with self._lock:
                    subscriptions = tuple(self._subscriptions.values())
                for subscription in subscriptions:
                    subscription.notify(event)
        finally:
            self._is_propagating = False
            # Undelivered events are dropped if a callback escaped the loop
            self._pending.clear()

        if self._closed:
            self._finish()

    def _finish(self) -> None:
        with self._lock:
            subscriptions = tuple(self._subscriptions.values())
            self._subscriptions.clear()
        for subscription in subscriptions:
            subscription._bus_closed()
        if subscriptions:
            logging.debug(
                f"Closed notification bus with {len(subscriptions)} subscribers"
            )

    def stream(self, keys: Optional[Iterable[Hashable]] = None) -> "SharedStream":
        return SharedStream(self, keys)


_END = object()


class SharedStream:
    """
    Multi-consumer asynchronous view of a bus.

    Every ``async for`` over a SharedStream is an independent consumer that
    receives the events emitted after it started iterating, and stops when
    the bus is closed.

    Usage:
        async for update in stream:
            print(update.changed)
    """

    def __init__(
        self, bus: NotificationBus, keys: Optional[Iterable[Hashable]] = None
    ):
        self._bus = bus
        self._keys = key_set(keys)

    def __aiter__(self) -> "_StreamConsumer":
        return _StreamConsumer(self._bus, self._keys)


class _StreamConsumer:
    """One queue-backed consumer of a SharedStream."""

    def __init__(self, bus: NotificationBus, keys: Optional[frozenset]):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._subscription: Optional[Subscription] = None

        if bus.is_closed:
            self._queue.put_nowait(_END)
            return

        # The bus must not keep an abandoned consumer's queue alive
        queue_ref = weakref.ref(self._queue)

        def deliver(event: MapUpdate) -> None:
            queue = queue_ref()
            if queue is not None:
                queue.put_nowait(event)

        def end() -> None:
            queue = queue_ref()
            if queue is not None:
                queue.put_nowait(_END)

        self._subscription = bus.subscribe(deliver, keys, on_close=end)
        weakref.finalize(self, self._subscription.cancel)

    def __aiter__(self) -> "_StreamConsumer":
        return self

    async def __anext__(self) -> MapUpdate:
        item = await self._queue.get()
        if item is _END:
            raise StopAsyncIteration
        return item

    async def aclose(self) -> None:
        """Stop receiving new events; already queued ones are still yielded."""
        if self._subscription is not None:
            self._subscription.cancel()
        self._queue.put_nowait(_END)
