"""
MapStream - Observable Mapping
==============================

A mapping that notifies subscribers whenever entries are added, changed or
removed. Every logical change produces one ``MapUpdate`` carrying the
changed entries together with snapshots of the whole map after and before
the change.

Basic Usage
-----------

```python
from mapstream import MapStream

counters = MapStream.from_map({"counter1": 0})
counters.subscribe(lambda update: print(update.changed))

counters["counter2"] = 10          # {'counter2': 10}
counters.update_all(lambda v: v + 5)  # {'counter1': 5, 'counter2': 15}
counters["counter1"] = 5           # nothing, the value did not change
```

``None`` means "absent": writing ``None`` removes a key, and removed keys
show up in ``changed`` mapped to ``None``.

Key Filters
-----------

```python
counters.subscribe(on_counter1, keys=["counter1"])
counters.resend_all()  # delivered to every subscriber, filtered or not
```

Type Safe Maps
--------------

```python
settings = MapStream.type_safe({"volume": 3})
settings["volume"] = "loud"  # raises TypeConflict, volume stays 3
```

Reverting
---------

The map given at construction is kept as a baseline. ``revert(key)`` and
``revert_all()`` restore it through the normal write path, so they emit
regular updates.
"""

from collections.abc import Mapping
from typing import (
    Any,
    AsyncIterable,
    Callable,
    Dict,
    Hashable,
    Iterable,
    Iterator,
    Optional,
    Tuple,
)

from .baseline import Baseline
from .bus import NotificationBus, SharedStream, Subscription
from .diff import apply_changes, compute_changes, diff_snapshots, values_equal
from .errors import ClosedStream, MissingAbsentHandler, UnsupportedOperation
from .events import MapUpdate
from .sources import SourceConnections
from .type_guard import TypeRegistry

_MISSING = object()


class MapStream(Mapping):
    """
    Observable mapping.

    Reads behave like a ``dict``. Writes go through ``set``/``set_all`` and
    friends, which compute the effective changes, apply them in one step and
    emit a single ``MapUpdate`` when anything changed.
    """

    def __init__(
        self,
        initial: Optional[Mapping[Hashable, Any]] = None,
        type_safe: bool = False,
    ):
        """
        Create a MapStream.

        Args:
            initial: Optional initial entries, also kept as the revert baseline
            type_safe: Whether each key must keep the type of its first value
        """
        self._baseline = Baseline(initial)
        self._values: Dict[Hashable, Any] = dict(self._baseline.values)
        self._types: Optional[TypeRegistry] = TypeRegistry() if type_safe else None
        if self._types is not None:
            self._types.pin(self._values)

        self._bus = NotificationBus()
        self._sources = SourceConnections(self.set)

        self._batch_depth = 0
        self._batch_before: Optional[Dict[Hashable, Any]] = None

    @classmethod
    def from_map(cls, initial: Mapping[Hashable, Any]) -> "MapStream":
        """Create a MapStream with the same entries as ``initial``."""
        return cls(initial)

    @classmethod
    def type_safe(cls, initial: Optional[Mapping[Hashable, Any]] = None) -> "MapStream":
        """Create a type safe MapStream, optionally with initial entries."""
        return cls(initial, type_safe=True)

    # ========================================================================
    # READ SURFACE
    # ========================================================================

    def __getitem__(self, key: Hashable) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    @property
    def is_empty(self) -> bool:
        return not self._values

    @property
    def is_not_empty(self) -> bool:
        return bool(self._values)

    @property
    def is_type_safe(self) -> bool:
        return self._types is not None

    @property
    def baseline(self) -> Mapping[Hashable, Any]:
        """Read-only view of the entries the map was created with."""
        return self._baseline.values

    def contains_value(self, value: Any) -> bool:
        return any(values_equal(v, value) for v in self._values.values())

    def pinned_type(self, key: Hashable) -> Optional[type]:
        """Type pinned for ``key`` on a type safe map, None otherwise."""
        if self._types is None:
            return None
        return self._types.expected_type(key)

    def to_dict(self) -> Dict[Hashable, Any]:
        """Return a plain ``dict`` copy of the current entries."""
        return dict(self._values)

    def __str__(self) -> str:
        return str(self._values)

    def __repr__(self) -> str:
        return f"MapStream({self._values!r})"

    # ========================================================================
    # WRITE SURFACE
    # ========================================================================

    def __setitem__(self, key: Hashable, value: Any) -> None:
        self.set(key, value)

    def __delitem__(self, key: Hashable) -> None:
        self._check_open()
        if key not in self._values:
            raise KeyError(key)
        self._apply({key: None})

    def set(self, key: Hashable, value: Any) -> None:
        """Set ``key`` to ``value``; None removes the key."""
        self._apply({key: value})

    def set_all(self, other: Mapping[Hashable, Any]) -> None:
        """Write all entries of ``other`` as one update."""
        self._apply(dict(other))

    def add_entries(self, entries: Iterable[Tuple[Hashable, Any]]) -> None:
        """Write ``(key, value)`` pairs as one update."""
        self._apply(dict(entries))

    def remove(self, key: Hashable) -> Any:
        """
        Remove ``key`` if present.

        Returns:
            The removed value, or None if the key was absent
        """
        self._check_open()
        old_value = self._values.get(key)
        self._apply({key: None})
        return old_value

    def pop(self, key: Hashable, default: Any = _MISSING) -> Any:
        self._check_open()
        if key in self._values:
            return self.remove(key)
        if default is _MISSING:
            raise KeyError(key)
        return default

    def remove_where(self, predicate: Callable[[Hashable, Any], bool]) -> None:
        """Remove all entries for which ``predicate(key, value)`` is true."""
        self._check_open()
        self._apply(
            {key: None for key, value in self._values.items() if predicate(key, value)}
        )

    def update(
        self,
        key: Hashable,
        fn: Callable[[Any], Any],
        if_absent: Optional[Callable[[], Any]] = None,
    ) -> Any:
        """
        Replace the value of ``key`` with ``fn(current)``.

        If ``key`` is absent, ``if_absent()`` provides the value instead.

        Returns:
            The new value

        Raises:
            MissingAbsentHandler: If ``key`` is absent and ``if_absent`` is None
        """
        self._check_open()
        if key in self._values:
            value = fn(self._values[key])
        elif if_absent is None:
            raise MissingAbsentHandler(key)
        else:
            value = if_absent()
        self.set(key, value)
        return value

    def put_if_absent(self, key: Hashable, if_absent: Callable[[], Any]) -> Any:
        """Return the value of ``key``, storing ``if_absent()`` first if needed."""
        self._check_open()
        if key in self._values:
            return self._values[key]
        value = if_absent()
        self.set(key, value)
        return value

    def update_all(self, fn: Callable[[Any], Any]) -> None:
        """Replace every value with ``fn(value)`` as one update."""
        self._check_open()
        self._apply({key: fn(value) for key, value in self._values.items()})

    def clear(self) -> None:
        """Remove every entry; the update maps every key to None."""
        self._apply(dict.fromkeys(self._values))

    def cast(self, *args, **kwargs):
        raise UnsupportedOperation("Cannot cast MapStream")

    # ========================================================================
    # REVERT
    # ========================================================================

    def revert(self, key: Hashable) -> None:
        """Restore ``key`` to its baseline value, removing it if it had none."""
        self._apply(self._baseline.revert_changes(key))

    def revert_all(self) -> None:
        """Restore the whole map to the baseline as one update."""
        self._apply(self._baseline.revert_all_changes(self._values))

    # ========================================================================
    # SUBSCRIPTION
    # ========================================================================

    def subscribe(
        self,
        callback: Callable[[MapUpdate], Any],
        keys: Optional[Iterable[Hashable]] = None,
    ) -> Subscription:
        """
        Subscribe to updates.

        Args:
            callback: Called with every matching MapUpdate
            keys: Optional keys to watch. None = watch all keys. Resend-all
                updates reach every subscriber regardless of keys.

        Returns:
            Subscription that can be paused, resumed or cancelled

        Raises:
            ClosedStream: If the map is closed
        """
        return self._bus.subscribe(callback, keys)

    def unsubscribe(self, subscription: Subscription) -> bool:
        return self._bus.unsubscribe(subscription)

    @property
    def has_subscribers(self) -> bool:
        return self._bus.has_subscribers

    @property
    def is_closed(self) -> bool:
        return self._bus.is_closed

    def close(self) -> None:
        """
        Disconnect all sources and close the update stream.

        A closed MapStream can still be read but no longer written to or
        subscribed to. Writes made inside an open batch are announced first.
        """
        self._sources.disconnect_all()
        if not self._bus.is_closed:
            self._flush_batch()
        self._bus.close()

    def resend(self, key: Hashable) -> None:
        """Send the current entry of ``key`` as an update, changed or not."""
        self._check_open()
        self._flush_batch()
        if self._bus.has_subscribers:
            changed = {key: self._values.get(key)}
            self._bus.emit(MapUpdate.create(changed, self._values, self._values))

    def resend_all(self) -> None:
        """Send an update with no changed entries to every subscriber."""
        self._check_open()
        self._flush_batch()
        if self._bus.has_subscribers:
            self._bus.emit(MapUpdate.create({}, self._values, self._values))

    def as_shared_stream(
        self, keys: Optional[Iterable[Hashable]] = None
    ) -> SharedStream:
        """Async iterable of updates that any number of consumers can share."""
        return self._bus.stream(keys)

    def batch(self) -> "BatchContext":
        """
        Group writes into a single update.

        Usage:
            with counters.batch():
                counters["a"] = 1
                counters["b"] = 2
                # one update sent here
        """
        return BatchContext(self)

    # ========================================================================
    # EXTERNAL SOURCES
    # ========================================================================

    def connect_source(self, key: Hashable, source: AsyncIterable[Any]):
        """
        Feed ``key`` from an async iterable; each value is written with ``set``.

        Must be called from a running event loop. Connecting a key again
        replaces the previous source.

        Returns:
            The asyncio task consuming ``source``
        """
        self._check_open()
        return self._sources.connect(key, source)

    def disconnect_source(self, key: Hashable) -> bool:
        return self._sources.disconnect(key)

    def disconnect_all_sources(self) -> None:
        self._sources.disconnect_all()

    @property
    def connected_keys(self) -> Tuple[Hashable, ...]:
        return self._sources.connected_keys

    # ========================================================================
    # INTERNAL IMPLEMENTATION
    # ========================================================================

    def _check_open(self) -> None:
        if self._bus.is_closed:
            raise ClosedStream("Cannot update MapStream because it is closed")

    def _apply(self, proposal: Mapping[Hashable, Any]) -> Dict[Hashable, Any]:
        """Validate, diff, apply and announce a proposal."""
        self._check_open()

        if self._types is not None:
            self._types.check(proposal)

        changes = compute_changes(proposal, self._values)
        if not changes:
            return changes

        if self._types is not None:
            self._types.pin(changes)

        if self._batch_depth > 0:
            apply_changes(self._values, changes)
            return changes

        # Snapshots are only worth taking when someone is listening
        before = dict(self._values) if self._bus.has_subscribers else None
        apply_changes(self._values, changes)
        if before is not None:
            self._send(changes, before)
        return changes

    def _flush_batch(self) -> None:
        """Announce writes made so far in an open batch and restart it."""
        if self._batch_depth == 0:
            return
        before = self._batch_before
        self._batch_before = dict(self._values)
        changes = diff_snapshots(before, self._values)
        if changes:
            self._send(changes, before)

    def _send(self, changes: Mapping[Hashable, Any], before: Mapping[Hashable, Any]):
        if self._bus.has_subscribers:
            self._bus.emit(MapUpdate.create(changes, self._values, before))


# ============================================================================
# BATCH CONTEXT
# ============================================================================


class BatchContext:
    def __init__(self, stream: MapStream):
        self._stream = stream

    def __enter__(self):
        if self._stream._batch_depth == 0:
            self._stream._batch_before = dict(self._stream._values)
        self._stream._batch_depth += 1
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._stream._batch_depth -= 1

        if self._stream._batch_depth == 0:
            before = self._stream._batch_before
            self._stream._batch_before = None
            changes = diff_snapshots(before, self._stream._values)
            if changes and not self._stream.is_closed:
                self._stream._send(changes, before)

        return False


def create_map_stream(
    initial: Optional[Mapping[Hashable, Any]] = None,
    type_safe: bool = False,
) -> MapStream:
    """
    Create a MapStream with specified settings.

    Args:
        initial: Optional initial entries, also used as the revert baseline
        type_safe: Whether to reject values whose type differs from the type
            first stored under the same key

    Returns:
        Configured MapStream instance
    """
    return MapStream(initial, type_safe=type_safe)
