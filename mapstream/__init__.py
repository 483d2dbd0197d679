"""
MapStream - Observable Mappings
===============================

A dict-like container that pushes an update, with the changed entries and
before/after snapshots, to its subscribers whenever its content changes.
"""

from .baseline import Baseline
from .bus import NotificationBus, SharedStream, Subscription
from .diff import compute_changes, values_equal
from .errors import (
    ClosedStream,
    MapStreamError,
    MissingAbsentHandler,
    TypeConflict,
    UnsupportedOperation,
)
from .events import MapUpdate
from .map_stream import BatchContext, MapStream, create_map_stream
from .type_guard import TypeRegistry

__all__ = [
    # Container
    "MapStream",
    "MapUpdate",
    "BatchContext",
    "create_map_stream",
    # Building blocks
    "Baseline",
    "NotificationBus",
    "SharedStream",
    "Subscription",
    "TypeRegistry",
    "compute_changes",
    "values_equal",
    # Exceptions
    "MapStreamError",
    "TypeConflict",
    "ClosedStream",
    "MissingAbsentHandler",
    "UnsupportedOperation",
]
