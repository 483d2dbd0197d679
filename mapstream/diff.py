"""
Diff Engine
===========

Computes the minimal set of entries a proposed update actually changes.

A proposal is a mapping of key -> value where ``None`` stands for "absent":
proposing ``None`` for a stored key deletes it, proposing ``None`` for a key
that is not stored does nothing. Values are compared by equality, never by
identity, and NumPy arrays are compared element-wise.
"""

from typing import Any, Dict, Hashable, Mapping, MutableMapping

import numpy as np


def values_equal(a: Any, b: Any) -> bool:
    """Value equality that tolerates NumPy arrays and broken ``__eq__``."""
    if a is b:
        return True
    try:
        if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
            if type(a) != type(b):
                return False
            return bool(np.array_equal(a, b))
        return bool(a == b)
    except (ValueError, TypeError):
        return False


def compute_changes(
    proposal: Mapping[Hashable, Any], current: Mapping[Hashable, Any]
) -> Dict[Hashable, Any]:
    """
    Return the entries of ``proposal`` whose value differs from ``current``.

    Args:
        proposal: Proposed key -> value updates (``None`` means remove)
        current: The state the proposal would be applied to

    Returns:
        A new dict containing only the effective changes, in proposal order
    """
    changes = {}
    for key, value in proposal.items():
        if not values_equal(value, current.get(key)):
            changes[key] = value
    return changes


def apply_changes(
    state: MutableMapping[Hashable, Any], changes: Mapping[Hashable, Any]
) -> None:
    """Apply a computed diff in place; ``None`` values remove their key."""
    for key, value in changes.items():
        if value is None:
            state.pop(key, None)
        else:
            state[key] = value


def diff_snapshots(
    before: Mapping[Hashable, Any], after: Mapping[Hashable, Any]
) -> Dict[Hashable, Any]:
    """Changes that turn ``before`` into ``after`` (removed keys map to None)."""
    changes = compute_changes(after, before)
    for key in before:
        if key not in after:
            changes[key] = None
    return changes
