"""
Type Guard
==========

Per-key type pinning for type safe MapStreams. The first non-None value
written under a key fixes that key's type; later writes must use exactly the
same concrete type (``bool`` is not ``int``). Pins outlive the key itself.
"""

import logging
from typing import Any, Dict, Hashable, Mapping, Optional

from .errors import TypeConflict


class TypeRegistry:
    """
    Registry of pinned value types, owned by a single MapStream.

    Usage:
        registry = TypeRegistry()
        registry.check({"x": 1})
        registry.pin({"x": 1})
        registry.check({"x": "a"})  # raises TypeConflict
    """

    def __init__(self):
        self._types: Dict[Hashable, type] = {}

    def check(self, proposal: Mapping[Hashable, Any]) -> None:
        """
        Validate every value of ``proposal`` without recording anything.

        Raises:
            TypeConflict: If a value's type differs from its key's pinned type
        """
        for key, value in proposal.items():
            if value is None:
                continue
            expected = self._types.get(key)
            actual = type(value)
            if expected is not None and actual is not expected:
                error = TypeConflict(key, expected, actual)
                logging.warning(f"Rejected write on type safe MapStream: {error}")
                raise error

    def pin(self, proposal: Mapping[Hashable, Any]) -> None:
        """Record the type of every first-seen, non-None value."""
        for key, value in proposal.items():
            if value is not None and key not in self._types:
                self._types[key] = type(value)

    def expected_type(self, key: Hashable) -> Optional[type]:
        return self._types.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._types

    def __len__(self) -> int:
        return len(self._types)

    def __repr__(self) -> str:
        pinned = ", ".join(f"{k!r}: {t.__name__}" for k, t in self._types.items())
        return f"TypeRegistry({{{pinned}}})"
