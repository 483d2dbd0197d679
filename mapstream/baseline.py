"""
Baseline Store
==============

The write-once snapshot a MapStream is created from, used to revert keys.
"""

from types import MappingProxyType
from typing import Any, Dict, Hashable, Mapping, Optional


class Baseline:
    """Immutable copy of the initial state of a MapStream."""

    def __init__(self, initial: Optional[Mapping[Hashable, Any]] = None):
        values = {} if initial is None else dict(initial)
        # None means absent, so it is never part of the baseline
        self._values = MappingProxyType(
            {k: v for k, v in values.items() if v is not None}
        )

    @property
    def values(self) -> Mapping[Hashable, Any]:
        """Read-only view of the baseline entries."""
        return self._values

    def revert_changes(self, key: Hashable) -> Dict[Hashable, Any]:
        """Proposal that restores ``key`` (None removes it)."""
        return {key: self._values.get(key)}

    def revert_all_changes(
        self, current: Mapping[Hashable, Any]
    ) -> Dict[Hashable, Any]:
        """Proposal that restores every key found in the baseline or ``current``."""
        proposal = {key: self._values.get(key) for key in current}
        for key, value in self._values.items():
            proposal.setdefault(key, value)
        return proposal

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Baseline({dict(self._values)!r})"
