"""
Update Events
=============

``MapUpdate`` is the payload delivered to subscribers: the changed entries
plus full snapshots of the map after and before the change.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Hashable, Mapping


def freeze(mapping: Mapping[Hashable, Any]) -> Mapping[Hashable, Any]:
    """Read-only copy of ``mapping``, detached from the original."""
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True, slots=True)
class MapUpdate:
    """
    Immutable update event.

    Attributes:
        changed: Entries that changed; a None value means the key was removed.
            Empty for a resend-all event.
        after: The whole map once the change was applied
        before: The whole map before the change
    """

    changed: Mapping[Hashable, Any]
    after: Mapping[Hashable, Any]
    before: Mapping[Hashable, Any]

    @classmethod
    def create(
        cls,
        changed: Mapping[Hashable, Any],
        after: Mapping[Hashable, Any],
        before: Mapping[Hashable, Any],
    ) -> "MapUpdate":
        """Build an event from live mappings, copying each of them."""
        return cls(freeze(changed), freeze(after), freeze(before))

    @property
    def is_resend_all(self) -> bool:
        return not self.changed

    @property
    def added(self) -> Mapping[Hashable, Any]:
        """Changed entries that did not exist before."""
        return {
            k: v
            for k, v in self.changed.items()
            if v is not None and k not in self.before
        }

    @property
    def removed(self) -> Mapping[Hashable, Any]:
        """Removed keys mapped to the value they held before."""
        return {
            k: self.before[k]
            for k, v in self.changed.items()
            if v is None and k in self.before
        }

    def touches(self, keys) -> bool:
        """Whether any of ``keys`` is among the changed entries."""
        return any(key in self.changed for key in keys)

    def __repr__(self) -> str:
        return (
            f"MapUpdate(changed={dict(self.changed)!r}, "
            f"after={dict(self.after)!r}, before={dict(self.before)!r})"
        )
