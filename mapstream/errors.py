"""
MapStream Errors
================

Exceptions raised by MapStream containers. Each one also derives from the
builtin exception a plain ``dict`` user would expect in the same situation,
so ``except KeyError`` and friends keep working.
"""

from typing import Any


class MapStreamError(Exception):
    """Base class for all MapStream errors."""

    pass


class TypeConflict(MapStreamError, TypeError):
    """
    Raised by a type safe MapStream when a key receives a value whose type
    differs from the type first stored under that key.

    Attributes:
        key: The key that was written
        expected: The type pinned for the key
        actual: The type of the rejected value
    """

    def __init__(self, key: Any, expected: type, actual: type):
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"key {key!r} was expected to be {expected.__name__} "
            f"instead of {actual.__name__}"
        )


class ClosedStream(MapStreamError, RuntimeError):
    """Raised when mutating or subscribing to a closed MapStream."""

    pass


class MissingAbsentHandler(MapStreamError, KeyError):
    """Raised by ``update`` for an absent key when no ``if_absent`` is given."""

    def __init__(self, key: Any):
        self.key = key
        super().__init__(f"if_absent is required when key {key!r} does not exist")

    def __str__(self) -> str:
        return self.args[0]


class UnsupportedOperation(MapStreamError, NotImplementedError):
    """Raised for operations that make no sense on a MapStream."""

    pass
