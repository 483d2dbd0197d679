"""
Shared pytest fixtures and configuration for MapStream tests.
"""

import pytest

from mapstream import MapStream


class Recorder:
    """Subscriber callback that remembers every update it receives."""

    def __init__(self):
        self.updates = []

    def __call__(self, update):
        self.updates.append(update)

    @property
    def last(self):
        return self.updates[-1]

    def __len__(self):
        return len(self.updates)


@pytest.fixture
def recorder():
    """Provide a fresh recording callback."""
    return Recorder()


@pytest.fixture
def make_recorder():
    """Factory for tests that need several independent recorders."""
    return Recorder


@pytest.fixture
def empty_map():
    return MapStream()


@pytest.fixture
def counter_map():
    """MapStream created from {"counter1": 0}."""
    return MapStream.from_map({"counter1": 0})


@pytest.fixture
def typed_map():
    return MapStream.type_safe()
