"""
External Sources
================

Pipes asynchronous value sources into MapStream keys. Each connection is an
``asyncio`` task that writes every value it receives through the map's
regular ``set`` path, so connected keys emit ordinary update events.
"""

import asyncio
import logging
from functools import partial
from typing import Any, AsyncIterable, Callable, Dict, Hashable, Tuple

from .errors import ClosedStream


class SourceConnections:
    """
    Connected sources of one MapStream, at most one per key.

    Usage:
        connections = SourceConnections(stream.set)
        connections.connect("price", ticker())  # inside a running event loop
        connections.disconnect("price")
    """

    def __init__(self, write: Callable[[Hashable, Any], Any]):
        self._write = write
        self._tasks: Dict[Hashable, asyncio.Task] = {}

    @property
    def connected_keys(self) -> Tuple[Hashable, ...]:
        return tuple(self._tasks)

    def connect(self, key: Hashable, source: AsyncIterable[Any]) -> asyncio.Task:
        """
        Start feeding ``key`` from ``source``, replacing any earlier connection.

        Must be called while an event loop is running.

        Returns:
            The task consuming the source
        """
        loop = asyncio.get_running_loop()
        self.disconnect(key)

        task = loop.create_task(self._pump(key, source))
        self._tasks[key] = task
        task.add_done_callback(partial(self._forget, key))
        logging.debug(f"Connected source to {key!r}")
        return task

    def disconnect(self, key: Hashable) -> bool:
        """
        Cancel the connection feeding ``key``.

        Values already written stay in place.

        Returns:
            True if a connection was cancelled
        """
        task = self._tasks.pop(key, None)
        if task is None:
            return False
        task.cancel()
        logging.debug(f"Disconnected source from {key!r}")
        return True

    def disconnect_all(self) -> None:
        for key in list(self._tasks):
            self.disconnect(key)

    async def _pump(self, key: Hashable, source: AsyncIterable[Any]) -> None:
        try:
            async for value in source:
                self._write(key, value)
        except ClosedStream:
            logging.debug(f"Stopped source for {key!r}: MapStream is closed")
        except Exception as e:
            logging.error(f"Source connected to {key!r} failed: {e}", exc_info=True)
        else:
            logging.debug(f"Source connected to {key!r} finished")

    def _forget(self, key: Hashable, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, key: object) -> bool:
        return key in self._tasks
