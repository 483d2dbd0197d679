"""Tests for piping asynchronous sources into MapStream keys."""

import asyncio
import logging

import pytest

from mapstream import ClosedStream, MapStream


async def settle(rounds=5):
    """Let pending tasks run for a few loop iterations."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def count_to(n):
    for i in range(n):
        yield i
        await asyncio.sleep(0)


async def from_queue(queue):
    while True:
        yield await queue.get()


def test_connected_source_writes_each_value(recorder):
    async def main():
        stream = MapStream()
        stream.subscribe(recorder)

        task = stream.connect_source("tick", count_to(3))
        await task
        await settle()
        return stream

    stream = asyncio.run(main())

    assert stream["tick"] == 2
    assert [u.changed["tick"] for u in recorder.updates] == [0, 1, 2]
    assert stream.connected_keys == ()


def test_disconnect_stops_further_writes():
    async def main():
        stream = MapStream()
        queue = asyncio.Queue()
        stream.connect_source("price", from_queue(queue))

        await queue.put(10)
        await settle()
        assert stream["price"] == 10
        assert stream.connected_keys == ("price",)

        assert stream.disconnect_source("price") is True
        assert stream.disconnect_source("price") is False

        await queue.put(11)
        await settle()
        return stream

    stream = asyncio.run(main())

    assert stream["price"] == 10


def test_connecting_again_replaces_previous_source():
    async def main():
        stream = MapStream()
        old_queue = asyncio.Queue()
        new_queue = asyncio.Queue()

        stream.connect_source("k", from_queue(old_queue))
        stream.connect_source("k", from_queue(new_queue))

        await old_queue.put("old")
        await new_queue.put("new")
        await settle()
        return stream

    stream = asyncio.run(main())

    assert stream["k"] == "new"


def test_disconnect_all_sources():
    async def main():
        stream = MapStream()
        stream.connect_source("a", from_queue(asyncio.Queue()))
        stream.connect_source("b", from_queue(asyncio.Queue()))
        await settle()

        stream.disconnect_all_sources()
        return stream.connected_keys

    assert asyncio.run(main()) == ()


def test_failing_source_is_logged_and_dropped(caplog):
    async def broken():
        yield 1
        raise ValueError("source down")

    async def main():
        stream = MapStream()
        task = stream.connect_source("k", broken())
        await task
        await settle()
        return stream

    with caplog.at_level(logging.ERROR):
        stream = asyncio.run(main())

    assert stream["k"] == 1
    assert stream.connected_keys == ()
    assert "source down" in caplog.text


def test_source_type_conflict_stops_connection(caplog):
    async def drifting():
        yield 1
        yield "one"
        yield 2

    async def main():
        stream = MapStream.type_safe()
        await stream.connect_source("k", drifting())
        return stream

    with caplog.at_level(logging.WARNING):
        stream = asyncio.run(main())

    assert stream["k"] == 1
    assert "expected to be int" in caplog.text


def test_close_disconnects_sources():
    async def main():
        stream = MapStream()
        queue = asyncio.Queue()
        stream.connect_source("k", from_queue(queue))
        await settle()

        stream.close()
        await queue.put(1)
        await settle()
        return stream

    stream = asyncio.run(main())

    assert stream.connected_keys == ()
    assert "k" not in stream


def test_connect_after_close_fails():
    stream = MapStream()
    stream.close()

    with pytest.raises(ClosedStream):
        stream.connect_source("k", count_to(1))


def test_connect_requires_running_loop():
    stream = MapStream()

    with pytest.raises(RuntimeError):
        stream.connect_source("k", count_to(1))
