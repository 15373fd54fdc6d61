"""
Unit tests for calproxy.domain.aggregate_cache

Covers:
- unpopulated state until the first publish
- an empty aggregate still counting as populated
- later publishes replacing earlier ones
- ReadWriteLock exclusion and reader preference
"""

import asyncio

import pytest

from calproxy.calendar.feed_codec import parse_feed
from calproxy.calendar.models import AggregateDocument
from calproxy.domain.aggregate_cache import AggregateCache, ReadWriteLock
from tests.fixtures.upstream import make_ics

pytestmark = [pytest.mark.unit, pytest.mark.fast]


def _document(events: int, prefix: str = "evt") -> AggregateDocument:
    document = AggregateDocument()
    for entry in parse_feed(make_ics(events=events, prefix=prefix)):
        document.add(entry)
    return document


async def test_current_when_never_published_then_unpopulated() -> None:
    cache = AggregateCache()

    assert await cache.current() == (b"", False)
    assert await cache.snapshot() is None


async def test_current_when_empty_aggregate_published_then_populated() -> None:
    cache = AggregateCache()

    await cache.publish(AggregateDocument())
    body, populated = await cache.current()

    assert populated is True
    assert body.startswith(b"BEGIN:VCALENDAR")


async def test_publish_returns_snapshot_matching_current() -> None:
    cache = AggregateCache()

    snapshot = await cache.publish(_document(2))
    body, _ = await cache.current()

    assert snapshot.entry_count == 2
    assert snapshot.body == body
    assert snapshot.published_at.tzinfo is not None


async def test_later_publish_replaces_earlier() -> None:
    cache = AggregateCache()

    await cache.publish(_document(1, prefix="first"))
    await cache.publish(_document(1, prefix="second"))
    body, _ = await cache.current()

    assert b"second-0@calproxy.test" in body
    assert b"first-0@calproxy.test" not in body


async def test_write_waits_for_active_reader() -> None:
    lock = ReadWriteLock()
    order: list[str] = []
    reader_in = asyncio.Event()
    release_reader = asyncio.Event()

    async def reader() -> None:
        async with lock.read():
            reader_in.set()
            await release_reader.wait()
            order.append("read-done")

    async def writer() -> None:
        await reader_in.wait()
        async with lock.write():
            order.append("write")

    tasks = [asyncio.create_task(reader()), asyncio.create_task(writer())]
    await reader_in.wait()
    await asyncio.sleep(0.01)
    assert order == []

    release_reader.set()
    await asyncio.gather(*tasks)

    assert order == ["read-done", "write"]


async def test_readers_share_the_lock() -> None:
    lock = ReadWriteLock()
    both_in = asyncio.Event()

    async def reader() -> None:
        async with lock.read():
            if lock.readers == 2:
                both_in.set()
            await asyncio.wait_for(both_in.wait(), timeout=1)

    await asyncio.gather(reader(), reader())

    assert lock.readers == 0


async def test_new_reader_not_blocked_by_waiting_writer() -> None:
    lock = ReadWriteLock()
    first_in = asyncio.Event()
    release_first = asyncio.Event()
    events: list[str] = []

    async def first_reader() -> None:
        async with lock.read():
            first_in.set()
            await release_first.wait()

    async def writer() -> None:
        async with lock.write():
            events.append("write")

    async def second_reader() -> None:
        async with lock.read():
            events.append("second-read")

    first = asyncio.create_task(first_reader())
    await first_in.wait()
    waiting_writer = asyncio.create_task(writer())
    await asyncio.sleep(0.01)

    await asyncio.wait_for(second_reader(), timeout=1)
    assert events == ["second-read"]

    release_first.set()
    await asyncio.gather(first, waiting_writer)
    assert events == ["second-read", "write"]


async def test_readers_see_whole_snapshots_during_publish() -> None:
    cache = AggregateCache()
    first = _document(3, prefix="first")
    second = _document(3, prefix="second")
    await cache.publish(first)
    valid = {first.to_ical(), second.to_ical()}

    async def read_many() -> None:
        for _ in range(50):
            body, populated = await cache.current()
            assert populated
            assert body in valid
            await asyncio.sleep(0)

    await asyncio.gather(read_many(), read_many(), cache.publish(second))
