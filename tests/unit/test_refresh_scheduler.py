"""
Unit tests for calproxy.domain.refresh_scheduler

Covers:
- a successful cycle publishing to the cache and updating health
- an index failure leaving the cache untouched
- the loop refreshing immediately, repeating, and stopping on the event
- the loop surviving an unexpected exception
- overlapping cycles being refused
"""

import asyncio

import pytest

from calproxy.calendar.aggregator import FeedAggregator
from calproxy.calendar.index_resolver import IndexResolver
from calproxy.core.health_tracker import HealthTracker
from calproxy.domain.aggregate_cache import AggregateCache
from calproxy.domain.refresh_scheduler import RefreshScheduler, RefreshState
from tests.fixtures.upstream import FakeFetcher, make_ics, make_index_html

pytestmark = [pytest.mark.unit, pytest.mark.fast]

BASE = "https://cal.example.com/feeds/"


def _routes() -> dict:
    return {
        "/feeds/": make_index_html([[("nameColumn", "/a.ics")], [("nameColumn", "/b.ics")]]),
        "/a.ics": make_ics(events=2, prefix="a"),
        "/b.ics": make_ics(events=1, timezones=1, prefix="b"),
    }


def _scheduler(fetcher: FakeFetcher, cache: AggregateCache, interval: float = 3600) -> RefreshScheduler:
    return RefreshScheduler(
        base_url=BASE,
        resolver=IndexResolver(fetcher),
        aggregator=FeedAggregator(fetcher),
        cache=cache,
        interval_seconds=interval,
        health_tracker=HealthTracker(int(interval) or 1),
    )


async def test_refresh_once_publishes_aggregate() -> None:
    cache = AggregateCache()
    scheduler = _scheduler(FakeFetcher(_routes()), cache)

    assert await scheduler.refresh_once() is True

    body, populated = await cache.current()
    assert populated
    assert b"a-0@calproxy.test" in body
    assert b"b-0@calproxy.test" in body
    assert scheduler.state is RefreshState.IDLE
    assert scheduler.health_tracker.consecutive_failures == 0
    assert scheduler.health_tracker.last_success_age() == 0


async def test_refresh_once_when_index_unavailable_then_cache_unchanged() -> None:
    routes = _routes()
    fetcher = FakeFetcher(routes)
    cache = AggregateCache()
    scheduler = _scheduler(fetcher, cache)
    await scheduler.refresh_once()
    before, _ = await cache.current()

    del fetcher.routes["/feeds/"]
    assert await scheduler.refresh_once() is False

    after, populated = await cache.current()
    assert populated
    assert after == before
    assert scheduler.health_tracker.consecutive_failures == 1


async def test_refresh_once_when_index_unparsable_then_never_populated() -> None:
    cache = AggregateCache()
    scheduler = _scheduler(FakeFetcher({"/feeds/": b"no markup here"}), cache)

    assert await scheduler.refresh_once() is False

    assert await cache.current() == (b"", False)


async def test_refresh_once_when_index_lists_nothing_then_publishes_empty() -> None:
    cache = AggregateCache()
    scheduler = _scheduler(FakeFetcher({"/feeds/": make_index_html([])}), cache)

    assert await scheduler.refresh_once() is True

    body, populated = await cache.current()
    assert populated
    assert b"BEGIN:VEVENT" not in body


async def test_refresh_once_when_already_refreshing_then_raises() -> None:
    scheduler = _scheduler(FakeFetcher(_routes()), AggregateCache())
    scheduler.state = RefreshState.REFRESHING

    with pytest.raises(RuntimeError):
        await scheduler.refresh_once()


async def test_refresh_loop_runs_immediately_and_stops_on_event() -> None:
    fetcher = FakeFetcher(_routes())
    cache = AggregateCache()
    scheduler = _scheduler(fetcher, cache, interval=3600)
    stop_event = asyncio.Event()

    loop_task = asyncio.create_task(scheduler.start_refresh_loop(stop_event))
    for _ in range(100):
        if (await cache.current())[1]:
            break
        await asyncio.sleep(0.01)

    stop_event.set()
    await asyncio.wait_for(loop_task, timeout=1)

    assert (await cache.current())[1] is True
    assert fetcher.calls.count(BASE) == 1


async def test_refresh_loop_repeats_each_interval() -> None:
    fetcher = FakeFetcher(_routes())
    scheduler = _scheduler(fetcher, AggregateCache(), interval=0.05)
    stop_event = asyncio.Event()

    loop_task = asyncio.create_task(scheduler.start_refresh_loop(stop_event))
    await asyncio.sleep(0.3)
    stop_event.set()
    await asyncio.wait_for(loop_task, timeout=1)

    assert fetcher.calls.count(BASE) >= 3


async def test_refresh_loop_survives_unexpected_exception() -> None:
    cache = AggregateCache()
    scheduler = _scheduler(FakeFetcher(_routes()), cache, interval=0.05)
    real_aggregate = scheduler.aggregator.aggregate
    calls = 0

    async def flaky_aggregate(base_url, sources):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("unexpected")
        return await real_aggregate(base_url, sources)

    scheduler.aggregator.aggregate = flaky_aggregate
    stop_event = asyncio.Event()

    loop_task = asyncio.create_task(scheduler.start_refresh_loop(stop_event))
    for _ in range(100):
        if (await cache.current())[1]:
            break
        await asyncio.sleep(0.01)
    stop_event.set()
    await asyncio.wait_for(loop_task, timeout=1)

    assert calls >= 2
    assert (await cache.current())[1] is True
    assert scheduler.state is RefreshState.IDLE
