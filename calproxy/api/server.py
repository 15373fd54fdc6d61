"""calproxy.api.server: aiohttp server plus the background refresher.

Process layout:
- one AggregateCache, created before anything reads or writes it
- one httpx.AsyncClient shared by the index resolver and every source fetch
- one RefreshScheduler task, the cache's only writer
- the aiohttp application, the cache's readers
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Optional

import httpx
from aiohttp import web

from calproxy.calendar.aggregator import FeedAggregator
from calproxy.calendar.fetcher import SourceFetcher
from calproxy.calendar.index_resolver import IndexResolver
from calproxy.core.config_manager import ProxySettings
from calproxy.core.health_tracker import HealthTracker
from calproxy.core.http_client import create_http_client
from calproxy.core.metrics import ProxyMetrics
from calproxy.domain.aggregate_cache import AggregateCache
from calproxy.domain.refresh_scheduler import RefreshScheduler

from .middleware import request_id_middleware
from .routes import register_routes

logger = logging.getLogger(__name__)


def build_scheduler(
    settings: ProxySettings,
    client: httpx.AsyncClient,
    cache: AggregateCache,
    metrics: ProxyMetrics,
    health_tracker: HealthTracker,
) -> RefreshScheduler:
    """Wire fetcher, resolver and aggregator into a scheduler."""
    fetcher = SourceFetcher(client, metrics, request_timeout=settings.request_timeout)
    return RefreshScheduler(
        base_url=settings.target,
        resolver=IndexResolver(fetcher),
        aggregator=FeedAggregator(fetcher),
        cache=cache,
        interval_seconds=settings.refresh_interval_seconds,
        health_tracker=health_tracker,
    )


def make_app(
    cache: AggregateCache,
    metrics: ProxyMetrics,
    health_tracker: HealthTracker,
) -> web.Application:
    """Create the aiohttp application reading from ``cache``."""
    app = web.Application(middlewares=[request_id_middleware])
    register_routes(app, cache, metrics, health_tracker)
    return app


def _stop_on_signals(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _request_stop(signame: str) -> None:
        logger.info("%s received, stopping", signame)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        # add_signal_handler is unavailable on Windows event loops
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _request_stop, sig.name)


async def _cancel_and_wait(task: asyncio.Task[None]) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.exception("Refresher ended with an error during shutdown")


async def _serve(
    settings: ProxySettings,
    external_stop_event: Optional[asyncio.Event] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    """Run the server and refresher until stopped.

    Args:
        settings: Validated settings
        external_stop_event: If given, the caller owns shutdown and no
            signal handlers are installed
        transport: Optional httpx transport override for upstream requests
    """
    cache = AggregateCache()
    metrics = ProxyMetrics()
    health_tracker = HealthTracker(settings.refresh_interval_seconds)
    stop_event = external_stop_event if external_stop_event is not None else asyncio.Event()

    logger.debug("Starting with settings: %s", settings.redacted())

    async with contextlib.AsyncExitStack() as resources:
        client = create_http_client(
            settings.user,
            settings.password,
            request_timeout=settings.request_timeout,
            transport=transport,
        )
        resources.push_async_callback(client.aclose)

        runner = web.AppRunner(make_app(cache, metrics, health_tracker))
        await runner.setup()
        resources.push_async_callback(runner.cleanup)

        site = web.TCPSite(runner, host=settings.server_bind, port=settings.server_port)
        try:
            await site.start()
        except OSError:
            logger.error("Cannot listen on %s:%d", settings.server_bind, settings.server_port)
            raise
        logger.info(
            "Serving aggregate of %s on %s:%d",
            settings.target,
            settings.server_bind,
            settings.server_port,
        )

        scheduler = build_scheduler(settings, client, cache, metrics, health_tracker)
        refresher = asyncio.create_task(
            scheduler.start_refresh_loop(stop_event), name="calproxy-refresher"
        )
        resources.push_async_callback(_cancel_and_wait, refresher)

        if external_stop_event is None:
            _stop_on_signals(stop_event)

        await stop_event.wait()
        logger.info("Shutting down")

    logger.info("Shutdown complete")


def start_server(settings: ProxySettings) -> None:
    """Block running the server until SIGINT/SIGTERM."""
    try:
        asyncio.run(_serve(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")
