"""Refresh loop: resolve the index, aggregate sources, publish to the cache."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional

from calproxy.calendar.aggregator import FeedAggregator
from calproxy.calendar.index_resolver import IndexResolver
from calproxy.core.health_tracker import HealthTracker
from calproxy.exceptions import DecodeError, FetchError

from .aggregate_cache import AggregateCache

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL_SECONDS = 2 * 60 * 60


class RefreshState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


class RefreshScheduler:
    """Drives refresh cycles strictly one after another.

    The loop awaits each cycle before it starts waiting for the next tick,
    so two cycles never overlap and the cache only ever sees one writer.
    """

    def __init__(
        self,
        base_url: str,
        resolver: IndexResolver,
        aggregator: FeedAggregator,
        cache: AggregateCache,
        interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS,
        health_tracker: Optional[HealthTracker] = None,
    ) -> None:
        self.base_url = base_url
        self.resolver = resolver
        self.aggregator = aggregator
        self.cache = cache
        self.interval_seconds = interval_seconds
        self.health_tracker = health_tracker or HealthTracker(int(interval_seconds))
        self.state = RefreshState.IDLE

    async def refresh_once(self) -> bool:
        """Run one refresh cycle.

        An index failure abandons the cycle and leaves the cached value as
        it was; serving a stale aggregate beats serving nothing.

        Returns:
            True if a new aggregate was published
        """
        if self.state is RefreshState.REFRESHING:
            raise RuntimeError("refresh cycle already in progress")

        self.state = RefreshState.REFRESHING
        self.health_tracker.record_refresh_attempt()
        self.health_tracker.record_background_heartbeat()
        logger.debug("=== Starting refresh cycle for %s ===", self.base_url)
        try:
            try:
                sources = await self.resolver.resolve_sources(self.base_url)
            except (FetchError, DecodeError) as e:
                self.health_tracker.record_refresh_failure()
                logger.error("Refresh cycle abandoned, index unavailable: %s", e)
                return False

            document = await self.aggregator.aggregate(self.base_url, sources)
            published = await self.cache.publish(document)
        finally:
            self.state = RefreshState.IDLE

        self.health_tracker.record_refresh_success(published.entry_count, len(sources))
        logger.info(
            "Refresh complete: %d entries from %d sources (%d bytes)",
            published.entry_count,
            len(sources),
            len(published.body),
        )
        return True

    async def start_refresh_loop(self, stop_event: asyncio.Event) -> None:
        """Refresh immediately, then every interval until ``stop_event`` is set."""
        logger.debug("Refresh loop starting with interval %.0f seconds", self.interval_seconds)

        while not stop_event.is_set():
            try:
                await self.refresh_once()
            except Exception:
                self.health_tracker.record_refresh_failure()
                logger.exception("Refresh cycle failed unexpectedly")

            logger.debug("Sleeping for %.0f seconds until next refresh", self.interval_seconds)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

        logger.info("Refresh loop stopped")
