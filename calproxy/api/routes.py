"""HTTP routes: the aggregate, metrics and health."""

from __future__ import annotations

import datetime
import logging
from typing import Any

from aiohttp import web

from calproxy.core.health_tracker import HealthTracker
from calproxy.core.metrics import ProxyMetrics
from calproxy.domain.aggregate_cache import AggregateCache

logger = logging.getLogger(__name__)

CALENDAR_CONTENT_TYPE = "text/calendar"

CACHE_KEY = web.AppKey("cache", AggregateCache)


def remote_address(request: web.Request) -> str:
    """Client address, preferring X-Forwarded-For over the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded
    return request.remote or ""


def register_routes(
    app: web.Application,
    cache: AggregateCache,
    metrics: ProxyMetrics,
    health_tracker: HealthTracker,
) -> None:
    """Register calproxy routes.

    Args:
        app: aiohttp web application
        cache: Aggregate cache read by GET / and /health, stored under CACHE_KEY
        metrics: Counters incremented per request and rendered on /metrics
        health_tracker: Refresh bookkeeping rendered on /health
    """
    app[CACHE_KEY] = cache

    async def serve_aggregate(request: web.Request) -> web.Response:
        """Serve the cached aggregate verbatim."""
        body, populated = await request.app[CACHE_KEY].current()
        user_agent = request.headers.get("User-Agent", "")
        remote = remote_address(request)

        if not populated:
            logger.error("no content (user-agent=%r, remote=%s)", user_agent, remote)
            metrics.record_inbound("err")
            return web.Response(status=500)

        logger.info("served (user-agent=%r, remote=%s)", user_agent, remote)
        metrics.record_inbound("ok")
        return web.Response(body=body, content_type=CALENDAR_CONTENT_TYPE, charset="utf-8")

    async def serve_metrics(_request: web.Request) -> web.Response:
        response = web.Response(body=metrics.render())
        response.headers["Content-Type"] = metrics.content_type
        return response

    async def health_check(request: web.Request) -> web.Response:
        """Refresh health; 503 while degraded so probes can alert on it."""
        now_iso = datetime.datetime.now(datetime.timezone.utc).isoformat()
        health = health_tracker.snapshot(now_iso)
        snapshot = await request.app[CACHE_KEY].snapshot()

        health_data: dict[str, Any] = health.to_dict()
        health_data["cache"] = {
            "populated": snapshot is not None,
            "bytes": len(snapshot.body) if snapshot is not None else 0,
            "published_at_iso": snapshot.published_at.isoformat() if snapshot is not None else None,
        }

        status_code = 200 if health.status == "ok" else 503
        return web.json_response(health_data, status=status_code)

    app.router.add_get("/", serve_aggregate)
    app.router.add_get("/metrics", serve_metrics)
    app.router.add_get("/health", health_check)
