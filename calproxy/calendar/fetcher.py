"""Authenticated single-resource reads."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from calproxy.core.metrics import ProxyMetrics
from calproxy.exceptions import FetchError

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0


class SourceFetcher:
    """Fetch one URL with the shared client, no retry.

    The client carries the basic-auth credentials; this class bounds the
    whole request, body included, by ``request_timeout`` and classifies the
    outcome. httpx restarts its read timeout on every chunk, so an upstream
    dripping bytes is only stopped by this deadline. A request that does not
    end in a 2xx response within it raises FetchError.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        metrics: Optional[ProxyMetrics] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        if request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        self.client = client
        self.metrics = metrics
        self.request_timeout = request_timeout

    async def fetch(self, url: str) -> bytes:
        """GET ``url`` and return the body.

        Args:
            url: Absolute http(s) URL

        Returns:
            Response body bytes

        Raises:
            FetchError: On a non-2xx status, any transport failure, or when
                the request outlives ``request_timeout``
        """
        if self.metrics is not None:
            self.metrics.record_outbound()

        try:
            # client.get() reads the whole body and closes the response,
            # whatever the status turns out to be.
            async with asyncio.timeout(self.request_timeout):
                response = await self.client.get(url)
        except (TimeoutError, httpx.TimeoutException) as e:
            raise FetchError(
                f"timeout fetching {url} after {self.request_timeout:g}s: {e!r}", cause=e
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(f"request to {url} failed: {e!r}", cause=e) from e

        if not response.is_success:
            raise FetchError(
                f"{url}: HTTP {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        logger.debug("Fetched %s (%d bytes)", url, len(response.content))
        return response.content
