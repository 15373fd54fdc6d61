"""Outbound HTTP client construction.

One ``httpx.AsyncClient`` is created per server and shared by the index
resolver and every source fetch, so connections to the upstream host are
pooled across a refresh cycle.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from calproxy import __version__

logger = logging.getLogger(__name__)

# Admission pool is 5 wide; one extra connection covers the index fetch.
_DEFAULT_LIMITS = httpx.Limits(
    max_connections=6,
    max_keepalive_connections=5,
)

DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": f"calproxy/{__version__}",
    "Accept": "text/calendar, text/html, text/plain, */*",
}


def build_timeout(request_timeout: float) -> httpx.Timeout:
    """Per-phase httpx timeout.

    The read phase restarts on every chunk, so this does not bound a whole
    request; SourceFetcher adds the overall deadline.
    """
    return httpx.Timeout(
        connect=min(10.0, request_timeout),
        read=request_timeout,
        write=min(10.0, request_timeout),
        pool=request_timeout,
    )


def create_http_client(
    user: str,
    password: str,
    request_timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the shared client carrying the fixed basic-auth credentials.

    Args:
        user: Basic auth user name
        password: Basic auth password
        request_timeout: Upper bound in seconds for each phase of a request
        transport: Optional transport override (tests use httpx.MockTransport)

    Returns:
        Configured httpx.AsyncClient; the caller owns it and must aclose() it
    """
    logger.debug(
        "Creating HTTP client (timeout=%.1fs, max_connections=%d)",
        request_timeout,
        _DEFAULT_LIMITS.max_connections,
    )
    return httpx.AsyncClient(
        auth=httpx.BasicAuth(user, password),
        timeout=build_timeout(request_timeout),
        limits=_DEFAULT_LIMITS,
        transport=transport,
        follow_redirects=True,
        headers=DEFAULT_HEADERS,
    )
