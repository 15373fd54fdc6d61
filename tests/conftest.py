"""Shared fixtures for calproxy tests."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator, Callable, Iterator, Mapping
from typing import Any, Optional

import httpx
import pytest

from tests.fixtures.upstream import Response, make_transport

CONFIG_ENV_KEYS = (
    "TARGET",
    "AUTH_USER",
    "AUTH_PASS",
    "CALPROXY_WEB_HOST",
    "CALPROXY_WEB_PORT",
    "CALPROXY_REFRESH_INTERVAL",
    "CALPROXY_REQUEST_TIMEOUT",
    "CALPROXY_DEBUG",
    "CALPROXY_LOG_LEVEL",
)


def pytest_configure(config: Any) -> None:
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Tests wiring several components together")
    config.addinivalue_line("markers", "fast: Tests that finish well under a second")


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> Iterator[None]:
    """Clear calproxy environment variables and run from an empty directory.

    Values a .env load copies into os.environ are removed again afterwards.
    """
    for key in CONFIG_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    for key in CONFIG_ENV_KEYS:
        os.environ.pop(key, None)


@pytest.fixture
async def mock_client_factory() -> AsyncIterator[Callable[..., httpx.AsyncClient]]:
    """Create httpx clients over MockTransport; all are closed after the test."""
    from calproxy.core.http_client import create_http_client

    clients: list[httpx.AsyncClient] = []

    def factory(
        routes: Mapping[str, Response],
        seen: Optional[list[httpx.Request]] = None,
        user: str = "bot",
        password: str = "s3cret",
    ) -> httpx.AsyncClient:
        client = create_http_client(
            user, password, request_timeout=5, transport=make_transport(routes, seen)
        )
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.aclose()
