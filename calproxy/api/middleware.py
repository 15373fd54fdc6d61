"""Request ID middleware.

Each inbound request is tagged with an ID: the first of ``X-Request-ID`` and
``X-Correlation-ID`` the client or a fronting proxy sent, else a fresh
uuid4. Log records emitted while the handler runs carry it (see
``CorrelationIdFilter``) and the response echoes it in ``X-Request-ID``.
"""

import uuid
from collections.abc import Awaitable, Callable
from contextvars import ContextVar, Token

from aiohttp import web

INBOUND_ID_HEADERS = ("X-Request-ID", "X-Correlation-ID")
NO_REQUEST_ID = "no-request-id"

_current_request_id: ContextVar[str] = ContextVar("calproxy_request_id", default=NO_REQUEST_ID)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _inbound_id(request: web.Request) -> str:
    for header in INBOUND_ID_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return uuid.uuid4().hex


@web.middleware
async def request_id_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    request_id = _inbound_id(request)
    request["request_id"] = request_id

    token = bind_request_id(request_id)
    try:
        response = await handler(request)
    finally:
        unbind_request_id(token)

    response.headers[INBOUND_ID_HEADERS[0]] = request_id
    return response


def current_request_id() -> str:
    """ID of the request being handled, or "no-request-id" outside one."""
    return _current_request_id.get()


def bind_request_id(request_id: str) -> Token[str]:
    """Set the current request ID; returns the token for ``unbind_request_id``."""
    return _current_request_id.set(request_id)


def unbind_request_id(token: Token[str]) -> None:
    _current_request_id.reset(token)
