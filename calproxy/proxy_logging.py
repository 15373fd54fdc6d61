"""
Central logging configuration for calproxy.

Keeps calproxy's own loggers at INFO (DEBUG on request) and quiets the
chattier third-party libraries so a two-hourly refresh and a steady trickle
of calendar-client requests produce readable logs.
"""

import logging
import os
from typing import Optional

NOISY_LOGGERS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "aiohttp.web": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "charset_normalizer": logging.WARNING,
    "icalendar": logging.INFO,
}


class CorrelationIdFilter(logging.Filter):
    """Add the current request's correlation ID to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        # Imported here, the middleware module pulls in aiohttp.
        from calproxy.api.middleware import current_request_id

        record.request_id = current_request_id()
        return True


_TRUTHY = ("1", "true", "yes", "on")
_ROOT_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _debug_requested(debug_mode: bool, force_debug: Optional[bool]) -> bool:
    if force_debug is not None:
        return force_debug
    return debug_mode or os.getenv("CALPROXY_DEBUG", "").strip().lower() in _TRUTHY


def _root_level(debug: bool, log_level: Optional[str]) -> int:
    name = (log_level or os.getenv("CALPROXY_LOG_LEVEL") or "").upper()
    if name in _ROOT_LEVELS:
        return getattr(logging, name)
    return logging.DEBUG if debug else logging.INFO


def configure_proxy_logging(
    debug_mode: bool = False,
    force_debug: Optional[bool] = None,
    log_level: Optional[str] = None,
) -> None:
    """
    Set calproxy and third-party logger levels and tag records with request IDs.

    Args:
        debug_mode: DEBUG for calproxy's own loggers
        force_debug: If not None, wins over both ``debug_mode`` and CALPROXY_DEBUG
        log_level: Root level name; wins over the debug flags for the root logger

    Environment Variables:
        CALPROXY_DEBUG: '1', 'true', 'yes' or 'on' turns debug on
        CALPROXY_LOG_LEVEL: Root level when ``log_level`` is not given
    """
    debug = _debug_requested(debug_mode, force_debug)
    root_level = _root_level(debug, log_level)

    root = logging.getLogger()
    root.setLevel(root_level)
    if not root.handlers:
        fallback = logging.StreamHandler()
        fallback.setFormatter(
            logging.Formatter("[%(asctime)s] [%(request_id)s] %(levelname)s - %(name)s - %(message)s")
        )
        root.addHandler(fallback)

    request_ids = CorrelationIdFilter()
    for handler in root.handlers:
        if not any(isinstance(f, CorrelationIdFilter) for f in handler.filters):
            handler.addFilter(request_ids)

    for name, level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)
    logging.getLogger("calproxy").setLevel(logging.DEBUG if debug else logging.INFO)

    root.info(
        "Logging configured (root=%s, calproxy debug=%s)",
        logging.getLevelName(root_level),
        debug,
    )


def get_logging_status() -> dict[str, str]:
    """Level names of the root logger and the loggers calproxy tunes."""
    names = ("calproxy", "aiohttp.access", "httpx", "asyncio")
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    status.update((name, logging.getLevelName(logging.getLogger(name).level)) for name in names)
    return status
