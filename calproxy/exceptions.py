"""Exception hierarchy for calproxy.

Errors are raised where they are detected and handled by the component that
owns the policy for them: the aggregator swallows per-source failures, the
refresh scheduler swallows per-cycle failures, and the CLI turns a
``ConfigError`` into a non-zero exit.
"""

from __future__ import annotations

from typing import Optional


class CalProxyError(Exception):
    """Base exception for all calproxy errors."""


class FetchError(CalProxyError):
    """A remote read failed.

    Raised when:
    - The server answered with a non-2xx status (``status_code`` is set)
    - The request failed in transport: DNS, connect, TLS, timeout
      (``status_code`` is None)
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.cause = cause


class DecodeError(CalProxyError):
    """Index markup or feed bytes could not be decoded."""


class ConfigError(CalProxyError):
    """Required configuration is missing or unparsable.

    Only raised during startup; fatal to the process.
    """
