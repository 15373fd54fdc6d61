"""Refresh bookkeeping behind GET /health."""

from __future__ import annotations

import os
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

# A refresher silent for this long is reported stale, whatever the interval.
HEARTBEAT_STALE_SECONDS = 600


def _age(since: Optional[float]) -> Optional[int]:
    if since is None:
        return None
    return int(time.time() - since)


@dataclass
class RefreshHealth:
    """Point-in-time view of refresh health, serialized as the /health body."""

    status: str  # "ok" or "degraded"
    server_time_iso: str
    uptime_seconds: int
    pid: int
    entry_count: int
    source_count: int
    last_success_age_seconds: Optional[int]
    last_attempt_age_seconds: Optional[int]
    consecutive_failures: int
    refresher: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class HealthTracker:
    """Counts refresh outcomes and remembers the latest published sizes.

    Written by the refresh scheduler only; the health route reads it.
    """

    def __init__(self, refresh_interval_seconds: int = 7200) -> None:
        self.refresh_interval_seconds = refresh_interval_seconds
        self._started_at = time.time()
        self._attempted_at: Optional[float] = None
        self._succeeded_at: Optional[float] = None
        self._heartbeat_at: Optional[float] = None
        self._entry_count = 0
        self._source_count = 0
        self._failures = 0

    def record_refresh_attempt(self) -> None:
        self._attempted_at = time.time()

    def record_refresh_success(self, entry_count: int, source_count: int) -> None:
        """Record a published aggregate.

        Args:
            entry_count: Entries in the published aggregate
            source_count: Sources listed on the index page for that cycle
        """
        self._succeeded_at = time.time()
        self._entry_count = entry_count
        self._source_count = source_count
        self._failures = 0

    def record_refresh_failure(self) -> None:
        self._failures += 1

    def record_background_heartbeat(self) -> None:
        self._heartbeat_at = time.time()

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    @property
    def last_attempt_at(self) -> Optional[float]:
        """Epoch seconds of the most recent refresh attempt."""
        return self._attempted_at

    def last_success_age(self) -> Optional[int]:
        """Seconds since the last successful refresh, None before the first."""
        return _age(self._succeeded_at)

    def refresher_status(self) -> dict[str, Any]:
        age = _age(self._heartbeat_at)
        if age is None:
            state = "unknown"
        elif age < max(HEARTBEAT_STALE_SECONDS, self.refresh_interval_seconds * 2):
            state = "running"
        else:
            state = "stale"
        return {"name": "refresher", "status": state, "heartbeat_age_seconds": age}

    def overall_status(self) -> str:
        """"ok" unless nothing was ever published or the last publish is two intervals old."""
        age = self.last_success_age()
        if age is None or age > self.refresh_interval_seconds * 2:
            return "degraded"
        return "ok"

    def snapshot(self, now_iso: str) -> RefreshHealth:
        return RefreshHealth(
            status=self.overall_status(),
            server_time_iso=now_iso,
            uptime_seconds=int(time.time() - self._started_at),
            pid=os.getpid(),
            entry_count=self._entry_count,
            source_count=self._source_count,
            last_success_age_seconds=self.last_success_age(),
            last_attempt_age_seconds=_age(self._attempted_at),
            consecutive_failures=self._failures,
            refresher=self.refresher_status(),
        )
