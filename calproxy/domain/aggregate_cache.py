"""In-memory holder for the most recently published aggregate.

The refresh loop is the only writer; request handlers read concurrently.
The document is serialized once when it is published, so a read costs a
reference copy rather than a re-encode.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from calproxy.calendar.models import AggregateDocument

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """Reader-preference read/write lock for asyncio tasks.

    Any number of readers may hold the lock together. A writer waits until
    there are no readers and holds it alone. Waiting writers do not hold
    back new readers.
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writing = False

    @property
    def readers(self) -> int:
        return self._readers

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writing)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writing and self._readers == 0)
            self._writing = True
        try:
            yield
        finally:
            async with self._cond:
                self._writing = False
                self._cond.notify_all()


@dataclass(frozen=True)
class CachedAggregate:
    """A published aggregate in wire form."""

    body: bytes
    entry_count: int
    published_at: datetime.datetime


class AggregateCache:
    """Process-wide cache with an explicit unpopulated state.

    ``current()`` returns ``(b"", False)`` until the first ``publish()``.
    An empty aggregate is still a populated cache.
    """

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._value: Optional[CachedAggregate] = None

    async def publish(self, document: AggregateDocument) -> CachedAggregate:
        """Serialize ``document`` and make it the current value."""
        snapshot = CachedAggregate(
            body=document.to_ical(),
            entry_count=document.entry_count,
            published_at=datetime.datetime.now(datetime.timezone.utc),
        )
        async with self._lock.write():
            self._value = snapshot
        logger.debug(
            "Published aggregate: %d entries, %d bytes", snapshot.entry_count, len(snapshot.body)
        )
        return snapshot

    async def current(self) -> tuple[bytes, bool]:
        """Return ``(serialized_bytes, populated)``."""
        value = await self.snapshot()
        if value is None:
            return b"", False
        return value.body, True

    async def snapshot(self) -> Optional[CachedAggregate]:
        async with self._lock.read():
            return self._value
