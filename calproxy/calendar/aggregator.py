"""Fetch every source feed concurrently and merge them into one calendar.

Workers are admitted through a fixed-size semaphore, so at most
``FETCH_CONCURRENCY`` sources are being fetched, decoded or dispatched at any
time. Decoding runs in a worker thread so a large feed does not stall the
event loop. Workers never touch the document: they put decoded entries on a
queue and a single merge task appends them. ``aggregate`` joins every worker, then
queues the completion sentinel behind the last entry, then waits for the
merge task to hand back the document. The FIFO queue is what guarantees no
entry is dropped between the last worker finishing and the merge task
stopping.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Union, assert_never
from urllib.parse import urlsplit, urlunsplit

from calproxy.exceptions import DecodeError, FetchError

from .feed_codec import parse_feed
from .fetcher import SourceFetcher
from .models import (
    AggregateDocument,
    CalendarEntry,
    EventEntry,
    MergeableEntry,
    TimezoneEntry,
    UnhandledEntry,
)

logger = logging.getLogger(__name__)

FETCH_CONCURRENCY = 5


class _Done:
    """Completion sentinel for the merge queue."""


_DONE = _Done()

_MergeItem = Union[MergeableEntry, _Done]


def build_source_url(base_url: str, ref: str) -> str:
    """Combine the scheme and host of ``base_url`` with the path of ``ref``.

    Credentials embedded in the base URL are not carried over; the client
    adds basic auth itself.

    >>> build_source_url("https://cal.example.com/index.html?x=1", "/feeds/a.ics")
    'https://cal.example.com/feeds/a.ics'
    """
    base = urlsplit(base_url)
    host = base.netloc.rpartition("@")[2]
    path = urlsplit(ref).path
    if not path.startswith("/"):
        path = "/" + path
    return urlunsplit((base.scheme, host, path, "", ""))


class FeedAggregator:
    """Fan-out fetch/decode with a single-writer fan-in merge."""

    def __init__(
        self,
        fetcher: SourceFetcher,
        concurrency: int = FETCH_CONCURRENCY,
        decode: Callable[[bytes], list[CalendarEntry]] = parse_feed,
    ) -> None:
        """Initialize aggregator.

        Args:
            fetcher: Fetcher used for every source
            concurrency: Admission pool size
            decode: Feed decoder; raises DecodeError on malformed input
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.fetcher = fetcher
        self.concurrency = concurrency
        self.decode = decode

    async def aggregate(self, base_url: str, sources: Sequence[str]) -> AggregateDocument:
        """Build the aggregate for one refresh cycle.

        Per-source failures are logged and drop only that source, so this
        never fails because a source failed. Zero sources, or all sources
        failing, yields an empty document.

        Args:
            base_url: Index URL whose scheme and host locate the sources
            sources: Source references from the index page

        Returns:
            The finished document; no other task holds a reference to it
        """
        queue: asyncio.Queue[_MergeItem] = asyncio.Queue()
        merger = asyncio.create_task(self._merge(queue), name="calproxy-merge")
        admission = asyncio.Semaphore(self.concurrency)
        workers: list[asyncio.Task[bool]] = []

        try:
            for ref in sources:
                await admission.acquire()
                workers.append(
                    asyncio.create_task(
                        self._run_source(admission, base_url, ref, queue),
                        name=f"calproxy-source-{ref}",
                    )
                )

            results = await asyncio.gather(*workers, return_exceptions=True)
            await queue.put(_DONE)
            document = await merger
        except BaseException:
            for task in workers:
                task.cancel()
            merger.cancel()
            await asyncio.gather(*workers, merger, return_exceptions=True)
            raise

        succeeded = 0
        for ref, result in zip(sources, results):
            if isinstance(result, BaseException):
                logger.error("Source %s worker crashed: %r", ref, result)
            elif result:
                succeeded += 1

        logger.info(
            "Aggregated %d entries (%d events, %d timezones) from %d/%d sources",
            document.entry_count,
            document.event_count,
            document.timezone_count,
            succeeded,
            len(sources),
        )
        return document

    async def _run_source(
        self,
        admission: asyncio.Semaphore,
        base_url: str,
        ref: str,
        queue: asyncio.Queue[_MergeItem],
    ) -> bool:
        try:
            return await self._collect(build_source_url(base_url, ref), queue)
        finally:
            admission.release()

    async def _collect(self, url: str, queue: asyncio.Queue[_MergeItem]) -> bool:
        """Fetch, decode and dispatch one source. Returns True on success."""
        try:
            data = await self.fetcher.fetch(url)
        except FetchError as e:
            logger.error("Fetch failed for %s (status=%s): %s", url, e.status_code, e)
            return False

        try:
            entries = await asyncio.to_thread(self.decode, data)
        except DecodeError as e:
            logger.error("Parse failed for %s: %s", url, e)
            return False

        for entry in entries:
            await self._dispatch(url, entry, queue)
        return True

    async def _dispatch(
        self, url: str, entry: CalendarEntry, queue: asyncio.Queue[_MergeItem]
    ) -> None:
        if isinstance(entry, EventEntry):
            await queue.put(entry)
        elif isinstance(entry, TimezoneEntry):
            await queue.put(entry)
        elif isinstance(entry, UnhandledEntry):
            logger.warning("Unhandled entry type %s from %s", entry.kind, url)
        else:
            assert_never(entry)

    async def _merge(self, queue: asyncio.Queue[_MergeItem]) -> AggregateDocument:
        document = AggregateDocument()
        while True:
            item = await queue.get()
            if isinstance(item, _Done):
                return document
            document.add(item)
