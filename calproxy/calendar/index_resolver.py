"""Discover source feed paths from the upstream index page."""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup, ParserRejectedMarkup
from bs4.element import Tag

from calproxy.exceptions import DecodeError

from .fetcher import SourceFetcher

logger = logging.getLogger(__name__)

NODE_TABLE_CLASS = "nodeTable"
NAME_COLUMN_CLASS = "nameColumn"


def _class_of(tag: Tag) -> str:
    classes = tag.get("class") or []
    if isinstance(classes, str):
        return classes
    return " ".join(classes)


def parse_index_markup(data: bytes) -> list[str]:
    """Extract source references from index page markup.

    Looks at every ``<section>`` whose ``<table>`` has class ``nodeTable``.
    In each row the first cell with class ``nameColumn`` supplies the link
    target and the remaining cells of that row are ignored. A name cell
    without a link yields nothing for its row.

    Args:
        data: Raw index page bytes

    Returns:
        Link targets in document order

    Raises:
        DecodeError: If the markup cannot be parsed or has no <html> root
    """
    try:
        soup = BeautifulSoup(data, "html.parser")
    except (ParserRejectedMarkup, UnicodeDecodeError, AssertionError) as e:
        raise DecodeError(f"index markup rejected: {e}") from e

    if soup.find("html") is None:
        raise DecodeError("index markup has no <html> element")

    refs: list[str] = []
    for section in soup.find_all("section"):
        for table in section.find_all("table", recursive=False):
            if _class_of(table) != NODE_TABLE_CLASS:
                continue
            for row in table.find_all("tr"):
                for cell in row.find_all("td", recursive=False):
                    if _class_of(cell) != NAME_COLUMN_CLASS:
                        continue
                    link = cell.find("a")
                    href = link.get("href") if link is not None else None
                    if href:
                        refs.append(str(href))
                    else:
                        logger.debug("nameColumn cell without link target, skipping row")
                    break
    return refs


class IndexResolver:
    """Fetch the index page and turn it into a list of source references."""

    def __init__(self, fetcher: SourceFetcher) -> None:
        self.fetcher = fetcher

    async def resolve_sources(self, base_url: str) -> list[str]:
        """Resolve the current set of source references.

        Raises:
            FetchError: If the index page cannot be fetched
            DecodeError: If the index markup cannot be parsed
        """
        data = await self.fetcher.fetch(base_url)
        refs = parse_index_markup(data)
        logger.info("Index %s lists %d sources", base_url, len(refs))
        return refs
