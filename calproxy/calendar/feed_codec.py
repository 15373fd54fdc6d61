"""Decode source feeds into calendar entries using icalendar."""

from __future__ import annotations

import logging

from icalendar import Calendar, Event as ICalEvent, Timezone as ICalTimezone

from calproxy.exceptions import DecodeError

from .models import CalendarEntry, EventEntry, TimezoneEntry, UnhandledEntry

logger = logging.getLogger(__name__)


def parse_feed(data: bytes) -> list[CalendarEntry]:
    """Decode one feed into its top-level entries.

    Args:
        data: Raw bytes of a VCALENDAR document

    Returns:
        One entry per top-level component, in document order

    Raises:
        DecodeError: If the bytes are not a single VCALENDAR
    """
    try:
        cal = Calendar.from_ical(data)
    except (ValueError, IndexError, KeyError) as e:
        raise DecodeError(f"invalid calendar data: {e}") from e

    if not isinstance(cal, Calendar) or cal.name != "VCALENDAR":
        raise DecodeError(f"expected VCALENDAR, got {getattr(cal, 'name', type(cal).__name__)}")

    if cal.errors:
        logger.debug("Calendar decoded with %d property errors", len(cal.errors))

    return [_to_entry(component) for component in cal.subcomponents]


def _to_entry(component: object) -> CalendarEntry:
    if isinstance(component, ICalEvent):
        return EventEntry(component)
    if isinstance(component, ICalTimezone):
        return TimezoneEntry(component)
    return UnhandledEntry(kind=str(getattr(component, "name", type(component).__name__)))
