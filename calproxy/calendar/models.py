"""Calendar entry variants and the merged aggregate document."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from icalendar import Calendar, Event as ICalEvent, Timezone as ICalTimezone

AGGREGATE_PRODID = "-//calproxy//calproxy//EN"
AGGREGATE_VERSION = "2.0"


@dataclass(frozen=True)
class EventEntry:
    """A VEVENT decoded from a source feed."""

    component: ICalEvent


@dataclass(frozen=True)
class TimezoneEntry:
    """A VTIMEZONE decoded from a source feed."""

    component: ICalTimezone


@dataclass(frozen=True)
class UnhandledEntry:
    """Any other top-level component (VTODO, VJOURNAL, ...). Never merged."""

    kind: str


CalendarEntry = Union[EventEntry, TimezoneEntry, UnhandledEntry]
MergeableEntry = Union[EventEntry, TimezoneEntry]


@dataclass
class AggregateDocument:
    """Merged calendar built from every source of one refresh cycle.

    Entries are kept in arrival order and are neither deduplicated nor
    reconciled across sources. The document carries the VERSION and PRODID
    properties required for a valid VCALENDAR, so an aggregate with no
    entries still serializes to a well-formed, empty calendar.
    """

    entries: list[MergeableEntry] = field(default_factory=list)

    def add(self, entry: MergeableEntry) -> None:
        self.entries.append(entry)

    @property
    def entry_count(self) -> int:
        return len(self.entries)

    @property
    def event_count(self) -> int:
        return sum(1 for entry in self.entries if isinstance(entry, EventEntry))

    @property
    def timezone_count(self) -> int:
        return sum(1 for entry in self.entries if isinstance(entry, TimezoneEntry))

    def to_calendar(self) -> Calendar:
        cal = Calendar()
        cal.add("prodid", AGGREGATE_PRODID)
        cal.add("version", AGGREGATE_VERSION)
        for entry in self.entries:
            cal.add_component(entry.component)
        return cal

    def to_ical(self) -> bytes:
        """Serialize to RFC 5545 bytes."""
        return self.to_calendar().to_ical()
