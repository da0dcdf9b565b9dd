from datetime import date, datetime, timezone
from typing import Iterable, Optional, Protocol, TypeVar

from .errors import InvalidInterval


class TimeSpan(Protocol):
    start: datetime
    end: datetime


SpanT = TypeVar("SpanT", bound=TimeSpan)


def to_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_utc_day(value: datetime) -> date:
    return to_utc(value).date()


def has_time_overlap(new_start: datetime, new_end: datetime, exist_start: datetime, exist_end: datetime) -> bool:
    """Return True when two time intervals overlap by even one instant.

    Intervals are treated as half-open ranges: [start, end)
    so touching boundaries (e.g. 10:00-11:00 and 11:00-12:00) do not overlap.
    """
    if new_start >= new_end:
        raise InvalidInterval("new_start must be earlier than new_end.")
    if exist_start >= exist_end:
        raise InvalidInterval("exist_start must be earlier than exist_end.")

    return new_start < exist_end and new_end > exist_start


def find_conflict(new_start: datetime, new_end: datetime, existing: Iterable[SpanT]) -> Optional[SpanT]:
    """Return the first existing span that overlaps the requested interval, or None."""
    if new_start >= new_end:
        raise InvalidInterval("new_start must be earlier than new_end.")

    for span in existing:
        if has_time_overlap(new_start, new_end, span.start, span.end):
            return span
    return None


def occupies_instant(start: datetime, end: datetime, instant: datetime) -> bool:
    """A booking ending exactly at ``instant`` is free; one starting at it is not."""
    return start <= instant < end
