from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Callable, Iterable

from .booking import has_time_overlap, occupies_instant, to_utc
from .catalog import ResourceCatalog
from .errors import InvalidInterval
from .models import Booking, Resource
from .yaml_store import BookingYamlStore


def count_free(total_units: int, bookings: Iterable[Booking], instant: datetime) -> int:
    """``total_units`` minus the bookings covering ``instant``.

    A booking covers ``instant`` when ``start <= instant < end``. Overlapping
    rows left behind by an unchecked update each count, so the result can go
    below zero.
    """
    instant = to_utc(instant)
    occupied = sum(1 for booking in bookings if occupies_instant(booking.start, booking.end, instant))
    return total_units - occupied


def list_free(resources: Iterable[Resource], bookings: Iterable[Booking], start: datetime, end: datetime) -> list[Resource]:
    """Resources with no booking overlapping ``[start, end)``, in catalog order.

    Bookings are matched to resources by label because a booking keeps the
    label it was created with.
    """
    booked_labels = {
        booking.resource_label for booking in bookings if has_time_overlap(start, end, booking.start, booking.end)
    }
    return [resource for resource in resources if resource.label not in booked_labels]


class AvailabilityCalculator:
    def __init__(
        self,
        store: BookingYamlStore,
        catalog: ResourceCatalog,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self._clock = now_provider or (lambda: datetime.now(timezone.utc))

    def count_free(self, now: datetime | None = None) -> int:
        instant = to_utc(now or self._clock())
        covering = self.store.query_bookings_covering(self.catalog.amenity, instant)
        return count_free(self.catalog.count_resources(), covering, instant)

    def list_free(self, booking_date: date, start: datetime, end: datetime, capacity: int = 1) -> list[Resource]:
        start, end = to_utc(start), to_utc(end)
        if start >= end:
            raise InvalidInterval("Please enter valid start time and end time")

        booked = self.store.query_bookings_on_date(self.catalog.amenity, booking_date, start, end)
        candidates = self.catalog.list_resources_by_min_capacity(capacity)
        return list_free(candidates, booked, start, end)
