import tempfile
import unittest
from datetime import date, datetime, timezone
from pathlib import Path

from amenity_booking import (
    MEETING_ROOM,
    AvailabilityCalculator,
    Booking,
    BookingEngine,
    BookingPatch,
    BookingProposal,
    BookingYamlStore,
    InvalidInterval,
    Resource,
    ResourceCatalog,
    count_free,
    list_free,
)

DAY = date(2026, 2, 24)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 2, 24, hour, minute, tzinfo=timezone.utc)


def booking(label: str, start: datetime, end: datetime) -> Booking:
    return Booking(
        booking_id=f"b-{label}-{start.hour}",
        amenity=MEETING_ROOM,
        resource_id=label.lower(),
        resource_label=label,
        floor_id=1,
        date=start.date(),
        start=start,
        end=end,
        occupants=(),
        owner_token="t",
    )


class TestPureFunctions(unittest.TestCase):
    def test_count_free_ignores_booking_ending_at_instant(self) -> None:
        bookings = [booking("A", at(9), at(10)), booking("B", at(10), at(11)), booking("C", at(9, 30), at(10, 30))]

        self.assertEqual(count_free(5, bookings, at(10)), 3)

    def test_count_free_subtracts_every_covering_booking(self) -> None:
        bookings = [booking("A", at(9), at(10)), booking("B", at(9), at(10)), booking("C", at(8), at(9, 30))]

        self.assertEqual(count_free(1, bookings, at(9, 30)), -1)
        self.assertEqual(count_free(3, bookings, at(9, 29)), 0)

    def test_list_free_matches_by_label_and_keeps_order(self) -> None:
        resources = [Resource("1", "A", 4, 1), Resource("2", "B", 4, 1), Resource("3", "C", 4, 1)]
        bookings = [booking("B", at(9, 30), at(9, 45)), booking("C", at(10), at(11))]

        free = list_free(resources, bookings, at(9), at(10))

        self.assertEqual([resource.label for resource in free], ["A", "C"])


class TestAvailabilityCalculator(unittest.TestCase):
    def setUp(self) -> None:
        temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(temp_dir.cleanup)
        self.store = BookingYamlStore(Path(temp_dir.name) / "data")
        self.catalog = ResourceCatalog(
            MEETING_ROOM,
            [
                Resource("r2", "Huddle", 2, 1),
                Resource("r4", "Focus", 4, 1),
                Resource("r6", "Board", 6, 2),
            ],
        )
        self.engine = BookingEngine(self.store, self.catalog)
        self.calculator = AvailabilityCalculator(self.store, self.catalog)

    def _book(self, resource_id: str, start: datetime, end: datetime) -> None:
        self.engine.create(
            BookingProposal(resource_id=resource_id, date=DAY, start=start, end=end, owner_token="owner")
        )

    def test_list_free_applies_capacity_and_overlap(self) -> None:
        self._book("r6", at(9, 30), at(9, 45))

        free = self.calculator.list_free(DAY, at(9), at(10), capacity=4)

        self.assertEqual([resource.resource_id for resource in free], ["r4"])

    def test_list_free_ignores_other_dates_and_touching_bookings(self) -> None:
        self._book("r6", at(10), at(11))

        free = self.calculator.list_free(DAY, at(9), at(10), capacity=4)

        self.assertEqual([resource.resource_id for resource in free], ["r4", "r6"])

    def test_list_free_rejects_inverted_window(self) -> None:
        with self.assertRaises(InvalidInterval):
            self.calculator.list_free(DAY, at(10), at(9), capacity=1)

    def test_count_free_at_instant(self) -> None:
        self._book("r2", at(9), at(10))
        self._book("r4", at(9, 30), at(11))

        self.assertEqual(self.calculator.count_free(at(9, 45)), 1)
        self.assertEqual(self.calculator.count_free(at(10)), 2)
        self.assertEqual(self.calculator.count_free(at(12)), 3)

    def test_count_free_counts_rows_overlapped_by_unchecked_update(self) -> None:
        for resource_id in ("r2", "r4", "r6"):
            self._book(resource_id, at(9), at(10))
        late = self.engine.create(
            BookingProposal(resource_id="r2", date=DAY, start=at(10), end=at(11), owner_token="owner")
        ).booking

        self.engine.update(late.booking_id, BookingPatch(start=at(9, 15)))

        self.assertEqual(self.calculator.count_free(at(9, 30)), -1)
        self.assertEqual(self.calculator.count_free(at(10)), 2)


if __name__ == "__main__":
    unittest.main()
