from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
import tempfile
import traceback

from amenity_booking import (
    MEETING_ROOM,
    AvailabilityCalculator,
    BookingEngine,
    BookingProposal,
    BookingYamlStore,
    SlotAlreadyBooked,
    generate_default_catalogs,
)


def main() -> int:
    print("[INFO] Amenity Booking Quick Check")

    with tempfile.TemporaryDirectory() as temp_dir:
        data_dir = Path(temp_dir) / "data"
        store = BookingYamlStore(data_dir)
        catalog = generate_default_catalogs()[MEETING_ROOM]
        engine = BookingEngine(store, catalog)
        calculator = AvailabilityCalculator(store, catalog)

        day = date(2026, 2, 24)
        room = catalog.list_resources()[0]
        created = engine.create(
            BookingProposal(
                resource_id=room.resource_id,
                date=day,
                start=datetime(2026, 2, 24, 9, 0, tzinfo=timezone.utc),
                end=datetime(2026, 2, 24, 10, 0, tzinfo=timezone.utc),
                owner_token="quickcheck",
                occupants=("a@example.com", "b@example.com"),
            )
        )
        print(f"[OK] Created booking {created.booking.booking_id} on {room.label}")
        print(f"[OK] Overall booking details: {list(created.ledger_entry.details)}")

        try:
            engine.create(
                BookingProposal(
                    resource_id=room.resource_id,
                    date=day,
                    start=datetime(2026, 2, 24, 9, 30, tzinfo=timezone.utc),
                    end=datetime(2026, 2, 24, 10, 30, tzinfo=timezone.utc),
                    owner_token="quickcheck",
                )
            )
            print("[ERROR] Overlapping booking was accepted.")
            return 1
        except SlotAlreadyBooked:
            print("[OK] Overlapping booking rejected")

        free = calculator.list_free(
            day,
            datetime(2026, 2, 24, 9, 0, tzinfo=timezone.utc),
            datetime(2026, 2, 24, 10, 0, tzinfo=timezone.utc),
        )
        print(f"[OK] Free rooms 09:00-10:00: {len(free)} of {catalog.count_resources()}")

        engine.remove(created.booking.booking_id)
        print(f"[OK] Ledger rows after remove: {len(store.list_ledger_entries())}")

    print("[DONE] Quick check completed successfully.")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception:
        print("[ERROR] Quick check failed.")
        traceback.print_exc()
        raise SystemExit(1)
