from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Iterable

from .booking import start_of_utc_day
from .errors import BookingNotFound
from .models import CAFETERIA, MEETING_ROOM, Booking, LedgerEntry

if TYPE_CHECKING:
    from .engine import BookingEngine
    from .yaml_store import BookingYamlStore

logger = logging.getLogger(__name__)

# Positional slots shared by every amenity layout.
START_SLOT = 0
END_SLOT = 1
FLOOR_SLOT = 2
LABEL_SLOT = 3
OCCUPANTS_SLOT = 4


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def build_details(amenity: str, booking: Booking) -> tuple[str, ...]:
    """Ledger ``details`` for a booking, laid out per amenity.

    meeting_room: [startISO, endISO, floorId, roomLabel, occupantsJoined]
    cafeteria:    [startISO, endISO, floorId, seatLabel, occupant]
    """
    if amenity == MEETING_ROOM:
        occupants = ",".join(booking.occupants)
    elif amenity == CAFETERIA:
        occupants = booking.occupants[0] if booking.occupants else booking.owner_token
    else:
        raise ValueError(f"Unknown amenity: {amenity}")

    return (
        _iso(booking.start),
        _iso(booking.end),
        str(booking.floor_id),
        booking.resource_label,
        occupants,
    )


def build_ledger_entry(booking: Booking) -> LedgerEntry:
    return LedgerEntry(
        entry_id="",
        amenity=booking.amenity,
        booking_id=booking.booking_id,
        date=booking.date,
        owner_token=booking.owner_token,
        details=build_details(booking.amenity, booking),
    )


def refresh_details(entry: LedgerEntry, booking: Booking, changed: Iterable[str]) -> LedgerEntry:
    """Recompute only the slots whose source fields changed."""
    changed = set(changed)
    fresh = build_details(entry.amenity, booking)
    details = list(entry.details) + [""] * max(0, len(fresh) - len(entry.details))

    slot_sources = {
        START_SLOT: {"start"},
        END_SLOT: {"end"},
        FLOOR_SLOT: {"floor_id", "resource_id"},
        LABEL_SLOT: {"resource_label", "resource_id"},
        OCCUPANTS_SLOT: {"occupants"},
    }
    for slot, sources in slot_sources.items():
        if changed & sources:
            details[slot] = fresh[slot]

    entry_date = booking.date if "date" in changed else entry.date
    return replace(entry, date=entry_date, details=tuple(details))


class OverallBookingService:
    """Unified "my bookings" view over the ledger of every amenity."""

    def __init__(self, store: "BookingYamlStore", now_provider: Callable[[], datetime] | None = None) -> None:
        self.store = store
        self._clock = now_provider or (lambda: datetime.now(timezone.utc))

    def find_all(self) -> list[LedgerEntry]:
        return self.store.list_ledger_entries()

    def find_by_owner(self, token: str) -> list[LedgerEntry]:
        today = start_of_utc_day(self._clock())
        entries = [entry for entry in self.store.list_ledger_entries(owner_token=token) if entry.date >= today]
        if not entries:
            raise BookingNotFound(f"No upcoming bookings for {token}")
        return sorted(entries, key=lambda entry: (entry.date, entry.details[START_SLOT] if entry.details else ""))

    def cancel_all_for_owner(self, token: str, engines: dict[str, "BookingEngine"]) -> list[str]:
        """Remove every ledger-listed booking of ``token`` through its amenity engine."""
        removed: list[str] = []
        for entry in self.store.list_ledger_entries(owner_token=token):
            engine = engines.get(entry.amenity)
            if engine is None:
                continue
            try:
                engine.remove(entry.booking_id)
            except BookingNotFound:
                logger.warning("Dropping overall booking %s with no %s booking row", entry.booking_id, entry.amenity)
                with self.store.transaction() as tx:
                    self.store.delete_ledger_entry(tx, entry.booking_id, entry.amenity)
            removed.append(entry.booking_id)
        return removed
