from __future__ import annotations

from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Callable, Iterator, Protocol
import logging

from .booking import start_of_utc_day
from .catalog import ResourceCatalog
from .errors import (
    BookingError,
    BookingNotFound,
    ConstraintViolation,
    InvalidInterval,
    LedgerEntryMissing,
    ResourceNotFound,
    SlotAlreadyBooked,
    StorageFailure,
)
from .ledger import build_ledger_entry, refresh_details
from .models import Booking, BookingPatch, BookingProposal, BookingResult
from .yaml_store import BookingYamlStore, StoreTransaction

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def booking_created(self, booking: Booking) -> None:
        ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BookingEngine:
    """Create, update and remove bookings of one amenity without double-booking.

    The interval row and its overall-booking ledger row are always written in
    the same store transaction. Overlap is rejected by the store's exclusion
    constraint inside that transaction, so two concurrent ``create`` calls for
    overlapping intervals cannot both succeed.
    """

    def __init__(
        self,
        store: BookingYamlStore,
        catalog: ResourceCatalog,
        *,
        notifier: Notifier | None = None,
        email_resolver: Callable[[str], str | None] | None = None,
        now_provider: Callable[[], datetime] | None = None,
        recheck_overlap_on_update: bool = False,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.amenity = catalog.amenity
        self.notifier = notifier
        self.email_resolver = email_resolver
        self._clock = now_provider or _utc_now
        self.recheck_overlap_on_update = recheck_overlap_on_update

    @contextmanager
    def _transaction(self) -> Iterator[StoreTransaction]:
        try:
            with self.store.transaction() as tx:
                yield tx
        except (BookingError, ValueError):
            raise
        except Exception as error:
            logger.exception("Unclassified store failure for %s", self.amenity)
            raise StorageFailure() from error

    def create(self, proposal: BookingProposal) -> BookingResult:
        _validate_interval(proposal.date, proposal.start, proposal.end)

        resource = self.catalog.find_resource(proposal.resource_id)
        if resource is None:
            raise ResourceNotFound(f"Resource {proposal.resource_id} not found")

        booking = Booking(
            booking_id="",
            amenity=self.amenity,
            resource_id=resource.resource_id,
            resource_label=resource.label,
            floor_id=resource.floor_id,
            date=proposal.date,
            start=proposal.start,
            end=proposal.end,
            occupants=proposal.occupants,
            owner_token=proposal.owner_token,
            status=proposal.status,
        )

        with self._transaction() as tx:
            try:
                saved = self.store.insert_booking(tx, booking)
            except ConstraintViolation as error:
                logger.warning("Rejected overlapping booking on %s: %s", resource.resource_id, error)
                raise SlotAlreadyBooked() from error
            entry = self.store.insert_ledger_entry(tx, build_ledger_entry(saved))
            self.store.record_event(tx, "BOOKING_CREATED", _event_payload(saved))

        self._notify(saved)
        return BookingResult(booking=saved, ledger_entry=entry)

    def find_all(self) -> list[Booking]:
        return self.store.list_bookings(self.amenity)

    def find_one(self, booking_id: str) -> Booking:
        booking = self.store.find_booking(self.amenity, booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} not found")
        return booking

    def find_by_owner(self, token: str) -> list[Booking]:
        """Upcoming bookings created by ``token`` or listing its email as an occupant.

        An empty result raises ``BookingNotFound`` rather than returning ``[]``.
        """
        today = start_of_utc_day(self._clock())
        email = self.email_resolver(token) if self.email_resolver else token

        matches = [
            booking
            for booking in self.store.list_bookings(self.amenity)
            if booking.date >= today and (booking.owner_token == token or (email is not None and email in booking.occupants))
        ]
        if not matches:
            raise BookingNotFound(f"No upcoming bookings for {token}")
        return sorted(matches, key=lambda booking: (booking.start, booking.resource_label))

    def update(self, booking_id: str, patch: BookingPatch) -> Booking:
        changes = patch.changes()

        with self._transaction() as tx:
            current = self.store.find_booking(self.amenity, booking_id, tx)
            if current is None:
                raise BookingNotFound(f"Booking {booking_id} not found")

            entry = self.store.find_ledger_entry(booking_id, self.amenity, tx)
            if entry is None:
                raise LedgerEntryMissing(f"Overall booking for {booking_id} not found")

            if "resource_id" in changes:
                resource = self.catalog.find_resource(changes["resource_id"])
                if resource is None:
                    raise ResourceNotFound(f"Resource {changes['resource_id']} not found")
                changes.setdefault("resource_label", resource.label)
                changes.setdefault("floor_id", resource.floor_id)

            updated = replace(current, **changes)
            _validate_interval(updated.date, updated.start, updated.end)

            try:
                saved = self.store.update_booking(tx, updated, enforce_exclusion=self.recheck_overlap_on_update)
            except ConstraintViolation as error:
                logger.warning("Rejected overlapping update of %s: %s", booking_id, error)
                raise SlotAlreadyBooked() from error
            self.store.update_ledger_entry(tx, refresh_details(entry, saved, changes))
            self.store.record_event(tx, "BOOKING_UPDATED", {**_event_payload(saved), "fields": sorted(changes)})

        return saved

    def remove(self, booking_id: str) -> Booking:
        with self._transaction() as tx:
            current = self.store.find_booking(self.amenity, booking_id, tx)
            if current is None:
                raise BookingNotFound(f"Booking {booking_id} not found")

            self.store.delete_booking(tx, self.amenity, booking_id)
            if not self.store.delete_ledger_entry(tx, booking_id, self.amenity):
                logger.info("No overall booking row to delete for %s", booking_id)
            self.store.record_event(tx, "BOOKING_REMOVED", _event_payload(current))

        return current

    def _notify(self, booking: Booking) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.booking_created(booking)
        except Exception:
            logger.exception("Notifier failed for booking %s", booking.booking_id)


def _validate_interval(booking_date: date, start: datetime, end: datetime) -> None:
    if end <= start:
        raise InvalidInterval("Please enter valid start and end time")
    if start.date() != booking_date or end.date() != booking_date:
        raise InvalidInterval("Booking must start and end on its booking date.")


def _event_payload(booking: Booking) -> dict[str, str]:
    return {
        "booking_id": booking.booking_id,
        "amenity": booking.amenity,
        "resource_id": booking.resource_id,
        "start": booking.start.isoformat(timespec="minutes"),
        "end": booking.end.isoformat(timespec="minutes"),
    }
