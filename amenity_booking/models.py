from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from typing import Any

from .booking import to_utc

MEETING_ROOM = "meeting_room"
CAFETERIA = "cafeteria"
AMENITIES = (MEETING_ROOM, CAFETERIA)

STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"


def _iso(value: datetime) -> str:
    return to_utc(value).isoformat(timespec="seconds")


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return to_utc(value)
    return to_utc(datetime.fromisoformat(str(value)))


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return to_utc(value).date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


@dataclass(frozen=True)
class Resource:
    resource_id: str
    label: str
    capacity: int
    floor_id: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource_id": self.resource_id,
            "label": self.label,
            "capacity": self.capacity,
            "floor_id": self.floor_id,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Resource":
        return Resource(
            resource_id=str(data["resource_id"]),
            label=str(data["label"]),
            capacity=int(data.get("capacity", 1)),
            floor_id=int(data.get("floor_id", 0)),
        )


@dataclass(frozen=True)
class Booking:
    booking_id: str
    amenity: str
    resource_id: str
    resource_label: str
    floor_id: int
    date: date
    start: datetime
    end: datetime
    occupants: tuple[str, ...]
    owner_token: str
    status: str = STATUS_CONFIRMED
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "booking_id": self.booking_id,
            "amenity": self.amenity,
            "resource_id": self.resource_id,
            "resource_label": self.resource_label,
            "floor_id": self.floor_id,
            "date": self.date.isoformat(),
            "start": _iso(self.start),
            "end": _iso(self.end),
            "occupants": list(self.occupants),
            "owner_token": self.owner_token,
            "status": self.status,
        }
        if self.created_at is not None:
            payload["created_at"] = _iso(self.created_at)
        if self.updated_at is not None:
            payload["updated_at"] = _iso(self.updated_at)
        return payload

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Booking":
        return Booking(
            booking_id=str(data["booking_id"]),
            amenity=str(data["amenity"]),
            resource_id=str(data["resource_id"]),
            resource_label=str(data.get("resource_label", "")),
            floor_id=int(data.get("floor_id", 0)),
            date=_parse_date(data["date"]),
            start=_parse_datetime(data["start"]),
            end=_parse_datetime(data["end"]),
            occupants=tuple(str(item) for item in data.get("occupants") or []),
            owner_token=str(data.get("owner_token", "")),
            status=str(data.get("status", STATUS_CONFIRMED)),
            created_at=_parse_datetime(data["created_at"]) if data.get("created_at") else None,
            updated_at=_parse_datetime(data["updated_at"]) if data.get("updated_at") else None,
        )


@dataclass(frozen=True)
class LedgerEntry:
    entry_id: str
    amenity: str
    booking_id: str
    date: date
    owner_token: str
    details: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "amenity": self.amenity,
            "booking_id": self.booking_id,
            "date": self.date.isoformat(),
            "owner_token": self.owner_token,
            "details": list(self.details),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "LedgerEntry":
        return LedgerEntry(
            entry_id=str(data["entry_id"]),
            amenity=str(data["amenity"]),
            booking_id=str(data["booking_id"]),
            date=_parse_date(data["date"]),
            owner_token=str(data.get("owner_token", "")),
            details=tuple(str(item) for item in data.get("details") or []),
        )


@dataclass(frozen=True)
class BookingProposal:
    resource_id: str
    date: date
    start: datetime
    end: datetime
    owner_token: str
    occupants: tuple[str, ...] = ()
    status: str = STATUS_CONFIRMED

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", _parse_date(self.date))
        object.__setattr__(self, "start", _parse_datetime(self.start))
        object.__setattr__(self, "end", _parse_datetime(self.end))
        object.__setattr__(self, "occupants", tuple(self.occupants))

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "BookingProposal":
        return BookingProposal(
            resource_id=str(data["resource_id"]),
            date=_parse_date(data["date"]),
            start=_parse_datetime(data["start"]),
            end=_parse_datetime(data["end"]),
            owner_token=str(data["owner_token"]),
            occupants=tuple(str(item) for item in _as_list(data.get("occupants"))),
            status=str(data.get("status") or STATUS_CONFIRMED),
        )


@dataclass(frozen=True)
class BookingPatch:
    """Fields left as ``None`` are not touched by an update."""

    date: date | None = None
    start: datetime | None = None
    end: datetime | None = None
    resource_id: str | None = None
    resource_label: str | None = None
    floor_id: int | None = None
    occupants: tuple[str, ...] | None = None
    status: str | None = None

    def __post_init__(self) -> None:
        if self.date is not None:
            object.__setattr__(self, "date", _parse_date(self.date))
        if self.start is not None:
            object.__setattr__(self, "start", _parse_datetime(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", _parse_datetime(self.end))
        if self.occupants is not None:
            object.__setattr__(self, "occupants", tuple(self.occupants))

    def changes(self) -> dict[str, Any]:
        return {item.name: getattr(self, item.name) for item in fields(self) if getattr(self, item.name) is not None}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "BookingPatch":
        return BookingPatch(
            date=_parse_date(data["date"]) if data.get("date") else None,
            start=_parse_datetime(data["start"]) if data.get("start") else None,
            end=_parse_datetime(data["end"]) if data.get("end") else None,
            resource_id=str(data["resource_id"]) if data.get("resource_id") is not None else None,
            resource_label=str(data["resource_label"]) if data.get("resource_label") else None,
            floor_id=int(data["floor_id"]) if data.get("floor_id") is not None else None,
            occupants=tuple(str(item) for item in _as_list(data["occupants"])) if data.get("occupants") is not None else None,
            status=str(data["status"]) if data.get("status") is not None else None,
        )


@dataclass(frozen=True)
class BookingResult:
    booking: Booking
    ledger_entry: LedgerEntry = field(repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {"booking": self.booking.to_dict(), "overall_booking": self.ledger_entry.to_dict()}


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return list(value)
