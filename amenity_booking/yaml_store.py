from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator
import logging
import shutil
import threading
from uuid import uuid4

import yaml

from .booking import find_conflict, has_time_overlap, occupies_instant, to_utc
from .errors import BookingNotFound, ConstraintViolation, LedgerEntryMissing, StorageFailure
from .models import AMENITIES, Booking, LedgerEntry

logger = logging.getLogger(__name__)

STORE_FILE_NAME = "booking_store.yaml"
EVENT_FILE_NAME = "booking_events.yaml"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _empty_document() -> dict[str, Any]:
    return {"bookings": {amenity: [] for amenity in AMENITIES}, "ledger": []}


@dataclass
class StoreTransaction:
    document: dict[str, Any]
    tx_id: str = field(default_factory=lambda: uuid4().hex)
    active: bool = True
    pending_events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)


class BookingYamlStore:
    """Interval tables and the overall-booking ledger in a single YAML document.

    Every write goes through a transaction. Transactions are serialized by a
    store-level lock held from ``begin_transaction`` until ``commit`` or
    ``rollback``; a commit replaces the whole document with one atomic rename,
    so the interval row and its ledger row always land (or vanish) together.
    """

    def __init__(
        self,
        base_dir: str | Path = "data",
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self.base_dir = Path(base_dir)
        self.store_file = self.base_dir / STORE_FILE_NAME
        self.log_file = self.base_dir / EVENT_FILE_NAME
        self._clock = now_provider or _utc_now
        self._lock = threading.RLock()
        self._log_lock = threading.Lock()
        self._ensure_files()

    def _ensure_files(self) -> None:
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            if not self.store_file.exists():
                self._write_yaml(self.store_file, _empty_document())
            if not self.log_file.exists():
                self.log_file.write_text("[]\n", encoding="utf-8")
        except OSError as error:
            raise StorageFailure(f"Failed to initialise booking store in {self.base_dir}") from error

    # -- raw document access -------------------------------------------------

    def _load_store_payload(self) -> Any:
        return yaml.safe_load(self.store_file.read_text(encoding="utf-8"))

    def _read_document(self) -> dict[str, Any]:
        try:
            payload = self._load_store_payload()
            readable = payload is None or isinstance(payload, dict)
        except (OSError, UnicodeDecodeError, yaml.YAMLError):
            readable = False
        if not readable:
            with self._lock:
                payload = self._load_or_reset_store()

        if payload is None:
            return _empty_document()

        document = _empty_document()
        tables = payload.get("bookings") or {}
        if isinstance(tables, dict):
            for amenity in AMENITIES:
                document["bookings"][amenity] = self._sanitize_rows(tables.get(amenity), f"bookings.{amenity}")
        document["ledger"] = self._sanitize_rows(payload.get("ledger"), "ledger")
        return document

    def _load_or_reset_store(self) -> dict[str, Any] | None:
        """Re-read the store file under the lock and reset it if it is still unreadable.

        A commit may have replaced the file since the unlocked read, so the
        reset only happens when the second read fails too.
        """
        try:
            payload = self._load_store_payload()
        except FileNotFoundError:
            self._write_yaml(self.store_file, _empty_document())
            return None
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(self.store_file, error, _empty_document())
            return None

        if payload is not None and not isinstance(payload, dict):
            self._recover_corrupted_yaml(self.store_file, ValueError("top-level YAML is not a mapping"), _empty_document())
            return None
        return payload

    def _sanitize_rows(self, rows: Any, table: str) -> list[dict[str, Any]]:
        if rows is None:
            return []
        if not isinstance(rows, list):
            self._log_event("YAML_ROW_SKIPPED", {"table": table, "reason": "table is not a list"})
            return []

        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(rows):
            if isinstance(row, dict):
                sanitized.append(row)
            else:
                self._log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "table": table,
                        "index": index,
                        "reason": "row is not a mapping",
                    },
                )
        return sanitized

    def _write_yaml(self, path: Path, payload: Any) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(payload, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise StorageFailure(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception, empty: Any) -> None:
        timestamp = self._clock().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError:
            logger.warning("Could not back up corrupted file %s", path)

        self._write_yaml(path, empty)
        logger.warning("Recovered corrupted YAML file %s: %s", path.name, error)
        if path != self.log_file:
            self._log_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name),
                    "reason": str(error),
                },
            )

    def _read_events(self) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(self.log_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(self.log_file, error, [])
            return []
        if not isinstance(payload, list):
            return []
        return [row for row in payload if isinstance(row, dict)]

    def _log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        timestamp = (event_time or self._clock()).isoformat(timespec="seconds")
        with self._log_lock:
            events = self._read_events()
            events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
            self._write_yaml(self.log_file, events)

    def get_events(self) -> list[dict[str, Any]]:
        return self._read_events()

    # -- transactions ----------------------------------------------------------

    def begin_transaction(self) -> StoreTransaction:
        self._lock.acquire()
        try:
            document = self._read_document()
        except Exception:
            self._lock.release()
            raise
        return StoreTransaction(document=document)

    def commit(self, tx: StoreTransaction) -> None:
        self._require_active(tx)
        try:
            self._write_yaml(self.store_file, tx.document)
        finally:
            tx.active = False
            self._lock.release()

        now = self._clock()
        for event_type, payload in tx.pending_events:
            self._log_event(event_type, payload, now)

    def rollback(self, tx: StoreTransaction) -> None:
        if not tx.active:
            return
        tx.active = False
        self._lock.release()

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        tx = self.begin_transaction()
        try:
            yield tx
        except BaseException:
            self.rollback(tx)
            raise
        self.commit(tx)

    def record_event(self, tx: StoreTransaction, event_type: str, payload: dict[str, Any]) -> None:
        """Queue an event that is written to the log only if ``tx`` commits."""
        self._require_active(tx)
        tx.pending_events.append((event_type, payload))

    def _require_active(self, tx: StoreTransaction) -> None:
        if not tx.active:
            raise StorageFailure(f"Transaction {tx.tx_id} is no longer active")

    def _document(self, tx: StoreTransaction | None) -> dict[str, Any]:
        if tx is None:
            return self._read_document()
        self._require_active(tx)
        return tx.document

    @staticmethod
    def _table(document: dict[str, Any], amenity: str) -> list[dict[str, Any]]:
        if amenity not in AMENITIES:
            raise ValueError(f"Unknown amenity: {amenity}")
        return document["bookings"][amenity]

    # -- interval store ----------------------------------------------------------

    def insert_booking(self, tx: StoreTransaction, booking: Booking) -> Booking:
        table = self._table(self._document(tx), booking.amenity)
        self._check_exclusion(table, booking)

        now = self._clock()
        stored = replace(
            booking,
            booking_id=booking.booking_id or str(uuid4()),
            created_at=now,
            updated_at=now,
        )
        table.append(stored.to_dict())
        return stored

    def update_booking(self, tx: StoreTransaction, booking: Booking, enforce_exclusion: bool = False) -> Booking:
        table = self._table(self._document(tx), booking.amenity)
        index = self._index_of(table, "booking_id", booking.booking_id)
        if index < 0:
            raise BookingNotFound(f"Booking {booking.booking_id} not found")

        if enforce_exclusion:
            self._check_exclusion(table, booking)

        stored = replace(booking, updated_at=self._clock())
        table[index] = stored.to_dict()
        return stored

    def delete_booking(self, tx: StoreTransaction, amenity: str, booking_id: str) -> bool:
        table = self._table(self._document(tx), amenity)
        index = self._index_of(table, "booking_id", booking_id)
        if index < 0:
            return False
        del table[index]
        return True

    def find_booking(self, amenity: str, booking_id: str, tx: StoreTransaction | None = None) -> Booking | None:
        table = self._table(self._document(tx), amenity)
        index = self._index_of(table, "booking_id", booking_id)
        if index < 0:
            return None
        return Booking.from_dict(table[index])

    def list_bookings(self, amenity: str, tx: StoreTransaction | None = None) -> list[Booking]:
        return [Booking.from_dict(row) for row in self._table(self._document(tx), amenity)]

    def query_bookings_overlapping(
        self,
        amenity: str,
        resource_id: str,
        booking_date: date,
        start: datetime,
        end: datetime,
        tx: StoreTransaction | None = None,
        exclude_id: str | None = None,
    ) -> list[Booking]:
        return [
            booking
            for booking in self.list_bookings(amenity, tx)
            if booking.resource_id == resource_id
            and booking.date == booking_date
            and booking.booking_id != exclude_id
            and has_time_overlap(start, end, booking.start, booking.end)
        ]

    def query_bookings_on_date(self, amenity: str, booking_date: date, start: datetime, end: datetime) -> list[Booking]:
        return [
            booking
            for booking in self.list_bookings(amenity)
            if booking.date == booking_date and has_time_overlap(start, end, booking.start, booking.end)
        ]

    def query_bookings_covering(self, amenity: str, instant: datetime) -> list[Booking]:
        instant = to_utc(instant)
        return [booking for booking in self.list_bookings(amenity) if occupies_instant(booking.start, booking.end, instant)]

    def _check_exclusion(self, table: list[dict[str, Any]], booking: Booking) -> None:
        rivals = [
            existing
            for existing in (Booking.from_dict(row) for row in table)
            if existing.booking_id != booking.booking_id
            and existing.resource_id == booking.resource_id
            and existing.date == booking.date
        ]
        conflict = find_conflict(booking.start, booking.end, rivals)
        if conflict is not None:
            raise ConstraintViolation(
                f"Booking overlaps {conflict.booking_id} on resource {conflict.resource_id}",
                conflicting_id=conflict.booking_id,
            )

    # -- ledger store ------------------------------------------------------------

    def insert_ledger_entry(self, tx: StoreTransaction, entry: LedgerEntry) -> LedgerEntry:
        ledger = self._document(tx)["ledger"]
        stored = replace(entry, entry_id=entry.entry_id or str(uuid4()))
        ledger.append(stored.to_dict())
        return stored

    def find_ledger_entry(
        self,
        booking_id: str,
        amenity: str,
        tx: StoreTransaction | None = None,
    ) -> LedgerEntry | None:
        ledger = self._document(tx)["ledger"]
        index = self._ledger_index(ledger, booking_id, amenity)
        if index < 0:
            return None
        return LedgerEntry.from_dict(ledger[index])

    def update_ledger_entry(self, tx: StoreTransaction, entry: LedgerEntry) -> LedgerEntry:
        ledger = self._document(tx)["ledger"]
        index = self._ledger_index(ledger, entry.booking_id, entry.amenity)
        if index < 0:
            raise LedgerEntryMissing(f"Overall booking for {entry.booking_id} not found")
        ledger[index] = entry.to_dict()
        return entry

    def delete_ledger_entry(self, tx: StoreTransaction, booking_id: str, amenity: str) -> bool:
        ledger = self._document(tx)["ledger"]
        index = self._ledger_index(ledger, booking_id, amenity)
        if index < 0:
            return False
        del ledger[index]
        return True

    def list_ledger_entries(self, owner_token: str | None = None, amenity: str | None = None) -> list[LedgerEntry]:
        entries = [LedgerEntry.from_dict(row) for row in self._read_document()["ledger"]]
        return [
            entry
            for entry in entries
            if (owner_token is None or entry.owner_token == owner_token) and (amenity is None or entry.amenity == amenity)
        ]

    @staticmethod
    def _index_of(rows: list[dict[str, Any]], key: str, value: str) -> int:
        for index, row in enumerate(rows):
            if str(row.get(key)) == str(value):
                return index
        return -1

    @staticmethod
    def _ledger_index(rows: list[dict[str, Any]], booking_id: str, amenity: str) -> int:
        for index, row in enumerate(rows):
            if str(row.get("booking_id")) == str(booking_id) and row.get("amenity") == amenity:
                return index
        return -1
