from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable
import logging

from flask import Flask, jsonify, request

from .availability import AvailabilityCalculator
from .booking import to_utc
from .catalog import load_catalogs
from .engine import BookingEngine
from .errors import BookingError
from .ledger import OverallBookingService
from .models import AMENITIES, BookingPatch, BookingProposal
from .notifications import NotificationDispatcher, NotificationYamlQueue, ReminderNotifier
from .settings import Settings, get_settings
from .yaml_store import BookingYamlStore

logger = logging.getLogger(__name__)

AMENITY_RULE = "<any({}):amenity>".format(", ".join(AMENITIES))


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def create_app(
    data_dir: str | Path | None = None,
    now_provider: Callable[[], datetime] | None = None,
    settings: Settings | None = None,
) -> Flask:
    settings = settings or get_settings()
    base_dir = Path(data_dir) if data_dir is not None else settings.data_dir
    clock: Callable[[], datetime] = now_provider or _utc_now

    app = Flask(__name__)
    store = BookingYamlStore(base_dir, now_provider=clock)
    catalogs = load_catalogs(settings.catalog_file)
    queue = NotificationYamlQueue(base_dir)
    notifier = ReminderNotifier(queue, lead_minutes=settings.reminder_lead_minutes)

    engines = {
        amenity: BookingEngine(
            store,
            catalog,
            notifier=notifier,
            now_provider=clock,
            recheck_overlap_on_update=settings.recheck_overlap_on_update,
        )
        for amenity, catalog in catalogs.items()
    }
    calculators = {amenity: AvailabilityCalculator(store, catalog, now_provider=clock) for amenity, catalog in catalogs.items()}
    overall = OverallBookingService(store, now_provider=clock)

    app.extensions["amenity_booking"] = {
        "store": store,
        "engines": engines,
        "queue": queue,
        "dispatcher": NotificationDispatcher(queue, now_provider=clock),
    }

    @app.errorhandler(BookingError)
    def handle_booking_error(error: BookingError) -> Any:
        if error.status_code >= 500:
            logger.error("Booking request failed: %s", error)
        return jsonify({"ok": False, "error": error.kind, "message": error.message}), error.status_code

    @app.post(f"/api/{AMENITY_RULE}/bookings")
    def create_booking(amenity: str) -> Any:
        payload = request.get_json(silent=True) or {}
        try:
            proposal = BookingProposal.from_dict(payload)
        except (KeyError, TypeError, ValueError) as error:
            return _bad_request(f"Invalid booking payload: {error}")

        result = engines[amenity].create(proposal)
        return jsonify({"ok": True, **result.to_dict()}), 201

    @app.get(f"/api/{AMENITY_RULE}/bookings")
    def list_bookings(amenity: str) -> Any:
        return jsonify({"ok": True, "bookings": [booking.to_dict() for booking in engines[amenity].find_all()]})

    @app.get(f"/api/{AMENITY_RULE}/bookings/<booking_id>")
    def get_booking(amenity: str, booking_id: str) -> Any:
        return jsonify({"ok": True, "booking": engines[amenity].find_one(booking_id).to_dict()})

    @app.patch(f"/api/{AMENITY_RULE}/bookings/<booking_id>")
    def update_booking(amenity: str, booking_id: str) -> Any:
        payload = request.get_json(silent=True) or {}
        try:
            patch = BookingPatch.from_dict(payload)
        except (TypeError, ValueError) as error:
            return _bad_request(f"Invalid booking patch: {error}")

        updated = engines[amenity].update(booking_id, patch)
        return jsonify({"ok": True, "booking": updated.to_dict()})

    @app.delete(f"/api/{AMENITY_RULE}/bookings/<booking_id>")
    def delete_booking(amenity: str, booking_id: str) -> Any:
        removed = engines[amenity].remove(booking_id)
        return jsonify({"ok": True, "booking": removed.to_dict()})

    @app.get(f"/api/{AMENITY_RULE}/bookings/owner/<token>")
    def get_bookings_by_owner(amenity: str, token: str) -> Any:
        bookings = engines[amenity].find_by_owner(token)
        return jsonify({"ok": True, "bookings": [booking.to_dict() for booking in bookings]})

    @app.get(f"/api/{AMENITY_RULE}/availability/now")
    def get_total_availability(amenity: str) -> Any:
        now = clock()
        return jsonify(
            {
                "ok": True,
                "at": to_utc(now).isoformat(timespec="seconds"),
                "available": calculators[amenity].count_free(now),
                "total": catalogs[amenity].count_resources(),
            }
        )

    @app.post(f"/api/{AMENITY_RULE}/availability")
    def get_availability_by_time(amenity: str) -> Any:
        payload = request.get_json(silent=True) or {}
        try:
            booking_date = date.fromisoformat(str(payload["date"])[:10])
            start = datetime.fromisoformat(str(payload["start"]))
            end = datetime.fromisoformat(str(payload["end"]))
            capacity = int(payload.get("capacity", 1))
        except (KeyError, TypeError, ValueError) as error:
            return _bad_request(f"Invalid availability query: {error}")

        free = calculators[amenity].list_free(booking_date, start, end, capacity)
        return jsonify({"ok": True, "resources": [resource.to_dict() for resource in free]})

    @app.get("/api/overall/<token>")
    def get_overall_bookings(token: str) -> Any:
        entries = overall.find_by_owner(token)
        return jsonify({"ok": True, "bookings": [entry.to_dict() for entry in entries]})

    @app.delete("/api/overall/<token>")
    def cancel_overall_bookings(token: str) -> Any:
        removed = overall.cancel_all_for_owner(token, engines)
        return jsonify({"ok": True, "removed": removed})

    @app.post("/api/notifications")
    def create_notification() -> Any:
        payload = request.get_json(silent=True) or {}
        try:
            send_at = datetime.fromisoformat(str(payload["time"]))
            title = str(payload["title"])
            message = str(payload["message"])
            token = str(payload["token"])
        except (KeyError, TypeError, ValueError) as error:
            return _bad_request(f"Invalid notification payload: {error}")

        created = queue.enqueue(send_at, title, message, token)
        return jsonify({"ok": True, "notification": created.to_dict()}), 201

    @app.get("/api/notifications")
    def list_notifications() -> Any:
        return jsonify({"ok": True, "notifications": [item.to_dict() for item in queue.list_all()]})

    @app.get("/api/notifications/<token>")
    def list_notifications_by_token(token: str) -> Any:
        notifications = queue.list_by_token(token)
        if not notifications:
            return jsonify({"ok": False, "message": "No notifications found for this token"}), 404
        return jsonify({"ok": True, "notifications": [item.to_dict() for item in notifications]})

    return app


def _bad_request(message: str) -> Any:
    return jsonify({"ok": False, "error": "bad_request", "message": message}), 400


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    app = create_app(settings=settings)
    app.extensions["amenity_booking"]["dispatcher"].start(settings.dispatch_interval_seconds)
    app.run(host=settings.host, port=settings.port, debug=False)
