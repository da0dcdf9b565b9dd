import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from amenity_booking.settings import Settings
from amenity_booking.web_app import create_app

NOW = datetime(2026, 2, 24, 8, 0, tzinfo=timezone.utc)


def booking_payload(resource_id: str = "room-102", start: str = "09:00", end: str = "10:00", **overrides) -> dict:
    payload = {
        "resource_id": resource_id,
        "date": "2026-02-24",
        "start": f"2026-02-24T{start}:00+00:00",
        "end": f"2026-02-24T{end}:00+00:00",
        "owner_token": "owner-token",
        "occupants": ["ana@example.com", "ben@example.com"],
    }
    payload.update(overrides)
    return payload


class TestWebApp(unittest.TestCase):
    def setUp(self) -> None:
        temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(temp_dir.cleanup)
        self.data_dir = Path(temp_dir.name) / "data"
        settings = Settings(data_dir=self.data_dir, catalog_file=None, reminder_lead_minutes=15)
        self.app = create_app(self.data_dir, now_provider=lambda: NOW, settings=settings)
        self.client = self.app.test_client()

    def test_create_and_fetch_booking(self) -> None:
        response = self.client.post("/api/meeting_room/bookings", json=booking_payload())

        self.assertEqual(response.status_code, 201)
        payload = response.get_json()
        booking_id = payload["booking"]["booking_id"]
        self.assertEqual(payload["overall_booking"]["booking_id"], booking_id)
        self.assertEqual(payload["overall_booking"]["details"][3], "Room 102")
        self.assertEqual(payload["overall_booking"]["details"][4], "ana@example.com,ben@example.com")

        fetched = self.client.get(f"/api/meeting_room/bookings/{booking_id}")
        self.assertEqual(fetched.status_code, 200)
        self.assertEqual(fetched.get_json()["booking"]["resource_label"], "Room 102")

    def test_conflict_returns_409(self) -> None:
        self.client.post("/api/meeting_room/bookings", json=booking_payload())

        response = self.client.post("/api/meeting_room/bookings", json=booking_payload(start="09:30", end="10:30"))

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"], "slot_already_booked")

    def test_invalid_interval_returns_400(self) -> None:
        response = self.client.post("/api/meeting_room/bookings", json=booking_payload(start="10:00", end="09:00"))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "invalid_interval")

    def test_malformed_payload_returns_400(self) -> None:
        response = self.client.post("/api/meeting_room/bookings", json={"resource_id": "room-101"})

        self.assertEqual(response.status_code, 400)

    def test_unknown_resource_and_amenity(self) -> None:
        response = self.client.post("/api/meeting_room/bookings", json=booking_payload("nope"))
        self.assertEqual(response.status_code, 404)

        response = self.client.get("/api/parking/bookings")
        self.assertEqual(response.status_code, 404)

    def test_patch_and_delete(self) -> None:
        created = self.client.post("/api/meeting_room/bookings", json=booking_payload()).get_json()
        booking_id = created["booking"]["booking_id"]

        bad = self.client.patch(f"/api/meeting_room/bookings/{booking_id}", json={"end": "2026-02-24T08:30:00+00:00"})
        self.assertEqual(bad.status_code, 400)

        patched = self.client.patch(f"/api/meeting_room/bookings/{booking_id}", json={"end": "2026-02-24T11:00:00+00:00"})
        self.assertEqual(patched.status_code, 200)
        self.assertEqual(patched.get_json()["booking"]["end"], "2026-02-24T11:00:00+00:00")

        deleted = self.client.delete(f"/api/meeting_room/bookings/{booking_id}")
        self.assertEqual(deleted.status_code, 200)
        missing = self.client.get(f"/api/meeting_room/bookings/{booking_id}")
        self.assertEqual(missing.status_code, 404)

    def test_owner_lookup_and_overall_view(self) -> None:
        self.client.post("/api/meeting_room/bookings", json=booking_payload())
        self.client.post(
            "/api/cafeteria/bookings",
            json=booking_payload("seat-1", start="12:00", end="13:00", occupants=["owner-token"]),
        )

        mine = self.client.get("/api/meeting_room/bookings/owner/owner-token")
        self.assertEqual(mine.status_code, 200)
        self.assertEqual(len(mine.get_json()["bookings"]), 1)

        overall = self.client.get("/api/overall/owner-token")
        self.assertEqual(overall.status_code, 200)
        self.assertEqual(len(overall.get_json()["bookings"]), 2)

        self.assertEqual(self.client.get("/api/cafeteria/bookings/owner/nobody").status_code, 404)

    def test_cancel_all_for_owner(self) -> None:
        self.client.post("/api/meeting_room/bookings", json=booking_payload())
        self.client.post(
            "/api/cafeteria/bookings",
            json=booking_payload("seat-1", start="12:00", end="13:00", occupants=["owner-token"]),
        )
        self.client.post("/api/meeting_room/bookings", json=booking_payload("room-103", owner_token="other-token"))

        response = self.client.delete("/api/overall/owner-token")

        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertTrue(payload["ok"])
        self.assertEqual(len(payload["removed"]), 2)
        self.assertEqual(self.client.get("/api/overall/owner-token").status_code, 404)
        self.assertEqual(self.client.get("/api/cafeteria/bookings").get_json()["bookings"], [])
        remaining = self.client.get("/api/meeting_room/bookings").get_json()["bookings"]
        self.assertEqual([booking["owner_token"] for booking in remaining], ["other-token"])

    def test_availability_endpoints(self) -> None:
        self.client.post("/api/meeting_room/bookings", json=booking_payload("room-103", start="08:00", end="09:00"))

        now = self.client.get("/api/meeting_room/availability/now").get_json()
        self.assertEqual(now["total"], 10)
        self.assertEqual(now["available"], 9)

        response = self.client.post(
            "/api/meeting_room/availability",
            json={
                "date": "2026-02-24",
                "start": "2026-02-24T08:30:00+00:00",
                "end": "2026-02-24T09:30:00+00:00",
                "capacity": 6,
            },
        )
        self.assertEqual(response.status_code, 200)
        labels = [resource["label"] for resource in response.get_json()["resources"]]
        self.assertNotIn("Room 103", labels)
        self.assertIn("Room 104", labels)
        self.assertNotIn("Room 101", labels)

    def test_notifications_endpoints(self) -> None:
        self.client.post("/api/meeting_room/bookings", json=booking_payload())

        reminders = self.client.get("/api/notifications/owner-token")
        self.assertEqual(reminders.status_code, 200)
        self.assertEqual(reminders.get_json()["notifications"][0]["send_at"], "2026-02-24T08:45:00+00:00")

        created = self.client.post(
            "/api/notifications",
            json={"time": "2026-02-24T12:00:00+00:00", "title": "Lunch", "message": "Soup today", "token": "t2"},
        )
        self.assertEqual(created.status_code, 201)
        self.assertEqual(len(self.client.get("/api/notifications").get_json()["notifications"]), 2)
        self.assertEqual(self.client.get("/api/notifications/nobody").status_code, 404)


if __name__ == "__main__":
    unittest.main()
