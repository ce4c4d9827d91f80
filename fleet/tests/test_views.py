import io
import json
import uuid
from datetime import datetime, timezone
from unittest import mock

from django.apps import apps
from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import Client, TestCase

from fleet.exceptions import PersistenceFailure
from fleet.simulation import PositionSnapshot
from fleet.store import FleetStore

TRAVEL_DATE = "2026-05-01"


def passenger(seat, name="Asha", gender="Female", age=30):
    return {"seat": seat, "name": name, "gender": gender, "age": age}


class FleetAPITestCase(TestCase):
    def setUp(self):
        call_command("load_catalog", stdout=io.StringIO())
        apps.get_app_config("fleet").reset()
        self.addCleanup(apps.get_app_config("fleet").reset)
        self.client = Client()
        self.user = get_user_model().objects.create_user(username="asha", password="not-used")

    def post_json(self, url, payload):
        return self.client.post(url, data=json.dumps(payload), content_type="application/json")

    def book(self, seats, vehicle_id="bus-001"):
        return self.post_json(
            "/api/bookings/",
            {"vehicle_id": vehicle_id, "date": TRAVEL_DATE, "passengers": [passenger(seat) for seat in seats]},
        )


class TrackingAPITests(FleetAPITestCase):
    def test_vehicle_api_returns_published_positions(self):
        FleetStore().publish_positions(
            [
                PositionSnapshot(
                    vehicle_id="bus-001",
                    route_id="route-001",
                    lat=28.5,
                    lon=77.1,
                    waypoint_index=0,
                    progress=0.5,
                    timestamp=datetime(2026, 5, 1, 8, 0, tzinfo=timezone.utc),
                )
            ]
        )
        response = self.client.get("/api/vehicles/")
        self.assertEqual(response.status_code, 200)

        payload = response.json()
        self.assertIn("timestamp", payload)
        self.assertEqual(len(payload["vehicles"]), 1)
        vehicle = payload["vehicles"][0]
        self.assertEqual(vehicle["uid"], "bus-001")
        self.assertEqual(vehicle["location"], {"lat": 28.5, "lng": 77.1})
        self.assertEqual(vehicle["route"]["name"], "Delhi to Jaipur")

    def test_vehicle_api_is_empty_before_the_simulator_runs(self):
        response = self.client.get("/api/vehicles/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["vehicles"], [])

    def test_route_catalog(self):
        response = self.client.get("/api/routes/")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual([route["id"] for route in payload["routes"]], ["route-001", "route-002", "route-003"])
        self.assertIn("lat", payload["center_location"])


class TripSearchAPITests(FleetAPITestCase):
    def test_search_filters_by_origin_and_destination(self):
        response = self.client.get("/api/trips/", {"from": "delhi", "to": "agra", "date": TRAVEL_DATE})
        self.assertEqual(response.status_code, 200)
        trips = response.json()["trips"]
        self.assertEqual([trip["vehicle_id"] for trip in trips], ["bus-002"])
        self.assertEqual(trips[0]["available_seats"], 30)
        self.assertEqual(trips[0]["base_price"], "900.00")
        self.assertEqual(trips[0]["departure_time"], "10:00")

    def test_search_without_filters_lists_every_trip(self):
        response = self.client.get("/api/trips/")
        self.assertEqual(len(response.json()["trips"]), 3)

    def test_search_rejects_bad_dates(self):
        response = self.client.get("/api/trips/", {"date": "01/05/2026"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("date", response.json()["fields"])

    def test_seat_map_reflects_bookings(self):
        self.client.force_login(self.user)
        self.book([2, 3])

        response = self.client.get(f"/api/trips/bus-001/{TRAVEL_DATE}/seats/")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["allocated"], [2, 3])
        self.assertEqual(payload["capacity"], 40)
        self.assertNotIn(2, payload["available"])

    def test_seat_map_errors(self):
        self.assertEqual(self.client.get(f"/api/trips/bus-404/{TRAVEL_DATE}/seats/").status_code, 404)
        self.assertEqual(self.client.get("/api/trips/bus-001/tomorrow/seats/").status_code, 400)


class BookingAPITests(FleetAPITestCase):
    def test_booking_requires_login(self):
        response = self.book([1])
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"], "unauthenticated")
        self.assertEqual(self.client.get("/api/bookings/").status_code, 401)

    def test_successful_booking(self):
        self.client.force_login(self.user)
        response = self.book([1, 2])

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["seats"], [1, 2])
        self.assertEqual(payload["total_fare"], "1500.00")
        self.assertEqual(payload["status"], "Confirmed")
        uuid.UUID(payload["booking_id"])

        listed = self.client.get("/api/bookings/").json()["bookings"]
        self.assertEqual([booking["booking_id"] for booking in listed], [payload["booking_id"]])

    def test_conflicting_booking_is_rejected(self):
        self.client.force_login(self.user)
        self.book([5])
        response = self.book([4, 5])
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["seats"], [5])

    def test_invalid_passenger_data(self):
        self.client.force_login(self.user)
        response = self.post_json(
            "/api/bookings/",
            {"vehicle_id": "bus-001", "date": TRAVEL_DATE, "passengers": [passenger(1, age=200)]},
        )
        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["error"], "invalid_passenger_data")
        self.assertIn("age", payload["passengers"][0])

    def test_unknown_vehicle(self):
        self.client.force_login(self.user)
        self.assertEqual(self.book([1], vehicle_id="bus-404").status_code, 404)

    def test_malformed_requests(self):
        self.client.force_login(self.user)
        response = self.client.post("/api/bookings/", data="{not json", content_type="application/json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Invalid JSON"})

        response = self.post_json("/api/bookings/", {"vehicle_id": "bus-001", "passengers": [passenger(1)]})
        self.assertEqual(response.status_code, 400)
        self.assertIn("date", response.json()["fields"])

    def test_store_failure_returns_service_unavailable(self):
        self.client.force_login(self.user)
        with mock.patch.object(FleetStore, "append_booking", side_effect=PersistenceFailure("disk full")):
            response = self.book([7])
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["error"], "persistence_failed")

        self.assertEqual(self.book([7]).status_code, 201)

    def test_cancel_booking(self):
        self.client.force_login(self.user)
        booking_id = self.book([8]).json()["booking_id"]

        response = self.client.post(f"/api/bookings/{booking_id}/cancel/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "Cancelled")
        self.assertEqual(self.book([8]).status_code, 201)

    def test_cancel_someone_elses_booking(self):
        self.client.force_login(self.user)
        booking_id = self.book([8]).json()["booking_id"]

        other = get_user_model().objects.create_user(username="ravi", password="not-used")
        self.client.force_login(other)
        response = self.client.post(f"/api/bookings/{booking_id}/cancel/")
        self.assertEqual(response.status_code, 404)

    def test_ledger_is_restored_from_saved_bookings(self):
        self.client.force_login(self.user)
        self.book([11])

        apps.get_app_config("fleet").reset()
        response = self.book([11])
        self.assertEqual(response.status_code, 409)
