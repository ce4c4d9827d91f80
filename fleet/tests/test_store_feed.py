import io
from datetime import datetime, timedelta, timezone
from unittest import mock

from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase

from fleet.catalog import Catalog
from fleet.exceptions import PersistenceFailure
from fleet.feed import TrackingFeed
from fleet.models import Route, Vehicle, VehiclePosition
from fleet.simulation import PositionSimulator, PositionSnapshot
from fleet.store import FleetStore

START = datetime(2026, 5, 1, 8, 0, tzinfo=timezone.utc)


def snapshot(vehicle_id="bus-001", route_id="route-001", lat=28.6139, lon=77.2090, index=0, progress=0.0, at=START):
    return PositionSnapshot(
        vehicle_id=vehicle_id,
        route_id=route_id,
        lat=lat,
        lon=lon,
        waypoint_index=index,
        progress=progress,
        timestamp=at,
    )


class FleetStoreTests(TestCase):
    def setUp(self):
        call_command("load_catalog", stdout=io.StringIO())
        self.store = FleetStore()

    def test_publish_upserts_one_row_per_vehicle(self):
        self.store.publish_positions([snapshot(), snapshot("bus-002", "route-002")])
        self.store.publish_positions([snapshot(lat=28.5, progress=0.25, at=START + timedelta(seconds=1))])

        self.assertEqual(VehiclePosition.objects.count(), 2)
        positions = self.store.current_positions()
        self.assertEqual([p.vehicle_id for p in positions], ["bus-001", "bus-002"])
        self.assertEqual(positions[0].lat, 28.5)
        self.assertEqual(positions[0].progress, 0.25)
        self.assertEqual(positions[0].timestamp, START + timedelta(seconds=1))

    def test_database_error_becomes_persistence_failure(self):
        with mock.patch.object(VehiclePosition.objects, "update_or_create", side_effect=DatabaseError("locked")):
            with self.assertRaises(PersistenceFailure):
                self.store.publish_positions([snapshot()])

    def test_subscriber_sees_current_contents_then_each_batch(self):
        self.store.publish_positions([snapshot()])
        received = []

        unsubscribe = self.store.subscribe_positions(received.append)
        self.assertEqual([s.vehicle_id for s in received[0]], ["bus-001"])

        self.store.publish_positions([snapshot("bus-002", "route-002")])
        self.assertEqual(len(received), 2)
        self.assertEqual([s.vehicle_id for s in received[1]], ["bus-002"])

        unsubscribe()
        self.store.publish_positions([snapshot("bus-003", "route-003")])
        self.assertEqual(len(received), 2)

    def test_failing_subscriber_does_not_block_others(self):
        received = []

        def broken(snapshots):
            if snapshots:
                raise RuntimeError("listener crashed")

        unsubscribe_broken = self.store.subscribe_positions(broken)
        unsubscribe_ok = self.store.subscribe_positions(received.append)
        self.addCleanup(unsubscribe_broken)
        self.addCleanup(unsubscribe_ok)

        with self.assertLogs("fleet.store", level="ERROR"):
            self.store.publish_positions([snapshot()])
        self.assertEqual(len(received), 2)

    def test_failed_first_read_leaves_no_subscription(self):
        received = []
        with mock.patch.object(FleetStore, "current_positions", side_effect=PersistenceFailure("locked")):
            with self.assertRaises(PersistenceFailure):
                self.store.subscribe_positions(received.append)

        self.store.publish_positions([snapshot()])
        self.assertEqual(received, [])

    def test_delivery_finishes_before_publish_returns(self):
        seen_during_publish = []
        unsubscribe = self.store.subscribe_positions(lambda snapshots: seen_during_publish.append(len(snapshots)))
        self.addCleanup(unsubscribe)

        self.store.publish_positions([snapshot(), snapshot("bus-002", "route-002")])
        self.assertEqual(seen_during_publish, [0, 2])

    def test_subscriptions_are_per_store(self):
        received = []
        unsubscribe = self.store.subscribe_positions(received.append)
        self.addCleanup(unsubscribe)
        FleetStore().publish_positions([snapshot()])
        self.assertEqual(len(received), 1)

    def test_simulator_publishes_through_the_store(self):
        simulator = PositionSimulator(Catalog.from_models(), self.store, step_count=4)
        simulator.register_all()
        simulator.tick()

        rows = {row.vehicle_id: row for row in VehiclePosition.objects.all()}
        self.assertEqual(set(rows), {"bus-001", "bus-002", "bus-003"})
        self.assertEqual(rows["bus-001"].route_code, "route-001")
        self.assertEqual(rows["bus-001"].progress, 0.25)


class TrackingFeedTests(TestCase):
    def setUp(self):
        call_command("load_catalog", stdout=io.StringIO())
        self.store = FleetStore()
        self.feed = TrackingFeed(self.store, Catalog.from_models())
        self.addCleanup(self.feed.detach)

    def test_attached_feed_follows_published_positions(self):
        self.store.publish_positions([snapshot()])
        self.feed.attach()
        self.assertEqual(self.feed.position("bus-001").lat, 28.6139)

        self.store.publish_positions([snapshot(lat=28.0, at=START + timedelta(seconds=5))])
        self.assertEqual(self.feed.position("bus-001").lat, 28.0)

    def test_older_snapshots_are_ignored(self):
        self.feed.attach()
        self.store.publish_positions([snapshot(lat=28.0, at=START + timedelta(seconds=5))])
        self.feed._receive([snapshot(lat=1.0, at=START)])
        self.assertEqual(self.feed.position("bus-001").lat, 28.0)

    def test_detached_feed_stops_updating(self):
        self.feed.attach()
        self.feed.detach()
        self.store.publish_positions([snapshot()])
        self.assertIsNone(self.feed.position("bus-001"))
        self.feed.refresh()
        self.assertIsNotNone(self.feed.position("bus-001"))

    def test_snapshot_payload(self):
        self.store.publish_positions([snapshot(), snapshot("bus-002", "route-002", index=1, progress=0.5)])
        self.feed.refresh()

        payload = self.feed.snapshot()
        self.assertIn("generation_time", payload)
        self.assertEqual(len(payload["route_catalog"]), 3)
        self.assertEqual(payload["center_location"], self.feed.catalog.route("route-001").center)

        vehicle = payload["vehicles"][0]
        self.assertEqual(vehicle["uid"], "bus-001")
        self.assertEqual(vehicle["operator"], "Swift Travels")
        self.assertEqual(vehicle["location"], {"lat": 28.6139, "lng": 77.209})
        self.assertIsNotNone(vehicle["heading"])
        self.assertEqual(vehicle["route"]["id"], "route-001")
        self.assertEqual(payload["vehicles"][1]["route"]["progress"], 0.5)

        route = payload["route_catalog"][0]
        for key in ("id", "name", "color", "stoppages", "distance_km", "bounds", "path"):
            self.assertIn(key, route)
        self.assertGreater(route["distance_km"], 0)


class MalformedCatalogTests(TestCase):
    def setUp(self):
        call_command("load_catalog", stdout=io.StringIO())
        Route.objects.create(code="route-bad", name="Broken path", path="not json")
        Route.objects.create(code="route-cut", name="Cut polyline", polyline="_p~iF~ps|U_")
        Route.objects.create(code="route-odd", name="Three numbers", path="[[1, 2, 3], [4, 5, 6]]")
        Vehicle.objects.create(
            code="bus-bad", operator="Lost Coaches", capacity=20, base_price=500, route_id="route-bad"
        )
        Vehicle.objects.create(code="bus-empty", operator="No Seats", capacity=0, base_price=500, route_id="route-001")

    def test_bad_rows_do_not_stop_the_catalog(self):
        with self.assertLogs("fleet.catalog", level="WARNING") as logs:
            catalog = Catalog.from_models()

        for code in ("route-bad", "route-cut", "route-odd"):
            self.assertEqual(catalog.route(code).waypoints, ())
        self.assertEqual(len(catalog.route("route-001").waypoints), 6)
        self.assertIsNotNone(catalog.vehicle("bus-bad"))
        self.assertIsNone(catalog.vehicle("bus-empty"))
        self.assertTrue(any("bus-empty" in line for line in logs.output))

    def test_vehicle_on_unreadable_route_is_skipped_by_the_simulator(self):
        simulator = PositionSimulator(Catalog.from_models(), FleetStore(), step_count=4)
        simulator.register_all()
        with self.assertLogs("fleet.simulation", level="WARNING"):
            report = simulator.tick()

        self.assertEqual([warning.vehicle_id for warning in report.skipped], ["bus-bad"])
        self.assertEqual(len(report.snapshots), 3)

    def test_endpoints_keep_working(self):
        routes = self.client.get("/api/routes/")
        self.assertEqual(routes.status_code, 200)
        self.assertNotIn("route-bad", [route["id"] for route in routes.json()["routes"]])
        self.assertEqual(self.client.get("/api/trips/").status_code, 200)
        self.assertEqual(self.client.get("/api/vehicles/").status_code, 200)
