import datetime
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from fleet.catalog import waypoints_to_path
from fleet.models import Booking, Route, Vehicle, VehiclePosition
from fleet.sample_data import ROUTE_DEFINITIONS, VEHICLE_PROFILES


def _parse_time(value):
    return datetime.datetime.strptime(value, "%H:%M").time() if value else None


class Command(BaseCommand):
    help = "Seed the sample route and coach catalog when it is empty."

    def add_arguments(self, parser):
        parser.add_argument(
            "--reset",
            action="store_true",
            help="Delete existing routes, coaches, positions and bookings first.",
        )

    @transaction.atomic
    def handle(self, *args, **options):
        if options["reset"]:
            Booking.objects.all().delete()
            VehiclePosition.objects.all().delete()
            Vehicle.objects.all().delete()
            Route.objects.all().delete()
            self.stdout.write("Existing catalog removed.")

        if Route.objects.exists() or Vehicle.objects.exists():
            self.stdout.write("Catalog already populated; nothing to do.")
            return

        for definition in ROUTE_DEFINITIONS:
            Route.objects.create(
                code=definition["code"],
                name=definition["name"],
                origin=definition["origin"],
                destination=definition["destination"],
                color=definition["color"],
                stoppages=list(definition["stoppages"]),
                path=waypoints_to_path(definition["waypoints"]),
            )

        for profile in VEHICLE_PROFILES:
            Vehicle.objects.create(
                code=profile["code"],
                operator=profile["operator"],
                coach_type=profile["coach_type"],
                license_plate=profile["license_plate"],
                capacity=profile["capacity"],
                base_price=Decimal(profile["base_price"]),
                route_id=profile["route"],
                origin=profile["origin"],
                destination=profile["destination"],
                departure_time=_parse_time(profile["departure_time"]),
                arrival_time=_parse_time(profile["arrival_time"]),
            )

        self.stdout.write(
            self.style.SUCCESS(
                f"Loaded {len(ROUTE_DEFINITIONS)} routes and {len(VEHICLE_PROFILES)} coaches."
            )
        )
