"""
Immutable in-memory view of the route and coach catalog.

The simulator, the seat ledger and the booking service only ever see these
records; the database rows they are built from are never mutated here.
"""
from __future__ import annotations

import datetime
import json
import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from functools import cached_property
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from shapely.geometry import LineString

from .conf import fleet_setting
from .geo import Coordinate, decode_polyline6, haversine_km

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteGraph:
    route_id: str
    waypoints: Tuple[Coordinate, ...]
    name: str = ""
    origin: str = ""
    destination: str = ""
    stoppages: Tuple[str, ...] = ()
    color: str = ""

    def __post_init__(self):
        points = tuple((float(lat), float(lon)) for lat, lon in self.waypoints)
        object.__setattr__(self, "waypoints", points)
        object.__setattr__(self, "stoppages", tuple(self.stoppages))

    @property
    def is_simulatable(self) -> bool:
        return len(self.waypoints) >= 2

    def next_index(self, index: int) -> int:
        return (index + 1) % len(self.waypoints)

    @cached_property
    def line(self) -> LineString:
        return LineString(self.waypoints)

    @cached_property
    def bounds(self) -> Dict[str, float]:
        min_lat, min_lon, max_lat, max_lon = self.line.bounds
        return {"min_lat": min_lat, "min_lng": min_lon, "max_lat": max_lat, "max_lng": max_lon}

    @cached_property
    def center(self) -> Dict[str, float]:
        centroid = self.line.envelope.centroid
        return {"lat": round(centroid.x, 6), "lng": round(centroid.y, 6)}

    @cached_property
    def length_km(self) -> float:
        return sum(
            haversine_km(start, end)
            for start, end in zip(self.waypoints[:-1], self.waypoints[1:])
        )


@dataclass(frozen=True)
class VehicleSpec:
    vehicle_id: str
    route_id: Optional[str]
    capacity: int
    base_price: Decimal
    operator: str = ""
    coach_type: str = ""
    origin: str = ""
    destination: str = ""
    departure_time: Optional[datetime.time] = None
    arrival_time: Optional[datetime.time] = None
    is_disabled: bool = False

    def __post_init__(self):
        if self.capacity <= 0:
            raise ValueError(f"vehicle {self.vehicle_id}: capacity must be positive")
        price = Decimal(str(self.base_price))
        if price < 0:
            raise ValueError(f"vehicle {self.vehicle_id}: base price must not be negative")
        object.__setattr__(self, "base_price", price)


@dataclass
class Catalog:
    routes: Dict[str, RouteGraph] = field(default_factory=dict)
    vehicles: Dict[str, VehicleSpec] = field(default_factory=dict)

    @classmethod
    def build(cls, routes: Iterable[RouteGraph] = (), vehicles: Iterable[VehicleSpec] = ()) -> "Catalog":
        return cls(
            routes={route.route_id: route for route in routes},
            vehicles={vehicle.vehicle_id: vehicle for vehicle in vehicles},
        )

    @classmethod
    def from_models(cls) -> "Catalog":
        """
        Build the catalog from the database.

        A route whose waypoints cannot be read is kept with no waypoints, so
        its vehicles are skipped by the simulator. A vehicle that fails
        validation is left out.
        """
        from .models import Route, Vehicle

        routes = [route_from_model(route) for route in Route.objects.all()]
        vehicles = []
        for row in Vehicle.objects.all():
            try:
                vehicles.append(vehicle_from_model(row))
            except (TypeError, ValueError, ArithmeticError) as error:
                logger.warning("Vehicle %s left out of the catalog: %s", row.code, error)
        catalog = cls.build(routes, vehicles)
        logger.info("Catalog loaded: %d routes, %d vehicles", len(routes), len(vehicles))
        return catalog

    def route(self, route_id: Optional[str]) -> Optional[RouteGraph]:
        if route_id is None:
            return None
        return self.routes.get(route_id)

    def vehicle(self, vehicle_id: str) -> Optional[VehicleSpec]:
        return self.vehicles.get(vehicle_id)

    def route_for(self, vehicle: VehicleSpec) -> Optional[RouteGraph]:
        return self.route(vehicle.route_id)

    def search(self, origin: str = "", destination: str = "") -> List[VehicleSpec]:
        """Vehicles whose origin and destination contain the given text (case-insensitive)."""
        origin = origin.strip().lower()
        destination = destination.strip().lower()
        return [
            vehicle
            for vehicle in sorted(self.vehicles.values(), key=_departure_key)
            if (not origin or origin in vehicle.origin.lower())
            and (not destination or destination in vehicle.destination.lower())
        ]


def _departure_key(vehicle: VehicleSpec):
    return (vehicle.departure_time or datetime.time.min, vehicle.vehicle_id)


def parse_waypoints(path: str, polyline: str = "") -> List[Coordinate]:
    """Read a stored route; raises ``ValueError`` or ``TypeError`` when it is malformed."""
    if path.strip():
        points = [(float(lat), float(lon)) for lat, lon in json.loads(path)]
    elif polyline:
        points = decode_polyline6(polyline)
    else:
        return []
    if not all(math.isfinite(lat) and math.isfinite(lon) for lat, lon in points):
        raise ValueError("waypoints must be finite numbers")
    return points


def route_from_model(route) -> RouteGraph:
    try:
        waypoints = parse_waypoints(route.path, route.polyline)
    except (TypeError, ValueError) as error:
        logger.warning("Route %s has unreadable waypoints and will not be simulated: %s", route.code, error)
        waypoints = []
    stoppages = route.stoppages if isinstance(route.stoppages, list) else []
    return RouteGraph(
        route_id=route.code,
        waypoints=waypoints,
        name=route.name,
        origin=route.origin,
        destination=route.destination,
        stoppages=[str(stop) for stop in stoppages],
        color=route.color or fleet_setting("default_route_color"),
    )


def vehicle_from_model(vehicle) -> VehicleSpec:
    return VehicleSpec(
        vehicle_id=vehicle.code,
        route_id=vehicle.route_id,
        capacity=vehicle.capacity,
        base_price=vehicle.base_price,
        operator=vehicle.operator,
        coach_type=vehicle.coach_type,
        origin=vehicle.origin,
        destination=vehicle.destination,
        departure_time=vehicle.departure_time,
        arrival_time=vehicle.arrival_time,
        is_disabled=vehicle.is_disabled,
    )


def waypoints_to_path(waypoints: Sequence[Coordinate]) -> str:
    return json.dumps([[lat, lon] for lat, lon in waypoints])
