"""
Read-only projection of the latest published vehicle positions.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from .catalog import Catalog, RouteGraph
from .geo import bearing_deg
from .simulation import PositionSnapshot

logger = logging.getLogger(__name__)


class TrackingFeed:
    def __init__(self, store, catalog: Catalog):
        self.store = store
        self.catalog = catalog
        self._latest: Dict[str, PositionSnapshot] = {}
        self._lock = threading.Lock()
        self._unsubscribe: Optional[Callable[[], None]] = None

    def attach(self) -> None:
        """Subscribe to the store: current contents now, each published pass afterwards."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe_positions(self._receive)
            logger.debug("Tracking feed attached with %d vehicles", len(self._latest))

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def refresh(self) -> None:
        self._receive(self.store.current_positions())

    def _receive(self, snapshots: Sequence[PositionSnapshot]) -> None:
        with self._lock:
            for snapshot in snapshots:
                current = self._latest.get(snapshot.vehicle_id)
                if current is None or current.timestamp <= snapshot.timestamp:
                    self._latest[snapshot.vehicle_id] = snapshot

    def positions(self) -> List[PositionSnapshot]:
        with self._lock:
            return [self._latest[vehicle_id] for vehicle_id in sorted(self._latest)]

    def position(self, vehicle_id: str) -> Optional[PositionSnapshot]:
        with self._lock:
            return self._latest.get(vehicle_id)

    def snapshot(self) -> Dict:
        """
        Provide a ready-to-use snapshot for templates and APIs.
        """
        vehicles = [self._vehicle_payload(snapshot) for snapshot in self.positions()]
        routes = [
            route for route in sorted(self.catalog.routes.values(), key=lambda r: r.route_id)
            if route.is_simulatable
        ]
        center = routes[0].center if routes else None

        return {
            "vehicles": vehicles,
            "center_location": center,
            "generation_time": datetime.now(timezone.utc).isoformat(),
            "route_catalog": [_route_payload(route) for route in routes],
        }

    def _vehicle_payload(self, snapshot: PositionSnapshot) -> Dict:
        vehicle = self.catalog.vehicle(snapshot.vehicle_id)
        route = self.catalog.route(snapshot.route_id)
        heading = None
        if route is not None and route.is_simulatable and snapshot.waypoint_index < len(route.waypoints):
            target = route.waypoints[route.next_index(snapshot.waypoint_index)]
            if target != snapshot.position:
                heading = round(bearing_deg(snapshot.position, target), 1)

        return {
            "uid": snapshot.vehicle_id,
            "operator": vehicle.operator if vehicle else "",
            "coach_type": vehicle.coach_type if vehicle else "",
            "location": {"lat": round(snapshot.lat, 6), "lng": round(snapshot.lon, 6)},
            "heading": heading,
            "last_update": snapshot.timestamp.isoformat(),
            "route": {
                "id": snapshot.route_id,
                "name": route.name if route else "",
                "color": route.color if route else "",
                "waypoint_index": snapshot.waypoint_index,
                "progress": round(snapshot.progress, 3),
            },
        }


def _route_payload(route: RouteGraph) -> Dict:
    return {
        "id": route.route_id,
        "name": route.name,
        "color": route.color,
        "origin": route.origin,
        "destination": route.destination,
        "stoppages": list(route.stoppages),
        "distance_km": round(route.length_km, 2),
        "bounds": route.bounds,
        "path": [{"lat": round(lat, 6), "lng": round(lon, 6)} for lat, lon in route.waypoints],
    }
