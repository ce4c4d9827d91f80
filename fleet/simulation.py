"""
Position simulation for coaches looping along their routes.

Every tick moves each active vehicle ``1 / step_count`` of the way from the
waypoint it last departed towards the next one. On the last sub-step the
vehicle snaps onto the next waypoint and starts the following segment. After
the final waypoint the route continues from waypoint 0: service never ends
and never reverses.
"""
from __future__ import annotations

import dataclasses
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from .catalog import Catalog, RouteGraph, VehicleSpec
from .exceptions import PersistenceFailure, RouteIntegrityWarning
from .geo import Coordinate, lerp

logger = logging.getLogger(__name__)


@dataclass
class VehicleState:
    vehicle_id: str
    waypoint_index: int = 0
    step: int = 0
    progress: float = 0.0
    last_tick: Optional[datetime] = None


@dataclass(frozen=True)
class PositionSnapshot:
    vehicle_id: str
    route_id: str
    lat: float
    lon: float
    waypoint_index: int
    progress: float
    timestamp: datetime

    @property
    def position(self) -> Coordinate:
        return (self.lat, self.lon)


@dataclass(frozen=True)
class TickReport:
    tick: int
    snapshots: Tuple[PositionSnapshot, ...] = ()
    skipped: Tuple[RouteIntegrityWarning, ...] = ()


def advance(
    state: VehicleState, route: RouteGraph, step_count: int, now: Optional[datetime] = None
) -> Tuple[VehicleState, Coordinate]:
    """
    Advance one vehicle by a single sub-step along ``route``.

    Returns the new state and the position to publish; ``state`` is left
    untouched.
    """
    if step_count < 1:
        raise ValueError("step_count must be at least 1")
    if not route.is_simulatable:
        raise RouteIntegrityWarning(state.vehicle_id, route.route_id, "route has fewer than 2 waypoints")
    if not 0 <= state.waypoint_index < len(route.waypoints):
        raise RouteIntegrityWarning(
            state.vehicle_id,
            route.route_id,
            f"waypoint index {state.waypoint_index} outside route of {len(route.waypoints)} waypoints",
        )

    now = now or datetime.now(timezone.utc)
    next_index = route.next_index(state.waypoint_index)
    step = state.step + 1

    if step < step_count:
        progress = step / step_count
        position = lerp(route.waypoints[state.waypoint_index], route.waypoints[next_index], progress)
        updated = dataclasses.replace(state, step=step, progress=progress, last_tick=now)
    else:
        position = route.waypoints[next_index]
        updated = dataclasses.replace(state, waypoint_index=next_index, step=0, progress=0.0, last_tick=now)

    return updated, position


class PositionSimulator:
    """
    Owns one ``VehicleState`` per registered vehicle and publishes a batch of
    snapshots through the store on every pass.
    """

    def __init__(self, catalog: Catalog, store, step_count: int = 100, clock: Callable[[], datetime] = None):
        if step_count < 1:
            raise ValueError("step_count must be at least 1")
        self.catalog = catalog
        self.store = store
        self.step_count = step_count
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._states: Dict[str, VehicleState] = {}
        self._stopped: set = set()
        self._ticks = 0

    def register(self, vehicle: VehicleSpec) -> VehicleState:
        if vehicle.vehicle_id not in self._states:
            self._states[vehicle.vehicle_id] = VehicleState(vehicle_id=vehicle.vehicle_id)
        if vehicle.is_disabled:
            self._stopped.add(vehicle.vehicle_id)
        return dataclasses.replace(self._states[vehicle.vehicle_id])

    def register_all(self) -> int:
        for vehicle in self.catalog.vehicles.values():
            self.register(vehicle)
        return len(self._states)

    def stop(self, vehicle_id: str) -> None:
        self._stopped.add(vehicle_id)

    def resume(self, vehicle_id: str) -> None:
        self._stopped.discard(vehicle_id)

    def state(self, vehicle_id: str) -> VehicleState:
        return dataclasses.replace(self._states[vehicle_id])

    def active_vehicle_ids(self) -> List[str]:
        return sorted(vid for vid in self._states if vid not in self._stopped)

    @property
    def ticks(self) -> int:
        return self._ticks

    def tick(self) -> TickReport:
        """Run one pass over every active vehicle and publish the results as one batch."""
        now = self._clock()
        self._ticks += 1
        snapshots: List[PositionSnapshot] = []
        skipped: List[RouteIntegrityWarning] = []

        for vehicle_id in self.active_vehicle_ids():
            try:
                snapshots.append(self._advance_vehicle(vehicle_id, now))
            except RouteIntegrityWarning as warning:
                logger.warning("Skipping vehicle on tick %d: %s", self._ticks, warning)
                skipped.append(warning)

        if snapshots:
            try:
                self.store.publish_positions(snapshots)
            except PersistenceFailure:
                logger.exception("Could not publish tick %d", self._ticks)
        return TickReport(tick=self._ticks, snapshots=tuple(snapshots), skipped=tuple(skipped))

    def _advance_vehicle(self, vehicle_id: str, now: datetime) -> PositionSnapshot:
        vehicle = self.catalog.vehicle(vehicle_id)
        if vehicle is None:
            raise RouteIntegrityWarning(vehicle_id, None, "vehicle is not in the catalog")
        route = self.catalog.route_for(vehicle)
        if route is None:
            raise RouteIntegrityWarning(vehicle_id, vehicle.route_id, "route cannot be resolved")

        state = self._states[vehicle_id]
        if state.waypoint_index >= len(route.waypoints) and route.is_simulatable:
            logger.warning(
                "Vehicle %s index %d is outside route %s; restarting from waypoint 0",
                vehicle_id,
                state.waypoint_index,
                route.route_id,
            )
            state = VehicleState(vehicle_id=vehicle_id)

        updated, (lat, lon) = advance(state, route, self.step_count, now)
        self._states[vehicle_id] = updated
        return PositionSnapshot(
            vehicle_id=vehicle_id,
            route_id=route.route_id,
            lat=lat,
            lon=lon,
            waypoint_index=updated.waypoint_index,
            progress=updated.progress,
            timestamp=now,
        )


class TickDriver:
    """
    Runs ``simulator.tick()`` once per ``interval`` seconds.

    Passes never overlap. If a pass overruns, the ticks it missed are skipped
    rather than run back to back. ``stop()`` lets the current pass finish.
    """

    def __init__(
        self,
        simulator: PositionSimulator,
        interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.simulator = simulator
        self.interval = interval
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.last_report: Optional[TickReport] = None

    def run(self, max_ticks: Optional[int] = None) -> int:
        """Block running passes until stopped or ``max_ticks`` passes have run."""
        logger.info(
            "Simulation started: %d vehicles, every %.2fs, %d steps per segment",
            len(self.simulator.active_vehicle_ids()),
            self.interval,
            self.simulator.step_count,
        )
        passes = 0
        deadline = self._clock()
        while not self._stop_event.is_set():
            self.last_report = self.simulator.tick()
            passes += 1
            if max_ticks is not None and passes >= max_ticks:
                break

            deadline += self.interval
            now = self._clock()
            if now > deadline:
                missed = int((now - deadline) // self.interval) + 1
                logger.warning("Simulation pass overran; skipping %d tick(s)", missed)
                deadline += missed * self.interval
            self._stop_event.wait(deadline - now)

        logger.info("Simulation stopped after %d passes", passes)
        return passes

    def start(self) -> threading.Thread:
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("simulation already running")
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_in_thread, name="fleet-simulator", daemon=True)
        self._thread.start()
        return self._thread

    def _run_in_thread(self) -> None:
        try:
            self.run()
        finally:
            close = getattr(self.simulator.store, "close", None)
            if close is not None:
                close()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
