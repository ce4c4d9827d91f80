"""
In-process record of which seats are taken on each trip.

A trip is a vehicle on a travel date. Each trip has its own lock, so
reservations for the same trip are serialized while different trips never
wait on each other.
"""
from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from .catalog import VehicleSpec
from .exceptions import InvalidSeatRequest, SeatConflict

logger = logging.getLogger(__name__)

TripKey = Tuple[str, date]


@dataclass(frozen=True)
class ReservationToken:
    """Proof that ``seats`` were exclusively claimed for the trip."""

    vehicle_id: str
    travel_date: date
    seats: Tuple[int, ...]
    token_id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass
class _TripEntry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    seats: Set[int] = field(default_factory=set)


class SeatLedger:
    """
    Lock order is always entry lock, then registry lock. An entry is only
    removed while its own lock is held, so a reservation that holds the lock
    and finds its entry still registered cannot lose its seats.
    """

    def __init__(self):
        self._entries: Dict[TripKey, _TripEntry] = {}
        self._registry_lock = threading.Lock()

    def _entry(self, vehicle_id: str, travel_date: date) -> _TripEntry:
        key = (vehicle_id, travel_date)
        with self._registry_lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _TripEntry()
            return entry

    def _existing_entry(self, vehicle_id: str, travel_date: date) -> Optional[_TripEntry]:
        with self._registry_lock:
            return self._entries.get((vehicle_id, travel_date))

    def _is_registered(self, key: TripKey, entry: _TripEntry) -> bool:
        with self._registry_lock:
            return self._entries.get(key) is entry

    @staticmethod
    def _validate(vehicle: VehicleSpec, seats: Iterable[int]) -> Tuple[int, ...]:
        requested = tuple(seats)
        if not requested:
            raise InvalidSeatRequest("at least one seat must be requested")
        if len(set(requested)) != len(requested):
            raise InvalidSeatRequest(f"duplicate seats in request {list(requested)}")
        outside = [
            seat for seat in requested
            if isinstance(seat, bool) or not isinstance(seat, int) or not 1 <= seat <= vehicle.capacity
        ]
        if outside:
            raise InvalidSeatRequest(
                f"seats {outside} outside 1..{vehicle.capacity} on {vehicle.vehicle_id}"
            )
        return requested

    def reserve(self, vehicle: VehicleSpec, travel_date: date, seats: Iterable[int]) -> ReservationToken:
        """
        Claim every seat in ``seats`` or none of them.

        Raises ``SeatConflict`` naming the seats already held; the ledger is
        unchanged in that case.
        """
        requested = self._validate(vehicle, seats)
        key = (vehicle.vehicle_id, travel_date)
        while True:
            entry = self._entry(vehicle.vehicle_id, travel_date)
            with entry.lock:
                if not self._is_registered(key, entry):
                    # emptied and dropped by a release since we looked it up
                    continue
                taken = entry.seats.intersection(requested)
                if taken:
                    logger.warning(
                        "Seat conflict on %s for %s: %s already taken",
                        vehicle.vehicle_id,
                        travel_date,
                        sorted(taken),
                    )
                    raise SeatConflict(vehicle.vehicle_id, travel_date, taken)
                entry.seats.update(requested)
                return ReservationToken(vehicle_id=vehicle.vehicle_id, travel_date=travel_date, seats=requested)

    def release(self, vehicle_id: str, travel_date: date, seats: Iterable[int]) -> None:
        key = (vehicle_id, travel_date)
        entry = self._existing_entry(vehicle_id, travel_date)
        if entry is None:
            return
        with entry.lock:
            entry.seats.difference_update(seats)
            if not entry.seats:
                with self._registry_lock:
                    if self._entries.get(key) is entry:
                        del self._entries[key]

    def allocated(self, vehicle_id: str, travel_date: date) -> FrozenSet[int]:
        entry = self._existing_entry(vehicle_id, travel_date)
        if entry is None:
            return frozenset()
        with entry.lock:
            return frozenset(entry.seats)

    def available(self, vehicle: VehicleSpec, travel_date: date) -> List[int]:
        taken = self.allocated(vehicle.vehicle_id, travel_date)
        return [seat for seat in range(1, vehicle.capacity + 1) if seat not in taken]

    def trip_count(self) -> int:
        """Number of trips currently holding at least one seat."""
        with self._registry_lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._registry_lock:
            self._entries.clear()
