"""
Turns a seat request into a durable booking.

The ledger is consulted first; the booking row is only written once the
seats are held, and the seats are handed back if that write fails.
"""
from __future__ import annotations

import dataclasses
import logging
import uuid
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .catalog import Catalog, VehicleSpec
from .exceptions import (
    BookingNotFound,
    InvalidPassengerData,
    InvalidSeatRequest,
    PersistenceFailed,
    PersistenceFailure,
    SeatConflict,
    SeatsUnavailable,
    Unauthenticated,
    VehicleNotFound,
)
from .forms import PassengerForm
from .ledger import ReservationToken, SeatLedger

logger = logging.getLogger(__name__)

STATUS_CONFIRMED = "Confirmed"
STATUS_CANCELLED = "Cancelled"


@dataclass(frozen=True)
class Passenger:
    seat: int
    name: str
    gender: str
    age: int

    def as_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass(frozen=True)
class BookingRecord:
    booking_id: uuid.UUID
    owner_id: str
    vehicle_id: str
    route_id: Optional[str]
    travel_date: date
    seats: Tuple[int, ...]
    passengers: Tuple[Passenger, ...]
    total_fare: Decimal
    status: str = STATUS_CONFIRMED
    created_at: Optional[datetime] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "booking_id": str(self.booking_id),
            "vehicle_id": self.vehicle_id,
            "route_id": self.route_id,
            "date": self.travel_date.isoformat(),
            "seats": list(self.seats),
            "passengers": [passenger.as_dict() for passenger in self.passengers],
            "total_fare": str(self.total_fare),
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def compute_fare(vehicle: VehicleSpec, seat_count: int) -> Decimal:
    return vehicle.base_price * seat_count


def clean_passengers(seat_assignments: Sequence[Mapping], capacity: int) -> List[Passenger]:
    """Validate one record per seat; raises ``InvalidPassengerData`` listing every problem."""
    if not seat_assignments:
        raise InvalidPassengerData([{"__all__": ["Select at least one seat."]}])

    passengers: List[Passenger] = []
    errors: List[Dict[str, List[str]]] = []
    for data in seat_assignments:
        if not isinstance(data, Mapping):
            errors.append({"__all__": ["Passenger details must be an object."]})
            continue
        form = PassengerForm(data, capacity=capacity)
        if form.is_valid():
            passengers.append(Passenger(**form.cleaned_data))
            errors.append({})
        else:
            errors.append({field: list(messages) for field, messages in form.errors.items()})

    counts = Counter(passenger.seat for passenger in passengers)
    repeated = sorted(seat for seat, count in counts.items() if count > 1)
    if repeated:
        errors.append({"seat": [f"Seat {seat} is listed more than once." for seat in repeated]})

    if any(errors):
        raise InvalidPassengerData(errors)
    return passengers


class BookingService:
    def __init__(self, ledger: SeatLedger, store, catalog: Catalog):
        self.ledger = ledger
        self.store = store
        self.catalog = catalog

    def _vehicle(self, vehicle_id: str) -> VehicleSpec:
        vehicle = self.catalog.vehicle(vehicle_id)
        if vehicle is None:
            raise VehicleNotFound(vehicle_id)
        return vehicle

    def book(
        self,
        vehicle_id: str,
        travel_date: date,
        seat_assignments: Sequence[Mapping],
        owner_id: Optional[str],
    ) -> BookingRecord:
        if not owner_id:
            raise Unauthenticated()
        vehicle = self._vehicle(vehicle_id)
        passengers = clean_passengers(seat_assignments, vehicle.capacity)
        seats = tuple(passenger.seat for passenger in passengers)

        try:
            token = self.ledger.reserve(vehicle, travel_date, seats)
        except SeatConflict as conflict:
            raise SeatsUnavailable(conflict.seats) from conflict

        record = BookingRecord(
            booking_id=uuid.uuid4(),
            owner_id=str(owner_id),
            vehicle_id=vehicle.vehicle_id,
            route_id=vehicle.route_id,
            travel_date=travel_date,
            seats=token.seats,
            passengers=tuple(passengers),
            total_fare=compute_fare(vehicle, len(token.seats)),
        )
        try:
            self.store.append_booking(record)
        except SeatConflict as conflict:
            # Held by a booking this process's ledger has not seen.
            self._release(token)
            logger.warning(
                "Booking %s rejected by the database, seats %s already held on %s",
                record.booking_id,
                list(conflict.seats),
                vehicle.vehicle_id,
            )
            raise SeatsUnavailable(conflict.seats) from conflict
        except PersistenceFailure as error:
            self._release(token)
            logger.error("Booking %s not saved, seats %s released: %s", record.booking_id, list(token.seats), error)
            raise PersistenceFailed() from error
        except BaseException:
            self._release(token)
            raise

        logger.info(
            "Booking %s confirmed: %s seats %s on %s, fare %s",
            record.booking_id,
            vehicle.vehicle_id,
            list(record.seats),
            travel_date,
            record.total_fare,
        )
        return record

    def _release(self, token: ReservationToken) -> None:
        self.ledger.release(token.vehicle_id, token.travel_date, token.seats)

    def cancel(self, booking_id, owner_id: Optional[str]) -> BookingRecord:
        if not owner_id:
            raise Unauthenticated()
        try:
            record = self.store.get_booking(booking_id, str(owner_id))
            if record is None:
                raise BookingNotFound(booking_id)
            changed = self.store.cancel_booking(booking_id, str(owner_id))
        except PersistenceFailure as error:
            raise PersistenceFailed("The booking could not be cancelled.") from error

        if changed:
            self.ledger.release(record.vehicle_id, record.travel_date, record.seats)
            logger.info("Booking %s cancelled, seats %s released", booking_id, list(record.seats))
        return dataclasses.replace(record, status=STATUS_CANCELLED)

    def bookings_for(self, owner_id: Optional[str]) -> List[BookingRecord]:
        if not owner_id:
            raise Unauthenticated()
        return self.store.bookings_for_owner(str(owner_id))

    def restore_ledger(self) -> int:
        """Replay confirmed bookings from the store into the ledger."""
        restored = 0
        for record in self.store.confirmed_bookings():
            vehicle = self.catalog.vehicle(record.vehicle_id)
            if vehicle is None:
                logger.warning("Booking %s refers to unknown vehicle %s", record.booking_id, record.vehicle_id)
                continue
            try:
                self.ledger.reserve(vehicle, record.travel_date, record.seats)
            except (SeatConflict, InvalidSeatRequest) as error:
                logger.warning("Booking %s not restored into the ledger: %s", record.booking_id, error)
                continue
            restored += 1
        logger.info("Seat ledger restored from %d bookings", restored)
        return restored

    def seat_map(self, vehicle_id: str, travel_date: date) -> Dict[str, Any]:
        vehicle = self._vehicle(vehicle_id)
        allocated = sorted(self.ledger.allocated(vehicle.vehicle_id, travel_date))
        return {
            "vehicle_id": vehicle.vehicle_id,
            "date": travel_date.isoformat(),
            "capacity": vehicle.capacity,
            "allocated": allocated,
            "available": self.ledger.available(vehicle, travel_date),
        }

    def search(self, origin: str, destination: str, travel_date: Optional[date]) -> List[Dict[str, Any]]:
        results = []
        for vehicle in self.catalog.search(origin, destination):
            route = self.catalog.route_for(vehicle)
            available = (
                len(self.ledger.available(vehicle, travel_date)) if travel_date else vehicle.capacity
            )
            results.append(
                {
                    "vehicle_id": vehicle.vehicle_id,
                    "operator": vehicle.operator,
                    "coach_type": vehicle.coach_type,
                    "origin": vehicle.origin,
                    "destination": vehicle.destination,
                    "departure_time": vehicle.departure_time.strftime("%H:%M") if vehicle.departure_time else None,
                    "arrival_time": vehicle.arrival_time.strftime("%H:%M") if vehicle.arrival_time else None,
                    "base_price": str(vehicle.base_price),
                    "capacity": vehicle.capacity,
                    "available_seats": available,
                    "route": {"id": route.route_id, "name": route.name, "stoppages": list(route.stoppages)}
                    if route
                    else None,
                }
            )
        return results
