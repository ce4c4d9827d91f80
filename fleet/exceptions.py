"""
Error types raised by the simulator, the seat ledger and the booking service.
"""
from __future__ import annotations

from typing import Iterable, Mapping, Optional, Sequence, Tuple


class FleetError(Exception):
    """Base class for every error raised by the fleet app."""


class RouteIntegrityWarning(FleetError, UserWarning):
    """A vehicle's route is unknown or too short to simulate."""

    def __init__(self, vehicle_id: str, route_id: Optional[str], reason: str):
        self.vehicle_id = vehicle_id
        self.route_id = route_id
        self.reason = reason
        super().__init__(f"vehicle {vehicle_id} (route {route_id}): {reason}")


class PersistenceFailure(FleetError):
    """The store could not write or read a record."""


class InvalidSeatRequest(FleetError, ValueError):
    """A seat request is empty, repeats a seat or lies outside the capacity."""


class SeatConflict(FleetError):
    def __init__(self, vehicle_id: str, travel_date, seats: Iterable[int]):
        self.vehicle_id = vehicle_id
        self.travel_date = travel_date
        self.seats: Tuple[int, ...] = tuple(sorted(seats))
        super().__init__(
            f"seats {list(self.seats)} already taken on {vehicle_id} for {travel_date}"
        )


class BookingError(FleetError):
    """Base class for errors reported back to the booking caller."""

    code = "booking_error"


class Unauthenticated(BookingError):
    code = "unauthenticated"

    def __init__(self, message: str = "A signed-in owner is required to book seats."):
        super().__init__(message)


class InvalidPassengerData(BookingError):
    code = "invalid_passenger_data"

    def __init__(self, errors: Sequence[Mapping] | Mapping, message: str = "Invalid passenger data."):
        self.errors = errors
        super().__init__(message)


class VehicleNotFound(BookingError):
    code = "vehicle_not_found"

    def __init__(self, vehicle_id: str):
        self.vehicle_id = vehicle_id
        super().__init__(f"Unknown vehicle {vehicle_id}.")


class BookingNotFound(BookingError):
    code = "booking_not_found"

    def __init__(self, booking_id):
        self.booking_id = booking_id
        super().__init__(f"Unknown booking {booking_id}.")


class SeatsUnavailable(BookingError):
    code = "seats_unavailable"

    def __init__(self, seats: Iterable[int]):
        self.seats: Tuple[int, ...] = tuple(sorted(seats))
        super().__init__(f"Seats {list(self.seats)} are no longer available.")


class PersistenceFailed(BookingError):
    code = "persistence_failed"

    def __init__(self, message: str = "The booking could not be saved. No seats were held."):
        super().__init__(message)
