"""
Persistence and change notification for simulator and booking writes.

``FleetStore`` is constructed once per process (see ``FleetConfig.ready``)
and handed to the simulator and the booking service.

Subscribers are called synchronously on the publishing thread, through
``send_robust``: a failing subscriber is logged and skipped, but a slow one
delays the simulator's next pass. Receivers must only copy what they need
(as ``TrackingFeed`` does) and hand any real work to their own thread.

Each seat of a confirmed booking also gets a ``BookedSeat`` row whose unique
(vehicle, date, seat) key is enforced by the database. The in-memory
``SeatLedger`` is per process; this constraint is what keeps two processes
from confirming the same seat.
"""
from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Sequence

from django.db import DatabaseError, IntegrityError, connection, transaction

from .booking import BookingRecord, Passenger
from .exceptions import PersistenceFailure, SeatConflict
from .models import BookedSeat, Booking, VehiclePosition
from .signals import booking_recorded, positions_published
from .simulation import PositionSnapshot

logger = logging.getLogger(__name__)

PositionListener = Callable[[Sequence[PositionSnapshot]], None]


class FleetStore:
    def publish_positions(self, snapshots: Iterable[PositionSnapshot]) -> None:
        """Upsert one position row per vehicle, then notify subscribers once for the batch."""
        snapshots = tuple(snapshots)
        try:
            with transaction.atomic():
                for snapshot in snapshots:
                    VehiclePosition.objects.update_or_create(
                        vehicle_id=snapshot.vehicle_id,
                        defaults={
                            "route_code": snapshot.route_id,
                            "latitude": snapshot.lat,
                            "longitude": snapshot.lon,
                            "waypoint_index": snapshot.waypoint_index,
                            "progress": snapshot.progress,
                            "updated_at": snapshot.timestamp,
                        },
                    )
        except DatabaseError as error:
            raise PersistenceFailure(f"could not store {len(snapshots)} positions") from error

        self._notify(positions_published, snapshots=snapshots)

    def current_positions(self) -> List[PositionSnapshot]:
        try:
            rows = list(VehiclePosition.objects.order_by("vehicle_id"))
        except DatabaseError as error:
            raise PersistenceFailure("could not read vehicle positions") from error
        return [_snapshot_from_row(row) for row in rows]

    def subscribe_positions(self, listener: PositionListener) -> Callable[[], None]:
        """
        Deliver the current positions to ``listener`` and then every published batch.

        Returns a callable that cancels the subscription.
        """

        def receiver(sender, snapshots, **kwargs):
            listener(snapshots)

        def unsubscribe():
            positions_published.disconnect(receiver, sender=self)

        positions_published.connect(receiver, sender=self, weak=False)
        try:
            listener(tuple(self.current_positions()))
        except BaseException:
            unsubscribe()
            raise
        return unsubscribe

    def append_booking(self, record: BookingRecord) -> BookingRecord:
        """
        Insert the booking and one ``BookedSeat`` per seat in one transaction.

        Raises ``SeatConflict`` when another booking already holds any of the
        seats in the database; nothing is written in that case.
        """
        try:
            with transaction.atomic():
                row = Booking.objects.create(
                    booking_id=record.booking_id,
                    owner_id=record.owner_id,
                    vehicle_id=record.vehicle_id,
                    route_code=record.route_id or "",
                    travel_date=record.travel_date,
                    seats=list(record.seats),
                    passengers=[passenger.as_dict() for passenger in record.passengers],
                    total_fare=record.total_fare,
                    status=record.status,
                )
                if record.status == Booking.STATUS_CONFIRMED:
                    BookedSeat.objects.bulk_create(
                        BookedSeat(
                            booking=row,
                            vehicle_id=record.vehicle_id,
                            travel_date=record.travel_date,
                            seat=seat,
                        )
                        for seat in record.seats
                    )
        except IntegrityError as error:
            taken = self._held_seats(record.vehicle_id, record.travel_date, record.seats)
            if not taken:
                raise PersistenceFailure(f"could not store booking {record.booking_id}") from error
            raise SeatConflict(record.vehicle_id, record.travel_date, taken) from error
        except DatabaseError as error:
            raise PersistenceFailure(f"could not store booking {record.booking_id}") from error

        self._notify(booking_recorded, booking=record)
        return record

    @staticmethod
    def _held_seats(vehicle_id: str, travel_date, seats: Sequence[int]) -> List[int]:
        try:
            return sorted(
                BookedSeat.objects.filter(
                    vehicle_id=vehicle_id, travel_date=travel_date, seat__in=list(seats)
                ).values_list("seat", flat=True)
            )
        except DatabaseError as error:
            raise PersistenceFailure(f"could not read seats held on {vehicle_id}") from error

    def get_booking(self, booking_id, owner_id: str) -> Optional[BookingRecord]:
        try:
            row = Booking.objects.filter(booking_id=booking_id, owner_id=owner_id).first()
        except DatabaseError as error:
            raise PersistenceFailure(f"could not read booking {booking_id}") from error
        return _record_from_row(row) if row is not None else None

    def cancel_booking(self, booking_id, owner_id: str) -> bool:
        """Mark a confirmed booking cancelled and free its seats. Returns False when nothing changed."""
        try:
            with transaction.atomic():
                changed = Booking.objects.filter(
                    booking_id=booking_id,
                    owner_id=owner_id,
                    status=Booking.STATUS_CONFIRMED,
                ).update(status=Booking.STATUS_CANCELLED)
                if changed:
                    BookedSeat.objects.filter(booking__booking_id=booking_id).delete()
        except DatabaseError as error:
            raise PersistenceFailure(f"could not cancel booking {booking_id}") from error

        if changed:
            record = self.get_booking(booking_id, owner_id)
            self._notify(booking_recorded, booking=record)
        return bool(changed)

    def bookings_for_owner(self, owner_id: str) -> List[BookingRecord]:
        return self._records(Booking.objects.filter(owner_id=owner_id))

    def confirmed_bookings(self) -> List[BookingRecord]:
        return self._records(Booking.objects.filter(status=Booking.STATUS_CONFIRMED).order_by("created_at"))

    def close(self) -> None:
        """Release the calling thread's database connection."""
        connection.close()

    @staticmethod
    def _records(queryset) -> List[BookingRecord]:
        try:
            return [_record_from_row(row) for row in queryset]
        except DatabaseError as error:
            raise PersistenceFailure("could not read bookings") from error

    def _notify(self, signal, **kwargs) -> None:
        for receiver, response in signal.send_robust(sender=self, **kwargs):
            if isinstance(response, Exception):
                logger.error(
                    "Subscriber %r failed: %s",
                    receiver,
                    response,
                    exc_info=(type(response), response, response.__traceback__),
                )


def _snapshot_from_row(row: VehiclePosition) -> PositionSnapshot:
    return PositionSnapshot(
        vehicle_id=row.vehicle_id,
        route_id=row.route_code,
        lat=row.latitude,
        lon=row.longitude,
        waypoint_index=row.waypoint_index,
        progress=row.progress,
        timestamp=row.updated_at,
    )


def _record_from_row(row: Booking) -> BookingRecord:
    return BookingRecord(
        booking_id=row.booking_id,
        owner_id=row.owner_id,
        vehicle_id=row.vehicle_id,
        route_id=row.route_code or None,
        travel_date=row.travel_date,
        seats=tuple(row.seats),
        passengers=tuple(Passenger(**passenger) for passenger in row.passengers),
        total_fare=row.total_fare,
        status=row.status,
        created_at=row.created_at,
    )
