import uuid

from django.db import models


class Route(models.Model):
    code = models.CharField(max_length=32, primary_key=True)
    name = models.CharField(max_length=100)
    origin = models.CharField(max_length=100, blank=True, default='')
    destination = models.CharField(max_length=100, blank=True, default='')
    stoppages = models.JSONField(default=list, blank=True)
    color = models.CharField(max_length=16, blank=True, default='')
    path = models.TextField(blank=True, default='')  # JSON list of [lat, lon] waypoints
    polyline = models.TextField(blank=True, default='')  # polyline6, used when path is empty

    def __str__(self):
        return self.name


class Vehicle(models.Model):
    code = models.CharField(max_length=32, primary_key=True)
    operator = models.CharField(max_length=100)
    coach_type = models.CharField(max_length=50, blank=True, default='')
    license_plate = models.CharField(max_length=20, blank=True, default='')
    capacity = models.PositiveIntegerField()
    base_price = models.DecimalField(max_digits=10, decimal_places=2)
    origin = models.CharField(max_length=100, blank=True, default='')
    destination = models.CharField(max_length=100, blank=True, default='')
    departure_time = models.TimeField(null=True, blank=True)
    arrival_time = models.TimeField(null=True, blank=True)
    is_disabled = models.BooleanField(default=False)
    route = models.ForeignKey(Route, on_delete=models.SET_NULL, null=True, blank=True, related_name='vehicles')

    def __str__(self):
        return f"{self.operator} ({self.code})"


class VehiclePosition(models.Model):
    """Last published simulator position, one row per vehicle."""

    vehicle = models.OneToOneField(Vehicle, on_delete=models.CASCADE, primary_key=True, related_name='position')
    route_code = models.CharField(max_length=32, blank=True, default='')
    latitude = models.FloatField()
    longitude = models.FloatField()
    waypoint_index = models.PositiveIntegerField(default=0)
    progress = models.FloatField(default=0.0)
    updated_at = models.DateTimeField()

    def __str__(self):
        return f"{self.vehicle_id} @ ({self.latitude}, {self.longitude})"


class Booking(models.Model):
    STATUS_CONFIRMED = 'Confirmed'
    STATUS_CANCELLED = 'Cancelled'
    STATUS_CHOICES = [
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    booking_id = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    owner_id = models.CharField(max_length=64, db_index=True)
    vehicle = models.ForeignKey(Vehicle, on_delete=models.PROTECT, related_name='bookings')
    route_code = models.CharField(max_length=32, blank=True, default='')
    travel_date = models.DateField()
    seats = models.JSONField()
    passengers = models.JSONField()
    total_fare = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_CONFIRMED)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['owner_id', 'booking_id'], name='fleet_booking_owner_booking_id'),
        ]

    def __str__(self):
        return f"{self.booking_id} ({self.status})"


class BookedSeat(models.Model):
    """One row per seat held by a confirmed booking; the unique trip/seat key is the cross-process guard."""

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='booked_seats')
    vehicle = models.ForeignKey(Vehicle, on_delete=models.PROTECT, related_name='booked_seats')
    travel_date = models.DateField()
    seat = models.PositiveIntegerField()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['vehicle', 'travel_date', 'seat'], name='fleet_bookedseat_trip_seat'),
        ]

    def __str__(self):
        return f"{self.vehicle_id} {self.travel_date} seat {self.seat}"
