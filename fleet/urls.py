from django.urls import path
from .views import (
    BookingAPIView, BookingCancelAPIView, RouteCatalogAPIView,
    SeatMapAPIView, TripSearchAPIView, VehicleDataAPIView,
)

app_name = "fleet"

urlpatterns = [
    path("api/vehicles/", VehicleDataAPIView.as_view(), name="vehicle-data"),
    path("api/routes/", RouteCatalogAPIView.as_view(), name="route-catalog"),
    path("api/trips/", TripSearchAPIView.as_view(), name="trip-search"),
    path("api/trips/<str:vehicle_id>/<str:date>/seats/", SeatMapAPIView.as_view(), name="seat-map"),
    path("api/bookings/", BookingAPIView.as_view(), name="bookings"),
    path("api/bookings/<uuid:booking_id>/cancel/", BookingCancelAPIView.as_view(), name="cancel-booking"),
]
