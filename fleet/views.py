from __future__ import annotations

import json
import logging

from django.apps import apps
from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from django.views.generic import View

from .catalog import Catalog
from .exceptions import (
    BookingError,
    BookingNotFound,
    InvalidPassengerData,
    PersistenceFailed,
    SeatsUnavailable,
    Unauthenticated,
    VehicleNotFound,
)
from .feed import TrackingFeed
from .forms import BookingRequestForm, TripSearchForm

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    Unauthenticated: 401,
    InvalidPassengerData: 400,
    VehicleNotFound: 404,
    BookingNotFound: 404,
    SeatsUnavailable: 409,
    PersistenceFailed: 503,
}


def _fleet():
    return apps.get_app_config("fleet")


def _owner_id(request):
    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated:
        return None
    return str(user.pk)


def _form_error(form):
    return JsonResponse({"error": "invalid_request", "fields": form.errors.get_json_data()}, status=400)


def _booking_error(error: BookingError):
    status = ERROR_STATUS.get(type(error), 400)
    logger.info("Booking request rejected (%s): %s", status, error)
    payload = {"error": error.code, "message": str(error)}
    if isinstance(error, InvalidPassengerData):
        payload["passengers"] = error.errors
    if isinstance(error, SeatsUnavailable):
        payload["seats"] = list(error.seats)
    return JsonResponse(payload, status=status)


class VehicleDataAPIView(View):
    def get(self, request, *args, **kwargs):
        feed = TrackingFeed(_fleet().store, Catalog.from_models())
        feed.refresh()
        snapshot = feed.snapshot()
        return JsonResponse(
            {
                "timestamp": snapshot["generation_time"],
                "vehicles": snapshot["vehicles"],
            }
        )


class RouteCatalogAPIView(View):
    def get(self, request, *args, **kwargs):
        feed = TrackingFeed(_fleet().store, Catalog.from_models())
        snapshot = feed.snapshot()
        return JsonResponse(
            {
                "center_location": snapshot["center_location"],
                "routes": snapshot["route_catalog"],
            }
        )


class TripSearchAPIView(View):
    def get(self, request, *args, **kwargs):
        form = TripSearchForm(
            {
                "origin": request.GET.get("from", ""),
                "destination": request.GET.get("to", ""),
                "date": request.GET.get("date", ""),
            }
        )
        if not form.is_valid():
            return _form_error(form)

        service = _fleet().booking_service()
        trips = service.search(
            form.cleaned_data["origin"],
            form.cleaned_data["destination"],
            form.cleaned_data["date"],
        )
        return JsonResponse({"trips": trips})


class SeatMapAPIView(View):
    def get(self, request, *args, **kwargs):
        form = BookingRequestForm({"vehicle_id": self.kwargs["vehicle_id"], "date": self.kwargs["date"]})
        if not form.is_valid():
            return _form_error(form)
        try:
            seat_map = _fleet().booking_service().seat_map(
                form.cleaned_data["vehicle_id"], form.cleaned_data["date"]
            )
        except VehicleNotFound as error:
            return _booking_error(error)
        return JsonResponse(seat_map)


@method_decorator(csrf_exempt, name='dispatch')
class BookingAPIView(View):
    def get(self, request, *args, **kwargs):
        try:
            bookings = _fleet().booking_service().bookings_for(_owner_id(request))
        except BookingError as error:
            return _booking_error(error)
        return JsonResponse({"bookings": [booking.as_dict() for booking in bookings]})

    def post(self, request, *args, **kwargs):
        try:
            data = json.loads(request.body)
        except json.JSONDecodeError:
            return JsonResponse({'error': 'Invalid JSON'}, status=400)
        if not isinstance(data, dict):
            return JsonResponse({'error': 'Invalid JSON'}, status=400)

        form = BookingRequestForm({"vehicle_id": data.get("vehicle_id"), "date": data.get("date")})
        if not form.is_valid():
            return _form_error(form)

        passengers = data.get("passengers")
        if not isinstance(passengers, list):
            passengers = []

        try:
            booking = _fleet().booking_service().book(
                form.cleaned_data["vehicle_id"],
                form.cleaned_data["date"],
                passengers,
                _owner_id(request),
            )
        except BookingError as error:
            return _booking_error(error)
        return JsonResponse(booking.as_dict(), status=201)


@method_decorator(csrf_exempt, name='dispatch')
class BookingCancelAPIView(View):
    def post(self, request, *args, **kwargs):
        try:
            booking = _fleet().booking_service().cancel(self.kwargs["booking_id"], _owner_id(request))
        except BookingError as error:
            return _booking_error(error)
        return JsonResponse(booking.as_dict())
