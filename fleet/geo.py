"""
Coordinate helpers shared by the route catalog, the simulator and the
tracking feed.
"""
from __future__ import annotations

import math
from typing import List, Tuple

EARTH_RADIUS_KM = 6371.0088

Coordinate = Tuple[float, float]


def decode_polyline6(polyline: str) -> List[Coordinate]:
    """
    Decode a polyline6 string into a list of (lat, lng) coordinates.
    """
    coordinates: List[Coordinate] = []
    index = 0
    lat = 0
    lng = 0
    factor = 1e-6

    while index < len(polyline):
        lat_change, index = _decode_value(polyline, index)
        lng_change, index = _decode_value(polyline, index)
        lat += lat_change
        lng += lng_change
        coordinates.append((lat * factor, lng * factor))

    return coordinates


def _decode_value(polyline: str, index: int) -> Tuple[int, int]:
    result = 0
    shift = 0

    while True:
        if index >= len(polyline):
            raise ValueError("Invalid polyline: buffer exhausted.")
        b = ord(polyline[index]) - 63
        index += 1
        result |= (b & 0x1F) << shift
        shift += 5
        if b < 0x20:
            break

    delta = ~(result >> 1) if (result & 1) else (result >> 1)
    return delta, index


def lerp(start: Coordinate, end: Coordinate, fraction: float) -> Coordinate:
    """Planar linear interpolation between two (lat, lon) points."""
    start_lat, start_lon = start
    end_lat, end_lon = end
    return (
        start_lat + (end_lat - start_lat) * fraction,
        start_lon + (end_lon - start_lon) * fraction,
    )


def haversine_km(start: Coordinate, end: Coordinate) -> float:
    """
    Compute the great-circle distance between two coordinates in kilometres.

    Display only: the simulator moves vehicles by planar interpolation.
    """
    lat1, lng1 = map(math.radians, start)
    lat2, lng2 = map(math.radians, end)
    d_lat = lat2 - lat1
    d_lng = lng2 - lng1
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def bearing_deg(start: Coordinate, end: Coordinate) -> float:
    """
    Compute forward azimuth in degrees from ``start`` to ``end``.
    """
    phi1 = math.radians(start[0])
    phi2 = math.radians(end[0])
    d_lambda = math.radians(end[1] - start[1])

    x = math.sin(d_lambda) * math.cos(phi2)
    y = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(
        d_lambda
    )
    bearing = math.degrees(math.atan2(x, y))
    return (bearing + 360) % 360
