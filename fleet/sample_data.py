"""
Sample routes and coaches seeded by ``manage.py load_catalog``.
"""
from typing import Dict, Sequence

ROUTE_DEFINITIONS: Sequence[Dict] = [
    {
        "code": "route-001",
        "name": "Delhi to Jaipur",
        "origin": "Delhi",
        "destination": "Jaipur",
        "color": "#2563eb",
        "stoppages": ["Gurgaon", "Manesar", "Behror", "Shahpura", "Jaipur"],
        "waypoints": [
            (28.6139, 77.2090),
            (28.4595, 77.0266),
            (28.3375, 76.9388),
            (27.9157, 76.2890),
            (27.4646, 75.9555),
            (26.9124, 75.7873),
        ],
    },
    {
        "code": "route-002",
        "name": "Delhi to Agra",
        "origin": "Delhi",
        "destination": "Agra",
        "color": "#0f766e",
        "stoppages": ["Delhi", "Mathura", "Vrindavan", "Agra"],
        "waypoints": [
            (28.6139, 77.2090),
            (27.4924, 77.6737),
            (27.5700, 77.6500),
            (27.1767, 78.0078),
        ],
    },
    {
        "code": "route-003",
        "name": "Jaipur to Udaipur",
        "origin": "Jaipur",
        "destination": "Udaipur",
        "color": "#9333ea",
        "stoppages": ["Jaipur", "Ajmer", "Bhilwara", "Udaipur"],
        "waypoints": [
            (26.9124, 75.7873),
            (26.4499, 74.6399),
            (25.3468, 74.6358),
            (24.5854, 73.7125),
        ],
    },
]

VEHICLE_PROFILES: Sequence[Dict] = [
    {
        "code": "bus-001",
        "operator": "Swift Travels",
        "coach_type": "AC Seater",
        "license_plate": "DL-01-SW-0750",
        "capacity": 40,
        "base_price": "750.00",
        "route": "route-001",
        "origin": "Delhi",
        "destination": "Jaipur",
        "departure_time": "08:00",
        "arrival_time": "13:00",
    },
    {
        "code": "bus-002",
        "operator": "Royal Express",
        "coach_type": "Non-AC Sleeper",
        "license_plate": "DL-02-RE-0900",
        "capacity": 30,
        "base_price": "900.00",
        "route": "route-002",
        "origin": "Delhi",
        "destination": "Agra",
        "departure_time": "10:00",
        "arrival_time": "16:00",
    },
    {
        "code": "bus-003",
        "operator": "Green Line",
        "coach_type": "AC Sleeper",
        "license_plate": "RJ-14-GL-1200",
        "capacity": 35,
        "base_price": "1200.00",
        "route": "route-003",
        "origin": "Jaipur",
        "destination": "Udaipur",
        "departure_time": "09:30",
        "arrival_time": "15:30",
    },
]
