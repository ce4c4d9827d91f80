from __future__ import annotations

from typing import Any, Dict

from django.conf import settings

DEFAULTS: Dict[str, Any] = {
    "tick_seconds": 1.0,
    "step_count": 100,
    "default_route_color": "#2563eb",
}


def fleet_setting(name: str) -> Any:
    """Read a key of ``settings.FLEET_CONFIG``, falling back to the built-in default."""
    config = getattr(settings, "FLEET_CONFIG", None) or {}
    return config.get(name, DEFAULTS[name])
