"""
Washman configuration.

Usage in settings.py:
    WASHMAN = {
        "VEHICLE_DIRECTORY": "washman.adapters.vehicles.ModelVehicleDirectory",
        "EXPIRING_SOON_DAYS": 7,
    }
"""

from dataclasses import dataclass
from typing import Any

from django.conf import settings


@dataclass
class WashmanSettings:
    """Washman configuration settings."""

    # Dotted path to a VehicleDirectory implementation
    VEHICLE_DIRECTORY: str = "washman.adapters.vehicles.ModelVehicleDirectory"

    # Evaluate offer eligibility whenever a visit is recorded via visit_completed
    AUTO_ISSUE_ON_VISIT: bool = True

    # Lookahead windows
    EXPIRING_SOON_DAYS: int = 7
    NEAR_THRESHOLD_BUFFER: int = 2

    # HTTP pagination
    PAGE_SIZE: int = 50
    MAX_PAGE_SIZE: int = 200


def get_washman_settings() -> WashmanSettings:
    """Load settings from Django settings."""
    user_settings: dict[str, Any] = getattr(settings, "WASHMAN", {})
    return WashmanSettings(**user_settings)


class _LazySettings:
    """Lazy proxy that re-reads settings on every attribute access."""

    def __getattr__(self, name):
        return getattr(get_washman_settings(), name)


washman_settings = _LazySettings()
