"""Washman protocols."""

from washman.protocols.vehicles import (
    VehicleDirectory,
    VehicleInfo,
)

__all__ = [
    "VehicleDirectory",
    "VehicleInfo",
]
