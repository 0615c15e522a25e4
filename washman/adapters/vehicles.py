"""VehicleDirectory backends.

Default:
    WASHMAN = {
        "VEHICLE_DIRECTORY": "washman.adapters.vehicles.ModelVehicleDirectory",
    }
"""

from __future__ import annotations

import logging

from django.db import IntegrityError, transaction
from django.utils.module_loading import import_string

from washman.conf import washman_settings
from washman.models import Vehicle, normalize_plate
from washman.protocols.vehicles import VehicleDirectory, VehicleInfo

logger = logging.getLogger(__name__)

_ATTRS = ("make", "model", "owner_name", "phone_number", "email")


class ModelVehicleDirectory:
    """VehicleDirectory backed by the washman Vehicle model."""

    def resolve(self, license_plate: str) -> int | None:
        plate = normalize_plate(license_plate)
        if not plate:
            return None
        return (
            Vehicle.objects.filter(license_plate=plate)
            .values_list("pk", flat=True)
            .first()
        )

    def create(self, license_plate: str, **attrs) -> int:
        """
        Create the vehicle, or fill in non-empty attributes of the existing one.

        A concurrent create of the same plate resolves to the winner's row.
        """
        plate = normalize_plate(license_plate)
        if not plate:
            raise ValueError("License plate is required")

        values = {k: v for k, v in attrs.items() if k in _ATTRS and v}
        try:
            with transaction.atomic():
                vehicle, created = Vehicle.objects.get_or_create(
                    license_plate=plate, defaults=values
                )
        except IntegrityError:
            logger.debug("Vehicle %s created concurrently, updating instead", plate)
            vehicle, created = Vehicle.objects.get(license_plate=plate), False

        if not created and values:
            for key, value in values.items():
                setattr(vehicle, key, value)
            vehicle.save(update_fields=[*values, "updated_at"])

        return vehicle.pk

    def get(self, vehicle_id: int) -> VehicleInfo | None:
        try:
            vehicle = Vehicle.objects.get(pk=vehicle_id)
        except Vehicle.DoesNotExist:
            return None
        return _to_info(vehicle)

    def search(self, license_plate: str | None = None, owner_name: str | None = None) -> list[int]:
        """Case-insensitive substring match on plate and owner name (both must match)."""
        qs = Vehicle.objects.all()
        if license_plate:
            qs = qs.filter(license_plate__icontains=normalize_plate(license_plate))
        if owner_name:
            qs = qs.filter(owner_name__icontains=owner_name.strip())
        return list(qs.order_by("pk").values_list("pk", flat=True))

    def get_many(self, vehicle_ids) -> dict[int, VehicleInfo]:
        ids = list(vehicle_ids)
        if not ids:
            return {}
        return {vehicle.pk: _to_info(vehicle) for vehicle in Vehicle.objects.filter(pk__in=ids)}


def _to_info(vehicle: Vehicle) -> VehicleInfo:
    return VehicleInfo(
        id=vehicle.pk,
        license_plate=vehicle.license_plate,
        make=vehicle.make or None,
        model=vehicle.model or None,
        owner_name=vehicle.owner_name or None,
        phone_number=vehicle.phone_number or None,
    )


def get_vehicle_directory() -> VehicleDirectory:
    """Instantiate the configured VehicleDirectory backend."""
    backend_class = import_string(washman_settings.VEHICLE_DIRECTORY)
    return backend_class()
