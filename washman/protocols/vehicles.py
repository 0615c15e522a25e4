"""Vehicle directory protocol."""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class VehicleInfo:
    """Vehicle as seen by the loyalty core."""

    id: int
    license_plate: str
    make: str | None = None
    model: str | None = None
    owner_name: str | None = None
    phone_number: str | None = None


@runtime_checkable
class VehicleDirectory(Protocol):
    """
    Protocol for the vehicle registry integration.

    The loyalty core only stores vehicle ids; everything it knows about a
    vehicle comes through this interface.
    """

    def resolve(self, license_plate: str) -> int | None:
        """Return the vehicle id for a license plate, or None if unknown."""
        ...

    def create(self, license_plate: str, **attrs) -> int:
        """Register a vehicle (or return the existing one) and return its id."""
        ...

    def get(self, vehicle_id: int) -> VehicleInfo | None:
        """Return vehicle details, or None if the id is unknown."""
        ...

    def search(self, license_plate: str | None = None, owner_name: str | None = None) -> list[int]:
        """Ids of vehicles whose plate and owner name contain the given terms."""
        ...

    def get_many(self, vehicle_ids) -> dict[int, VehicleInfo]:
        """Details for many vehicles at once, keyed by id; unknown ids are absent."""
        ...
