"""Washman models.

- Vehicle: default vehicle directory storage
- Offer: promotional rules (OfferCatalog)
- VehicleStats: visit/offer counters (VisitLedger)
- VehicleOffer: issued offers and their lifecycle (LoyaltyEngine)
"""

from washman.models.vehicle import Vehicle, normalize_plate
from washman.models.offer import Offer, DiscountType
from washman.models.vehicle_stats import VehicleStats
from washman.models.vehicle_offer import VehicleOffer, VehicleOfferStatus

__all__ = [
    "Vehicle",
    "normalize_plate",
    "Offer",
    "DiscountType",
    "VehicleStats",
    "VehicleOffer",
    "VehicleOfferStatus",
]
