"""Washman services.

- offers: OfferCatalog (offer definitions)
- ledger: VisitLedger (per-vehicle counters)
- loyalty: LoyaltyEngine (vehicle offer lifecycle)
"""

from washman.services.ledger import VisitLedger
from washman.services.loyalty import LoyaltyEngine
from washman.services.offers import OfferCatalog

__all__ = ["OfferCatalog", "VisitLedger", "LoyaltyEngine"]
