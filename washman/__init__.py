"""
Django Washman - Vehicle Loyalty.

Usage:
    from washman import LoyaltyEngine, OfferCatalog, VisitLedger

    offer = OfferCatalog.create("5th wash free", visit_threshold=5, discount_type="free_wash")
    outcome = LoyaltyEngine.register_visit(vehicle_id, visit_id=visit.pk)
    LoyaltyEngine.mark_used(outcome.issued[0].pk, used_on_visit_id=next_visit.pk)

    # Errors
    from washman import WashmanError, ValidationError, NotFoundError
"""

_SERVICES = {
    "OfferCatalog": "washman.services.offers",
    "VisitLedger": "washman.services.ledger",
    "LoyaltyEngine": "washman.services.loyalty",
}

_ERRORS = (
    "WashmanError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "InvalidStateError",
    "StorageError",
)


def __getattr__(name):
    if name in _SERVICES:
        from importlib import import_module

        return getattr(import_module(_SERVICES[name]), name)
    if name in _ERRORS:
        from washman import exceptions

        return getattr(exceptions, name)
    if name == "Gates":
        from washman.gates import Gates

        return Gates
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [*_SERVICES, *_ERRORS, "Gates"]
__version__ = "0.1.0"
