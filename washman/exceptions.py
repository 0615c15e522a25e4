"""Washman exceptions."""

from contextlib import contextmanager

from django.db import DatabaseError


class WashmanError(Exception):
    """
    Structured exception for loyalty operations.

    Every error carries a machine-readable ``code``, a human message
    (defaulted from ``_default_messages``) and arbitrary keyword ``data``.

    Usage:
        try:
            engine.mark_used(42, used_on_visit_id=7)
        except InvalidStateError as e:
            if e.code == "OFFER_NOT_ACTIVE":
                handle_already_redeemed()
    """

    default_code = "WASHMAN_ERROR"

    _default_messages = {
        "WASHMAN_ERROR": "Loyalty operation failed",
        # Validation
        "INVALID_OFFER": "Invalid offer definition",
        "INVALID_THRESHOLD": "Visit threshold must be a positive integer",
        "INVALID_DISCOUNT_TYPE": "Invalid discount type. Must be: percentage, fixed_amount, or free_wash",
        "INVALID_DISCOUNT_VALUE": "Discount value is required and must be positive for non-free wash offers",
        "INVALID_VALIDITY_WINDOW": "valid_from must not be after valid_until",
        "INVALID_STATS": "Vehicle statistics would break a counter invariant",
        "INVALID_REQUEST": "Invalid request",
        # Not found
        "OFFER_NOT_FOUND": "Offer not found",
        "VEHICLE_NOT_FOUND": "Vehicle not found",
        "STATS_NOT_FOUND": "Vehicle statistics not found",
        "VEHICLE_OFFER_NOT_FOUND": "Vehicle offer not found",
        # Conflict
        "DUPLICATE_OFFER_NAME": "Offer name already exists",
        "DUPLICATE_ACTIVE_OFFER": "Vehicle already has an active offer of this type",
        "OFFER_IN_USE": "Offer has been issued to vehicles and cannot be deleted",
        # State
        "OFFER_NOT_ACTIVE": "Vehicle offer is not active",
        # Storage
        "STORAGE_ERROR": "Storage operation failed",
    }

    def __init__(self, code: str | None = None, message: str | None = None, **data):
        self.code = code or self.default_code
        self.message = message or self._default_messages.get(self.code, self.code)
        self.data = data
        super().__init__(self.message)

    def __str__(self):
        return f"[{self.code}] {self.message}"

    def as_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "data": self.data}


class ValidationError(WashmanError):
    """Malformed or out-of-policy input."""

    default_code = "INVALID_REQUEST"


class ConflictError(ValidationError):
    """Duplicate active offer, duplicate offer name, offer still referenced."""

    default_code = "DUPLICATE_ACTIVE_OFFER"


class NotFoundError(WashmanError):
    """Referenced offer, vehicle, stats row or vehicle offer is absent."""

    default_code = "VEHICLE_OFFER_NOT_FOUND"


class InvalidStateError(WashmanError):
    """Lifecycle transition attempted from a non-active source state."""

    default_code = "OFFER_NOT_ACTIVE"


class StorageError(WashmanError):
    """Unanticipated failure of the persistence layer."""

    default_code = "STORAGE_ERROR"


@contextmanager
def storage_errors():
    """
    Re-raise unanticipated database errors as StorageError.

    Usable as a context manager or as a decorator. WashmanError subclasses
    pass through untouched.
    """
    try:
        yield
    except DatabaseError as exc:
        raise StorageError(detail=str(exc)) from exc
