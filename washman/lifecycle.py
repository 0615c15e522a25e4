"""
VehicleOffer lifecycle as a tagged variant.

    Active --redeem()--> Used      (terminal)
    Active --expire()--> Expired   (terminal)

Transition functions only accept ``Active``. Type checkers reject other
source variants statically; at runtime they raise InvalidStateError.
"""

from dataclasses import dataclass
from datetime import datetime

from washman.exceptions import InvalidStateError


@dataclass(frozen=True)
class Active:
    issued_date: datetime
    earned_on_visit_id: int | None = None

    status = "active"


@dataclass(frozen=True)
class Used:
    used_date: datetime
    visit_id: int

    status = "used"


@dataclass(frozen=True)
class Expired:
    reason: str

    status = "expired"


OfferState = Active | Used | Expired


def redeem(state: Active, used_date: datetime, visit_id: int) -> Used:
    """Active -> Used."""
    if not isinstance(state, Active):
        raise InvalidStateError(
            "OFFER_NOT_ACTIVE",
            message=f"Cannot redeem an offer in status '{state.status}'",
            status=state.status,
        )
    return Used(used_date=used_date, visit_id=visit_id)


def expire(state: Active, reason: str = "") -> Expired:
    """Active -> Expired."""
    if not isinstance(state, Active):
        raise InvalidStateError(
            "OFFER_NOT_ACTIVE",
            message=f"Cannot expire an offer in status '{state.status}'",
            status=state.status,
        )
    return Expired(reason=reason)


def fields_for(state: OfferState) -> dict:
    """Column values that persist ``state`` on a VehicleOffer row."""
    if isinstance(state, Used):
        return {
            "status": Used.status,
            "used_date": state.used_date,
            "used_on_visit_id": state.visit_id,
        }
    if isinstance(state, Expired):
        return {"status": Expired.status}
    return {"status": Active.status}
