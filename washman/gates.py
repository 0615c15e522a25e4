"""
Washman Gates - Validation rules.

G1: OfferNameUniqueness - Offer name is unique across the catalog
G2: VisitThreshold - visit_threshold is a positive integer
G3: DiscountPairing - discount_value matches discount_type
G4: ValidityWindow - valid_from <= valid_until
G5: ActiveOfferUniqueness - Max 1 active VehicleOffer per (vehicle, offer)
G6: StatsInvariants - streak <= total visits, used <= earned
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import DecimalValidator

from washman.exceptions import ConflictError, ValidationError

# Offer.discount_value column
_DISCOUNT_PRECISION = DecimalValidator(max_digits=10, decimal_places=2)


@dataclass
class GateResult:
    """Result of a gate check."""

    passed: bool
    gate_name: str
    message: str = ""


# =============================================================================
# Gates
# =============================================================================


class Gates:
    """Washman validation gates."""

    # =========================================================================
    # G1: Offer Name Uniqueness
    # =========================================================================

    @classmethod
    def offer_name_uniqueness(cls, name: str, exclude_offer_id: int | None = None) -> GateResult:
        """
        G1: Offer name cannot exist in another Offer.

        Args:
            name: Offer name
            exclude_offer_id: Offer ID to exclude from check (for updates)

        Raises:
            ConflictError: If another offer already uses the name
        """
        from washman.models import Offer

        query = Offer.objects.filter(name=name)
        if exclude_offer_id:
            query = query.exclude(pk=exclude_offer_id)

        existing_id = query.values_list("pk", flat=True).first()
        if existing_id:
            raise ConflictError("DUPLICATE_OFFER_NAME", name=name, existing_offer_id=existing_id)

        return GateResult(True, "G1_OfferNameUniqueness")

    @classmethod
    def check_offer_name_uniqueness(cls, *args, **kwargs) -> bool:
        """Check without raising (returns bool)."""
        try:
            cls.offer_name_uniqueness(*args, **kwargs)
            return True
        except ConflictError:
            return False

    # =========================================================================
    # G2: Visit Threshold
    # =========================================================================

    @classmethod
    def visit_threshold(cls, value) -> GateResult:
        """
        G2: visit_threshold must be a positive integer.

        Raises:
            ValidationError: If value is missing, not integral, or <= 0
        """
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError("INVALID_THRESHOLD", visit_threshold=value)

        return GateResult(True, "G2_VisitThreshold")

    @classmethod
    def check_visit_threshold(cls, value) -> bool:
        """Check without raising (returns bool)."""
        try:
            cls.visit_threshold(value)
            return True
        except ValidationError:
            return False

    # =========================================================================
    # G3: Discount Pairing
    # =========================================================================

    @classmethod
    def discount_pairing(cls, discount_type: str, discount_value) -> GateResult:
        """
        G3: discount_value semantics follow discount_type.

        - percentage: 0 < value <= 100
        - fixed_amount: value > 0
        - free_wash: value must be 0 (callers force it before checking)

        Raises:
            ValidationError: On unknown type or out-of-policy value
        """
        from washman.models import DiscountType

        if discount_type not in DiscountType.values:
            raise ValidationError(
                "INVALID_DISCOUNT_TYPE",
                discount_type=discount_type,
                allowed=list(DiscountType.values),
            )

        value = cls._to_decimal(discount_value)

        if discount_type == DiscountType.FREE_WASH:
            if value:
                raise ValidationError(
                    "INVALID_DISCOUNT_VALUE",
                    message="Discount value must be 0 for free_wash offers",
                    discount_value=str(value),
                )
            return GateResult(True, "G3_DiscountPairing")

        if value is None or value <= 0:
            raise ValidationError(
                "INVALID_DISCOUNT_VALUE",
                discount_type=discount_type,
                discount_value=None if value is None else str(value),
            )

        if discount_type == DiscountType.PERCENTAGE and value > 100:
            raise ValidationError(
                "INVALID_DISCOUNT_VALUE",
                message="Percentage discount cannot exceed 100",
                discount_value=str(value),
            )

        return GateResult(True, "G3_DiscountPairing")

    @classmethod
    def check_discount_pairing(cls, *args, **kwargs) -> bool:
        """Check without raising (returns bool)."""
        try:
            cls.discount_pairing(*args, **kwargs)
            return True
        except ValidationError:
            return False

    @staticmethod
    def _to_decimal(value) -> Decimal | None:
        """Parse a discount value; it must fit the stored DECIMAL(10, 2) exactly."""
        if value is None or value == "":
            return None
        try:
            parsed = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError("INVALID_DISCOUNT_VALUE", discount_value=str(value))

        if not parsed.is_finite():
            raise ValidationError(
                "INVALID_DISCOUNT_VALUE",
                message="Discount value must be a finite number",
                discount_value=str(value),
            )
        try:
            _DISCOUNT_PRECISION(parsed.normalize())
        except DjangoValidationError as exc:
            raise ValidationError(
                "INVALID_DISCOUNT_VALUE",
                message=exc.messages[0],
                discount_value=str(value),
            )
        return parsed

    # =========================================================================
    # G4: Validity Window
    # =========================================================================

    @classmethod
    def validity_window(cls, valid_from: date | None, valid_until: date | None) -> GateResult:
        """
        G4: Window is open-ended on either side but never inverted.

        Raises:
            ValidationError: If valid_from is after valid_until
        """
        if valid_from and valid_until and valid_from > valid_until:
            raise ValidationError(
                "INVALID_VALIDITY_WINDOW",
                valid_from=valid_from.isoformat(),
                valid_until=valid_until.isoformat(),
            )

        return GateResult(True, "G4_ValidityWindow")

    # =========================================================================
    # G5: Active Offer Uniqueness
    # =========================================================================

    @classmethod
    def active_offer_uniqueness(cls, vehicle_id: int, offer_id: int) -> GateResult:
        """
        G5: Max 1 active VehicleOffer per (vehicle, offer).

        Early exit only: the partial unique constraint on VehicleOffer is
        what actually guarantees this under concurrency.

        Raises:
            ConflictError: If the vehicle already holds an active instance
        """
        from washman.models import VehicleOffer, VehicleOfferStatus

        existing_id = (
            VehicleOffer.objects.filter(
                vehicle_id=vehicle_id,
                offer_id=offer_id,
                status=VehicleOfferStatus.ACTIVE,
            )
            .values_list("pk", flat=True)
            .first()
        )
        if existing_id:
            raise ConflictError(
                "DUPLICATE_ACTIVE_OFFER",
                vehicle_id=vehicle_id,
                offer_id=offer_id,
                existing_vehicle_offer_id=existing_id,
            )

        return GateResult(True, "G5_ActiveOfferUniqueness")

    @classmethod
    def check_active_offer_uniqueness(cls, vehicle_id: int, offer_id: int) -> bool:
        """Check without raising (returns bool)."""
        try:
            cls.active_offer_uniqueness(vehicle_id, offer_id)
            return True
        except ConflictError:
            return False

    # =========================================================================
    # G6: Stats Invariants
    # =========================================================================

    @classmethod
    def stats_invariants(
        cls,
        total_visits: int,
        current_visit_count: int,
        total_offers_earned: int,
        total_offers_used: int,
    ) -> GateResult:
        """
        G6: Counters are non-negative, streak <= total, used <= earned.

        Raises:
            ValidationError: If any invariant would be broken
        """
        counters = {
            "total_visits": total_visits,
            "current_visit_count": current_visit_count,
            "total_offers_earned": total_offers_earned,
            "total_offers_used": total_offers_used,
        }
        negative = [k for k, v in counters.items() if v < 0]
        if negative:
            raise ValidationError(
                "INVALID_STATS",
                message="Counters cannot be negative",
                fields=negative,
            )
        if current_visit_count > total_visits:
            raise ValidationError(
                "INVALID_STATS",
                message="current_visit_count cannot exceed total_visits",
                **counters,
            )
        if total_offers_used > total_offers_earned:
            raise ValidationError(
                "INVALID_STATS",
                message="total_offers_used cannot exceed total_offers_earned",
                **counters,
            )

        return GateResult(True, "G6_StatsInvariants")
