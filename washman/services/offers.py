"""Offer catalog - promotional rule definitions.

Owns the Offer table exclusively. Pure data + validation; offers have no
relationship to each other.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.db.models import Avg, Count, ProtectedError, Q
from django.utils import timezone

from washman.exceptions import ConflictError, NotFoundError, ValidationError, storage_errors
from washman.gates import Gates
from washman.models import DiscountType, Offer
from washman.patch import OfferPatch

logger = logging.getLogger(__name__)

_SORT_FIELDS = {"visit_threshold", "discount_value", "created_at", "valid_from", "valid_until", "name"}


class OfferCatalog:
    """
    Service for offer definitions.

    Uses @classmethod for extensibility (consistent with the other services).

    CORE:
        create(...)              - Validate and persist an offer
        update(id, patch)        - Partial update
        list_active(as_of)       - Offers usable on a date, easiest first
        bulk_set_active(ids, b)  - Toggle is_active for many offers

    CONVENIENCE:
        get, delete, list, search, expiring_soon, starting_soon, statistics
    """

    # ======================================================================
    # CORE API
    # ======================================================================

    @classmethod
    @storage_errors()
    def create(
        cls,
        name: str,
        visit_threshold: int,
        discount_type: str,
        discount_value: Decimal | int | str | None = None,
        description: str = "",
        is_active: bool = True,
        valid_from: date | None = None,
        valid_until: date | None = None,
    ) -> Offer:
        """
        Create a new offer.

        free_wash offers always store discount_value = 0.

        Raises:
            ValidationError: Missing name, bad threshold, bad discount pairing
                or inverted validity window
            ConflictError: Name already used by another offer
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("INVALID_OFFER", message="Offer name is required")

        if discount_type == DiscountType.FREE_WASH:
            discount_value = Decimal("0")

        Gates.visit_threshold(visit_threshold)
        Gates.discount_pairing(discount_type, discount_value)
        Gates.validity_window(valid_from, valid_until)
        Gates.offer_name_uniqueness(name)

        try:
            with transaction.atomic():
                offer = Offer.objects.create(
                    name=name,
                    description=description or "",
                    visit_threshold=visit_threshold,
                    discount_type=discount_type,
                    discount_value=Decimal(str(discount_value)),
                    is_active=is_active,
                    valid_from=valid_from,
                    valid_until=valid_until,
                )
        except IntegrityError:
            # Lost a concurrent race for the same name
            if Offer.objects.filter(name=name).exists():
                raise ConflictError("DUPLICATE_OFFER_NAME", name=name)
            raise

        logger.info("Offer created: %s (id=%s)", offer.name, offer.pk)
        return offer

    @classmethod
    @storage_errors()
    def update(cls, offer_id: int, patch: OfferPatch) -> Offer:
        """
        Apply a partial update.

        The merged result is re-validated as a whole, so switching
        discount_type to free_wash zeroes the value and switching away from
        it requires a positive value.

        Raises:
            NotFoundError: Offer does not exist
            ValidationError / ConflictError: Merged offer breaks a rule
        """
        offer = cls.get(offer_id)
        changes = patch.provided()
        if not changes:
            return offer

        if "name" in changes:
            changes["name"] = (changes["name"] or "").strip()
            if not changes["name"]:
                raise ValidationError("INVALID_OFFER", message="Offer name cannot be empty")
            if changes["name"] != offer.name:
                Gates.offer_name_uniqueness(changes["name"], exclude_offer_id=offer.pk)

        if "visit_threshold" in changes:
            Gates.visit_threshold(changes["visit_threshold"])

        discount_type = changes.get("discount_type", offer.discount_type)
        discount_value = changes.get("discount_value", offer.discount_value)
        if discount_type == DiscountType.FREE_WASH:
            discount_value = Decimal("0")
        Gates.discount_pairing(discount_type, discount_value)
        changes["discount_type"] = discount_type
        changes["discount_value"] = Decimal(str(discount_value))

        Gates.validity_window(
            changes.get("valid_from", offer.valid_from),
            changes.get("valid_until", offer.valid_until),
        )

        if "description" in changes:
            changes["description"] = changes["description"] or ""

        for key, value in changes.items():
            setattr(offer, key, value)

        try:
            with transaction.atomic():
                offer.save(update_fields=[*changes, "updated_at"])
        except IntegrityError:
            if "name" in changes:
                raise ConflictError("DUPLICATE_OFFER_NAME", name=changes["name"])
            raise

        logger.info("Offer updated: id=%s fields=%s", offer.pk, sorted(changes))
        return offer

    @classmethod
    @storage_errors()
    def list_active(cls, as_of: date | None = None) -> list[Offer]:
        """
        Offers usable on ``as_of`` (default: today), ascending visit_threshold.

        The ordering is the eligibility tie-break: the easiest offer to earn
        is evaluated first.
        """
        day = as_of or timezone.localdate()
        return list(
            Offer.objects.filter(is_active=True)
            .filter(Q(valid_from__isnull=True) | Q(valid_from__lte=day))
            .filter(Q(valid_until__isnull=True) | Q(valid_until__gte=day))
            .order_by("visit_threshold", "pk")
        )

    @classmethod
    @storage_errors()
    def bulk_set_active(cls, offer_ids, is_active: bool) -> int:
        """
        Set is_active on every listed offer.

        Idempotent: unknown ids are skipped and offers already in the target
        state are not counted.

        Returns:
            Number of offers whose state changed
        """
        ids = list(offer_ids or [])
        if not ids:
            return 0

        count = (
            Offer.objects.filter(pk__in=ids)
            .exclude(is_active=is_active)
            .update(is_active=is_active, updated_at=timezone.now())
        )
        logger.info("Offers %s: %d of %d", "activated" if is_active else "deactivated", count, len(ids))
        return count

    # ======================================================================
    # CONVENIENCE API
    # ======================================================================

    @classmethod
    @storage_errors()
    def get(cls, offer_id: int) -> Offer:
        """Get offer by id or raise NotFoundError."""
        try:
            return Offer.objects.get(pk=offer_id)
        except Offer.DoesNotExist:
            raise NotFoundError("OFFER_NOT_FOUND", offer_id=offer_id)

    @classmethod
    @storage_errors()
    def delete(cls, offer_id: int) -> None:
        """
        Hard-delete an offer that was never issued.

        Issued offers must be deactivated instead (bulk_set_active).

        Raises:
            NotFoundError: Offer does not exist
            ConflictError: Offer is referenced by vehicle offers
        """
        offer = cls.get(offer_id)
        issued = offer.vehicle_offers.count()
        if issued:
            raise ConflictError("OFFER_IN_USE", offer_id=offer.pk, issued=issued)
        try:
            offer.delete()
        except ProtectedError:
            raise ConflictError("OFFER_IN_USE", offer_id=offer_id)
        logger.info("Offer deleted: id=%s", offer_id)

    @classmethod
    @storage_errors()
    def list(
        cls,
        is_active: bool | None = None,
        discount_type: str | None = None,
        min_visit_threshold: int | None = None,
        max_visit_threshold: int | None = None,
        name: str | None = None,
        valid_on: date | None = None,
        sort_by: str | None = None,
        sort_order: str = "desc",
    ) -> list[Offer]:
        """
        Filter offers.

        Args:
            is_active: Filter by active flag
            discount_type: percentage | fixed_amount | free_wash
            min_visit_threshold / max_visit_threshold: Threshold range
            name: Case-insensitive substring of the name
            valid_on: Only offers whose validity window covers this date
            sort_by: One of visit_threshold, discount_value, created_at,
                valid_from, valid_until, name (default: threshold asc,
                newest first)
            sort_order: asc | desc

        Returns:
            List of Offer
        """
        qs = Offer.objects.all()

        if is_active is not None:
            qs = qs.filter(is_active=is_active)
        if discount_type:
            qs = qs.filter(discount_type=discount_type)
        if min_visit_threshold is not None:
            qs = qs.filter(visit_threshold__gte=min_visit_threshold)
        if max_visit_threshold is not None:
            qs = qs.filter(visit_threshold__lte=max_visit_threshold)
        if name:
            qs = qs.filter(name__icontains=name)
        if valid_on:
            qs = qs.filter(
                Q(valid_from__isnull=True) | Q(valid_from__lte=valid_on),
                Q(valid_until__isnull=True) | Q(valid_until__gte=valid_on),
            )

        if sort_by in _SORT_FIELDS:
            prefix = "" if sort_order == "asc" else "-"
            qs = qs.order_by(f"{prefix}{sort_by}", "pk")
        else:
            qs = qs.order_by("visit_threshold", "-created_at")

        return list(qs)

    @classmethod
    @storage_errors()
    def search(cls, term: str, limit: int = 20) -> list[Offer]:
        """Search offers by name or description."""
        qs = Offer.objects.all()
        if term:
            qs = qs.filter(Q(name__icontains=term) | Q(description__icontains=term))
        return list(qs.order_by("name")[:limit])

    @classmethod
    @storage_errors()
    def expiring_soon(cls, days: int = 7, today: date | None = None) -> list[Offer]:
        """Active offers whose validity ends within ``days`` (and has not ended yet)."""
        today = today or timezone.localdate()
        return list(
            Offer.objects.filter(
                is_active=True,
                valid_until__isnull=False,
                valid_until__gte=today,
                valid_until__lte=today + timedelta(days=days),
            ).order_by("valid_until", "pk")
        )

    @classmethod
    @storage_errors()
    def starting_soon(cls, days: int = 7, today: date | None = None) -> list[Offer]:
        """Active offers whose validity starts within the next ``days``."""
        today = today or timezone.localdate()
        return list(
            Offer.objects.filter(
                is_active=True,
                valid_from__isnull=False,
                valid_from__gt=today,
                valid_from__lte=today + timedelta(days=days),
            ).order_by("valid_from", "pk")
        )

    @classmethod
    @storage_errors()
    def statistics(cls, today: date | None = None) -> dict:
        """
        Catalog summary.

        Returns:
            dict with total/active/inactive counts, average_visit_threshold,
            expired_offers (validity ended before today), upcoming_offers
            (validity starts after today) and a per discount_type breakdown
        """
        today = today or timezone.localdate()
        summary = Offer.objects.aggregate(
            total_offers=Count("id"),
            active_offers=Count("id", filter=Q(is_active=True)),
            inactive_offers=Count("id", filter=Q(is_active=False)),
            average_visit_threshold=Avg("visit_threshold"),
            expired_offers=Count("id", filter=Q(valid_until__lt=today)),
            upcoming_offers=Count("id", filter=Q(valid_from__gt=today)),
        )
        summary["average_visit_threshold"] = round(float(summary["average_visit_threshold"] or 0), 2)
        summary["type_breakdown"] = list(
            Offer.objects.values("discount_type")
            .annotate(count=Count("id"), active=Count("id", filter=Q(is_active=True)))
            .order_by("discount_type")
        )
        return summary
