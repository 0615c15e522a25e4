"""Loyalty engine - issue, redeem and expire vehicle offers.

Binds a vehicle, an Offer and a lifecycle state (see washman.lifecycle).
The only component that calls VisitLedger.increment_offers_earned/used and
reset_visit_count.

Concurrency:
- Issuance: has_active_offer() is an early exit; the partial unique
  constraint on VehicleOffer is the guarantee. A constraint failure on
  insert means "already issued" and is a no-op.
- Transitions: conditional UPDATE ... WHERE status = 'active'. The loser of
  a race sees zero rows and gets InvalidStateError.
- Counter side effects run in the same transaction as the transition they
  follow. reconcile_counters() re-derives the offer counters from
  VehicleOffer rows and is safe to run at any time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from functools import partial

from django.db import IntegrityError, transaction
from django.db.models import Count, F, Q
from django.utils import timezone

from washman import lifecycle
from washman.adapters.vehicles import get_vehicle_directory
from washman.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    storage_errors,
)
from washman.gates import Gates
from washman.models import Offer, VehicleOffer, VehicleOfferStatus, VehicleStats
from washman.patch import StatsPatch
from washman.services.ledger import VisitLedger
from washman.services.offers import OfferCatalog
from washman.signals import offer_expired, offer_issued, offer_redeemed

logger = logging.getLogger(__name__)

AUTO_EXPIRE_NOTE = "Auto-expired: offer validity ended on {valid_until}"
MANUAL_EXPIRE_NOTE = "Expired manually"

_SORT_FIELDS = {"issued_date", "used_date", "status"}


def _start_of_day(day: date) -> datetime:
    """Midnight of ``day`` in the current time zone."""
    return timezone.make_aware(datetime.combine(day, time.min))


def _issued_between(qs, start_date, end_date):
    """Inclusive issued_date range; plain dates cover the whole day."""
    if start_date:
        if not isinstance(start_date, datetime):
            start_date = _start_of_day(start_date)
        qs = qs.filter(issued_date__gte=start_date)
    if end_date:
        if isinstance(end_date, datetime):
            qs = qs.filter(issued_date__lte=end_date)
        else:
            qs = qs.filter(issued_date__lt=_start_of_day(end_date + timedelta(days=1)))
    return qs


@dataclass
class VisitOutcome:
    """Result of registering a completed visit."""

    stats: VehicleStats
    issued: list[VehicleOffer] = field(default_factory=list)


@dataclass
class ActiveOfferCheck:
    """Active offers held by one vehicle."""

    vehicle_id: int
    active_offers: list[VehicleOffer] = field(default_factory=list)

    @property
    def has_active_offers(self) -> bool:
        return bool(self.active_offers)

    @property
    def active_offers_count(self) -> int:
        return len(self.active_offers)


class LoyaltyEngine:
    """
    Service for the vehicle offer lifecycle.

    Uses @classmethod for extensibility (consistent with the other services).

    CORE:
        evaluate_and_issue(vehicle_id, visit_id)  - Issue every offer the streak has earned
        mark_used(id, used_on_visit_id)           - active -> used, resets the streak
        mark_expired(id)                          - active -> expired
        expire_stale_offers()                     - Sweep offers past valid_until
        has_active_offer(vehicle_id, offer_id)    - Dedupe check

    CONVENIENCE:
        register_visit, issue, get, list, active_for_vehicle, check_active,
        annotate, delete, expiring_soon, reconcile_counters, statistics
    """

    # ======================================================================
    # CORE API
    # ======================================================================

    @classmethod
    @storage_errors()
    def evaluate_and_issue(
        cls,
        vehicle_id: int,
        visit_id: int | None = None,
        today: date | None = None,
    ) -> list[VehicleOffer]:
        """
        Issue every currently valid offer whose threshold the streak has met.

        Offers are evaluated easiest first. A vehicle may hold several
        different active offers, never two active instances of the same one;
        duplicate issuance is a silent no-op.

        Returns:
            Newly issued VehicleOffers (possibly empty)
        """
        streak = VisitLedger.eligibility_count(vehicle_id)
        issued = []

        for offer in OfferCatalog.list_active(today):
            if streak < offer.visit_threshold:
                break  # ascending thresholds: nothing further is reachable
            if cls.has_active_offer(vehicle_id, offer.pk):
                continue
            vehicle_offer = cls._insert_active(vehicle_id, offer, earned_on_visit_id=visit_id)
            if vehicle_offer is not None:
                issued.append(vehicle_offer)

        return issued

    @classmethod
    @storage_errors()
    def mark_used(
        cls,
        vehicle_offer_id: int,
        used_on_visit_id: int,
        notes: str | None = None,
    ) -> VehicleOffer:
        """
        Redeem an active offer (active -> used).

        Redemption always clears the vehicle's streak, even when other active
        offers remain: the streak is global per vehicle, not per offer.

        Raises:
            ValidationError: used_on_visit_id missing
            NotFoundError: Vehicle offer does not exist
            InvalidStateError: Offer is not active (already used/expired, or
                a concurrent transition won)
        """
        if used_on_visit_id is None:
            raise ValidationError("INVALID_REQUEST", message="Used on visit ID is required")

        with transaction.atomic():
            vehicle_offer = cls.get(vehicle_offer_id)
            new_state = lifecycle.redeem(
                vehicle_offer.state,
                used_date=timezone.now(),
                visit_id=used_on_visit_id,
            )
            cls._transition(vehicle_offer, new_state, notes)

            VisitLedger.increment_offers_used(vehicle_offer.vehicle_id)
            VisitLedger.reset_visit_count(vehicle_offer.vehicle_id)

        vehicle_offer.refresh_from_db()
        logger.info(
            "Offer redeemed: vehicle_offer=%s vehicle=%s visit=%s",
            vehicle_offer.pk,
            vehicle_offer.vehicle_id,
            used_on_visit_id,
        )
        transaction.on_commit(partial(offer_redeemed.send, sender=VehicleOffer, vehicle_offer=vehicle_offer))
        return vehicle_offer

    @classmethod
    @storage_errors()
    def mark_expired(cls, vehicle_offer_id: int, notes: str | None = None) -> VehicleOffer:
        """
        Expire an active offer (active -> expired).

        Raises:
            NotFoundError: Vehicle offer does not exist
            InvalidStateError: Offer is not active
        """
        reason = notes or MANUAL_EXPIRE_NOTE
        with transaction.atomic():
            vehicle_offer = cls.get(vehicle_offer_id)
            new_state = lifecycle.expire(vehicle_offer.state, reason=reason)
            cls._transition(vehicle_offer, new_state, reason)

        vehicle_offer.refresh_from_db()
        logger.info("Offer expired: vehicle_offer=%s (%s)", vehicle_offer.pk, reason)
        transaction.on_commit(
            partial(offer_expired.send, sender=VehicleOffer, offer=vehicle_offer.offer, count=1, reason=reason)
        )
        return vehicle_offer

    @classmethod
    @storage_errors()
    def expire_stale_offers(cls, today: date | None = None) -> int:
        """
        Expire every active offer whose Offer.valid_until is before today.

        Idempotent: expired rows leave "active", so a second run finds
        nothing. Races with redemption are settled by the conditional update.

        Returns:
            Number of vehicle offers transitioned
        """
        today = today or timezone.localdate()
        stale_offers = Offer.objects.filter(
            valid_until__lt=today,
            vehicle_offers__status=VehicleOfferStatus.ACTIVE,
        ).distinct()

        total = 0
        for offer in stale_offers:
            reason = AUTO_EXPIRE_NOTE.format(valid_until=offer.valid_until.isoformat())
            with transaction.atomic():
                count = VehicleOffer.objects.filter(
                    offer=offer,
                    status=VehicleOfferStatus.ACTIVE,
                ).update(**lifecycle.fields_for(lifecycle.Expired(reason=reason)), notes=reason)
            if count:
                total += count
                transaction.on_commit(
                    partial(offer_expired.send, sender=VehicleOffer, offer=offer, count=count, reason=reason)
                )

        if total:
            logger.info("Expiry sweep: %d vehicle offers expired", total)
        return total

    @classmethod
    @storage_errors()
    def has_active_offer(cls, vehicle_id: int, offer_id: int) -> bool:
        """True if the vehicle holds an active instance of the offer."""
        return not Gates.check_active_offer_uniqueness(vehicle_id, offer_id)

    # ======================================================================
    # CONVENIENCE API
    # ======================================================================

    @classmethod
    @storage_errors()
    def register_visit(cls, vehicle_id: int, visit_id: int | None = None) -> VisitOutcome:
        """
        Record a completed visit and issue whatever it earned.

        Raises:
            NotFoundError: Vehicle unknown to the vehicle directory
        """
        with transaction.atomic():
            stats = VisitLedger.record_visit(vehicle_id)
            issued = cls.evaluate_and_issue(vehicle_id, visit_id=visit_id)
        if issued:
            stats.refresh_from_db()
        return VisitOutcome(stats=stats, issued=issued)

    @classmethod
    @storage_errors()
    def issue(
        cls,
        vehicle_id: int,
        offer_id: int,
        earned_on_visit_id: int | None = None,
        notes: str = "",
    ) -> VehicleOffer:
        """
        Manually issue an offer to a vehicle (staff action).

        Raises:
            NotFoundError: Vehicle or offer does not exist
            ConflictError: Vehicle already holds an active instance
        """
        if get_vehicle_directory().get(vehicle_id) is None:
            raise NotFoundError("VEHICLE_NOT_FOUND", vehicle_id=vehicle_id)
        offer = OfferCatalog.get(offer_id)

        Gates.active_offer_uniqueness(vehicle_id, offer.pk)

        vehicle_offer = cls._insert_active(
            vehicle_id,
            offer,
            earned_on_visit_id=earned_on_visit_id,
            notes=notes,
        )
        if vehicle_offer is None:
            raise ConflictError("DUPLICATE_ACTIVE_OFFER", vehicle_id=vehicle_id, offer_id=offer.pk)
        return vehicle_offer

    @classmethod
    @storage_errors()
    def get(cls, vehicle_offer_id: int) -> VehicleOffer:
        """Get vehicle offer by id or raise NotFoundError."""
        try:
            return VehicleOffer.objects.select_related("offer").get(pk=vehicle_offer_id)
        except VehicleOffer.DoesNotExist:
            raise NotFoundError("VEHICLE_OFFER_NOT_FOUND", vehicle_offer_id=vehicle_offer_id)

    @classmethod
    @storage_errors()
    def list(
        cls,
        vehicle_id: int | None = None,
        offer_id: int | None = None,
        status: str | None = None,
        license_plate: str | None = None,
        owner_name: str | None = None,
        start_date: datetime | date | None = None,
        end_date: datetime | date | None = None,
        sort_by: str | None = None,
        sort_order: str = "desc",
    ) -> list[VehicleOffer]:
        """
        Filter vehicle offers.

        Args:
            vehicle_id: Vehicle directory id
            offer_id: Offer id
            status: active | used | expired
            license_plate: Resolved through the vehicle directory (unknown
                plate -> empty result)
            owner_name: Case-insensitive substring of the owner name, searched
                through the vehicle directory
            start_date / end_date: Inclusive issued_date range; plain dates
                cover the whole day
            sort_by: issued_date | used_date | status (default issued_date desc)
            sort_order: asc | desc
        """
        qs = VehicleOffer.objects.select_related("offer")

        if license_plate:
            resolved = get_vehicle_directory().resolve(license_plate)
            if resolved is None:
                return []
            if vehicle_id is not None and vehicle_id != resolved:
                return []
            vehicle_id = resolved

        if vehicle_id is not None:
            qs = qs.filter(vehicle_id=vehicle_id)
        if offer_id is not None:
            qs = qs.filter(offer_id=offer_id)
        if status:
            qs = qs.filter(status=status)
        if owner_name:
            qs = qs.filter(vehicle_id__in=get_vehicle_directory().search(owner_name=owner_name))
        qs = _issued_between(qs, start_date, end_date)

        if sort_by in _SORT_FIELDS:
            prefix = "" if sort_order == "asc" else "-"
            qs = qs.order_by(f"{prefix}{sort_by}", "-pk")
        else:
            qs = qs.order_by("-issued_date", "-pk")

        return list(qs)

    @classmethod
    @storage_errors()
    def active_for_vehicle(cls, vehicle_id: int) -> list[VehicleOffer]:
        """Active offers held by a vehicle, easiest offer first."""
        return list(
            VehicleOffer.objects.select_related("offer")
            .filter(vehicle_id=vehicle_id, status=VehicleOfferStatus.ACTIVE)
            .order_by("offer__visit_threshold", "issued_date")
        )

    @classmethod
    @storage_errors()
    def check_active(
        cls,
        vehicle_id: int | None = None,
        license_plate: str | None = None,
    ) -> ActiveOfferCheck:
        """
        Active offers for a vehicle given by id or license plate.

        Raises:
            ValidationError: Neither vehicle_id nor license_plate given
            NotFoundError: License plate unknown
        """
        if vehicle_id is None:
            if not license_plate:
                raise ValidationError(
                    "INVALID_REQUEST",
                    message="Either vehicle_id or license_plate is required",
                )
            vehicle_id = VisitLedger.resolve_plate(license_plate)

        return ActiveOfferCheck(
            vehicle_id=vehicle_id,
            active_offers=cls.active_for_vehicle(vehicle_id),
        )

    @classmethod
    @storage_errors()
    def annotate(cls, vehicle_offer_id: int, notes: str) -> VehicleOffer:
        """Replace notes. The only change allowed on used/expired offers."""
        vehicle_offer = cls.get(vehicle_offer_id)
        vehicle_offer.notes = notes or ""
        vehicle_offer.save(update_fields=["notes"])
        return vehicle_offer

    @classmethod
    @storage_errors()
    def delete(cls, vehicle_offer_id: int) -> None:
        """
        Hard-delete a vehicle offer.

        Counters are append-only and are not decremented.
        """
        vehicle_offer = cls.get(vehicle_offer_id)
        vehicle_offer.delete()
        logger.warning(
            "Vehicle offer deleted: id=%s vehicle=%s status=%s",
            vehicle_offer_id,
            vehicle_offer.vehicle_id,
            vehicle_offer.status,
        )

    @classmethod
    @storage_errors()
    def expiring_soon(cls, days: int | None = None, today: date | None = None) -> list[VehicleOffer]:
        """Active vehicle offers whose Offer validity ends within ``days``."""
        if days is None:
            from washman.conf import washman_settings

            days = washman_settings.EXPIRING_SOON_DAYS
        today = today or timezone.localdate()
        return list(
            VehicleOffer.objects.select_related("offer")
            .filter(
                status=VehicleOfferStatus.ACTIVE,
                offer__valid_until__isnull=False,
                offer__valid_until__gte=today,
                offer__valid_until__lte=today + timedelta(days=days),
            )
            .order_by("offer__valid_until", "pk")
        )

    @classmethod
    @storage_errors()
    def reconcile_counters(cls, vehicle_id: int) -> VehicleStats:
        """
        Re-derive total_offers_earned/used from VehicleOffer rows.

        Counters only move up (rows may have been deleted), so running this
        any number of times converges to the same result.
        """
        with transaction.atomic():
            stats = VisitLedger.initialize(vehicle_id)
            offers = VehicleOffer.objects.filter(vehicle_id=vehicle_id)
            issued = offers.count()
            used = offers.filter(status=VehicleOfferStatus.USED).count()

            new_used = max(stats.total_offers_used, used)
            new_earned = max(stats.total_offers_earned, issued, new_used)

            if (new_earned, new_used) == (stats.total_offers_earned, stats.total_offers_used):
                return stats

            logger.warning(
                "Offer counters reconciled: vehicle=%s earned %s->%s used %s->%s",
                vehicle_id,
                stats.total_offers_earned,
                new_earned,
                stats.total_offers_used,
                new_used,
            )
            return VisitLedger.adjust(
                vehicle_id,
                StatsPatch(total_offers_earned=new_earned, total_offers_used=new_used),
            )

    @classmethod
    @storage_errors()
    def statistics(
        cls,
        start_date: datetime | date | None = None,
        end_date: datetime | date | None = None,
    ) -> dict:
        """
        Issuance totals by status and by discount type.

        The optional range bounds issued_date the same way list() does.
        """
        qs = _issued_between(VehicleOffer.objects.all(), start_date, end_date)
        totals = qs.aggregate(
            total_offers=Count("id"),
            active_offers=Count("id", filter=Q(status=VehicleOfferStatus.ACTIVE)),
            used_offers=Count("id", filter=Q(status=VehicleOfferStatus.USED)),
            expired_offers=Count("id", filter=Q(status=VehicleOfferStatus.EXPIRED)),
        )
        totals["type_breakdown"] = list(
            qs.values(discount_type=F("offer__discount_type"))
            .annotate(
                total=Count("id"),
                used=Count("id", filter=Q(status=VehicleOfferStatus.USED)),
            )
            .order_by("discount_type")
        )
        return totals

    # ======================================================================
    # Internals
    # ======================================================================

    @classmethod
    def _insert_active(
        cls,
        vehicle_id: int,
        offer: Offer,
        earned_on_visit_id: int | None = None,
        notes: str = "",
    ) -> VehicleOffer | None:
        """
        Insert an active VehicleOffer and count it as earned.

        Returns None when the partial unique constraint rejects the insert
        (another request issued the same offer first).
        """
        try:
            with transaction.atomic():
                vehicle_offer = VehicleOffer.objects.create(
                    vehicle_id=vehicle_id,
                    offer=offer,
                    earned_on_visit_id=earned_on_visit_id,
                    status=VehicleOfferStatus.ACTIVE,
                    notes=notes or "",
                )
                VisitLedger.increment_offers_earned(vehicle_id)
        except IntegrityError:
            if VehicleOffer.objects.filter(
                vehicle_id=vehicle_id,
                offer=offer,
                status=VehicleOfferStatus.ACTIVE,
            ).exists():
                logger.warning(
                    "Offer already issued concurrently: vehicle=%s offer=%s",
                    vehicle_id,
                    offer.pk,
                )
                return None
            raise

        logger.info(
            "Offer issued: %s -> vehicle=%s (visit=%s)",
            offer.name,
            vehicle_id,
            earned_on_visit_id,
        )
        transaction.on_commit(partial(offer_issued.send, sender=VehicleOffer, vehicle_offer=vehicle_offer))
        return vehicle_offer

    @classmethod
    def _transition(cls, vehicle_offer: VehicleOffer, new_state: lifecycle.OfferState, notes: str | None) -> None:
        """
        Persist ``new_state`` with a conditional update on status = 'active'.

        Raises:
            InvalidStateError: Row left "active" since it was read
        """
        updates = lifecycle.fields_for(new_state)
        if notes is not None:
            updates["notes"] = notes

        updated = VehicleOffer.objects.filter(
            pk=vehicle_offer.pk,
            status=VehicleOfferStatus.ACTIVE,
        ).update(**updates)

        if not updated:
            logger.warning("Lost transition race: vehicle_offer=%s -> %s", vehicle_offer.pk, new_state.status)
            raise InvalidStateError(
                "OFFER_NOT_ACTIVE",
                vehicle_offer_id=vehicle_offer.pk,
                target=new_state.status,
            )
