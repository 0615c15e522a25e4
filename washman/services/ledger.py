"""Visit ledger - per-vehicle visit and offer counters.

Sole writer of VehicleStats. Every counter change is a single conditional
write built from F() expressions (never read-modify-write), so concurrent
visits for the same vehicle cannot lose an increment.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from functools import partial

from django.db import IntegrityError, transaction
from django.db.models import Avg, Count, F, Q, Sum
from django.utils import timezone

from washman.adapters.vehicles import get_vehicle_directory
from washman.conf import washman_settings
from washman.exceptions import NotFoundError, storage_errors
from washman.gates import Gates
from washman.models import VehicleStats
from washman.patch import StatsPatch
from washman.signals import visit_recorded

logger = logging.getLogger(__name__)

_SORT_FIELDS = {
    "total_visits",
    "current_visit_count",
    "last_visit_date",
    "total_offers_earned",
    "total_offers_used",
}


class VisitLedger:
    """
    Service for visit bookkeeping.

    Uses @classmethod for extensibility (consistent with the other services).

    CORE:
        record_visit(vehicle_id)             - Upsert + increment both visit counters
        reset_visit_count(vehicle_id)        - Clear the streak after redemption
        increment_offers_earned(vehicle_id)  - LoyaltyEngine only
        increment_offers_used(vehicle_id)    - LoyaltyEngine only
        eligibility_count(vehicle_id)        - Current streak

    CONVENIENCE:
        get_stats, get_stats_by_plate, record_visit_by_plate, initialize,
        adjust, list, eligible, near_threshold, top_by_visits, most_offers,
        overview
    """

    # ======================================================================
    # CORE API
    # ======================================================================

    @classmethod
    @storage_errors()
    def record_visit(cls, vehicle_id: int) -> VehicleStats:
        """
        Record a completed visit.

        First visit creates the row with both counters at 1; later visits
        increment total_visits and current_visit_count atomically.

        Raises:
            NotFoundError: Vehicle unknown to the vehicle directory
        """
        if get_vehicle_directory().get(vehicle_id) is None:
            raise NotFoundError("VEHICLE_NOT_FOUND", vehicle_id=vehicle_id)

        now = timezone.now()
        with transaction.atomic():
            cls._upsert_increment(
                vehicle_id,
                increments={"total_visits": 1, "current_visit_count": 1},
                extra={"last_visit_date": now},
            )
            stats = VehicleStats.objects.get(vehicle_id=vehicle_id)

        logger.debug(
            "Visit recorded: vehicle=%s streak=%s total=%s",
            vehicle_id,
            stats.current_visit_count,
            stats.total_visits,
        )
        transaction.on_commit(partial(visit_recorded.send, sender=VehicleStats, stats=stats))
        return stats

    @classmethod
    @storage_errors()
    def reset_visit_count(cls, vehicle_id: int) -> VehicleStats:
        """
        Clear the streak (current_visit_count = 0).

        Raises:
            NotFoundError: No stats row (a reset without a prior visit is an
                upstream logic error)
        """
        updated = VehicleStats.objects.filter(vehicle_id=vehicle_id).update(
            current_visit_count=0,
            updated_at=timezone.now(),
        )
        if not updated:
            raise NotFoundError("STATS_NOT_FOUND", vehicle_id=vehicle_id)
        return VehicleStats.objects.get(vehicle_id=vehicle_id)

    @classmethod
    @storage_errors()
    def increment_offers_earned(cls, vehicle_id: int) -> None:
        """Increment total_offers_earned, creating a zeroed row if absent."""
        with transaction.atomic():
            cls._upsert_increment(vehicle_id, increments={"total_offers_earned": 1})

    @classmethod
    @storage_errors()
    def increment_offers_used(cls, vehicle_id: int) -> None:
        """Increment total_offers_used, creating a zeroed row if absent."""
        with transaction.atomic():
            cls._upsert_increment(vehicle_id, increments={"total_offers_used": 1})

    @classmethod
    @storage_errors()
    def eligibility_count(cls, vehicle_id: int) -> int:
        """Current streak used for threshold comparison (0 if never visited)."""
        count = (
            VehicleStats.objects.filter(vehicle_id=vehicle_id)
            .values_list("current_visit_count", flat=True)
            .first()
        )
        return count or 0

    # ======================================================================
    # CONVENIENCE API
    # ======================================================================

    @classmethod
    @storage_errors()
    def get_stats(cls, vehicle_id: int) -> VehicleStats:
        """Get stats row or raise NotFoundError."""
        try:
            return VehicleStats.objects.get(vehicle_id=vehicle_id)
        except VehicleStats.DoesNotExist:
            raise NotFoundError("STATS_NOT_FOUND", vehicle_id=vehicle_id)

    @classmethod
    def get_stats_by_plate(cls, license_plate: str) -> VehicleStats:
        """Get stats for a license plate."""
        return cls.get_stats(cls.resolve_plate(license_plate))

    @classmethod
    def record_visit_by_plate(cls, license_plate: str) -> VehicleStats:
        """Record a visit for a license plate."""
        return cls.record_visit(cls.resolve_plate(license_plate))

    @classmethod
    def resolve_plate(cls, license_plate: str) -> int:
        """
        Resolve a license plate through the vehicle directory.

        Raises:
            NotFoundError: Plate unknown
        """
        vehicle_id = get_vehicle_directory().resolve(license_plate)
        if vehicle_id is None:
            raise NotFoundError(
                "VEHICLE_NOT_FOUND",
                message="Vehicle not found with the provided license plate",
                license_plate=license_plate,
            )
        return vehicle_id

    @classmethod
    @storage_errors()
    def initialize(cls, vehicle_id: int) -> VehicleStats:
        """Create a zeroed stats row. Idempotent - returns existing row."""
        with transaction.atomic():
            cls._ensure_row(vehicle_id)
        return VehicleStats.objects.get(vehicle_id=vehicle_id)

    @classmethod
    @storage_errors()
    def adjust(cls, vehicle_id: int, patch: StatsPatch) -> VehicleStats:
        """
        Manual counter correction (admin).

        The row is locked while the merged counters are validated, so the
        invariants hold against concurrent increments.

        Raises:
            NotFoundError: No stats row
            ValidationError: Merged counters break an invariant
        """
        changes = patch.provided()
        with transaction.atomic():
            try:
                stats = VehicleStats.objects.select_for_update().get(vehicle_id=vehicle_id)
            except VehicleStats.DoesNotExist:
                raise NotFoundError("STATS_NOT_FOUND", vehicle_id=vehicle_id)
            if not changes:
                return stats

            merged = {
                "total_visits": stats.total_visits,
                "current_visit_count": stats.current_visit_count,
                "total_offers_earned": stats.total_offers_earned,
                "total_offers_used": stats.total_offers_used,
                **{k: int(v) for k, v in changes.items()},
            }
            Gates.stats_invariants(**merged)

            for key, value in merged.items():
                setattr(stats, key, value)
            stats.save(update_fields=[*changes, "updated_at"])

        logger.warning("Vehicle stats adjusted manually: vehicle=%s %s", vehicle_id, changes)
        return stats

    @classmethod
    @storage_errors()
    def list(
        cls,
        min_visits: int | None = None,
        min_current_visits: int | None = None,
        has_offers_earned: bool | None = None,
        has_offers_used: bool | None = None,
        vehicle_ids=None,
        license_plate: str | None = None,
        owner_name: str | None = None,
        sort_by: str | None = None,
        sort_order: str = "desc",
    ) -> list[VehicleStats]:
        """
        Filter stats rows.

        Args:
            min_visits: total_visits >= value
            min_current_visits: current_visit_count >= value
            has_offers_earned / has_offers_used: counter > 0 (True) or == 0 (False)
            vehicle_ids: Restrict to these vehicles
            license_plate / owner_name: Substring search through the vehicle
                directory
            sort_by: One of total_visits, current_visit_count, last_visit_date,
                total_offers_earned, total_offers_used (default: total_visits desc)
            sort_order: asc | desc
        """
        qs = VehicleStats.objects.all()

        if min_visits is not None:
            qs = qs.filter(total_visits__gte=min_visits)
        if min_current_visits is not None:
            qs = qs.filter(current_visit_count__gte=min_current_visits)
        if has_offers_earned is not None:
            qs = qs.filter(total_offers_earned__gt=0) if has_offers_earned else qs.filter(total_offers_earned=0)
        if has_offers_used is not None:
            qs = qs.filter(total_offers_used__gt=0) if has_offers_used else qs.filter(total_offers_used=0)
        if vehicle_ids is not None:
            qs = qs.filter(vehicle_id__in=vehicle_ids)
        if license_plate or owner_name:
            matches = get_vehicle_directory().search(license_plate=license_plate, owner_name=owner_name)
            qs = qs.filter(vehicle_id__in=matches)

        if sort_by in _SORT_FIELDS:
            prefix = "" if sort_order == "asc" else "-"
            qs = qs.order_by(f"{prefix}{sort_by}", "vehicle_id")
        else:
            qs = qs.order_by("-total_visits", "vehicle_id")

        return list(qs)

    @classmethod
    @storage_errors()
    def eligible(cls, visit_threshold: int) -> list[VehicleStats]:
        """Vehicles whose streak has reached ``visit_threshold``."""
        return list(
            VehicleStats.objects.filter(current_visit_count__gte=visit_threshold)
            .order_by("-current_visit_count", "vehicle_id")
        )

    @classmethod
    @storage_errors()
    def near_threshold(cls, visit_threshold: int, buffer: int | None = None) -> list[VehicleStats]:
        """
        Vehicles within ``buffer`` visits below ``visit_threshold``.

        Useful for "one more wash and it's free" reminders.
        """
        if buffer is None:
            buffer = washman_settings.NEAR_THRESHOLD_BUFFER
        lowest = max(1, visit_threshold - buffer)
        return list(
            VehicleStats.objects.filter(
                current_visit_count__gte=lowest,
                current_visit_count__lt=visit_threshold,
            ).order_by("-current_visit_count", "vehicle_id")
        )

    @classmethod
    @storage_errors()
    def top_by_visits(cls, limit: int = 10) -> list[VehicleStats]:
        """Most visited vehicles first."""
        return list(VehicleStats.objects.order_by("-total_visits", "vehicle_id")[:limit])

    @classmethod
    @storage_errors()
    def most_offers(cls, limit: int = 10) -> list[VehicleStats]:
        """Vehicles ranked by offers earned, then offers used."""
        return list(
            VehicleStats.objects.order_by("-total_offers_earned", "-total_offers_used", "vehicle_id")[:limit]
        )

    @classmethod
    @storage_errors()
    def overview(cls, now=None) -> dict:
        """
        Counter totals across every tracked vehicle.

        Returns:
            dict with total_vehicles_tracked, total_visits,
            average_visits_per_vehicle, total_offers_earned,
            total_offers_used, vehicles_with_outstanding_offers,
            active_vehicles_7_days, active_vehicles_30_days
        """
        now = now or timezone.now()
        totals = VehicleStats.objects.aggregate(
            total_vehicles_tracked=Count("vehicle_id"),
            total_visits=Sum("total_visits"),
            average_visits_per_vehicle=Avg("total_visits"),
            total_offers_earned=Sum("total_offers_earned"),
            total_offers_used=Sum("total_offers_used"),
            vehicles_with_outstanding_offers=Count(
                "vehicle_id", filter=Q(total_offers_earned__gt=F("total_offers_used"))
            ),
            active_vehicles_7_days=Count("vehicle_id", filter=Q(last_visit_date__gte=now - timedelta(days=7))),
            active_vehicles_30_days=Count("vehicle_id", filter=Q(last_visit_date__gte=now - timedelta(days=30))),
        )
        # Sum/Avg are NULL over an empty table
        for key in ("total_visits", "total_offers_earned", "total_offers_used"):
            totals[key] = totals[key] or 0
        totals["average_visits_per_vehicle"] = round(float(totals["average_visits_per_vehicle"] or 0), 2)
        return totals

    # ======================================================================
    # Internals
    # ======================================================================

    @classmethod
    def _upsert_increment(cls, vehicle_id: int, increments: dict[str, int], extra: dict | None = None) -> None:
        """
        Atomic "insert or increment".

        1. UPDATE ... SET counter = counter + n WHERE vehicle_id = ?
        2. Zero rows: INSERT inside a savepoint with the counters at n.
        3. The INSERT lost a race to a concurrent first write: run 1 again.

        MUST be called inside transaction.atomic().
        """
        extra = extra or {}
        now = timezone.now()
        updates = {name: F(name) + n for name, n in increments.items()}

        if VehicleStats.objects.filter(vehicle_id=vehicle_id).update(**updates, **extra, updated_at=now):
            return

        try:
            with transaction.atomic():
                VehicleStats.objects.create(vehicle_id=vehicle_id, **increments, **extra)
        except IntegrityError:
            logger.debug("Concurrent stats insert for vehicle=%s, incrementing instead", vehicle_id)
            # No row to increment: the insert failed for another reason (check constraint)
            if not VehicleStats.objects.filter(vehicle_id=vehicle_id).update(**updates, **extra, updated_at=now):
                raise

    @classmethod
    def _ensure_row(cls, vehicle_id: int) -> None:
        """Create a zeroed stats row if absent. MUST be called inside transaction.atomic()."""
        if VehicleStats.objects.filter(vehicle_id=vehicle_id).exists():
            return
        try:
            with transaction.atomic():
                VehicleStats.objects.create(vehicle_id=vehicle_id)
        except IntegrityError:
            # Created concurrently
            if not VehicleStats.objects.filter(vehicle_id=vehicle_id).exists():
                raise
