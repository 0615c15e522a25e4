"""VehicleStats model - per-vehicle visit and offer counters."""

from django.db import models
from django.utils.translation import gettext_lazy as _


class VehicleStats(models.Model):
    """
    Loyalty counters for one vehicle (1:1 with the vehicle directory entry).

    Counters:
    - total_visits: lifetime, never decreases
    - current_visit_count: streak since the last redemption (resettable)
    - total_offers_earned / total_offers_used: lifetime offer counts

    Written only through VisitLedger, always with F() expressions so that
    concurrent visits never lose an increment. The check constraints keep
    the counter invariants at the storage layer.
    """

    vehicle_id = models.PositiveBigIntegerField(
        _("vehicle"),
        unique=True,
        help_text=_("Vehicle directory id"),
    )

    total_visits = models.PositiveIntegerField(_("total visits"), default=0)
    current_visit_count = models.PositiveIntegerField(
        _("current visit count"),
        default=0,
        help_text=_("Visits since the last offer redemption"),
    )
    total_offers_earned = models.PositiveIntegerField(_("offers earned"), default=0)
    total_offers_used = models.PositiveIntegerField(_("offers used"), default=0)

    last_visit_date = models.DateTimeField(_("last visit"), null=True, blank=True)

    created_at = models.DateTimeField(_("created at"), auto_now_add=True)
    updated_at = models.DateTimeField(_("updated at"), auto_now=True)

    class Meta:
        db_table = "washman_vehicle_stats"
        verbose_name = _("vehicle statistics")
        verbose_name_plural = _("vehicle statistics")
        ordering = ["-total_visits"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(current_visit_count__lte=models.F("total_visits")),
                name="washman_stats_streak_lte_total",
            ),
            models.CheckConstraint(
                condition=models.Q(total_offers_used__lte=models.F("total_offers_earned")),
                name="washman_stats_used_lte_earned",
            ),
        ]

    def __str__(self):
        return (
            f"vehicle {self.vehicle_id}: {self.current_visit_count}/{self.total_visits} visits"
            f" | {self.total_offers_used}/{self.total_offers_earned} offers"
        )

    @property
    def offers_outstanding(self) -> int:
        """Offers earned but not (yet) used."""
        return max(0, self.total_offers_earned - self.total_offers_used)
