"""VehicleOffer model - an Offer issued to one vehicle."""

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from washman.lifecycle import Active, Expired, OfferState, Used


class VehicleOfferStatus(models.TextChoices):
    ACTIVE = "active", _("Active")
    USED = "used", _("Used")
    EXPIRED = "expired", _("Expired")


class VehicleOffer(models.Model):
    """
    Issued loyalty offer instance.

    Lifecycle (see washman.lifecycle):
        active -> used | expired, both terminal.

    Rules:
    - At most one ACTIVE row per (vehicle_id, offer), enforced by a partial
      unique constraint. Application checks are only an early exit.
    - Transitions are conditional updates (WHERE status = 'active'), so only
      one of two concurrent redeem/expire attempts can win.
    - Used/expired rows change only through ``notes``.
    """

    vehicle_id = models.PositiveBigIntegerField(_("vehicle"), db_index=True)
    offer = models.ForeignKey(
        "washman.Offer",
        on_delete=models.PROTECT,
        related_name="vehicle_offers",
        verbose_name=_("offer"),
    )

    earned_on_visit_id = models.PositiveBigIntegerField(
        _("earned on visit"),
        null=True,
        blank=True,
        help_text=_("Service record that triggered issuance"),
    )
    issued_date = models.DateTimeField(_("issued at"), default=timezone.now, db_index=True)

    status = models.CharField(
        _("status"),
        max_length=10,
        choices=VehicleOfferStatus.choices,
        default=VehicleOfferStatus.ACTIVE,
    )
    used_date = models.DateTimeField(_("used at"), null=True, blank=True)
    used_on_visit_id = models.PositiveBigIntegerField(_("used on visit"), null=True, blank=True)

    notes = models.TextField(_("notes"), blank=True)

    class Meta:
        db_table = "washman_vehicle_offer"
        verbose_name = _("vehicle offer")
        verbose_name_plural = _("vehicle offers")
        ordering = ["-issued_date"]
        constraints = [
            models.UniqueConstraint(
                fields=["vehicle_id", "offer"],
                condition=models.Q(status="active"),
                name="washman_unique_active_vehicle_offer",
            ),
        ]
        indexes = [
            models.Index(fields=["vehicle_id", "status"], name="washman_veh_vehicle_2c9d4a_idx"),
            models.Index(fields=["status", "offer"], name="washman_veh_status_8e1f7b_idx"),
        ]

    def __str__(self):
        return f"vehicle {self.vehicle_id}: {self.offer_id} [{self.status}]"

    @property
    def state(self) -> OfferState:
        """Lifecycle variant for this row."""
        if self.status == VehicleOfferStatus.USED:
            return Used(used_date=self.used_date, visit_id=self.used_on_visit_id)
        if self.status == VehicleOfferStatus.EXPIRED:
            return Expired(reason=self.notes)
        return Active(issued_date=self.issued_date, earned_on_visit_id=self.earned_on_visit_id)

    @property
    def is_active(self) -> bool:
        return self.status == VehicleOfferStatus.ACTIVE
