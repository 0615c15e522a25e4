"""Offer model - promotional loyalty rules."""

from datetime import date
from decimal import Decimal

from django.db import models
from django.utils.translation import gettext_lazy as _


class DiscountType(models.TextChoices):
    PERCENTAGE = "percentage", _("Percentage")
    FIXED_AMOUNT = "fixed_amount", _("Fixed amount")
    FREE_WASH = "free_wash", _("Free wash")


class Offer(models.Model):
    """
    Promotional rule: reach ``visit_threshold`` visits, earn the discount.

    discount_value depends on discount_type:
    - percentage / fixed_amount: required, > 0 (percentage <= 100)
    - free_wash: always 0

    Rules are enforced by OfferCatalog through Gates, not by save().
    """

    name = models.CharField(_("name"), max_length=100, unique=True)
    description = models.TextField(_("description"), blank=True)

    visit_threshold = models.PositiveIntegerField(
        _("visit threshold"),
        help_text=_("Visits since last redemption needed to earn this offer"),
    )
    discount_type = models.CharField(
        _("discount type"),
        max_length=20,
        choices=DiscountType.choices,
    )
    discount_value = models.DecimalField(
        _("discount value"),
        max_digits=10,
        decimal_places=2,
        default=Decimal("0"),
    )

    is_active = models.BooleanField(_("active"), default=True, db_index=True)
    valid_from = models.DateField(_("valid from"), null=True, blank=True)
    valid_until = models.DateField(_("valid until"), null=True, blank=True)

    created_at = models.DateTimeField(_("created at"), auto_now_add=True)
    updated_at = models.DateTimeField(_("updated at"), auto_now=True)

    class Meta:
        db_table = "washman_offer"
        verbose_name = _("offer")
        verbose_name_plural = _("offers")
        ordering = ["visit_threshold", "-created_at"]
        indexes = [
            models.Index(fields=["is_active", "visit_threshold"], name="washman_off_is_acti_6f3b1e_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.visit_threshold} visits, {self.discount_display})"

    @property
    def discount_display(self) -> str:
        if self.discount_type == DiscountType.PERCENTAGE:
            return f"{self.discount_value.normalize():f}%"
        if self.discount_type == DiscountType.FIXED_AMOUNT:
            return f"-{self.discount_value:.2f}"
        return "free wash"

    def is_valid_on(self, day: date) -> bool:
        """Active and inside the (open-ended) validity window on ``day``."""
        if not self.is_active:
            return False
        if self.valid_from and self.valid_from > day:
            return False
        if self.valid_until and self.valid_until < day:
            return False
        return True
