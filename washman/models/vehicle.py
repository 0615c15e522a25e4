"""Vehicle model - default storage for the vehicle directory.

The loyalty core never joins against this table: VehicleStats and
VehicleOffer hold plain ``vehicle_id`` references resolved through
``washman.protocols.vehicles.VehicleDirectory``. Deployments that keep
vehicles elsewhere point ``WASHMAN["VEHICLE_DIRECTORY"]`` at their own backend.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


def normalize_plate(license_plate: str) -> str:
    """Upper-case and collapse whitespace ("kdc 123a" -> "KDC 123A")."""
    return " ".join((license_plate or "").split()).upper()


class Vehicle(models.Model):
    """Registered vehicle, keyed by license plate."""

    license_plate = models.CharField(
        _("license plate"),
        max_length=20,
        unique=True,
        help_text=_("Stored upper-case (e.g. KDC 123A)"),
    )
    make = models.CharField(_("make"), max_length=50, blank=True)
    model = models.CharField(_("model"), max_length=50, blank=True)

    # Owner details are usually filled in later, at payment time
    owner_name = models.CharField(_("owner name"), max_length=100, blank=True)
    phone_number = models.CharField(_("phone number"), max_length=20, blank=True)
    email = models.EmailField(_("email"), blank=True)

    created_at = models.DateTimeField(_("created at"), auto_now_add=True)
    updated_at = models.DateTimeField(_("updated at"), auto_now=True)

    class Meta:
        db_table = "washman_vehicle"
        verbose_name = _("vehicle")
        verbose_name_plural = _("vehicles")
        ordering = ["license_plate"]

    def __str__(self):
        return self.license_plate

    def save(self, *args, **kwargs):
        self.license_plate = normalize_plate(self.license_plate)
        if self.email:
            self.email = self.email.lower().strip()
        super().save(*args, **kwargs)
