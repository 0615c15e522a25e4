# Initial schema: vehicles, offers, vehicle statistics and vehicle offers

from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Vehicle",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "license_plate",
                    models.CharField(
                        help_text="Stored upper-case (e.g. KDC 123A)",
                        max_length=20,
                        unique=True,
                        verbose_name="license plate",
                    ),
                ),
                ("make", models.CharField(blank=True, max_length=50, verbose_name="make")),
                ("model", models.CharField(blank=True, max_length=50, verbose_name="model")),
                ("owner_name", models.CharField(blank=True, max_length=100, verbose_name="owner name")),
                ("phone_number", models.CharField(blank=True, max_length=20, verbose_name="phone number")),
                ("email", models.EmailField(blank=True, max_length=254, verbose_name="email")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="updated at")),
            ],
            options={
                "verbose_name": "vehicle",
                "verbose_name_plural": "vehicles",
                "db_table": "washman_vehicle",
                "ordering": ["license_plate"],
            },
        ),
        migrations.CreateModel(
            name="Offer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100, unique=True, verbose_name="name")),
                ("description", models.TextField(blank=True, verbose_name="description")),
                (
                    "visit_threshold",
                    models.PositiveIntegerField(
                        help_text="Visits since last redemption needed to earn this offer",
                        verbose_name="visit threshold",
                    ),
                ),
                (
                    "discount_type",
                    models.CharField(
                        choices=[
                            ("percentage", "Percentage"),
                            ("fixed_amount", "Fixed amount"),
                            ("free_wash", "Free wash"),
                        ],
                        max_length=20,
                        verbose_name="discount type",
                    ),
                ),
                (
                    "discount_value",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0"),
                        max_digits=10,
                        verbose_name="discount value",
                    ),
                ),
                ("is_active", models.BooleanField(db_index=True, default=True, verbose_name="active")),
                ("valid_from", models.DateField(blank=True, null=True, verbose_name="valid from")),
                ("valid_until", models.DateField(blank=True, null=True, verbose_name="valid until")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="updated at")),
            ],
            options={
                "verbose_name": "offer",
                "verbose_name_plural": "offers",
                "db_table": "washman_offer",
                "ordering": ["visit_threshold", "-created_at"],
                "indexes": [
                    models.Index(fields=["is_active", "visit_threshold"], name="washman_off_is_acti_6f3b1e_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="VehicleStats",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "vehicle_id",
                    models.PositiveBigIntegerField(
                        help_text="Vehicle directory id",
                        unique=True,
                        verbose_name="vehicle",
                    ),
                ),
                ("total_visits", models.PositiveIntegerField(default=0, verbose_name="total visits")),
                (
                    "current_visit_count",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Visits since the last offer redemption",
                        verbose_name="current visit count",
                    ),
                ),
                ("total_offers_earned", models.PositiveIntegerField(default=0, verbose_name="offers earned")),
                ("total_offers_used", models.PositiveIntegerField(default=0, verbose_name="offers used")),
                ("last_visit_date", models.DateTimeField(blank=True, null=True, verbose_name="last visit")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="updated at")),
            ],
            options={
                "verbose_name": "vehicle statistics",
                "verbose_name_plural": "vehicle statistics",
                "db_table": "washman_vehicle_stats",
                "ordering": ["-total_visits"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("current_visit_count__lte", models.F("total_visits"))),
                        name="washman_stats_streak_lte_total",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("total_offers_used__lte", models.F("total_offers_earned"))),
                        name="washman_stats_used_lte_earned",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="VehicleOffer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("vehicle_id", models.PositiveBigIntegerField(db_index=True, verbose_name="vehicle")),
                (
                    "earned_on_visit_id",
                    models.PositiveBigIntegerField(
                        blank=True,
                        help_text="Service record that triggered issuance",
                        null=True,
                        verbose_name="earned on visit",
                    ),
                ),
                (
                    "issued_date",
                    models.DateTimeField(
                        db_index=True,
                        default=django.utils.timezone.now,
                        verbose_name="issued at",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("used", "Used"), ("expired", "Expired")],
                        default="active",
                        max_length=10,
                        verbose_name="status",
                    ),
                ),
                ("used_date", models.DateTimeField(blank=True, null=True, verbose_name="used at")),
                ("used_on_visit_id", models.PositiveBigIntegerField(blank=True, null=True, verbose_name="used on visit")),
                ("notes", models.TextField(blank=True, verbose_name="notes")),
                (
                    "offer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="vehicle_offers",
                        to="washman.offer",
                        verbose_name="offer",
                    ),
                ),
            ],
            options={
                "verbose_name": "vehicle offer",
                "verbose_name_plural": "vehicle offers",
                "db_table": "washman_vehicle_offer",
                "ordering": ["-issued_date"],
                "indexes": [
                    models.Index(fields=["vehicle_id", "status"], name="washman_veh_vehicle_2c9d4a_idx"),
                    models.Index(fields=["status", "offer"], name="washman_veh_status_8e1f7b_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "active")),
                        fields=("vehicle_id", "offer"),
                        name="washman_unique_active_vehicle_offer",
                    ),
                ],
            },
        ),
    ]
