"""Washman admin.

Bulk actions go through the services so that counters, signals and state
transitions follow the same rules as the API.
"""

from decimal import Decimal

from django import forms
from django.contrib import admin, messages
from django.utils.html import format_html

from washman.exceptions import WashmanError
from washman.gates import Gates
from washman.models import DiscountType, Offer, Vehicle, VehicleOffer, VehicleOfferStatus, VehicleStats
from washman.services import LoyaltyEngine, OfferCatalog

# ===========================================
# Vehicle Admin
# ===========================================


@admin.register(Vehicle)
class VehicleAdmin(admin.ModelAdmin):
    list_display = ["license_plate", "make", "model", "owner_name", "phone_number", "created_at"]
    search_fields = ["license_plate", "owner_name", "phone_number", "email"]
    readonly_fields = ["created_at", "updated_at"]


# ===========================================
# Offer Admin
# ===========================================


class OfferAdminForm(forms.ModelForm):
    """Applies the catalog gates to admin edits."""

    class Meta:
        model = Offer
        fields = "__all__"

    def clean(self):
        cleaned = super().clean()
        discount_type = cleaned.get("discount_type")
        if discount_type == DiscountType.FREE_WASH:
            cleaned["discount_value"] = Decimal("0")
        try:
            if cleaned.get("visit_threshold") is not None:
                Gates.visit_threshold(cleaned["visit_threshold"])
            if discount_type:
                Gates.discount_pairing(discount_type, cleaned.get("discount_value"))
            Gates.validity_window(cleaned.get("valid_from"), cleaned.get("valid_until"))
        except WashmanError as exc:
            raise forms.ValidationError(exc.message, code=exc.code.lower())
        return cleaned


@admin.register(Offer)
class OfferAdmin(admin.ModelAdmin):
    form = OfferAdminForm
    list_display = [
        "name",
        "visit_threshold",
        "discount_display",
        "is_active",
        "valid_from",
        "valid_until",
        "issued_count",
    ]
    list_filter = ["is_active", "discount_type"]
    search_fields = ["name", "description"]
    readonly_fields = ["created_at", "updated_at"]
    actions = ["activate_offers", "deactivate_offers"]

    def issued_count(self, obj):
        return obj.vehicle_offers.count()

    issued_count.short_description = "Issued"

    @admin.action(description="Activate selected offers")
    def activate_offers(self, request, queryset):
        count = OfferCatalog.bulk_set_active(queryset.values_list("pk", flat=True), True)
        self.message_user(request, f"{count} offer(s) activated.", messages.SUCCESS)

    @admin.action(description="Deactivate selected offers")
    def deactivate_offers(self, request, queryset):
        count = OfferCatalog.bulk_set_active(queryset.values_list("pk", flat=True), False)
        self.message_user(request, f"{count} offer(s) deactivated.", messages.SUCCESS)


# ===========================================
# VehicleStats Admin
# ===========================================


@admin.register(VehicleStats)
class VehicleStatsAdmin(admin.ModelAdmin):
    list_display = [
        "vehicle_id",
        "total_visits",
        "current_visit_count",
        "total_offers_earned",
        "total_offers_used",
        "last_visit_date",
    ]
    search_fields = ["vehicle_id"]
    readonly_fields = ["created_at", "updated_at"]
    ordering = ["-total_visits"]
    actions = ["reconcile_counters"]

    @admin.action(description="Reconcile offer counters")
    def reconcile_counters(self, request, queryset):
        for vehicle_id in list(queryset.values_list("vehicle_id", flat=True)):
            LoyaltyEngine.reconcile_counters(vehicle_id)
        self.message_user(request, "Offer counters reconciled.", messages.SUCCESS)


# ===========================================
# VehicleOffer Admin
# ===========================================


@admin.register(VehicleOffer)
class VehicleOfferAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "vehicle_id",
        "offer",
        "status_badge",
        "issued_date",
        "used_date",
        "used_on_visit_id",
    ]
    list_filter = ["status", "offer"]
    search_fields = ["vehicle_id", "offer__name", "notes"]
    list_select_related = ["offer"]
    readonly_fields = [
        "vehicle_id",
        "offer",
        "earned_on_visit_id",
        "issued_date",
        "status",
        "used_date",
        "used_on_visit_id",
    ]
    actions = ["expire_selected", "expire_stale"]

    def has_add_permission(self, request):
        # Issued by LoyaltyEngine only
        return False

    def status_badge(self, obj):
        colors = {
            VehicleOfferStatus.ACTIVE: "#28a745",
            VehicleOfferStatus.USED: "#6c757d",
            VehicleOfferStatus.EXPIRED: "#dc3545",
        }
        return format_html(
            '<span style="background:{}; color:#fff; padding:2px 8px; '
            'border-radius:3px; font-size:11px;">{}</span>',
            colors.get(obj.status, "#6c757d"),
            obj.get_status_display(),
        )

    status_badge.short_description = "Status"

    @admin.action(description="Expire selected active offers")
    def expire_selected(self, request, queryset):
        expired = 0
        for pk in list(queryset.filter(status=VehicleOfferStatus.ACTIVE).values_list("pk", flat=True)):
            try:
                LoyaltyEngine.mark_expired(pk, notes=f"Expired by {request.user}")
            except WashmanError as exc:
                self.message_user(request, f"Vehicle offer {pk}: {exc.message}", messages.WARNING)
                continue
            expired += 1
        self.message_user(request, f"{expired} vehicle offer(s) expired.", messages.SUCCESS)

    @admin.action(description="Run expiry sweep (all offers past validity)")
    def expire_stale(self, request, queryset):
        count = LoyaltyEngine.expire_stale_offers()
        self.message_user(request, f"{count} vehicle offer(s) auto-expired.", messages.SUCCESS)
