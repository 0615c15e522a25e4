"""Tests for Washman admin forms and actions."""

from unittest.mock import patch

import pytest
from django.contrib.admin.sites import AdminSite

from washman.admin import OfferAdmin, OfferAdminForm, VehicleOfferAdmin, VehicleStatsAdmin
from washman.models import Offer, VehicleOffer, VehicleOfferStatus, VehicleStats
from washman.services import LoyaltyEngine

pytestmark = pytest.mark.django_db


@pytest.fixture
def admin_request(rf, admin_user):
    request = rf.post("/admin/")
    request.user = admin_user
    return request


class TestOfferAdminForm:
    def _form(self, **overrides):
        data = {
            "name": "Weekend deal",
            "description": "",
            "visit_threshold": 4,
            "discount_type": "fixed_amount",
            "discount_value": "200.00",
            "is_active": True,
        }
        data.update(overrides)
        return OfferAdminForm(data=data)

    def test_valid(self):
        assert self._form().is_valid()

    def test_free_wash_value_forced_to_zero(self):
        form = self._form(discount_type="free_wash", discount_value="50")
        assert form.is_valid()
        assert form.cleaned_data["discount_value"] == 0

    def test_percentage_over_100_rejected(self):
        form = self._form(discount_type="percentage", discount_value="150")
        assert not form.is_valid()

    def test_inverted_window_rejected(self):
        form = self._form(valid_from="2025-06-01", valid_until="2025-05-01")
        assert not form.is_valid()


class TestOfferAdminActions:
    def test_deactivate_offers(self, admin_request, free_wash_offer, percentage_offer):
        model_admin = OfferAdmin(Offer, AdminSite())

        with patch.object(model_admin, "message_user") as message_user:
            model_admin.deactivate_offers(admin_request, Offer.objects.all())

        assert not Offer.objects.filter(is_active=True).exists()
        assert "2 offer(s) deactivated." in message_user.call_args.args[1]

    def test_issued_count(self, vehicle, free_wash_offer):
        LoyaltyEngine.issue(vehicle.pk, free_wash_offer.pk)
        assert OfferAdmin(Offer, AdminSite()).issued_count(free_wash_offer) == 1


class TestVehicleStatsAdmin:
    def test_reconcile_counters(self, admin_request, vehicle, free_wash_offer):
        LoyaltyEngine.issue(vehicle.pk, free_wash_offer.pk)
        VehicleStats.objects.filter(vehicle_id=vehicle.pk).update(total_offers_earned=0)
        model_admin = VehicleStatsAdmin(VehicleStats, AdminSite())

        with patch.object(model_admin, "message_user"):
            model_admin.reconcile_counters(admin_request, VehicleStats.objects.all())

        assert VehicleStats.objects.get(vehicle_id=vehicle.pk).total_offers_earned == 1


class TestVehicleOfferAdmin:
    def test_no_add_permission(self, admin_request):
        assert not VehicleOfferAdmin(VehicleOffer, AdminSite()).has_add_permission(admin_request)

    def test_expire_selected_skips_non_active(self, admin_request, vehicle, free_wash_offer, percentage_offer):
        active = LoyaltyEngine.issue(vehicle.pk, free_wash_offer.pk)
        used = LoyaltyEngine.issue(vehicle.pk, percentage_offer.pk)
        LoyaltyEngine.mark_used(used.pk, used_on_visit_id=7)
        model_admin = VehicleOfferAdmin(VehicleOffer, AdminSite())

        with patch.object(model_admin, "message_user") as message_user:
            model_admin.expire_selected(admin_request, VehicleOffer.objects.all())

        active.refresh_from_db()
        used.refresh_from_db()
        assert active.status == VehicleOfferStatus.EXPIRED
        assert active.notes == f"Expired by {admin_request.user}"
        assert used.status == VehicleOfferStatus.USED
        assert "1 vehicle offer(s) expired." in message_user.call_args.args[1]

    def test_status_badge(self, vehicle, free_wash_offer):
        vehicle_offer = LoyaltyEngine.issue(vehicle.pk, free_wash_offer.pk)
        badge = VehicleOfferAdmin(VehicleOffer, AdminSite()).status_badge(vehicle_offer)
        assert "#28a745" in badge
        assert "Active" in badge
