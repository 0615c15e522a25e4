"""Pytest fixtures for Washman tests."""

from decimal import Decimal

import pytest

from washman.models import DiscountType, Vehicle
from washman.services import LoyaltyEngine, OfferCatalog


@pytest.fixture
def vehicle(db):
    """Create a test vehicle."""
    return Vehicle.objects.create(
        license_plate="kdc 123a",
        make="Toyota",
        model="Axio",
        owner_name="Jane Wanjiru",
        phone_number="0712345678",
    )


@pytest.fixture
def other_vehicle(db):
    """Create a second vehicle."""
    return Vehicle.objects.create(license_plate="KBZ 456B", make="Subaru", model="Forester")


@pytest.fixture
def free_wash_offer(db):
    """Free wash after 5 visits."""
    return OfferCatalog.create(
        name="Fifth wash free",
        visit_threshold=5,
        discount_type=DiscountType.FREE_WASH,
    )


@pytest.fixture
def percentage_offer(db):
    """10% off after 3 visits."""
    return OfferCatalog.create(
        name="Third visit 10% off",
        visit_threshold=3,
        discount_type=DiscountType.PERCENTAGE,
        discount_value=Decimal("10"),
    )


@pytest.fixture
def visit():
    """Register ``times`` visits for a vehicle; returns the last VisitOutcome."""

    def _visit(vehicle_id, times=1):
        outcome = None
        for _ in range(times):
            outcome = LoyaltyEngine.register_visit(vehicle_id)
        return outcome

    return _visit
