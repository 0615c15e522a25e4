"""Tests for OfferCatalog."""

from datetime import date
from decimal import Decimal

import pytest

from washman.exceptions import ConflictError, NotFoundError, ValidationError
from washman.models import DiscountType, Offer
from washman.patch import OfferPatch
from washman.services import LoyaltyEngine, OfferCatalog

pytestmark = pytest.mark.django_db


class TestCreate:
    """Tests for OfferCatalog.create."""

    def test_create_percentage_offer(self):
        """Valid percentage offer is persisted active by default."""
        offer = OfferCatalog.create(
            name="Loyal 15%",
            visit_threshold=4,
            discount_type=DiscountType.PERCENTAGE,
            discount_value=Decimal("15"),
            description="15% off the fourth wash",
        )

        assert offer.pk is not None
        assert offer.is_active is True
        assert offer.discount_value == Decimal("15.00")
        assert offer.discount_display == "15%"

    def test_create_then_get_returns_stored_fields(self):
        """Reading the offer back from the database matches every input field."""
        created = OfferCatalog.create(
            name="Half-price detailing",
            visit_threshold=6,
            discount_type=DiscountType.FIXED_AMOUNT,
            discount_value=Decimal("12.50"),
            description="Applies to interior detailing",
            valid_from=date(2025, 1, 1),
            valid_until=date(2025, 12, 31),
        )

        fetched = OfferCatalog.get(created.pk)

        assert fetched.name == "Half-price detailing"
        assert fetched.visit_threshold == 6
        assert fetched.discount_type == DiscountType.FIXED_AMOUNT
        assert fetched.discount_value == Decimal("12.50")
        assert fetched.description == "Applies to interior detailing"
        assert fetched.valid_from == date(2025, 1, 1)
        assert fetched.valid_until == date(2025, 12, 31)
        assert fetched.is_active is True

    @pytest.mark.parametrize("value", ["0.001", "NaN", "Infinity", "123456789012"])
    def test_value_outside_column_precision_rejected(self, value):
        """Values the DECIMAL(10, 2) column cannot hold exactly are refused up front."""
        with pytest.raises(ValidationError) as exc:
            OfferCatalog.create(
                name="Unstorable",
                visit_threshold=3,
                discount_type=DiscountType.FIXED_AMOUNT,
                discount_value=value,
            )

        assert exc.value.code == "INVALID_DISCOUNT_VALUE"
        assert not Offer.objects.exists()

    def test_update_rejects_sub_cent_value(self, percentage_offer):
        """update() runs the same precision check."""
        with pytest.raises(ValidationError):
            OfferCatalog.update(percentage_offer.pk, OfferPatch(discount_value="0.005"))

        assert OfferCatalog.get(percentage_offer.pk).discount_value == Decimal("10.00")

    def test_free_wash_forces_zero_value(self):
        """free_wash offers store discount_value = 0 whatever is passed."""
        offer = OfferCatalog.create(
            name="Free one",
            visit_threshold=5,
            discount_type=DiscountType.FREE_WASH,
            discount_value=Decimal("99"),
        )
        assert offer.discount_value == Decimal("0")

    def test_name_is_stripped(self):
        """Surrounding whitespace is not part of the name."""
        offer = OfferCatalog.create(name="  Spaced  ", visit_threshold=2, discount_type="free_wash")
        assert offer.name == "Spaced"

    def test_missing_name_rejected(self):
        """Blank name is a ValidationError."""
        with pytest.raises(ValidationError) as exc:
            OfferCatalog.create(name="   ", visit_threshold=2, discount_type="free_wash")
        assert exc.value.code == "INVALID_OFFER"

    @pytest.mark.parametrize("threshold", [0, -1, None, True, "3"])
    def test_invalid_threshold_rejected(self, threshold):
        """visit_threshold must be a positive integer."""
        with pytest.raises(ValidationError) as exc:
            OfferCatalog.create(name="Bad", visit_threshold=threshold, discount_type="free_wash")
        assert exc.value.code == "INVALID_THRESHOLD"
        assert not Offer.objects.exists()

    def test_unknown_discount_type_rejected(self):
        """Discount type outside the enum is rejected."""
        with pytest.raises(ValidationError) as exc:
            OfferCatalog.create(name="Bad", visit_threshold=3, discount_type="bogo", discount_value=1)
        assert exc.value.code == "INVALID_DISCOUNT_TYPE"

    @pytest.mark.parametrize("discount_type", [DiscountType.PERCENTAGE, DiscountType.FIXED_AMOUNT])
    def test_non_free_wash_requires_positive_value(self, discount_type):
        """percentage/fixed_amount need a value > 0."""
        with pytest.raises(ValidationError) as exc:
            OfferCatalog.create(name="Bad", visit_threshold=3, discount_type=discount_type)
        assert exc.value.code == "INVALID_DISCOUNT_VALUE"

        with pytest.raises(ValidationError):
            OfferCatalog.create(
                name="Bad",
                visit_threshold=3,
                discount_type=discount_type,
                discount_value=Decimal("0"),
            )

    def test_percentage_capped_at_100(self):
        """Percentage above 100 is rejected; exactly 100 is allowed."""
        with pytest.raises(ValidationError):
            OfferCatalog.create(
                name="Too much",
                visit_threshold=3,
                discount_type=DiscountType.PERCENTAGE,
                discount_value=Decimal("100.01"),
            )

        offer = OfferCatalog.create(
            name="Everything",
            visit_threshold=3,
            discount_type=DiscountType.PERCENTAGE,
            discount_value=100,
        )
        assert offer.discount_value == Decimal("100")

    def test_inverted_validity_window_rejected(self):
        """valid_from after valid_until is rejected."""
        with pytest.raises(ValidationError) as exc:
            OfferCatalog.create(
                name="Backwards",
                visit_threshold=3,
                discount_type="free_wash",
                valid_from=date(2025, 6, 1),
                valid_until=date(2025, 5, 1),
            )
        assert exc.value.code == "INVALID_VALIDITY_WINDOW"

    def test_duplicate_name_is_conflict(self, free_wash_offer):
        """Duplicate name raises ConflictError (a ValidationError)."""
        with pytest.raises(ConflictError) as exc:
            OfferCatalog.create(name="Fifth wash free", visit_threshold=7, discount_type="free_wash")

        assert exc.value.code == "DUPLICATE_OFFER_NAME"
        assert isinstance(exc.value, ValidationError)
        assert Offer.objects.count() == 1


class TestUpdate:
    """Tests for OfferCatalog.update."""

    def test_partial_update(self, percentage_offer):
        """Only provided fields change."""
        offer = OfferCatalog.update(percentage_offer.pk, OfferPatch(description="New text"))

        assert offer.description == "New text"
        assert offer.visit_threshold == 3
        assert offer.discount_value == Decimal("10.00")

    def test_empty_patch_is_noop(self, percentage_offer):
        """Empty patch returns the offer unchanged."""
        offer = OfferCatalog.update(percentage_offer.pk, OfferPatch())
        assert offer == percentage_offer

    def test_clear_valid_until_with_none(self, db):
        """None is a real value (clears the field), unlike UNSET."""
        offer = OfferCatalog.create(
            name="Seasonal",
            visit_threshold=3,
            discount_type="free_wash",
            valid_until=date(2025, 12, 31),
        )
        offer = OfferCatalog.update(offer.pk, OfferPatch(valid_until=None))

        offer.refresh_from_db()
        assert offer.valid_until is None

    def test_switch_to_free_wash_zeroes_value(self, percentage_offer):
        """Merged result is re-validated: free_wash forces 0."""
        offer = OfferCatalog.update(percentage_offer.pk, OfferPatch(discount_type=DiscountType.FREE_WASH))

        offer.refresh_from_db()
        assert offer.discount_type == DiscountType.FREE_WASH
        assert offer.discount_value == Decimal("0")

    def test_switch_from_free_wash_requires_value(self, free_wash_offer):
        """Switching away from free_wash without a value fails."""
        with pytest.raises(ValidationError):
            OfferCatalog.update(free_wash_offer.pk, OfferPatch(discount_type=DiscountType.FIXED_AMOUNT))

        offer = OfferCatalog.update(
            free_wash_offer.pk,
            OfferPatch(discount_type=DiscountType.FIXED_AMOUNT, discount_value=Decimal("200")),
        )
        assert offer.discount_value == Decimal("200")

    def test_rename_to_existing_name_conflicts(self, free_wash_offer, percentage_offer):
        """Renaming onto another offer's name is a ConflictError."""
        with pytest.raises(ConflictError):
            OfferCatalog.update(percentage_offer.pk, OfferPatch(name=free_wash_offer.name))

    def test_rename_to_own_name_allowed(self, free_wash_offer):
        """Keeping the same name is not a conflict."""
        offer = OfferCatalog.update(free_wash_offer.pk, OfferPatch(name="Fifth wash free"))
        assert offer.name == "Fifth wash free"

    def test_invalid_threshold_rejected(self, free_wash_offer):
        """Threshold update is validated."""
        with pytest.raises(ValidationError):
            OfferCatalog.update(free_wash_offer.pk, OfferPatch(visit_threshold=0))

    def test_update_missing_offer(self, db):
        """Unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError) as exc:
            OfferCatalog.update(999, OfferPatch(is_active=False))
        assert exc.value.code == "OFFER_NOT_FOUND"


class TestListActive:
    """Tests for OfferCatalog.list_active."""

    def test_ordered_by_threshold(self, free_wash_offer, percentage_offer):
        """Easiest offer first."""
        offers = OfferCatalog.list_active(date(2025, 3, 1))
        assert [o.visit_threshold for o in offers] == [3, 5]

    def test_excludes_inactive_and_out_of_window(self, free_wash_offer):
        """Inactive offers and offers outside the window are excluded."""
        OfferCatalog.create(name="Off", visit_threshold=2, discount_type="free_wash", is_active=False)
        OfferCatalog.create(
            name="Future",
            visit_threshold=2,
            discount_type="free_wash",
            valid_from=date(2025, 4, 1),
        )
        OfferCatalog.create(
            name="Past",
            visit_threshold=2,
            discount_type="free_wash",
            valid_until=date(2025, 2, 28),
        )

        offers = OfferCatalog.list_active(date(2025, 3, 1))
        assert [o.name for o in offers] == ["Fifth wash free"]

    def test_window_bounds_inclusive(self, db):
        """valid_from and valid_until days are both usable."""
        offer = OfferCatalog.create(
            name="March only",
            visit_threshold=2,
            discount_type="free_wash",
            valid_from=date(2025, 3, 1),
            valid_until=date(2025, 3, 31),
        )
        assert OfferCatalog.list_active(date(2025, 3, 1)) == [offer]
        assert OfferCatalog.list_active(date(2025, 3, 31)) == [offer]
        assert OfferCatalog.list_active(date(2025, 4, 1)) == []


class TestBulkSetActive:
    """Tests for OfferCatalog.bulk_set_active."""

    def test_deactivate_many(self, free_wash_offer, percentage_offer):
        """Returns the number of offers changed."""
        count = OfferCatalog.bulk_set_active([free_wash_offer.pk, percentage_offer.pk], False)

        assert count == 2
        assert not Offer.objects.filter(is_active=True).exists()

    def test_idempotent(self, free_wash_offer):
        """Second run changes nothing."""
        assert OfferCatalog.bulk_set_active([free_wash_offer.pk], False) == 1
        assert OfferCatalog.bulk_set_active([free_wash_offer.pk], False) == 0

    def test_unknown_ids_skipped(self, free_wash_offer):
        """Unknown ids do not fail the batch."""
        assert OfferCatalog.bulk_set_active([free_wash_offer.pk, 12345], False) == 1

    def test_empty_list(self, db):
        """Empty input is a no-op."""
        assert OfferCatalog.bulk_set_active([], True) == 0


class TestDelete:
    """Tests for OfferCatalog.delete."""

    def test_delete_unissued(self, free_wash_offer):
        """Offers never issued can be deleted."""
        OfferCatalog.delete(free_wash_offer.pk)
        assert not Offer.objects.exists()

    def test_delete_issued_conflicts(self, vehicle, free_wash_offer):
        """Issued offers must be deactivated, not deleted."""
        LoyaltyEngine.issue(vehicle.pk, free_wash_offer.pk)

        with pytest.raises(ConflictError) as exc:
            OfferCatalog.delete(free_wash_offer.pk)
        assert exc.value.code == "OFFER_IN_USE"
        assert Offer.objects.filter(pk=free_wash_offer.pk).exists()

    def test_delete_missing(self, db):
        """Unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            OfferCatalog.delete(42)


class TestQueries:
    """Tests for list/search/expiring_soon/starting_soon/statistics."""

    def test_statistics(self, free_wash_offer, percentage_offer):
        """Counts, average threshold, validity windows and type breakdown."""
        OfferCatalog.create(
            name="Spring promo",
            visit_threshold=4,
            discount_type="fixed_amount",
            discount_value=Decimal("100"),
            is_active=False,
            valid_until=date(2025, 3, 1),
        )
        OfferCatalog.create(
            name="Summer promo",
            visit_threshold=8,
            discount_type="free_wash",
            valid_from=date(2025, 6, 1),
        )

        stats = OfferCatalog.statistics(today=date(2025, 4, 1))

        assert stats["total_offers"] == 4
        assert (stats["active_offers"], stats["inactive_offers"]) == (3, 1)
        assert stats["average_visit_threshold"] == 5.0
        assert (stats["expired_offers"], stats["upcoming_offers"]) == (1, 1)
        assert stats["type_breakdown"] == [
            {"discount_type": "fixed_amount", "count": 1, "active": 0},
            {"discount_type": "free_wash", "count": 2, "active": 2},
            {"discount_type": "percentage", "count": 1, "active": 1},
        ]

    def test_statistics_empty_catalog(self, db):
        """An empty catalog reports zeros."""
        stats = OfferCatalog.statistics()

        assert stats["total_offers"] == 0
        assert stats["average_visit_threshold"] == 0
        assert stats["type_breakdown"] == []

    def test_list_filters(self, free_wash_offer, percentage_offer):
        """Filters combine."""
        assert OfferCatalog.list(discount_type=DiscountType.FREE_WASH) == [free_wash_offer]
        assert OfferCatalog.list(min_visit_threshold=4) == [free_wash_offer]
        assert OfferCatalog.list(max_visit_threshold=4) == [percentage_offer]
        assert OfferCatalog.list(name="third") == [percentage_offer]

    def test_list_sort(self, free_wash_offer, percentage_offer):
        """Whitelisted sort field and order are honoured."""
        offers = OfferCatalog.list(sort_by="visit_threshold", sort_order="desc")
        assert offers == [free_wash_offer, percentage_offer]

    def test_list_ignores_unknown_sort(self, free_wash_offer, percentage_offer):
        """Unknown sort field falls back to the default ordering."""
        offers = OfferCatalog.list(sort_by="id; DROP TABLE")
        assert offers == [percentage_offer, free_wash_offer]

    def test_search(self, free_wash_offer, percentage_offer):
        """Search matches name and description."""
        assert OfferCatalog.search("fifth") == [free_wash_offer]
        OfferCatalog.update(percentage_offer.pk, OfferPatch(description="Weekend deal"))
        assert OfferCatalog.search("weekend") == [percentage_offer]

    def test_expiring_and_starting_soon(self, db):
        """Lookahead windows are relative to today."""
        ending = OfferCatalog.create(
            name="Ending",
            visit_threshold=3,
            discount_type="free_wash",
            valid_until=date(2025, 3, 5),
        )
        starting = OfferCatalog.create(
            name="Starting",
            visit_threshold=3,
            discount_type="free_wash",
            valid_from=date(2025, 3, 4),
        )
        OfferCatalog.create(
            name="Far away",
            visit_threshold=3,
            discount_type="free_wash",
            valid_until=date(2025, 6, 1),
        )

        today = date(2025, 3, 1)
        assert OfferCatalog.expiring_soon(days=7, today=today) == [ending]
        assert OfferCatalog.starting_soon(days=7, today=today) == [starting]
