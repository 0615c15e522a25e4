"""Tests for the vehicle offer lifecycle variants."""

import pytest
from django.utils import timezone

from washman import lifecycle
from washman.exceptions import InvalidStateError


@pytest.fixture
def active():
    return lifecycle.Active(issued_date=timezone.now(), earned_on_visit_id=5)


class TestTransitions:
    """Active is the only source state."""

    def test_redeem_active(self, active):
        """Active -> Used carries the redemption visit."""
        now = timezone.now()
        used = lifecycle.redeem(active, used_date=now, visit_id=42)

        assert used == lifecycle.Used(used_date=now, visit_id=42)
        assert used.status == "used"

    def test_expire_active(self, active):
        """Active -> Expired carries the reason."""
        expired = lifecycle.expire(active, reason="promo ended")
        assert expired == lifecycle.Expired(reason="promo ended")

    @pytest.mark.parametrize(
        "state",
        [
            lifecycle.Used(used_date=None, visit_id=1),
            lifecycle.Expired(reason="gone"),
        ],
    )
    def test_terminal_states_refuse_transitions(self, state):
        """Used and Expired are terminal."""
        with pytest.raises(InvalidStateError) as exc:
            lifecycle.redeem(state, used_date=timezone.now(), visit_id=1)
        assert exc.value.data["status"] == state.status

        with pytest.raises(InvalidStateError):
            lifecycle.expire(state)


class TestFieldsFor:
    """Column mapping of each variant."""

    def test_used_fields(self):
        now = timezone.now()
        assert lifecycle.fields_for(lifecycle.Used(used_date=now, visit_id=3)) == {
            "status": "used",
            "used_date": now,
            "used_on_visit_id": 3,
        }

    def test_expired_and_active_fields(self, active):
        assert lifecycle.fields_for(lifecycle.Expired(reason="x")) == {"status": "expired"}
        assert lifecycle.fields_for(active) == {"status": "active"}
