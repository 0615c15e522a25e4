"""
Partial-update structures.

Each field defaults to UNSET, which means "not provided". None is a real
value (e.g. clearing ``valid_until``).

    patch = OfferPatch(is_active=False, valid_until=None)
    patch.provided()  # {"is_active": False, "valid_until": None}
"""

from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal


class _Unset:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "UNSET"


UNSET = _Unset()


class Patch:
    """Base for dataclass patches."""

    def provided(self) -> dict:
        """Fields that were explicitly provided."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }

    def __bool__(self):
        return bool(self.provided())

    @classmethod
    def from_dict(cls, data: dict):
        """Build a patch from a mapping, ignoring unknown keys."""
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


@dataclass
class OfferPatch(Patch):
    name: str = UNSET
    description: str = UNSET
    visit_threshold: int = UNSET
    discount_type: str = UNSET
    discount_value: Decimal | None = UNSET
    is_active: bool = UNSET
    valid_from: date | None = UNSET
    valid_until: date | None = UNSET


@dataclass
class StatsPatch(Patch):
    total_visits: int = UNSET
    current_visit_count: int = UNSET
    total_offers_earned: int = UNSET
    total_offers_used: int = UNSET
