"""
Entry fee table and processor surcharge calculation.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping

from contest_backend.errors import InvalidCategory, ValidationError

# Whole dollars.
CATEGORY_FEES: dict[str, int] = {
    "business": 49,
    "creative": 49,
    "technology": 99,
    "social-impact": 49,
}

SURCHARGE_RATE = 0.04


@dataclass(frozen=True)
class FeeBreakdown:
    entry_fee: int
    surcharge: int
    total_amount: int

    @classmethod
    def from_entry_fee(cls, entry_fee: int) -> "FeeBreakdown":
        surcharge = math.ceil(entry_fee * SURCHARGE_RATE)
        return cls(
            entry_fee=entry_fee,
            surcharge=surcharge,
            total_amount=entry_fee + surcharge,
        )


def calculate_fees(category: str) -> FeeBreakdown:
    entry_fee = CATEGORY_FEES.get(category)
    if entry_fee is None:
        raise InvalidCategory(
            details={"validCategories": list(CATEGORY_FEES), "received": category}
        )
    return FeeBreakdown.from_entry_fee(entry_fee)


def to_minor_units(amount: int) -> int:
    """Dollars to cents, as the gateway expects."""
    return amount * 100


def fees_from_metadata(metadata: Mapping[str, str]) -> FeeBreakdown:
    """
    Rebuild the breakdown from a payment intent's own metadata.

    The total is always recomputed from fee and surcharge; a total stored in
    metadata is never read.
    """
    try:
        entry_fee = int(metadata["entryFee"])
        surcharge = int(metadata["surcharge"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError(
            "Payment intent metadata is missing fee information",
            reason="payment-incomplete",
        ) from exc
    return FeeBreakdown(
        entry_fee=entry_fee, surcharge=surcharge, total_amount=entry_fee + surcharge
    )
