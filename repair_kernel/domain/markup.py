"""
Markup pricing and per-item allocation.

Responsibility:
    Derives the customer-facing total from a technician's cost breakdown and
    markup percentage, and splits quote-level totals across the quote's
    items.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Intermediate values are never rounded; rounding to currency precision
      happens once, in QuoteTotals.rounded(), right before storage.
    - Allocations sum exactly to the quote-level total.  Every item but the
      last gets its proportional share truncated to the cent; the last item
      absorbs whatever remains.

Failure modes:
    - InvalidSubmissionError for negative, oversized or over-precise
      figures, totals beyond the money columns, or an empty submission.
    - AllocationError for an empty item list or unusable weights.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Any, Sequence

from repair_kernel.db.types import (
    CURRENCY_PLACES,
    MAX_STORED_AMOUNT,
    STORED_PLACES,
    round_money,
    to_decimal,
)
from repair_kernel.domain.dtos import ItemAllocation
from repair_kernel.exceptions import AllocationError, InvalidSubmissionError

_HUNDRED = Decimal(100)
_ZERO = Decimal(0)


@dataclass(frozen=True)
class QuoteTotals:
    tech_total: Decimal
    customer_total: Decimal
    markup_percent: Decimal

    def rounded(self, places: int = CURRENCY_PLACES) -> QuoteTotals:
        return QuoteTotals(
            tech_total=round_money(self.tech_total, places),
            customer_total=round_money(self.customer_total, places),
            markup_percent=self.markup_percent,
        )


def _check_stored_amount(name: str, value: Decimal) -> None:
    if abs(value) >= MAX_STORED_AMOUNT:
        raise InvalidSubmissionError(name, "is too large")


def validate_submission(
    labor_hours: Decimal, labor_rate: Decimal, materials_cost: Decimal
) -> None:
    """
    Reject figures the quote cannot store, and a submission with neither
    labor nor materials.

    Every figure must be a non-negative number below MAX_STORED_AMOUNT with
    at most STORED_PLACES decimal places, so what is stored is exactly what
    the totals were computed from.
    """
    for name, value in (
        ("labor_hours", labor_hours),
        ("labor_rate", labor_rate),
        ("materials_cost", materials_cost),
    ):
        value = to_decimal(value)
        if not value.is_finite():
            raise InvalidSubmissionError(name, "must be a number")
        if value < _ZERO:
            raise InvalidSubmissionError(name, "must not be negative")
        _check_stored_amount(name, value)
        if value.normalize().as_tuple().exponent < -STORED_PLACES:
            raise InvalidSubmissionError(
                name, f"must have at most {STORED_PLACES} decimal places"
            )
    if to_decimal(labor_hours) <= _ZERO and to_decimal(materials_cost) <= _ZERO:
        raise InvalidSubmissionError(
            "labor_hours", "enter labor hours or a materials cost"
        )


def compute_quote_totals(
    labor_hours: Decimal,
    labor_rate: Decimal,
    materials_cost: Decimal,
    markup_percent: Decimal,
) -> QuoteTotals:
    """
    tech_total = labor_hours * labor_rate + materials_cost
    customer_total = tech_total * (1 + markup_percent / 100)

    Results are unrounded; call ``.rounded()`` before storing.
    """
    hours = to_decimal(labor_hours)
    rate = to_decimal(labor_rate)
    materials = to_decimal(materials_cost)
    markup = to_decimal(markup_percent)
    if markup < _ZERO:
        raise InvalidSubmissionError("markup_percent", "must not be negative")

    tech_total = hours * rate + materials
    customer_total = tech_total * (1 + markup / _HUNDRED)
    _check_stored_amount("tech_total", tech_total)
    _check_stored_amount("customer_total", customer_total)
    return QuoteTotals(tech_total, customer_total, markup)


def _split(total: Decimal, weights: Sequence[Decimal], places: int) -> list[Decimal]:
    quantum = Decimal(1).scaleb(-places)
    weight_sum = sum(weights, _ZERO)
    shares: list[Decimal] = []
    for weight in weights[:-1]:
        shares.append((total * weight / weight_sum).quantize(quantum, rounding=ROUND_DOWN))
    shares.append(total - sum(shares, _ZERO))
    return shares


def allocate_across_items(
    items: Sequence[Any],
    tech_total: Decimal,
    customer_total: Decimal,
    weights: Sequence[Decimal] | None = None,
    places: int = CURRENCY_PLACES,
) -> tuple[ItemAllocation, ...]:
    """
    Split both totals across ``items`` in order.

    ``weights`` are explicit per-item amounts; when omitted every item
    weighs the same.  Totals are rounded to currency precision first, so the
    allocations add up to exactly the stored quote totals.
    """
    if not items:
        raise AllocationError("a quote needs at least one item")

    if weights is None:
        weights = [Decimal(1)] * len(items)
    else:
        weights = [to_decimal(w) for w in weights]
        if len(weights) != len(items):
            raise AllocationError(
                f"{len(weights)} weights supplied for {len(items)} items"
            )
        if any(w < _ZERO for w in weights):
            raise AllocationError("weights must not be negative")
        if sum(weights, _ZERO) <= _ZERO:
            raise AllocationError("weights must not all be zero")

    tech = round_money(to_decimal(tech_total), places)
    customer = round_money(to_decimal(customer_total), places)
    tech_shares = _split(tech, weights, places)
    customer_shares = _split(customer, weights, places)

    return tuple(
        ItemAllocation(
            item_id=item,
            position=index,
            tech_amount=tech_shares[index],
            customer_amount=customer_shares[index],
        )
        for index, item in enumerate(items)
    )
