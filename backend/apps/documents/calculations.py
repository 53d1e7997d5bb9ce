"""Monetary engine for quotes and invoices.

All amounts are ``Decimal`` values rounded to the cent with ``ROUND_HALF_UP``
after *every* intermediate step (line net, line VAT, global discount, net
total, redistributed VAT buckets, gross total). The cumulative drift this
produces across many lines is part of the audited figures and must be
reproduced as-is.

The functions in this module are pure: identical inputs always yield identical
outputs and nothing is raised for out-of-range values (negative prices,
discounts above 100 %). Range checks belong to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Mapping, Protocol


DecimalLike = Decimal | str | int | float

ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def to_decimal(value: DecimalLike) -> Decimal:
    """Convert inputs deterministically to ``Decimal``.

    Floats go through ``str`` first so that ``19.9`` becomes ``Decimal("19.9")``
    rather than its binary approximation.
    """

    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, str)):
        return Decimal(str(value))
    if isinstance(value, float):
        return Decimal(str(value))
    raise TypeError(f"Unsupported decimal input: {type(value)!r}")


def round2(amount: DecimalLike) -> Decimal:
    """Round to two decimals (ROUND_HALF_UP)."""

    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


class PricedLine(Protocol):
    quantity: Decimal
    unit_price_ht: Decimal
    vat_rate: Decimal
    discount_percent: Decimal


@dataclass(frozen=True, slots=True)
class LineTotals:
    total_ht: Decimal
    total_vat: Decimal
    total_ttc: Decimal


@dataclass(frozen=True, slots=True)
class DocumentTotals:
    subtotal_ht: Decimal
    discount_amount: Decimal
    total_ht: Decimal
    total_vat: Decimal
    total_ttc: Decimal
    # Net amounts per VAT rate after line discounts, before the global discount
    base_by_rate: Dict[Decimal, Decimal] = field(default_factory=dict)
    # VAT per rate, scaled by the global discount ratio when one applies
    vat_by_rate: Dict[Decimal, Decimal] = field(default_factory=dict)


def calculate_line_totals(
    quantity: DecimalLike,
    unit_price_ht: DecimalLike,
    vat_rate: DecimalLike,
    discount_percent: DecimalLike = 0,
) -> LineTotals:
    quantity = to_decimal(quantity)
    unit_price_ht = to_decimal(unit_price_ht)
    vat_rate = to_decimal(vat_rate)
    discount_percent = to_decimal(discount_percent)

    total_ht = round2(quantity * unit_price_ht * (1 - discount_percent / HUNDRED))
    total_vat = round2(total_ht * (vat_rate / HUNDRED))
    return LineTotals(total_ht=total_ht, total_vat=total_vat, total_ttc=round2(total_ht + total_vat))


def _rate_key(rate: DecimalLike) -> Decimal:
    return round2(rate)


def calculate_document_totals(
    lines: Iterable[PricedLine],
    global_discount_percent: DecimalLike = 0,
) -> DocumentTotals:
    global_discount_percent = to_decimal(global_discount_percent)

    subtotal_ht = ZERO
    base_by_rate: Dict[Decimal, Decimal] = {}
    raw_vat_by_rate: Dict[Decimal, Decimal] = {}

    for line in lines:
        line_totals = calculate_line_totals(
            line.quantity,
            line.unit_price_ht,
            line.vat_rate,
            line.discount_percent,
        )
        subtotal_ht += line_totals.total_ht

        rate = _rate_key(line.vat_rate)
        base_by_rate[rate] = base_by_rate.get(rate, ZERO) + line_totals.total_ht
        raw_vat_by_rate[rate] = raw_vat_by_rate.get(rate, ZERO) + line_totals.total_vat

    discount_amount = round2(subtotal_ht * (global_discount_percent / HUNDRED))
    total_ht = round2(subtotal_ht - discount_amount)

    if global_discount_percent > 0 and subtotal_ht > 0:
        ratio = total_ht / subtotal_ht
        vat_by_rate = {rate: round2(vat * ratio) for rate, vat in raw_vat_by_rate.items()}
    elif subtotal_ht == 0:
        vat_by_rate = {rate: ZERO for rate in raw_vat_by_rate}
    else:
        vat_by_rate = dict(raw_vat_by_rate)

    total_vat = round2(sum(vat_by_rate.values(), ZERO))
    total_ttc = round2(total_ht + total_vat)

    return DocumentTotals(
        subtotal_ht=round2(subtotal_ht),
        discount_amount=discount_amount,
        total_ht=total_ht,
        total_vat=total_vat,
        total_ttc=total_ttc,
        base_by_rate=dict(sorted(base_by_rate.items())),
        vat_by_rate=dict(sorted(vat_by_rate.items())),
    )


def split_discount_by_rate(
    base_by_rate: Mapping[Decimal, Decimal],
    discount_amount: DecimalLike,
) -> Dict[Decimal, Decimal]:
    """Spread a document discount over VAT rates in proportion to their base.

    Each share is rounded to the cent; the rate with the largest base absorbs
    the rounding remainder so that the shares always add up to
    ``discount_amount``.
    """

    discount_amount = round2(discount_amount)
    subtotal = sum(base_by_rate.values(), ZERO)
    if not base_by_rate:
        return {}
    if subtotal <= 0 or discount_amount == 0:
        return {rate: ZERO for rate in base_by_rate}

    ordered: List[Decimal] = sorted(base_by_rate, key=lambda r: (base_by_rate[r], r))
    absorber = ordered[-1]
    shares: Dict[Decimal, Decimal] = {}
    for rate in ordered[:-1]:
        shares[rate] = round2(discount_amount * base_by_rate[rate] / subtotal)
    shares[absorber] = discount_amount - sum(shares.values(), ZERO)
    return dict(sorted(shares.items()))


__all__ = [
    "DecimalLike",
    "DocumentTotals",
    "LineTotals",
    "PricedLine",
    "calculate_document_totals",
    "calculate_line_totals",
    "round2",
    "split_discount_by_rate",
    "to_decimal",
]
