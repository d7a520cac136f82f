"""
conversion.py - Cash / item equivalence for item-trackable obligations

An obligation with a unit quantity has a single conversion rate:

    price_per_unit = total_amount / unit_quantity

Cash converts to whole items by flooring; a partial item is never credited
as a whole one. Items convert to cash by plain multiplication. The two are
deliberately asymmetric:

    cash_to_items(items_to_cash(n, p), p) == n      (exact)
    items_to_cash(cash_to_items(c, p), p) <= c      (remainder lost)

All functions are pure.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR
from typing import Optional, Sequence, Union

from .core import (
    ObligationDefinition, ZERO,
    to_decimal, total_amount, total_quantity,
)


@dataclass(frozen=True, slots=True)
class ItemEquivalent:
    """Whole items a cash amount buys, and the cash left over."""
    items: int
    remainder: Decimal
    price_per_unit: Decimal


def price_per_unit(
    obligations: Union[ObligationDefinition, Sequence[ObligationDefinition]],
) -> Optional[Decimal]:
    """
    Conversion rate for an obligation or bundle.

    Returns None when the total unit quantity is zero (cash-only).
    """
    if isinstance(obligations, ObligationDefinition):
        obligations = (obligations,)
    quantity = total_quantity(obligations)
    if quantity <= 0:
        return None
    return total_amount(obligations) / Decimal(quantity)


def _check_price(price: Decimal) -> Decimal:
    price = to_decimal(price)
    if price <= 0:
        raise ValueError(f"Price per unit must be positive, got {price}")
    return price


def cash_to_items(cash: Decimal, unit_price: Decimal) -> int:
    """
    Whole items covered by a cash amount: floor(cash / unit_price).

    Never rounds up. The quotient is corrected against exact products so an
    inexact unit price (e.g. 100/3) cannot lose an item on a round trip.
    """
    unit_price = _check_price(unit_price)
    cash = to_decimal(cash)
    if cash <= 0:
        return 0
    items = int((cash / unit_price).to_integral_value(rounding=ROUND_FLOOR))
    # Correct for rounding in the quotient
    while (items + 1) * unit_price <= cash:
        items += 1
    while items > 0 and items * unit_price > cash:
        items -= 1
    return items


def items_to_cash(items: int, unit_price: Decimal) -> Decimal:
    """Cash value of a number of items: items * unit_price."""
    unit_price = _check_price(unit_price)
    if items < 0:
        raise ValueError(f"Item count cannot be negative, got {items}")
    return Decimal(items) * unit_price


def item_equivalent(
    cash: Decimal,
    obligations: Union[ObligationDefinition, Sequence[ObligationDefinition]],
) -> Optional[ItemEquivalent]:
    """
    Break a cash amount into whole items plus leftover cash.

    Returns None for cash-only obligations.
    """
    unit_price = price_per_unit(obligations)
    if unit_price is None:
        return None
    cash = to_decimal(cash)
    items = cash_to_items(cash, unit_price)
    remainder = cash - items_to_cash(items, unit_price) if cash > 0 else ZERO
    return ItemEquivalent(items=items, remainder=remainder, price_per_unit=unit_price)
