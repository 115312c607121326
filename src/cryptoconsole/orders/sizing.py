"""Lot-size rounding and order minimum checks."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal

from ..errors import ValidationError


@dataclass(frozen=True)
class LotSize:
    """Exchange trading rules for one market.

    ``step`` and ``precision`` are alternative ways exchanges express the
    quantity increment; when both are set the coarser one wins.
    """

    symbol: str
    step: Decimal | None = None
    precision: int | None = None
    min_qty: Decimal | None = None
    max_qty: Decimal | None = None
    min_notional: Decimal | None = None


def round_down_quantity(quantity: Decimal, lot: LotSize) -> Decimal:
    """Round ``quantity`` down to the nearest valid increment."""
    result = quantity
    if lot.step is not None and lot.step > 0:
        result = (result / lot.step).to_integral_value(rounding=ROUND_DOWN) * lot.step
    if lot.precision is not None and lot.precision >= 0:
        result = result.quantize(Decimal(1).scaleb(-lot.precision), rounding=ROUND_DOWN)
    if result <= 0:
        return Decimal("0")
    return result


def validate_order(
    lot: LotSize,
    quantity: Decimal | None = None,
    *,
    price: Decimal | None = None,
    notional: Decimal | None = None,
) -> Decimal | None:
    """Round and check an order against ``lot`` before it is submitted.

    For sells pass ``quantity`` (and ``price`` when known, to check the
    notional); for quote-sized buys pass ``notional``.

    Returns:
        The rounded quantity, or None when only a notional was checked

    Raises:
        ValidationError: Order falls outside the market's limits
    """
    rounded = None
    if quantity is not None:
        rounded = round_down_quantity(quantity, lot)
        if rounded <= 0:
            raise ValidationError(f"Quantity {quantity} below minimum lot size for {lot.symbol}")
        if lot.min_qty is not None and lot.min_qty > 0 and rounded < lot.min_qty:
            raise ValidationError(f"Quantity {rounded} below min lot size {lot.min_qty} for {lot.symbol}")
        if lot.max_qty is not None and lot.max_qty > 0 and rounded > lot.max_qty:
            raise ValidationError(f"Quantity {rounded} above max lot size {lot.max_qty} for {lot.symbol}")
        if notional is None and price is not None and price > 0:
            notional = rounded * price

    if notional is not None and lot.min_notional is not None and lot.min_notional > 0:
        if notional < lot.min_notional:
            raise ValidationError(
                f"Order value {notional} below min notional {lot.min_notional} for {lot.symbol}"
            )
    return rounded
