"""Order-book depth walker used for buy/sell fill simulation."""

from __future__ import annotations

import logging
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, localcontext
from typing import Iterable

from ..errors import InsufficientLiquidityError, ValidationError
from ..exchanges.protocol import FillLevel, FillSimulation, OrderBook, OrderBookLevel, Side

logger = logging.getLogger(__name__)

SCALE = Decimal("1e-18")
_PRECISION = 60


def walk_order_book(
    levels: Iterable[OrderBookLevel],
    notional: Decimal,
    side: Side,
    symbol: str,
) -> FillSimulation:
    """Consume book levels in priority order until ``notional`` quote is used up.

    ``levels`` must already be in book-priority order: ascending price for
    asks (buy), descending price for bids (sell). Non-positive levels are
    skipped. A level larger than the remaining notional is filled partially,
    its quantity rounded down to 18 decimal places.

    Args:
        levels: One side of an order book
        notional: Target quote-asset value
        side: BUY walks asks, SELL walks bids
        symbol: Market symbol, used in error messages

    Returns:
        FillSimulation with totals, average price and consumed levels

    Raises:
        ValidationError: Notional is not positive
        InsufficientLiquidityError: Nothing could be filled
    """
    if notional is None or notional <= 0:
        raise ValidationError("Quote amount must be positive")

    remaining = notional
    quote_total = Decimal("0")
    base_filled = Decimal("0")
    consumed: list[FillLevel] = []

    with localcontext() as ctx:
        ctx.prec = _PRECISION
        for level in levels:
            if not level.is_valid:
                continue
            level_value = level.price * level.quantity
            if remaining >= level_value:
                base_filled += level.quantity
                quote_total += level_value
                consumed.append(FillLevel(level.price, level.quantity, level_value))
                remaining -= level_value
            else:
                partial = (remaining / level.price).quantize(SCALE, rounding=ROUND_DOWN)
                if partial > 0:
                    cost = partial * level.price
                    base_filled += partial
                    quote_total += cost
                    consumed.append(FillLevel(level.price, partial, cost))
                remaining = Decimal("0")
                break
            if remaining == 0:
                break

        if base_filled <= 0:
            raise InsufficientLiquidityError(symbol, side.book_side)

        average = (quote_total / base_filled).quantize(SCALE, rounding=ROUND_HALF_UP)

    logger.debug(
        "%s %s walk: notional=%s filled=%s avg=%s levels=%d",
        symbol, side.value, notional, base_filled, average, len(consumed),
    )
    return FillSimulation(
        symbol=symbol,
        side=side,
        requested_notional=notional,
        quote_total=quote_total,
        base_filled=base_filled,
        average_price=average,
        levels=tuple(consumed),
        book_exhausted=remaining > 0,
    )


def simulate_buy(book: OrderBook, quote_amount: Decimal) -> FillSimulation:
    return walk_order_book(book.asks, quote_amount, Side.BUY, book.symbol)


def simulate_sell(book: OrderBook, quote_amount: Decimal) -> FillSimulation:
    return walk_order_book(book.bids, quote_amount, Side.SELL, book.symbol)
