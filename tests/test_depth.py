"""Tests for the order-book depth walker."""

from decimal import Decimal

import pytest

from cryptoconsole.errors import InsufficientLiquidityError, ValidationError
from cryptoconsole.exchanges.protocol import OrderBook, OrderBookLevel, Side
from cryptoconsole.orders.depth import simulate_buy, simulate_sell, walk_order_book


def _book(bids=(), asks=()):
    return OrderBook.from_levels(
        "BTCUSDT",
        [(Decimal(p), Decimal(q)) for p, q in bids],
        [(Decimal(p), Decimal(q)) for p, q in asks],
    )


class TestBuySimulation:
    """Walking the asks for a quote notional."""

    def test_partial_second_level(self):
        """150 USDT against (100,1),(101,2) fills one whole level and part of the next."""
        sim = simulate_buy(_book(asks=[("100", "1"), ("101", "2")]), Decimal("150"))

        assert len(sim.levels) == 2
        assert sim.levels[0].base_filled == Decimal("1")
        assert sim.levels[0].quote_value == Decimal("100")
        assert sim.levels[1].base_filled == Decimal("0.495049504950495049")
        assert sim.base_filled == Decimal("1.495049504950495049")
        assert abs(sim.quote_total - Decimal("150")) < Decimal("1e-15")
        assert abs(sim.average_price - Decimal("100.3311")) < Decimal("0.0001")
        assert sim.fully_filled

    def test_exact_level_boundary_stops(self):
        """Exhausting the notional on a level boundary consumes nothing further."""
        sim = simulate_buy(_book(asks=[("100", "1"), ("101", "2")]), Decimal("100"))

        assert len(sim.levels) == 1
        assert sim.base_filled == Decimal("1")
        assert sim.average_price == Decimal("100")

    def test_book_exhausted(self):
        """A notional larger than the book fills everything available."""
        sim = simulate_buy(_book(asks=[("100", "1"), ("101", "2")]), Decimal("1000"))

        assert sim.base_filled == Decimal("3")
        assert sim.quote_total == Decimal("302")
        assert not sim.fully_filled

    def test_invalid_levels_skipped(self):
        """Zero or negative levels are ignored rather than rejected."""
        levels = [
            OrderBookLevel(Decimal("0"), Decimal("5")),
            OrderBookLevel(Decimal("100"), Decimal("-1")),
            OrderBookLevel(Decimal("100"), Decimal("1")),
        ]
        sim = walk_order_book(levels, Decimal("50"), Side.BUY, "BTCUSDT")

        assert sim.base_filled == Decimal("0.5")
        assert len(sim.levels) == 1

    def test_empty_book_raises(self):
        with pytest.raises(InsufficientLiquidityError, match="No ask liquidity available for BTCUSDT"):
            simulate_buy(_book(), Decimal("10"))

    def test_non_positive_notional(self):
        with pytest.raises(ValidationError):
            simulate_buy(_book(asks=[("100", "1")]), Decimal("0"))

    def test_tiny_notional_below_scale(self):
        """A partial that rounds to zero fills nothing."""
        with pytest.raises(InsufficientLiquidityError):
            simulate_buy(_book(asks=[("1000000", "1")]), Decimal("1e-20"))


class TestSellSimulation:
    """Walking the bids for a quote notional."""

    def test_walks_highest_bid_first(self):
        sim = simulate_sell(_book(bids=[("98", "2"), ("99", "1")]), Decimal("148"))

        assert sim.side is Side.SELL
        assert sim.levels[0].price == Decimal("99")
        assert sim.levels[1].price == Decimal("98")
        assert sim.base_filled == Decimal("1.5")
        assert sim.quote_total == Decimal("148")

    def test_empty_bids_raise(self):
        with pytest.raises(InsufficientLiquidityError, match="No bid liquidity"):
            simulate_sell(_book(asks=[("100", "1")]), Decimal("10"))


@pytest.mark.parametrize("notional", ["0.5", "37", "100", "150", "250.75", "301.9999", "5000"])
def test_fill_invariants(notional):
    """Level fills sum to the total, spend never exceeds the request, avg x base ~= spend."""
    book = _book(asks=[("100", "1"), ("101", "2"), ("103.5", "0.25")])
    requested = Decimal(notional)
    sim = simulate_buy(book, requested)

    assert sum(level.base_filled for level in sim.levels) == sim.base_filled
    assert sim.quote_total <= requested
    assert abs(sim.base_filled * sim.average_price - sim.quote_total) < Decimal("1e-12")
