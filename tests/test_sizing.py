"""Tests for lot-size rounding and order minimums."""

from decimal import Decimal

import pytest

from cryptoconsole.errors import ValidationError
from cryptoconsole.orders.sizing import LotSize, round_down_quantity, validate_order


class TestRoundDown:
    def test_step_size(self):
        lot = LotSize("BTCUSDT", step=Decimal("0.001"))
        assert round_down_quantity(Decimal("1.23456"), lot) == Decimal("1.234")

    def test_precision(self):
        lot = LotSize("BTC_USDT", precision=2)
        assert round_down_quantity(Decimal("0.129"), lot) == Decimal("0.12")

    def test_never_rounds_up(self):
        lot = LotSize("X", step=Decimal("0.5"))
        assert round_down_quantity(Decimal("0.99"), lot) == Decimal("0.5")
        assert round_down_quantity(Decimal("0.49"), lot) == Decimal("0")


class TestValidateOrder:
    def test_returns_rounded_quantity(self):
        lot = LotSize("BTCUSDT", step=Decimal("0.001"), min_qty=Decimal("0.001"))
        assert validate_order(lot, Decimal("0.0129")) == Decimal("0.012")

    def test_below_min_qty(self):
        lot = LotSize("BTCUSDT", step=Decimal("0.001"), min_qty=Decimal("0.01"))
        with pytest.raises(ValidationError, match="below min lot size"):
            validate_order(lot, Decimal("0.005"))

    def test_rounds_to_zero(self):
        lot = LotSize("BTCUSDT", step=Decimal("1"))
        with pytest.raises(ValidationError, match="below minimum lot size"):
            validate_order(lot, Decimal("0.5"))

    def test_above_max_qty(self):
        lot = LotSize("BTCUSDT", max_qty=Decimal("10"))
        with pytest.raises(ValidationError, match="above max lot size"):
            validate_order(lot, Decimal("11"))

    def test_min_notional_from_price(self):
        lot = LotSize("BTCUSDT", min_notional=Decimal("10"))
        with pytest.raises(ValidationError, match="below min notional 10 for BTCUSDT"):
            validate_order(lot, Decimal("0.1"), price=Decimal("50"))

    def test_min_notional_for_quote_order(self):
        lot = LotSize("BTCUSDT", min_notional=Decimal("5"))
        assert validate_order(lot, notional=Decimal("5")) is None
        with pytest.raises(ValidationError):
            validate_order(lot, notional=Decimal("4.99"))
