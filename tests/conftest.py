"""Pytest configuration and fixtures."""

from decimal import Decimal

import pytest

from cryptoconsole.exchanges.protocol import (
    Balance,
    Capabilities,
    DepositAddress,
    ExchangeTime,
    OrderBook,
    OrderResult,
    WithdrawalFees,
    WithdrawResult,
)
from cryptoconsole.exchanges.registry import ExchangeRegistry
from cryptoconsole.orders.depth import simulate_buy, simulate_sell
from cryptoconsole.settings import Settings

ALL_CAPABILITIES = Capabilities(
    balances=True,
    withdrawal_fees=True,
    order_book=True,
    market_orders=True,
    withdrawals=True,
    time_sync=True,
    deposit_networks=True,
    deposit_address=True,
)


class FakeExchangeClient:
    """In-memory exchange client recording every call."""

    def __init__(
        self,
        name,
        *,
        capabilities=ALL_CAPABILITIES,
        balances=("0",),
        fees=None,
        networks=(),
        deposit_address=None,
        book=None,
        credentials=True,
    ):
        self.name = name
        self._capabilities = capabilities
        self._balances = [Decimal(b) for b in balances]
        self._fees = fees
        self._networks = set(networks)
        self._deposit_address = deposit_address
        self._book = book
        self._credentials = credentials
        self.balance_calls = 0
        self.fee_calls = 0
        self.withdrawals = []
        self.orders = []
        self.closed = False

    @property
    def capabilities(self):
        return self._capabilities

    @property
    def has_credentials(self):
        return self._credentials

    async def get_balance(self, asset):
        value = self._balances[min(self.balance_calls, len(self._balances) - 1)]
        self.balance_calls += 1
        return Balance(asset, value)

    async def get_withdrawal_fees(self, asset):
        self.fee_calls += 1
        if isinstance(self._fees, Exception):
            raise self._fees
        return WithdrawalFees(asset, {k: Decimal(v) for k, v in (self._fees or {}).items()})

    async def get_order_book(self, base, quote, depth=100):
        return self._book

    async def buy_info(self, base, quote, quote_amount):
        return simulate_buy(self._book, quote_amount)

    async def sell_info(self, base, quote, quote_amount):
        return simulate_sell(self._book, quote_amount)

    async def market_buy(self, base, quote, quote_amount):
        self.orders.append(("buy", base, quote, quote_amount))
        return OrderResult("1001", "FILLED", f"{base}{quote}")

    async def market_sell(self, base, quote, base_amount):
        self.orders.append(("sell", base, quote, base_amount))
        return OrderResult("1002", "FILLED", f"{base}{quote}")

    async def withdraw(self, asset, amount, network, address, memo=None):
        self.withdrawals.append((asset, amount, network, address, memo))
        return WithdrawResult("wd-1")

    async def get_deposit_networks(self, asset):
        return set(self._networks)

    async def get_deposit_address(self, asset, network):
        return self._deposit_address

    async def sync_time(self):
        return ExchangeTime(1700000000000, 12)

    async def close(self):
        self.closed = True


@pytest.fixture
def api_key():
    """Test API key."""
    return "test_api_key_123456"


@pytest.fixture
def api_secret():
    """Test API secret."""
    return "test_api_secret_789012"


@pytest.fixture
def passphrase():
    """Test passphrase."""
    return "test_passphrase_345678"


@pytest.fixture
def settings_data():
    """Configuration for a binance -> kucoin USDT move."""
    return {
        "exchanges": {
            "binance": {"credentials": {"api_key": "k1", "api_secret": "s1"}},
            "kucoin": {"credentials": {"api_key": "k2", "api_secret": "s2", "passphrase": "p2"}},
        },
        "polling": {"interval_seconds": 0.01, "max_wait_seconds": 0.2},
        "withdrawal_addresses": {
            "kucoin": {"USDT": {"TRC20": {"address": "TXYZdestination"}}},
        },
    }


@pytest.fixture
def settings(settings_data):
    return Settings.model_validate(settings_data)


@pytest.fixture
def fake_client():
    """Factory for in-memory exchange clients."""
    return FakeExchangeClient


@pytest.fixture
def registry(settings):
    return ExchangeRegistry(settings)


@pytest.fixture
def sample_book():
    """Two-level book on each side."""
    return OrderBook.from_levels(
        "BTCUSDT",
        [(Decimal("99"), Decimal("1")), (Decimal("98"), Decimal("2"))],
        [(Decimal("100"), Decimal("1")), (Decimal("101"), Decimal("2"))],
    )


@pytest.fixture
def deposit_address():
    return DepositAddress("TXYZfromapi", None, "TRC20")
