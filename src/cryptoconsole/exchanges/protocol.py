"""Data model and protocol definition for exchange clients."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Protocol

ZERO = Decimal("0")


class Side(Enum):
    """Order-book side a depth walk consumes."""

    BUY = "buy"
    SELL = "sell"

    @property
    def book_side(self) -> str:
        return "ask" if self is Side.BUY else "bid"


@dataclass(frozen=True)
class Capabilities:
    """Operations an exchange client supports."""

    balances: bool = False
    withdrawal_fees: bool = False
    order_book: bool = False
    market_orders: bool = False
    withdrawals: bool = False
    time_sync: bool = False
    deposit_networks: bool = False
    deposit_address: bool = False

    def enabled(self) -> list[str]:
        return [name for name, value in vars(self).items() if value]


@dataclass(frozen=True)
class Balance:
    """Account balance for a single asset."""

    asset: str
    free: Decimal = ZERO
    locked: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "asset", self.asset.upper())
        object.__setattr__(self, "free", max(self.free or ZERO, ZERO))
        object.__setattr__(self, "locked", max(self.locked or ZERO, ZERO))


@dataclass(frozen=True)
class OrderBookLevel:
    price: Decimal
    quantity: Decimal

    @property
    def is_valid(self) -> bool:
        return self.price > 0 and self.quantity > 0


@dataclass(frozen=True)
class OrderBook:
    """Bids sorted by descending price, asks by ascending price."""

    symbol: str
    bids: tuple[OrderBookLevel, ...] = ()
    asks: tuple[OrderBookLevel, ...] = ()

    @classmethod
    def from_levels(
        cls,
        symbol: str,
        bids: list[tuple[Decimal, Decimal]] | list[OrderBookLevel],
        asks: list[tuple[Decimal, Decimal]] | list[OrderBookLevel],
    ) -> "OrderBook":
        """Build a book, dropping non-positive levels and sorting each side."""

        def levels(raw: list) -> list[OrderBookLevel]:
            result = []
            for item in raw:
                level = item if isinstance(item, OrderBookLevel) else OrderBookLevel(item[0], item[1])
                if level.is_valid:
                    result.append(level)
            return result

        return cls(
            symbol=symbol,
            bids=tuple(sorted(levels(bids), key=lambda lvl: lvl.price, reverse=True)),
            asks=tuple(sorted(levels(asks), key=lambda lvl: lvl.price)),
        )


@dataclass(frozen=True)
class FillLevel:
    """One order-book level consumed by a depth walk."""

    price: Decimal
    base_filled: Decimal
    quote_value: Decimal


@dataclass(frozen=True)
class FillSimulation:
    """Projected fill for a target quote notional."""

    symbol: str
    side: Side
    requested_notional: Decimal
    quote_total: Decimal
    base_filled: Decimal
    average_price: Decimal
    levels: tuple[FillLevel, ...] = ()
    book_exhausted: bool = False

    @property
    def fully_filled(self) -> bool:
        return not self.book_exhausted


@dataclass(frozen=True)
class WithdrawalFees:
    asset: str
    fees: dict[str, Decimal] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.fees)


@dataclass(frozen=True)
class OrderResult:
    order_id: str
    status: str
    symbol: str = ""
    message: str = ""


@dataclass(frozen=True)
class WithdrawResult:
    withdrawal_id: str = ""
    status: str = "submitted"


@dataclass(frozen=True)
class DepositAddress:
    address: str
    memo: str | None = None
    network: str | None = None


@dataclass(frozen=True)
class ExchangeTime:
    """Server clock reading; ``offset_ms`` is server minus local."""

    server_time_ms: int
    offset_ms: int


class ExchangeClient(Protocol):
    """Protocol for exchange connectivity.

    Operations whose capability flag is off raise ``UnsupportedOperationError``
    before any network call is made.
    """

    name: str

    @property
    def capabilities(self) -> Capabilities:
        ...

    @property
    def has_credentials(self) -> bool:
        ...

    async def get_balance(self, asset: str) -> Balance:
        """Fetch free/locked balance for one asset (zero when absent)."""
        ...

    async def get_withdrawal_fees(self, asset: str) -> WithdrawalFees:
        """Fetch per-network withdrawal fees keyed by canonical network token."""
        ...

    async def get_order_book(self, base: str, quote: str, depth: int = 100) -> OrderBook:
        ...

    async def buy_info(self, base: str, quote: str, quote_amount: Decimal) -> FillSimulation:
        """Simulate spending ``quote_amount`` against the asks."""
        ...

    async def sell_info(self, base: str, quote: str, quote_amount: Decimal) -> FillSimulation:
        """Simulate receiving ``quote_amount`` against the bids."""
        ...

    async def market_buy(self, base: str, quote: str, quote_amount: Decimal) -> OrderResult:
        """Place a market buy spending ``quote_amount`` of the quote asset.

        Args:
            base: Base asset (e.g. 'BTC')
            quote: Quote asset (e.g. 'USDT')
            quote_amount: Quote notional to spend

        Returns:
            OrderResult with the exchange order id and status

        Raises:
            ValidationError: Amount not positive or below exchange minimums
        """
        ...

    async def market_sell(self, base: str, quote: str, base_amount: Decimal) -> OrderResult:
        ...

    async def withdraw(
        self,
        asset: str,
        amount: Decimal,
        network: str,
        address: str,
        memo: str | None = None,
    ) -> WithdrawResult:
        ...

    async def get_deposit_networks(self, asset: str) -> set[str]:
        """Return canonical network tokens the asset can be deposited over."""
        ...

    async def get_deposit_address(self, asset: str, network: str) -> DepositAddress | None:
        ...

    async def sync_time(self) -> ExchangeTime:
        ...

    async def close(self) -> None:
        """Close the HTTP session."""
        ...
