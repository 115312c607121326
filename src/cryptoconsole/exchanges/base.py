"""Base client class for exchange adapters."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import time
from abc import ABC
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, TypeVar

from ..errors import (
    MemoRequiredError,
    MissingCredentialsError,
    ProtocolError,
    UnsupportedOperationError,
    ValidationError,
)
from ..orders.depth import simulate_buy, simulate_sell
from ..settings import parse_positive_decimal
from .normalization import normalize_network, normalize_networks
from .protocol import (
    Balance,
    Capabilities,
    DepositAddress,
    ExchangeTime,
    FillSimulation,
    OrderBook,
    OrderResult,
    WithdrawalFees,
    WithdrawResult,
)
from .transport import RetryPolicy, SignedTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")

CLOCK_OFFSET_TTL = 30.0


def to_decimal(value: Any, default: Decimal | None = Decimal("0")) -> Decimal | None:
    """Parse an exchange numeric field; blank or missing gives ``default``."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ProtocolError(f"Unexpected numeric value: {value!r}") from exc


class BaseExchangeClient(ABC):
    """Base class for all exchange adapters.

    Public operations check the capability flag, credentials and inputs,
    then delegate to a ``_fetch_*``/``_submit_*`` hook the concrete client
    implements. Hooks are only reached after every local check passed.
    """

    CAPABILITIES = Capabilities()
    DEFAULT_BASE_URL = "https://api.example.com"
    ALT_BASE_URL: str | None = None
    SIMULATION_DEPTH = 100

    def __init__(
        self,
        name: str,
        api_key: str | None = None,
        api_secret: str | None = None,
        *,
        passphrase: str | None = None,
        base_url: str | None = None,
        alt_base_url: str | None = None,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        **options: Any,
    ):
        """Initialize exchange client.

        Args:
            name: Canonical exchange name
            api_key: API key
            api_secret: API secret
            passphrase: API passphrase (KuCoin)
            base_url: Override of the default REST base URL
            alt_base_url: Alternate REST base URL tried on signature rejection
            policy: Retry policy for the signed transport
            sleep: Backoff sleep, injectable for tests
            **options: Additional exchange-specific options
        """
        self.name = name
        self.api_key = api_key or ""
        self.api_secret = api_secret or ""
        self.passphrase = passphrase
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.alt_base_url = (alt_base_url or self.ALT_BASE_URL or "").rstrip("/") or None
        self.options = options
        self.transport = SignedTransport(name, policy=policy, sleep=sleep)

        self._clock_offset_ms: int | None = None
        self._clock_synced_at = 0.0
        self._clock_lock = asyncio.Lock()
        self._memo_cache: dict[str, Any] = {}
        self._memo_lock = asyncio.Lock()

    @property
    def capabilities(self) -> Capabilities:
        return self.CAPABILITIES

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key.strip() and self.api_secret.strip())

    def get_base_url(self) -> str:
        return self.base_url

    @staticmethod
    def generate_signature(secret: str, message: str, digest: Any = hashlib.sha256) -> str:
        """Hex-encoded HMAC of ``message``."""
        return hmac.new(secret.encode(), message.encode(), digest).hexdigest()

    # Local checks

    def _require(self, flag: str, operation: str) -> None:
        if not getattr(self.capabilities, flag):
            raise UnsupportedOperationError(self.name, operation)

    def _require_credentials(self) -> None:
        if not self.has_credentials:
            raise MissingCredentialsError(self.name)

    @staticmethod
    def _require_asset(asset: str, what: str = "Asset") -> str:
        if not asset or not asset.strip():
            raise ValidationError(f"{what} is required")
        return asset.strip().upper()

    @staticmethod
    def _require_positive(amount: Decimal, what: str = "Amount") -> Decimal:
        if amount is None or not isinstance(amount, Decimal) or not amount.is_finite() or amount <= 0:
            raise ValidationError(f"{what} must be positive")
        return amount

    def _ensure_memo(self, required: bool, asset: str, network: str, memo: str | None) -> None:
        if required and not (memo and memo.strip()):
            raise MemoRequiredError(asset, network)

    # Per-instance caches

    def _timestamp_ms(self) -> int:
        return int(time.time() * 1000) + (self._clock_offset_ms or 0)

    async def clock_offset_ms(self) -> int:
        """Server minus local clock, refreshed at most every 30 seconds.

        A failed refresh yields a zero offset rather than an error.
        """
        async with self._clock_lock:
            now = time.monotonic()
            if self._clock_offset_ms is not None and now - self._clock_synced_at < CLOCK_OFFSET_TTL:
                return self._clock_offset_ms
            try:
                server_ms = await self._fetch_server_time()
                self._clock_offset_ms = server_ms - int(time.time() * 1000)
            except Exception as exc:
                logger.warning("%s clock sync failed, using local time: %s", self.name, exc)
                self._clock_offset_ms = 0
            self._clock_synced_at = now
            return self._clock_offset_ms

    async def _memoize(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Compute ``factory()`` once per client and reuse the result."""
        async with self._memo_lock:
            if key not in self._memo_cache:
                self._memo_cache[key] = await factory()
            return self._memo_cache[key]

    # Public operations

    async def get_balance(self, asset: str) -> Balance:
        self._require("balances", "getBalance")
        self._require_credentials()
        asset = self._require_asset(asset)
        return await self._fetch_balance(asset)

    async def get_withdrawal_fees(self, asset: str) -> WithdrawalFees:
        self._require("withdrawal_fees", "getWithdrawalFees")
        self._require_credentials()
        asset = self._require_asset(asset)
        raw = await self._fetch_withdrawal_fees(asset)
        fees: dict[str, Decimal] = {}
        for label, value in raw.items():
            network = normalize_network(label, asset)
            fee = parse_positive_decimal(value)
            if network and fee is not None:
                fees.setdefault(network, fee)
        return WithdrawalFees(asset, fees)

    async def get_order_book(self, base: str, quote: str, depth: int = 100) -> OrderBook:
        self._require("order_book", "getOrderBook")
        base = self._require_asset(base, "Base asset")
        quote = self._require_asset(quote, "Quote asset")
        return await self._fetch_order_book(base, quote, depth)

    async def buy_info(self, base: str, quote: str, quote_amount: Decimal) -> FillSimulation:
        base = self._require_asset(base, "Base asset")
        quote = self._require_asset(quote, "Quote asset")
        self._require_positive(quote_amount, "Quote amount")
        book = await self._fetch_order_book(base, quote, self.SIMULATION_DEPTH)
        return simulate_buy(book, quote_amount)

    async def sell_info(self, base: str, quote: str, quote_amount: Decimal) -> FillSimulation:
        base = self._require_asset(base, "Base asset")
        quote = self._require_asset(quote, "Quote asset")
        self._require_positive(quote_amount, "Quote amount")
        book = await self._fetch_order_book(base, quote, self.SIMULATION_DEPTH)
        return simulate_sell(book, quote_amount)

    async def market_buy(self, base: str, quote: str, quote_amount: Decimal) -> OrderResult:
        self._require("market_orders", "marketBuy")
        self._require_credentials()
        base = self._require_asset(base, "Base asset")
        quote = self._require_asset(quote, "Quote asset")
        self._require_positive(quote_amount, "Quote amount")
        return await self._submit_market_buy(base, quote, quote_amount)

    async def market_sell(self, base: str, quote: str, base_amount: Decimal) -> OrderResult:
        self._require("market_orders", "marketSell")
        self._require_credentials()
        base = self._require_asset(base, "Base asset")
        quote = self._require_asset(quote, "Quote asset")
        self._require_positive(base_amount, "Base amount")
        return await self._submit_market_sell(base, quote, base_amount)

    async def withdraw(
        self,
        asset: str,
        amount: Decimal,
        network: str,
        address: str,
        memo: str | None = None,
    ) -> WithdrawResult:
        self._require("withdrawals", "withdraw")
        self._require_credentials()
        asset = self._require_asset(asset)
        self._require_positive(amount)
        if not address or not address.strip():
            raise ValidationError("Withdrawal address is required")
        canonical = normalize_network(network, asset)
        if not canonical:
            raise ValidationError("Network is required")
        memo = memo.strip() if memo and memo.strip() else None
        logger.info("%s withdraw %s %s via %s", self.name, amount, asset, canonical)
        return await self._submit_withdraw(asset, amount, canonical, address.strip(), memo)

    async def get_deposit_networks(self, asset: str) -> set[str]:
        self._require("deposit_networks", "getDepositNetworks")
        asset = self._require_asset(asset)
        labels = await self._fetch_deposit_networks(asset)
        return normalize_networks(labels, asset)

    async def get_deposit_address(self, asset: str, network: str) -> DepositAddress | None:
        self._require("deposit_address", "getDepositAddress")
        self._require_credentials()
        asset = self._require_asset(asset)
        canonical = normalize_network(network, asset)
        if not canonical:
            raise ValidationError("Network is required")
        return await self._fetch_deposit_address(asset, canonical)

    async def sync_time(self) -> ExchangeTime:
        self._require("time_sync", "syncTime")
        server_ms = await self._fetch_server_time()
        offset = server_ms - int(time.time() * 1000)
        async with self._clock_lock:
            self._clock_offset_ms = offset
            self._clock_synced_at = time.monotonic()
        return ExchangeTime(server_ms, offset)

    # Hooks

    async def _fetch_balance(self, asset: str) -> Balance:
        raise UnsupportedOperationError(self.name, "getBalance")

    async def _fetch_withdrawal_fees(self, asset: str) -> dict[str, Any]:
        """Return provider network label -> raw fee value."""
        raise UnsupportedOperationError(self.name, "getWithdrawalFees")

    async def _fetch_order_book(self, base: str, quote: str, depth: int) -> OrderBook:
        raise UnsupportedOperationError(self.name, "getOrderBook")

    async def _submit_market_buy(self, base: str, quote: str, quote_amount: Decimal) -> OrderResult:
        raise UnsupportedOperationError(self.name, "marketBuy")

    async def _submit_market_sell(self, base: str, quote: str, base_amount: Decimal) -> OrderResult:
        raise UnsupportedOperationError(self.name, "marketSell")

    async def _submit_withdraw(
        self, asset: str, amount: Decimal, network: str, address: str, memo: str | None
    ) -> WithdrawResult:
        raise UnsupportedOperationError(self.name, "withdraw")

    async def _fetch_deposit_networks(self, asset: str) -> list[str]:
        raise UnsupportedOperationError(self.name, "getDepositNetworks")

    async def _fetch_deposit_address(self, asset: str, network: str) -> DepositAddress | None:
        raise UnsupportedOperationError(self.name, "getDepositAddress")

    async def _fetch_server_time(self) -> int:
        raise UnsupportedOperationError(self.name, "syncTime")

    async def close(self) -> None:
        """Close connections."""
        await self.transport.close()


def to_plain(value: Decimal) -> str:
    """Render a Decimal without exponent notation or trailing zeros."""
    return format(value.normalize(), "f")
