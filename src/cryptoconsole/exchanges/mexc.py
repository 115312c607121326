"""MEXC exchange adapter."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any
from urllib.parse import quote, urlencode

from ..errors import ProtocolError, RemoteError, ValidationError
from ..orders.sizing import LotSize, validate_order
from .base import BaseExchangeClient, to_decimal, to_plain
from .normalization import SymbolListing, networks_match, resolve_symbol
from .protocol import Balance, Capabilities, DepositAddress, OrderBook, OrderResult

logger = logging.getLogger(__name__)

MAX_DEPTH = 5000


class MEXCClient(BaseExchangeClient):
    """MEXC spot exchange client.

    Signed endpoints take the sorted, percent-encoded query string signed
    with HMAC-SHA256; timestamps follow the exchange clock.
    """

    CAPABILITIES = Capabilities(
        balances=True,
        market_orders=True,
        deposit_networks=True,
        deposit_address=True,
    )
    DEFAULT_BASE_URL = "https://api.mexc.com"

    def __init__(
        self,
        api_key: str | None = None,
        api_secret: str | None = None,
        *,
        recv_window_ms: int = 5000,
        **options: Any,
    ):
        super().__init__("mexc", api_key, api_secret, **options)
        self.recv_window_ms = recv_window_ms

    def _get_headers(self) -> dict[str, str]:
        return {"X-MEXC-APIKEY": self.api_key}

    def _sign_params(self, params: dict[str, Any]) -> str:
        params = dict(params)
        params["timestamp"] = self._timestamp_ms()
        params["recvWindow"] = self.recv_window_ms
        query = urlencode(sorted(params.items()), quote_via=quote)
        return f"{query}&signature={self.generate_signature(self.api_secret, query)}"

    async def _public(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.get_base_url()}{path}"
        if params:
            url = f"{url}?{urlencode(params)}"
        return await self.transport.request("GET", url)

    async def _signed(self, method: str, path: str, params: dict[str, Any] | None = None) -> Any:
        self._require_credentials()
        await self.clock_offset_ms()
        url = f"{self.get_base_url()}{path}?{self._sign_params(params or {})}"
        return await self.transport.request(method, url, headers=self._get_headers())

    async def _fetch_server_time(self) -> int:
        data = await self._public("/api/v3/time")
        if not isinstance(data, dict) or "serverTime" not in data:
            raise ProtocolError("Unexpected response from MEXC time API")
        return int(data["serverTime"])

    async def _fetch_balance(self, asset: str) -> Balance:
        data = await self._signed("GET", "/api/v3/account")
        if not isinstance(data, dict) or not isinstance(data.get("balances"), list):
            raise ProtocolError("Unexpected response from MEXC account API")
        for item in data["balances"]:
            if str(item.get("asset", "")).upper() == asset:
                return Balance(asset, to_decimal(item.get("free")), to_decimal(item.get("locked")))
        return Balance(asset)

    async def _fetch_order_book(self, base: str, quote: str, depth: int) -> OrderBook:
        lot = await self._lot_size(base, quote)
        data = await self._public("/api/v3/depth", {"symbol": lot.symbol, "limit": min(depth, MAX_DEPTH)})
        if not isinstance(data, dict) or "asks" not in data or "bids" not in data:
            raise ProtocolError("Unexpected response from MEXC depth API")
        return OrderBook.from_levels(
            lot.symbol,
            [(to_decimal(p), to_decimal(q)) for p, q, *_ in data["bids"]],
            [(to_decimal(p), to_decimal(q)) for p, q, *_ in data["asks"]],
        )

    async def _listings(self, base: str, quote: str) -> list[dict[str, Any]]:
        # The filtered lookup rejects unknown pairs; the full list still
        # finds redenominated markets such as 1000PEPEUSDT
        try:
            data = await self._public("/api/v3/exchangeInfo", {"symbol": f"{base}{quote}"})
            symbols = data.get("symbols") if isinstance(data, dict) else None
            if symbols:
                return symbols
        except RemoteError as exc:
            logger.debug("mexc exchangeInfo lookup for %s%s failed: %s", base, quote, exc)
        data = await self._public("/api/v3/exchangeInfo")
        if not isinstance(data, dict) or not isinstance(data.get("symbols"), list):
            raise ProtocolError("Unexpected response from MEXC exchangeInfo API")
        return data["symbols"]

    async def _lot_size(self, base: str, quote: str) -> LotSize:
        symbols = {s["symbol"]: s for s in await self._listings(base, quote) if s.get("symbol")}
        listing = resolve_symbol(
            base,
            quote,
            [SymbolListing(name, s.get("baseAsset", ""), s.get("quoteAsset", "")) for name, s in symbols.items()],
        )
        info = symbols[listing.symbol]
        step = to_decimal(info.get("baseSizePrecision"), None)
        return LotSize(
            symbol=listing.symbol,
            step=step if step else None,
            min_notional=to_decimal(info.get("quoteAmountPrecision"), None),
        )

    async def _avg_price(self, symbol: str) -> Decimal | None:
        data = await self._public("/api/v3/avgPrice", {"symbol": symbol})
        return to_decimal(data.get("price"), None) if isinstance(data, dict) else None

    def _order_result(self, data: Any, symbol: str) -> OrderResult:
        if not isinstance(data, dict) or data.get("orderId") is None:
            raise ProtocolError("Unexpected response from MEXC order API")
        return OrderResult(str(data["orderId"]), "SUBMITTED", symbol)

    async def _submit_market_buy(self, base: str, quote: str, quote_amount: Decimal) -> OrderResult:
        lot = await self._lot_size(base, quote)
        validate_order(lot, notional=quote_amount)
        data = await self._signed(
            "POST",
            "/api/v3/order",
            {"symbol": lot.symbol, "side": "BUY", "type": "MARKET", "quoteOrderQty": to_plain(quote_amount)},
        )
        return self._order_result(data, lot.symbol)

    async def _submit_market_sell(self, base: str, quote: str, base_amount: Decimal) -> OrderResult:
        lot = await self._lot_size(base, quote)
        quantity = validate_order(lot, base_amount, price=await self._avg_price(lot.symbol))
        data = await self._signed(
            "POST",
            "/api/v3/order",
            {"symbol": lot.symbol, "side": "SELL", "type": "MARKET", "quantity": to_plain(quantity)},
        )
        return self._order_result(data, lot.symbol)

    async def _deposit_entries(self, asset: str) -> list[dict[str, Any]]:
        data = await self._signed("GET", "/api/v3/capital/deposit/address", {"coin": asset})
        return [item for item in data if isinstance(item, dict)] if isinstance(data, list) else []

    async def _fetch_deposit_networks(self, asset: str) -> list[str]:
        labels = [item.get("network") for item in await self._deposit_entries(asset) if item.get("network")]
        if labels:
            return labels

        # No address generated yet for any chain; fall back to the coin config
        data = await self._signed("GET", "/api/v3/capital/config/getall")
        if not isinstance(data, list):
            raise ProtocolError("Unexpected response from MEXC capital config API")
        for coin in data:
            if str(coin.get("coin", "")).upper() != asset:
                continue
            return [
                entry.get("netWork") or entry.get("network")
                for entry in coin.get("networkList") or []
                if entry.get("depositEnable", True)
            ]
        return []

    async def _fetch_deposit_address(self, asset: str, network: str) -> DepositAddress | None:
        for item in await self._deposit_entries(asset):
            if item.get("address") and networks_match(item.get("network"), network, asset):
                return DepositAddress(item["address"], item.get("memo") or item.get("tag") or None, network)
        return None
