"""Binance exchange adapter."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any
from urllib.parse import urlencode

from ..errors import ProtocolError, RemoteError, ValidationError
from ..orders.sizing import LotSize, validate_order
from .base import BaseExchangeClient, to_decimal, to_plain
from .normalization import SymbolListing, networks_match, resolve_symbol
from .protocol import (
    Balance,
    Capabilities,
    DepositAddress,
    OrderBook,
    OrderResult,
    WithdrawResult,
)

logger = logging.getLogger(__name__)

INVALID_SYMBOL = -1121
MAX_DEPTH = 5000


class BinanceClient(BaseExchangeClient):
    """Binance spot exchange client."""

    CAPABILITIES = Capabilities(
        balances=True,
        withdrawal_fees=True,
        order_book=True,
        market_orders=True,
        withdrawals=True,
        time_sync=True,
        deposit_networks=True,
        deposit_address=True,
    )
    DEFAULT_BASE_URL = "https://api.binance.com"

    def __init__(
        self,
        api_key: str | None = None,
        api_secret: str | None = None,
        *,
        recv_window_ms: int = 5000,
        **options: Any,
    ):
        super().__init__("binance", api_key, api_secret, **options)
        self.recv_window_ms = recv_window_ms

    def _get_headers(self) -> dict[str, str]:
        return {"X-MBX-APIKEY": self.api_key}

    def _sign_params(self, params: dict[str, Any]) -> str:
        """Return the query string with timestamp, recvWindow and signature appended."""
        params = dict(params)
        params["timestamp"] = self._timestamp_ms()
        params["recvWindow"] = self.recv_window_ms
        query = urlencode(params)
        return f"{query}&signature={self.generate_signature(self.api_secret, query)}"

    async def _public(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.get_base_url()}{path}"
        if params:
            url = f"{url}?{urlencode(params)}"
        return await self.transport.request("GET", url)

    async def _signed(self, method: str, path: str, params: dict[str, Any] | None = None) -> Any:
        self._require_credentials()
        url = f"{self.get_base_url()}{path}?{self._sign_params(params or {})}"
        return await self.transport.request(method, url, headers=self._get_headers())

    async def _fetch_balance(self, asset: str) -> Balance:
        data = await self._signed("GET", "/api/v3/account")
        if not isinstance(data, dict):
            raise ProtocolError("Unexpected response from Binance account API")
        for item in data.get("balances", []):
            if str(item.get("asset", "")).upper() == asset:
                return Balance(asset, to_decimal(item.get("free")), to_decimal(item.get("locked")))
        return Balance(asset)

    async def _network_list(self, asset: str) -> list[dict[str, Any]]:
        data = await self._signed("GET", "/sapi/v1/capital/config/getall")
        if not isinstance(data, list):
            raise ProtocolError("Unexpected response from Binance capital config API")
        for coin in data:
            if str(coin.get("coin", "")).upper() == asset:
                return list(coin.get("networkList") or [])
        raise ValidationError(f"Binance does not support asset: {asset}")

    async def _fetch_withdrawal_fees(self, asset: str) -> dict[str, Any]:
        return {
            entry.get("network"): entry.get("withdrawFee")
            for entry in await self._network_list(asset)
            if entry.get("withdrawEnable")
        }

    async def _fetch_deposit_networks(self, asset: str) -> list[str]:
        return [
            entry.get("network")
            for entry in await self._network_list(asset)
            if entry.get("depositEnable")
        ]

    def _match_network(self, entries: list[dict[str, Any]], asset: str, network: str) -> dict[str, Any]:
        for entry in entries:
            if networks_match(entry.get("network"), network, asset):
                return entry
        available = ", ".join(sorted(str(e.get("network")) for e in entries))
        raise ValidationError(f"Binance does not support network {network} for {asset} (available: {available})")

    async def _fetch_deposit_address(self, asset: str, network: str) -> DepositAddress | None:
        entry = self._match_network(await self._network_list(asset), asset, network)
        data = await self._signed(
            "GET", "/sapi/v1/capital/deposit/address", {"coin": asset, "network": entry["network"]}
        )
        if not isinstance(data, dict) or not data.get("address"):
            return None
        return DepositAddress(data["address"], data.get("tag") or None, network)

    async def _fetch_order_book(self, base: str, quote: str, depth: int) -> OrderBook:
        symbol = f"{base}{quote}"
        data = await self._public("/api/v3/depth", {"symbol": symbol, "limit": min(depth, MAX_DEPTH)})
        if not isinstance(data, dict) or "asks" not in data or "bids" not in data:
            raise ProtocolError("Unexpected response from Binance order book API")
        return OrderBook.from_levels(
            symbol,
            [(to_decimal(p), to_decimal(q)) for p, q, *_ in data["bids"]],
            [(to_decimal(p), to_decimal(q)) for p, q, *_ in data["asks"]],
        )

    async def _lot_size(self, base: str, quote: str) -> LotSize:
        try:
            data = await self._public("/api/v3/exchangeInfo", {"symbol": f"{base}{quote}"})
        except RemoteError as exc:
            if str(exc.code) == str(INVALID_SYMBOL):
                raise ValidationError(f"Invalid symbol: {base}{quote}. Check base/quote assets.") from exc
            raise
        symbols = data.get("symbols", []) if isinstance(data, dict) else []
        listings = {
            s["symbol"]: s
            for s in symbols
            if s.get("status", "TRADING") == "TRADING"
        }
        listing = resolve_symbol(
            base,
            quote,
            [SymbolListing(s["symbol"], s.get("baseAsset", ""), s.get("quoteAsset", "")) for s in listings.values()],
        )
        filters = {f.get("filterType"): f for f in listings[listing.symbol].get("filters", [])}
        lot = filters.get("LOT_SIZE", {})
        notional = filters.get("NOTIONAL") or filters.get("MIN_NOTIONAL") or {}
        return LotSize(
            symbol=listing.symbol,
            step=to_decimal(lot.get("stepSize"), None),
            min_qty=to_decimal(lot.get("minQty"), None),
            max_qty=to_decimal(lot.get("maxQty"), None),
            min_notional=to_decimal(notional.get("minNotional"), None),
        )

    async def _avg_price(self, symbol: str) -> Decimal | None:
        data = await self._public("/api/v3/avgPrice", {"symbol": symbol})
        return to_decimal(data.get("price"), None) if isinstance(data, dict) else None

    def _order_result(self, data: Any, symbol: str) -> OrderResult:
        if not isinstance(data, dict) or data.get("orderId") is None:
            raise ProtocolError("Missing order id from Binance order API")
        return OrderResult(str(data["orderId"]), str(data.get("status", "NEW")), symbol)

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
        balance = await self._fetch_balance(base)
        quantity = min(base_amount, balance.free)
        if quantity <= 0:
            raise ValidationError(f"Insufficient {base} balance on binance")
        if quantity < base_amount:
            logger.info("binance sell clamped to free balance: %s -> %s %s", base_amount, quantity, base)
        price = await self._avg_price(lot.symbol)
        quantity = validate_order(lot, quantity, price=price)
        data = await self._signed(
            "POST",
            "/api/v3/order",
            {"symbol": lot.symbol, "side": "SELL", "type": "MARKET", "quantity": to_plain(quantity)},
        )
        return self._order_result(data, lot.symbol)

    async def _submit_withdraw(
        self, asset: str, amount: Decimal, network: str, address: str, memo: str | None
    ) -> WithdrawResult:
        entry = self._match_network(await self._network_list(asset), asset, network)
        if not entry.get("withdrawEnable", True):
            raise ValidationError(f"Withdrawals of {asset} on {network} are disabled on binance")
        self._ensure_memo(bool(entry.get("sameAddress")), asset, network, memo)
        params: dict[str, Any] = {
            "coin": asset,
            "address": address,
            "amount": to_plain(amount),
            "network": entry["network"],
        }
        if memo:
            params["addressTag"] = memo
        data = await self._signed("POST", "/sapi/v1/capital/withdraw/apply", params)
        withdrawal_id = str(data.get("id") or "") if isinstance(data, dict) else ""
        return WithdrawResult(withdrawal_id)

    async def _fetch_server_time(self) -> int:
        data = await self._public("/api/v3/time")
        if not isinstance(data, dict) or "serverTime" not in data:
            raise ProtocolError("Unexpected response from Binance time API")
        return int(data["serverTime"])
