"""KuCoin exchange adapter."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import uuid
from decimal import Decimal
from typing import Any
from urllib.parse import urlencode

from ..errors import ProtocolError, RemoteError, ValidationError
from ..orders.sizing import LotSize, validate_order
from .base import BaseExchangeClient, to_decimal, to_plain
from .normalization import NETWORK_ALIASES, SymbolListing, normalize_network, resolve_symbol
from .protocol import (
    Balance,
    Capabilities,
    DepositAddress,
    OrderBook,
    OrderResult,
    WithdrawResult,
)

logger = logging.getLogger(__name__)

SUCCESS_CODE = "200000"


class KuCoinClient(BaseExchangeClient):
    """KuCoin spot exchange client."""

    CAPABILITIES = Capabilities(
        balances=True,
        withdrawal_fees=False,
        order_book=True,
        market_orders=True,
        withdrawals=True,
        time_sync=True,
        deposit_networks=True,
        deposit_address=True,
    )
    DEFAULT_BASE_URL = "https://api.kucoin.com"

    def __init__(
        self,
        api_key: str | None = None,
        api_secret: str | None = None,
        *,
        passphrase: str | None = None,
        **options: Any,
    ):
        super().__init__("kucoin", api_key, api_secret, passphrase=passphrase, **options)

    @property
    def has_credentials(self) -> bool:
        return super().has_credentials and bool(self.passphrase and self.passphrase.strip())

    def _sign(self, message: str) -> str:
        return base64.b64encode(
            hmac.new(self.api_secret.encode(), message.encode(), hashlib.sha256).digest()
        ).decode()

    def _get_headers(self, method: str, request_path: str, body: str = "") -> dict[str, str]:
        timestamp = str(self._timestamp_ms())
        return {
            "KC-API-KEY": self.api_key,
            "KC-API-SIGN": self._sign(timestamp + method + request_path + body),
            "KC-API-TIMESTAMP": timestamp,
            "KC-API-PASSPHRASE": self._sign(self.passphrase or ""),
            "KC-API-KEY-VERSION": "2",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _data(payload: Any, context: str) -> Any:
        if not isinstance(payload, dict):
            raise ProtocolError(f"Unexpected response from KuCoin {context} API")
        if str(payload.get("code")) != SUCCESS_CODE:
            raise RemoteError("kucoin", f"{context} failed: {payload.get('msg') or 'unknown error'}", code=payload.get("code"))
        return payload.get("data")

    async def _public(self, path: str, params: dict[str, Any] | None = None, *, context: str) -> Any:
        url = f"{self.get_base_url()}{path}"
        if params:
            url = f"{url}?{urlencode(params)}"
        return self._data(await self.transport.request("GET", url), context)

    async def _signed(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        *,
        context: str,
    ) -> Any:
        self._require_credentials()
        request_path = f"{path}?{urlencode(params)}" if params else path
        data = json.dumps(body) if body is not None else ""
        headers = self._get_headers(method, request_path, data)
        payload = await self.transport.request(
            method, f"{self.get_base_url()}{request_path}", headers=headers, body=data or None
        )
        return self._data(payload, context)

    async def _fetch_balance(self, asset: str) -> Balance:
        data = await self._signed("GET", "/api/v1/accounts", {"currency": asset, "type": "trade"}, context="accounts")
        free = Decimal("0")
        locked = Decimal("0")
        for item in data or []:
            if str(item.get("currency", "")).upper() == asset and item.get("type", "trade") == "trade":
                free += to_decimal(item.get("available"))
                locked += to_decimal(item.get("holds"))
        return Balance(asset, free, locked)

    async def _lot_size(self, base: str, quote: str) -> LotSize:
        data = await self._public("/api/v2/symbols", context="symbols")
        by_symbol: dict[str, dict[str, Any]] = {}
        listings = []
        for item in data or []:
            if item.get("enableTrading") is False:
                continue
            by_symbol[item["symbol"]] = item
            listings.append(SymbolListing(item["symbol"], item.get("baseCurrency", ""), item.get("quoteCurrency", "")))
        listing = resolve_symbol(base, quote, listings)
        info = by_symbol[listing.symbol]
        return LotSize(
            symbol=listing.symbol,
            step=to_decimal(info.get("baseIncrement"), None),
            min_qty=to_decimal(info.get("baseMinSize"), None),
            max_qty=to_decimal(info.get("baseMaxSize"), None),
            min_notional=to_decimal(info.get("minFunds") or info.get("quoteMinSize"), None),
        )

    async def _fetch_order_book(self, base: str, quote: str, depth: int) -> OrderBook:
        symbol = f"{base}-{quote}"
        data = await self._public("/api/v1/market/orderbook/level2_100", {"symbol": symbol}, context="order book")
        if not isinstance(data, dict):
            raise ProtocolError("Unexpected response from KuCoin order book API")
        return OrderBook.from_levels(
            symbol,
            [(to_decimal(p), to_decimal(q)) for p, q, *_ in (data.get("bids") or [])[:depth]],
            [(to_decimal(p), to_decimal(q)) for p, q, *_ in (data.get("asks") or [])[:depth]],
        )

    async def _last_price(self, symbol: str) -> Decimal | None:
        data = await self._public("/api/v1/market/orderbook/level1", {"symbol": symbol}, context="ticker")
        return to_decimal((data or {}).get("price"), None)

    async def _place(self, symbol: str, side: str, amount_key: str, amount: Decimal) -> OrderResult:
        body = {
            "clientOid": uuid.uuid4().hex,
            "side": side,
            "symbol": symbol,
            "type": "market",
            amount_key: to_plain(amount),
        }
        data = await self._signed("POST", "/api/v1/orders", body=body, context="order")
        order_id = (data or {}).get("orderId")
        if not order_id:
            raise ProtocolError("Missing order id from KuCoin order API")
        return OrderResult(str(order_id), "SUBMITTED", symbol, f"market {side} submitted")

    async def _submit_market_buy(self, base: str, quote: str, quote_amount: Decimal) -> OrderResult:
        lot = await self._lot_size(base, quote)
        validate_order(lot, notional=quote_amount)
        return await self._place(lot.symbol, "buy", "funds", quote_amount)

    async def _submit_market_sell(self, base: str, quote: str, base_amount: Decimal) -> OrderResult:
        lot = await self._lot_size(base, quote)
        price = await self._last_price(lot.symbol)
        quantity = validate_order(lot, base_amount, price=price)
        return await self._place(lot.symbol, "sell", "size", quantity)

    async def _chains(self, asset: str) -> list[dict[str, Any]]:
        try:
            data = await self._public(f"/api/v3/currencies/{asset}", context="currency")
        except RemoteError as exc:
            logger.info("kucoin v3 currency lookup failed for %s, trying v2: %s", asset, exc)
            data = await self._public(f"/api/v2/currencies/{asset}", context="currency")
        chains = (data or {}).get("chains") or []
        if not chains:
            raise ValidationError(f"KuCoin does not support asset: {asset}")
        return chains

    @staticmethod
    def _chain_token(chain: dict[str, Any], asset: str) -> str | None:
        token = normalize_network(chain.get("chainName"), asset)
        if token in NETWORK_ALIASES.values():
            return token
        chain_id = chain.get("chainId") or chain.get("chain")
        return normalize_network(chain_id, asset) if chain_id else token

    async def _fetch_deposit_networks(self, asset: str) -> list[str]:
        return [
            self._chain_token(chain, asset)
            for chain in await self._chains(asset)
            if chain.get("isDepositEnabled")
        ]

    async def _find_chain(self, asset: str, network: str, *, for_withdraw: bool) -> dict[str, Any]:
        flag = "isWithdrawEnabled" if for_withdraw else "isDepositEnabled"
        for chain in await self._chains(asset):
            if chain.get(flag) and self._chain_token(chain, asset) == network:
                return chain
        raise ValidationError(f"KuCoin does not support network {network} for asset {asset}")

    async def _fetch_deposit_address(self, asset: str, network: str) -> DepositAddress | None:
        chain = await self._find_chain(asset, network, for_withdraw=False)
        data = await self._signed(
            "GET",
            "/api/v3/deposit-addresses",
            {"currency": asset, "chain": chain.get("chainId") or chain.get("chainName")},
            context="deposit address",
        )
        entries = data if isinstance(data, list) else [data] if data else []
        for entry in entries:
            if entry and entry.get("address"):
                return DepositAddress(entry["address"], entry.get("memo") or None, network)
        return None

    async def _submit_withdraw(
        self, asset: str, amount: Decimal, network: str, address: str, memo: str | None
    ) -> WithdrawResult:
        chain = await self._find_chain(asset, network, for_withdraw=True)
        self._ensure_memo(bool(chain.get("needTag")), asset, network, memo)
        chain_id = chain.get("chainId") or chain.get("chainName")

        body: dict[str, Any] = {
            "currency": asset,
            "toAddress": address,
            "amount": to_plain(amount),
            "withdrawType": "ADDRESS",
            "chain": chain_id,
        }
        if memo:
            body["memo"] = memo
        try:
            data = await self._signed("POST", "/api/v3/withdrawals", body=body, context="withdraw")
        except RemoteError as exc:
            if exc.status != 404:
                raise
            legacy = {"currency": asset, "address": address, "amount": to_plain(amount), "chain": chain_id}
            if memo:
                legacy["memo"] = memo
            data = await self._signed("POST", "/api/v1/withdrawals", body=legacy, context="withdraw")
        return WithdrawResult(str((data or {}).get("withdrawalId") or ""))

    async def _fetch_server_time(self) -> int:
        data = await self._public("/api/v1/timestamp", context="timestamp")
        if data is None:
            raise ProtocolError("Unexpected response from KuCoin timestamp API")
        return int(data)
