"""Gate.io exchange adapter."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from decimal import Decimal
from typing import Any
from urllib.parse import urlencode

from ..errors import ProtocolError, RemoteError, ValidationError
from ..orders.sizing import LotSize, validate_order
from .base import BaseExchangeClient, to_decimal, to_plain
from .normalization import SymbolListing, normalize_network, resolve_symbol
from .protocol import (
    Balance,
    Capabilities,
    DepositAddress,
    OrderBook,
    OrderResult,
    WithdrawResult,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v4"


class GateClient(BaseExchangeClient):
    """Gate.io spot exchange client.

    The public order book is used for fill simulation only; the standalone
    order-book operation is not offered.
    """

    CAPABILITIES = Capabilities(
        balances=True,
        withdrawal_fees=False,
        order_book=False,
        market_orders=True,
        withdrawals=True,
        time_sync=True,
        deposit_networks=True,
        deposit_address=True,
    )
    DEFAULT_BASE_URL = "https://api.gateio.ws"

    def __init__(self, api_key: str | None = None, api_secret: str | None = None, **options: Any):
        super().__init__("gateio", api_key, api_secret, **options)

    def _get_headers(self, method: str, path: str, query: str, body: str) -> dict[str, str]:
        timestamp = str(self._timestamp_ms() // 1000)
        body_hash = hashlib.sha512(body.encode()).hexdigest()
        message = "\n".join([method, f"{API_PREFIX}{path}", query, body_hash, timestamp])
        return {
            "KEY": self.api_key,
            "Timestamp": timestamp,
            "SIGN": hmac.new(self.api_secret.encode(), message.encode(), hashlib.sha512).hexdigest(),
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _public(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.get_base_url()}{API_PREFIX}{path}"
        if params:
            url = f"{url}?{urlencode(params)}"
        return await self.transport.request("GET", url)

    async def _signed(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> Any:
        self._require_credentials()
        query = urlencode(params) if params else ""
        data = json.dumps(body) if body is not None else ""
        url = f"{self.get_base_url()}{API_PREFIX}{path}"
        if query:
            url = f"{url}?{query}"
        headers = self._get_headers(method, path, query, data)
        return await self.transport.request(method, url, headers=headers, body=data or None)

    async def _fetch_balance(self, asset: str) -> Balance:
        data = await self._signed("GET", "/spot/accounts", {"currency": asset})
        if not isinstance(data, list):
            raise ProtocolError("Unexpected response from Gate.io spot accounts API")
        for entry in data:
            if str(entry.get("currency", "")).upper() == asset:
                return Balance(asset, to_decimal(entry.get("available")), to_decimal(entry.get("locked")))
        return Balance(asset)

    async def _lot_size(self, base: str, quote: str) -> LotSize:
        pair = f"{base}_{quote}"
        try:
            info = await self._public(f"/spot/currency_pairs/{pair}")
        except RemoteError as exc:
            if exc.status in (400, 404):
                raise ValidationError(f"Invalid symbol: {pair}") from exc
            raise
        if not isinstance(info, dict):
            raise ValidationError(f"Invalid symbol: {pair}")
        listing = resolve_symbol(
            base, quote, [SymbolListing(info.get("id", pair), info.get("base", ""), info.get("quote", ""))]
        )
        if str(info.get("trade_status", "")).lower() != "tradable":
            raise ValidationError(f"Gate.io symbol not tradable: {listing.symbol}")
        precision = info.get("amount_precision")
        return LotSize(
            symbol=listing.symbol,
            precision=int(precision) if precision is not None else None,
            min_qty=to_decimal(info.get("min_base_amount"), None),
            min_notional=to_decimal(info.get("min_quote_amount"), None),
        )

    async def _fetch_order_book(self, base: str, quote: str, depth: int) -> OrderBook:
        lot = await self._lot_size(base, quote)
        data = await self._public("/spot/order_book", {"currency_pair": lot.symbol, "limit": depth})
        if not isinstance(data, dict) or not isinstance(data.get("asks"), list):
            raise ProtocolError("Unexpected response from Gate.io order book API")
        return OrderBook.from_levels(
            lot.symbol,
            [(to_decimal(p), to_decimal(q)) for p, q, *_ in data.get("bids") or []],
            [(to_decimal(p), to_decimal(q)) for p, q, *_ in data["asks"]],
        )

    async def _last_price(self, pair: str) -> Decimal | None:
        data = await self._public("/spot/tickers", {"currency_pair": pair})
        if isinstance(data, list) and data:
            return to_decimal(data[0].get("last"), None)
        return None

    async def _place(self, pair: str, side: str, amount: Decimal) -> OrderResult:
        body = {
            "currency_pair": pair,
            "type": "market",
            "account": "spot",
            "side": side,
            "amount": to_plain(amount),
            "time_in_force": "ioc",
        }
        data = await self._signed("POST", "/spot/orders", body=body)
        if not isinstance(data, dict) or not data.get("id"):
            raise ProtocolError("Missing order id from Gate.io order API")
        return OrderResult(str(data["id"]), str(data.get("status") or "SUBMITTED"), pair, "market order submitted")

    async def _submit_market_buy(self, base: str, quote: str, quote_amount: Decimal) -> OrderResult:
        lot = await self._lot_size(base, quote)
        validate_order(lot, notional=quote_amount)
        return await self._place(lot.symbol, "buy", quote_amount)

    async def _submit_market_sell(self, base: str, quote: str, base_amount: Decimal) -> OrderResult:
        lot = await self._lot_size(base, quote)
        price = await self._last_price(lot.symbol)
        quantity = validate_order(lot, base_amount, price=price)
        return await self._place(lot.symbol, "sell", quantity)

    async def _chains(self, asset: str) -> list[dict[str, Any]]:
        data = await self._public("/wallet/currency_chains", {"currency": asset})
        if not isinstance(data, list) or not data:
            raise ValidationError(f"Gate.io does not support asset: {asset}")
        return data

    @staticmethod
    def _enabled(chain: dict[str, Any], for_withdraw: bool) -> bool:
        if int(chain.get("is_disabled") or 0):
            return False
        key = "is_withdraw_disabled" if for_withdraw else "is_deposit_disabled"
        return not int(chain.get(key) or 0)

    async def _fetch_deposit_networks(self, asset: str) -> list[str]:
        return [chain.get("chain") for chain in await self._chains(asset) if self._enabled(chain, False)]

    async def _submit_withdraw(
        self, asset: str, amount: Decimal, network: str, address: str, memo: str | None
    ) -> WithdrawResult:
        chain = None
        for candidate in await self._chains(asset):
            if self._enabled(candidate, True) and normalize_network(candidate.get("chain"), asset) == network:
                chain = candidate["chain"]
                break
        if chain is None:
            raise ValidationError(f"Gate.io does not support network {network} for asset {asset}")

        body = {"currency": asset, "address": address, "amount": to_plain(amount), "chain": chain}
        if memo:
            body["memo"] = memo
        data = await self._signed("POST", "/withdrawals", body=body)
        withdrawal_id = str(data.get("id") or "") if isinstance(data, dict) else ""
        return WithdrawResult(withdrawal_id, str(data.get("status") or "submitted") if isinstance(data, dict) else "submitted")

    async def _fetch_deposit_address(self, asset: str, network: str) -> DepositAddress | None:
        data = await self._signed("GET", "/wallet/deposit_address", {"currency": asset})
        if not isinstance(data, dict):
            return None
        for entry in data.get("multichain_addresses") or []:
            if normalize_network(entry.get("chain"), asset) == network and entry.get("address"):
                return DepositAddress(entry["address"], entry.get("payment_id") or None, network)
        return None

    async def _fetch_server_time(self) -> int:
        data = await self._public("/spot/time")
        if not isinstance(data, dict) or "server_time" not in data:
            raise ProtocolError("Unexpected response from Gate.io time API")
        return int(data["server_time"])
