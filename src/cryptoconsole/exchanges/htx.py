"""HTX (Huobi) exchange adapter."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from urllib.parse import quote, urlsplit

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
from .transport import PreparedRequest, SignVariant

logger = logging.getLogger(__name__)

SIGNATURE_INVALID = "api-signature-not-valid"
SIGNATURE_INVALID_CODE = 1003
HTX_ALT_BASE_URL = "https://api.htx.com"


def _encode(value: Any) -> str:
    """RFC 3986 percent-encoding (spaces as %20)."""
    return quote(str(value), safe="-_.~")


def _allowed(status: Any) -> bool:
    if isinstance(status, bool):
        return status
    return str(status).strip().lower() in {"allowed", "true", "1"}


def is_signature_error(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    if str(payload.get("status", "")).lower() == "error" and payload.get("err-code") == SIGNATURE_INVALID:
        return True
    return str(payload.get("code", "")) == str(SIGNATURE_INVALID_CODE)


def require_ok(payload: Any, context: str) -> dict[str, Any]:
    """Raise ``RemoteError`` unless ``payload`` is an HTX success envelope."""
    if not isinstance(payload, dict):
        raise ProtocolError(f"Unexpected response from HTX {context} API")
    status = payload.get("status")
    if status is not None and str(status).lower() != "ok":
        raise RemoteError(
            "htx",
            f"{context} failed: {payload.get('err-msg') or 'unknown error'}",
            code=payload.get("err-code"),
        )
    code = payload.get("code")
    if status is None and code is not None and str(code) != "200":
        raise RemoteError("htx", f"{context} failed: {payload.get('message') or 'unknown error'}", code=code)
    return payload


class HTXClient(BaseExchangeClient):
    """HTX (Huobi) spot exchange client.

    Signed calls go through ``SignedTransport.execute_with_fallback``: when
    HTX rejects a signature the same call is re-signed against host:port,
    then with an unencoded query, then against the alternate base URL.
    """

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
    DEFAULT_BASE_URL = "https://api.huobi.pro"

    def __init__(self, api_key: str | None = None, api_secret: str | None = None, **options: Any):
        super().__init__("htx", api_key, api_secret, **options)
        if self.alt_base_url is None and "huobi.pro" in self._host(self.base_url):
            self.alt_base_url = HTX_ALT_BASE_URL

    @staticmethod
    def _host(url: str) -> str:
        return (urlsplit(url).hostname or "").lower()

    def _signed_url(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None,
        *,
        base_url: str,
        sign_host: str,
        raw: bool = False,
    ) -> str:
        timestamp = datetime.fromtimestamp(self._timestamp_ms() / 1000, tz=timezone.utc)
        all_params = dict(params or {})
        all_params.update({
            "AccessKeyId": self.api_key,
            "SignatureMethod": "HmacSHA256",
            "SignatureVersion": "2",
            "Timestamp": timestamp.strftime("%Y-%m-%dT%H:%M:%S"),
        })
        items = sorted(all_params.items())
        if raw:
            query = "&".join(f"{k}={v}" for k, v in items)
        else:
            query = "&".join(f"{_encode(k)}={_encode(v)}" for k, v in items)
        payload = "\n".join([method, sign_host.lower(), path, query])
        signature = base64.b64encode(
            hmac.new(self.api_secret.encode(), payload.encode(), hashlib.sha256).digest()
        ).decode()
        return f"{base_url}{path}?{query}&Signature={_encode(signature)}"

    def _build_signed(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None,
        body: dict[str, Any] | None,
        variant: SignVariant,
    ) -> PreparedRequest | None:
        headers = {"Content-Type": "application/json" if method == "POST" else "application/x-www-form-urlencoded"}
        data = json.dumps(body) if body is not None else None
        parts = urlsplit(self.base_url)
        host = (parts.hostname or "").lower()

        if variant is SignVariant.PRIMARY:
            url = self._signed_url(method, path, params, base_url=self.base_url, sign_host=parts.netloc.lower())
        elif variant is SignVariant.HOST_WITH_PORT:
            if parts.port is not None:
                return None
            port = 443 if parts.scheme == "https" else 80
            host_port = f"{host}:{port}"
            headers["Host"] = host_port
            url = self._signed_url(
                method, path, params, base_url=f"{parts.scheme}://{host_port}", sign_host=host_port
            )
        elif variant is SignVariant.RAW_QUERY:
            url = self._signed_url(
                method, path, params, base_url=self.base_url, sign_host=parts.netloc.lower(), raw=True
            )
        else:
            if not self.alt_base_url:
                return None
            alt_host = urlsplit(self.alt_base_url).netloc.lower()
            url = self._signed_url(method, path, params, base_url=self.alt_base_url, sign_host=alt_host)
        return PreparedRequest(method, url, headers, data)

    async def _signed(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
        *,
        context: str,
    ) -> dict[str, Any]:
        self._require_credentials()
        await self.clock_offset_ms()
        payload = await self.transport.execute_with_fallback(
            lambda variant: self._build_signed(method, path, params, body, variant),
            is_signature_error,
        )
        return require_ok(payload, context)

    async def _public(self, path: str, params: dict[str, Any] | None = None, *, context: str) -> dict[str, Any]:
        url = f"{self.get_base_url()}{path}"
        if params:
            url = f"{url}?" + "&".join(f"{_encode(k)}={_encode(v)}" for k, v in params.items())
        return require_ok(await self.transport.request("GET", url), context)

    async def _spot_account_id(self) -> str:
        async def lookup() -> str:
            data = await self._signed("GET", "/v1/account/accounts", context="account list")
            for account in data.get("data") or []:
                state = str(account.get("state") or "working").lower()
                if str(account.get("type", "")).lower() == "spot" and state == "working" and account.get("id"):
                    return str(account["id"])
            raise ValidationError("No spot account found for HTX")

        return await self._memoize("spot_account_id", lookup)

    async def _fetch_balance(self, asset: str) -> Balance:
        account_id = await self._spot_account_id()
        data = await self._signed("GET", f"/v1/account/accounts/{account_id}/balance", context="balance")
        free = Decimal("0")
        locked = Decimal("0")
        for item in (data.get("data") or {}).get("list", []):
            if str(item.get("currency", "")).upper() != asset:
                continue
            amount = to_decimal(item.get("balance"))
            if item.get("type") == "trade":
                free += amount
            elif item.get("type") == "frozen":
                locked += amount
        return Balance(asset, free, locked)

    async def _chains(self, asset: str) -> list[dict[str, Any]]:
        data = await self._public(
            "/v2/reference/currencies", {"currency": asset.lower()}, context="currency reference"
        )
        chains: list[dict[str, Any]] = []
        for currency in data.get("data") or []:
            if str(currency.get("currency", asset)).upper() != asset:
                continue
            chains.extend(currency.get("chains") or [])
        if not chains:
            raise ValidationError(f"HTX does not support asset: {asset}")
        return chains

    @staticmethod
    def _chain_token(chain: dict[str, Any], asset: str) -> str | None:
        token = normalize_network(chain.get("chain"), asset)
        if token in NETWORK_ALIASES.values():
            return token
        display = chain.get("displayName") or chain.get("dn")
        return normalize_network(display, asset) if display else token

    async def _fetch_withdrawal_fees(self, asset: str) -> dict[str, Any]:
        return {
            self._chain_token(chain, asset): chain.get("transactFeeWithdraw")
            for chain in await self._chains(asset)
            if _allowed(chain.get("withdrawStatus", chain.get("we")))
        }

    async def _fetch_deposit_networks(self, asset: str) -> list[str]:
        return [
            self._chain_token(chain, asset)
            for chain in await self._chains(asset)
            if _allowed(chain.get("depositStatus", chain.get("de")))
        ]

    async def _fetch_deposit_address(self, asset: str, network: str) -> DepositAddress | None:
        data = await self._signed(
            "GET", "/v2/account/deposit/address", {"currency": asset.lower()}, context="deposit address"
        )
        for item in data.get("data") or []:
            if not item.get("address"):
                continue
            if normalize_network(item.get("chain"), asset) == network:
                return DepositAddress(item["address"], item.get("addressTag") or None, network)
        return None

    async def _lot_size(self, base: str, quote: str) -> LotSize:
        data = await self._public("/v1/common/symbols", context="symbols")
        by_symbol: dict[str, dict[str, Any]] = {}
        listings = []
        for item in data.get("data") or []:
            if item.get("state", "online") != "online":
                continue
            symbol = str(item.get("symbol", "")).lower()
            by_symbol[symbol] = item
            listings.append(SymbolListing(symbol, item.get("base-currency", ""), item.get("quote-currency", "")))
        listing = resolve_symbol(base, quote, listings)
        info = by_symbol[listing.symbol]
        precision = info.get("amount-precision")
        return LotSize(
            symbol=listing.symbol,
            precision=int(precision) if precision is not None else None,
            min_qty=to_decimal(info.get("sell-market-min-order-amt") or info.get("min-order-amt"), None),
            min_notional=to_decimal(info.get("min-order-value"), None),
        )

    async def _fetch_order_book(self, base: str, quote: str, depth: int) -> OrderBook:
        lot = await self._lot_size(base, quote)
        data = await self._public("/market/depth", {"symbol": lot.symbol, "type": "step0"}, context="depth")
        tick = data.get("tick")
        if not isinstance(tick, dict):
            raise ProtocolError("Unexpected response from HTX depth API")
        return OrderBook.from_levels(
            lot.symbol.upper(),
            [(to_decimal(p), to_decimal(q)) for p, q, *_ in (tick.get("bids") or [])[:depth]],
            [(to_decimal(p), to_decimal(q)) for p, q, *_ in (tick.get("asks") or [])[:depth]],
        )

    async def _last_price(self, symbol: str) -> Decimal | None:
        data = await self._public("/market/detail/merged", {"symbol": symbol}, context="ticker")
        return to_decimal((data.get("tick") or {}).get("close"), None)

    async def _place(self, symbol: str, order_type: str, amount: Decimal, context: str) -> OrderResult:
        account_id = await self._spot_account_id()
        body = {
            "account-id": account_id,
            "symbol": symbol,
            "type": order_type,
            "amount": to_plain(amount),
        }
        data = await self._signed("POST", "/v1/order/orders/place", body=body, context=context)
        order_id = data.get("data")
        if not order_id:
            raise ProtocolError("Missing order id from HTX order API")
        return OrderResult(str(order_id), "SUBMITTED", symbol.upper(), f"{context} submitted")

    async def _submit_market_buy(self, base: str, quote: str, quote_amount: Decimal) -> OrderResult:
        lot = await self._lot_size(base, quote)
        validate_order(lot, notional=quote_amount)
        return await self._place(lot.symbol, "buy-market", quote_amount, "market buy")

    async def _submit_market_sell(self, base: str, quote: str, base_amount: Decimal) -> OrderResult:
        lot = await self._lot_size(base, quote)
        price = await self._last_price(lot.symbol)
        quantity = validate_order(lot, base_amount, price=price)
        return await self._place(lot.symbol, "sell-market", quantity, "market sell")

    async def _submit_withdraw(
        self, asset: str, amount: Decimal, network: str, address: str, memo: str | None
    ) -> WithdrawResult:
        chain = None
        for candidate in await self._chains(asset):
            if self._chain_token(candidate, asset) == network and _allowed(
                candidate.get("withdrawStatus", candidate.get("we"))
            ):
                chain = candidate
                break
        if chain is None:
            raise ValidationError(f"HTX does not support network {network} for asset {asset}")
        self._ensure_memo(bool(chain.get("addrWithTag")), asset, network, memo)

        body = {
            "address": address,
            "amount": to_plain(amount),
            "currency": asset.lower(),
            "chain": chain.get("chain"),
        }
        if memo:
            body["addr-tag"] = memo
        data = await self._signed("POST", "/v1/dw/withdraw/api/create", body=body, context="withdraw")
        return WithdrawResult(str(data.get("data") or ""))

    async def _fetch_server_time(self) -> int:
        data = await self._public("/v1/common/timestamp", context="timestamp")
        if data.get("data") is None:
            raise ProtocolError("Unexpected response from HTX timestamp API")
        return int(data["data"])
