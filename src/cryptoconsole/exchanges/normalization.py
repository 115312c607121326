"""Normalization utilities for exchange names, symbols and networks."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable

from ..errors import AmbiguousSymbolError, ValidationError

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")

EXCHANGE_ALIASES: dict[str, str] = {
    "ascend": "ascendex",
    "ascendex": "ascendex",
    "bittrue": "bitrue",
    "bitrue": "bitrue",
    "binance": "binance",
    "bitmart": "bitmart",
    "coinex": "coinex",
    "gate": "gateio",
    "gateio": "gateio",
    "huobi": "htx",
    "htx": "htx",
    "kucoin": "kucoin",
    "lbank": "lbank",
    "mexc": "mexc",
    "xt": "xt",
}

# Provider label (alnum, upper) -> canonical network token.
NETWORK_ALIASES: dict[str, str] = {
    "ARBITRUMONE": "ARBITRUM",
    "ARBITRUM": "ARBITRUM",
    "ARB": "ARBITRUM",
    "AVALANCHECCHAIN": "AVAXC",
    "AVAXCCHAIN": "AVAXC",
    "AVAXC": "AVAXC",
    "BNBSMARTCHAIN": "BSC",
    "BSC": "BSC",
    "BEP20": "BSC",
    "ETHEREUM": "ERC20",
    "ERC20": "ERC20",
    "ETH": "ERC20",
    "POLYGON": "MATIC",
    "MATIC": "MATIC",
    "SOLANA": "SOL",
    "SOL": "SOL",
    "SOLANASOL": "SOL",
    "TRON": "TRC20",
    "TRC20": "TRC20",
    "TRX": "TRC20",
    "TRONTRC20": "TRC20",
    "OPTIMISM": "OPTIMISM",
    "OP": "OPTIMISM",
    "HECO": "HRC20",
    "HRC20": "HRC20",
    "KAIA": "KAIA",
    "CELO": "CELO",
    "PLASMA": "PLASMA",
}


def canonical_exchange_name(name: str) -> str:
    """Lower-case, strip punctuation and apply the alias table.

    Unknown names are returned in their cleaned form; the registry decides
    whether they are supported.
    """
    if name is None or not str(name).strip():
        raise ValidationError("Exchange name is required")
    cleaned = _NON_ALNUM.sub("", str(name)).lower()
    return EXCHANGE_ALIASES.get(cleaned, cleaned)


def _clean_network(label: str) -> str:
    candidate = label
    open_idx = candidate.find("(")
    close_idx = candidate.find(")")
    if 0 <= open_idx < close_idx:
        inner = candidate[open_idx + 1 : close_idx]
        if inner.strip():
            candidate = inner
    return _NON_ALNUM.sub("", candidate).upper()


def normalize_network(label: str | None, asset: str | None = None) -> str | None:
    """Map a provider network label to its canonical token.

    Handles parenthetical aliases ("TRON(TRC20)" -> TRC20) and chain names
    that embed the asset code ("trc20usdt" -> TRC20 for USDT).

    Args:
        label: Provider network or chain label
        asset: Asset the label belongs to, used to strip asset-qualified chain names

    Returns:
        Canonical network token, or None for a blank label
    """
    if label is None or not str(label).strip():
        return None
    cleaned = _clean_network(str(label))
    if cleaned in NETWORK_ALIASES:
        return NETWORK_ALIASES[cleaned]

    if asset:
        asset_upper = _NON_ALNUM.sub("", asset).upper()
        stripped = cleaned
        if cleaned.startswith(asset_upper) and len(cleaned) > len(asset_upper):
            stripped = cleaned[len(asset_upper) :]
        elif cleaned.endswith(asset_upper) and len(cleaned) > len(asset_upper):
            stripped = cleaned[: -len(asset_upper)]
        if stripped in NETWORK_ALIASES:
            return NETWORK_ALIASES[stripped]

    return cleaned


def networks_match(left: str | None, right: str | None, asset: str | None = None) -> bool:
    a = normalize_network(left, asset)
    return a is not None and a == normalize_network(right, asset)


def normalize_networks(labels: Iterable[str | None], asset: str | None = None) -> set[str]:
    """Canonicalize and deduplicate, dropping blanks."""
    result = set()
    for label in labels:
        token = normalize_network(label, asset)
        if token:
            result.add(token)
    return result


def normalize_symbol(symbol: str, format: str = "unified") -> str:
    """Normalize a symbol to a standard format.

    Converts various symbol formats to a unified format:
    - BTCUSDT -> BTCUSDT (unchanged if unified format)
    - BTC-USDT -> BTCUSDT
    - BTC/USDT -> BTCUSDT
    - BTC_USDT -> BTCUSDT

    Args:
        symbol: Symbol in any format
        format: Target format ('unified', 'hyphen', 'slash' or 'underscore')

    Returns:
        Normalized symbol
    """
    if not symbol:
        return symbol

    unified = _NON_ALNUM.sub("", symbol.strip()).upper()

    separators = {"hyphen": "-", "slash": "/", "underscore": "_"}
    if format not in separators:
        return unified

    base, quote = split_symbol(symbol)
    if base and quote:
        return f"{base}{separators[format]}{quote}"
    return unified


def split_symbol(symbol: str) -> tuple[str, str]:
    """Extract base and quote currency from a separated symbol.

    - BTC-USDT -> (BTC, USDT)
    - BTC/USDT -> (BTC, USDT)
    - BTC_USDT -> (BTC, USDT)
    - BTCUSDT -> (BTCUSDT, '')
    """
    if not symbol:
        return "", ""

    symbol = symbol.strip().upper()
    for sep in ("-", "/", "_"):
        if sep in symbol:
            parts = symbol.split(sep)
            if len(parts) == 2:
                return parts[0].strip(), parts[1].strip()
    return symbol, ""


@dataclass(frozen=True)
class SymbolListing:
    """A tradable market as listed by an exchange."""

    symbol: str
    base: str
    quote: str


def resolve_symbol(base: str, quote: str, listings: Iterable[SymbolListing]) -> SymbolListing:
    """Pick the listed market for ``base``/``quote``.

    An exact base/quote match wins. Otherwise markets quoted in ``quote`` whose
    base is ``base`` behind a numeric prefix (a redenominated token such as
    1000PEPE) are considered: one is returned, several fail closed.

    Raises:
        AmbiguousSymbolError: More than one candidate market
        ValidationError: No candidate market
    """
    base_u = base.upper()
    quote_u = quote.upper()
    listings = list(listings)

    for listing in listings:
        if listing.base.upper() == base_u and listing.quote.upper() == quote_u:
            return listing

    direct = f"{base_u}/{quote_u}"
    for listing in listings:
        if normalize_symbol(listing.symbol, "slash") == direct:
            return listing

    candidates = []
    for listing in listings:
        listed_base = listing.base.upper()
        if listing.quote.upper() != quote_u or not listed_base.endswith(base_u):
            continue
        prefix = listed_base[: -len(base_u)]
        if prefix and prefix.isdigit():
            candidates.append(listing)

    if len(candidates) == 1:
        logger.info("Resolved %s/%s to %s", base_u, quote_u, candidates[0].symbol)
        return candidates[0]
    if candidates:
        raise AmbiguousSymbolError(base_u, quote_u, [c.symbol for c in candidates])
    raise ValidationError(f"Invalid symbol: {base_u}/{quote_u}")
