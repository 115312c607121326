"""Deposit network discovery and withdrawal network selection."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable, Mapping, Sequence

from ..errors import MissingFeeForNetworkError, NoNetworkDataError
from ..exchanges.normalization import normalize_network, normalize_networks
from ..exchanges.protocol import ExchangeClient

if TYPE_CHECKING:
    from ..settings import Settings

logger = logging.getLogger(__name__)


class DepositNetworkResolver:
    """Resolves the canonical networks an asset can be deposited over."""

    def __init__(self, settings: "Settings"):
        self.settings = settings

    def fallback_networks(self, exchange: str, asset: str) -> set[str]:
        asset = asset.upper()
        configured = self.settings.supported_networks_fallback.get(exchange, {}).get(asset, [])
        return normalize_networks(configured, asset)

    async def resolve(self, client: ExchangeClient, exchange: str, asset: str) -> set[str]:
        """Live networks when available and non-empty, otherwise configuration.

        Errors from the live lookup propagate.

        Raises:
            NoNetworkDataError: Neither source produced a network
        """
        asset = asset.upper()
        if client.capabilities.deposit_networks:
            networks = await client.get_deposit_networks(asset)
            if networks:
                logger.info("Using deposit networks from %s for %s", exchange, asset)
                return set(networks)

        networks = self.fallback_networks(exchange, asset)
        if not networks:
            raise NoNetworkDataError(exchange, asset)
        logger.info("Using configured deposit networks for %s %s", exchange, asset)
        return networks


def select_network(
    candidates: Iterable[str],
    fees: Mapping[str, Decimal],
    priority: Sequence[str] = (),
    *,
    exchange: str = "",
    asset: str = "",
) -> tuple[str, Decimal]:
    """Pick the cheapest candidate network.

    Ties break on position in ``priority`` (unlisted networks last), then on
    network code. Every candidate must have a fee.

    Returns:
        (network, fee)

    Raises:
        MissingFeeForNetworkError: A candidate has no fee entry
        NoNetworkDataError: No candidates
    """
    networks = sorted(set(candidates))
    if not networks:
        raise NoNetworkDataError(exchange, asset)

    missing = [n for n in networks if n not in fees]
    if missing:
        raise MissingFeeForNetworkError(exchange, asset, missing)

    ranks: dict[str, int] = {}
    for index, label in enumerate(priority):
        token = normalize_network(label, asset or None)
        if token and token not in ranks:
            ranks[token] = index

    def sort_key(network: str) -> tuple[Decimal, int, str]:
        return fees[network], ranks.get(network, len(ranks) + len(priority)), network

    chosen = min(networks, key=sort_key)
    return chosen, fees[chosen]
