"""Withdrawal fee resolution with configuration fallback."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from ..errors import NoFeeDataError
from ..exchanges.normalization import normalize_network
from ..exchanges.protocol import ExchangeClient, WithdrawalFees
from ..logging import sanitize
from ..settings import parse_positive_decimal

if TYPE_CHECKING:
    from ..settings import Settings

logger = logging.getLogger(__name__)


class FeeResolver:
    """Resolves per-network withdrawal fees for an asset on one exchange."""

    def __init__(self, settings: "Settings"):
        self.settings = settings

    def fallback_fees(self, exchange: str, asset: str) -> dict[str, Decimal]:
        """Configured fees for (exchange, asset); blank or non-numeric entries are dropped."""
        asset = asset.upper()
        configured = self.settings.withdraw_fees_fallback.get(exchange, {}).get(asset, {})
        fees: dict[str, Decimal] = {}
        for label, raw in configured.items():
            network = normalize_network(label, asset)
            fee = parse_positive_decimal(raw)
            if network is None or fee is None:
                logger.debug("Dropping fallback fee %s=%r for %s %s", label, raw, exchange, asset)
                continue
            fees.setdefault(network, fee)
        return fees

    async def resolve(self, client: ExchangeClient, exchange: str, asset: str) -> WithdrawalFees:
        """Live fees when the exchange supports them, otherwise configuration.

        A failed live lookup is logged and treated as unavailable.

        Raises:
            NoFeeDataError: Neither source produced a usable fee
        """
        asset = asset.upper()
        if client.capabilities.withdrawal_fees:
            try:
                live = await client.get_withdrawal_fees(asset)
            except Exception as exc:
                logger.warning(
                    "Live withdrawal fee lookup failed on %s for %s, using fallback: %s",
                    exchange, asset, sanitize(str(exc)),
                )
            else:
                if live:
                    return live
                logger.info("No live withdrawal fees on %s for %s, using fallback", exchange, asset)

        fees = self.fallback_fees(exchange, asset)
        if not fees:
            raise NoFeeDataError(exchange, asset)
        return WithdrawalFees(asset, fees)
