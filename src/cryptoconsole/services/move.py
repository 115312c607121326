"""Cross-exchange move: withdraw from one exchange, wait for the deposit on another."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable

from ..errors import (
    DepositNotDetectedError,
    MemoRequiredError,
    MissingAddressError,
    OperationInterruptedError,
    ValidationError,
)
from ..exchanges.normalization import canonical_exchange_name
from ..exchanges.protocol import ExchangeClient
from .fees import FeeResolver
from .networks import DepositNetworkResolver, select_network

if TYPE_CHECKING:
    from ..exchanges.registry import ExchangeRegistry
    from ..settings import Settings

logger = logging.getLogger(__name__)


class MoveState(Enum):
    INITIATED = "initiated"
    FEES_AND_NETWORKS_RESOLVED = "fees_and_networks_resolved"
    NETWORK_SELECTED = "network_selected"
    ADDRESS_RESOLVED = "address_resolved"
    WITHDRAWN = "withdrawn"
    POLLING_DEPOSIT = "polling_deposit"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class MoveRequest:
    source: str
    destination: str
    asset: str
    amount: Decimal

    def __post_init__(self) -> None:
        if not self.asset or not self.asset.strip():
            raise ValidationError("Asset is required")
        if not isinstance(self.amount, Decimal) or not self.amount.is_finite() or self.amount <= 0:
            raise ValidationError("Amount must be positive")
        object.__setattr__(self, "source", canonical_exchange_name(self.source))
        object.__setattr__(self, "destination", canonical_exchange_name(self.destination))
        object.__setattr__(self, "asset", self.asset.strip().upper())
        if self.source == self.destination:
            raise ValidationError("Source and destination exchanges must differ")


@dataclass(frozen=True)
class MovePlan:
    """Everything decided before the withdrawal is submitted."""

    request: MoveRequest
    network: str
    fee: Decimal
    address: str
    memo: str | None = None

    def describe(self) -> list[str]:
        return [
            f"from: {self.request.source}",
            f"to: {self.request.destination}",
            f"asset: {self.request.asset}",
            f"amount: {self.request.amount}",
            f"network: {self.network} (fee {self.fee})",
            f"address: {self.address}",
            f"memo: {'set' if self.memo else '-'}",
        ]


@dataclass
class MoveResult:
    withdrawal_id: str
    network: str
    destination: str
    fee: Decimal | None = None
    states: list[MoveState] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"Move submitted. WithdrawalId={self.withdrawal_id} network={self.network} to={self.destination}"


ConfirmHook = Callable[[MovePlan], Awaitable[bool]]


class MoveService:
    """Runs a move as a fixed sequence of states.

    Every failure before ``WITHDRAWN`` aborts without touching the sender's
    funds. After the withdrawal the recipient balance is polled until the
    free amount exceeds the pre-move baseline or ``max_wait_seconds`` passes.
    """

    def __init__(
        self,
        registry: "ExchangeRegistry",
        settings: "Settings",
        *,
        fee_resolver: FeeResolver | None = None,
        network_resolver: DepositNetworkResolver | None = None,
        confirm: ConfirmHook | None = None,
    ):
        self.registry = registry
        self.settings = settings
        self.fee_resolver = fee_resolver or FeeResolver(settings)
        self.network_resolver = network_resolver or DepositNetworkResolver(settings)
        self.confirm = confirm

    async def move(self, request: MoveRequest, *, cancel: asyncio.Event | None = None) -> MoveResult:
        states = [MoveState.INITIATED]
        sender = self.registry.get_client(request.source)
        recipient = self.registry.get_client(request.destination)
        logger.info(
            "move %s %s from %s to %s", request.amount, request.asset, request.source, request.destination
        )

        baseline = await self._free_balance(recipient, request.asset)

        networks = await self.network_resolver.resolve(recipient, request.destination, request.asset)
        fees = await self.fee_resolver.resolve(sender, request.source, request.asset)
        states.append(MoveState.FEES_AND_NETWORKS_RESOLVED)

        priority = self.settings.network_priority.get(request.asset, [])
        network, fee = select_network(
            networks, fees.fees, priority, exchange=request.source, asset=request.asset
        )
        states.append(MoveState.NETWORK_SELECTED)
        logger.info("move network selected: %s (fee %s) candidates=%s", network, fee, sorted(networks))

        address, memo = await self._resolve_address(recipient, request, network)
        states.append(MoveState.ADDRESS_RESOLVED)

        plan = MovePlan(request, network, fee, address, memo)
        if self.confirm is not None and not await self.confirm(plan):
            raise ValidationError("Transfer cancelled by user")

        result = await sender.withdraw(request.asset, request.amount, network, address, memo)
        withdrawal_id = result.withdrawal_id if result else ""
        states.append(MoveState.WITHDRAWN)
        logger.info("move withdrawal submitted on %s id=%s", request.source, withdrawal_id or "-")

        states.append(MoveState.POLLING_DEPOSIT)
        confirmed = await self._poll_deposit(recipient, request.asset, baseline, cancel)
        if not confirmed:
            states.append(MoveState.TIMED_OUT)
            logger.warning("move deposit not detected on %s for %s", request.destination, request.asset)
            raise DepositNotDetectedError(request.destination, request.asset)
        states.append(MoveState.CONFIRMED)

        return MoveResult(withdrawal_id, network, request.destination, fee, states)

    @staticmethod
    async def _free_balance(client: ExchangeClient, asset: str) -> Decimal:
        balance = await client.get_balance(asset)
        if balance is None or balance.free is None:
            return Decimal("0")
        return balance.free

    async def _resolve_address(
        self, recipient: ExchangeClient, request: MoveRequest, network: str
    ) -> tuple[str, str | None]:
        config = self.settings.address_for(request.destination, request.asset, network)
        address = config.address.strip() if config and config.address else ""
        memo = config.memo.strip() if config and config.memo and config.memo.strip() else None

        if not address and recipient.capabilities.deposit_address:
            deposit = await recipient.get_deposit_address(request.asset, network)
            if deposit is not None and deposit.address:
                address = deposit.address.strip()
                memo = memo or deposit.memo
                logger.info("move using deposit address from %s for %s", request.destination, network)

        if not address:
            raise MissingAddressError(request.destination, request.asset, network)
        if config is not None and config.memo_required and not memo:
            raise MemoRequiredError(request.asset, network)
        return address, memo

    async def _poll_deposit(
        self,
        recipient: ExchangeClient,
        asset: str,
        baseline: Decimal,
        cancel: asyncio.Event | None,
    ) -> bool:
        """True once free balance exceeds ``baseline``; False at the deadline."""
        loop = asyncio.get_running_loop()
        interval = self.settings.polling.interval_seconds
        deadline = loop.time() + self.settings.polling.max_wait_seconds
        cancel = cancel or asyncio.Event()
        attempt = 0

        while True:
            if cancel.is_set():
                raise OperationInterruptedError("Polling interrupted")
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False

            attempt += 1
            try:
                free = await asyncio.wait_for(self._free_balance(recipient, asset), remaining)
            except asyncio.TimeoutError:
                return False
            logger.debug("deposit poll %d: %s free=%s baseline=%s", attempt, asset, free, baseline)
            if free > baseline:
                return True

            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            try:
                await asyncio.wait_for(cancel.wait(), min(interval, remaining))
            except asyncio.TimeoutError:
                continue
            raise OperationInterruptedError("Polling interrupted")
