from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .commands import CommandDispatcher
from .exchanges.registry import ExchangeRegistry
from .services.fees import FeeResolver
from .services.move import ConfirmHook, MoveService
from .services.networks import DepositNetworkResolver

if TYPE_CHECKING:
    from .settings import Settings


@dataclass(slots=True)
class AppContainer:
    settings: "Settings"
    registry: ExchangeRegistry
    dispatcher: CommandDispatcher
    cancel: asyncio.Event = field(default_factory=asyncio.Event)

    async def close(self) -> None:
        await self.registry.close()


def build_container(
    settings: "Settings",
    registry: ExchangeRegistry | None = None,
    *,
    confirm: ConfirmHook | None = None,
) -> AppContainer:
    """Wire registry, resolvers, move service and dispatcher from settings."""
    registry = registry or ExchangeRegistry(settings)
    fee_resolver = FeeResolver(settings)
    network_resolver = DepositNetworkResolver(settings)
    move_service = MoveService(
        registry,
        settings,
        fee_resolver=fee_resolver,
        network_resolver=network_resolver,
        confirm=confirm,
    )
    dispatcher = CommandDispatcher(
        registry,
        settings,
        move_service=move_service,
        fee_resolver=fee_resolver,
        network_resolver=network_resolver,
    )
    return AppContainer(settings=settings, registry=registry, dispatcher=dispatcher)
