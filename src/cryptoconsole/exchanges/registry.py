"""Exchange registry: canonical names, client classes and construction from settings."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Type

from ..errors import UnsupportedExchangeError
from ..settings import Settings
from .base import BaseExchangeClient
from .binance import BinanceClient
from .gateio import GateClient
from .htx import HTXClient
from .kucoin import KuCoinClient
from .mexc import MEXCClient
from .normalization import EXCHANGE_ALIASES, canonical_exchange_name
from .protocol import ExchangeClient
from .transport import RetryPolicy

logger = logging.getLogger(__name__)


CLIENT_CLASSES: dict[str, Type[BaseExchangeClient]] = {
    "binance": BinanceClient,
    "kucoin": KuCoinClient,
    "gateio": GateClient,
    "htx": HTXClient,
    "mexc": MEXCClient,
}


def known_exchanges() -> list[str]:
    """Every canonical name in the alias table, implemented or not."""
    return sorted(set(EXCHANGE_ALIASES.values()))


def create_exchange_client(
    exchange: str,
    api_key: str | None = None,
    api_secret: str | None = None,
    *,
    passphrase: str | None = None,
    **options: Any,
) -> BaseExchangeClient:
    """Create an exchange client instance.

    Args:
        exchange: Exchange name or alias (binance, gate, huobi, ...)
        api_key: API key
        api_secret: API secret
        passphrase: API passphrase (KuCoin)
        **options: Client options (base_url, alt_base_url, policy, sleep, ...)

    Raises:
        UnsupportedExchangeError: Name is unknown or has no client
    """
    name = canonical_exchange_name(exchange)
    client_class = CLIENT_CLASSES.get(name)
    if client_class is None:
        if name in EXCHANGE_ALIASES.values():
            raise UnsupportedExchangeError(name, "no client implementation")
        supported = ", ".join(sorted(CLIENT_CLASSES))
        raise UnsupportedExchangeError(name, f"supported: {supported}")

    kwargs: dict[str, Any] = {"api_key": api_key, "api_secret": api_secret}
    if passphrase is not None:
        kwargs["passphrase"] = passphrase
    kwargs.update(options)
    return client_class(**kwargs)


class ExchangeRegistry:
    """Builds exchange clients from settings, one instance per canonical name."""

    def __init__(
        self,
        settings: Settings,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings
        self._sleep = sleep
        self._clients: dict[str, ExchangeClient] = {}

    def _policy(self) -> RetryPolicy:
        transport = self.settings.transport
        return RetryPolicy(
            max_attempts=transport.max_attempts,
            initial_backoff=transport.initial_backoff_seconds,
            request_timeout=transport.request_timeout_seconds,
        )

    def _build(self, name: str) -> BaseExchangeClient:
        config = self.settings.exchanges.get(name)
        if config is not None and not config.enabled:
            raise UnsupportedExchangeError(name, "disabled in configuration")

        kwargs: dict[str, Any] = {"policy": self._policy(), "sleep": self._sleep}
        if config is not None:
            creds = config.credentials
            if creds is not None:
                kwargs["api_key"] = creds.api_key.get_secret_value()
                kwargs["api_secret"] = creds.api_secret.get_secret_value()
                if creds.passphrase is not None:
                    kwargs["passphrase"] = creds.passphrase.get_secret_value()
            if config.base_url:
                kwargs["base_url"] = config.base_url
            if config.alt_base_url:
                kwargs["alt_base_url"] = config.alt_base_url
            kwargs.update(config.options)
        return create_exchange_client(name, **kwargs)

    def register(self, name: str, client: ExchangeClient) -> None:
        """Install a prebuilt client under ``name``."""
        self._clients[canonical_exchange_name(name)] = client

    def get_client(self, name: str) -> ExchangeClient:
        """Return the client for ``name`` (case/punctuation-insensitive).

        Raises:
            UnsupportedExchangeError: Unknown, unimplemented or disabled exchange
        """
        canonical = canonical_exchange_name(name)
        client = self._clients.get(canonical)
        if client is None:
            client = self._build(canonical)
            self._clients[canonical] = client
            logger.info("Initialized exchange client for %s", canonical)
        return client

    def has_secrets(self, name: str) -> bool:
        """True when key and secret are configured for ``name``."""
        canonical = canonical_exchange_name(name)
        client = self._clients.get(canonical)
        if client is not None:
            return client.has_credentials
        creds = self.settings.credentials_for(canonical)
        if creds is None:
            return False
        if not (creds.api_key.get_secret_value().strip() and creds.api_secret.get_secret_value().strip()):
            return False
        if canonical == "kucoin":
            return bool(creds.passphrase and creds.passphrase.get_secret_value().strip())
        return True

    async def close(self) -> None:
        for name, client in list(self._clients.items()):
            try:
                await client.close()
            except Exception as exc:
                logger.warning("Failed to close %s client: %s", name, exc)
        self._clients.clear()
