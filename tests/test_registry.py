"""Tests for exchange client construction and lookup."""

import pytest

from cryptoconsole.errors import UnsupportedExchangeError, ValidationError
from cryptoconsole.exchanges import (
    BaseExchangeClient,
    ExchangeRegistry,
    create_exchange_client,
)
from cryptoconsole.exchanges.binance import BinanceClient
from cryptoconsole.exchanges.gateio import GateClient
from cryptoconsole.exchanges.htx import HTXClient
from cryptoconsole.exchanges.kucoin import KuCoinClient
from cryptoconsole.exchanges.mexc import MEXCClient
from cryptoconsole.exchanges.registry import CLIENT_CLASSES, known_exchanges
from cryptoconsole.settings import Settings


class TestCreateExchangeClient:
    """Tests for create_exchange_client function."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("binance", BinanceClient),
            ("KuCoin", KuCoinClient),
            ("gate", GateClient),
            ("Gate.io", GateClient),
            ("huobi", HTXClient),
            ("htx", HTXClient),
            ("MEXC", MEXCClient),
        ],
    )
    def test_aliases(self, name, expected, api_key, api_secret):
        client = create_exchange_client(name, api_key, api_secret)
        assert isinstance(client, expected)
        assert isinstance(client, BaseExchangeClient)
        assert client.api_key == api_key

    def test_kucoin_passphrase(self, api_key, api_secret, passphrase):
        client = create_exchange_client("kucoin", api_key, api_secret, passphrase=passphrase)
        assert client.passphrase == passphrase
        assert client.has_credentials

    def test_known_without_client(self):
        with pytest.raises(UnsupportedExchangeError, match="ascendex.*no client implementation"):
            create_exchange_client("ascend")

    def test_unknown_exchange(self):
        with pytest.raises(UnsupportedExchangeError, match="supported: binance, gateio, htx, kucoin, mexc"):
            create_exchange_client("nowhere")

    def test_blank_name(self):
        with pytest.raises(ValidationError):
            create_exchange_client("  ")

    def test_options_forwarded(self):
        client = create_exchange_client("binance", base_url="https://testnet.binance.vision/")
        assert client.get_base_url() == "https://testnet.binance.vision"

    def test_known_exchanges_cover_clients(self):
        assert set(CLIENT_CLASSES) <= set(known_exchanges())


class TestExchangeRegistry:
    """Tests for settings-driven client lookup."""

    def test_clients_built_once(self, registry):
        first = registry.get_client("Binance")
        assert registry.get_client("binance") is first
        assert first.api_key == "k1"

    def test_transport_policy_from_settings(self, settings_data):
        settings_data["transport"] = {"max_attempts": 5, "initial_backoff_seconds": 0.25}
        registry = ExchangeRegistry(Settings.model_validate(settings_data))

        policy = registry.get_client("binance").transport.policy

        assert policy.max_attempts == 5
        assert policy.initial_backoff == 0.25

    def test_base_url_override(self, settings_data):
        settings_data["exchanges"]["htx"] = {
            "base_url": "https://api-aws.huobi.pro",
            "alt_base_url": "https://api.example-mirror.com",
        }
        registry = ExchangeRegistry(Settings.model_validate(settings_data))

        client = registry.get_client("huobi")

        assert client.base_url == "https://api-aws.huobi.pro"
        assert client.alt_base_url == "https://api.example-mirror.com"

    def test_disabled_exchange(self, settings_data):
        settings_data["exchanges"]["binance"]["enabled"] = False
        registry = ExchangeRegistry(Settings.model_validate(settings_data))

        with pytest.raises(UnsupportedExchangeError, match="disabled"):
            registry.get_client("binance")

    def test_has_secrets(self, registry):
        assert registry.has_secrets("binance")
        assert registry.has_secrets("kucoin")
        assert not registry.has_secrets("gate")

    def test_kucoin_needs_passphrase(self, settings_data):
        del settings_data["exchanges"]["kucoin"]["credentials"]["passphrase"]
        registry = ExchangeRegistry(Settings.model_validate(settings_data))

        assert not registry.has_secrets("kucoin")
        assert not registry.get_client("kucoin").has_credentials

    def test_registered_client_wins(self, registry, fake_client):
        client = fake_client("gateio")
        registry.register("Gate", client)

        assert registry.get_client("gateio") is client
        assert registry.has_secrets("gate")

    @pytest.mark.asyncio
    async def test_close(self, registry, fake_client):
        client = fake_client("binance")
        registry.register("binance", client)

        await registry.close()

        assert client.closed
