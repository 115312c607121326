"""Tests for fee resolution, deposit network discovery and network selection."""

from decimal import Decimal

import pytest

from cryptoconsole.errors import (
    MissingFeeForNetworkError,
    NoFeeDataError,
    NoNetworkDataError,
    TransportError,
)
from cryptoconsole.exchanges.protocol import Capabilities
from cryptoconsole.services import DepositNetworkResolver, FeeResolver, select_network
from cryptoconsole.settings import Settings


NO_LIVE_DATA = Capabilities(balances=True, withdrawals=True)


@pytest.fixture
def fallback_settings():
    return Settings.model_validate({
        "withdraw_fees_fallback": {
            "Binance": {"usdt": {"TRX": "1", "ERC20": 5, "BSC": "", "SOL": "abc", "MATIC": "-1"}},
        },
        "supported_networks_fallback": {
            "gate": {"USDT": ["TRON(TRC20)", "Ethereum (ERC20)", ""]},
        },
    })


class TestFeeResolver:
    """Live-first withdrawal fee resolution."""

    def test_fallback_drops_unusable_entries(self, fallback_settings):
        fees = FeeResolver(fallback_settings).fallback_fees("binance", "usdt")
        assert fees == {"TRC20": Decimal("1"), "ERC20": Decimal("5")}

    @pytest.mark.asyncio
    async def test_live_fees_win(self, fallback_settings, fake_client):
        client = fake_client("binance", fees={"TRC20": "0.8"})

        fees = await FeeResolver(fallback_settings).resolve(client, "binance", "USDT")

        assert fees.fees == {"TRC20": Decimal("0.8")}
        assert client.fee_calls == 1

    @pytest.mark.asyncio
    async def test_live_failure_falls_back(self, fallback_settings, fake_client):
        client = fake_client("binance", fees=TransportError("binance HTTP 503", status=503))

        fees = await FeeResolver(fallback_settings).resolve(client, "binance", "USDT")

        assert fees.fees["TRC20"] == Decimal("1")

    @pytest.mark.asyncio
    async def test_empty_live_result_falls_back(self, fallback_settings, fake_client):
        client = fake_client("binance", fees={})

        fees = await FeeResolver(fallback_settings).resolve(client, "binance", "USDT")

        assert set(fees.fees) == {"TRC20", "ERC20"}

    @pytest.mark.asyncio
    async def test_unsupported_live_lookup_not_called(self, fallback_settings, fake_client):
        client = fake_client("binance", capabilities=NO_LIVE_DATA, fees={"TRC20": "9"})

        fees = await FeeResolver(fallback_settings).resolve(client, "binance", "USDT")

        assert client.fee_calls == 0
        assert fees.fees["TRC20"] == Decimal("1")

    @pytest.mark.asyncio
    async def test_no_fee_data(self, fallback_settings, fake_client):
        client = fake_client("kucoin", capabilities=NO_LIVE_DATA)

        with pytest.raises(NoFeeDataError, match="kucoin USDT"):
            await FeeResolver(fallback_settings).resolve(client, "kucoin", "USDT")


class TestDepositNetworkResolver:
    """Live-first deposit network discovery."""

    @pytest.mark.asyncio
    async def test_live_networks(self, fallback_settings, fake_client):
        client = fake_client("gateio", networks={"BSC"})

        networks = await DepositNetworkResolver(fallback_settings).resolve(client, "gateio", "USDT")

        assert networks == {"BSC"}

    @pytest.mark.asyncio
    async def test_empty_live_uses_configuration(self, fallback_settings, fake_client):
        client = fake_client("gateio", networks=())

        networks = await DepositNetworkResolver(fallback_settings).resolve(client, "gateio", "usdt")

        assert networks == {"TRC20", "ERC20"}

    @pytest.mark.asyncio
    async def test_nothing_available(self, fallback_settings, fake_client):
        client = fake_client("kucoin", capabilities=NO_LIVE_DATA)

        with pytest.raises(NoNetworkDataError):
            await DepositNetworkResolver(fallback_settings).resolve(client, "kucoin", "USDT")


class TestSelectNetwork:
    """Cheapest-network selection."""

    def test_cheapest_wins(self):
        network, fee = select_network(
            {"TRC20", "ERC20"}, {"TRC20": Decimal("1"), "ERC20": Decimal("5")}
        )
        assert (network, fee) == ("TRC20", Decimal("1"))

    def test_missing_fee_fails_closed(self):
        with pytest.raises(MissingFeeForNetworkError) as exc_info:
            select_network(
                {"TRC20", "BSC"},
                {"TRC20": Decimal("1")},
                exchange="binance",
                asset="USDT",
            )
        assert exc_info.value.networks == ["BSC"]
        assert "binance" in str(exc_info.value)

    def test_tie_broken_by_priority(self):
        fees = {"TRC20": Decimal("1"), "SOL": Decimal("1"), "BSC": Decimal("1")}
        assert select_network(fees, fees, ["Solana", "TRX"])[0] == "SOL"

    def test_unlisted_networks_rank_after_priority(self):
        fees = {"BSC": Decimal("1"), "TRC20": Decimal("1")}
        assert select_network(fees, fees, ["TRC20"])[0] == "TRC20"

    def test_tie_without_priority_is_alphabetical(self):
        fees = {"TRC20": Decimal("1"), "BSC": Decimal("1"), "ERC20": Decimal("1")}
        for _ in range(5):
            assert select_network(list(fees), fees)[0] == "BSC"

    def test_extra_fee_entries_ignored(self):
        fees = {"TRC20": Decimal("1"), "ERC20": Decimal("0.1")}
        assert select_network({"TRC20"}, fees) == ("TRC20", Decimal("1"))

    def test_no_candidates(self):
        with pytest.raises(NoNetworkDataError):
            select_network(set(), {"TRC20": Decimal("1")})
