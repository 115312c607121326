"""Tests for command parsing and dispatch."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from cryptoconsole.commands import (
    HELP_TEXT,
    CommandDispatcher,
    CommandType,
    parse_command,
)
from cryptoconsole.errors import TransportError
from cryptoconsole.exchanges.protocol import DepositAddress
from cryptoconsole.logging import MASK


class TestParseCommand:
    """Tests for the line parser."""

    @pytest.mark.parametrize(
        "line,error",
        [
            ("", "Empty command"),
            ("   ", "Empty command"),
            ("launch rockets", "Unknown command: launch"),
            ("balance binance", "Syntax: balance <exchange> <asset>"),
            ("move binance kucoin 100", "Syntax: move <from> <to> <amount> <asset>"),
            ("buy binance BTC abc USDT", "Quote amount must be a positive number"),
            ("sell binance BTC 0 USDT", "Base amount must be a positive number"),
            ("move binance kucoin -5 USDT", "Amount must be a positive number"),
            ("spread binance kucoin BTC NaN USDT", "Quote amount must be a positive number"),
        ],
    )
    def test_invalid_lines(self, line, error):
        command = parse_command(line)
        assert command.type is CommandType.INVALID
        assert command.error == error

    def test_none_is_empty(self):
        assert parse_command(None).error == "Empty command"

    def test_move(self):
        command = parse_command("move Binance KuCoin 100.5 usdt")

        assert command.type is CommandType.MOVE
        assert command.exchange == "binance"
        assert command.target == "kucoin"
        assert command.amount == Decimal("100.5")
        assert command.asset == "USDT"

    def test_buy_fields(self):
        command = parse_command("buy gate btc 25 usdt")

        assert command.type is CommandType.BUY
        assert (command.exchange, command.base, command.quote) == ("gate", "BTC", "USDT")
        assert command.amount == Decimal("25")

    def test_spread_amount_position(self):
        command = parse_command("spread binance kucoin btc 100 usdt")

        assert command.type is CommandType.SPREAD
        assert command.target == "kucoin"
        assert command.amount == Decimal("100")
        assert command.quote == "USDT"

    def test_address(self):
        command = parse_command("address htx usdt trc20")
        assert (command.asset, command.network) == ("USDT", "TRC20")

    def test_keywords_case_insensitive(self):
        assert parse_command("HELP").type is CommandType.HELP
        assert parse_command("?").type is CommandType.HELP
        assert parse_command("Quit").type is CommandType.EXIT
        assert parse_command("TIME binance").type is CommandType.TIME


@pytest.fixture
def clients(fake_client, sample_book):
    binance = fake_client(
        "binance",
        balances=("100",),
        fees={"TRC20": "1", "ERC20": "5"},
        book=sample_book,
    )
    kucoin = fake_client(
        "kucoin",
        balances=("0", "0", "100"),
        networks={"TRC20", "ERC20"},
        book=sample_book,
        deposit_address=DepositAddress("rKucoinXRP", "778899", "XRP"),
    )
    return binance, kucoin


@pytest.fixture
def dispatcher(registry, settings, clients):
    binance, kucoin = clients
    registry.register("binance", binance)
    registry.register("kucoin", kucoin)
    return CommandDispatcher(registry, settings)


async def run(dispatcher, line):
    return await dispatcher.execute(parse_command(line))


class TestCommandDispatcher:
    """Tests for dispatching parsed commands."""

    @pytest.mark.asyncio
    async def test_invalid_command_reported(self, dispatcher):
        result = await run(dispatcher, "")
        assert not result.success
        assert result.message == "FAILED: Empty command"

    @pytest.mark.asyncio
    async def test_help_and_exit(self, dispatcher):
        assert (await run(dispatcher, "help")).message == HELP_TEXT
        result = await run(dispatcher, "exit")
        assert result.exit
        assert result.message == "Bye."

    @pytest.mark.asyncio
    async def test_balance(self, dispatcher):
        result = await run(dispatcher, "balance Binance usdt")
        assert result.success
        assert result.message == "binance USDT free=100 locked=0"

    @pytest.mark.asyncio
    async def test_balance_without_credentials(self, registry, settings, fake_client):
        registry.register("binance", fake_client("binance", credentials=False))
        dispatcher = CommandDispatcher(registry, settings)

        result = await run(dispatcher, "balance binance USDT")

        assert result.message == "FAILED: Missing API credentials for exchange: binance"

    @pytest.mark.asyncio
    async def test_unimplemented_exchange(self, dispatcher):
        result = await run(dispatcher, "fees ascendex USDT")
        assert not result.success
        assert result.message.startswith("FAILED: Unsupported exchange: ascendex")

    @pytest.mark.asyncio
    async def test_fees(self, dispatcher):
        result = await run(dispatcher, "fees binance USDT")
        assert result.message.splitlines() == [
            "binance USDT withdrawal fees:",
            "  ERC20: 5",
            "  TRC20: 1",
        ]

    @pytest.mark.asyncio
    async def test_orderbook(self, dispatcher):
        lines = (await run(dispatcher, "orderbook binance BTC USDT")).message.splitlines()
        assert lines[1:4] == ["Bids:", "  99 x 1", "  98 x 2"]
        assert lines[4:] == ["Asks:", "  100 x 1", "  101 x 2"]

    @pytest.mark.asyncio
    async def test_buy_and_sell(self, dispatcher, clients):
        binance, _ = clients

        buy = await run(dispatcher, "buy binance BTC 25 USDT")
        sell = await run(dispatcher, "sell binance BTC 0.5 USDT")

        assert buy.message == "BUY placed on binance: FILLED id=1001"
        assert sell.message == "SELL placed on binance: FILLED id=1002"
        assert binance.orders == [
            ("buy", "BTC", "USDT", Decimal("25")),
            ("sell", "BTC", "USDT", Decimal("0.5")),
        ]

    @pytest.mark.asyncio
    async def test_buyinfo(self, dispatcher):
        result = await run(dispatcher, "buyinfo binance BTC 150 USDT")
        assert result.success
        assert "100 x 1 = 100" in result.message
        assert "filled=1.495049504950495049" in result.message

    @pytest.mark.asyncio
    async def test_sellinfo_exhausted_book(self, dispatcher):
        result = await run(dispatcher, "sellinfo kucoin BTC 1000 USDT")
        assert "book depth exhausted" in result.message

    @pytest.mark.asyncio
    async def test_spread(self, dispatcher):
        result = await run(dispatcher, "spread binance kucoin BTC 99 USDT")
        assert result.message.splitlines()[-1] == "  spread=-1.0000%"

    @pytest.mark.asyncio
    async def test_deposit(self, dispatcher):
        result = await run(dispatcher, "deposit kucoin USDT")
        assert result.message == "kucoin USDT deposit networks: ERC20, TRC20"

    @pytest.mark.asyncio
    async def test_address_with_memo(self, dispatcher):
        result = await run(dispatcher, "address kucoin XRP XRP")
        assert result.message == "kucoin XRP XRP address: rKucoinXRP memo=778899"

    @pytest.mark.asyncio
    async def test_time(self, dispatcher):
        result = await run(dispatcher, "time binance")
        assert result.message == "binance server time: 1700000000000 offset=12ms"

    @pytest.mark.asyncio
    async def test_move(self, dispatcher, clients):
        binance, _ = clients

        result = await run(dispatcher, "move binance kucoin 100 USDT")

        assert result.success
        assert result.message == "Move submitted. WithdrawalId=wd-1 network=TRC20 to=kucoin"
        assert binance.withdrawals[0][2:4] == ("TRC20", "TXYZdestination")

    @pytest.mark.asyncio
    async def test_unexpected_error_contained(self, dispatcher, clients):
        binance, _ = clients
        binance.get_balance = AsyncMock(side_effect=RuntimeError("boom"))

        result = await run(dispatcher, "balance binance USDT")

        assert not result.success
        assert result.message == "FAILED: boom"

    @pytest.mark.asyncio
    async def test_failure_message_redacted(self, dispatcher, clients):
        binance, _ = clients
        binance.get_order_book = AsyncMock(
            side_effect=TransportError(
                "binance connection error: https://api.test/depth"
                "?AccessKeyId=AKID123&Signature=SIGVALUE&apiKey=KEYVALUE"
            )
        )

        result = await run(dispatcher, "orderbook binance BTC USDT")

        assert not result.success
        for secret in ("AKID123", "SIGVALUE", "KEYVALUE"):
            assert secret not in result.message
        assert f"Signature={MASK}&apiKey={MASK}" in result.message

    @pytest.mark.asyncio
    async def test_unexpected_error_redacted(self, dispatcher, clients):
        binance, _ = clients
        binance.get_balance = AsyncMock(side_effect=RuntimeError("redirected: /x?signature=abc123"))

        result = await run(dispatcher, "balance binance USDT")

        assert result.message == f"FAILED: redirected: /x?signature={MASK}"
