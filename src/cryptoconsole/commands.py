"""Line-oriented command parsing and dispatch onto the exchange core."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import TYPE_CHECKING

from .errors import ConsoleError, MissingCredentialsError
from .exchanges.base import to_plain
from .exchanges.protocol import FillSimulation, Side
from .logging import sanitize
from .services.fees import FeeResolver
from .services.move import MoveRequest, MoveService
from .services.networks import DepositNetworkResolver

if TYPE_CHECKING:
    from .exchanges.registry import ExchangeRegistry
    from .settings import Settings

logger = logging.getLogger(__name__)

ORDER_BOOK_DEPTH = 10
SPREAD_SCALE = Decimal("0.0001")


class CommandType(Enum):
    MOVE = "move"
    BUY = "buy"
    SELL = "sell"
    BUYINFO = "buyinfo"
    SELLINFO = "sellinfo"
    BALANCE = "balance"
    FEES = "fees"
    ORDERBOOK = "orderbook"
    DEPOSIT = "deposit"
    ADDRESS = "address"
    SPREAD = "spread"
    TIME = "time"
    HELP = "help"
    EXIT = "exit"
    INVALID = "invalid"


@dataclass(frozen=True)
class Command:
    """A parsed command line. Only the fields its type uses are set."""

    type: CommandType
    raw: str = ""
    exchange: str | None = None
    target: str | None = None
    asset: str | None = None
    base: str | None = None
    quote: str | None = None
    network: str | None = None
    amount: Decimal | None = None
    error: str | None = None


@dataclass(frozen=True)
class CommandResult:
    success: bool
    message: str
    exit: bool = False


HELP_TEXT = "\n".join(
    [
        "Commands:",
        "  move <from> <to> <amount> <asset>",
        "  buy <exchange> <baseAsset> <quoteAmount> <quoteAsset>",
        "  sell <exchange> <baseAsset> <baseAmount> <quoteAsset>",
        "  buyinfo <exchange> <baseAsset> <quoteAmount> <quoteAsset>",
        "  sellinfo <exchange> <baseAsset> <quoteAmount> <quoteAsset>",
        "  spread <exchange1> <exchange2> <baseAsset> <quoteAmount> <quoteAsset>",
        "  balance <exchange> <asset>",
        "  fees <exchange> <asset>",
        "  orderbook <exchange> <base> <quote>",
        "  deposit <exchange> <asset>",
        "  address <exchange> <asset> <network>",
        "  time <exchange>",
        "  help",
        "  exit",
    ]
)

_SYNTAX = {
    "move": (5, "Syntax: move <from> <to> <amount> <asset>"),
    "buy": (5, "Syntax: buy <exchange> <baseAsset> <quoteAmount> <quoteAsset>"),
    "sell": (5, "Syntax: sell <exchange> <baseAsset> <baseAmount> <quoteAsset>"),
    "buyinfo": (5, "Syntax: buyinfo <exchange> <baseAsset> <quoteAmount> <quoteAsset>"),
    "sellinfo": (5, "Syntax: sellinfo <exchange> <baseAsset> <quoteAmount> <quoteAsset>"),
    "spread": (6, "Syntax: spread <exchange1> <exchange2> <baseAsset> <quoteAmount> <quoteAsset>"),
    "balance": (3, "Syntax: balance <exchange> <asset>"),
    "fees": (3, "Syntax: fees <exchange> <asset>"),
    "orderbook": (4, "Syntax: orderbook <exchange> <base> <quote>"),
    "deposit": (3, "Syntax: deposit <exchange> <asset>"),
    "address": (4, "Syntax: address <exchange> <asset> <network>"),
    "time": (2, "Syntax: time <exchange>"),
}

_AMOUNT_ERRORS = {
    "move": "Amount must be a positive number",
    "buy": "Quote amount must be a positive number",
    "sell": "Base amount must be a positive number",
    "buyinfo": "Quote amount must be a positive number",
    "sellinfo": "Quote amount must be a positive number",
    "spread": "Quote amount must be a positive number",
}


def parse_positive_amount(value: str) -> Decimal | None:
    try:
        amount = Decimal(value)
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


def _invalid(raw: str, error: str) -> Command:
    return Command(CommandType.INVALID, raw, error=error)


def parse_command(line: str | None) -> Command:
    """Parse one input line. Never raises; bad input gives an INVALID command."""
    if line is None or not line.strip():
        return _invalid(line or "", "Empty command")
    raw = line.strip()
    parts = raw.split()
    name = parts[0].lower()

    if name in ("help", "?"):
        return Command(CommandType.HELP, raw)
    if name in ("exit", "quit"):
        return Command(CommandType.EXIT, raw)
    if name not in _SYNTAX:
        return _invalid(raw, f"Unknown command: {parts[0]}")

    arity, syntax = _SYNTAX[name]
    if len(parts) != arity:
        return _invalid(raw, syntax)

    amount = None
    if name in _AMOUNT_ERRORS:
        amount = parse_positive_amount(parts[4] if name == "spread" else parts[3])
        if amount is None:
            return _invalid(raw, _AMOUNT_ERRORS[name])

    kind = CommandType(name)
    ex = parts[1].lower()
    if kind is CommandType.MOVE:
        return Command(kind, raw, exchange=ex, target=parts[2].lower(), amount=amount, asset=parts[4].upper())
    if kind in (CommandType.BUY, CommandType.SELL, CommandType.BUYINFO, CommandType.SELLINFO):
        return Command(kind, raw, exchange=ex, base=parts[2].upper(), amount=amount, quote=parts[4].upper())
    if kind is CommandType.SPREAD:
        return Command(
            kind, raw, exchange=ex, target=parts[2].lower(),
            base=parts[3].upper(), amount=amount, quote=parts[5].upper(),
        )
    if kind is CommandType.ORDERBOOK:
        return Command(kind, raw, exchange=ex, base=parts[2].upper(), quote=parts[3].upper())
    if kind is CommandType.ADDRESS:
        return Command(kind, raw, exchange=ex, asset=parts[2].upper(), network=parts[3].upper())
    if kind is CommandType.TIME:
        return Command(kind, raw, exchange=ex)
    return Command(kind, raw, exchange=ex, asset=parts[2].upper())


def render_simulation(exchange: str, sim: FillSimulation, quote: str) -> str:
    verb = "spent" if sim.side is Side.BUY else "received"
    lines = [f"{exchange} {sim.symbol} {sim.side.value} simulation for {to_plain(sim.requested_notional)} {quote}"]
    for level in sim.levels:
        lines.append(
            f"  {to_plain(level.price)} x {to_plain(level.base_filled)} = {to_plain(level.quote_value)}"
        )
    lines.append(
        f"  filled={to_plain(sim.base_filled)} {verb}={to_plain(sim.quote_total)} "
        f"avg={to_plain(sim.average_price)}"
    )
    if not sim.fully_filled:
        lines.append("  (book depth exhausted before the full amount)")
    return "\n".join(lines)


class CommandDispatcher:
    """Executes parsed commands and renders a one-message result.

    Every failure becomes ``FAILED: <message>``; the exception never escapes.
    """

    def __init__(
        self,
        registry: "ExchangeRegistry",
        settings: "Settings",
        *,
        move_service: MoveService | None = None,
        fee_resolver: FeeResolver | None = None,
        network_resolver: DepositNetworkResolver | None = None,
    ):
        self.registry = registry
        self.settings = settings
        self.fee_resolver = fee_resolver or FeeResolver(settings)
        self.network_resolver = network_resolver or DepositNetworkResolver(settings)
        self.move_service = move_service or MoveService(
            registry,
            settings,
            fee_resolver=self.fee_resolver,
            network_resolver=self.network_resolver,
        )

    async def execute(self, command: Command, *, cancel: asyncio.Event | None = None) -> CommandResult:
        logger.info("COMMAND: %s", sanitize(command.raw))
        try:
            if command.type is CommandType.INVALID:
                error = sanitize(command.error or "Invalid command")
                logger.warning("FAILED: %s", error)
                return CommandResult(False, f"FAILED: {error}")
            if command.type is CommandType.HELP:
                return CommandResult(True, HELP_TEXT)
            if command.type is CommandType.EXIT:
                return CommandResult(True, "Bye.", exit=True)

            handler = getattr(self, f"_handle_{command.type.value}")
            message = await handler(command, cancel)
        except ConsoleError as exc:
            failure = f"FAILED: {sanitize(str(exc))}"
            logger.warning(failure)
            return CommandResult(False, failure)
        except Exception as exc:
            failure = f"FAILED: {sanitize(str(exc))}"
            logger.error(failure, exc_info=True)
            return CommandResult(False, failure)

        logger.info("SUCCESS: %s", sanitize(message))
        return CommandResult(True, message)

    def _require_secrets(self, exchange: str) -> None:
        if not self.registry.has_secrets(exchange):
            raise MissingCredentialsError(exchange)

    async def _handle_balance(self, cmd: Command, cancel: asyncio.Event | None) -> str:
        self._require_secrets(cmd.exchange)
        client = self.registry.get_client(cmd.exchange)
        balance = await client.get_balance(cmd.asset)
        return f"{client.name} {cmd.asset} free={to_plain(balance.free)} locked={to_plain(balance.locked)}"

    async def _handle_fees(self, cmd: Command, cancel: asyncio.Event | None) -> str:
        client = self.registry.get_client(cmd.exchange)
        fees = await self.fee_resolver.resolve(client, client.name, cmd.asset)
        lines = [f"{client.name} {cmd.asset} withdrawal fees:"]
        for network in sorted(fees.fees):
            lines.append(f"  {network}: {to_plain(fees.fees[network])}")
        return "\n".join(lines)

    async def _handle_orderbook(self, cmd: Command, cancel: asyncio.Event | None) -> str:
        client = self.registry.get_client(cmd.exchange)
        book = await client.get_order_book(cmd.base, cmd.quote, ORDER_BOOK_DEPTH)
        lines = [f"{client.name} {book.symbol} order book (top {ORDER_BOOK_DEPTH})", "Bids:"]
        lines += [f"  {to_plain(lvl.price)} x {to_plain(lvl.quantity)}" for lvl in book.bids[:ORDER_BOOK_DEPTH]]
        lines.append("Asks:")
        lines += [f"  {to_plain(lvl.price)} x {to_plain(lvl.quantity)}" for lvl in book.asks[:ORDER_BOOK_DEPTH]]
        return "\n".join(lines)

    async def _handle_buy(self, cmd: Command, cancel: asyncio.Event | None) -> str:
        self._require_secrets(cmd.exchange)
        client = self.registry.get_client(cmd.exchange)
        result = await client.market_buy(cmd.base, cmd.quote, cmd.amount)
        return f"BUY placed on {client.name}: {result.status} id={result.order_id}"

    async def _handle_sell(self, cmd: Command, cancel: asyncio.Event | None) -> str:
        self._require_secrets(cmd.exchange)
        client = self.registry.get_client(cmd.exchange)
        result = await client.market_sell(cmd.base, cmd.quote, cmd.amount)
        return f"SELL placed on {client.name}: {result.status} id={result.order_id}"

    async def _handle_buyinfo(self, cmd: Command, cancel: asyncio.Event | None) -> str:
        client = self.registry.get_client(cmd.exchange)
        sim = await client.buy_info(cmd.base, cmd.quote, cmd.amount)
        return render_simulation(client.name, sim, cmd.quote)

    async def _handle_sellinfo(self, cmd: Command, cancel: asyncio.Event | None) -> str:
        client = self.registry.get_client(cmd.exchange)
        sim = await client.sell_info(cmd.base, cmd.quote, cmd.amount)
        return render_simulation(client.name, sim, cmd.quote)

    async def _handle_spread(self, cmd: Command, cancel: asyncio.Event | None) -> str:
        buy_client = self.registry.get_client(cmd.exchange)
        sell_client = self.registry.get_client(cmd.target)
        bought = await buy_client.buy_info(cmd.base, cmd.quote, cmd.amount)
        sold = await sell_client.sell_info(cmd.base, cmd.quote, cmd.amount)
        spread = (sold.average_price - bought.average_price) / bought.average_price * 100
        spread = spread.quantize(SPREAD_SCALE, rounding=ROUND_HALF_UP)
        return "\n".join(
            [
                f"{cmd.base}/{cmd.quote} spread for {to_plain(cmd.amount)} {cmd.quote}",
                f"  buy on {buy_client.name}: avg={to_plain(bought.average_price)}",
                f"  sell on {sell_client.name}: avg={to_plain(sold.average_price)}",
                f"  spread={spread}%",
            ]
        )

    async def _handle_deposit(self, cmd: Command, cancel: asyncio.Event | None) -> str:
        client = self.registry.get_client(cmd.exchange)
        networks = await self.network_resolver.resolve(client, client.name, cmd.asset)
        return f"{client.name} {cmd.asset} deposit networks: {', '.join(sorted(networks))}"

    async def _handle_address(self, cmd: Command, cancel: asyncio.Event | None) -> str:
        self._require_secrets(cmd.exchange)
        client = self.registry.get_client(cmd.exchange)
        deposit = await client.get_deposit_address(cmd.asset, cmd.network)
        if deposit is None:
            return f"{client.name} {cmd.asset} {cmd.network}: no deposit address returned"
        message = f"{client.name} {cmd.asset} {deposit.network or cmd.network} address: {deposit.address}"
        if deposit.memo:
            message += f" memo={deposit.memo}"
        return message

    async def _handle_time(self, cmd: Command, cancel: asyncio.Event | None) -> str:
        client = self.registry.get_client(cmd.exchange)
        reading = await client.sync_time()
        return f"{client.name} server time: {reading.server_time_ms} offset={reading.offset_ms}ms"

    async def _handle_move(self, cmd: Command, cancel: asyncio.Event | None) -> str:
        self._require_secrets(cmd.exchange)
        self._require_secrets(cmd.target)
        request = MoveRequest(cmd.exchange, cmd.target, cmd.asset, cmd.amount)
        result = await self.move_service.move(request, cancel=cancel)
        return result.message
