"""Typer-based CLI for the crypto console."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .commands import Command, CommandResult, CommandType, parse_positive_amount
from .logging import sanitize

if TYPE_CHECKING:
    from .di import AppContainer


def _load_settings(config_path: Optional[Path] = None):
    from .config import load_settings
    return load_settings(config_path)


def _build_container(settings):
    from .di import build_container
    return build_container(settings)


app = typer.Typer(help="Multi-exchange crypto console")
console = Console()
logger = logging.getLogger(__name__)


def run_cli(argv: list[str] | None = None) -> None:
    """Run CLI with optional argv parameter."""
    app(argv)


def init_components(config_path: Optional[Path] = None) -> "AppContainer":
    """Load settings and wire the application container."""
    settings = _load_settings(config_path)
    logger.debug("Effective configuration: %s", settings.redacted())
    return _build_container(settings)


def _amount(raw: str, what: str) -> Decimal:
    amount = parse_positive_amount(raw)
    if amount is None:
        raise typer.BadParameter(f"{what} must be a positive number")
    return amount


async def _execute_async(command: Command, config: Optional[Path]) -> CommandResult:
    container = init_components(config)
    try:
        return await container.dispatcher.execute(command, cancel=container.cancel)
    finally:
        await container.close()


def _run(command: Command, config: Optional[Path], title: str) -> None:
    try:
        result = asyncio.run(_execute_async(command, config))
    except Exception as e:
        logger.error("Command failed: %s", e, exc_info=True)
        console.print(f"[red]Error:[/red] {escape(sanitize(str(e)))}", highlight=False)
        raise typer.Exit(1)

    if not result.success:
        console.print(result.message, style="red", markup=False, highlight=False)
        raise typer.Exit(1)
    console.print(Panel.fit(Text(result.message), title=title))


ConfigOption = typer.Option(None, "--config", help="Path to YAML config file")


@app.command()
def balance(
    exchange: str = typer.Argument(..., help="Exchange name"),
    asset: str = typer.Argument(..., help="Asset code"),
    config: Optional[Path] = ConfigOption,
) -> None:
    """Show free and locked balance for an asset."""
    command = Command(CommandType.BALANCE, f"balance {exchange} {asset}", exchange=exchange.lower(), asset=asset.upper())
    _run(command, config, "Balance")


@app.command()
def fees(
    exchange: str = typer.Argument(..., help="Exchange name"),
    asset: str = typer.Argument(..., help="Asset code"),
    config: Optional[Path] = ConfigOption,
) -> None:
    """Show withdrawal fees per network."""
    command = Command(CommandType.FEES, f"fees {exchange} {asset}", exchange=exchange.lower(), asset=asset.upper())
    _run(command, config, "Withdrawal Fees")


@app.command()
def orderbook(
    exchange: str = typer.Argument(..., help="Exchange name"),
    base: str = typer.Argument(..., help="Base asset"),
    quote: str = typer.Argument(..., help="Quote asset"),
    config: Optional[Path] = ConfigOption,
) -> None:
    """Show the top of the order book."""
    command = Command(
        CommandType.ORDERBOOK, f"orderbook {exchange} {base} {quote}",
        exchange=exchange.lower(), base=base.upper(), quote=quote.upper(),
    )
    _run(command, config, "Order Book")


def _trade_command(kind: CommandType, exchange: str, base: str, amount: str, quote: str, what: str) -> Command:
    return Command(
        kind,
        f"{kind.value} {exchange} {base} {amount} {quote}",
        exchange=exchange.lower(),
        base=base.upper(),
        amount=_amount(amount, what),
        quote=quote.upper(),
    )


@app.command()
def buyinfo(
    exchange: str = typer.Argument(..., help="Exchange name"),
    base: str = typer.Argument(..., help="Base asset"),
    quote_amount: str = typer.Argument(..., help="Quote notional to spend"),
    quote: str = typer.Argument(..., help="Quote asset"),
    config: Optional[Path] = ConfigOption,
) -> None:
    """Simulate a market buy against the live order book."""
    _run(_trade_command(CommandType.BUYINFO, exchange, base, quote_amount, quote, "Quote amount"), config, "Buy Simulation")


@app.command()
def sellinfo(
    exchange: str = typer.Argument(..., help="Exchange name"),
    base: str = typer.Argument(..., help="Base asset"),
    quote_amount: str = typer.Argument(..., help="Quote notional to receive"),
    quote: str = typer.Argument(..., help="Quote asset"),
    config: Optional[Path] = ConfigOption,
) -> None:
    """Simulate a market sell against the live order book."""
    _run(_trade_command(CommandType.SELLINFO, exchange, base, quote_amount, quote, "Quote amount"), config, "Sell Simulation")


@app.command()
def buy(
    exchange: str = typer.Argument(..., help="Exchange name"),
    base: str = typer.Argument(..., help="Base asset"),
    quote_amount: str = typer.Argument(..., help="Quote notional to spend"),
    quote: str = typer.Argument(..., help="Quote asset"),
    config: Optional[Path] = ConfigOption,
) -> None:
    """Place a market buy."""
    _run(_trade_command(CommandType.BUY, exchange, base, quote_amount, quote, "Quote amount"), config, "Market Buy")


@app.command()
def sell(
    exchange: str = typer.Argument(..., help="Exchange name"),
    base: str = typer.Argument(..., help="Base asset"),
    base_amount: str = typer.Argument(..., help="Base quantity to sell"),
    quote: str = typer.Argument(..., help="Quote asset"),
    config: Optional[Path] = ConfigOption,
) -> None:
    """Place a market sell."""
    _run(_trade_command(CommandType.SELL, exchange, base, base_amount, quote, "Base amount"), config, "Market Sell")


@app.command()
def deposit(
    exchange: str = typer.Argument(..., help="Exchange name"),
    asset: str = typer.Argument(..., help="Asset code"),
    config: Optional[Path] = ConfigOption,
) -> None:
    """List deposit networks for an asset."""
    command = Command(CommandType.DEPOSIT, f"deposit {exchange} {asset}", exchange=exchange.lower(), asset=asset.upper())
    _run(command, config, "Deposit Networks")


@app.command()
def address(
    exchange: str = typer.Argument(..., help="Exchange name"),
    asset: str = typer.Argument(..., help="Asset code"),
    network: str = typer.Argument(..., help="Network code"),
    config: Optional[Path] = ConfigOption,
) -> None:
    """Show the deposit address for an asset on a network."""
    command = Command(
        CommandType.ADDRESS, f"address {exchange} {asset} {network}",
        exchange=exchange.lower(), asset=asset.upper(), network=network.upper(),
    )
    _run(command, config, "Deposit Address")


@app.command()
def move(
    source: str = typer.Argument(..., help="Exchange to withdraw from"),
    destination: str = typer.Argument(..., help="Exchange to deposit to"),
    amount: str = typer.Argument(..., help="Amount to move"),
    asset: str = typer.Argument(..., help="Asset code"),
    config: Optional[Path] = ConfigOption,
) -> None:
    """Withdraw from one exchange and wait for the deposit on another."""
    command = Command(
        CommandType.MOVE, f"move {source} {destination} {amount} {asset}",
        exchange=source.lower(), target=destination.lower(),
        amount=_amount(amount, "Amount"), asset=asset.upper(),
    )
    _run(command, config, "Move")


@app.command()
def exchanges(config: Optional[Path] = ConfigOption) -> None:
    """List known exchanges, their capabilities and credential status."""
    from .exchanges.registry import CLIENT_CLASSES, known_exchanges

    try:
        container = init_components(config)
    except Exception as e:
        console.print(f"[red]Error:[/red] {escape(sanitize(str(e)))}", highlight=False)
        raise typer.Exit(1)

    table = Table(title="Exchanges")
    table.add_column("Exchange", style="cyan")
    table.add_column("Client", style="magenta")
    table.add_column("Credentials", style="yellow")
    table.add_column("Capabilities", style="green")
    for name in known_exchanges():
        client_class = CLIENT_CLASSES.get(name)
        caps = ", ".join(client_class.CAPABILITIES.enabled()) if client_class else ""
        table.add_row(
            name,
            "yes" if client_class else "no",
            "yes" if container.registry.has_secrets(name) else "no",
            caps,
        )
    console.print(table)


@app.command()
def repl(config: Optional[Path] = ConfigOption) -> None:
    """Start the interactive console."""
    try:
        code = start_repl(config)
    except Exception as e:
        logger.error("REPL failed: %s", e, exc_info=True)
        console.print(f"[red]Error:[/red] {escape(sanitize(str(e)))}", highlight=False)
        raise typer.Exit(1)
    if code:
        raise typer.Exit(code)


def start_repl(config: Optional[Path] = None) -> int:
    """Run the interactive console until ``exit`` or end of input."""
    try:
        return asyncio.run(_repl_async(config))
    except KeyboardInterrupt:
        console.print("Bye.")
        return 0


async def _repl_async(config: Optional[Path]) -> int:
    from .repl import Repl

    container = init_components(config)
    shell = Repl(container, console=console)
    container.dispatcher.move_service.confirm = shell.confirm
    try:
        return await shell.run()
    finally:
        await container.close()


def main():
    """CLI main entry point."""
    app()


if __name__ == "__main__":
    main()
