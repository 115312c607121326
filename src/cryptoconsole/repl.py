"""Interactive read-eval-print loop over the command dispatcher."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import TYPE_CHECKING, Awaitable, Callable

from rich.console import Console

from .commands import CommandType, parse_command

if TYPE_CHECKING:
    from .di import AppContainer
    from .services.move import MovePlan

logger = logging.getLogger(__name__)

BANNER = "Crypto Console REPL. Type 'help' for commands, 'exit' to quit."
PROMPT = "> "

LineReader = Callable[[str], Awaitable["str | None"]]


async def read_line(prompt: str) -> str | None:
    """Read one line from stdin in a worker thread; None at end of input."""
    try:
        return await asyncio.to_thread(input, prompt)
    except EOFError:
        return None


class Repl:
    """One command at a time; Ctrl-C during a command sets the cancel event."""

    def __init__(
        self,
        container: "AppContainer",
        *,
        console: Console | None = None,
        reader: LineReader = read_line,
    ):
        self.container = container
        self.console = console or Console()
        self.reader = reader

    async def confirm(self, plan: "MovePlan") -> bool:
        self.console.print("Transfer details:")
        for line in plan.describe():
            self.console.print(f"  {line}", markup=False)
        answer = await self.reader("Approve transfer? [y/N]: ")
        return bool(answer) and answer.strip().lower() in ("y", "yes")

    def _install_interrupt(self, cancel: asyncio.Event) -> bool:
        if sys.platform == "win32":
            return False
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, cancel.set)
        except (NotImplementedError, RuntimeError):
            return False
        return True

    def _remove_interrupt(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            logger.debug("SIGINT handler could not be removed")

    async def run(self) -> int:
        self.console.print(BANNER, markup=False)
        dispatcher = self.container.dispatcher
        while True:
            line = await self.reader(PROMPT)
            if line is None:
                break
            command = parse_command(line)
            if command.type is CommandType.INVALID and command.error == "Empty command":
                continue
            if command.type is CommandType.EXIT:
                break

            cancel = self.container.cancel
            cancel.clear()
            installed = self._install_interrupt(cancel)
            try:
                result = await dispatcher.execute(command, cancel=cancel)
            finally:
                if installed:
                    self._remove_interrupt()
            style = None if result.success else "red"
            self.console.print(result.message, style=style, markup=False)

        self.console.print("Bye.", markup=False)
        return 0
