from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .logging import configure_logging, sanitize

logger = logging.getLogger(__name__)

LOG_DIR = Path("logs")


def main(argv: list[str] | None = None) -> int:
    """Entry point for the ``cryptoconsole`` script.

    With no arguments, or with ``--config`` only, the interactive console is
    started. Anything else is handed to the one-shot Typer commands, e.g.
    ``cryptoconsole balance binance USDT``.
    """
    args = sys.argv[1:] if argv is None else list(argv)
    configure_logging(LOG_DIR)

    if not args or args[0].startswith("--config"):
        return _run_console_mode(args)
    return _run_command_mode(args)


def _run_console_mode(argv: list[str]) -> int:
    parser = argparse.ArgumentParser(prog="cryptoconsole", description="Interactive multi-exchange console")
    parser.add_argument("--config", type=Path, default=None, help="Path to the YAML config file")
    args = parser.parse_args(argv)

    from .cli import start_repl

    logger.info("Starting console (config=%s)", args.config or "default")
    try:
        return start_repl(args.config)
    except Exception as e:
        logger.error("Console stopped: %s", e, exc_info=True)
        print(f"Error: {sanitize(str(e))}", file=sys.stderr)
        return 1


def _run_command_mode(argv: list[str]) -> int:
    from .cli import run_cli

    logger.debug("Running command: %s", argv[0])
    try:
        run_cli(argv)
    except SystemExit as e:
        if e.code is None or isinstance(e.code, int):
            return e.code or 0
        return 1
    except Exception as e:
        logger.error("Command %s failed: %s", argv[0], e, exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
