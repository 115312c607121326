"""Exception hierarchy surfaced to the command layer.

Every failure raised by the core derives from ``ConsoleError`` so the
dispatcher can render it as a single ``FAILED: <message>`` line. Only
``TransportError`` is retried automatically (by the signed transport).
"""

from __future__ import annotations

from typing import Iterable


class ConsoleError(Exception):
    """Base class for all expected console failures."""

    retryable = False


class ValidationError(ConsoleError):
    """Bad input detected locally; no remote call was made."""


class MissingCredentialsError(ValidationError):
    def __init__(self, exchange: str):
        super().__init__(f"Missing API credentials for exchange: {exchange}")
        self.exchange = exchange


class UnsupportedExchangeError(ConsoleError):
    def __init__(self, name: str, detail: str | None = None):
        message = f"Unsupported exchange: {name}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.name = name


class UnsupportedOperationError(ConsoleError):
    """Capability gate rejection."""

    def __init__(self, exchange: str, operation: str):
        super().__init__(f"{operation} is not supported by {exchange}")
        self.exchange = exchange
        self.operation = operation


# Transport layer


class TransportError(ConsoleError):
    """Network failure, timeout, HTTP 429 or 5xx."""

    retryable = True

    def __init__(self, message: str, *, status: int | None = None):
        super().__init__(message)
        self.status = status


class AuthError(ConsoleError):
    """Signature or credential rejection."""

    def __init__(self, message: str, *, status: int | None = None):
        super().__init__(message)
        self.status = status


class RemoteError(ConsoleError):
    """Well-formed error response from an exchange."""

    def __init__(
        self,
        exchange: str,
        message: str,
        *,
        code: str | int | None = None,
        status: int | None = None,
    ):
        text = f"{exchange} error"
        if code not in (None, ""):
            text = f"{text} {code}"
        super().__init__(f"{text}: {message}")
        self.exchange = exchange
        self.code = code
        self.remote_message = message
        self.status = status


class ProtocolError(ConsoleError):
    """Response did not parse or had an unexpected shape."""


# Market data


class AmbiguousSymbolError(ConsoleError):
    def __init__(self, base: str, quote: str, candidates: Iterable[str]):
        self.candidates = sorted(candidates)
        super().__init__(
            f"Ambiguous symbol for {base}/{quote}. Did you mean: {', '.join(self.candidates)}?"
        )


class InsufficientLiquidityError(ConsoleError):
    def __init__(self, symbol: str, side: str = "ask"):
        super().__init__(f"No {side} liquidity available for {symbol}")
        self.symbol = symbol


# Fee and network resolution


class NoFeeDataError(ConsoleError):
    def __init__(self, exchange: str, asset: str):
        super().__init__(f"No withdrawal fee data for {exchange} {asset}")


class NoNetworkDataError(ConsoleError):
    def __init__(self, exchange: str, asset: str):
        super().__init__(f"No deposit networks available for {exchange} {asset}")


class MissingFeeForNetworkError(ConsoleError):
    def __init__(self, exchange: str, asset: str, networks: Iterable[str]):
        self.networks = sorted(networks)
        super().__init__(
            f"Missing withdrawal fee on {exchange} for {asset} network(s): {', '.join(self.networks)}"
        )


# Move orchestration


class MissingAddressError(ConsoleError):
    def __init__(self, exchange: str, asset: str, network: str):
        super().__init__(f"Missing withdrawal address for {exchange} {asset} {network}")


class MemoRequiredError(ConsoleError):
    def __init__(self, asset: str, network: str):
        super().__init__(f"Memo/tag required for {asset} on {network} but missing")


class DepositNotDetectedError(ConsoleError):
    def __init__(self, exchange: str, asset: str):
        super().__init__(f"Deposit not detected within timeout on {exchange} for {asset}")


class OperationInterruptedError(ConsoleError):
    """Operator cancelled a long-running operation."""
