"""Exchange adapters and connectivity layer."""

from .protocol import (
    Balance,
    Capabilities,
    DepositAddress,
    ExchangeClient,
    ExchangeTime,
    FillSimulation,
    OrderBook,
    OrderResult,
    Side,
    WithdrawalFees,
    WithdrawResult,
)
from .normalization import canonical_exchange_name, normalize_network, normalize_symbol
from .transport import RetryPolicy, SignedTransport, SignVariant
from .base import BaseExchangeClient
from .registry import CLIENT_CLASSES, ExchangeRegistry, create_exchange_client

__all__ = [
    "Balance",
    "Capabilities",
    "DepositAddress",
    "ExchangeClient",
    "ExchangeTime",
    "FillSimulation",
    "OrderBook",
    "OrderResult",
    "Side",
    "WithdrawalFees",
    "WithdrawResult",
    "canonical_exchange_name",
    "normalize_network",
    "normalize_symbol",
    "RetryPolicy",
    "SignedTransport",
    "SignVariant",
    "BaseExchangeClient",
    "CLIENT_CLASSES",
    "ExchangeRegistry",
    "create_exchange_client",
]
