"""cryptoconsole: multi-exchange execution console."""

from .settings import Settings
from .exchanges import ExchangeClient, normalize_network, normalize_symbol

__all__ = [
    "Settings",
    "ExchangeClient",
    "normalize_network",
    "normalize_symbol",
]
