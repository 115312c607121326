"""Order simulation and sizing."""

from .depth import simulate_buy, simulate_sell, walk_order_book
from .sizing import LotSize, round_down_quantity, validate_order

__all__ = [
    "simulate_buy",
    "simulate_sell",
    "walk_order_book",
    "LotSize",
    "round_down_quantity",
    "validate_order",
]
