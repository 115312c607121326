"""Fee, network and move services built on the exchange clients."""

from .fees import FeeResolver
from .networks import DepositNetworkResolver, select_network
from .move import MovePlan, MoveRequest, MoveResult, MoveService, MoveState

__all__ = [
    "FeeResolver",
    "DepositNetworkResolver",
    "select_network",
    "MovePlan",
    "MoveRequest",
    "MoveResult",
    "MoveService",
    "MoveState",
]
