"""Database models."""

from tradeguard.models.position import Position
from tradeguard.models.price_order import PriceOrder
from tradeguard.models.trade import Trade
from tradeguard.models.close_event import PositionCloseEvent

__all__ = [
    "Position",
    "PriceOrder",
    "Trade",
    "PositionCloseEvent",
]
