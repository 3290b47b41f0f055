"""PriceOrder model: a stop-loss or take-profit trigger order resting on the exchange."""

from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class PriceOrder(SQLModel, table=True):
    __tablename__ = "price_orders"

    id: int | None = Field(default=None, primary_key=True)
    order_id: str = Field(index=True, unique=True)  # exchange-assigned
    symbol: str = Field(index=True)
    side: str  # side of the position the order protects
    type: str  # "stop_loss" or "take_profit"
    trigger_price: float
    order_price: float = 0.0  # 0 = market on trigger
    quantity: float
    status: str = Field(default="active", index=True)  # "active", "triggered", "cancelled"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime | None = None
    triggered_at: datetime | None = None
