"""Trade model: append-only history of fills."""

from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class Trade(SQLModel, table=True):
    __tablename__ = "trades"

    id: int | None = Field(default=None, primary_key=True)
    order_id: str = Field(index=True)
    symbol: str = Field(index=True)
    side: str
    type: str  # "open" or "close"
    price: float
    quantity: float
    leverage: int = 1
    pnl: float = 0.0
    fee: float = 0.0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: str = "filled"
