"""Position model: one open leveraged position per (symbol, side)."""

from datetime import datetime, timezone

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class Position(SQLModel, table=True):
    __tablename__ = "positions"
    __table_args__ = (UniqueConstraint("symbol", "side", name="uq_positions_symbol_side"),)

    id: int | None = Field(default=None, primary_key=True)
    symbol: str = Field(index=True)  # e.g. "BTC_USDT"
    side: str  # "long" or "short"
    entry_price: float
    quantity: float = Field(gt=0)
    leverage: int = Field(default=1, ge=1)
    stop_loss: float | None = None
    profit_target: float | None = None
    sl_order_id: str | None = None
    tp_order_id: str | None = None
    opened_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
