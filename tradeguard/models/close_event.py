"""PositionCloseEvent model: one write-once record per reconciled closure."""

from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class PositionCloseEvent(SQLModel, table=True):
    __tablename__ = "position_close_events"

    id: int | None = Field(default=None, primary_key=True)
    symbol: str = Field(index=True)
    side: str
    close_reason: str  # "stop_loss_triggered" or "take_profit_triggered"
    trigger_type: str
    trigger_price: float
    close_price: float
    entry_price: float
    quantity: float
    leverage: int
    pnl: float
    pnl_percent: float
    fee: float = 0.0
    trigger_order_id: str
    close_trade_id: str  # "estimated_<order_id>" when no fill was found
    order_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    processed: bool = False
