"""Canonical exchange records.

Raw venue payloads use alternate field names (``id`` / ``orderId`` /
``order_id``, ``timestamp`` / ``create_time``) and encode sizes as strings or
unsigned amounts with a separate side. Everything is converted here so the
reconciliation engine and the stop-loss tools only ever see these models.
"""

from datetime import datetime

from pydantic import BaseModel, field_validator

from tradeguard.utils.constants import SIZE_EPSILON
from tradeguard.utils.timeutils import to_utc


def _pick(raw, *names, default=None):
    """Return the first present, non-None field among ``names`` from a dict or object."""
    for name in names:
        if isinstance(raw, dict):
            value = raw.get(name)
        else:
            value = getattr(raw, name, None)
        if value is not None:
            return value
    return default


def _to_float(value, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    return float(value)


def _signed_size(raw) -> float:
    """Signed size: negative for sells/shorts, positive for buys/longs."""
    size = _to_float(_pick(raw, "size", "amount", "qty", "base_amount"))
    side = _pick(raw, "side", "direction")
    if isinstance(side, str) and size > 0 and side.lower() in ("sell", "ask", "short"):
        return -size
    return size


class ExchangePosition(BaseModel):
    contract: str
    size: float  # signed
    entry_price: float = 0.0
    mark_price: float | None = None

    @property
    def side(self) -> str:
        return "long" if self.size > 0 else "short"

    @property
    def is_open(self) -> bool:
        return abs(self.size) > SIZE_EPSILON

    @classmethod
    def from_raw(cls, raw) -> "ExchangePosition":
        mark = _pick(raw, "mark_price", "markPrice")
        return cls(
            contract=str(_pick(raw, "contract", "symbol", "market", "market_index", default="")),
            size=_signed_size(raw),
            entry_price=_to_float(_pick(raw, "entry_price", "entryPrice", "avg_entry_price")),
            mark_price=_to_float(mark) if mark is not None else None,
        )


class ExchangePriceOrder(BaseModel):
    id: str  # the id we placed the order under; matches PriceOrder.order_id
    contract: str = ""
    trigger_price: float | None = None
    size: float = 0.0
    order_index: str | None = None  # venue-assigned handle, used for cancellation

    @field_validator("id")
    @classmethod
    def _require_id(cls, value: str) -> str:
        if not value:
            raise ValueError("price order id must not be empty")
        return value

    @classmethod
    def from_raw(cls, raw) -> "ExchangePriceOrder":
        trigger = _pick(raw, "trigger_price", "triggerPrice", "stopPrice")
        order_index = _pick(raw, "order_index")
        return cls(
            id=str(_pick(raw, "id", "orderId", "order_id", "order_index", default="")),
            contract=str(_pick(raw, "contract", "symbol", "market_index", default="")),
            trigger_price=_to_float(trigger) if trigger is not None else None,
            size=_signed_size(raw),
            order_index=str(order_index) if order_index is not None else None,
        )


class ExchangeTrade(BaseModel):
    id: str = ""
    contract: str = ""
    size: float  # signed: negative = sell
    price: float
    fee: float = 0.0
    timestamp: datetime

    @field_validator("timestamp", mode="before")
    @classmethod
    def _normalise_timestamp(cls, value):
        return to_utc(value)

    @classmethod
    def from_raw(cls, raw) -> "ExchangeTrade":
        return cls(
            id=str(_pick(raw, "id", "trade_id", "tradeId", default="")),
            contract=str(_pick(raw, "contract", "symbol", "market_id", default="")),
            size=_signed_size(raw),
            price=_to_float(_pick(raw, "price", "fill_price")),
            fee=_to_float(_pick(raw, "fee", "commission")),
            timestamp=_pick(raw, "timestamp", "create_time_ms", "create_time", "time", default=0),
        )


class StopLossOrderResult(BaseModel):
    success: bool
    stop_loss_order_id: str | None = None
    take_profit_order_id: str | None = None
    message: str = ""
    # Previous trigger orders were cancelled on the exchange, even if a new leg then failed
    cancelled_existing: bool = False
