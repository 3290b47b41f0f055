"""Shared constants and defaults."""

SIDES = ("long", "short")

VALID_TIMEFRAMES = ["1m", "5m", "15m", "1h", "4h"]

# Timeframe to seconds, used to size candle requests
TIMEFRAME_SECONDS: dict[str, int] = {
    "1m": 60,
    "5m": 300,
    "15m": 900,
    "1h": 3600,
    "4h": 14400,
}

# Price order lifecycle
ORDER_ACTIVE = "active"
ORDER_TRIGGERED = "triggered"
ORDER_CANCELLED = "cancelled"

ORDER_TYPE_STOP_LOSS = "stop_loss"
ORDER_TYPE_TAKE_PROFIT = "take_profit"

CLOSE_REASON_STOP_LOSS = "stop_loss_triggered"
CLOSE_REASON_TAKE_PROFIT = "take_profit_triggered"
TRIGGER_TYPE_EXCHANGE = "exchange_order"

# Sizes at or below this are treated as a flat position
SIZE_EPSILON = 1e-10
