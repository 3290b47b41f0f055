"""Test doubles and builders shared across test modules."""

from datetime import datetime, timedelta, timezone

import numpy as np
import pandas as pd

from tradeguard.config import Settings
from tradeguard.schemas.exchange import (
    ExchangePosition,
    ExchangePriceOrder,
    ExchangeTrade,
    StopLossOrderResult,
)

T0 = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Exchange
# ---------------------------------------------------------------------------

class FakeExchange:
    """In-memory Exchange State Source. Contracts are the ledger symbols themselves."""

    def __init__(self, positions=None, price_orders=None, trades=None):
        self.positions: list[ExchangePosition] = positions or []
        self.price_orders: dict[str, list[ExchangePriceOrder]] = price_orders or {}
        self.trades: dict[str, list[ExchangeTrade]] = trades or {}
        self.fail_positions = False
        self.fail_price_orders: set[str] = set()
        self.fail_trades: set[str] = set()
        self.trade_requests: list[tuple[str, int]] = []
        self.stop_loss_calls: list[tuple[str, float | None, float | None]] = []
        self.set_stop_result = StopLossOrderResult(
            success=True,
            stop_loss_order_id="sl-new",
            take_profit_order_id="tp-new",
            message="Trigger orders updated",
        )
        self.closed = False

    def normalize_contract(self, symbol: str) -> str:
        return symbol

    def extract_symbol(self, contract: str) -> str:
        return contract

    async def get_positions(self):
        if self.fail_positions:
            raise TimeoutError("positions request timed out")
        return list(self.positions)

    async def get_price_orders(self, contract):
        if contract in self.fail_price_orders:
            raise TimeoutError("price orders request timed out")
        return list(self.price_orders.get(contract, []))

    async def get_my_trades(self, contract, limit):
        self.trade_requests.append((contract, limit))
        if contract in self.fail_trades:
            raise ConnectionError("trade history unavailable")
        return list(self.trades.get(contract, []))[:limit]

    async def calculate_pnl(self, entry_price, close_price, quantity, side, contract):
        diff = close_price - entry_price if side == "long" else entry_price - close_price
        return diff * quantity

    async def set_position_stop_loss(self, contract, stop_loss=None, take_profit=None):
        self.stop_loss_calls.append((contract, stop_loss, take_profit))
        return self.set_stop_result

    async def close(self):
        self.closed = True


def sell(price: float, at: datetime, size: float = 1.0, fee: float = 1.5, trade_id: str = "t-sell") -> ExchangeTrade:
    return ExchangeTrade(id=trade_id, size=-abs(size), price=price, fee=fee, timestamp=at)


def buy(price: float, at: datetime, size: float = 1.0, fee: float = 1.5, trade_id: str = "t-buy") -> ExchangeTrade:
    return ExchangeTrade(id=trade_id, size=abs(size), price=price, fee=fee, timestamp=at)


# ---------------------------------------------------------------------------
# Risk config and candles
# ---------------------------------------------------------------------------

def make_settings(**overrides) -> Settings:
    values = dict(
        database_url="sqlite://",
        enable_scientific_stop_loss=True,
        enable_stop_loss_filter=True,
        enable_trailing_stop_loss=True,
        atr_period=14,
        atr_multiplier=2.0,
        support_resistance_lookback=20,
        support_resistance_buffer=0.1,
        use_atr_stop_loss=True,
        use_support_resistance_stop_loss=True,
        min_stop_loss_percent=0.5,
        max_stop_loss_percent=5.0,
        stop_loss_filter_min_quality=40,
        stop_loss_filter_max_percent=4.0,
        lighter_mock_mode=True,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_risk(**overrides):
    return make_settings(**overrides).risk_config()


def make_candles(closes, spread: float = 1.0) -> pd.DataFrame:
    """Bars built from ``closes``: open is the prior close, wicks extend ``spread`` beyond the body."""
    closes = np.asarray(closes, dtype=float)
    opens = np.concatenate([[closes[0]], closes[:-1]])
    index = pd.date_range(T0 - timedelta(hours=len(closes)), periods=len(closes), freq="h", tz="UTC")
    return pd.DataFrame(
        {
            "open": opens,
            "high": np.maximum(opens, closes) + spread,
            "low": np.minimum(opens, closes) - spread,
            "close": closes,
        },
        index=index,
    )


def candle_source(df: pd.DataFrame):
    """Async candle source returning ``df`` and recording requests."""
    calls = []

    async def fetch(symbol, timeframe, limit):
        calls.append((symbol, timeframe, limit))
        return df.tail(limit)

    fetch.calls = calls
    return fetch
