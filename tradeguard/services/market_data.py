"""Market data fetching.

OHLC candles come from Hyperliquid's public candle snapshot endpoint; the
stop-loss calculator consumes them as a pandas DataFrame.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache

import pandas as pd

from tradeguard.utils.constants import TIMEFRAME_SECONDS

logger = logging.getLogger(__name__)

OHLC_COLUMNS = ["open", "high", "low", "close"]


@lru_cache(maxsize=1)
def _hl_info():
    """Reusable Hyperliquid Info client (no auth needed for public data)."""
    from hyperliquid.info import Info

    return Info(skip_ws=True)


def symbol_to_ticker(symbol: str) -> str:
    """Convert a ledger symbol to a Hyperliquid ticker.

    ``BTC_USDT`` → ``BTC``; Hyperliquid uses 'kX' instead of '1000X'
    (e.g. kBONK, kPEPE).
    """
    base = symbol.upper()
    for suffix in ("_USDT", "USDT", "_USDC", "USDC", "-PERP"):
        if base.endswith(suffix):
            base = base[: -len(suffix)]
            break
    if base.startswith("1000"):
        return "k" + base[4:]
    return base


async def fetch_ohlc(symbol: str, timeframe: str, limit: int) -> pd.DataFrame:
    """Fetch the most recent ``limit`` OHLC candles for a symbol.

    Returns:
        DataFrame with open/high/low/close columns and a UTC datetime index,
        oldest first. Empty on failure.
    """
    ticker = symbol_to_ticker(symbol)
    interval_seconds = TIMEFRAME_SECONDS.get(timeframe, 3600)
    now = datetime.now(timezone.utc)
    buffer_candles = int(limit * 1.2) + 1  # 20% buffer
    start_time = now - timedelta(seconds=buffer_candles * interval_seconds)

    start_ms = int(start_time.timestamp() * 1000)
    end_ms = int(now.timestamp() * 1000)

    try:
        # candles_snapshot is synchronous, run in executor to avoid blocking
        candles = await asyncio.get_running_loop().run_in_executor(
            None, _hl_info().candles_snapshot, ticker, timeframe, start_ms, end_ms
        )
        return parse_candles(candles).tail(limit)
    except Exception as e:
        logger.error(f"Error fetching candles for {symbol} ({ticker}): {e}")
        return pd.DataFrame(columns=OHLC_COLUMNS, dtype=float)


def parse_candles(candles: list[dict]) -> pd.DataFrame:
    """Parse a Hyperliquid candles_snapshot response into an OHLC DataFrame.

    Each candle dict: {"t": 1772092800000, "s": "SOL", "i": "1h",
                       "o": "87.212", "c": "87.498", "h": "87.811", "l": "87.212", ...}
    """
    empty = pd.DataFrame(columns=OHLC_COLUMNS, dtype=float)
    if not candles:
        return empty

    records = [
        {"t": c["t"], "open": c.get("o"), "high": c.get("h"), "low": c.get("l"), "close": c.get("c")}
        for c in candles
        if c.get("c") is not None
    ]
    df = pd.DataFrame(records)
    if df.empty:
        return empty

    df["t"] = pd.to_datetime(df["t"], unit="ms", utc=True)
    for col in OHLC_COLUMNS:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df = df.set_index("t").sort_index()
    return df[OHLC_COLUMNS].dropna()
