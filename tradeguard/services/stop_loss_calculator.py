"""Volatility-adaptive stop-loss calculation.

Two candidate stop distances are derived from recent candles:

- ATR: ``ATR(period) × multiplier`` below (long) or above (short) entry.
- Support/resistance: the nearest swing low below entry (long) or swing high
  above entry (short), pushed out by a buffer percent.

When both are available the wider distance wins, since a stop inside normal
noise is the more likely one to be hit. The result is clamped to the
configured min/max and always expressed as pure price movement; multiply by
leverage for account-level loss.

The numeric helpers are pure; only ``StopLossCalculator.calculate`` does I/O
(through the injected candle source).
"""

import logging
import math
from typing import Awaitable, Callable

import numpy as np
import pandas as pd

from tradeguard.config import RiskConfig
from tradeguard.errors import MarketDataError
from tradeguard.schemas.stop_loss import RiskAssessment, StopLossDetails, StopLossResult
from tradeguard.utils.constants import SIDES

logger = logging.getLogger(__name__)

# (symbol, timeframe, limit) -> DataFrame[open, high, low, close], oldest first
CandleSource = Callable[[str, str, int], Awaitable[pd.DataFrame]]

_NOISE_BARS = 3


# ---------------------------------------------------------------------------
# Indicators
# ---------------------------------------------------------------------------

def true_ranges(candles: pd.DataFrame) -> np.ndarray:
    """True Range for every bar after the first."""
    high = candles["high"].to_numpy(dtype=float)
    low = candles["low"].to_numpy(dtype=float)
    close = candles["close"].to_numpy(dtype=float)
    if len(close) < 2:
        return high - low
    prev_close = close[:-1]
    return np.maximum.reduce([
        high[1:] - low[1:],
        np.abs(high[1:] - prev_close),
        np.abs(low[1:] - prev_close),
    ])


def compute_atr(candles: pd.DataFrame, period: int = 14) -> float:
    """Simple-average ATR over the last ``period`` true ranges (fewer if history is short)."""
    tr = true_ranges(candles)
    if len(tr) == 0:
        return 0.0
    return float(np.mean(tr[-period:]))


def find_support(lows: np.ndarray, entry_price: float) -> float | None:
    """Nearest structural support below entry.

    Swing lows (strictly below both neighbours) are preferred; the window's
    lowest low is the fallback.
    """
    swings = [
        float(lows[i])
        for i in range(1, len(lows) - 1)
        if lows[i] < lows[i - 1] and lows[i] < lows[i + 1] and lows[i] < entry_price
    ]
    if swings:
        return max(swings)
    if len(lows) and float(np.min(lows)) < entry_price:
        return float(np.min(lows))
    return None


def find_resistance(highs: np.ndarray, entry_price: float) -> float | None:
    """Nearest structural resistance above entry. Mirror of ``find_support``."""
    swings = [
        float(highs[i])
        for i in range(1, len(highs) - 1)
        if highs[i] > highs[i - 1] and highs[i] > highs[i + 1] and highs[i] > entry_price
    ]
    if swings:
        return min(swings)
    if len(highs) and float(np.max(highs)) > entry_price:
        return float(np.max(highs))
    return None


# ---------------------------------------------------------------------------
# Assessment helpers
# ---------------------------------------------------------------------------

def classify_volatility(atr_percent: float, config: RiskConfig) -> str:
    if atr_percent < config.volatility_low_threshold:
        return "low"
    if atr_percent < config.volatility_high_threshold:
        return "medium"
    if atr_percent < config.volatility_extreme_threshold:
        return "high"
    return "extreme"


def is_noisy(candles: pd.DataFrame, atr: float, multiplier: float) -> bool:
    """True when one of the latest bars spans far more than ATR."""
    if atr <= 0 or candles.empty:
        return False
    recent = candles.tail(_NOISE_BARS)
    widest = float((recent["high"] - recent["low"]).max())
    return widest > multiplier * atr


def score_quality(
    distance: float,
    atr_distance: float | None,
    sr_distance: float | None,
    clamped: bool,
    noisy: bool,
    config: RiskConfig,
) -> int:
    """Confidence in a stop recommendation, 0–100."""
    score = 100.0

    # Agreement between the two methods
    if atr_distance is not None and sr_distance is not None:
        widest = max(atr_distance, sr_distance)
        spread = abs(atr_distance - sr_distance) / widest if widest > 0 else 0.0
        score -= 40.0 * min(spread, 1.0)
    else:
        score -= 20.0

    # Distance from the configured bounds; hugging either bound is penalised
    span = config.max_stop_loss_percent - config.min_stop_loss_percent
    position = (distance - config.min_stop_loss_percent) / span
    edge = min(position, 1.0 - position)
    score -= 30.0 * (1.0 - min(max(edge, 0.0), 0.5) / 0.5)

    if clamped:
        score -= 10.0
    if noisy:
        score -= 10.0
    return int(round(min(max(score, 0.0), 100.0)))


_RECOMMENDATIONS = {
    "low": "Low volatility: a tight stop is appropriate, watch for range breakouts.",
    "medium": "Normal volatility: use the calculated stop as is.",
    "high": "High volatility: reduce position size to keep account risk constant.",
    "extreme": "Extreme volatility: avoid opening new positions.",
}


def recommend(volatility_level: str, noisy: bool) -> str:
    text = _RECOMMENDATIONS[volatility_level]
    if noisy:
        text += " Recent bars are unusually wide relative to ATR; expect false breaks."
    return text


# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------

class StopLossCalculator:
    """Computes a StopLossResult from candles and the shared risk configuration."""

    def __init__(self, config: RiskConfig, candles: CandleSource):
        self.config = config
        self.candles = candles

    @property
    def candles_needed(self) -> int:
        return max(self.config.atr_period + 1, self.config.support_resistance_lookback)

    async def calculate(
        self,
        symbol: str,
        side: str,
        entry_price: float,
        timeframe: str = "1h",
    ) -> StopLossResult:
        _validate_inputs(side, entry_price)
        df = await self.candles(symbol, timeframe, self.candles_needed)
        if df is None or df.empty:
            raise MarketDataError(f"No {timeframe} candles available for {symbol}")
        result = self.compute(side, entry_price, df)
        logger.debug(
            f"[{symbol}] {side} stop={result.stop_loss_price:.6g} "
            f"dist={result.stop_loss_distance_percent:.2f}% method={result.method} "
            f"q={result.quality_score}"
        )
        return result

    def compute(self, side: str, entry_price: float, candles: pd.DataFrame) -> StopLossResult:
        """Pure computation over already-fetched candles."""
        _validate_inputs(side, entry_price)
        cfg = self.config

        atr = compute_atr(candles, cfg.atr_period)
        atr_percent = atr / entry_price * 100
        atr_distance = atr * cfg.atr_multiplier / entry_price * 100

        support = resistance = sr_distance = None
        if cfg.use_support_resistance_stop_loss:
            window = candles.tail(cfg.support_resistance_lookback)
            if side == "long":
                support = find_support(window["low"].to_numpy(dtype=float), entry_price)
                if support is not None:
                    stop = support * (1 - cfg.support_resistance_buffer / 100)
                    sr_distance = (entry_price - stop) / entry_price * 100
            else:
                resistance = find_resistance(window["high"].to_numpy(dtype=float), entry_price)
                if resistance is not None:
                    stop = resistance * (1 + cfg.support_resistance_buffer / 100)
                    sr_distance = (stop - entry_price) / entry_price * 100

        candidates: dict[str, float] = {}
        if cfg.use_atr_stop_loss:
            candidates["atr"] = atr_distance
        if sr_distance is not None:
            candidates["support_resistance"] = sr_distance
        if not candidates:
            # S/R only, but no level in the window
            candidates["atr"] = atr_distance

        # Wider distance wins; ties go to ATR (first inserted)
        method = max(candidates, key=candidates.get)
        raw_distance = candidates[method]
        distance = min(max(raw_distance, cfg.min_stop_loss_percent), cfg.max_stop_loss_percent)
        clamped = distance != raw_distance

        if side == "long":
            stop_price = entry_price * (1 - distance / 100)
        else:
            stop_price = entry_price * (1 + distance / 100)

        noisy = is_noisy(candles, atr, cfg.noise_range_multiplier)
        volatility_level = classify_volatility(atr_percent, cfg)
        quality = score_quality(
            distance,
            atr_distance if cfg.use_atr_stop_loss else None,
            sr_distance,
            clamped,
            noisy,
            cfg,
        )

        return StopLossResult(
            stop_loss_price=stop_price,
            stop_loss_distance_percent=distance,
            method=method,
            details=StopLossDetails(
                atr=atr,
                atr_percent=atr_percent,
                support_level=support,
                resistance_level=resistance,
                atr_distance_percent=atr_distance,
                support_resistance_distance_percent=sr_distance,
                raw_distance_percent=raw_distance,
                clamped=clamped,
            ),
            quality_score=quality,
            risk_assessment=RiskAssessment(
                volatility_level=volatility_level,
                is_noisy=noisy,
                recommendation=recommend(volatility_level, noisy),
            ),
        )


def _validate_inputs(side: str, entry_price: float):
    if side not in SIDES:
        raise ValueError(f"side must be one of {SIDES}, got {side!r}")
    if not entry_price or not math.isfinite(entry_price) or entry_price <= 0:
        raise ValueError(f"entry_price must be a positive finite number, got {entry_price}")
