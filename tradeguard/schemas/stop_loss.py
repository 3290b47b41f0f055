"""Pydantic schemas for stop-loss calculations and tool results."""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from tradeguard.utils.constants import VALID_TIMEFRAMES

Side = Literal["long", "short"]


class StopLossDetails(BaseModel):
    atr: float | None = None
    atr_percent: float | None = None
    support_level: float | None = None
    resistance_level: float | None = None
    atr_distance_percent: float | None = None
    support_resistance_distance_percent: float | None = None
    raw_distance_percent: float  # chosen distance before clamping
    clamped: bool = False


class RiskAssessment(BaseModel):
    volatility_level: Literal["low", "medium", "high", "extreme"]
    is_noisy: bool
    recommendation: str


class StopLossResult(BaseModel):
    stop_loss_price: float
    stop_loss_distance_percent: float  # price move only, excludes leverage
    method: Literal["atr", "support_resistance"]
    details: StopLossDetails
    quality_score: int = Field(ge=0, le=100)
    risk_assessment: RiskAssessment


class OpenCheckResult(BaseModel):
    should_open: bool
    reason: str
    stop_loss_result: StopLossResult | None = None


class TrailingStopResult(BaseModel):
    success: bool = True
    should_update: bool = False
    new_stop_loss: float | None = None
    reason: str
    error: str | None = None


class ToolResult(BaseModel):
    """Caller-facing result: failures are reported, never raised."""

    success: bool
    message: str
    data: dict[str, Any] | None = None
    error: str | None = None  # error class name on failure
    should_open: bool | None = None
    should_update: bool | None = None

    @classmethod
    def failure(cls, exc: Exception, **extra) -> "ToolResult":
        return cls(success=False, message=str(exc), error=type(exc).__name__, **extra)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class _SymbolRequest(BaseModel):
    symbol: str = Field(min_length=1, max_length=32)

    @field_validator("symbol")
    @classmethod
    def _normalise_symbol(cls, value: str) -> str:
        text = value.strip().upper()
        if not text:
            raise ValueError("must not be empty")
        return text


class CalculateStopLossRequest(_SymbolRequest):
    side: Side
    entry_price: float = Field(gt=0)
    timeframe: str = "1h"

    @field_validator("timeframe")
    @classmethod
    def _validate_timeframe(cls, value: str) -> str:
        if value not in VALID_TIMEFRAMES:
            allowed = ", ".join(VALID_TIMEFRAMES)
            raise ValueError(f"must be one of: {allowed}")
        return value


class CheckOpenPositionRequest(_SymbolRequest):
    side: Side
    entry_price: float = Field(gt=0)


class TrailingStopRequest(_SymbolRequest):
    side: Side
    entry_price: float = Field(gt=0)
    current_price: float = Field(gt=0)
    current_stop_loss: float = Field(gt=0)


class UpdateStopLossRequest(_SymbolRequest):
    stop_loss: float | None = Field(default=None, gt=0)
    take_profit: float | None = Field(default=None, gt=0)
