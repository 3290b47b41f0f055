"""Caller-facing stop-loss operations.

Each method returns a ``ToolResult``: disabled features, missing positions
and unexpected failures are all reported as ``success=False`` with a
message, never raised to the caller.
"""

import logging

from sqlalchemy.engine import Engine

from tradeguard.config import Settings
from tradeguard.errors import ConfigurationError
from tradeguard.schemas.stop_loss import StopLossResult, ToolResult
from tradeguard.services.exchange import ExchangeStateSource
from tradeguard.services.open_filter import OpenPositionFilter
from tradeguard.services.stop_loss_calculator import CandleSource, StopLossCalculator
from tradeguard.services.stop_loss_orders import update_position_stop_loss
from tradeguard.services.trailing_stop import TrailingStopEvaluator

logger = logging.getLogger(__name__)


def format_price(value: float | None) -> str:
    """Format a price with precision suited to its magnitude."""
    if value is None:
        return "-"
    magnitude = abs(value)
    if magnitude >= 1000:
        return f"{value:,.2f}"
    if magnitude >= 1:
        return f"{value:.4f}"
    return f"{value:.8f}".rstrip("0")


def _summary(result: StopLossResult) -> dict:
    return {
        "stop_loss_price": result.stop_loss_price,
        "stop_loss_distance_percent": round(result.stop_loss_distance_percent, 2),
        "quality_score": result.quality_score,
        "volatility_level": result.risk_assessment.volatility_level,
    }


class StopLossTools:
    def __init__(
        self,
        settings: Settings,
        exchange: ExchangeStateSource,
        candles: CandleSource,
        engine: Engine,
    ):
        self.risk = settings.risk_config()
        self.exchange = exchange
        self.engine = engine
        self.calculator = StopLossCalculator(self.risk, candles)
        self.open_filter = OpenPositionFilter(self.risk, self.calculator)
        self.trailing = TrailingStopEvaluator(self.risk, self.calculator)

    async def calculate_stop_loss(
        self,
        symbol: str,
        side: str,
        entry_price: float,
        timeframe: str = "1h",
    ) -> ToolResult:
        if not self.risk.enable_scientific_stop_loss:
            return ToolResult.failure(ConfigurationError(
                "Scientific stop-loss is disabled (set ENABLE_SCIENTIFIC_STOP_LOSS=true)"
            ))
        try:
            result = await self.calculator.calculate(symbol, side, entry_price, timeframe)
        except Exception as e:
            logger.error(f"[{symbol}] stop-loss calculation failed: {e}")
            return ToolResult.failure(e)

        distance = result.stop_loss_distance_percent
        return ToolResult(
            success=True,
            data={"symbol": symbol, "side": side, "entry_price": entry_price, **result.model_dump()},
            message=(
                f"Stop-loss calculated\n"
                f"- entry: {format_price(entry_price)}\n"
                f"- stop: {format_price(result.stop_loss_price)}\n"
                f"- distance: {distance:.2f}% (price move, excludes leverage)\n"
                f"- method: {result.method}\n"
                f"- volatility: {result.risk_assessment.volatility_level}\n"
                f"- quality: {result.quality_score}/100\n"
                f"- advice: {result.risk_assessment.recommendation}\n"
                f"Account loss at stop = {distance:.2f}% x leverage"
            ),
        )

    async def check_open_position(self, symbol: str, side: str, entry_price: float) -> ToolResult:
        try:
            check = await self.open_filter.check(symbol, side, entry_price)
        except Exception as e:
            logger.error(f"[{symbol}] open-position check failed: {e}")
            return ToolResult.failure(e, should_open=False)

        return ToolResult(
            success=True,
            should_open=check.should_open,
            data=_summary(check.stop_loss_result) if check.stop_loss_result else None,
            message=check.reason if check.should_open else f"Entry not advised: {check.reason}",
        )

    async def update_trailing_stop(
        self,
        symbol: str,
        side: str,
        entry_price: float,
        current_price: float,
        current_stop_loss: float,
    ) -> ToolResult:
        try:
            outcome = await self.trailing.evaluate(
                symbol, side, entry_price, current_price, current_stop_loss
            )
        except Exception as e:
            logger.error(f"[{symbol}] trailing stop evaluation failed: {e}")
            return ToolResult.failure(e)

        if not outcome.success:
            return ToolResult(success=False, message=outcome.reason, error=outcome.error)
        if not outcome.should_update:
            return ToolResult(success=True, should_update=False, message=outcome.reason)

        improvement = abs(outcome.new_stop_loss - current_stop_loss) / current_stop_loss * 100
        return ToolResult(
            success=True,
            should_update=True,
            data={
                "old_stop_loss": current_stop_loss,
                "new_stop_loss": outcome.new_stop_loss,
                "improvement_percent": round(improvement, 2),
            },
            message=(
                f"{outcome.reason}\n"
                f"- old stop: {format_price(current_stop_loss)}\n"
                f"- new stop: {format_price(outcome.new_stop_loss)}\n"
                f"Call update_position_stop_loss to move the exchange order"
            ),
        )

    async def update_position_stop_loss(
        self,
        symbol: str,
        stop_loss: float | None = None,
        take_profit: float | None = None,
    ) -> ToolResult:
        try:
            return await update_position_stop_loss(
                self.exchange, self.engine, symbol, stop_loss, take_profit
            )
        except Exception as e:
            logger.error(f"[{symbol}] stop-loss update failed: {e}")
            return ToolResult.failure(e)
