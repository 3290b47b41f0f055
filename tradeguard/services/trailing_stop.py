"""Trailing-stop evaluation.

A fresh stop is computed with the current price as anchor. The stop may only
move in the direction that reduces risk: up for longs, down for shorts.
Nothing is placed or persisted here; replacing the order is the caller's job
(see ``stop_loss_orders.update_position_stop_loss``).
"""

import logging

from tradeguard.config import RiskConfig
from tradeguard.errors import ConfigurationError
from tradeguard.schemas.stop_loss import TrailingStopResult
from tradeguard.services.stop_loss_calculator import StopLossCalculator

logger = logging.getLogger(__name__)


def improves_stop(side: str, new_stop: float, current_stop: float) -> bool:
    """Whether ``new_stop`` tightens ``current_stop`` for a position on ``side``."""
    if side == "long":
        return new_stop > current_stop
    return new_stop < current_stop


class TrailingStopEvaluator:
    def __init__(self, config: RiskConfig, calculator: StopLossCalculator):
        self.config = config
        self.calculator = calculator

    async def evaluate(
        self,
        symbol: str,
        side: str,
        entry_price: float,
        current_price: float,
        current_stop_loss: float,
        timeframe: str = "1h",
    ) -> TrailingStopResult:
        if not self.config.enable_trailing_stop_loss:
            err = ConfigurationError("Trailing stop-loss is disabled (set ENABLE_TRAILING_STOP_LOSS=true)")
            return TrailingStopResult(success=False, reason=str(err), error=type(err).__name__)

        result = await self.calculator.calculate(symbol, side, current_price, timeframe)
        new_stop = result.stop_loss_price

        if not improves_stop(side, new_stop, current_stop_loss):
            direction = "above" if side == "long" else "below"
            return TrailingStopResult(
                should_update=False,
                reason=(
                    f"Recomputed stop {new_stop:.6g} is not {direction} current stop "
                    f"{current_stop_loss:.6g}; keeping current stop"
                ),
            )

        if side == "long":
            locked = (new_stop - entry_price) / entry_price * 100
        else:
            locked = (entry_price - new_stop) / entry_price * 100
        logger.info(
            f"[{symbol}] {side} trailing stop {current_stop_loss:.6g} -> {new_stop:.6g} "
            f"(price {current_price:.6g})"
        )
        return TrailingStopResult(
            should_update=True,
            new_stop_loss=new_stop,
            reason=(
                f"Stop can move from {current_stop_loss:.6g} to {new_stop:.6g} "
                f"({locked:+.2f}% vs entry, price only)"
            ),
        )
