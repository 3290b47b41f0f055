"""Open-position filter: admit or reject a new entry based on its stop-loss quality.

Read-only advisory; nothing is written to the ledger or the exchange.
"""

import logging

from tradeguard.config import RiskConfig
from tradeguard.schemas.stop_loss import OpenCheckResult
from tradeguard.services.stop_loss_calculator import StopLossCalculator

logger = logging.getLogger(__name__)


class OpenPositionFilter:
    def __init__(self, config: RiskConfig, calculator: StopLossCalculator):
        self.config = config
        self.calculator = calculator

    async def check(
        self,
        symbol: str,
        side: str,
        entry_price: float,
        timeframe: str = "1h",
    ) -> OpenCheckResult:
        if not self.config.enable_stop_loss_filter:
            return OpenCheckResult(should_open=True, reason="Stop-loss filter disabled, entry allowed")

        result = await self.calculator.calculate(symbol, side, entry_price, timeframe)
        cfg = self.config
        raw = result.details.raw_distance_percent

        if result.risk_assessment.volatility_level == "extreme":
            reason = (
                f"Extreme volatility (ATR {result.details.atr_percent:.2f}% of price), "
                f"stops cannot be placed outside normal noise"
            )
        elif raw > cfg.stop_loss_filter_max_percent:
            reason = (
                f"Required stop distance {raw:.2f}% exceeds the "
                f"{cfg.stop_loss_filter_max_percent:.2f}% limit"
            )
        elif result.quality_score < cfg.stop_loss_filter_min_quality:
            reason = (
                f"Stop-loss quality {result.quality_score} below minimum "
                f"{cfg.stop_loss_filter_min_quality}"
            )
        else:
            return OpenCheckResult(
                should_open=True,
                reason=(
                    f"Stop {result.stop_loss_distance_percent:.2f}% away, "
                    f"quality {result.quality_score}, {result.risk_assessment.volatility_level} volatility"
                ),
                stop_loss_result=result,
            )

        logger.info(f"[{symbol}] {side} entry rejected: {reason}")
        return OpenCheckResult(should_open=False, reason=reason, stop_loss_result=result)
