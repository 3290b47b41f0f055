"""Stop-loss API: calculation, entry filter, trailing evaluation and order update."""

from fastapi import APIRouter, Depends

from tradeguard.api.deps import get_tools
from tradeguard.schemas.stop_loss import (
    CalculateStopLossRequest,
    CheckOpenPositionRequest,
    ToolResult,
    TrailingStopRequest,
    UpdateStopLossRequest,
)
from tradeguard.services.stop_loss_tools import StopLossTools

router = APIRouter(prefix="/api/stop-loss", tags=["stop-loss"])


@router.post("/calculate", response_model=ToolResult)
async def calculate(body: CalculateStopLossRequest, tools: StopLossTools = Depends(get_tools)):
    """Recommended stop from ATR and support/resistance. Distance excludes leverage."""
    return await tools.calculate_stop_loss(body.symbol, body.side, body.entry_price, body.timeframe)


@router.post("/check-open", response_model=ToolResult)
async def check_open(body: CheckOpenPositionRequest, tools: StopLossTools = Depends(get_tools)):
    return await tools.check_open_position(body.symbol, body.side, body.entry_price)


@router.post("/trailing", response_model=ToolResult)
async def trailing(body: TrailingStopRequest, tools: StopLossTools = Depends(get_tools)):
    """Advisory only: reports whether the stop may move, does not touch the exchange."""
    return await tools.update_trailing_stop(
        body.symbol, body.side, body.entry_price, body.current_price, body.current_stop_loss
    )


@router.post("/update", response_model=ToolResult)
async def update(body: UpdateStopLossRequest, tools: StopLossTools = Depends(get_tools)):
    """Replace the position's trigger orders on the exchange and mirror them in the ledger."""
    return await tools.update_position_stop_loss(body.symbol, body.stop_loss, body.take_profit)
