"""Replace a live position's stop-loss / take-profit trigger orders.

The exchange mutation is authoritative and happens first. The ledger update
that follows is best effort: if it fails the error is logged and the exchange
change stands. The reconciliation pass is what brings the two back in line.
"""

import logging

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from tradeguard.errors import NotFoundError
from tradeguard.models.position import Position
from tradeguard.models.price_order import PriceOrder
from tradeguard.schemas.exchange import StopLossOrderResult
from tradeguard.schemas.stop_loss import ToolResult
from tradeguard.services.exchange import ExchangeStateSource
from tradeguard.utils.constants import (
    ORDER_ACTIVE,
    ORDER_CANCELLED,
    ORDER_TYPE_STOP_LOSS,
    ORDER_TYPE_TAKE_PROFIT,
)
from tradeguard.utils.timeutils import utc_now

logger = logging.getLogger(__name__)


async def update_position_stop_loss(
    exchange: ExchangeStateSource,
    engine: Engine,
    symbol: str,
    stop_loss: float | None = None,
    take_profit: float | None = None,
) -> ToolResult:
    """Set new trigger orders for ``symbol`` on the exchange, then mirror them in the ledger.

    Omitting ``take_profit`` keeps the ledger's current profit target;
    omitting ``stop_loss`` leaves the position without a stop.
    """
    contract = exchange.normalize_contract(symbol)

    position = next(
        (
            p for p in await exchange.get_positions()
            if p.is_open and exchange.extract_symbol(p.contract) == symbol
        ),
        None,
    )
    if position is None:
        return ToolResult.failure(
            NotFoundError(f"No open exchange position for {symbol}, cannot set stop-loss")
        )
    side = position.side

    if take_profit is None:
        take_profit = _current_profit_target(engine, symbol, side)
        if take_profit is not None:
            logger.info(f"[{symbol}] keeping existing take-profit {take_profit}")

    result = await exchange.set_position_stop_loss(contract, stop_loss, take_profit)
    partial = not result.success and (
        result.cancelled_existing or result.stop_loss_order_id or result.take_profit_order_id
    )
    if not result.success and not partial:
        return ToolResult(success=False, message=result.message, error="ExchangeError")

    # Mirror only what the exchange actually holds now
    stop_loss = stop_loss if result.stop_loss_order_id else None
    take_profit = take_profit if result.take_profit_order_id else None

    try:
        _record_trigger_orders(engine, symbol, side, abs(position.size), stop_loss, take_profit, result)
    except SQLAlchemyError as e:
        logger.error(
            f"[{symbol}] trigger orders placed on exchange but ledger update failed: {e}. "
            f"Reconciliation will repair the drift."
        )

    data = {
        "symbol": symbol,
        "side": side,
        "stop_loss": stop_loss,
        "take_profit": take_profit,
        "stop_loss_order_id": result.stop_loss_order_id,
        "take_profit_order_id": result.take_profit_order_id,
    }
    if partial:
        logger.warning(f"[{symbol}] trigger order update only partly applied: {result.message}")
        return ToolResult(
            success=False,
            message=f"Partial update, previous trigger orders were cancelled: {result.message}",
            error="ExchangeError",
            data=data,
        )
    return ToolResult(
        success=True,
        message=result.message or f"Trigger orders updated for {symbol}",
        data=data,
    )


def _current_profit_target(engine: Engine, symbol: str, side: str) -> float | None:
    try:
        with Session(engine) as session:
            pos = session.exec(
                select(Position).where(Position.symbol == symbol, Position.side == side)
            ).first()
            return pos.profit_target if pos else None
    except SQLAlchemyError as e:
        logger.warning(f"[{symbol}] could not read existing take-profit: {e}")
        return None


def _record_trigger_orders(
    engine: Engine,
    symbol: str,
    side: str,
    quantity: float,
    stop_loss: float | None,
    take_profit: float | None,
    result: StopLossOrderResult,
):
    """Cancel superseded orders, insert the new legs and update the position row."""
    now = utc_now()
    with Session(engine) as session:
        superseded = session.exec(
            select(PriceOrder).where(
                PriceOrder.symbol == symbol,
                PriceOrder.side == side,
                PriceOrder.status == ORDER_ACTIVE,
            )
        ).all()
        for order in superseded:
            order.status = ORDER_CANCELLED
            order.updated_at = now
            session.add(order)

        legs = [
            (ORDER_TYPE_STOP_LOSS, stop_loss, result.stop_loss_order_id),
            (ORDER_TYPE_TAKE_PROFIT, take_profit, result.take_profit_order_id),
        ]
        for order_type, trigger, order_id in legs:
            if trigger and order_id:
                session.add(PriceOrder(
                    order_id=order_id,
                    symbol=symbol,
                    side=side,
                    type=order_type,
                    trigger_price=trigger,
                    quantity=quantity,
                    status=ORDER_ACTIVE,
                    created_at=now,
                ))

        pos = session.exec(
            select(Position).where(Position.symbol == symbol, Position.side == side)
        ).first()
        if pos is None:
            logger.warning(f"[{symbol}] {side} has no ledger position row; only trigger orders recorded")
        else:
            pos.stop_loss = stop_loss
            pos.profit_target = take_profit
            pos.sl_order_id = result.stop_loss_order_id
            pos.tp_order_id = result.take_profit_order_id
            session.add(pos)

        session.commit()

    logger.info(
        f"[{symbol}] ledger updated: stop_loss={stop_loss} take_profit={take_profit} "
        f"orders={result.stop_loss_order_id}/{result.take_profit_order_id} "
        f"({len(superseded)} superseded)"
    )
