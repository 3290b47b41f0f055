"""Position reconciliation: repair drift between the ledger and the exchange.

The ledger can fall behind the exchange: a stop-loss or take-profit fires
while nothing is watching, a position is closed by hand, or a trigger-order
update reached the exchange but its ledger write failed. This pass detects
and resolves those discrepancies.

Scenarios handled:
1. Ledger has position, exchange has matching position → OK, no action
2. Ledger has position, exchange has NO position → orphan:
   a. no active trigger orders → row deleted, nothing to reconstruct
   b. trigger order gone from the exchange → presumed fired; close event
      rebuilt from the first opposite-side fill after the order was placed,
      or estimated at the trigger price when no fill is found
   c. trigger order still resting on the exchange → left active
   The orphaned row is deleted in every case.
3. Exchange has position not tracked in the ledger → warn only

Orphans are processed one at a time, in ledger order, with no concurrent
exchange calls. Exchange query failures are logged per item and skipped;
ledger failures abort the pass.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from tradeguard.errors import FatalStoreError, RecoverableQueryError
from tradeguard.models.close_event import PositionCloseEvent
from tradeguard.models.position import Position
from tradeguard.models.price_order import PriceOrder
from tradeguard.models.trade import Trade
from tradeguard.schemas.exchange import ExchangePosition, ExchangeTrade
from tradeguard.services.exchange import ExchangeStateSource
from tradeguard.utils.constants import (
    CLOSE_REASON_STOP_LOSS,
    CLOSE_REASON_TAKE_PROFIT,
    ORDER_ACTIVE,
    ORDER_TRIGGERED,
    ORDER_TYPE_STOP_LOSS,
    TRIGGER_TYPE_EXCHANGE,
)
from tradeguard.utils.timeutils import to_utc, utc_now

logger = logging.getLogger(__name__)

DEFAULT_TRADE_HISTORY_LIMIT = 500


@dataclass
class ReconcileReport:
    """Summary of one reconciliation pass."""
    ledger_positions: int = 0
    exchange_positions: int = 0
    orphaned: list[str] = field(default_factory=list)  # "<symbol>_<side>"
    confirmed_closes: int = 0
    estimated_closes: int = 0
    orders_triggered: int = 0
    orders_still_active: int = 0
    positions_deleted: int = 0
    deleted_without_event: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def mutations(self) -> int:
        return (
            self.confirmed_closes
            + self.estimated_closes
            + self.orders_triggered
            + self.positions_deleted
        )


def position_key(symbol: str, side: str) -> str:
    return f"{symbol}_{side}"


def compute_pnl_percent(side: str, entry_price: float, close_price: float, leverage: float) -> float:
    """Leveraged PnL percent: price change × 100 × leverage."""
    if side == "long":
        price_change = (close_price - entry_price) / entry_price
    else:
        price_change = (entry_price - close_price) / entry_price
    return price_change * 100 * leverage


def find_closing_trade(
    trades: list[ExchangeTrade],
    side: str,
    created_after: datetime,
) -> ExchangeTrade | None:
    """Earliest fill strictly after ``created_after`` that reduces a ``side`` position.

    Closing a long is a sell (negative size); closing a short is a buy.
    """
    created = to_utc(created_after)
    candidates = [
        t for t in trades
        if t.timestamp > created
        and ((side == "long" and t.size < 0) or (side == "short" and t.size > 0))
    ]
    return min(candidates, key=lambda t: t.timestamp, default=None)


class PositionReconciler:
    """One reconciliation pass over the whole ledger."""

    def __init__(
        self,
        exchange: ExchangeStateSource,
        engine: Engine,
        trade_history_limit: int = DEFAULT_TRADE_HISTORY_LIMIT,
    ):
        self.exchange = exchange
        self.engine = engine
        self.trade_history_limit = trade_history_limit

    async def run(self) -> ReconcileReport:
        """Run the pass.

        Raises:
            FatalStoreError: the ledger is unreachable or a write failed.
            RecoverableQueryError: exchange positions could not be fetched;
                nothing is changed in that case.
        """
        report = ReconcileReport()

        with Session(self.engine) as session:
            try:
                ledger_positions = session.exec(select(Position)).all()
            except SQLAlchemyError as e:
                raise FatalStoreError(f"Ledger store unavailable: {e}") from e

            try:
                exchange_positions = await self.exchange.get_positions()
            except Exception as e:
                raise RecoverableQueryError(f"Failed to fetch exchange positions: {e}") from e

            open_positions = [p for p in exchange_positions if p.is_open]
            report.ledger_positions = len(ledger_positions)
            report.exchange_positions = len(open_positions)
            logger.info(
                f"Reconcile: {len(ledger_positions)} ledger positions, "
                f"{len(open_positions)} exchange positions"
            )

            exchange_index: dict[tuple[str, str], ExchangePosition] = {
                (self.exchange.extract_symbol(p.contract), p.side): p for p in open_positions
            }
            ledger_keys = {(p.symbol, p.side) for p in ledger_positions}

            for (symbol, side), ex_pos in exchange_index.items():
                if (symbol, side) not in ledger_keys:
                    logger.warning(
                        f"Reconcile: exchange has {symbol} {side} (size={ex_pos.size:.4f}) "
                        f"not tracked in the ledger. This may be a manually opened position."
                    )

            orphans = [p for p in ledger_positions if (p.symbol, p.side) not in exchange_index]
            if not orphans:
                logger.info("Reconcile: all ledger positions exist on the exchange, nothing to do")
                return report

            logger.info(f"Reconcile: {len(orphans)} orphaned positions found")
            for pos in orphans:
                report.orphaned.append(position_key(pos.symbol, pos.side))
                await self._reconcile_orphan(session, pos, report)

        logger.info(
            f"Reconcile complete: {report.positions_deleted} positions removed, "
            f"{report.confirmed_closes} confirmed / {report.estimated_closes} estimated closes, "
            f"{len(report.errors)} errors"
        )
        return report

    async def _reconcile_orphan(self, session: Session, pos: Position, report: ReconcileReport):
        key = position_key(pos.symbol, pos.side)
        logger.warning(f"[{key}] ledger position not found on exchange, probably closed")
        events_before = report.confirmed_closes + report.estimated_closes

        active_orders = self._query(
            session,
            select(PriceOrder).where(
                PriceOrder.symbol == pos.symbol,
                PriceOrder.side == pos.side,
                PriceOrder.status == ORDER_ACTIVE,
            ),
        )

        if not active_orders:
            logger.info(f"[{key}] no active trigger orders, assuming external close")
        else:
            logger.info(f"[{key}] {len(active_orders)} active trigger orders")
            try:
                contract = self._contract(pos.symbol)
                exchange_order_ids = await self._exchange_order_ids(contract)
            except RecoverableQueryError as e:
                logger.error(f"[{key}] {e}")
                report.errors.append(f"{key}: {e}")
            else:
                trades: list[ExchangeTrade] | None = None
                for order in active_orders:
                    if order.order_id in exchange_order_ids:
                        logger.info(f"[{key}] order {order.order_id} ({order.type}) still active on exchange")
                        report.orders_still_active += 1
                        continue

                    logger.info(f"[{key}] order {order.order_id} ({order.type}) gone from exchange, presumed triggered")
                    try:
                        if trades is None:
                            trades = await self._recent_trades(contract)
                        await self._record_close(session, pos, order, trades, contract, report)
                    except RecoverableQueryError as e:
                        logger.error(f"[{key}] order {order.order_id}: {e}")
                        report.errors.append(f"{key} order {order.order_id}: {e}")

                    now = utc_now()
                    order.status = ORDER_TRIGGERED
                    order.triggered_at = now
                    order.updated_at = now
                    session.add(order)
                    report.orders_triggered += 1
                    logger.info(f"[{key}] order {order.order_id} marked triggered")

        summary = f"entry={pos.entry_price}, qty={pos.quantity}, leverage={pos.leverage}"
        session.delete(pos)
        self._commit(session, key)
        report.positions_deleted += 1
        if report.confirmed_closes + report.estimated_closes == events_before:
            report.deleted_without_event += 1
            logger.warning(f"[{key}] deleted without a close event ({summary})")
        else:
            logger.info(f"[{key}] orphaned ledger position removed")

    async def _record_close(
        self,
        session: Session,
        pos: Position,
        order: PriceOrder,
        trades: list[ExchangeTrade],
        contract: str,
        report: ReconcileReport,
    ):
        """Write a close event (and a trade row when a fill was found) for a fired order."""
        key = position_key(pos.symbol, pos.side)
        quantity = abs(pos.quantity)
        fill = find_closing_trade(trades, pos.side, order.created_at)

        if fill is not None:
            close_price = fill.price
            fee = fill.fee
            close_trade_id = fill.id
            logger.info(f"[{key}] closing fill found: price={close_price}, time={fill.timestamp.isoformat()}")
        else:
            close_price = order.trigger_price
            fee = 0.0
            close_trade_id = f"estimated_{order.order_id}"
            logger.warning(f"[{key}] no closing fill found, estimating at trigger price {close_price}")

        try:
            pnl = await self.exchange.calculate_pnl(
                pos.entry_price, close_price, quantity, pos.side, contract
            )
        except Exception as e:
            raise RecoverableQueryError(f"PnL calculation failed: {e}") from e
        pnl_percent = compute_pnl_percent(pos.side, pos.entry_price, close_price, pos.leverage)
        logger.info(f"[{key}] PnL {pnl:.2f} ({pnl_percent:.2f}%)")

        session.add(PositionCloseEvent(
            symbol=pos.symbol,
            side=pos.side,
            close_reason=(
                CLOSE_REASON_STOP_LOSS if order.type == ORDER_TYPE_STOP_LOSS else CLOSE_REASON_TAKE_PROFIT
            ),
            trigger_type=TRIGGER_TYPE_EXCHANGE,
            trigger_price=order.trigger_price,
            close_price=close_price,
            entry_price=pos.entry_price,
            quantity=quantity,
            leverage=pos.leverage,
            pnl=pnl,
            pnl_percent=pnl_percent,
            fee=fee,
            trigger_order_id=order.order_id,
            close_trade_id=close_trade_id,
            order_id=order.order_id,
            created_at=utc_now(),
            processed=False,
        ))

        if fill is not None:
            session.add(Trade(
                order_id=fill.id or order.order_id,
                symbol=pos.symbol,
                side=pos.side,
                type="close",
                price=close_price,
                quantity=quantity,
                leverage=pos.leverage,
                pnl=pnl,
                fee=fee,
                timestamp=fill.timestamp,
                status="filled",
            ))
            report.confirmed_closes += 1
        else:
            report.estimated_closes += 1

    # ------------------------------------------------------------------
    # Exchange queries (recoverable per item)
    # ------------------------------------------------------------------

    def _contract(self, symbol: str) -> str:
        try:
            return self.exchange.normalize_contract(symbol)
        except Exception as e:
            raise RecoverableQueryError(f"Cannot map {symbol} to a contract: {e}") from e

    async def _exchange_order_ids(self, contract: str) -> set[str]:
        try:
            orders = await self.exchange.get_price_orders(contract)
        except Exception as e:
            raise RecoverableQueryError(f"Failed to fetch exchange trigger orders: {e}") from e
        return {o.id for o in orders}

    async def _recent_trades(self, contract: str) -> list[ExchangeTrade]:
        try:
            return await self.exchange.get_my_trades(contract, self.trade_history_limit)
        except Exception as e:
            raise RecoverableQueryError(f"Failed to fetch trade history: {e}") from e

    # ------------------------------------------------------------------
    # Ledger access (fatal)
    # ------------------------------------------------------------------

    @staticmethod
    def _query(session: Session, stmt):
        try:
            return session.exec(stmt).all()
        except SQLAlchemyError as e:
            raise FatalStoreError(f"Ledger query failed: {e}") from e

    @staticmethod
    def _commit(session: Session, key: str):
        try:
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise FatalStoreError(f"[{key}] ledger write failed: {e}") from e


async def run_reconciliation_pass(settings=None, engine: Engine | None = None, exchange=None) -> ReconcileReport:
    """Build the exchange client from settings, run one pass, and always close the client."""
    if settings is None:
        from tradeguard.config import settings
    if engine is None:
        from tradeguard.database import engine
    owns_exchange = exchange is None
    if owns_exchange:
        from tradeguard.services.lighter_client import LighterClient
        exchange = LighterClient.from_settings(settings)

    try:
        reconciler = PositionReconciler(
            exchange, engine, trade_history_limit=settings.reconcile_trade_history_limit
        )
        return await reconciler.run()
    finally:
        if owns_exchange:
            await exchange.close()
