"""Lighter DEX client wrapper implementing the Exchange State Source.

Wraps the lighter-sdk async API for position, trigger-order and fill queries
and for replacing a position's stop-loss / take-profit orders. Contracts are
Lighter market indexes rendered as strings; ``markets`` maps ledger symbols
(e.g. ``BTC_USDT``) to those indexes.
"""

import logging
import time

from tradeguard.schemas.exchange import (
    ExchangePosition,
    ExchangePriceOrder,
    ExchangeTrade,
    StopLossOrderResult,
)

logger = logging.getLogger(__name__)

# Lighter order types: 2/3 stop-loss (market/limit), 4/5 take-profit (market/limit)
_TRIGGER_ORDER_TYPES = {
    2, 3, 4, 5,
    "stop-loss", "stop-loss-limit", "take-profit", "take-profit-limit",
}

# Worst acceptable fill when a trigger fires, as a fraction of trigger price
_TRIGGER_SLIPPAGE = 0.05

# Trade maker_fee / taker_fee are rates in millionths of notional
_FEE_RATE_SCALE = 1_000_000


class LighterClient:
    """Wrapper around the Lighter SDK for ledger reconciliation and stop management."""

    def __init__(
        self,
        host: str,
        private_key: str,
        api_key_index: int,
        account_index: int,
        markets: dict[str, int] | None = None,
        mock: bool = False,
    ):
        self.host = host
        self.private_key = private_key
        self.api_key_index = api_key_index
        self.account_index = account_index
        self.markets = dict(markets or {})
        self._symbols = {str(idx): sym for sym, idx in self.markets.items()}
        self._api_client = None
        self._signer_client = None
        self._mock_mode = mock
        self._market_meta: dict[int, dict] = {}  # market_index → {price_decimals, size_decimals}

    @classmethod
    def from_settings(cls, settings) -> "LighterClient":
        return cls(
            host=settings.lighter_host,
            private_key=settings.lighter_private_key,
            api_key_index=settings.lighter_api_key_index,
            account_index=settings.lighter_account_index,
            markets=settings.lighter_markets,
            mock=settings.lighter_mock_mode,
        )

    async def _ensure_clients(self):
        """Lazily initialize Lighter SDK clients."""
        if self._mock_mode or self._api_client is not None:
            return

        import lighter

        try:
            config = lighter.Configuration(host=self.host)
            self._api_client = lighter.ApiClient(configuration=config)
            self._signer_client = lighter.SignerClient(
                url=self.host,
                account_index=self.account_index,
                api_private_keys={self.api_key_index: self.private_key},
            )
            logger.info("Lighter SDK clients initialized")
        except Exception as e:
            logger.error(f"Failed to initialize Lighter clients: {e}")
            raise

    async def _get_market_meta(self, market_index: int) -> dict:
        """Fetch and cache price/size decimal info for a market."""
        if market_index in self._market_meta:
            return self._market_meta[market_index]

        import lighter
        order_api = lighter.OrderApi(self._api_client)
        resp = await order_api.order_book_details(market_id=market_index)
        for book in (resp.order_book_details or []) + (resp.spot_order_book_details or []):
            if book.market_id == market_index:
                meta = {
                    "price_decimals": int(book.supported_price_decimals),
                    "size_decimals": int(book.supported_size_decimals),
                }
                self._market_meta[market_index] = meta
                logger.info(f"Market {market_index} meta: {meta}")
                return meta
        raise ValueError(f"Could not find market metadata for market_index={market_index}")

    def _auth_token(self) -> str:
        token, error = self._signer_client.create_auth_token_with_expiry()
        if error is not None:
            raise RuntimeError(f"Lighter auth token error: {error}")
        return token

    # ------------------------------------------------------------------
    # Symbol mapping
    # ------------------------------------------------------------------

    def normalize_contract(self, symbol: str) -> str:
        if symbol not in self.markets:
            raise ValueError(f"No Lighter market configured for {symbol}")
        return str(self.markets[symbol])

    def extract_symbol(self, contract: str) -> str:
        return self._symbols.get(str(contract), str(contract))

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    async def get_positions(self) -> list[ExchangePosition]:
        """Get all positions on the account as canonical records (signed size)."""
        await self._ensure_clients()
        if self._mock_mode:
            return []
        import lighter

        account_api = lighter.AccountApi(self._api_client)
        resp = await account_api.account(
            by="index", value=str(self.account_index)
        )
        # Unwrap DetailedAccounts → DetailedAccount
        if hasattr(resp, "accounts") and resp.accounts:
            account = resp.accounts[0]
        else:
            account = resp
        positions = []
        for pos in getattr(account, "positions", None) or []:
            size = float(getattr(pos, "position", None) or getattr(pos, "size", 0) or 0)
            sign = getattr(pos, "sign", None)
            if sign is not None:
                size = abs(size) * (1 if int(sign) >= 0 else -1)
            market = getattr(pos, "market_id", None)
            if market is None:
                market = getattr(pos, "market_index", 0)
            positions.append(ExchangePosition(
                contract=str(int(market)),
                size=size,
                entry_price=float(getattr(pos, "avg_entry_price", None) or getattr(pos, "entry_price", 0) or 0),
            ))
        return positions

    async def get_price_orders(self, contract: str) -> list[ExchangePriceOrder]:
        """Active stop-loss / take-profit orders for a market."""
        await self._ensure_clients()
        if self._mock_mode:
            return []
        import lighter

        order_api = lighter.OrderApi(self._api_client)
        resp = await order_api.account_active_orders(
            account_index=self.account_index,
            market_id=int(contract),
            auth=self._auth_token(),
        )
        orders = []
        for order in getattr(resp, "orders", None) or []:
            if getattr(order, "type", None) not in _TRIGGER_ORDER_TYPES:
                continue
            # Orders are placed under our client_order_index, so that is the id the
            # ledger holds; orders placed elsewhere fall back to the venue index
            order_index = getattr(order, "order_index", None)
            orders.append(ExchangePriceOrder.from_raw({
                "id": getattr(order, "client_order_index", None) or order_index,
                "order_index": order_index,
                "contract": contract,
                "trigger_price": getattr(order, "trigger_price", None),
                "size": getattr(order, "remaining_base_amount", None) or getattr(order, "initial_base_amount", None),
                "side": "sell" if getattr(order, "is_ask", False) else "buy",
            }))
        return orders

    async def get_my_trades(self, contract: str, limit: int) -> list[ExchangeTrade]:
        """Recent account fills for a market, newest first."""
        await self._ensure_clients()
        if self._mock_mode:
            return []
        import lighter

        order_api = lighter.OrderApi(self._api_client)
        resp = await order_api.trades(
            sort_by="timestamp",
            sort_dir="desc",
            limit=limit,
            account_index=self.account_index,
            market_id=int(contract),
            auth=self._auth_token(),
        )
        trades = []
        for t in getattr(resp, "trades", None) or []:
            is_seller = int(getattr(t, "ask_account_id", -1)) == self.account_index
            size = float(getattr(t, "size", 0) or 0)
            price = float(getattr(t, "price", 0) or 0)
            # is_maker_ask says which side rested; we paid maker fee if that was our side
            is_maker = is_seller == bool(getattr(t, "is_maker_ask", False))
            rate = getattr(t, "maker_fee" if is_maker else "taker_fee", None) or 0
            trades.append(ExchangeTrade.from_raw({
                "trade_id": getattr(t, "trade_id", None),
                "contract": contract,
                "size": size,
                "side": "sell" if is_seller else "buy",
                "price": price,
                "fee": float(rate) / _FEE_RATE_SCALE * price * abs(size),
                "timestamp": getattr(t, "timestamp", 0),
            }))
        return trades

    async def calculate_pnl(
        self,
        entry_price: float,
        close_price: float,
        quantity: float,
        side: str,
        contract: str,
    ) -> float:
        """Linear perpetual PnL; Lighter quotes sizes in base units so the multiplier is 1."""
        diff = close_price - entry_price if side == "long" else entry_price - close_price
        return diff * abs(quantity)

    # ------------------------------------------------------------------
    # Trigger order management
    # ------------------------------------------------------------------

    async def cancel_order(self, market_index: int, order_id: str) -> bool:
        """Cancel an order."""
        await self._ensure_clients()
        if self._mock_mode:
            logger.info(f"MOCK cancel: market={market_index}, order={order_id}")
            return True
        try:
            _cancel, resp, error = await self._signer_client.cancel_order(
                market_index=market_index, order_index=int(order_id)
            )
            if error is not None:
                logger.error(f"Cancel rejected: {error} | resp={resp}")
                return False
            return True
        except Exception as e:
            logger.error(f"Cancel failed: {e}")
            return False

    async def set_position_stop_loss(
        self,
        contract: str,
        stop_loss: float | None = None,
        take_profit: float | None = None,
    ) -> StopLossOrderResult:
        """Replace the position's trigger orders with new stop-loss / take-profit legs.

        Existing trigger orders on the market are cancelled first; legs passed
        as None are left cancelled.
        """
        await self._ensure_clients()
        market_index = int(contract)
        client_order_index = int(time.time() * 1000) % (2**31)

        if self._mock_mode:
            logger.info(
                f"MOCK set stop: market={market_index}, stop_loss={stop_loss}, take_profit={take_profit}"
            )
            return StopLossOrderResult(
                success=True,
                stop_loss_order_id=f"mock-sl-{client_order_index}" if stop_loss else None,
                take_profit_order_id=f"mock-tp-{client_order_index + 1}" if take_profit else None,
                message="mock trigger orders placed",
                cancelled_existing=True,
            )

        try:
            cancelled = False
            sl_id = tp_id = None
            position = next(
                (p for p in await self.get_positions() if p.contract == contract and p.is_open),
                None,
            )
            if position is None:
                return StopLossOrderResult(success=False, message=f"No open position on market {market_index}")

            for order in await self.get_price_orders(contract):
                await self.cancel_order(market_index, order.order_index or order.id)
            cancelled = True

            meta = await self._get_market_meta(market_index)
            amount_int = int(round(abs(position.size) * 10 ** meta["size_decimals"]))
            is_ask = position.side == "long"  # closing a long sells

            legs = [
                ("stop_loss", stop_loss, self._signer_client.create_sl_order),
                ("take_profit", take_profit, self._signer_client.create_tp_order),
            ]
            for offset, (leg, trigger, create) in enumerate(legs):
                if not trigger:
                    continue
                worst = trigger * (1 - _TRIGGER_SLIPPAGE) if is_ask else trigger * (1 + _TRIGGER_SLIPPAGE)
                order_index = client_order_index + offset
                _order, resp, error = await create(
                    market_index=market_index,
                    client_order_index=order_index,
                    base_amount=amount_int,
                    trigger_price=int(round(trigger * 10 ** meta["price_decimals"])),
                    price=int(round(worst * 10 ** meta["price_decimals"])),
                    is_ask=is_ask,
                    reduce_only=True,
                )
                if error is not None:
                    logger.error(f"{leg} order rejected: {error}")
                    return StopLossOrderResult(
                        success=False,
                        stop_loss_order_id=sl_id,
                        message=f"{leg} order rejected: {error}",
                        cancelled_existing=True,
                    )
                if leg == "stop_loss":
                    sl_id = str(order_index)
                else:
                    tp_id = str(order_index)
                logger.info(f"{leg} order placed: {order_index} trigger={trigger}")

            return StopLossOrderResult(
                success=True,
                stop_loss_order_id=sl_id,
                take_profit_order_id=tp_id,
                message=f"Trigger orders updated on market {market_index}",
                cancelled_existing=True,
            )
        except Exception as e:
            logger.error(f"Set stop-loss failed: {e}")
            return StopLossOrderResult(
                success=False, message=str(e), stop_loss_order_id=sl_id, cancelled_existing=cancelled
            )

    async def close(self):
        """Close SDK clients."""
        if self._api_client and not self._mock_mode:
            try:
                await self._api_client.close()
            except Exception as e:
                logger.debug(f"Ignoring error while closing Lighter client: {e}")
        self._api_client = None
        self._signer_client = None
        self._market_meta = {}
