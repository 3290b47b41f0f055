"""Exchange State Source contract.

The reconciliation engine and the stop-loss tools depend only on this
protocol. Implementations must return canonical records from
``tradeguard.schemas.exchange``; raw venue payloads never cross this line.
"""

from typing import Protocol

from tradeguard.schemas.exchange import (
    ExchangePosition,
    ExchangePriceOrder,
    ExchangeTrade,
    StopLossOrderResult,
)


class ExchangeStateSource(Protocol):
    async def get_positions(self) -> list[ExchangePosition]:
        """All positions on the account, including flat ones."""
        ...

    async def get_price_orders(self, contract: str) -> list[ExchangePriceOrder]:
        """Currently active trigger orders for ``contract``."""
        ...

    async def get_my_trades(self, contract: str, limit: int) -> list[ExchangeTrade]:
        """Most recent account fills for ``contract``, at most ``limit``."""
        ...

    async def calculate_pnl(
        self,
        entry_price: float,
        close_price: float,
        quantity: float,
        side: str,
        contract: str,
    ) -> float:
        """Realised PnL in quote currency, applying contract multipliers."""
        ...

    async def set_position_stop_loss(
        self,
        contract: str,
        stop_loss: float | None = None,
        take_profit: float | None = None,
    ) -> StopLossOrderResult:
        """Replace the position's trigger orders. Omitted legs are cancelled."""
        ...

    def normalize_contract(self, symbol: str) -> str:
        ...

    def extract_symbol(self, contract: str) -> str:
        ...

    async def close(self) -> None:
        ...
