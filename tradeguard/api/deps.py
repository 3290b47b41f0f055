"""Shared FastAPI dependencies."""

from fastapi import Depends

from tradeguard.config import settings
from tradeguard.database import engine
from tradeguard.services.lighter_client import LighterClient
from tradeguard.services.stop_loss_tools import StopLossTools


async def get_exchange():
    """Yield an exchange client for the request, closing it afterwards."""
    client = LighterClient.from_settings(settings)
    try:
        yield client
    finally:
        await client.close()


def get_tools(exchange: LighterClient = Depends(get_exchange)) -> StopLossTools:
    from tradeguard.services.market_data import fetch_ohlc

    return StopLossTools(settings, exchange, fetch_ohlc, engine)
