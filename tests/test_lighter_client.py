"""Tests for the Lighter exchange wrapper: symbol mapping, mock mode and payload normalisation."""

import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from helpers import T0, make_settings
from tradeguard.schemas.exchange import ExchangePosition
from tradeguard.services.lighter_client import LighterClient


def _make_mock_client() -> LighterClient:
    """Create a LighterClient that is already in mock mode."""
    return LighterClient(
        host="https://mock", private_key="0xdead", api_key_index=0, account_index=7,
        markets={"ETH_USDT": 0, "BTC_USDT": 1}, mock=True,
    )


def _make_live_client() -> LighterClient:
    """Live-mode client with SDK clients replaced by mocks."""
    pytest.importorskip("lighter")
    client = _make_mock_client()
    client._mock_mode = False
    client._api_client = MagicMock()
    client._signer_client = MagicMock()
    client._signer_client.create_auth_token_with_expiry.return_value = ("token", None)
    return client


# ---------------------------------------------------------------------------
# 1. Symbol mapping
# ---------------------------------------------------------------------------

def test_normalize_contract_uses_market_index():
    client = _make_mock_client()
    assert client.normalize_contract("ETH_USDT") == "0"
    assert client.normalize_contract("BTC_USDT") == "1"


def test_normalize_unknown_symbol_raises():
    with pytest.raises(ValueError):
        _make_mock_client().normalize_contract("DOGE_USDT")


def test_extract_symbol_round_trips_known_markets():
    client = _make_mock_client()
    assert client.extract_symbol("1") == "BTC_USDT"
    assert client.extract_symbol("42") == "42"


def test_from_settings():
    client = LighterClient.from_settings(make_settings(lighter_account_index=12))
    assert client.account_index == 12
    assert client._mock_mode is True
    assert client.markets["SOL_USDT"] == 2


# ---------------------------------------------------------------------------
# 2. Mock mode
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_mock_queries_return_empty():
    client = _make_mock_client()
    assert await client.get_positions() == []
    assert await client.get_price_orders("1") == []
    assert await client.get_my_trades("1", 500) == []


@pytest.mark.asyncio
async def test_mock_set_stop_loss(caplog):
    client = _make_mock_client()
    with caplog.at_level(logging.INFO):
        result = await client.set_position_stop_loss("1", stop_loss=58000.0)
    assert result.success is True
    assert result.stop_loss_order_id.startswith("mock-sl-")
    assert result.take_profit_order_id is None
    assert "MOCK set stop" in caplog.text


@pytest.mark.asyncio
async def test_calculate_pnl_linear():
    client = _make_mock_client()
    assert await client.calculate_pnl(60000, 57950, 0.5, "long", "1") == pytest.approx(-1025.0)
    assert await client.calculate_pnl(2000, 1900, -2, "short", "0") == pytest.approx(200.0)


# ---------------------------------------------------------------------------
# 3. Live-mode normalisation (SDK mocked)
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_positions_applies_sign_and_market_zero():
    client = _make_live_client()
    account = SimpleNamespace(positions=[
        SimpleNamespace(market_id=0, position="1.5", sign=-1, avg_entry_price="3000"),
        SimpleNamespace(market_id=1, position="0.2", sign=1, avg_entry_price="60000"),
    ])
    account_api = MagicMock()
    account_api.account = AsyncMock(return_value=SimpleNamespace(accounts=[account]))

    with patch("lighter.AccountApi", return_value=account_api, create=True):
        positions = await client.get_positions()

    assert [(p.contract, p.size, p.side) for p in positions] == [
        ("0", -1.5, "short"),
        ("1", 0.2, "long"),
    ]
    account_api.account.assert_awaited_once_with(by="index", value="7")


@pytest.mark.asyncio
async def test_get_price_orders_keeps_trigger_types_only():
    client = _make_live_client()
    resp = SimpleNamespace(orders=[
        SimpleNamespace(order_index=11, type="stop-loss", trigger_price="58000", remaining_base_amount="0.5", is_ask=True),
        SimpleNamespace(order_index=12, type="limit", trigger_price=None, remaining_base_amount="0.5", is_ask=True),
        SimpleNamespace(order_index=13, type=4, trigger_price="66000", remaining_base_amount="0.5", is_ask=True),
    ])
    order_api = MagicMock()
    order_api.account_active_orders = AsyncMock(return_value=resp)

    with patch("lighter.OrderApi", return_value=order_api, create=True):
        orders = await client.get_price_orders("1")

    assert [o.id for o in orders] == ["11", "13"]
    assert orders[0].trigger_price == 58000.0
    assert orders[0].size == -0.5


@pytest.mark.asyncio
async def test_get_my_trades_signs_by_seller_account():
    client = _make_live_client()
    ts = int(T0.timestamp() * 1000)
    resp = SimpleNamespace(trades=[
        # we sold into a resting bid: taker
        SimpleNamespace(
            trade_id=1, size="0.5", price="57950", ask_account_id=7, bid_account_id=99,
            is_maker_ask=False, taker_fee=250, maker_fee=20, timestamp=ts,
        ),
        # our resting bid was hit: maker
        SimpleNamespace(
            trade_id=2, size="0.5", price="58100", ask_account_id=99, bid_account_id=7,
            is_maker_ask=False, taker_fee=250, maker_fee=20, timestamp=ts,
        ),
    ])
    order_api = MagicMock()
    order_api.trades = AsyncMock(return_value=resp)

    with patch("lighter.OrderApi", return_value=order_api, create=True):
        trades = await client.get_my_trades("1", 500)

    assert [(t.id, t.size) for t in trades] == [("1", -0.5), ("2", 0.5)]
    assert trades[0].fee == pytest.approx(250 / 1_000_000 * 57950 * 0.5)
    assert trades[1].fee == pytest.approx(20 / 1_000_000 * 58100 * 0.5)
    assert trades[0].timestamp == T0
    assert order_api.trades.await_args.kwargs["limit"] == 500


@pytest.mark.asyncio
async def test_get_my_trades_without_fee_fields():
    client = _make_live_client()
    resp = SimpleNamespace(trades=[
        SimpleNamespace(trade_id=3, size="1", price="3000", ask_account_id=7, bid_account_id=99, timestamp=int(T0.timestamp())),
    ])
    order_api = MagicMock()
    order_api.trades = AsyncMock(return_value=resp)

    with patch("lighter.OrderApi", return_value=order_api, create=True):
        trades = await client.get_my_trades("0", 10)

    assert trades[0].fee == 0.0


# ---------------------------------------------------------------------------
# 4. Trigger-order replacement (SDK mocked)
# ---------------------------------------------------------------------------

def _live_client_with_long() -> LighterClient:
    client = _make_live_client()
    client.get_positions = AsyncMock(return_value=[ExchangePosition(contract="1", size=0.5, entry_price=60000)])
    client._market_meta[1] = {"price_decimals": 1, "size_decimals": 4}
    client._signer_client.cancel_order = AsyncMock(return_value=(None, "ok", None))
    client._signer_client.create_sl_order = AsyncMock(return_value=(None, "ok", None))
    client._signer_client.create_tp_order = AsyncMock(return_value=(None, "ok", None))
    return client


def _resting(order_index, client_order_index, trigger):
    return SimpleNamespace(
        order_index=order_index, client_order_index=client_order_index, type="stop-loss",
        trigger_price=trigger, remaining_base_amount="0.5", is_ask=True,
    )


@pytest.mark.asyncio
async def test_placed_stop_is_listed_under_returned_id():
    client = _live_client_with_long()
    order_api = MagicMock()
    order_api.account_active_orders = AsyncMock(return_value=SimpleNamespace(orders=[_resting(999, 5, "58000")]))

    with patch("lighter.OrderApi", return_value=order_api, create=True):
        result = await client.set_position_stop_loss("1", stop_loss=59500.0)
        assert result.success is True

        placed = client._signer_client.create_sl_order.await_args.kwargs
        order_api.account_active_orders.return_value = SimpleNamespace(
            orders=[_resting(281474976710700, placed["client_order_index"], "59500")]
        )
        listed = await client.get_price_orders("1")

    client._signer_client.cancel_order.assert_awaited_once_with(market_index=1, order_index=999)
    assert placed["trigger_price"] == 595000
    assert placed["base_amount"] == 5000
    assert placed["is_ask"] is True
    assert result.stop_loss_order_id in {o.id for o in listed}
    assert listed[0].order_index == "281474976710700"


@pytest.mark.asyncio
async def test_rejected_take_profit_reports_placed_stop():
    client = _live_client_with_long()
    client._signer_client.create_tp_order = AsyncMock(return_value=(None, None, "invalid trigger price"))
    order_api = MagicMock()
    order_api.account_active_orders = AsyncMock(return_value=SimpleNamespace(orders=[_resting(999, 5, "58000")]))

    with patch("lighter.OrderApi", return_value=order_api, create=True):
        result = await client.set_position_stop_loss("1", stop_loss=59500.0, take_profit=67000.0)

    assert result.success is False
    assert result.cancelled_existing is True
    assert result.stop_loss_order_id is not None
    assert result.take_profit_order_id is None
    assert "take_profit order rejected" in result.message


@pytest.mark.asyncio
async def test_failure_before_cancellation_is_not_partial():
    client = _live_client_with_long()
    order_api = MagicMock()
    order_api.account_active_orders = AsyncMock(side_effect=ConnectionError("timeout"))

    with patch("lighter.OrderApi", return_value=order_api, create=True):
        result = await client.set_position_stop_loss("1", stop_loss=59500.0)

    assert result.success is False
    assert result.cancelled_existing is False
    client._signer_client.cancel_order.assert_not_awaited()
