"""Tests for the HTTP routes, with the exchange and tools dependencies overridden."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from helpers import FakeExchange, candle_source, make_candles, make_settings
from tradeguard.api import stop_loss, system
from tradeguard.api.deps import get_exchange, get_tools
from tradeguard.schemas.exchange import ExchangePosition
from tradeguard.services.stop_loss_tools import StopLossTools


@pytest.fixture
def fake_exchange():
    return FakeExchange()


@pytest.fixture
def client(engine, fake_exchange, monkeypatch):
    monkeypatch.setattr(system, "engine", engine)
    app = FastAPI()
    app.include_router(system.router)
    app.include_router(stop_loss.router)

    tools = StopLossTools(make_settings(), fake_exchange, candle_source(make_candles([100.0] * 30)), engine)
    app.dependency_overrides[get_exchange] = lambda: fake_exchange
    app.dependency_overrides[get_tools] = lambda: tools
    return TestClient(app)


def test_health(client):
    assert client.get("/api/system/health").json() == {"status": "ok"}


def test_scheduler_status_when_stopped(client):
    body = client.get("/api/system/scheduler").json()
    assert body["running"] is False
    assert body["job_count"] == 0


def test_calculate(client):
    resp = client.post(
        "/api/stop-loss/calculate",
        json={"symbol": "btc_usdt", "side": "long", "entry_price": 100},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["symbol"] == "BTC_USDT"
    assert body["data"]["stop_loss_price"] == pytest.approx(96.0)


def test_calculate_rejects_bad_timeframe(client):
    resp = client.post(
        "/api/stop-loss/calculate",
        json={"symbol": "BTC_USDT", "side": "long", "entry_price": 100, "timeframe": "2h"},
    )
    assert resp.status_code == 422


def test_check_open(client):
    resp = client.post("/api/stop-loss/check-open", json={"symbol": "BTC_USDT", "side": "long", "entry_price": 100})
    assert resp.status_code == 200
    assert resp.json()["should_open"] in (True, False)


def test_trailing(client):
    resp = client.post(
        "/api/stop-loss/trailing",
        json={
            "symbol": "BTC_USDT", "side": "long", "entry_price": 90,
            "current_price": 100, "current_stop_loss": 88,
        },
    )
    body = resp.json()
    assert body["success"] is True
    assert body["should_update"] is True
    assert body["data"]["new_stop_loss"] == pytest.approx(96.0)


def test_update_without_position_reports_not_found(client):
    resp = client.post("/api/stop-loss/update", json={"symbol": "BTC_USDT", "stop_loss": 95})
    body = resp.json()
    assert resp.status_code == 200
    assert body["success"] is False
    assert body["error"] == "NotFoundError"


def test_update_with_position(client, fake_exchange):
    fake_exchange.positions = [ExchangePosition(contract="BTC_USDT", size=1.0)]
    resp = client.post("/api/stop-loss/update", json={"symbol": "BTC_USDT", "stop_loss": 95, "take_profit": 120})
    assert resp.json()["success"] is True
    assert fake_exchange.stop_loss_calls == [("BTC_USDT", 95.0, 120.0)]


def test_manual_reconcile(client):
    resp = client.post("/api/reconcile")
    assert resp.status_code == 200
    assert resp.json()["orphaned"] == []


def test_manual_reconcile_exchange_down(client, fake_exchange):
    fake_exchange.fail_positions = True
    resp = client.post("/api/reconcile")
    assert resp.status_code == 503
