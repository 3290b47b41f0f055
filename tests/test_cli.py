"""Tests for the batch CLI."""

from unittest.mock import AsyncMock, patch

import pytest

from tradeguard import cli
from tradeguard.engine.reconciler import ReconcileReport
from tradeguard.errors import FatalStoreError, RecoverableQueryError


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda level=None: None)


def test_no_command_prints_usage(capsys):
    assert cli.main([]) == 1
    assert "reconcile" in capsys.readouterr().out


def test_unknown_command(capsys):
    assert cli.main(["frobnicate"]) == 1
    assert "Unknown command" in capsys.readouterr().out


def test_reconcile_success_exits_zero(capsys):
    report = ReconcileReport(orphaned=["BTC_USDT_long"], positions_deleted=1, confirmed_closes=1)
    with patch("tradeguard.engine.reconciler.run_reconciliation_pass", AsyncMock(return_value=report)):
        assert cli.main(["reconcile"]) == 0
    out = capsys.readouterr().out
    assert "1 orphaned" in out
    assert "1 confirmed closes" in out


def test_reconcile_nothing_to_do_exits_zero():
    with patch("tradeguard.engine.reconciler.run_reconciliation_pass", AsyncMock(return_value=ReconcileReport())):
        assert cli.main(["reconcile"]) == 0


def test_reconcile_store_failure_exits_one():
    failing = AsyncMock(side_effect=FatalStoreError("database is locked"))
    with patch("tradeguard.engine.reconciler.run_reconciliation_pass", failing):
        assert cli.main(["reconcile"]) == 1


def test_reconcile_exchange_unreachable_exits_one():
    failing = AsyncMock(side_effect=RecoverableQueryError("timeout"))
    with patch("tradeguard.engine.reconciler.run_reconciliation_pass", failing):
        assert cli.main(["reconcile"]) == 1


def test_init_db(capsys):
    with patch.object(cli, "create_db_and_tables") as create:
        assert cli.main(["init-db"]) == 0
    create.assert_called_once_with(cli.engine)
    assert "Ledger tables created" in capsys.readouterr().out
