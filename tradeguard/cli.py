"""CLI for batch operations.

Usage:
    python -m tradeguard.cli reconcile
    python -m tradeguard.cli init-db

``reconcile`` exits 0 when the pass completes (including when nothing needed
repair) and 1 when it could not complete.
"""

import asyncio
import logging
import sys

from tradeguard.config import settings
from tradeguard.database import create_db_and_tables, engine
from tradeguard.errors import FatalStoreError, TradeGuardError
from tradeguard.utils.logging import setup_logging

logger = logging.getLogger(__name__)

COMMANDS = ("reconcile", "init-db")


def reconcile() -> int:
    """Run one reconciliation pass and return the process exit code."""
    from tradeguard.engine.reconciler import run_reconciliation_pass

    try:
        report = asyncio.run(run_reconciliation_pass(settings, engine))
    except FatalStoreError as e:
        logger.error(f"Reconciliation aborted, ledger store failure: {e}")
        return 1
    except TradeGuardError as e:
        logger.error(f"Reconciliation aborted: {e}")
        return 1

    print(
        f"Reconciled: {len(report.orphaned)} orphaned, {report.positions_deleted} removed, "
        f"{report.confirmed_closes} confirmed closes, {report.estimated_closes} estimated closes, "
        f"{len(report.errors)} item errors"
    )
    return 0


def init_db() -> int:
    create_db_and_tables(engine)
    print(f"Ledger tables created at {settings.database_url}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if not args:
        print("Usage: python -m tradeguard.cli <command>")
        print(f"Commands: {', '.join(COMMANDS)}")
        return 1

    setup_logging()
    command = args[0]
    if command == "reconcile":
        return reconcile()
    if command == "init-db":
        return init_db()
    print(f"Unknown command: {command}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
