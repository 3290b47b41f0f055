"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tradeguard.config import settings
from tradeguard.database import create_db_and_tables
from tradeguard.errors import TradeGuardError
from tradeguard.utils.logging import setup_logging
from tradeguard.api import stop_loss, system

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()
    # Repair ledger drift before serving stop-loss requests
    if settings.reconcile_on_startup:
        from tradeguard.engine.reconciler import run_reconciliation_pass
        try:
            await run_reconciliation_pass(settings)
        except TradeGuardError as e:
            logger.error(f"Startup reconciliation failed: {e}")
    from tradeguard.engine.scheduler import start_scheduler, stop_scheduler
    start_scheduler()

    yield

    stop_scheduler()


app = FastAPI(
    title="TradeGuard",
    description="Position ledger reconciliation and adaptive stop-loss service",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(system.router)
app.include_router(stop_loss.router)
