"""System API: health check, scheduler status, manual reconciliation."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException

from tradeguard.api.deps import get_exchange
from tradeguard.config import settings
from tradeguard.database import engine
from tradeguard.errors import TradeGuardError

router = APIRouter(prefix="/api", tags=["system"])


@router.get("/system/health")
def health_check():
    return {"status": "ok"}


@router.get("/system/scheduler")
def scheduler_status():
    """Current scheduler state with job details."""
    from tradeguard.engine.scheduler import get_scheduler_status
    return get_scheduler_status()


@router.post("/reconcile")
async def reconcile(exchange=Depends(get_exchange)):
    """Run one reconciliation pass now and return its report."""
    from tradeguard.engine.reconciler import run_reconciliation_pass

    try:
        report = await run_reconciliation_pass(settings, engine, exchange)
    except TradeGuardError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return asdict(report)
