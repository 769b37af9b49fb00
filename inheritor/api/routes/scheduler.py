"""
Keeper routes - scheduler status, manual trigger and cycle history.
"""

from fastapi import APIRouter, Depends, Query

from inheritor.api.dependencies import get_scheduler, get_store
from inheritor.api.models import StatusResponse
from inheritor.keeper.scheduler import DisbursementScheduler
from inheritor.services.activity_store import ActivityStore

router = APIRouter(prefix="/scheduler", tags=["Keeper"])


@router.get("/status", response_model=StatusResponse)
async def scheduler_status(scheduler: DisbursementScheduler = Depends(get_scheduler)):
    return StatusResponse(**scheduler.status())


@router.post("/run")
async def run_cycle(scheduler: DisbursementScheduler = Depends(get_scheduler)):
    """Run one cycle now. Dropped if a cycle is already in flight."""
    report = await scheduler.tick()
    if report is None:
        return {"skipped": True, "reason": "cycle already running"}
    return {"skipped": False, "report": report.to_dict()}


@router.get("/cycles")
async def recent_cycles(
    limit: int = Query(default=20, ge=1, le=100),
    store: ActivityStore = Depends(get_store),
):
    cycles = await store.recent_cycles(limit=limit)
    return {"cycles": cycles, "count": len(cycles)}
