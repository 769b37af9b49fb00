"""
Inheritor API Dependencies - Shared dependency injection.
"""

from fastapi import HTTPException, Request

from inheritor.keeper.scheduler import DisbursementScheduler
from inheritor.services.activity_store import ActivityStore, get_activity_store


async def get_store() -> ActivityStore:
    """Get the activity store."""
    return await get_activity_store()


async def get_scheduler(request: Request) -> DisbursementScheduler:
    """Get the app's scheduler or raise 503."""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(
            status_code=503,
            detail="Scheduler not available - check INHERITOR_CONTRACT_ADDRESS and INHERITOR_OPERATOR_ADDRESS",
        )
    return scheduler
