"""
Health and status endpoints.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter

from inheritor import __version__
from inheritor.config.settings import settings
from inheritor.services.activity_store import get_activity_store
from inheritor.services.ledger_client import get_ledger_client

router = APIRouter(tags=["System"])


@router.get("/health")
async def health_check() -> Dict[str, Any]:
    """Store and ledger reachability."""
    store_connected = False
    try:
        store = await get_activity_store()
        store_connected = await store.ping()
    except Exception:
        pass

    ledger_connected = False
    if settings.ledger_configured:
        ledger_connected = await get_ledger_client().is_connected()

    return {
        "status": "healthy" if store_connected else "degraded",
        "version": __version__,
        "store_connected": store_connected,
        "ledger_configured": settings.ledger_configured,
        "ledger_connected": ledger_connected,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
