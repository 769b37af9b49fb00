"""
Wallet routes - activity ingress and registration data.

POST /wallets/activity               - record activity (upsert)
GET  /wallets/{wallet_id}            - record, limits and nominees
POST /wallets/limits                 - set spending limits (also /setlimits)
POST /wallets/{wallet_id}/nominees   - replace the nominee list
GET  /wallets/{wallet_id}/nominees   - read the nominee list
"""

import logging
import time

from fastapi import APIRouter, Depends

from inheritor.api.dependencies import get_store
from inheritor.api.models import (
    ActivityRecordResponse,
    ActivityRequest,
    LimitsRequest,
    NomineesRequest,
    WalletResponse,
)
from inheritor.services.activity_store import ActivityStore
from inheritor.services.errors import NotFound
from inheritor.services.models import normalize_wallet_id

logger = logging.getLogger("inheritor.api.wallets")
router = APIRouter(tags=["Wallets"])


@router.post("/wallets/activity", response_model=ActivityRecordResponse)
async def log_activity(request: ActivityRequest, store: ActivityStore = Depends(get_store)):
    """Record that a wallet was active. Settled wallets are refused with 409."""
    wallet_id = normalize_wallet_id(request.wallet_id)
    timestamp = request.timestamp if request.timestamp is not None else int(time.time())

    record = await store.upsert(wallet_id, timestamp)
    logger.info("Activity for %s at %d", wallet_id, timestamp)
    return ActivityRecordResponse(**record.to_dict())


@router.post("/wallets/limits")
@router.post("/setlimits", include_in_schema=False)
async def set_limits(request: LimitsRequest, store: ActivityStore = Depends(get_store)):
    """Insert or replace the spending limits for an address."""
    wallet_id = normalize_wallet_id(request.address)
    await store.set_limits(wallet_id, request.lowerLimit, request.upperLimit)
    return {"success": True}


@router.get("/wallets/{wallet_id}", response_model=WalletResponse)
async def get_wallet(wallet_id: str, store: ActivityStore = Depends(get_store)):
    wallet_id = normalize_wallet_id(wallet_id)
    record = await store.get(wallet_id)
    if record is None:
        raise NotFound(wallet_id)

    return WalletResponse(
        record=ActivityRecordResponse(**record.to_dict()),
        limits=await store.get_limits(wallet_id),
        nominees=await store.get_nominees(wallet_id),
    )


@router.post("/wallets/{wallet_id}/nominees")
async def set_nominees(
    wallet_id: str,
    request: NomineesRequest,
    store: ActivityStore = Depends(get_store),
):
    """Replace the wallet's beneficiaries. Shares must add up to 100%."""
    wallet_id = normalize_wallet_id(wallet_id)
    nominees = [
        {
            "address": normalize_wallet_id(n.address),
            "share_bps": n.share_bps,
            "label": n.label,
        }
        for n in request.nominees
    ]
    await store.set_nominees(wallet_id, nominees)
    logger.info("Registered %d nominees for %s", len(nominees), wallet_id)
    return {"wallet_id": wallet_id, "nominees": nominees}


@router.get("/wallets/{wallet_id}/nominees")
async def get_nominees(wallet_id: str, store: ActivityStore = Depends(get_store)):
    wallet_id = normalize_wallet_id(wallet_id)
    return {"wallet_id": wallet_id, "nominees": await store.get_nominees(wallet_id)}
