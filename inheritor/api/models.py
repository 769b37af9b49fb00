"""
Inheritor API Models - Request and response schemas.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

TOTAL_SHARE_BPS = 10000


class ActivityRequest(BaseModel):
    """A wallet reporting activity."""
    wallet_id: str = Field(..., min_length=1, max_length=64)
    timestamp: Optional[int] = Field(
        default=None,
        ge=0,
        description="Unix seconds of the activity. Defaults to the time of the request.",
    )


class ActivityRecordResponse(BaseModel):
    wallet_id: str
    last_activity_at: int
    status: str
    settled_at: Optional[int] = None
    tx_hash: Optional[str] = None


class LimitsRequest(BaseModel):
    """Per-wallet spending limits (insert or replace)."""
    address: str = Field(..., min_length=1, max_length=64)
    lowerLimit: float = Field(..., ge=0)
    upperLimit: float = Field(..., ge=0)

    @model_validator(mode="after")
    def _ordered(self):
        if self.lowerLimit > self.upperLimit:
            raise ValueError("lowerLimit must not exceed upperLimit")
        return self


class Nominee(BaseModel):
    """A beneficiary and its share of the disbursement, in basis points."""
    address: str = Field(..., min_length=1, max_length=64)
    share_bps: int = Field(..., gt=0, le=TOTAL_SHARE_BPS)
    label: Optional[str] = Field(default=None, max_length=100)


class NomineesRequest(BaseModel):
    nominees: List[Nominee] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _shares_add_up(self):
        total = sum(n.share_bps for n in self.nominees)
        if total != TOTAL_SHARE_BPS:
            raise ValueError(f"Nominee shares must add up to {TOTAL_SHARE_BPS} bps, got {total}")
        addresses = [n.address.lower() for n in self.nominees]
        if len(set(addresses)) != len(addresses):
            raise ValueError("Duplicate nominee address")
        return self


class WalletResponse(BaseModel):
    record: ActivityRecordResponse
    limits: Optional[dict] = None
    nominees: List[dict] = Field(default_factory=list)


class StatusResponse(BaseModel):
    """Keeper status."""
    state: str
    timer_running: bool
    interval_seconds: int
    cycles_run: int
    cycles_aborted: int
    skipped_ticks: int
    last_cycle: Optional[dict] = None
