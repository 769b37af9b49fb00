"""
Inheritor domain model - activity records, policy and cycle results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from eth_utils import is_address, to_checksum_address

from inheritor.services.errors import InvalidWallet


class WalletStatus(str, Enum):
    """Lifecycle of a tracked wallet. Only ACTIVE -> SETTLED is allowed."""
    ACTIVE = "ACTIVE"
    SETTLED = "SETTLED"


class AttemptOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


def normalize_wallet_id(wallet_id: Optional[str]) -> str:
    """Return the checksum form of an address, or raise InvalidWallet."""
    if not wallet_id or not isinstance(wallet_id, str):
        raise InvalidWallet("Wallet id is required")
    candidate = wallet_id.strip()
    if not is_address(candidate):
        raise InvalidWallet(f"Not a valid wallet address: {wallet_id!r}")
    return to_checksum_address(candidate)


@dataclass
class ActivityRecord:
    """Last known activity of one wallet."""

    wallet_id: str
    last_activity_at: int
    status: WalletStatus = WalletStatus.ACTIVE
    settled_at: Optional[int] = None
    tx_hash: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status is WalletStatus.ACTIVE

    def inactive_for(self, now: float) -> float:
        """Seconds elapsed since the last recorded activity."""
        return now - self.last_activity_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wallet_id": self.wallet_id,
            "last_activity_at": self.last_activity_at,
            "status": self.status.value,
            "settled_at": self.settled_at,
            "tx_hash": self.tx_hash,
        }


@dataclass(frozen=True)
class InactivityPolicy:
    """Threshold read from the ledger. Never cached across cycles."""

    threshold_seconds: int

    def __post_init__(self):
        if self.threshold_seconds < 0:
            raise ValueError(
                f"Inactivity threshold must be non-negative, got {self.threshold_seconds}"
            )


@dataclass
class DisbursementAttempt:
    """
    Outcome of processing one candidate wallet within a cycle.

    Transient: logged and summarised in the cycle report, never persisted
    on its own.
    """

    wallet_id: str
    outcome: AttemptOutcome
    estimated_cost: Optional[int] = None
    submitted_gas: Optional[int] = None
    tx_hash: Optional[str] = None
    stage: Optional[str] = None  # estimate | submit | settle
    reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is AttemptOutcome.SUCCESS

    @classmethod
    def success(cls, wallet_id: str, estimated_cost: int, submitted_gas: int, tx_hash: str) -> "DisbursementAttempt":
        return cls(
            wallet_id=wallet_id,
            outcome=AttemptOutcome.SUCCESS,
            estimated_cost=estimated_cost,
            submitted_gas=submitted_gas,
            tx_hash=tx_hash,
        )

    @classmethod
    def failure(
        cls,
        wallet_id: str,
        stage: str,
        reason: str,
        estimated_cost: Optional[int] = None,
        submitted_gas: Optional[int] = None,
        tx_hash: Optional[str] = None,
    ) -> "DisbursementAttempt":
        return cls(
            wallet_id=wallet_id,
            outcome=AttemptOutcome.FAILURE,
            estimated_cost=estimated_cost,
            submitted_gas=submitted_gas,
            tx_hash=tx_hash,
            stage=stage,
            reason=reason,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wallet_id": self.wallet_id,
            "outcome": self.outcome.value,
            "estimated_cost": self.estimated_cost,
            "submitted_gas": self.submitted_gas,
            "tx_hash": self.tx_hash,
            "stage": self.stage,
            "reason": self.reason,
        }


@dataclass
class CycleReport:
    """Summary of one fetch-scan-execute cycle."""

    started_at: float
    finished_at: Optional[float] = None
    threshold_seconds: Optional[int] = None
    candidates: int = 0
    attempts: List[DisbursementAttempt] = field(default_factory=list)
    aborted: Optional[str] = None

    @property
    def settled(self) -> List[str]:
        return [a.wallet_id for a in self.attempts if a.succeeded]

    @property
    def failed(self) -> List[str]:
        return [a.wallet_id for a in self.attempts if not a.succeeded]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "threshold_seconds": self.threshold_seconds,
            "candidates": self.candidates,
            "settled": self.settled,
            "failed": self.failed,
            "aborted": self.aborted,
            "attempts": [a.to_dict() for a in self.attempts],
        }
