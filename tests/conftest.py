"""
Shared fixtures: an in-memory store and a scriptable ledger.
"""

from typing import Dict, List, Optional, Tuple

import pytest

from inheritor.services.activity_store import InMemoryActivityStore
from inheritor.services.errors import LedgerRejected, LedgerUnavailable
from inheritor.services.ledger_client import LedgerClient

DAY = 86400
T0 = 1_700_000_000

# Digit-only addresses are already in checksum form.
W1 = "0x1111111111111111111111111111111111111111"
W2 = "0x2222222222222222222222222222222222222222"
W3 = "0x3333333333333333333333333333333333333333"


class FakeLedger(LedgerClient):
    """
    Records every call. Failures are configured per wallet:
    ``estimate_errors[wallet] = exc`` / ``submit_errors[wallet] = exc``.
    """

    def __init__(self, threshold: int = DAY, estimate: int = 21000):
        self.threshold = threshold
        self.threshold_error: Optional[Exception] = None
        self.estimate = estimate
        self.estimate_errors: Dict[str, Exception] = {}
        self.submit_errors: Dict[str, Exception] = {}
        self.threshold_calls = 0
        self.estimate_calls: List[str] = []
        self.submissions: List[Tuple[str, int]] = []

    async def get_inactivity_threshold(self) -> int:
        self.threshold_calls += 1
        if self.threshold_error is not None:
            raise self.threshold_error
        return self.threshold

    async def estimate_disbursement_cost(self, wallet_id: str) -> int:
        self.estimate_calls.append(wallet_id)
        if wallet_id in self.estimate_errors:
            raise self.estimate_errors[wallet_id]
        return self.estimate

    async def submit_disbursement(self, wallet_id: str, cost: int) -> str:
        self.submissions.append((wallet_id, cost))
        if wallet_id in self.submit_errors:
            raise self.submit_errors[wallet_id]
        return "0x" + wallet_id[2:6] * 16


class Clock:
    """Settable clock for the scheduler and executor."""

    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def store() -> InMemoryActivityStore:
    return InMemoryActivityStore(history_limit=10)


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def clock() -> Clock:
    return Clock()


def unreachable() -> LedgerUnavailable:
    return LedgerUnavailable("connection refused")


def reverted() -> LedgerRejected:
    return LedgerRejected(3, "execution reverted")
