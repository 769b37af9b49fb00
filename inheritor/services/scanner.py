"""
Inactivity Scanner - which ACTIVE wallets have crossed the threshold.
"""

import logging
from typing import List

from inheritor.services.activity_store import ActivityStore
from inheritor.services.models import ActivityRecord

logger = logging.getLogger("inheritor.scanner")


class InactivityScanner:
    """Reads the store and selects disbursement candidates."""

    def __init__(self, store: ActivityStore):
        self.store = store

    async def scan(self, now: float, threshold_seconds: int) -> List[ActivityRecord]:
        """
        Return ACTIVE records with ``now - last_activity_at >= threshold_seconds``.

        Ordered by wallet id so a cycle processes wallets in a reproducible
        order. StoreUnavailable propagates to the caller untouched.
        """
        if threshold_seconds < 0:
            raise ValueError(f"threshold_seconds must be non-negative, got {threshold_seconds}")

        records = await self.store.list_active()
        candidates = sorted(
            (r for r in records if r.is_active and r.inactive_for(now) >= threshold_seconds),
            key=lambda r: r.wallet_id,
        )

        logger.info(
            "Scanned %d active wallets: %d inactive for >= %ds",
            len(records),
            len(candidates),
            threshold_seconds,
        )
        return candidates
