"""
Disbursement Executor - estimate, submit, settle.

For each inactive wallet:

1. Ask the ledger for a gas estimate of the disbursement call.
2. Submit the transfer with the estimate plus a fixed additive margin.
3. Mark the wallet SETTLED, only after the submission reported success.

A wallet whose estimate or submission fails stays ACTIVE and is picked up
again by the scanner on a later tick. Nothing is retried within a tick, and
no wallet's failure stops the others.
"""

import asyncio
import logging
import time
from typing import Callable, List

from inheritor.config.settings import settings
from inheritor.services.activity_store import ActivityStore
from inheritor.services.errors import (
    AlreadySettled,
    EstimationFailed,
    LedgerError,
    NotFound,
    StoreUnavailable,
    SubmissionFailed,
)
from inheritor.services.ledger_client import LedgerClient
from inheritor.services.models import ActivityRecord, DisbursementAttempt

logger = logging.getLogger("inheritor.disbursement")

DEFAULT_GAS_MARGIN = 20000


class DisbursementExecutor:
    """Drives the ledger transfer for each candidate and reconciles the store."""

    def __init__(
        self,
        store: ActivityStore,
        ledger: LedgerClient,
        gas_margin: int = None,
        max_concurrent: int = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ledger = ledger
        self.gas_margin = DEFAULT_GAS_MARGIN if gas_margin is None else gas_margin
        self.max_concurrent = max_concurrent or settings.max_concurrent_disbursements
        self._clock = clock

    async def _estimate(self, wallet_id: str) -> int:
        try:
            return await self.ledger.estimate_disbursement_cost(wallet_id)
        except LedgerError as e:
            raise EstimationFailed(f"Gas estimation failed for {wallet_id}: {e}") from e

    async def _submit(self, wallet_id: str, gas: int) -> str:
        try:
            return await self.ledger.submit_disbursement(wallet_id, gas)
        except LedgerError as e:
            raise SubmissionFailed(f"Submission failed for {wallet_id}: {e}") from e

    async def execute(self, record: ActivityRecord) -> DisbursementAttempt:
        """Process one wallet. Never raises for ledger or store failures."""
        wallet_id = record.wallet_id

        try:
            estimate = await self._estimate(wallet_id)
        except EstimationFailed as e:
            logger.warning("%s (left ACTIVE for next tick)", e)
            return DisbursementAttempt.failure(wallet_id, stage="estimate", reason=str(e))

        gas = estimate + self.gas_margin

        try:
            tx_hash = await self._submit(wallet_id, gas)
        except SubmissionFailed as e:
            logger.warning("%s (gas %d, left ACTIVE for next tick)", e, gas)
            return DisbursementAttempt.failure(
                wallet_id,
                stage="submit",
                reason=str(e),
                estimated_cost=estimate,
                submitted_gas=gas,
            )

        try:
            await self.store.mark_settled(wallet_id, tx_hash, int(self._clock()))
        except AlreadySettled:
            logger.warning("Wallet %s was already settled when tx %s went out", wallet_id, tx_hash)
        except NotFound:
            logger.error("Wallet %s disappeared from the store after tx %s", wallet_id, tx_hash)
            return DisbursementAttempt.failure(
                wallet_id,
                stage="settle",
                reason="record not found",
                estimated_cost=estimate,
                submitted_gas=gas,
                tx_hash=tx_hash,
            )
        except StoreUnavailable as e:
            # The transfer is out but the record is still ACTIVE.
            logger.error(
                "Disbursed %s in tx %s but could not mark it settled: %s",
                wallet_id,
                tx_hash,
                e,
            )
            return DisbursementAttempt.failure(
                wallet_id,
                stage="settle",
                reason=str(e),
                estimated_cost=estimate,
                submitted_gas=gas,
                tx_hash=tx_hash,
            )

        logger.info(
            "Disbursed %s: estimate %d, gas %d, tx %s",
            wallet_id,
            estimate,
            gas,
            tx_hash,
        )
        return DisbursementAttempt.success(wallet_id, estimate, gas, tx_hash)

    async def _guarded(self, record: ActivityRecord, semaphore: asyncio.Semaphore) -> DisbursementAttempt:
        async with semaphore:
            try:
                return await self.execute(record)
            except Exception as e:
                logger.exception("Unexpected error disbursing %s", record.wallet_id)
                return DisbursementAttempt.failure(record.wallet_id, stage="unknown", reason=str(e))

    async def execute_all(self, records: List[ActivityRecord]) -> List[DisbursementAttempt]:
        """
        Process every candidate independently.

        Runs at most ``max_concurrent`` wallets at once; with the default of
        one the wallets are handled sequentially in scan order. Results come
        back in the same order as ``records``.
        """
        if not records:
            return []
        semaphore = asyncio.Semaphore(self.max_concurrent)
        return list(await asyncio.gather(*(self._guarded(r, semaphore) for r in records)))


def build_executor(store: ActivityStore, ledger: LedgerClient, config=settings) -> DisbursementExecutor:
    return DisbursementExecutor(
        store=store,
        ledger=ledger,
        gas_margin=config.gas_margin,
        max_concurrent=config.max_concurrent_disbursements,
    )
