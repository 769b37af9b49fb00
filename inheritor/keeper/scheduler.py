"""
Disbursement Scheduler - the periodic fetch-scan-execute cycle.

State machine:

    IDLE --tick--> RUNNING --cycle done--> IDLE
    RUNNING --tick--> RUNNING   (tick dropped)

Only one cycle is ever in flight. Each cycle reads the inactivity threshold
from the ledger, scans the store, then runs the executor over the
candidates. Threshold or store failures end the cycle early and are logged;
they never escape the scheduler.

The timer fires ticks as background tasks, so a hung ledger call can cost
at most the ticks that land while that cycle is still running.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from inheritor.config.settings import settings
from inheritor.services.activity_store import ActivityStore
from inheritor.services.disbursement import DisbursementExecutor, build_executor
from inheritor.services.errors import LedgerError, StoreUnavailable, ThresholdFetchFailed
from inheritor.services.ledger_client import LedgerClient
from inheritor.services.models import CycleReport, InactivityPolicy
from inheritor.services.scanner import InactivityScanner

logger = logging.getLogger("inheritor.scheduler")


class SchedulerState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"


class DisbursementScheduler:
    """Owns the cycle and the skip-if-busy guard."""

    def __init__(
        self,
        store: ActivityStore,
        ledger: LedgerClient,
        scanner: Optional[InactivityScanner] = None,
        executor: Optional[DisbursementExecutor] = None,
        interval_seconds: int = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.ledger = ledger
        self.scanner = scanner or InactivityScanner(store)
        self.executor = executor or build_executor(store, ledger)
        self.interval_seconds = interval_seconds or settings.tick_interval_seconds
        self._clock = clock
        self._sleep = sleep

        self._state = SchedulerState.IDLE
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()

        self.cycles_run = 0
        self.cycles_aborted = 0
        self.skipped_ticks = 0
        self.last_report: Optional[CycleReport] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------ #
    #  Cycle                                                               #
    # ------------------------------------------------------------------ #

    async def tick(self) -> Optional[CycleReport]:
        """
        Run one cycle unless one is already in flight.

        Returns the cycle report, or None when the tick was dropped.
        """
        if self._state is SchedulerState.RUNNING:
            self.skipped_ticks += 1
            logger.warning("Tick dropped: previous cycle still running")
            return None

        self._state = SchedulerState.RUNNING
        try:
            report = await self._run_cycle()
        except Exception as e:
            logger.exception("Cycle failed unexpectedly")
            report = CycleReport(started_at=self._clock(), finished_at=self._clock(), aborted=f"error: {e}")
        finally:
            self._state = SchedulerState.IDLE

        self.cycles_run += 1
        if report.aborted:
            self.cycles_aborted += 1
        self.last_report = report
        return report

    async def _fetch_policy(self) -> InactivityPolicy:
        try:
            threshold = await self.ledger.get_inactivity_threshold()
            return InactivityPolicy(threshold_seconds=int(threshold))
        except (LedgerError, ValueError) as e:
            raise ThresholdFetchFailed(f"Could not read inactivity threshold: {e}") from e

    async def _run_cycle(self) -> CycleReport:
        report = CycleReport(started_at=self._clock())

        try:
            policy = await self._fetch_policy()
        except ThresholdFetchFailed as e:
            logger.error("%s - skipping this tick", e)
            report.aborted = "threshold_fetch_failed"
            return await self._finish(report)

        report.threshold_seconds = policy.threshold_seconds

        try:
            candidates = await self.scanner.scan(report.started_at, policy.threshold_seconds)
        except StoreUnavailable as e:
            logger.error("Activity store unavailable - skipping this tick: %s", e)
            report.aborted = "store_unavailable"
            return await self._finish(report)

        report.candidates = len(candidates)
        if candidates:
            report.attempts = await self.executor.execute_all(candidates)

        return await self._finish(report)

    async def _finish(self, report: CycleReport) -> CycleReport:
        report.finished_at = self._clock()

        if report.aborted:
            logger.info("Cycle aborted (%s)", report.aborted)
        elif report.candidates:
            logger.info(
                "Cycle complete: %d candidates, %d settled, %d left active",
                report.candidates,
                len(report.settled),
                len(report.failed),
            )
        else:
            logger.info("Cycle complete: no inactive wallets")

        try:
            await self.store.record_cycle(report.to_dict())
        except StoreUnavailable as e:
            logger.warning("Could not record cycle summary: %s", e)
        return report

    # ------------------------------------------------------------------ #
    #  Timer                                                               #
    # ------------------------------------------------------------------ #

    def fire(self) -> asyncio.Task:
        """Fire a tick in the background."""
        task = asyncio.create_task(self.tick())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _timer_loop(self):
        logger.info("Disbursement scheduler started (interval: %ds)", self.interval_seconds)
        while self._running:
            self.fire()
            await self._sleep(self.interval_seconds)

    async def run_forever(self):
        """Fire a tick every ``interval_seconds`` until stop() is called."""
        self._running = True
        self._task = asyncio.create_task(self._timer_loop())
        try:
            await self._task
        except asyncio.CancelledError:
            # stop() cancels the pending sleep; anything else propagates.
            if self._running:
                raise

    def start(self):
        """Start the timer as a background task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._timer_loop())

    def stop(self):
        """Stop firing new ticks. A cycle already in flight keeps going."""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None
        logger.info("Disbursement scheduler stopped")

    async def shutdown(self):
        """Stop the timer and wait for any in-flight cycle to finish."""
        self.stop()
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    def status(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "timer_running": self._running,
            "interval_seconds": self.interval_seconds,
            "cycles_run": self.cycles_run,
            "cycles_aborted": self.cycles_aborted,
            "skipped_ticks": self.skipped_ticks,
            "last_cycle": self.last_report.to_dict() if self.last_report else None,
        }
