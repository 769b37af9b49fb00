"""
Disbursement scheduler: cycle outcomes, skip-if-busy, and the timer loop.

Covers:
  - the one-day scenario: qualify, estimate 21000, submit 41000, settle,
    then a later activity upsert is refused
  - threshold fetch failure: nothing scanned, nothing sent, store unchanged
  - store outage during the scan aborts the tick without side effects
  - idempotent re-run, fault isolation across wallets
  - overlap guard: a tick during a running cycle is dropped
  - threshold re-read on every cycle
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from inheritor.keeper.scheduler import DisbursementScheduler, SchedulerState
from inheritor.services.errors import AlreadySettled, StoreUnavailable
from inheritor.services.models import WalletStatus
from tests.conftest import DAY, T0, W1, W2, FakeLedger, reverted, unreachable


def _make_scheduler(store, ledger, clock, **kwargs) -> DisbursementScheduler:
    return DisbursementScheduler(store, ledger, interval_seconds=DAY, clock=clock, **kwargs)


class TestCycle:

    @pytest.mark.asyncio
    async def test_one_day_scenario(self, store, ledger, clock):
        await store.upsert(W1, T0)
        clock.now = T0 + DAY
        scheduler = _make_scheduler(store, ledger, clock)

        report = await scheduler.tick()

        assert report.aborted is None
        assert report.threshold_seconds == DAY
        assert report.settled == [W1]
        assert ledger.submissions == [(W1, 41000)]
        assert (await store.get(W1)).status is WalletStatus.SETTLED

        with pytest.raises(AlreadySettled):
            await store.upsert(W1, T0 + DAY + 1)

    @pytest.mark.asyncio
    async def test_not_yet_inactive(self, store, ledger, clock):
        await store.upsert(W1, T0)
        clock.now = T0 + DAY - 1

        report = await _make_scheduler(store, ledger, clock).tick()

        assert report.candidates == 0
        assert ledger.estimate_calls == []

    @pytest.mark.asyncio
    async def test_threshold_fetch_failure_changes_nothing(self, store, ledger, clock):
        await store.upsert(W1, T0)
        clock.now = T0 + 10 * DAY
        ledger.threshold_error = unreachable()
        store.list_active = AsyncMock(wraps=store.list_active)

        report = await _make_scheduler(store, ledger, clock).tick()

        assert report.aborted == "threshold_fetch_failed"
        store.list_active.assert_not_awaited()
        assert ledger.estimate_calls == []
        assert ledger.submissions == []
        assert (await store.get(W1)).status is WalletStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_negative_threshold_aborts(self, store, clock):
        ledger = FakeLedger(threshold=-5)
        report = await _make_scheduler(store, ledger, clock).tick()
        assert report.aborted == "threshold_fetch_failed"

    @pytest.mark.asyncio
    async def test_store_unavailable_aborts(self, store, ledger, clock):
        store.list_active = AsyncMock(side_effect=StoreUnavailable("redis down"))

        scheduler = _make_scheduler(store, ledger, clock)
        report = await scheduler.tick()

        assert report.aborted == "store_unavailable"
        assert ledger.estimate_calls == []
        assert scheduler.state is SchedulerState.IDLE
        assert scheduler.cycles_aborted == 1

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, store, ledger, clock):
        await store.upsert(W1, T0)
        await store.upsert(W2, T0 + DAY)
        clock.now = T0 + DAY
        scheduler = _make_scheduler(store, ledger, clock)

        await scheduler.tick()
        submissions = list(ledger.submissions)
        snapshot = [r.to_dict() for r in await store.list_active()]

        report = await scheduler.tick()

        assert report.candidates == 0
        assert ledger.submissions == submissions
        assert [r.to_dict() for r in await store.list_active()] == snapshot

    @pytest.mark.asyncio
    async def test_fault_isolation_and_retry_next_tick(self, store, ledger, clock):
        await store.upsert(W1, T0)
        await store.upsert(W2, T0)
        clock.now = T0 + DAY
        ledger.submit_errors[W1] = reverted()
        scheduler = _make_scheduler(store, ledger, clock)

        report = await scheduler.tick()

        assert report.settled == [W2]
        assert report.failed == [W1]
        assert (await store.get(W1)).status is WalletStatus.ACTIVE

        del ledger.submit_errors[W1]
        report = await scheduler.tick()

        assert report.settled == [W1]
        assert [w for w, _ in ledger.submissions] == [W1, W2, W1]

    @pytest.mark.asyncio
    async def test_threshold_read_every_cycle(self, store, ledger, clock):
        await store.upsert(W1, T0)
        clock.now = T0 + DAY
        ledger.threshold = 2 * DAY
        scheduler = _make_scheduler(store, ledger, clock)

        assert (await scheduler.tick()).candidates == 0

        ledger.threshold = DAY
        assert (await scheduler.tick()).settled == [W1]
        assert ledger.threshold_calls == 2

    @pytest.mark.asyncio
    async def test_cycle_summary_recorded(self, store, ledger, clock):
        await _make_scheduler(store, ledger, clock).tick()
        cycles = await store.recent_cycles()
        assert len(cycles) == 1
        assert cycles[0]["threshold_seconds"] == DAY

    @pytest.mark.asyncio
    async def test_history_write_failure_is_not_fatal(self, store, ledger, clock):
        store.record_cycle = AsyncMock(side_effect=StoreUnavailable("redis down"))
        report = await _make_scheduler(store, ledger, clock).tick()
        assert report.aborted is None

    @pytest.mark.asyncio
    async def test_unexpected_error_returns_to_idle(self, store, ledger, clock):
        scheduler = _make_scheduler(store, ledger, clock)
        scheduler.scanner.scan = AsyncMock(side_effect=RuntimeError("boom"))

        report = await scheduler.tick()

        assert report.aborted.startswith("error")
        assert scheduler.state is SchedulerState.IDLE


class TestOverlapGuard:

    @pytest.mark.asyncio
    async def test_tick_dropped_while_running(self, store, clock):
        release = asyncio.Event()
        entered = asyncio.Event()

        class SlowLedger(FakeLedger):
            async def get_inactivity_threshold(self):
                threshold = await super().get_inactivity_threshold()
                entered.set()
                await release.wait()
                return threshold

        ledger = SlowLedger()
        scheduler = _make_scheduler(store, ledger, clock)

        first = asyncio.create_task(scheduler.tick())
        await entered.wait()
        assert scheduler.state is SchedulerState.RUNNING

        assert await scheduler.tick() is None
        assert scheduler.skipped_ticks == 1
        assert ledger.threshold_calls == 1

        release.set()
        report = await first
        assert report is not None
        assert scheduler.state is SchedulerState.IDLE
        assert scheduler.cycles_run == 1

    @pytest.mark.asyncio
    async def test_runs_again_once_idle(self, store, ledger, clock):
        scheduler = _make_scheduler(store, ledger, clock)
        assert await scheduler.tick() is not None
        assert await scheduler.tick() is not None
        assert scheduler.skipped_ticks == 0


class TestTimer:

    @pytest.mark.asyncio
    async def test_run_forever_fires_each_interval(self, store, ledger, clock):
        sleeps = []
        scheduler = None

        async def fake_sleep(seconds):
            sleeps.append(seconds)
            await asyncio.sleep(0)
            if len(sleeps) == 3:
                scheduler.stop()

        scheduler = _make_scheduler(store, ledger, clock, sleep=fake_sleep)
        await scheduler.run_forever()
        await scheduler.shutdown()

        assert sleeps == [DAY, DAY, DAY]
        assert scheduler.cycles_run == 3

    @pytest.mark.asyncio
    async def test_stop_interrupts_pending_sleep(self, store, ledger, clock):
        scheduler = _make_scheduler(store, ledger, clock)

        runner = asyncio.create_task(scheduler.run_forever())
        for _ in range(3):
            await asyncio.sleep(0)
        assert scheduler.is_running

        scheduler.stop()
        await asyncio.wait_for(runner, timeout=1)
        await scheduler.shutdown()

        assert scheduler.is_running is False
        assert scheduler.cycles_run == 1

    @pytest.mark.asyncio
    async def test_hung_cycle_does_not_block_timer(self, store, clock):
        release = asyncio.Event()

        class HungLedger(FakeLedger):
            async def get_inactivity_threshold(self):
                await release.wait()
                return await super().get_inactivity_threshold()

        sleeps = []
        scheduler = None

        async def fake_sleep(seconds):
            sleeps.append(seconds)
            await asyncio.sleep(0)
            if len(sleeps) == 3:
                scheduler.stop()

        scheduler = _make_scheduler(store, HungLedger(), clock, sleep=fake_sleep)
        await scheduler.run_forever()

        assert scheduler.skipped_ticks == 2
        assert scheduler.state is SchedulerState.RUNNING

        release.set()
        await scheduler.shutdown()
        assert scheduler.cycles_run == 1
        assert scheduler.state is SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_status(self, store, ledger, clock):
        scheduler = _make_scheduler(store, ledger, clock)
        await scheduler.tick()
        status = scheduler.status()
        assert status["state"] == "IDLE"
        assert status["cycles_run"] == 1
        assert status["last_cycle"]["candidates"] == 0
