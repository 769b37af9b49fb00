#!/usr/bin/env python3
"""
Inheritor Keeper - the disbursement daemon.

Once per tick interval (daily by default) the keeper reads the inactivity
threshold from the inheritance contract, finds every wallet that has been
quiet for at least that long, and sends its disbursement transaction.

Modes:
- single: one cycle, then exit (cron jobs, manual runs)
- scheduled: run until interrupted
"""

import logging
from pathlib import Path
from typing import Optional, Tuple

from inheritor.config.settings import settings
from inheritor.keeper.scheduler import DisbursementScheduler
from inheritor.services.activity_store import (
    ActivityStore,
    close_activity_store,
    get_activity_store,
)
from inheritor.services.ledger_client import LedgerClient, close_ledger_client, get_ledger_client

logger = logging.getLogger("inheritor.keeper")

_LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(log_dir: Optional[Path] = None) -> Path:
    """Console plus file logging for the daemon. Returns the log file path."""
    logging.basicConfig(level=logging.INFO, format=_LOG_FORMAT, datefmt=_DATE_FORMAT)

    log_dir = log_dir or settings.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "keeper.log"

    root = logging.getLogger("inheritor")
    if not any(isinstance(h, logging.FileHandler) for h in root.handlers):
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(_LOG_FORMAT, _DATE_FORMAT))
        root.addHandler(file_handler)
    return log_file


async def _collaborators() -> Optional[Tuple[ActivityStore, LedgerClient]]:
    if not settings.ledger_configured:
        logger.error(
            "Ledger not configured - set INHERITOR_CONTRACT_ADDRESS and INHERITOR_OPERATOR_ADDRESS"
        )
        return None

    store = await get_activity_store()
    if not await store.ping():
        logger.error("Activity store unreachable at %s:%s", settings.redis_host, settings.redis_port)
        return None

    ledger = get_ledger_client()
    if not await ledger.is_connected():
        # Not fatal: the cycle itself will log the threshold fetch failure.
        logger.warning("Ledger node at %s is not answering yet", settings.rpc_url)
    return store, ledger


async def _close():
    await close_ledger_client()
    await close_activity_store()


async def run_single_cycle():
    """Run exactly one fetch-scan-execute cycle."""
    configure_logging()
    logger.info("Inheritor keeper - single cycle")

    collaborators = await _collaborators()
    if collaborators is None:
        await _close()
        return None

    store, ledger = collaborators
    scheduler = DisbursementScheduler(store, ledger)
    try:
        report = await scheduler.tick()
    finally:
        await _close()

    if report and not report.aborted:
        for attempt in report.attempts:
            if attempt.succeeded:
                logger.info("  %s settled (tx %s)", attempt.wallet_id, attempt.tx_hash)
            else:
                logger.info("  %s left active (%s: %s)", attempt.wallet_id, attempt.stage, attempt.reason)
    return report


async def run_scheduled():
    """Run as a daemon until interrupted."""
    configure_logging()
    logger.info("Inheritor keeper - daemon mode")
    logger.info("Tick interval: %ds, gas margin: +%d", settings.tick_interval_seconds, settings.gas_margin)

    collaborators = await _collaborators()
    if collaborators is None:
        await _close()
        return

    store, ledger = collaborators
    scheduler = DisbursementScheduler(store, ledger)
    try:
        await scheduler.run_forever()
    finally:
        await scheduler.shutdown()
        await _close()
