"""
Inheritor API.

FastAPI application for activity logging, nominee and limit registration,
and keeper status. The disbursement scheduler is embedded only when
INHERITOR_EMBED_SCHEDULER is set; otherwise run scripts/run_keeper.py.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from inheritor import __version__
from inheritor.api.routes import health, scheduler, wallets
from inheritor.config.settings import settings
from inheritor.keeper.scheduler import DisbursementScheduler
from inheritor.services.activity_store import close_activity_store, get_activity_store
from inheritor.services.errors import AlreadySettled, InvalidWallet, NotFound, StoreUnavailable
from inheritor.services.ledger_client import close_ledger_client, get_ledger_client

logger = logging.getLogger("inheritor.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle - startup and shutdown."""
    logger.info("Starting Inheritor API v%s", __version__)

    store = await get_activity_store()
    if not await store.ping():
        logger.warning("Activity store ping failed")

    if getattr(app.state, "scheduler", None) is None and settings.ledger_configured:
        app.state.scheduler = DisbursementScheduler(store, get_ledger_client())

    keeper = getattr(app.state, "scheduler", None)
    if keeper is not None and settings.embed_scheduler:
        keeper.start()

    yield

    logger.info("Shutting down...")
    if keeper is not None:
        await keeper.shutdown()
    await close_ledger_client()
    await close_activity_store()


app = FastAPI(
    title="Inheritor",
    description="Inactivity detection and fund disbursement for registered wallets",
    version=__version__,
    lifespan=lifespan,
)
app.state.scheduler = None

_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if _origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _error(status_code: int, error: str, exc: Exception, request: Request) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": str(exc),
            "path": str(request.url.path),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


@app.exception_handler(InvalidWallet)
async def invalid_wallet_handler(request: Request, exc: InvalidWallet) -> JSONResponse:
    return _error(422, "invalid_wallet", exc, request)


@app.exception_handler(AlreadySettled)
async def already_settled_handler(request: Request, exc: AlreadySettled) -> JSONResponse:
    return _error(409, "already_settled", exc, request)


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return _error(404, "not_found", exc, request)


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
    logger.error("Store unavailable on %s: %s", request.url.path, exc)
    return _error(503, "store_unavailable", exc, request)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler."""
    logger.exception("Unhandled error on %s", request.url.path)
    return _error(500, "internal_error", exc, request)


app.include_router(health.router)
app.include_router(wallets.router)
app.include_router(scheduler.router)
