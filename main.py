"""
App entrypoint.

- Builds the store (in-memory by default, Prisma when STORE_BACKEND=prisma)
- Seeds the question bank when QUESTION_BANK_PATH is set
- Runs the auto-finish sweep in the background
- Opens one HTTP client for the calibration service
- Include v1 routes under /v1
"""
from __future__ import annotations
from contextlib import asynccontextmanager
from typing import Optional
import asyncio
import logging

import httpx
from fastapi import FastAPI

import routers
from config import settings
from db.store import InMemoryStore
from item_bank import seed_question_bank
from service.auto_finish import run_periodically
from session_service import SessionService

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="[%(asctime)s] %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_store():
    if settings.store_backend == "prisma":
        # Needs a generated client; only imported when selected
        from db.repo import PrismaStore
        return PrismaStore()
    return InMemoryStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = getattr(app.state, "store", None) or build_store()
    if hasattr(store, "connect"):
        await store.connect()
    app.state.service = SessionService(store)
    app.state.calibration_client = httpx.AsyncClient(
        base_url=settings.calibration_backend_url,
        timeout=settings.calibration_timeout_seconds,
        transport=getattr(app.state, "calibration_transport", None),
    )

    if settings.question_bank_path:
        await seed_question_bank(store, settings.question_bank_path)

    sweeper: Optional[asyncio.Task] = None
    if settings.auto_finish_interval_seconds > 0:
        sweeper = asyncio.create_task(run_periodically(app.state.service, settings.auto_finish_interval_seconds))
        logger.info("Auto-finish sweep every %ss", settings.auto_finish_interval_seconds)

    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass
        await app.state.calibration_client.aclose()
        if hasattr(store, "disconnect"):
            await store.disconnect()


def create_app(store=None, calibration_transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    app = FastAPI(
        title="ECD Assessment Engine",
        version=settings.version,
        description="Evidence-centered adaptive assessment: sessions, next-task selection and response scoring",
        lifespan=lifespan,
    )
    if store is not None:
        app.state.store = store
    if calibration_transport is not None:
        app.state.calibration_transport = calibration_transport
    app.include_router(routers.router, prefix="/v1")
    return app


app = create_app()
