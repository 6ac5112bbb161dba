"""Application entry point for the FastAPI backend."""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Iterable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .database import create_session, init_db
from .routers import (
    auth_router,
    chats_router,
    collections_router,
    discover_router,
    friends_router,
    notifications_router,
    posts_router,
    profiles_router,
    system_router,
)
from .services import CleanupError, run_sweep

settings = get_settings()
logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

DISABLE_SWEEP = (
    os.getenv("DISABLE_SWEEP", "").lower() == "true"
    or os.getenv("DISABLE_CLEANUP", "").lower() == "true"
    or os.getenv("PYTEST_CURRENT_TEST") is not None
)

app = FastAPI(title=settings.app_name, version=settings.api_version)

cors_origins = os.getenv("CORS_ORIGINS")
if cors_origins:
    origins: Iterable[str] = [origin.strip() for origin in cors_origins.split(",") if origin.strip()]
else:
    origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(system_router)
app.include_router(auth_router)
app.include_router(profiles_router)
app.include_router(friends_router)
app.include_router(chats_router)
app.include_router(collections_router)
app.include_router(posts_router)
app.include_router(notifications_router)
app.include_router(discover_router)

_sweep_task: asyncio.Task[None] | None = None
_sweep_stop = asyncio.Event()


async def _run_sweep_once() -> None:
    """Execute a single retention sweep in a worker thread."""

    try:
        await asyncio.to_thread(run_sweep, create_session)
    except CleanupError:
        logger.exception("Scheduled sweep failed")
    except Exception:  # pragma: no cover - keep the loop alive
        logger.exception("Unexpected error during sweep run")


async def _sweep_loop() -> None:
    interval = settings.sweep_interval_minutes * 60
    while not _sweep_stop.is_set():
        await _run_sweep_once()
        try:
            await asyncio.wait_for(_sweep_stop.wait(), timeout=interval)
        except asyncio.TimeoutError:
            continue


@app.on_event("startup")
async def _startup() -> None:
    """Ensure the schema exists and start the retention sweep."""

    try:
        init_db()
    except Exception:  # pragma: no cover - best effort logging
        logger.exception("Database initialisation failed")
        raise

    if DISABLE_SWEEP:
        logger.info("Background sweep disabled")
        return

    global _sweep_task
    if _sweep_task is None or _sweep_task.done():
        _sweep_stop.clear()
        _sweep_task = asyncio.create_task(_sweep_loop())


@app.on_event("shutdown")
async def _shutdown() -> None:
    if DISABLE_SWEEP:
        return

    _sweep_stop.set()
    if _sweep_task is not None:
        try:
            await _sweep_task
        except asyncio.CancelledError:  # pragma: no cover
            pass
