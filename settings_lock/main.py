"""
Settings Lock: FastAPI application entry point.

Run with:
    uvicorn settings_lock.main:app --host 0.0.0.0 --port 8000
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from settings_lock.api.routes import feedback as feedback_router
from settings_lock.api.routes import status as status_router
from settings_lock.config import settings
from settings_lock.controller import LockController
from settings_lock.device.xapi import XapiClient
from settings_lock.events import dispatch_task, stop_dispatch_task
from settings_lock.workers.device_bootstrap import run_device_bootstrap

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


class _HttpxNoiseFilter(logging.Filter):
    """Drop httpx's per-request INFO lines.

    Every device command is an HTTP request, so at INFO level httpx would log
    several lines per user interaction and drown out the lock transitions.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        return not (
            record.name.startswith("httpx") and record.levelno <= logging.INFO
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the dispatcher and device bootstrap; cancel them on shutdown."""
    _filter = _HttpxNoiseFilter()
    for handler in logging.root.handlers:
        handler.addFilter(_filter)

    client = XapiClient.from_settings(settings)
    controller = LockController(
        ui=client,
        pin=settings.pin,
        relock_timeout_minutes=settings.relock_timeout_minutes,
    )
    app.state.device_client = client
    app.state.controller = controller

    dispatcher = asyncio.create_task(dispatch_task(controller), name="event_dispatcher")
    bootstrap = asyncio.create_task(
        run_device_bootstrap(client, settings), name="device_bootstrap"
    )
    logger.info("Background workers started")
    try:
        yield
    finally:
        bootstrap.cancel()
        dispatcher.cancel()
        try:
            await bootstrap
        except asyncio.CancelledError:
            pass
        try:
            await dispatcher
        except asyncio.CancelledError:
            pass
        await controller.shutdown()
        await stop_dispatch_task()
        await client.aclose()
        app.state.controller = None
        app.state.device_client = None
        logger.info("Background workers stopped")


app = FastAPI(
    title="Settings Lock",
    description="PIN gate for the device settings menu, driven by UI feedback events.",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(status_router.router, tags=["health"])
app.include_router(feedback_router.router, tags=["feedback"])
