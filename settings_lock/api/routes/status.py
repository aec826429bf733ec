"""
GET /status: lock state + device health check.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from settings_lock.api.deps import get_controller, get_device_client
from settings_lock.controller import LockController
from settings_lock.device.xapi import XapiClient

router = APIRouter()
logger = logging.getLogger(__name__)


class LockInfo(BaseModel):
    status: str
    panel_locked: bool
    settings_locked: bool
    relock_pending: bool
    relock_in_seconds: float | None
    relock_timeout_minutes: int


class DeviceInfo(BaseModel):
    host: str
    connected: bool
    latency_ms: float


class StatusResponse(BaseModel):
    status: str
    lock: LockInfo
    device: DeviceInfo


@router.get("/status", response_model=StatusResponse)
async def get_status(
    controller: LockController = Depends(get_controller),
    client: XapiClient = Depends(get_device_client),
) -> StatusResponse:
    """
    Returns the current lock state and device reachability.

    - **status**: ``"ok"`` if the device answers, ``"degraded"`` otherwise.
    - **lock**: controller state, including seconds until the pending relock.
    - **device**: connectivity result including latency in milliseconds.
    """
    ok, latency_ms = await client.ping()

    return StatusResponse(
        status="ok" if ok else "degraded",
        lock=LockInfo(
            status=controller.status.value,
            panel_locked=controller.panel_locked,
            settings_locked=controller.settings_locked,
            relock_pending=controller.relock_pending,
            relock_in_seconds=controller.relock_in_seconds(),
            relock_timeout_minutes=controller.relock_timeout_minutes,
        ),
        device=DeviceInfo(host=client.host, connected=ok, latency_ms=latency_ms),
    )
