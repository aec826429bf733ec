"""
Shared FastAPI dependencies.
"""

import secrets

from fastapi import HTTPException, Query, Request

from settings_lock.config import settings
from settings_lock.controller import LockController
from settings_lock.device.xapi import XapiClient


def get_controller(request: Request) -> LockController:
    """Return the process-wide lock controller created by the lifespan."""
    controller = getattr(request.app.state, "controller", None)
    if controller is None:
        raise HTTPException(
            status_code=503,
            detail={"status": "unavailable", "message": "Controller not started"},
        )
    return controller


def get_device_client(request: Request) -> XapiClient:
    """Return the shared device xAPI client created by the lifespan."""
    client = getattr(request.app.state, "device_client", None)
    if client is None:
        raise HTTPException(
            status_code=503,
            detail={"status": "unavailable", "message": "Device client not started"},
        )
    return client


def verify_feedback_token(token: str | None = Query(default=None)) -> None:
    """
    Reject feedback posts that do not carry the configured ``FEEDBACK_TOKEN``.

    The device cannot add headers to HttpFeedback deliveries, so the token
    travels in the registered server URL's query string.
    """
    expected = settings.feedback_token
    if not expected:
        return
    if token is None or not secrets.compare_digest(token, expected):
        raise HTTPException(
            status_code=403,
            detail={"status": "forbidden", "message": "Invalid feedback token"},
        )
