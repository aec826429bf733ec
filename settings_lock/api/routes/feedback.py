"""
POST /feedback: receiver for the device's HttpFeedback deliveries.

The device posts one JSON document per subscribed event (see
``settings_lock.device.feedback``).  Recognised documents are queued for the
lock controller; the route returns as soon as the event is queued, so the
device is never kept waiting on the controller's own device commands.

Responses
---------
- ``202 {"status": "accepted", "event": "<EventName>"}``: queued.
- ``202 {"status": "ignored"}``: valid JSON but not an event we handle.
- ``400``: body is not JSON.
- ``403``: ``FEEDBACK_TOKEN`` is set and the ``token`` query parameter does
  not match it.
- ``503``: the event queue is full.
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from settings_lock.api.deps import verify_feedback_token
from settings_lock.device.feedback import parse_feedback
from settings_lock.events import queue_event

logger = logging.getLogger(__name__)
router = APIRouter()


class FeedbackResponse(BaseModel):
    status: str
    event: str | None = None


@router.post(
    "/feedback",
    status_code=202,
    response_model=FeedbackResponse,
    dependencies=[Depends(verify_feedback_token)],
)
async def receive_feedback(request: Request) -> FeedbackResponse:
    raw = await request.body()
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Feedback body is not JSON (%d bytes)", len(raw))
        raise HTTPException(
            status_code=400,
            detail={"status": "bad_request", "message": "Body must be JSON"},
        )

    event = parse_feedback(payload)
    if event is None:
        logger.debug("Ignoring unrecognised feedback document")
        return FeedbackResponse(status="ignored")

    if not await queue_event(event):
        raise HTTPException(
            status_code=503,
            detail={"status": "busy", "message": "Event queue full"},
        )

    logger.debug("Queued %s", event)
    return FeedbackResponse(status="accepted", event=type(event).__name__)
