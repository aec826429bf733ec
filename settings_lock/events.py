"""
Inbound event bus for the lock controller.

Device feedback (posted to ``POST /feedback``), the relock timer and the
bootstrap worker all enqueue events here.  A single dispatcher task drains
the queue and hands each event to the controller, awaiting it to completion
before taking the next one, so the controller never sees two events at once
and its state needs no locking.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from settings_lock.controller import LockController

logger = logging.getLogger(__name__)

_MAX_QUEUE_SIZE: int = 1000
# Slots above _MAX_QUEUE_SIZE that only internal events (timer, startup) may use
_INTERNAL_RESERVE: int = 16

_event_queue: asyncio.Queue | None = None


# ── Device-sourced events ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class WidgetAction:
    widget_id: str
    action_type: str
    value: str


@dataclass(frozen=True)
class PanelClicked:
    panel_id: str


@dataclass(frozen=True)
class PanelOpened:
    panel_id: str


@dataclass(frozen=True)
class PageClosed:
    page_id: str


@dataclass(frozen=True)
class TextInputResponse:
    feedback_id: str
    text: str


# ── Internal events ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RelockRequested:
    """Relock issued by the service itself (startup)."""

    cause: str


@dataclass(frozen=True)
class RelockTimerExpired:
    """The unlock window elapsed; ``generation`` identifies which timer."""

    generation: int


Event = Union[
    WidgetAction,
    PanelClicked,
    PanelOpened,
    PageClosed,
    TextInputResponse,
    RelockRequested,
    RelockTimerExpired,
]


# ── Queue ─────────────────────────────────────────────────────────────────────


def get_event_queue() -> asyncio.Queue:
    """Return the global event queue, creating it if necessary."""
    global _event_queue
    if _event_queue is None:
        _event_queue = asyncio.Queue(maxsize=_MAX_QUEUE_SIZE + _INTERNAL_RESERVE)
    return _event_queue


async def queue_event(event: Event) -> bool:
    """Queue a device event for the dispatcher. Returns False if the queue is full."""
    queue = get_event_queue()
    if queue.qsize() >= _MAX_QUEUE_SIZE:
        logger.warning("Event queue full, dropping %s", type(event).__name__)
        return False
    try:
        queue.put_nowait(event)
        return True
    except asyncio.QueueFull:
        logger.warning("Event queue full, dropping %s", type(event).__name__)
        return False


async def post_internal_event(event: Event) -> bool:
    """
    Queue an event raised by the service itself.

    Internal events may use the reserved slots that device events cannot
    reach, and wait for room instead of being dropped.
    """
    await get_event_queue().put(event)
    return True


async def dispatch_task(controller: "LockController") -> None:
    """
    Long-running task: hand queued events to the controller one at a time.
    """
    logger.info("Event dispatcher starting")
    queue = get_event_queue()

    while True:
        try:
            event = await queue.get()
            try:
                await controller.dispatch(event)
            finally:
                queue.task_done()

        except asyncio.CancelledError:
            logger.info("Event dispatcher cancelled")
            break

        except Exception as exc:
            logger.error("Event dispatcher error: %s", exc, exc_info=True)


async def stop_dispatch_task() -> None:
    """Cleanup on shutdown."""
    global _event_queue
    _event_queue = None
