"""
Lock controller: gates the device settings menu behind a PIN.

State machine
-------------
``LOCKED``             panel locked, settings locked (startup, after any relock)
``PANEL_UNLOCKED``     correct PIN entered; the hidden panel may open, but the
                       settings menu stays locked until the user presses Unlock
``UNLOCKED``           settings menu editable; a relock timer is pending
``SETTINGS_UNLOCKED``  settings menu editable, admin panel still locked: an
                       Unlock press arrived without a PIN

The two flags underneath are independent.  Only a correct PIN clears
``panel_locked``; only an Unlock press clears ``settings_locked``; a relock
sets both.

Every transition is driven by one inbound event handled to completion by the
dispatcher (see ``settings_lock.events``).  Device commands are best-effort:
a failed command is logged and the handler carries on, so the controller's
state may run ahead of what the device shows.  Nothing is retried.

Relock timer
------------
``request_unlock`` starts a detached task that sleeps for the unlock window
and then enqueues ``RelockTimerExpired(generation)``.  Every unlock and
relock cancels the running task and bumps ``_timer_generation``, so a timer
event that was already queued when it got superseded is ignored.
"""

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, Protocol

from settings_lock.config import effective_relock_minutes
from settings_lock.device.panels import (
    ADMIN_PAGE_ID,
    HIDDEN_PANEL_ID,
    LOCK_WIDGET_ID,
    PIN_FEEDBACK_ID,
    VISIBLE_PANEL_ID,
)
from settings_lock.events import (
    Event,
    PageClosed,
    PanelClicked,
    PanelOpened,
    RelockRequested,
    RelockTimerExpired,
    TextInputResponse,
    WidgetAction,
    post_internal_event,
)

logger = logging.getLogger(__name__)

SECONDS_PER_MINUTE: float = 60.0

PIN_PROMPT_TITLE = "Enter Super Secret Code"
PIN_RETRY_TITLE = "Oops, Try Again 😝"
PIN_PROMPT_TEXT = "Enter the admin pin to unlock the device settings"
PIN_PROMPT_DURATION = 45

CAUSE_TIMEOUT = "Unlock Timeout to Relock Completed"
CAUSE_PIN_FAILED = "User Failed Pin Code Entry"
CAUSE_PAGE_CLOSED = "Settings Admin Page Closed with Unlock Deselected"
CAUSE_MANUAL_LOCK = "Settings Admin Manually Locked Solution"
CAUSE_MANUAL_UNLOCK = "Settings Admin Unlocked Solution"


class LockStatus(str, enum.Enum):
    LOCKED = "locked"
    PANEL_UNLOCKED = "panel_unlocked"
    SETTINGS_UNLOCKED = "settings_unlocked"
    UNLOCKED = "unlocked"


class PinResult(str, enum.Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class LockUi(Protocol):
    """Device UI commands the controller issues."""

    async def display_text_input(
        self,
        title: str,
        text: str,
        feedback_id: str,
        input_type: str = ...,
        duration: int = ...,
    ) -> None: ...

    async def open_panel(self, panel_id: str) -> None: ...

    async def close_panel(self) -> None: ...

    async def set_settings_menu_mode(self, mode: str) -> None: ...

    async def display_alert(
        self, title: str, text: str, duration: int | None = ...
    ) -> None: ...

    async def clear_alert(self) -> None: ...

    async def unset_widget_value(self, widget_id: str) -> None: ...


def _log_relock_timer_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Relock timer failed: %s", exc, exc_info=exc)


class LockController:
    """Sole owner of the lock state and the relock timer."""

    def __init__(
        self,
        ui: LockUi,
        pin: str,
        relock_timeout_minutes: int,
        post_event: Callable[[Event], Awaitable[Any]] = post_internal_event,
    ) -> None:
        self._ui = ui
        self._pin = pin
        self._post_event = post_event
        self.relock_timeout_minutes = effective_relock_minutes(relock_timeout_minutes)

        self._panel_locked = True
        self._settings_locked = True
        self._relock_task: asyncio.Task | None = None
        self._relock_deadline: float | None = None
        self._timer_generation = 0

    # ── Read-only state ───────────────────────────────────────────────────────

    @property
    def status(self) -> LockStatus:
        if self._panel_locked:
            if self._settings_locked:
                return LockStatus.LOCKED
            return LockStatus.SETTINGS_UNLOCKED
        if self._settings_locked:
            return LockStatus.PANEL_UNLOCKED
        return LockStatus.UNLOCKED

    @property
    def panel_locked(self) -> bool:
        return self._panel_locked

    @property
    def settings_locked(self) -> bool:
        return self._settings_locked

    @property
    def relock_pending(self) -> bool:
        return self._relock_task is not None and not self._relock_task.done()

    @property
    def relock_delay_seconds(self) -> float:
        return self.relock_timeout_minutes * SECONDS_PER_MINUTE

    def relock_in_seconds(self) -> float | None:
        """Seconds until the pending relock fires, or None."""
        if not self.relock_pending or self._relock_deadline is None:
            return None
        remaining = self._relock_deadline - asyncio.get_running_loop().time()
        return round(max(remaining, 0.0), 1)

    # ── Device commands ───────────────────────────────────────────────────────

    async def _send(self, description: str, command: Awaitable[Any]) -> None:
        """Await a device command; log and continue if it fails."""
        try:
            await command
        except Exception as exc:
            logger.warning(
                "Device command '%s' failed: %s; device state may have diverged",
                description,
                exc,
            )

    async def _pin_prompt(self, retry: bool = False) -> None:
        await self._send(
            "pin prompt",
            self._ui.display_text_input(
                title=PIN_RETRY_TITLE if retry else PIN_PROMPT_TITLE,
                text=PIN_PROMPT_TEXT,
                feedback_id=PIN_FEEDBACK_ID,
                input_type="Password",
                duration=PIN_PROMPT_DURATION,
            ),
        )

    # ── Relock timer ──────────────────────────────────────────────────────────

    def _cancel_relock_timer(self) -> None:
        self._timer_generation += 1
        task = self._relock_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._relock_task = None
        self._relock_deadline = None

    def _schedule_relock_timer(self) -> None:
        self._cancel_relock_timer()
        delay = self.relock_delay_seconds
        loop = asyncio.get_running_loop()
        self._relock_deadline = loop.time() + delay
        self._relock_task = asyncio.create_task(
            self._relock_after(delay, self._timer_generation), name="relock_timer"
        )
        self._relock_task.add_done_callback(_log_relock_timer_failure)

    async def _relock_after(self, delay: float, generation: int) -> None:
        await asyncio.sleep(delay)
        logger.debug("Relock timer %d elapsed", generation)
        await self._post_event(RelockTimerExpired(generation))

    async def shutdown(self) -> None:
        """Cancel the pending relock timer, if any."""
        task = self._relock_task
        self._cancel_relock_timer()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ── Operations ────────────────────────────────────────────────────────────

    async def request_relock(self, cause: str) -> None:
        self._cancel_relock_timer()
        self._panel_locked = True
        self._settings_locked = True
        await self._send("close panel", self._ui.close_panel())
        await self._send("settings menu locked", self._ui.set_settings_menu_mode("Locked"))
        await self._send("clear alert", self._ui.clear_alert())
        await self._send("unset lock widget", self._ui.unset_widget_value(LOCK_WIDGET_ID))
        logger.info("Settings Locked (cause=%s)", cause)

    async def request_unlock(self, cause: str) -> None:
        # panel_locked is left alone; only a correct PIN clears it
        self._settings_locked = False
        await self._send(
            "settings menu unlocked", self._ui.set_settings_menu_mode("Unlocked")
        )
        self._schedule_relock_timer()
        await self._send(
            "unlock alert",
            self._ui.display_alert(
                title="Settings Menu Unlocked",
                text=(
                    f"You have {self.relock_timeout_minutes} minutes to complete "
                    "your actions before the system relocks itself"
                ),
            ),
        )
        await self._send("close panel", self._ui.close_panel())
        logger.info("Settings Unlocked (cause=%s)", cause)

    async def submit_pin(self, text: str) -> PinResult:
        # TODO: throttle repeated failures once a lockout policy is agreed
        if text == self._pin:
            self._panel_locked = False
            logger.info("Pin accepted")
            await self._send("open admin panel", self._ui.open_panel(HIDDEN_PANEL_ID))
            return PinResult.ACCEPTED

        logger.warning("Pin rejected")
        await self.request_relock(CAUSE_PIN_FAILED)
        await self._pin_prompt(retry=True)
        return PinResult.REJECTED

    # ── Event handlers ────────────────────────────────────────────────────────

    async def handle_panel_clicked(self, panel_id: str) -> None:
        if panel_id not in (VISIBLE_PANEL_ID, HIDDEN_PANEL_ID):
            return

        if panel_id == VISIBLE_PANEL_ID and self.settings_locked:
            await self._pin_prompt()
        else:
            await self._send("open admin panel", self._ui.open_panel(HIDDEN_PANEL_ID))

        # The open above may race a PIN check; never leave it open while locked.
        if panel_id == HIDDEN_PANEL_ID and self.panel_locked:
            await self._send("close locked panel", self._ui.close_panel())

    async def handle_panel_opened(self, panel_id: str) -> None:
        if panel_id == HIDDEN_PANEL_ID and self.panel_locked:
            logger.warning("Admin panel opened while locked; closing it")
            await self._send("close locked panel", self._ui.close_panel())

    async def handle_page_closed(self, page_id: str) -> None:
        if page_id == ADMIN_PAGE_ID and self.settings_locked:
            await self.request_relock(CAUSE_PAGE_CLOSED)

    async def handle_widget_action(
        self, widget_id: str, action_type: str, value: str
    ) -> None:
        if action_type != "released" or widget_id != LOCK_WIDGET_ID:
            return
        if value == "lock":
            await self.request_relock(CAUSE_MANUAL_LOCK)
        elif value == "unlock":
            await self.request_unlock(CAUSE_MANUAL_UNLOCK)

    async def handle_text_input_response(self, feedback_id: str, text: str) -> None:
        if feedback_id == PIN_FEEDBACK_ID:
            await self.submit_pin(text)

    async def handle_relock_timer_expired(self, generation: int) -> None:
        if generation != self._timer_generation:
            logger.debug("Ignoring superseded relock timer %d", generation)
            return
        await self.request_relock(CAUSE_TIMEOUT)

    async def dispatch(self, event: Event) -> None:
        """Route one inbound event to its handler; unknown events are ignored."""
        if isinstance(event, WidgetAction):
            await self.handle_widget_action(
                event.widget_id, event.action_type, event.value
            )
        elif isinstance(event, PanelClicked):
            await self.handle_panel_clicked(event.panel_id)
        elif isinstance(event, PanelOpened):
            await self.handle_panel_opened(event.panel_id)
        elif isinstance(event, PageClosed):
            await self.handle_page_closed(event.page_id)
        elif isinstance(event, TextInputResponse):
            await self.handle_text_input_response(event.feedback_id, event.text)
        elif isinstance(event, RelockRequested):
            await self.request_relock(event.cause)
        elif isinstance(event, RelockTimerExpired):
            await self.handle_relock_timer_expired(event.generation)
        else:
            logger.debug("Ignoring unknown event %r", event)
