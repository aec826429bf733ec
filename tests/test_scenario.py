"""
End-to-end lock flows driven through the event queue and dispatcher, with a
mocked device.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

import settings_lock.controller as controller_module
import settings_lock.events as events_module
from settings_lock.controller import (
    PIN_PROMPT_TITLE,
    PIN_RETRY_TITLE,
    LockController,
    LockStatus,
)
from settings_lock.device.panels import (
    ADMIN_PAGE_ID,
    HIDDEN_PANEL_ID,
    LOCK_WIDGET_ID,
    PIN_FEEDBACK_ID,
    VISIBLE_PANEL_ID,
)
from settings_lock.device.xapi import XapiClient
from settings_lock.events import (
    PageClosed,
    PanelClicked,
    PanelOpened,
    RelockRequested,
    TextInputResponse,
    WidgetAction,
    dispatch_task,
    get_event_queue,
    queue_event,
)

_PIN = "00000000"


@pytest.fixture(autouse=True)
def fast_minutes(monkeypatch):
    # 10 configured minutes become 0.1 s
    monkeypatch.setattr(controller_module, "SECONDS_PER_MINUTE", 0.01)
    monkeypatch.setattr(events_module, "_event_queue", None)


@pytest.fixture
def ui() -> AsyncMock:
    return AsyncMock(spec=XapiClient)


async def _deliver(event) -> None:
    await queue_event(event)
    await get_event_queue().join()


@pytest.mark.asyncio
async def test_full_lock_cycle(ui):
    controller = LockController(ui=ui, pin=_PIN, relock_timeout_minutes=10)
    dispatcher = asyncio.create_task(dispatch_task(controller))
    try:
        # Startup
        await _deliver(RelockRequested("Script Initialization"))
        assert controller.status is LockStatus.LOCKED

        # Click the visible panel -> PIN prompt
        await _deliver(PanelClicked(VISIBLE_PANEL_ID))
        assert ui.display_text_input.await_args.kwargs["title"] == PIN_PROMPT_TITLE

        # Wrong PIN -> relock + "try again" prompt
        ui.reset_mock()
        await _deliver(TextInputResponse(PIN_FEEDBACK_ID, "11111111"))
        assert controller.status is LockStatus.LOCKED
        ui.close_panel.assert_awaited()
        assert ui.display_text_input.await_args.kwargs["title"] == PIN_RETRY_TITLE

        # Correct PIN -> hidden panel opens and stays open
        ui.reset_mock()
        await _deliver(TextInputResponse(PIN_FEEDBACK_ID, _PIN))
        await _deliver(PanelOpened(HIDDEN_PANEL_ID))
        assert controller.panel_locked is False
        ui.open_panel.assert_awaited_once_with(HIDDEN_PANEL_ID)
        ui.close_panel.assert_not_awaited()

        # Press Unlock -> settings unlocked, alert, timer, panel closes
        ui.reset_mock()
        await _deliver(WidgetAction(LOCK_WIDGET_ID, "released", "unlock"))
        assert controller.status is LockStatus.UNLOCKED
        assert controller.relock_pending is True
        ui.set_settings_menu_mode.assert_awaited_once_with("Unlocked")
        ui.display_alert.assert_awaited_once()
        ui.close_panel.assert_awaited_once()

        # Walk away -> automatic relock
        ui.reset_mock()
        await asyncio.sleep(0.3)
        await get_event_queue().join()
        assert controller.status is LockStatus.LOCKED
        ui.set_settings_menu_mode.assert_awaited_once_with("Locked")
        ui.unset_widget_value.assert_awaited_once_with(LOCK_WIDGET_ID)
    finally:
        dispatcher.cancel()
        await asyncio.gather(dispatcher, return_exceptions=True)
        await controller.shutdown()


@pytest.mark.asyncio
async def test_abandoned_admin_page_relocks(ui):
    controller = LockController(ui=ui, pin=_PIN, relock_timeout_minutes=10)
    dispatcher = asyncio.create_task(dispatch_task(controller))
    try:
        await _deliver(TextInputResponse(PIN_FEEDBACK_ID, _PIN))
        assert controller.status is LockStatus.PANEL_UNLOCKED

        ui.reset_mock()
        await _deliver(PageClosed(ADMIN_PAGE_ID))

        assert controller.status is LockStatus.LOCKED
        ui.set_settings_menu_mode.assert_awaited_once_with("Locked")
    finally:
        dispatcher.cancel()
        await asyncio.gather(dispatcher, return_exceptions=True)


@pytest.mark.asyncio
async def test_repeated_unlocks_relock_once(ui):
    """Only the most recent unlock's timer may relock."""
    controller = LockController(ui=ui, pin=_PIN, relock_timeout_minutes=10)
    dispatcher = asyncio.create_task(dispatch_task(controller))
    try:
        await _deliver(TextInputResponse(PIN_FEEDBACK_ID, _PIN))
        for _ in range(3):
            await _deliver(WidgetAction(LOCK_WIDGET_ID, "released", "unlock"))
            await asyncio.sleep(0.02)

        ui.reset_mock()
        await asyncio.sleep(0.3)
        await get_event_queue().join()

        assert controller.status is LockStatus.LOCKED
        ui.unset_widget_value.assert_awaited_once_with(LOCK_WIDGET_ID)
    finally:
        dispatcher.cancel()
        await asyncio.gather(dispatcher, return_exceptions=True)
        await controller.shutdown()


@pytest.mark.asyncio
async def test_manual_lock_beats_timer(ui):
    controller = LockController(ui=ui, pin=_PIN, relock_timeout_minutes=10)
    dispatcher = asyncio.create_task(dispatch_task(controller))
    try:
        await _deliver(TextInputResponse(PIN_FEEDBACK_ID, _PIN))
        await _deliver(WidgetAction(LOCK_WIDGET_ID, "released", "unlock"))
        await _deliver(WidgetAction(LOCK_WIDGET_ID, "released", "lock"))

        ui.reset_mock()
        await asyncio.sleep(0.3)
        await get_event_queue().join()

        assert controller.status is LockStatus.LOCKED
        assert ui.method_calls == []
    finally:
        dispatcher.cancel()
        await asyncio.gather(dispatcher, return_exceptions=True)


@pytest.mark.asyncio
async def test_relock_survives_full_queue(ui, monkeypatch):
    """Device events filling the queue cannot crowd out the relock timer."""
    monkeypatch.setattr(events_module, "_MAX_QUEUE_SIZE", 2)
    controller = LockController(ui=ui, pin=_PIN, relock_timeout_minutes=10)

    assert await queue_event(PanelClicked("other_panel_1")) is True
    assert await queue_event(PanelClicked("other_panel_2")) is True
    assert await queue_event(PanelClicked("other_panel_3")) is False

    await controller.submit_pin(_PIN)
    await controller.request_unlock("test")
    await asyncio.sleep(0.3)
    assert controller.relock_pending is False

    dispatcher = asyncio.create_task(dispatch_task(controller))
    try:
        await get_event_queue().join()
        assert controller.status is LockStatus.LOCKED
        ui.set_settings_menu_mode.assert_awaited_with("Locked")
    finally:
        dispatcher.cancel()
        await asyncio.gather(dispatcher, return_exceptions=True)
        await controller.shutdown()
