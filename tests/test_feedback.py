"""
Tests for HttpFeedback parsing (settings_lock.device.feedback) and the
POST /feedback receiver.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from settings_lock.config import Settings
from settings_lock.device.feedback import parse_feedback
from settings_lock.events import (
    PageClosed,
    PanelClicked,
    PanelOpened,
    TextInputResponse,
    WidgetAction,
)
from settings_lock.main import app

client = TestClient(app)


def _wrap(**leaves) -> dict:
    return {key: {"Value": value} for key, value in leaves.items()}


def _ui_event(*path: str, leaves: dict) -> dict:
    node: dict = leaves
    for key in reversed(path):
        node = {key: node}
    return {"Event": {"UserInterface": node}}


# ── parse_feedback ────────────────────────────────────────────────────────────


class TestParseFeedback:
    def test_widget_action(self):
        payload = _ui_event(
            "Extensions",
            "Widget",
            "Action",
            leaves={
                **_wrap(
                    WidgetId="settings_admin_hidden~settingsLock",
                    Type="released",
                    Value="unlock",
                ),
                "id": 1,
            },
        )
        assert parse_feedback(payload) == WidgetAction(
            "settings_admin_hidden~settingsLock", "released", "unlock"
        )

    def test_widget_action_with_bare_values(self):
        payload = _ui_event(
            "Extensions",
            "Widget",
            "Action",
            leaves={"WidgetId": "w", "Type": "pressed", "Value": ""},
        )
        assert parse_feedback(payload) == WidgetAction("w", "pressed", "")

    def test_panel_clicked(self):
        payload = _ui_event(
            "Extensions",
            "Panel",
            "Clicked",
            leaves=_wrap(PanelId="settings_admin_visible"),
        )
        assert parse_feedback(payload) == PanelClicked("settings_admin_visible")

    def test_panel_opened(self):
        payload = _ui_event(
            "Extensions",
            "Panel",
            "Open",
            leaves=_wrap(PanelId="settings_admin_hidden"),
        )
        assert parse_feedback(payload) == PanelOpened("settings_admin_hidden")

    def test_page_closed(self):
        payload = _ui_event(
            "Extensions",
            "Event",
            "PageClosed",
            leaves=_wrap(PageId="settings_admin_hidden~panelUI"),
        )
        assert parse_feedback(payload) == PageClosed("settings_admin_hidden~panelUI")

    def test_text_input_response(self):
        payload = _ui_event(
            "Message",
            "TextInput",
            "Response",
            leaves=_wrap(FeedbackId="settingsAdminPin", Text="00000000"),
        )
        assert parse_feedback(payload) == TextInputResponse(
            "settingsAdminPin", "00000000"
        )

    def test_numeric_pin_is_stringified(self):
        payload = _ui_event(
            "Message",
            "TextInput",
            "Response",
            leaves=_wrap(FeedbackId="settingsAdminPin", Text=1234),
        )
        assert parse_feedback(payload) == TextInputResponse("settingsAdminPin", "1234")

    def test_missing_required_leaf_is_ignored(self):
        payload = _ui_event("Extensions", "Panel", "Clicked", leaves={})
        assert parse_feedback(payload) is None

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            [],
            "Event",
            {},
            {"Status": {"Audio": {"Volume": {"Value": 50}}}},
            {"Event": {"UserInterface": {"Extensions": {"Widget": {"LayoutUpdated": {}}}}}},
            {"Event": {"UserInterface": "nope"}},
        ],
    )
    def test_unrecognised_documents(self, payload):
        assert parse_feedback(payload) is None


# ── POST /feedback ────────────────────────────────────────────────────────────


class TestFeedbackEndpoint:
    def test_accepts_and_queues_event(self):
        payload = _ui_event(
            "Extensions",
            "Panel",
            "Clicked",
            leaves=_wrap(PanelId="settings_admin_visible"),
        )
        with patch(
            "settings_lock.api.routes.feedback.queue_event",
            new=AsyncMock(return_value=True),
        ) as queue_mock:
            response = client.post("/feedback", json=payload)

        assert response.status_code == 202
        assert response.json() == {"status": "accepted", "event": "PanelClicked"}
        queue_mock.assert_awaited_once_with(PanelClicked("settings_admin_visible"))

    def test_ignores_unrecognised_document(self):
        queue_mock = AsyncMock(return_value=True)
        with patch("settings_lock.api.routes.feedback.queue_event", new=queue_mock):
            response = client.post("/feedback", json={"Status": {}})

        assert response.status_code == 202
        assert response.json()["status"] == "ignored"
        queue_mock.assert_not_awaited()

    def test_rejects_non_json_body(self):
        response = client.post(
            "/feedback", content=b"<Event/>", headers={"Content-Type": "text/xml"}
        )
        assert response.status_code == 400

    def test_queue_full_returns_503(self):
        payload = _ui_event(
            "Extensions",
            "Panel",
            "Open",
            leaves=_wrap(PanelId="settings_admin_hidden"),
        )
        with patch(
            "settings_lock.api.routes.feedback.queue_event",
            new=AsyncMock(return_value=False),
        ):
            response = client.post("/feedback", json=payload)

        assert response.status_code == 503


class TestFeedbackToken:
    _payload = _ui_event(
        "Extensions",
        "Widget",
        "Action",
        leaves=_wrap(
            WidgetId="settings_admin_hidden~settingsLock", Type="released", Value="unlock"
        ),
    )

    def test_missing_token_is_forbidden(self):
        queue_mock = AsyncMock(return_value=True)
        with (
            patch("settings_lock.api.deps.settings", Settings(feedback_token="s3cret")),
            patch("settings_lock.api.routes.feedback.queue_event", new=queue_mock),
        ):
            response = client.post("/feedback", json=self._payload)

        assert response.status_code == 403
        queue_mock.assert_not_awaited()

    def test_wrong_token_is_forbidden(self):
        queue_mock = AsyncMock(return_value=True)
        with (
            patch("settings_lock.api.deps.settings", Settings(feedback_token="s3cret")),
            patch("settings_lock.api.routes.feedback.queue_event", new=queue_mock),
        ):
            response = client.post("/feedback?token=guess", json=self._payload)

        assert response.status_code == 403
        queue_mock.assert_not_awaited()

    def test_matching_token_is_accepted(self):
        queue_mock = AsyncMock(return_value=True)
        with (
            patch("settings_lock.api.deps.settings", Settings(feedback_token="s3cret")),
            patch("settings_lock.api.routes.feedback.queue_event", new=queue_mock),
        ):
            response = client.post("/feedback?token=s3cret", json=self._payload)

        assert response.status_code == 202
        queue_mock.assert_awaited_once_with(
            WidgetAction("settings_admin_hidden~settingsLock", "released", "unlock")
        )
