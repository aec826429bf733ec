"""
HttpFeedback support: the device POSTs subscribed events as JSON to
``POST /feedback``.

The service registers the expressions in ``FEEDBACK_EXPRESSIONS`` at startup.
Each delivered document nests the event under its xAPI path, with leaf
values usually wrapped as ``{"Value": ...}``::

    {"Event": {"UserInterface": {"Extensions": {"Panel": {"Clicked": {
        "PanelId": {"Value": "settings_admin_visible"}}}}}}}

``parse_feedback()`` turns one such document into an inbound event.  Anything
it does not recognise yields ``None``; the caller acknowledges and drops it.
"""

from typing import Any

from settings_lock.events import (
    Event,
    PageClosed,
    PanelClicked,
    PanelOpened,
    TextInputResponse,
    WidgetAction,
)

FEEDBACK_EXPRESSIONS: tuple[str, ...] = (
    "/Event/UserInterface/Extensions/Widget/Action",
    "/Event/UserInterface/Extensions/Panel/Clicked",
    "/Event/UserInterface/Extensions/Panel/Open",
    "/Event/UserInterface/Extensions/Event/PageClosed",
    "/Event/UserInterface/Message/TextInput/Response",
)


def _dig(node: Any, *keys: str) -> dict[str, Any] | None:
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node if isinstance(node, dict) else None


def _leaf(node: dict[str, Any], key: str) -> str | None:
    """Return a leaf value, unwrapping ``{"Value": x}`` if present."""
    value = node.get(key)
    if isinstance(value, dict):
        value = value.get("Value")
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


def parse_feedback(payload: Any) -> Event | None:
    """Map a device feedback document onto an inbound event, or ``None``."""
    ui = _dig(payload, "Event", "UserInterface")
    if ui is None:
        return None

    action = _dig(ui, "Extensions", "Widget", "Action")
    if action is not None:
        widget_id = _leaf(action, "WidgetId")
        action_type = _leaf(action, "Type")
        if widget_id is None or action_type is None:
            return None
        return WidgetAction(widget_id, action_type, _leaf(action, "Value") or "")

    clicked = _dig(ui, "Extensions", "Panel", "Clicked")
    if clicked is not None:
        panel_id = _leaf(clicked, "PanelId")
        return PanelClicked(panel_id) if panel_id is not None else None

    opened = _dig(ui, "Extensions", "Panel", "Open")
    if opened is not None:
        panel_id = _leaf(opened, "PanelId")
        return PanelOpened(panel_id) if panel_id is not None else None

    page_closed = _dig(ui, "Extensions", "Event", "PageClosed")
    if page_closed is not None:
        page_id = _leaf(page_closed, "PageId")
        return PageClosed(page_id) if page_id is not None else None

    response = _dig(ui, "Message", "TextInput", "Response")
    if response is not None:
        feedback_id = _leaf(response, "FeedbackId")
        if feedback_id is None:
            return None
        return TextInputResponse(feedback_id, _leaf(response, "Text") or "")

    return None
