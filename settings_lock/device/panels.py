"""
UI extension definitions for the settings admin panels.

Two panels are saved on the device at startup:

- ``settings_admin_visible``: a Control Panel button; the only entry point
  the user can see.  Clicking it triggers the PIN prompt.
- ``settings_admin_hidden``: a hidden panel holding a single page with two
  notes and a Lock / Unlock group button.  It is only ever opened by the
  controller after a correct PIN.

Saving a panel with an existing id replaces it, so rebuilding on every start
is idempotent.
"""

import xml.etree.ElementTree as ET

VISIBLE_PANEL_ID = "settings_admin_visible"
HIDDEN_PANEL_ID = "settings_admin_hidden"
ADMIN_PAGE_ID = f"{HIDDEN_PANEL_ID}~panelUI"
LOCK_WIDGET_ID = f"{HIDDEN_PANEL_ID}~settingsLock"
PIN_FEEDBACK_ID = "settingsAdminPin"

PANEL_NAME = "Settings Admin"

_NOTES = (
    ("note1", "Pressing Unlock will unlock the Device's Settings."),
    ("note2", "Please Lock this back down after you're done making your changes"),
)


def _text(parent: ET.Element, tag: str, value: str) -> ET.Element:
    element = ET.SubElement(parent, tag)
    element.text = value
    return element


def _panel(location: str, icon: str) -> tuple[ET.Element, ET.Element]:
    root = ET.Element("Extensions")
    panel = ET.SubElement(root, "Panel")
    _text(panel, "Order", "999")
    _text(panel, "Origin", "local")
    _text(panel, "Location", location)
    _text(panel, "Icon", icon)
    _text(panel, "Name", PANEL_NAME)
    _text(panel, "ActivityType", "Custom")
    return root, panel


def visible_panel_xml() -> str:
    """Return the Control Panel entry point definition."""
    root, _ = _panel("ControlPanel", "Helpdesk")
    return ET.tostring(root, encoding="unicode")


def hidden_panel_xml() -> str:
    """Return the hidden admin panel definition with its lock toggle."""
    root, panel = _panel("Hidden", "Lightbulb")
    page = ET.SubElement(panel, "Page")
    _text(page, "Name", PANEL_NAME)

    for suffix, label in _NOTES:
        row = ET.SubElement(page, "Row")
        _text(row, "Name", "Row")
        widget = ET.SubElement(row, "Widget")
        _text(widget, "WidgetId", f"{HIDDEN_PANEL_ID}~{suffix}")
        _text(widget, "Name", label)
        _text(widget, "Type", "Text")
        _text(widget, "Options", "size=4;fontSize=normal;align=center")

    row = ET.SubElement(page, "Row")
    _text(row, "Name", "Row")
    widget = ET.SubElement(row, "Widget")
    _text(widget, "WidgetId", LOCK_WIDGET_ID)
    _text(widget, "Type", "GroupButton")
    _text(widget, "Options", "size=4")
    value_space = ET.SubElement(widget, "ValueSpace")
    for key, name in (("lock", "Lock"), ("unlock", "Unlock")):
        value = ET.SubElement(value_space, "Value")
        _text(value, "Key", key)
        _text(value, "Name", name)

    _text(page, "PageId", ADMIN_PAGE_ID)
    _text(page, "Options", "hideRowNames=1")
    return ET.tostring(root, encoding="unicode")


def panel_definitions() -> dict[str, str]:
    """Return ``{panel_id: xml}`` for every panel saved at startup."""
    return {
        VISIBLE_PANEL_ID: visible_panel_xml(),
        HIDDEN_PANEL_ID: hidden_panel_xml(),
    }
