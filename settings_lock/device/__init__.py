# Device xAPI helpers
from settings_lock.device.feedback import FEEDBACK_EXPRESSIONS, parse_feedback
from settings_lock.device.panels import (
    ADMIN_PAGE_ID,
    HIDDEN_PANEL_ID,
    LOCK_WIDGET_ID,
    PIN_FEEDBACK_ID,
    VISIBLE_PANEL_ID,
    panel_definitions,
)
from settings_lock.device.xapi import XapiClient, XapiError

__all__ = [
    "FEEDBACK_EXPRESSIONS",
    "parse_feedback",
    "ADMIN_PAGE_ID",
    "HIDDEN_PANEL_ID",
    "LOCK_WIDGET_ID",
    "PIN_FEEDBACK_ID",
    "VISIBLE_PANEL_ID",
    "panel_definitions",
    "XapiClient",
    "XapiError",
]
