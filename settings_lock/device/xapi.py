"""
xAPI client: issues commands and configuration changes to the device over
its HTTP ``putxml`` endpoint.

Every xAPI path maps onto nested XML elements, e.g.::

    xCommand UserInterface Extensions Panel Open PanelId: settings_admin_hidden

becomes::

    <Command><UserInterface><Extensions><Panel><Open>
      <PanelId>settings_admin_hidden</PanelId>
    </Open></Panel></Extensions></UserInterface></Command>

Multiline payloads (panel definitions) travel in a trailing ``<body>``
element.  Repeated parameters (``Expression``) are sent as sibling elements
with an ``item`` attribute.

Errors
------
Transport failures, HTTP error statuses and ``status="Error"`` results in the
device's reply are all raised as ``XapiError``.  Callers decide whether a
failure matters; the lock controller treats device commands as best-effort.

Usage
-----
    client = XapiClient.from_settings(settings)
    try:
        await client.close_panel()
    finally:
        await client.aclose()
"""

import logging
import time
import xml.etree.ElementTree as ET
from typing import Any, Sequence

import httpx

from settings_lock.config import Settings
from settings_lock.device.connection import command_lock

logger = logging.getLogger(__name__)

_PING_LOCATION = "/Status/SystemUnit/Uptime"


class XapiError(Exception):
    """A device command failed or could not be delivered."""


def build_request(
    root_tag: str,
    path: str,
    params: dict[str, Any] | None = None,
    body: str | None = None,
) -> str:
    """
    Build a ``putxml`` document for an xAPI *path* such as
    ``"UserInterface Extensions Panel Close"``.
    """
    root = ET.Element(root_tag)
    node = root
    for part in path.split():
        node = ET.SubElement(node, part)

    for name, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            for item, entry in enumerate(value, start=1):
                child = ET.SubElement(node, name, item=str(item))
                child.text = str(entry)
        else:
            child = ET.SubElement(node, name)
            child.text = str(value)

    if body is not None:
        ET.SubElement(node, "body").text = body

    return ET.tostring(root, encoding="unicode")


def build_configuration(path: str, value: str) -> str:
    """Build a ``putxml`` document setting a configuration leaf."""
    *parents, leaf = path.split()
    return build_request("Configuration", " ".join(parents), {leaf: value})


def _raise_for_result(text: str) -> None:
    """Raise ``XapiError`` if the device reply reports an error."""
    if not text.strip():
        return
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise XapiError(f"Unreadable device response: {exc}") from exc

    for element in root.iter():
        if element.get("status", "").lower() == "error":
            reason = element.findtext(".//Reason") or element.tag
            raise XapiError(f"Device rejected request: {reason}")


class XapiClient:
    """Async HTTP client for the device's xAPI."""

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        verify_tls: bool = False,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.host = host
        self._http = httpx.AsyncClient(
            base_url=f"https://{host}",
            auth=(username, password),
            verify=verify_tls,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, cfg: Settings) -> "XapiClient":
        return cls(
            host=cfg.device_host,
            username=cfg.device_username,
            password=cfg.device_password,
            verify_tls=cfg.device_verify_tls,
            timeout=cfg.device_timeout,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── Transport ─────────────────────────────────────────────────────────────

    async def _putxml(self, document: str) -> None:
        async with command_lock:
            try:
                response = await self._http.post(
                    "/putxml",
                    content=document,
                    headers={"Content-Type": "text/xml"},
                )
            except httpx.RequestError as exc:
                raise XapiError(f"Device {self.host} unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise XapiError(
                f"Device {self.host} returned HTTP {response.status_code}"
            )
        _raise_for_result(response.text)

    async def command(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        body: str | None = None,
    ) -> None:
        """Run ``xCommand <path>`` with optional parameters and body."""
        logger.debug("xCommand %s %s", path, params or {})
        await self._putxml(build_request("Command", path, params, body))

    async def configure(self, path: str, value: str) -> None:
        """Run ``xConfiguration <path>: <value>``."""
        logger.debug("xConfiguration %s: %s", path, value)
        await self._putxml(build_configuration(path, value))

    async def ping(self) -> tuple[bool, float]:
        """
        Read a cheap status leaf to verify device connectivity.

        Returns
        -------
        (ok, latency_ms)
            ok         – True if the device answered with HTTP 200
            latency_ms – round-trip time in milliseconds
        """
        start = time.perf_counter()
        try:
            response = await self._http.get(
                "/getxml", params={"location": _PING_LOCATION}
            )
            ok = response.status_code == 200
        except httpx.RequestError as exc:
            logger.error("Device ping failed: %s", exc)
            ok = False
        latency_ms = (time.perf_counter() - start) * 1000
        return ok, round(latency_ms, 2)

    # ── UI commands used by the lock controller ───────────────────────────────

    async def display_text_input(
        self,
        title: str,
        text: str,
        feedback_id: str,
        input_type: str = "Password",
        duration: int = 45,
    ) -> None:
        await self.command(
            "UserInterface Message TextInput Display",
            {
                "Title": title,
                "Text": text,
                "FeedbackId": feedback_id,
                "InputType": input_type,
                "Duration": duration,
            },
        )

    async def open_panel(self, panel_id: str) -> None:
        await self.command("UserInterface Extensions Panel Open", {"PanelId": panel_id})

    async def close_panel(self) -> None:
        await self.command("UserInterface Extensions Panel Close")

    async def set_settings_menu_mode(self, mode: str) -> None:
        await self.configure("UserInterface SettingsMenu Mode", mode)

    async def display_alert(
        self, title: str, text: str, duration: int | None = None
    ) -> None:
        await self.command(
            "UserInterface Message Alert Display",
            {"Title": title, "Text": text, "Duration": duration},
        )

    async def clear_alert(self) -> None:
        await self.command("UserInterface Message Alert Clear")

    async def unset_widget_value(self, widget_id: str) -> None:
        await self.command(
            "UserInterface Extensions Widget UnsetValue", {"WidgetId": widget_id}
        )

    # ── Bootstrap ─────────────────────────────────────────────────────────────

    async def save_panel(self, panel_id: str, xml: str) -> None:
        await self.command(
            "UserInterface Extensions Panel Save", {"PanelId": panel_id}, body=xml
        )

    async def register_feedback(
        self, slot: int, server_url: str, expressions: Sequence[str]
    ) -> None:
        await self.command(
            "HttpFeedback Register",
            {
                "FeedbackSlot": slot,
                "ServerUrl": server_url,
                "Format": "JSON",
                "Expression": list(expressions),
            },
        )
