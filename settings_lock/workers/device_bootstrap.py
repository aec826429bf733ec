"""
Device bootstrap: background task that prepares the device once at startup.

Design
------
- Saves both UI extension panels (idempotent: saving replaces by id).
- Registers HttpFeedback for the five UI expressions the controller listens
  to, when ``FEEDBACK_URL`` is configured.  Without it, events must reach
  ``POST /feedback`` by other means (e.g. a device-side forwarder).
- ``FEEDBACK_TOKEN``, when set, is appended to the registered URL as
  ``?token=`` so the receiver can tell the device apart from other callers.
- Enqueues ``RelockRequested("Script Initialization")`` rather than calling
  the controller directly, so the initial relock goes through the dispatcher
  like every other state change.
- If the device is unreachable the bootstrap backs off exponentially
  (2 s, 4 s, ... up to 60 s) and tries again until it succeeds or is cancelled.
"""

import asyncio
import logging

import httpx

from settings_lock.config import Settings, effective_relock_minutes
from settings_lock.device.feedback import FEEDBACK_EXPRESSIONS
from settings_lock.device.panels import panel_definitions
from settings_lock.device.xapi import XapiClient
from settings_lock.events import RelockRequested, post_internal_event

logger = logging.getLogger(__name__)

CAUSE_STARTUP = "Script Initialization"

_BACKOFF_BASE: float = 2.0
_BACKOFF_MAX: float = 60.0


def feedback_server_url(cfg: Settings) -> str:
    """The URL registered with the device, carrying ``FEEDBACK_TOKEN`` if set."""
    if not cfg.feedback_token:
        return cfg.feedback_url
    url = httpx.URL(cfg.feedback_url).copy_merge_params({"token": cfg.feedback_token})
    return str(url)


async def _bootstrap_once(client: XapiClient, cfg: Settings) -> None:
    """Save panels and register feedback. Raises on any device failure."""
    for panel_id, xml in panel_definitions().items():
        await client.save_panel(panel_id, xml)
        logger.info("Saved UI panel %s", panel_id)

    if cfg.feedback_url:
        await client.register_feedback(
            cfg.feedback_slot, feedback_server_url(cfg), FEEDBACK_EXPRESSIONS
        )
        logger.info(
            "Registered HttpFeedback slot %d -> %s", cfg.feedback_slot, cfg.feedback_url
        )
        if not cfg.feedback_token:
            logger.warning("FEEDBACK_TOKEN not set; POST /feedback accepts any caller")
    else:
        logger.warning("FEEDBACK_URL not set; skipping HttpFeedback registration")


async def run_device_bootstrap(client: XapiClient, cfg: Settings) -> None:
    """
    Long-running coroutine: retry ``_bootstrap_once`` until it succeeds, then
    force the initial relock and exit.

    Intended to be launched as a background task from the FastAPI lifespan and
    cancelled on shutdown.
    """
    logger.info("Device bootstrap starting (host=%s)", client.host)
    backoff: float = _BACKOFF_BASE

    while True:
        try:
            await _bootstrap_once(client, cfg)
            break

        except asyncio.CancelledError:
            logger.info("Device bootstrap cancelled")
            return

        except Exception as exc:
            logger.error("Device bootstrap failed: %s; retrying in %.0fs", exc, backoff)
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, _BACKOFF_MAX)

    await post_internal_event(RelockRequested(CAUSE_STARTUP))
    logger.info(
        "Solution Lock timeout set to %d minute(s)",
        effective_relock_minutes(cfg.relock_timeout_minutes),
    )
