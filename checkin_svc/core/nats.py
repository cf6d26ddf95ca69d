from __future__ import annotations
import asyncio
import json
import logging
from typing import Sequence
from nats.aio.client import Client as NATS
from .config import get_settings

_settings = get_settings()
_nats: NATS | None = None
logger = logging.getLogger(__name__)

def nats_is_connected() -> bool:
    return _nats is not None and _nats.is_connected

async def nats_connect():
    """
    Connect with a bounded wait. A fresh client is used per attempt so a timed-out
    attempt never leaves a half-connected client behind; once connected, the client
    reconnects on its own.
    """
    global _nats
    if nats_is_connected():
        return
    servers: Sequence[str] = [u.strip() for u in _settings.nats_urls.split(",") if u.strip()]
    nc = NATS()
    await asyncio.wait_for(
        nc.connect(servers=servers, allow_reconnect=True, connect_timeout=2),
        timeout=_settings.nats_connect_timeout_sec,
    )
    _nats = nc

async def ensure_nats_connected():
    """Scheduler job: retry the broker connection while it is down."""
    if nats_is_connected():
        return
    try:
        await nats_connect()
        logger.info("NATS connected")
    except Exception as e:
        logger.warning("NATS still unavailable: %s", e)

async def nats_close():
    global _nats
    try:
        if nats_is_connected():
            await _nats.drain()
    except Exception as e:
        logger.warning("NATS drain failed: %s", e)
    _nats = None

async def publish_scan(evt: dict) -> bool:
    """
    evt = {
      "attendee_id": str,
      "scan_identifier": str,
      "action": "check_in" | "check_out",
      "status": str,
      "device_id": str | None,
      "operator_name": str | None,
      "scanned_at": iso8601,
      "idempotency_key": "attendee_id:action:scanned_at"
    }

    Returns False when the event was not handed to the broker.
    """
    if not _settings.nats_enabled:
        return False
    if not nats_is_connected():
        logger.warning("NATS not connected, dropping scan event %s", evt.get("idempotency_key"))
        return False
    await asyncio.wait_for(
        _nats.publish(_settings.nats_subject_scan, json.dumps(evt).encode("utf-8")),
        timeout=_settings.nats_publish_timeout_sec,
    )
    return True
