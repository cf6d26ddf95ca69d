import asyncio
import json
import uuid
from datetime import datetime, timezone

import pytest

import checkin_svc.core.nats as nats_client
from checkin_svc.models import AttendanceStatus, Attendee, ScanAction
from checkin_svc.services.scans import ScanOutcome, notify_scan_recorded


class Unreachable:
    is_connected = False

    async def connect(self, **kwargs):
        await asyncio.sleep(60)


class Connected:
    is_connected = True

    def __init__(self, delay=0.0):
        self.delay = delay
        self.sent = []

    async def publish(self, subject, payload):
        await asyncio.sleep(self.delay)
        self.sent.append((subject, json.loads(payload)))


@pytest.fixture()
def enabled(monkeypatch):
    monkeypatch.setattr(nats_client._settings, "nats_enabled", True)
    monkeypatch.setattr(nats_client, "_nats", None)
    return monkeypatch


def _outcome():
    att = Attendee(id=uuid.uuid4(), scan_identifier="QR-EVT", device_id="gate-1", last_scanned_by="Amina")
    return ScanOutcome(
        attendee=att, action=ScanAction.CHECK_IN, status=AttendanceStatus.CHECKED_IN,
        scanned_at=datetime(2024, 5, 1, 18, 30, tzinfo=timezone.utc),
    )


def test_publish_never_dials_the_broker(enabled):
    def no_dial(*args, **kwargs):
        raise AssertionError("publish opened a connection")

    enabled.setattr(nats_client, "NATS", no_dial)
    assert asyncio.run(nats_client.publish_scan({"idempotency_key": "k"})) is False


def test_connect_attempt_is_bounded(enabled):
    enabled.setattr(nats_client._settings, "nats_connect_timeout_sec", 0.05)
    enabled.setattr(nats_client, "NATS", Unreachable)

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(nats_client.nats_connect())
    assert nats_client._nats is None

    # the reconnect job logs and carries on
    asyncio.run(nats_client.ensure_nats_connected())
    assert not nats_client.nats_is_connected()


def test_scan_event_is_published_when_connected(enabled):
    nc = Connected()
    enabled.setattr(nats_client, "_nats", nc)

    asyncio.run(notify_scan_recorded(_outcome()))

    [(subject, evt)] = nc.sent
    assert subject == nats_client._settings.nats_subject_scan
    assert evt["scan_identifier"] == "QR-EVT"
    assert evt["action"] == "check_in"
    assert evt["device_id"] == "gate-1"
    assert evt["operator_name"] == "Amina"
    assert evt["scanned_at"] == "2024-05-01T18:30:00Z"
    assert evt["idempotency_key"].endswith(":check_in:2024-05-01T18:30:00Z")


def test_stalled_publish_is_abandoned(enabled):
    enabled.setattr(nats_client._settings, "nats_publish_timeout_sec", 0.05)
    nc = Connected(delay=60)
    enabled.setattr(nats_client, "_nats", nc)

    asyncio.run(asyncio.wait_for(notify_scan_recorded(_outcome()), timeout=5))
    assert nc.sent == []
