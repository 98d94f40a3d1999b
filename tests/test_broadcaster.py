"""
test_broadcaster.py — Primary channel, fallback mailbox, sending policy.

Covers:
    • InProcessChannel delivery, ordering, subscriber failures, close
    • FallbackMailbox single-slot semantics and malformed reads
    • Broadcaster: primary first, mailbox only when primary is unavailable

Async code is driven with asyncio.run inside ordinary tests.

Run with:
    pytest tests/test_broadcaster.py -v
"""

from __future__ import annotations

import asyncio
from typing import List

import pytest

from backend.app.alerts.broadcaster import Broadcaster, BroadcastRoute
from backend.app.alerts.builder import build_alert
from backend.app.alerts.channels.in_process import InProcessChannel, UnsupportedChannel
from backend.app.alerts.channels.mailbox import FallbackMailbox
from backend.app.alerts.models import ChannelMessage, MessageType, ReporterIdentity
from backend.app.core.errors import ChannelUnavailableError
from backend.app.core.kv_store import MemoryKeyValueStore
from backend.app.facilities.catalog import default_catalog
from backend.app.spatial.geo import Location


ALERT_KEY = "sosAlertBroadcast"
LOCATION_KEY = "locationUpdateBroadcast"


def _make_alert(alert_id: str = "id_bcast001"):
    identity = ReporterIdentity("Asha Rao", "P1", "+91", "0x" + "1" * 40)
    return build_alert(
        identity, Location(12.9716, 77.5946), default_catalog(),
        id_factory=lambda: alert_id,
    )


def _make_broadcaster(primary=None, store=None):
    store = store or MemoryKeyValueStore()
    return Broadcaster(primary, store, alert_key=ALERT_KEY, location_key=LOCATION_KEY), store


class _Recorder:
    def __init__(self) -> None:
        self.messages: List[ChannelMessage] = []

    async def __call__(self, message: ChannelMessage) -> None:
        self.messages.append(message)


# ═══════════════════════════════════════════════════════════════════════════
# Primary channel
# ═══════════════════════════════════════════════════════════════════════════

class TestInProcessChannel:

    def test_delivers_to_all_subscribers(self):
        channel = InProcessChannel("tourist-safety-alerts")
        a, b = _Recorder(), _Recorder()
        channel.subscribe(a)
        channel.subscribe(b)
        message = ChannelMessage(MessageType.SOS_ALERT, {"id": "x"})
        assert asyncio.run(channel.publish(message)) == 2
        assert a.messages == [message]
        assert b.messages == [message]

    def test_late_subscriber_gets_nothing_earlier(self):
        channel = InProcessChannel("c")
        asyncio.run(channel.publish(ChannelMessage(MessageType.SOS_ALERT, {"id": "early"})))
        late = _Recorder()
        channel.subscribe(late)
        assert late.messages == []

    def test_preserves_send_order(self):
        channel = InProcessChannel("c")
        rec = _Recorder()
        channel.subscribe(rec)

        async def _send_all():
            for i in range(5):
                await channel.publish(ChannelMessage(MessageType.LOCATION_UPDATE, {"n": i}))

        asyncio.run(_send_all())
        assert [m.data["n"] for m in rec.messages] == [0, 1, 2, 3, 4]

    def test_failing_subscriber_skipped(self):
        channel = InProcessChannel("c")

        async def _boom(message):
            raise RuntimeError("render failed")

        rec = _Recorder()
        channel.subscribe(_boom)
        channel.subscribe(rec)
        delivered = asyncio.run(channel.publish(ChannelMessage(MessageType.SOS_ALERT, {})))
        assert delivered == 1
        assert len(rec.messages) == 1

    def test_unsubscribe(self):
        channel = InProcessChannel("c")
        rec = _Recorder()
        unsubscribe = channel.subscribe(rec)
        unsubscribe()
        unsubscribe()
        assert channel.subscriber_count == 0

    def test_closed_channel_unavailable(self):
        channel = InProcessChannel("c")
        channel.close()
        assert channel.available is False
        with pytest.raises(ChannelUnavailableError):
            asyncio.run(channel.publish(ChannelMessage(MessageType.SOS_ALERT, {})))
        with pytest.raises(ChannelUnavailableError):
            channel.subscribe(_Recorder())

    def test_unsupported_channel(self):
        channel = UnsupportedChannel("c")
        assert channel.available is False
        with pytest.raises(ChannelUnavailableError) as exc:
            asyncio.run(channel.publish(ChannelMessage(MessageType.SOS_ALERT, {})))
        assert exc.value.status_code == 503


# ═══════════════════════════════════════════════════════════════════════════
# Fallback mailbox
# ═══════════════════════════════════════════════════════════════════════════

class TestFallbackMailbox:

    def test_empty_slot_reads_none(self):
        mailbox = FallbackMailbox(MemoryKeyValueStore(), ALERT_KEY)
        assert asyncio.run(mailbox.read()) is None

    def test_write_then_read(self):
        mailbox = FallbackMailbox(MemoryKeyValueStore(), ALERT_KEY, clock=lambda: 1000)
        written = asyncio.run(mailbox.write({"id": "a"}))
        assert written.timestamp == 1000
        assert asyncio.run(mailbox.read()) == written

    def test_single_slot_keeps_latest_only(self):
        store = MemoryKeyValueStore()
        mailbox = FallbackMailbox(store, ALERT_KEY)

        async def _scenario():
            await mailbox.write({"id": "first"})
            await mailbox.write({"id": "second"})
            return await mailbox.read()

        assert asyncio.run(_scenario()).data == {"id": "second"}

    def test_timestamps_strictly_increase(self):
        mailbox = FallbackMailbox(MemoryKeyValueStore(), ALERT_KEY, clock=lambda: 500)

        async def _scenario():
            a = await mailbox.write({"n": 1})
            b = await mailbox.write({"n": 2})
            return a, b

        a, b = asyncio.run(_scenario())
        assert b.timestamp > a.timestamp

    def test_malformed_json_reads_none(self):
        store = MemoryKeyValueStore()
        asyncio.run(store.set_raw(ALERT_KEY, "{not json"))
        assert asyncio.run(FallbackMailbox(store, ALERT_KEY).read()) is None

    def test_wrong_shape_reads_none(self):
        store = MemoryKeyValueStore()
        asyncio.run(store.set_json(ALERT_KEY, {"data": {}}))
        assert asyncio.run(FallbackMailbox(store, ALERT_KEY).read()) is None


# ═══════════════════════════════════════════════════════════════════════════
# Sending policy
# ═══════════════════════════════════════════════════════════════════════════

class TestBroadcaster:

    def test_primary_used_when_available(self):
        channel = InProcessChannel("c")
        rec = _Recorder()
        channel.subscribe(rec)
        broadcaster, store = _make_broadcaster(channel)
        alert = _make_alert()

        route = asyncio.run(broadcaster.publish_alert(alert))

        assert route == BroadcastRoute.PRIMARY
        assert rec.messages[0].type == MessageType.SOS_ALERT
        assert rec.messages[0].data == alert.to_dict()
        assert asyncio.run(store.get_json(ALERT_KEY)) is None

    def test_primary_without_subscribers_does_not_fall_back(self):
        broadcaster, store = _make_broadcaster(InProcessChannel("c"))
        assert asyncio.run(broadcaster.publish_alert(_make_alert())) == BroadcastRoute.PRIMARY
        assert asyncio.run(store.get_json(ALERT_KEY)) is None

    def test_failing_subscriber_does_not_fall_back(self):
        channel = InProcessChannel("c")

        async def _boom(message):
            raise RuntimeError("observer crashed")

        channel.subscribe(_boom)
        broadcaster, store = _make_broadcaster(channel)
        assert asyncio.run(broadcaster.publish_alert(_make_alert())) == BroadcastRoute.PRIMARY
        assert asyncio.run(store.get_json(ALERT_KEY)) is None

    def test_unsupported_primary_writes_mailbox(self):
        broadcaster, store = _make_broadcaster(UnsupportedChannel("c"))
        alert = _make_alert()
        assert asyncio.run(broadcaster.publish_alert(alert)) == BroadcastRoute.FALLBACK
        envelope = asyncio.run(store.get_json(ALERT_KEY))
        assert envelope["data"] == alert.to_dict()
        assert isinstance(envelope["timestamp"], int)

    def test_no_primary_writes_mailbox(self):
        broadcaster, store = _make_broadcaster(None)
        assert asyncio.run(broadcaster.publish_alert(_make_alert())) == BroadcastRoute.FALLBACK

    def test_closed_primary_writes_mailbox(self):
        channel = InProcessChannel("c")
        channel.close()
        broadcaster, _ = _make_broadcaster(channel)
        assert asyncio.run(broadcaster.publish_alert(_make_alert())) == BroadcastRoute.FALLBACK

    def test_location_uses_its_own_mailbox(self):
        broadcaster, store = _make_broadcaster(None)
        route = asyncio.run(broadcaster.publish_location(Location(12.98, 77.6)))
        assert route == BroadcastRoute.FALLBACK
        assert asyncio.run(store.get_json(LOCATION_KEY))["data"] == {"lat": 12.98, "lng": 77.6}
        assert asyncio.run(store.get_json(ALERT_KEY)) is None

    def test_location_via_primary(self):
        channel = InProcessChannel("c")
        rec = _Recorder()
        channel.subscribe(rec)
        broadcaster, _ = _make_broadcaster(channel)
        asyncio.run(broadcaster.publish_location(Location(12.98, 77.6)))
        assert rec.messages[0].type == MessageType.LOCATION_UPDATE
