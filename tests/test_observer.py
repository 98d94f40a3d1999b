"""
test_observer.py — Dashboard observer: delivery paths and reconciliation.

Run with:
    pytest tests/test_observer.py -v
"""

from __future__ import annotations

import asyncio

import pytest

from backend.app.alerts.broadcaster import Broadcaster, BroadcastRoute
from backend.app.alerts.builder import build_alert
from backend.app.alerts.channels.in_process import InProcessChannel, UnsupportedChannel
from backend.app.alerts.channels.mailbox import FallbackMailbox
from backend.app.alerts.models import ReporterIdentity
from backend.app.alerts.observer import DashboardObserver
from backend.app.core.config import Settings
from backend.app.core.errors import NotFoundError
from backend.app.core.kv_store import MemoryKeyValueStore
from backend.app.facilities.catalog import default_catalog
from backend.app.spatial.geo import Location


CONFIG = Settings(MAILBOX_POLL_INTERVAL_SECONDS=0.01)


def _make_alert(alert_id: str = "id_obs0001"):
    identity = ReporterIdentity("Asha Rao", "P1", "+91", "0x" + "2" * 40)
    return build_alert(
        identity, Location(12.9716, 77.5946), default_catalog(),
        id_factory=lambda: alert_id,
    )


class _PollOnlyStore:
    """A store without write notifications (like Redis)."""

    def __init__(self) -> None:
        self._inner = MemoryKeyValueStore()

    async def get_json(self, key, default=None):
        return await self._inner.get_json(key, default)

    async def set_json(self, key, value):
        return await self._inner.set_json(key, value)

    async def delete(self, key):
        return await self._inner.delete(key)

    async def ping(self):
        return True


class TestStartup:

    def test_loads_persisted_alerts(self):
        kv = MemoryKeyValueStore()

        async def _scenario():
            await kv.set_json("sosAlerts", [_make_alert("a").to_dict(), _make_alert("b").to_dict()])
            observer = DashboardObserver(kv, config=CONFIG)
            await observer.start()
            await observer.stop()
            return observer

        assert len(asyncio.run(_scenario()).store) == 2

    def test_malformed_persisted_list_is_empty(self):
        kv = MemoryKeyValueStore()

        async def _scenario():
            await kv.set_raw("sosAlerts", "[{broken")
            observer = DashboardObserver(kv, config=CONFIG)
            await observer.start()
            await observer.stop()
            return observer

        assert len(asyncio.run(_scenario()).store) == 0

    def test_subscribes_when_primary_available(self):
        channel = InProcessChannel("c")

        async def _scenario():
            observer = DashboardObserver(_PollOnlyStore(), channel, config=CONFIG)
            await observer.start()
            state = (observer.subscribed, observer.polling, channel.subscriber_count)
            await observer.stop()
            return state, (observer.polling, channel.subscriber_count)

        (subscribed, polling, count), after = asyncio.run(_scenario())
        assert subscribed is True
        # The mailbox is still polled for reporters without the primary channel
        assert polling is True
        assert count == 1
        assert after == (False, 0)

    def test_polls_without_primary_or_notifications(self):
        async def _scenario():
            observer = DashboardObserver(_PollOnlyStore(), UnsupportedChannel("c"), config=CONFIG)
            await observer.start()
            polling = observer.polling
            await observer.stop()
            return polling, observer.polling

        assert asyncio.run(_scenario()) == (True, False)


class TestPrimaryDelivery:

    def test_alert_received_and_persisted(self):
        channel = InProcessChannel("c")
        kv = MemoryKeyValueStore()
        alert = _make_alert()

        async def _scenario():
            observer = DashboardObserver(kv, channel, config=CONFIG)
            await observer.start()
            await Broadcaster(channel, kv).publish_alert(alert)
            persisted = await kv.get_json("sosAlerts")
            await observer.stop()
            return observer, persisted

        observer, persisted = asyncio.run(_scenario())
        assert observer.store.get(alert.id) == alert
        assert [a["id"] for a in persisted] == [alert.id]

    def test_update_merges_into_existing(self):
        channel = InProcessChannel("c")
        alert = _make_alert()

        async def _scenario():
            observer = DashboardObserver(MemoryKeyValueStore(), channel, config=CONFIG)
            await observer.start()
            broadcaster = Broadcaster(channel, MemoryKeyValueStore())
            await broadcaster.publish_alert(alert)
            await broadcaster.publish_alert(alert.apply_patch({"sentToPolice": True}))
            return observer

        observer = asyncio.run(_scenario())
        assert len(observer.store) == 1
        assert observer.store.get(alert.id).sent_to_police is True

    def test_location_update_tracked(self):
        channel = InProcessChannel("c")

        async def _scenario():
            observer = DashboardObserver(MemoryKeyValueStore(), channel, config=CONFIG)
            await observer.start()
            await Broadcaster(channel, MemoryKeyValueStore()).publish_location(Location(12.99, 77.61))
            return observer

        assert asyncio.run(_scenario()).last_location == Location(12.99, 77.61)

    def test_malformed_alert_dropped(self):
        observer = DashboardObserver(MemoryKeyValueStore(), config=CONFIG)
        assert asyncio.run(observer.handle_alert({"id": "x"})) is None
        assert len(observer.store) == 0


class TestFallbackDelivery:

    def test_write_notification_delivers(self):
        kv = MemoryKeyValueStore()
        alert = _make_alert()

        async def _scenario():
            observer = DashboardObserver(kv, UnsupportedChannel("c"), config=CONFIG)
            await observer.start()
            await Broadcaster(UnsupportedChannel("c"), kv).publish_alert(alert)
            await observer.stop()
            return observer

        assert asyncio.run(_scenario()).store.get(alert.id) == alert

    def test_late_observer_catches_up_exactly_once(self):
        kv = _PollOnlyStore()
        alert = _make_alert("id_missed01")

        async def _scenario():
            # Sent while nobody was listening on the primary channel
            await Broadcaster(None, kv).publish_alert(alert)
            observer = DashboardObserver(kv, config=CONFIG)
            await observer.poll_mailbox()
            await observer.poll_mailbox()
            return observer

        observer = asyncio.run(_scenario())
        assert [a.id for a in observer.store.list()] == ["id_missed01"]

    def test_same_envelope_applied_once(self):
        kv = _PollOnlyStore()
        alert = _make_alert()

        async def _scenario():
            await Broadcaster(None, kv).publish_alert(alert)
            observer = DashboardObserver(kv, config=CONFIG)
            await observer.poll_mailbox()
            await observer.mark_resolved(alert.id)
            # The stale envelope is still in the slot; it must not undo the resolution
            await observer.poll_mailbox()
            return observer

        assert asyncio.run(_scenario()).store.get(alert.id).status == "resolved"

    def test_missing_two_writes_loses_the_first(self):
        kv = _PollOnlyStore()

        async def _scenario():
            broadcaster = Broadcaster(None, kv)
            await broadcaster.publish_alert(_make_alert("first"))
            await broadcaster.publish_alert(_make_alert("second"))
            observer = DashboardObserver(kv, config=CONFIG)
            await observer.poll_mailbox()
            return observer

        assert [a.id for a in asyncio.run(_scenario()).store.list()] == ["second"]

    def test_polling_loop_picks_up_writes(self):
        kv = _PollOnlyStore()
        alert = _make_alert()

        async def _scenario():
            observer = DashboardObserver(kv, config=CONFIG)
            await observer.start()
            await Broadcaster(None, kv).publish_alert(alert)
            await asyncio.sleep(0.1)
            await observer.stop()
            return observer

        assert alert.id in asyncio.run(_scenario()).store

    def test_mailbox_reaches_observer_with_primary_channel(self):
        kv = _PollOnlyStore()
        alert = _make_alert("id_mixed01")

        async def _scenario():
            observer = DashboardObserver(kv, InProcessChannel("c"), config=CONFIG)
            await observer.start()
            route = await Broadcaster(UnsupportedChannel("c"), kv).publish_alert(alert)
            await asyncio.sleep(0.1)
            await observer.stop()
            return observer, route

        observer, route = asyncio.run(_scenario())
        assert route == BroadcastRoute.FALLBACK
        assert [a.id for a in observer.store.list()] == ["id_mixed01"]

    def test_primary_and_mailbox_do_not_double_apply(self):
        kv = _PollOnlyStore()
        channel = InProcessChannel("c")
        alert = _make_alert()

        async def _scenario():
            observer = DashboardObserver(kv, channel, config=CONFIG)
            await observer.start()
            await Broadcaster(channel, kv).publish_alert(alert)
            await Broadcaster(UnsupportedChannel("c"), kv).publish_alert(alert)
            await asyncio.sleep(0.05)
            await observer.stop()
            return observer

        observer = asyncio.run(_scenario())
        assert len(observer.store) == 1
        assert observer.store.get(alert.id) == alert

    def test_location_via_mailbox(self):
        kv = _PollOnlyStore()

        async def _scenario():
            await FallbackMailbox(kv, "locationUpdateBroadcast").write({"lat": 1.0, "lng": 2.0})
            observer = DashboardObserver(kv, config=CONFIG)
            await observer.poll_mailbox()
            return observer

        assert asyncio.run(_scenario()).last_location == Location(1.0, 2.0)


class TestDashboardActions:

    def test_mark_resolved_persists(self):
        kv = MemoryKeyValueStore()
        alert = _make_alert()

        async def _scenario():
            observer = DashboardObserver(kv, config=CONFIG)
            await observer.handle_alert(alert.to_dict())
            await observer.mark_resolved(alert.id)
            return observer, await kv.get_json("sosAlerts")

        observer, persisted = asyncio.run(_scenario())
        assert observer.store.get(alert.id).status == "resolved"
        assert persisted[0]["status"] == "resolved"
        assert observer.summary()["resolved"] == 1

    def test_delete_persists(self):
        kv = MemoryKeyValueStore()
        alert = _make_alert()

        async def _scenario():
            observer = DashboardObserver(kv, config=CONFIG)
            await observer.handle_alert(alert.to_dict())
            await observer.delete(alert.id)
            return await kv.get_json("sosAlerts")

        assert asyncio.run(_scenario()) == []

    def test_unknown_id(self):
        observer = DashboardObserver(MemoryKeyValueStore(), config=CONFIG)
        with pytest.raises(NotFoundError):
            asyncio.run(observer.mark_resolved("nope"))
        with pytest.raises(NotFoundError):
            asyncio.run(observer.delete("nope"))
