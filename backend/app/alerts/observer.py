"""
observer.py — Dashboard-side receiver.

═══════════════════════════════════════════════════════════════════════════
DELIVERY PATHS
═══════════════════════════════════════════════════════════════════════════

    reporter ──primary channel──────────────────────► _on_message
        │                                                 │
        └──fallback mailbox──► watch() notification ──────┤
                               or poll every N seconds ───┤
                                                          ▼
                                              AlertStore.reconcile
                                                          │
                                                          ▼
                                               persist "sosAlerts"

    • Primary channel subscribed when the runtime has one.
    • Store write notifications used when the store supports watch()
      (memory backend); otherwise the mailboxes are polled. The mailbox
      path is attached even alongside the primary channel, since a
      reporter without one only ever writes the mailbox.
    • A mailbox envelope is applied once. The slot only holds the latest
      write, so an observer that misses two writes in a row loses the
      first one.

The observer's own list lives under the ``sosAlerts`` key; a malformed
value there is read as an empty list.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from backend.app.alerts.channels.in_process import PrimaryChannel
from backend.app.alerts.channels.mailbox import FallbackMailbox
from backend.app.alerts.models import (
    Alert,
    AlertStatus,
    ChannelMessage,
    MailboxEnvelope,
    MessageType,
)
from backend.app.alerts.store import AlertStore
from backend.app.core.config import Settings, settings as default_settings
from backend.app.core.kv_store import KeyValueStore
from backend.app.core.periodic import PeriodicTask
from backend.app.spatial.geo import Location

logger = logging.getLogger(__name__)


class DashboardObserver:
    """
    One dashboard process.

    Parameters
    ----------
    kv : KeyValueStore
        Shared persisted store (mailboxes + the observer's alert list).
    primary : PrimaryChannel | None
        Primary broadcast channel, if this runtime has one.
    store : AlertStore | None
        In-memory alert store; a fresh one by default.
    name : str
        Used in log lines.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        primary: Optional[PrimaryChannel] = None,
        *,
        store: Optional[AlertStore] = None,
        name: str = "dashboard",
        config: Optional[Settings] = None,
    ) -> None:
        config = config or default_settings
        self.kv = kv
        self.primary = primary
        self.store = store if store is not None else AlertStore()
        self.name = name

        self.alerts_key = config.ALERTS_KEY
        self.alert_mailbox = FallbackMailbox(kv, config.ALERT_MAILBOX_KEY)
        self.location_mailbox = FallbackMailbox(kv, config.LOCATION_MAILBOX_KEY)
        self.poll_interval = config.MAILBOX_POLL_INTERVAL_SECONDS

        self.last_location: Optional[Location] = None
        self._seen: Dict[str, MailboxEnvelope] = {}
        self._unsubscribe: List[Callable[[], None]] = []
        self._poller: Optional[PeriodicTask] = None

    @property
    def subscribed(self) -> bool:
        return bool(self._unsubscribe)

    @property
    def polling(self) -> bool:
        return self._poller is not None and self._poller.running

    # ── Lifecycle ───────────────────────────────────────────────────────

    async def start(self) -> None:
        """Load persisted alerts and attach to the available delivery paths."""
        loaded = self.store.load_from(await self.kv.get_json(self.alerts_key, []))
        logger.info(
            "Observer %s loaded %d alerts", self.name, loaded,
            extra={"observer": self.name},
        )

        has_primary = self.primary is not None and self.primary.available
        if has_primary:
            self._unsubscribe.append(self.primary.subscribe(self._on_message))

        watch = getattr(self.kv, "watch", None)
        if callable(watch):
            self._unsubscribe.append(watch(self._on_store_write))
        else:
            self._poller = PeriodicTask(
                f"{self.name}-mailbox-poll", self.poll_interval, self.poll_mailbox,
            )
            self._poller.start()

        logger.info(
            "Observer %s started (primary=%s, polling=%s)",
            self.name, has_primary, self.polling,
            extra={"observer": self.name},
        )

    async def stop(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        if self._poller is not None:
            self._poller.stop()
            await self._poller.wait_closed()
            self._poller = None

    # ── Incoming ────────────────────────────────────────────────────────

    async def _on_message(self, message: ChannelMessage) -> None:
        if message.type == MessageType.SOS_ALERT:
            await self.handle_alert(message.data)
        elif message.type == MessageType.LOCATION_UPDATE:
            self.handle_location(message.data)

    async def _on_store_write(self, key: str, value: Any) -> None:
        if key == self.alert_mailbox.key:
            await self._apply_alert_envelope(await self.alert_mailbox.read())
        elif key == self.location_mailbox.key:
            self._apply_location_envelope(await self.location_mailbox.read())

    async def poll_mailbox(self) -> None:
        """Read both mailboxes and apply anything not seen yet."""
        await self._apply_alert_envelope(await self.alert_mailbox.read())
        self._apply_location_envelope(await self.location_mailbox.read())

    def _is_new(self, key: str, envelope: Optional[MailboxEnvelope]) -> bool:
        if envelope is None or self._seen.get(key) == envelope:
            return False
        self._seen[key] = envelope
        return True

    async def _apply_alert_envelope(self, envelope: Optional[MailboxEnvelope]) -> None:
        if self._is_new(self.alert_mailbox.key, envelope):
            await self.handle_alert(envelope.data)

    def _apply_location_envelope(self, envelope: Optional[MailboxEnvelope]) -> None:
        if self._is_new(self.location_mailbox.key, envelope):
            self.handle_location(envelope.data)

    async def handle_alert(self, data: Dict[str, Any]) -> Optional[Alert]:
        """Insert a new alert or merge an update; returns the stored record."""
        try:
            incoming = Alert.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Observer %s dropped malformed alert: %s", self.name, e)
            return None

        is_new = incoming.id not in self.store
        stored = self.store.reconcile(incoming)
        await self._persist()

        logger.info(
            "%s SOS alert from %s", "New" if is_new else "Updated",
            stored.reporter.full_name,
            extra={"alert_id": stored.id, "observer": self.name},
        )
        return stored

    def handle_location(self, data: Dict[str, Any]) -> Optional[Location]:
        try:
            self.last_location = Location.from_wire(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Observer %s dropped malformed location: %s", self.name, e)
            return None
        return self.last_location

    # ── Dashboard actions ───────────────────────────────────────────────

    async def mark_resolved(self, alert_id: str) -> Alert:
        """Raises NotFoundError for an unknown id."""
        alert = self.store.update_status(alert_id, {"status": AlertStatus.RESOLVED.value})
        await self._persist()
        logger.info("Alert resolved", extra={"alert_id": alert_id, "observer": self.name})
        return alert

    async def delete(self, alert_id: str) -> Alert:
        """Raises NotFoundError for an unknown id."""
        alert = self.store.delete(alert_id)
        await self._persist()
        logger.info("Alert deleted", extra={"alert_id": alert_id, "observer": self.name})
        return alert

    def summary(self) -> Dict[str, int]:
        return self.store.summary()

    async def _persist(self) -> None:
        await self.kv.set_json(self.alerts_key, self.store.to_list())
