"""
broadcaster.py — Dual-channel delivery of alerts and location updates.

═══════════════════════════════════════════════════════════════════════════
SENDING POLICY
═══════════════════════════════════════════════════════════════════════════

    ┌──────────────────────┐
    │ publish_alert(alert) │
    └──────────┬───────────┘
               ▼
    primary channel configured?
        │ yes                              │ no
        ▼                                  │
    primary.publish(message)               │
        │ ok → done (PRIMARY)              │
        │ ChannelUnavailableError ─────────┤
        ▼                                  ▼
                           mailbox.write({timestamp, data})  (FALLBACK)

The fallback slot is written only when the primary channel is
structurally unavailable on the sender. A subscriber that fails to handle
a message does not trigger the fallback (that would double-deliver to
every healthy observer). The decision never depends on what the receivers
support; the sender can only know its own side.

No retries anywhere. A message dropped on the primary channel is lost,
except for whatever the single-slot mailbox still holds.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional

from backend.app.alerts.channels.in_process import PrimaryChannel
from backend.app.alerts.channels.mailbox import FallbackMailbox
from backend.app.alerts.models import Alert, ChannelMessage, MessageType
from backend.app.core.config import settings
from backend.app.core.errors import ChannelUnavailableError
from backend.app.core.kv_store import KeyValueStore
from backend.app.spatial.geo import Location

logger = logging.getLogger(__name__)


class BroadcastRoute(str, Enum):
    PRIMARY  = "primary"
    FALLBACK = "fallback"


class Broadcaster:
    """
    Publishes to every live observer through the primary channel, or the
    fallback mailbox when the primary channel cannot be used.

    Parameters
    ----------
    primary : PrimaryChannel | None
        None means this runtime has no primary channel.
    store : KeyValueStore
        Backing store for the fallback mailboxes.
    """

    def __init__(
        self,
        primary: Optional[PrimaryChannel],
        store: KeyValueStore,
        *,
        alert_key: str = settings.ALERT_MAILBOX_KEY,
        location_key: str = settings.LOCATION_MAILBOX_KEY,
    ) -> None:
        self.primary = primary
        self.alert_mailbox = FallbackMailbox(store, alert_key)
        self.location_mailbox = FallbackMailbox(store, location_key)

    async def publish_alert(self, alert: Alert) -> BroadcastRoute:
        """Publish a new alert or the latest state of an existing one."""
        route = await self._send(MessageType.SOS_ALERT, alert.to_dict(), self.alert_mailbox)
        logger.info(
            "SOS alert broadcast via %s", route.value,
            extra={"alert_id": alert.id, "channel": route.value},
        )
        return route

    async def publish_location(self, location: Location) -> BroadcastRoute:
        route = await self._send(
            MessageType.LOCATION_UPDATE, location.to_wire(), self.location_mailbox,
        )
        logger.debug(
            "Location (%.4f, %.4f) broadcast via %s",
            location.latitude, location.longitude, route.value,
            extra={"lat": location.latitude, "lon": location.longitude},
        )
        return route

    async def _send(
        self,
        message_type: MessageType,
        data: Dict[str, Any],
        mailbox: FallbackMailbox,
    ) -> BroadcastRoute:
        if self.primary is not None:
            try:
                await self.primary.publish(ChannelMessage(type=message_type, data=data))
                return BroadcastRoute.PRIMARY
            except ChannelUnavailableError as e:
                logger.info("%s; using fallback mailbox %s", e.message, mailbox.key)

        await mailbox.write(data)
        return BroadcastRoute.FALLBACK
