"""
mailbox.py — Fallback broadcast channel.

A single persisted slot per message kind:

    sosAlertBroadcast        → {"timestamp": <epoch ms>, "data": <alert>}
    locationUpdateBroadcast  → {"timestamp": <epoch ms>, "data": {"lat", "lng"}}

Each write replaces the previous envelope. A reader that misses two writes
in a row never sees the first one; readers are expected to diff against
what they have already applied (see alerts.observer).
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from backend.app.alerts.identifiers import epoch_ms
from backend.app.alerts.models import MailboxEnvelope
from backend.app.core.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class FallbackMailbox:
    def __init__(
        self,
        store: KeyValueStore,
        key: str,
        *,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self.store = store
        self.key = key
        self._clock = clock
        self._last_timestamp = 0

    async def write(self, data: Dict[str, Any]) -> MailboxEnvelope:
        # Strictly increasing per writer so readers can tell writes apart
        timestamp = max(self._clock(), self._last_timestamp + 1)
        self._last_timestamp = timestamp

        envelope = MailboxEnvelope(timestamp=timestamp, data=data)
        ok = await self.store.set_json(self.key, envelope.to_dict())
        if not ok:
            logger.warning("Mailbox write to %s was not persisted", self.key)
        return envelope

    async def read(self) -> Optional[MailboxEnvelope]:
        """Current envelope, or None if the slot is empty or unreadable."""
        raw = await self.store.get_json(self.key)
        if raw is None:
            return None
        try:
            return MailboxEnvelope.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring malformed envelope in %s: %s", self.key, e)
            return None
