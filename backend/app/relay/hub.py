"""
hub.py — The relay's in-memory alert cache.

The hub keeps alerts as the JSON dicts reporters sent (the relay is a
convenience cache, not the source of truth, so it does not re-validate
beyond what the API layer does). Process restart loses everything.

Every mutation is fanned out to connected observers through an injected
emitter:

    submit()   → "new-sos-alert"   (the stored alert)
    update()   → "alert-updated"   (the merged alert)
    delete()   → "alert-deleted"   (the id)

Handlers run to completion on one event loop between reading and writing
the list, so no locking is needed.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from backend.app.alerts.identifiers import new_relay_alert_id, utc_timestamp
from backend.app.alerts.models import MUTABLE_FIELDS
from backend.app.core.errors import NotFoundError

logger = logging.getLogger(__name__)

Emitter = Callable[[str, Any], Awaitable[None]]


class RelayEvent:
    EXISTING_ALERTS = "existing-alerts"
    NEW_ALERT       = "new-sos-alert"
    ALERT_UPDATED   = "alert-updated"
    ALERT_DELETED   = "alert-deleted"
    LOCATION_UPDATE = "location-update"


async def _no_emit(event: str, data: Any) -> None:
    logger.debug("No realtime emitter attached; dropping %s", event)


class RelayHub:
    def __init__(self, emitter: Optional[Emitter] = None) -> None:
        self._alerts: List[Dict[str, Any]] = []
        self._emit: Emitter = emitter or _no_emit

    def attach_emitter(self, emitter: Emitter) -> None:
        self._emit = emitter

    def __len__(self) -> int:
        return len(self._alerts)

    def _index_of(self, alert_id: str) -> int:
        for i, alert in enumerate(self._alerts):
            if alert.get("id") == alert_id:
                return i
        raise NotFoundError("Alert", alert_id=alert_id)

    async def _broadcast(self, event: str, data: Any) -> None:
        try:
            await self._emit(event, data)
        except Exception as e:
            logger.error("Realtime emit of %s failed: %s", event, e)

    # ── Operations ──────────────────────────────────────────────────────

    async def submit(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Store a reporter's alert, filling ``id`` and ``timestamp`` when absent.

        Returns the stored record.
        """
        alert = dict(payload)
        if not alert.get("timestamp"):
            alert["timestamp"] = utc_timestamp()
        if not alert.get("id"):
            alert["id"] = new_relay_alert_id()

        self._alerts.append(alert)
        logger.info(
            "SOS alert received from %s", alert.get("userName", "unknown reporter"),
            extra={"alert_id": alert["id"]},
        )
        await self._broadcast(RelayEvent.NEW_ALERT, alert)
        return alert

    def list(self) -> List[Dict[str, Any]]:
        return list(self._alerts)

    def get(self, alert_id: str) -> Dict[str, Any]:
        return self._alerts[self._index_of(alert_id)]

    async def update(self, alert_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Merge the mutable fields of ``patch``; other keys are ignored.

        Raises NotFoundError for an unknown id (the list is unchanged).
        """
        index = self._index_of(alert_id)
        changes = {k: patch[k] for k in MUTABLE_FIELDS if k in patch}
        merged = {**self._alerts[index], **changes}
        self._alerts[index] = merged

        logger.info("Alert updated: %s", changes, extra={"alert_id": alert_id})
        await self._broadcast(RelayEvent.ALERT_UPDATED, merged)
        return merged

    async def delete(self, alert_id: str) -> Dict[str, Any]:
        """Remove and return the alert. Raises NotFoundError if unknown."""
        deleted = self._alerts.pop(self._index_of(alert_id))
        logger.info("Alert deleted", extra={"alert_id": alert_id})
        await self._broadcast(RelayEvent.ALERT_DELETED, alert_id)
        return deleted

    def clear(self) -> None:
        self._alerts.clear()


# ═══════════════════════════════════════════════════════════════════════════
# Global Instance
# ═══════════════════════════════════════════════════════════════════════════

_hub: Optional[RelayHub] = None


def get_hub() -> RelayHub:
    """Get or create the process-wide relay hub."""
    global _hub
    if _hub is None:
        _hub = RelayHub()
    return _hub
