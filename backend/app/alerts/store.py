"""
store.py — Observer-side alert store and reconciliation.

Each observer owns one AlertStore. It is an insertion-ordered sequence of
Alerts keyed by id:

    insert(alert)                    idempotent by id
    update_status(id, patch)         merge mutable fields   (NotFoundError)
    delete(id)                       remove                 (NotFoundError)
    reconcile_from_fallback(env)     insert-or-update from a mailbox envelope

Alerts can arrive twice (primary channel and the mailbox, or a reload on
reconnect); insert() keeps the first copy untouched.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Mapping, Optional

from backend.app.alerts.models import Alert, AlertStatus, MailboxEnvelope
from backend.app.core.errors import NotFoundError

logger = logging.getLogger(__name__)


class AlertStore:
    """Insertion-ordered alerts keyed by id."""

    def __init__(self, alerts: Iterable[Alert] = ()) -> None:
        self._alerts: "OrderedDict[str, Alert]" = OrderedDict()
        for alert in alerts:
            self.insert(alert)

    def __len__(self) -> int:
        return len(self._alerts)

    def __contains__(self, alert_id: object) -> bool:
        return alert_id in self._alerts

    # ── Core operations ─────────────────────────────────────────────────

    def insert(self, alert: Alert) -> bool:
        """
        Append ``alert`` unless its id is already present.

        Returns
        -------
        bool
            True if inserted, False if the id was already known (no-op).
        """
        if alert.id in self._alerts:
            logger.debug("Duplicate alert ignored", extra={"alert_id": alert.id})
            return False
        self._alerts[alert.id] = alert
        return True

    def update_status(self, alert_id: str, patch: Mapping[str, Any]) -> Alert:
        """
        Merge ``status`` / ``sentToPolice`` / ``sentToHospital`` from ``patch``.

        Raises
        ------
        NotFoundError
            If ``alert_id`` is unknown. The store is left unchanged.
        """
        current = self._alerts.get(alert_id)
        if current is None:
            raise NotFoundError("Alert", alert_id=alert_id)
        updated = current.apply_patch(patch)
        self._alerts[alert_id] = updated
        return updated

    def delete(self, alert_id: str) -> Alert:
        """Remove and return the alert. Raises NotFoundError if unknown."""
        if alert_id not in self._alerts:
            raise NotFoundError("Alert", alert_id=alert_id)
        return self._alerts.pop(alert_id)

    def reconcile(self, alert: Alert) -> Alert:
        """Insert a new alert, or merge the mutable fields of a known one."""
        if alert.id not in self._alerts:
            self.insert(alert)
            return alert
        return self.update_status(alert.id, alert.to_dict())

    def reconcile_from_fallback(self, envelope: MailboxEnvelope) -> Alert:
        """
        Catch up from the single-slot mailbox.

        Raises KeyError / TypeError / ValueError if the envelope does not
        carry a parsable alert.
        """
        return self.reconcile(Alert.from_dict(envelope.data))

    # ── Queries ─────────────────────────────────────────────────────────

    def get(self, alert_id: str) -> Optional[Alert]:
        return self._alerts.get(alert_id)

    def list(self) -> List[Alert]:
        return list(self._alerts.values())

    def to_list(self) -> List[Dict[str, Any]]:
        """Wire-format list, as persisted under the sosAlerts key."""
        return [a.to_dict() for a in self._alerts.values()]

    def load_from(self, records: Any) -> int:
        """
        Insert every parsable record from a persisted list.

        Anything that is not a list is treated as empty. Malformed records
        are skipped with a warning. Returns the number inserted.
        """
        if not isinstance(records, list):
            if records is not None:
                logger.warning("Persisted alerts are not a list — treating as empty")
            return 0

        inserted = 0
        for record in records:
            try:
                alert = Alert.from_dict(record)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed alert record: %s", e)
                continue
            if self.insert(alert):
                inserted += 1
        return inserted

    def summary(self) -> Dict[str, int]:
        """Dashboard counters: total, pending, resolved, distinct reporters."""
        alerts = self._alerts.values()
        return {
            "total": len(self._alerts),
            "pending": sum(1 for a in alerts if a.status == AlertStatus.PENDING.value),
            "resolved": sum(1 for a in alerts if a.status == AlertStatus.RESOLVED.value),
            "reporters": len({a.reporter.id_number or a.reporter.full_name for a in alerts}),
        }
