"""
session.py — The reporting client's side of an SOS.

═══════════════════════════════════════════════════════════════════════════
SOS STATE MACHINE
═══════════════════════════════════════════════════════════════════════════

              trigger_sos()                   trigger_sos()
    ┌──────┐ ─────────────► ┌────────┐ ◄─────────────────┐
    │ IDLE │                │ ACTIVE │ ───── no-op ──────┘
    └──────┘ ◄───────────── └────────┘
               reset()  (logout)

There is no user-initiated cancel. Once active, the only way back to IDLE
is reset(), which ends the session. A new session (login) may raise a new
SOS; triggers are not deduplicated across sessions.

═══════════════════════════════════════════════════════════════════════════
ON TRIGGER
═══════════════════════════════════════════════════════════════════════════

    1. build_alert()         nearest police + hospital, fresh id / hash
    2. append to sosAlerts   the reporter's local record (authoritative)
    3. broadcaster           primary channel, else fallback mailbox
    4. relay (optional)      fire-and-forget POST /sos-alert, no retry

Location sharing runs on a PeriodicTask: every tick refreshes the location
from the source and broadcasts it. Stopping is immediate.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

from backend.app.alerts.broadcaster import Broadcaster
from backend.app.alerts.builder import build_alert
from backend.app.alerts.identifiers import new_blockchain_id
from backend.app.alerts.models import Alert, ReporterIdentity
from backend.app.core.config import Settings, settings as default_settings
from backend.app.core.errors import ValidationError
from backend.app.core.kv_store import KeyValueStore
from backend.app.core.periodic import PeriodicTask
from backend.app.facilities.catalog import (
    DEFAULT_REPORTER_LAT,
    DEFAULT_REPORTER_LON,
    FacilityCatalog,
    get_catalog,
)
from backend.app.facilities.models import FacilityKind
from backend.app.relay.client import RelayClient, RelayError
from backend.app.spatial.geo import Location

logger = logging.getLogger(__name__)

LocationSource = Callable[[], Awaitable[Optional[Location]]]

_SENT_FLAGS: Dict[FacilityKind, str] = {
    FacilityKind.POLICE: "sentToPolice",
    FacilityKind.HOSPITAL: "sentToHospital",
}


class SosState(str, Enum):
    IDLE   = "idle"
    ACTIVE = "active"


def new_identity(full_name: str, id_number: str, contact: str) -> ReporterIdentity:
    """Identity issued at login, with a fresh synthetic blockchain id."""
    return ReporterIdentity(
        full_name=full_name,
        id_number=id_number,
        contact=contact,
        blockchain_id=new_blockchain_id(),
    )


class ReporterSession:
    """
    One logged-in reporter.

    Parameters
    ----------
    identity : ReporterIdentity
    broadcaster : Broadcaster
    kv : KeyValueStore
        Holds the reporter's local ``sosAlerts`` list.
    catalog : FacilityCatalog | None
        Defaults to the configured catalog.
    location_source : LocationSource | None
        Async callable returning the current position, or None when the
        position is unknown (the last known location is then kept).
    relay : RelayClient | None
        If given, new alerts are also submitted to the relay.
    """

    def __init__(
        self,
        identity: ReporterIdentity,
        broadcaster: Broadcaster,
        kv: KeyValueStore,
        *,
        catalog: Optional[FacilityCatalog] = None,
        location_source: Optional[LocationSource] = None,
        initial_location: Optional[Location] = None,
        relay: Optional[RelayClient] = None,
        config: Optional[Settings] = None,
    ) -> None:
        config = config or default_settings
        self.identity = identity
        self.broadcaster = broadcaster
        self.kv = kv
        self.catalog = catalog or get_catalog()
        self.relay = relay
        self.alerts_key = config.ALERTS_KEY
        self.share_interval = config.LOCATION_SHARE_INTERVAL_SECONDS

        self.location = initial_location or Location(DEFAULT_REPORTER_LAT, DEFAULT_REPORTER_LON)
        self._location_source = location_source

        self.state = SosState.IDLE
        self.current_alert: Optional[Alert] = None
        self._sharing: Optional[PeriodicTask] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def sharing_location(self) -> bool:
        return self._sharing is not None and self._sharing.running

    # ── Location ────────────────────────────────────────────────────────

    async def refresh_location(self) -> Location:
        """Ask the source for a fix; on failure keep the last known location."""
        if self._location_source is None:
            return self.location
        try:
            fix = await self._location_source()
        except Exception as e:
            logger.warning("Location source failed, keeping last fix: %s", e)
            return self.location
        if fix is not None:
            self.location = fix
        return self.location

    def start_location_sharing(self) -> None:
        if self.sharing_location:
            return
        self._sharing = PeriodicTask(
            f"location-share:{self.identity.id_number}",
            self.share_interval,
            self._share_location,
        )
        self._sharing.start()
        logger.info("Location sharing started (every %.0fs)", self.share_interval)

    def stop_location_sharing(self) -> None:
        if self._sharing is None:
            return
        self._sharing.stop()
        self._sharing = None
        logger.info("Location sharing stopped")

    def toggle_location_sharing(self) -> bool:
        """Flip sharing on/off; returns the new state."""
        if self.sharing_location:
            self.stop_location_sharing()
        else:
            self.start_location_sharing()
        return self.sharing_location

    async def _share_location(self) -> None:
        location = await self.refresh_location()
        await self.broadcaster.publish_location(location)

    # ── SOS ─────────────────────────────────────────────────────────────

    async def trigger_sos(self) -> Alert:
        """
        Raise an SOS from the current location.

        Idempotent while ACTIVE: returns the existing alert unchanged.
        Raises EmptyFacilitySetError (and stays IDLE) if the catalog has no
        police stations or no hospitals.
        """
        if self.state == SosState.ACTIVE and self.current_alert is not None:
            logger.info("SOS already active", extra={"alert_id": self.current_alert.id})
            return self.current_alert

        alert = build_alert(self.identity, self.location, self.catalog)
        self.state = SosState.ACTIVE
        self.current_alert = alert

        await self._append_local(alert)
        await self.broadcaster.publish_alert(alert)
        if self.relay is not None:
            self._spawn(self._submit_to_relay(alert))

        logger.warning(
            "SOS triggered by %s at (%.4f, %.4f)",
            self.identity.full_name, alert.location.latitude, alert.location.longitude,
            extra={"alert_id": alert.id, "lat": alert.location.latitude,
                   "lon": alert.location.longitude},
        )
        return alert

    async def send_to_facility(self, kind: Union[FacilityKind, str]) -> Optional[Alert]:
        """
        Mark the active alert as sent to the nearest police station or
        hospital, then re-broadcast it. Without an active alert this is a
        no-op returning None.
        """
        try:
            kind = FacilityKind(kind)
        except ValueError:
            raise ValidationError(
                f"Unknown facility kind: {kind!r}", field="kind",
                allowed=[k.value for k in FacilityKind],
            )
        if self.current_alert is None:
            return None

        flag = _SENT_FLAGS[kind]
        alert = self.current_alert.apply_patch({flag: True})
        self.current_alert = alert

        await self._replace_local(alert)
        await self.broadcaster.publish_alert(alert)
        if self.relay is not None:
            self._spawn(self._update_on_relay(alert.id, {flag: True}))

        logger.info("Alert sent to %s", kind.value, extra={"alert_id": alert.id})
        return alert

    def reset(self) -> None:
        """End the session: stop sharing and return the SOS machine to IDLE."""
        self.stop_location_sharing()
        self.state = SosState.IDLE
        self.current_alert = None

    async def drain(self) -> None:
        """Wait for outstanding relay submissions."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ── Local record ────────────────────────────────────────────────────

    async def _load_local(self) -> list:
        records = await self.kv.get_json(self.alerts_key, [])
        return records if isinstance(records, list) else []

    async def _append_local(self, alert: Alert) -> None:
        records = await self._load_local()
        records.append(alert.to_dict())
        await self.kv.set_json(self.alerts_key, records)

    async def _replace_local(self, alert: Alert) -> None:
        records = await self._load_local()
        for i, record in enumerate(records):
            if isinstance(record, dict) and record.get("id") == alert.id:
                records[i] = alert.to_dict()
                await self.kv.set_json(self.alerts_key, records)
                return

    # ── Relay (fire-and-forget) ─────────────────────────────────────────

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _submit_to_relay(self, alert: Alert) -> None:
        try:
            await self.relay.submit_alert(alert.to_dict())
        except RelayError as e:
            logger.warning("Relay submission failed: %s", e.message, extra={"alert_id": alert.id})

    async def _update_on_relay(self, alert_id: str, patch: Dict[str, Any]) -> None:
        try:
            await self.relay.update_alert(alert_id, patch)
        except RelayError as e:
            logger.warning("Relay update failed: %s", e.message, extra={"alert_id": alert_id})
