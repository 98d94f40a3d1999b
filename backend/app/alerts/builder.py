"""
builder.py — Assemble a new SOS alert.

    reporter + location + catalog
        │
        ├── resolve_nearest(catalog.police)     ─┐ independent
        ├── resolve_nearest(catalog.hospitals)  ─┘ resolutions
        ├── fresh alert id + transaction hash
        └── creation timestamp (UTC)
        ▼
    Alert(status="pending", sentToPolice=False, sentToHospital=False)

The facility snapshot is taken once here and never re-resolved.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from backend.app.alerts.identifiers import (
    new_reporter_alert_id,
    new_transaction_hash,
    utc_timestamp,
)
from backend.app.alerts.models import Alert, AlertStatus, ReporterIdentity
from backend.app.facilities.catalog import FacilityCatalog
from backend.app.facilities.models import FacilityKind
from backend.app.facilities.resolver import resolve_nearest
from backend.app.spatial.geo import Location

logger = logging.getLogger(__name__)


def build_alert(
    reporter: ReporterIdentity,
    location: Location,
    catalog: FacilityCatalog,
    *,
    now: Optional[datetime] = None,
    id_factory: Callable[[], str] = new_reporter_alert_id,
) -> Alert:
    """
    Build a pending alert for ``reporter`` at ``location``.

    Raises
    ------
    EmptyFacilitySetError
        If either catalog list is empty.
    """
    nearest_police = resolve_nearest(
        catalog.police, location, kind=FacilityKind.POLICE.value,
    )
    nearest_hospital = resolve_nearest(
        catalog.hospitals, location, kind=FacilityKind.HOSPITAL.value,
    )

    alert = Alert(
        id=id_factory(),
        reporter=reporter,
        location=location,
        nearest_police=nearest_police,
        nearest_hospital=nearest_hospital,
        timestamp=utc_timestamp(now),
        transaction_hash=new_transaction_hash(),
        status=AlertStatus.PENDING.value,
        sent_to_police=False,
        sent_to_hospital=False,
    )

    logger.info(
        "Built SOS alert for %s: police=%s (%.2f km), hospital=%s (%.2f km)",
        reporter.full_name,
        nearest_police.facility.name, nearest_police.distance_km,
        nearest_hospital.facility.name, nearest_hospital.distance_km,
        extra={"alert_id": alert.id, "lat": location.latitude, "lon": location.longitude},
    )
    return alert
