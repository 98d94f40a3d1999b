"""
models.py — Shared data structures for SOS alerting.

Defines:
    • AlertStatus      — lifecycle states (open set: unknown strings are kept)
    • MessageType      — primary-channel message kinds
    • ReporterIdentity — who raised the SOS
    • Alert            — the central record
    • ChannelMessage   — a primary-channel publish
    • MailboxEnvelope  — the single-slot fallback write

═══════════════════════════════════════════════════════════════════════════
ALERT MUTABILITY
═══════════════════════════════════════════════════════════════════════════

    Field                          After creation
    ─────────────────────────────  ──────────────
    id, reporter, location         frozen
    nearestPolice/nearestHospital  frozen (snapshot at SOS time)
    timestamp, transactionHash     frozen
    status                         mutable
    sentToPolice, sentToHospital   mutable (independent of status)

Alert is a frozen dataclass; a mutation produces a new record through
apply_patch(), which only honours the three mutable fields.

═══════════════════════════════════════════════════════════════════════════
WIRE FORMAT
═══════════════════════════════════════════════════════════════════════════

The browser apps and the relay exchange camelCase JSON:

    {
      "id": "id_k3j9x0a1bm4c2d1e0",
      "userName": "...", "idNumber": "...", "contact": "...",
      "blockchainId": "0x…40 hex…",
      "latitude": 12.9716, "longitude": 77.5946,
      "nearestPolice":   {"id": 1, "name": "...", "lat": ..., "lng": ..., "distance": 0.72},
      "nearestHospital": {"id": 1, "name": "...", "lat": ..., "lng": ..., "distance": 2.81},
      "timestamp": "2025-09-22T10:30:00.000Z",
      "status": "pending",
      "transactionHash": "0x…64 hex…",
      "sentToPolice": false, "sentToHospital": false
    }
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Mapping

from backend.app.facilities.models import FacilityKind, NearestFacility
from backend.app.spatial.geo import Location


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class AlertStatus(str, Enum):
    """Known alert states. Alert.status is a plain string so others survive."""
    PENDING    = "pending"
    DISPATCHED = "dispatched"
    RESOLVED   = "resolved"


class MessageType(str, Enum):
    SOS_ALERT       = "SOS_ALERT"
    LOCATION_UPDATE = "LOCATION_UPDATE"


# Patch keys honoured by Alert.apply_patch → dataclass attribute
MUTABLE_FIELDS: Dict[str, str] = {
    "status": "status",
    "sentToPolice": "sent_to_police",
    "sentToHospital": "sent_to_hospital",
}


# ═══════════════════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ReporterIdentity:
    """
    Attributes
    ----------
    full_name : str
    id_number : str
        Passport / national id as typed at login.
    contact : str
        Phone number.
    blockchain_id : str
        Synthetic identity token issued at login; never verified.
    """
    full_name: str
    id_number: str
    contact: str
    blockchain_id: str


@dataclass(frozen=True)
class Alert:
    id: str
    reporter: ReporterIdentity
    location: Location
    nearest_police: NearestFacility
    nearest_hospital: NearestFacility
    timestamp: str
    transaction_hash: str
    status: str = AlertStatus.PENDING.value
    sent_to_police: bool = False
    sent_to_hospital: bool = False

    @property
    def is_pending(self) -> bool:
        return self.status == AlertStatus.PENDING.value

    def apply_patch(self, patch: Mapping[str, Any]) -> "Alert":
        """
        Return a copy with the mutable fields from ``patch`` merged in.

        Keys outside MUTABLE_FIELDS are ignored, as are a null status and
        flag values that are not real booleans (``"false"`` included).
        """
        changes: Dict[str, Any] = {}
        for wire_key, attr in MUTABLE_FIELDS.items():
            value = patch.get(wire_key)
            if attr == "status":
                if value is not None:
                    changes[attr] = value.value if isinstance(value, AlertStatus) else str(value)
            elif isinstance(value, bool):
                changes[attr] = value
        return replace(self, **changes) if changes else self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userName": self.reporter.full_name,
            "idNumber": self.reporter.id_number,
            "blockchainId": self.reporter.blockchain_id,
            "contact": self.reporter.contact,
            "latitude": self.location.latitude,
            "longitude": self.location.longitude,
            "nearestPolice": self.nearest_police.to_wire(),
            "nearestHospital": self.nearest_hospital.to_wire(),
            "timestamp": self.timestamp,
            "status": self.status,
            "transactionHash": self.transaction_hash,
            "sentToPolice": self.sent_to_police,
            "sentToHospital": self.sent_to_hospital,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Alert":
        """
        Parse the wire format.

        Raises KeyError / TypeError / ValueError on records that lack the
        identity, location or facility snapshot.
        """
        return cls(
            id=str(data["id"]),
            reporter=ReporterIdentity(
                full_name=data.get("userName", ""),
                id_number=data.get("idNumber", ""),
                contact=data.get("contact", ""),
                blockchain_id=data.get("blockchainId", ""),
            ),
            location=Location(float(data["latitude"]), float(data["longitude"])),
            nearest_police=NearestFacility.from_wire(data["nearestPolice"], FacilityKind.POLICE),
            nearest_hospital=NearestFacility.from_wire(
                data["nearestHospital"], FacilityKind.HOSPITAL
            ),
            timestamp=str(data.get("timestamp", "")),
            transaction_hash=str(data.get("transactionHash", "")),
            status=str(data.get("status", AlertStatus.PENDING.value)),
            sent_to_police=bool(data.get("sentToPolice", False)),
            sent_to_hospital=bool(data.get("sentToHospital", False)),
        )


@dataclass(frozen=True)
class ChannelMessage:
    """A primary-channel publish: {type, data}."""
    type: MessageType
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "data": self.data}


@dataclass(frozen=True)
class MailboxEnvelope:
    """
    The single-slot fallback write: {timestamp, data}.

    ``timestamp`` is the send time in epoch milliseconds; each new write
    replaces the previous envelope entirely.
    """
    timestamp: int
    data: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "data": self.data}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "MailboxEnvelope":
        return cls(timestamp=int(raw["timestamp"]), data=dict(raw["data"]))
