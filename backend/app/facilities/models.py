"""
models.py — Facility reference data and resolution results.

Facilities are static and shared by every reporter and observer, so they
are frozen. Per-request results (the distance from a reporter) live on
NearestFacility, never on the Facility itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping

from backend.app.spatial.geo import Location


class FacilityKind(str, Enum):
    POLICE   = "police"
    HOSPITAL = "hospital"


@dataclass(frozen=True)
class Facility:
    """A fixed point of interest."""
    id: int
    name: str
    latitude: float
    longitude: float
    kind: FacilityKind = FacilityKind.POLICE

    @property
    def location(self) -> Location:
        return Location(self.latitude, self.longitude)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "lat": self.latitude,
            "lng": self.longitude,
            "kind": self.kind.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], kind: FacilityKind) -> "Facility":
        """Raises ValueError for coordinates outside the valid ranges."""
        location = Location.from_wire(data)
        return cls(
            id=data["id"],
            name=data["name"],
            latitude=location.latitude,
            longitude=location.longitude,
            kind=kind,
        )


@dataclass(frozen=True)
class NearestFacility:
    """A resolved facility paired with its distance from the reporter."""
    facility: Facility
    distance_km: float

    def to_wire(self) -> Dict[str, Any]:
        """Alert-embedded shape: {id, name, lat, lng, distance}."""
        return {
            "id": self.facility.id,
            "name": self.facility.name,
            "lat": self.facility.latitude,
            "lng": self.facility.longitude,
            "distance": self.distance_km,
        }

    @classmethod
    def from_wire(cls, data: Mapping[str, Any], kind: FacilityKind) -> "NearestFacility":
        return cls(
            facility=Facility.from_dict(data, kind),
            distance_km=float(data.get("distance", 0.0)),
        )
