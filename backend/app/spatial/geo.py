"""
geo.py — Coordinates and great-circle distance.

Provides:
    - Location value type (decimal degrees, range-checked on construction)
    - Haversine distance between two locations
    - Human-readable distance formatting

All distances are in **kilometers**. Coordinates are in **decimal degrees**.

Haversine Formula
=================
Given two points P₁(φ₁, λ₁) and P₂(φ₂, λ₂):

    a = sin²(Δφ / 2) + cos(φ₁) · cos(φ₂) · sin²(Δλ / 2)
    c = 2 · atan2(√a, √(1 − a))
    d = R · c

with R = 6371 km. The result is symmetric in its arguments and is zero
exactly when the two points coincide. No rounding is applied here; callers
round for display only (see format_distance).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping


EARTH_RADIUS_KM: float = 6371.0


@dataclass(frozen=True)
class Location:
    """A geographic point in decimal degrees."""
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not (-90.0 <= self.latitude <= 90.0):
            raise ValueError(
                f"Latitude must be in [-90, 90], got {self.latitude}"
            )
        if not (-180.0 <= self.longitude <= 180.0):
            raise ValueError(
                f"Longitude must be in [-180, 180], got {self.longitude}"
            )

    @property
    def lat_rad(self) -> float:
        return math.radians(self.latitude)

    @property
    def lon_rad(self) -> float:
        return math.radians(self.longitude)

    def to_wire(self) -> Dict[str, float]:
        """Browser shape used by location-update messages."""
        return {"lat": self.latitude, "lng": self.longitude}

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "Location":
        """Accept either {lat, lng} or {latitude, longitude}."""
        lat = data["lat"] if "lat" in data else data["latitude"]
        lng = data["lng"] if "lng" in data else data["longitude"]
        return cls(float(lat), float(lng))


def haversine(point1: Location, point2: Location) -> float:
    """
    Great-circle distance between two points in kilometers.

    >>> haversine(Location(0, 0), Location(0, 0))
    0.0
    >>> round(haversine(Location(12.9716, 77.5946), Location(12.9762, 77.5993)), 2)
    0.72
    """
    d_lat = point2.lat_rad - point1.lat_rad
    d_lon = point2.lon_rad - point1.lon_rad

    a = (
        math.sin(d_lat / 2.0) ** 2
        + math.cos(point1.lat_rad)
        * math.cos(point2.lat_rad)
        * math.sin(d_lon / 2.0) ** 2
    )

    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))

    return EARTH_RADIUS_KM * c


def format_distance(km: float) -> str:
    """
    Format a distance for display.

    >>> format_distance(0.45)
    '450 m'
    >>> format_distance(3.7266)
    '3.73 km'
    """
    if km < 1.0:
        return f"{int(km * 1000)} m"
    return f"{km:.2f} km"
