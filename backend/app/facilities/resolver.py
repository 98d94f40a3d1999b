"""
resolver.py — Nearest-facility selection.

Catalogs are small and fixed, so the search is a linear scan: every
facility is measured with haversine() and the minimum wins. Ties go to the
facility that appears first in the input sequence (strict < comparison).

The catalog is read-only: nothing is written back onto the facilities.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from backend.app.core.errors import EmptyFacilitySetError
from backend.app.facilities.models import Facility, NearestFacility
from backend.app.spatial.geo import Location, haversine

logger = logging.getLogger(__name__)


def resolve_nearest(
    facilities: Sequence[Facility],
    location: Location,
    *,
    kind: str = "facility",
) -> NearestFacility:
    """
    Return the facility closest to ``location`` and its distance in km.

    Parameters
    ----------
    facilities : Sequence[Facility]
        Non-empty, ordered candidate list.
    location : Location
        Reporter position.
    kind : str
        Label used in the error when the set is empty.

    Raises
    ------
    EmptyFacilitySetError
        If ``facilities`` is empty.

    Examples
    --------
    >>> from backend.app.facilities.catalog import default_catalog
    >>> nearest = resolve_nearest(default_catalog().police, Location(12.9716, 77.5946))
    >>> nearest.facility.name
    'Cubbon Park Police Station'
    """
    if not facilities:
        raise EmptyFacilitySetError(kind)

    best: Optional[Facility] = None
    best_distance = float("inf")

    for facility in facilities:
        distance = haversine(location, facility.location)
        if distance < best_distance:
            best = facility
            best_distance = distance

    logger.debug(
        "Nearest %s to (%.4f, %.4f): %s at %.3f km",
        best.kind.value, location.latitude, location.longitude,
        best.name, best_distance,
    )
    return NearestFacility(facility=best, distance_km=best_distance)
