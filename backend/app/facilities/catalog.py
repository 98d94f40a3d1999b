"""
catalog.py — Police and hospital reference catalogs.

The catalog is loaded once at startup and is identical on every process.
The built-in data covers central Bengaluru; FACILITY_CATALOG_PATH may point
at a JSON file of the form:

    {
        "police":    [{"id": 1, "name": "...", "lat": 12.97, "lng": 77.59}, ...],
        "hospitals": [{"id": 1, "name": "...", "lat": 12.96, "lng": 77.62}, ...]
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Tuple

from backend.app.core.config import settings
from backend.app.core.errors import ValidationError
from backend.app.facilities.models import Facility, FacilityKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FacilityCatalog:
    police: Tuple[Facility, ...]
    hospitals: Tuple[Facility, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "police": [f.to_dict() for f in self.police],
            "hospitals": [f.to_dict() for f in self.hospitals],
        }


# ── Sample data: central Bengaluru ──

_BENGALURU_POLICE = (
    Facility(1, "Cubbon Park Police Station", 12.9762, 77.5993, FacilityKind.POLICE),
    Facility(2, "Vidhana Soudha Police Station", 12.9795, 77.5910, FacilityKind.POLICE),
    Facility(3, "UB City Police Station", 12.9719, 77.6095, FacilityKind.POLICE),
    Facility(4, "Commercial Street Police Station", 12.9831, 77.6101, FacilityKind.POLICE),
)

_BENGALURU_HOSPITALS = (
    Facility(1, "Manipal Hospital", 12.9698, 77.6205, FacilityKind.HOSPITAL),
    Facility(2, "St. John's Medical College", 12.9312, 77.6228, FacilityKind.HOSPITAL),
    Facility(3, "Apollo Hospital", 12.9180, 77.6170, FacilityKind.HOSPITAL),
    Facility(4, "Fortis Hospital", 12.9279, 77.6271, FacilityKind.HOSPITAL),
)

# Reporter position used when geolocation is unavailable (Bengaluru MG Road)
DEFAULT_REPORTER_LAT = 12.9716
DEFAULT_REPORTER_LON = 77.5946


def default_catalog() -> FacilityCatalog:
    return FacilityCatalog(police=_BENGALURU_POLICE, hospitals=_BENGALURU_HOSPITALS)


def load_catalog(path: str | Path) -> FacilityCatalog:
    """
    Load a catalog from JSON.

    Raises ValidationError if the file is not a mapping with both lists.
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict) or "police" not in raw or "hospitals" not in raw:
        raise ValidationError(
            "Facility catalog must contain 'police' and 'hospitals' lists",
            field="catalog",
            path=str(path),
        )

    try:
        police = tuple(Facility.from_dict(item, FacilityKind.POLICE) for item in raw["police"])
        hospitals = tuple(
            Facility.from_dict(item, FacilityKind.HOSPITAL) for item in raw["hospitals"]
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid facility entry: {e}", field="catalog", path=str(path))

    logger.info(
        "Loaded facility catalog from %s: %d police, %d hospitals",
        path, len(police), len(hospitals),
    )
    return FacilityCatalog(police=police, hospitals=hospitals)


@lru_cache()
def get_catalog() -> FacilityCatalog:
    """Catalog for this process: FACILITY_CATALOG_PATH if set, else the sample."""
    if settings.FACILITY_CATALOG_PATH:
        return load_catalog(settings.FACILITY_CATALOG_PATH)
    return default_catalog()
