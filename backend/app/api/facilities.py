"""
FastAPI routes: facility reference data.

    GET  /facilities           — the police / hospital catalog
    POST /facilities/nearest   — nearest police station and hospital
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from backend.app.api.schemas import (
    FacilityCatalogResponse,
    LocationInput,
    NearestFacilitiesResponse,
    NearestFacilityOut,
)
from backend.app.facilities.catalog import FacilityCatalog, get_catalog
from backend.app.facilities.models import FacilityKind, NearestFacility
from backend.app.facilities.resolver import resolve_nearest
from backend.app.spatial.geo import format_distance

router = APIRouter(prefix="/facilities", tags=["facilities"])


def _to_out(nearest: NearestFacility) -> NearestFacilityOut:
    return NearestFacilityOut(
        **nearest.to_wire(),
        distance_display=format_distance(nearest.distance_km),
    )


@router.get("", response_model=FacilityCatalogResponse, summary="Facility catalog")
async def list_facilities(catalog: FacilityCatalog = Depends(get_catalog)):
    data = catalog.to_dict()
    return FacilityCatalogResponse(
        police=data["police"],
        hospitals=data["hospitals"],
        total=len(catalog.police) + len(catalog.hospitals),
    )


@router.post(
    "/nearest",
    response_model=NearestFacilitiesResponse,
    summary="Nearest police station and hospital",
    description="Resolves each independently; ties go to the first entry in the catalog.",
)
async def nearest_facilities(
    location: LocationInput,
    catalog: FacilityCatalog = Depends(get_catalog),
):
    point = location.to_location()
    police = resolve_nearest(catalog.police, point, kind=FacilityKind.POLICE.value)
    hospital = resolve_nearest(catalog.hospitals, point, kind=FacilityKind.HOSPITAL.value)
    return NearestFacilitiesResponse(
        latitude=point.latitude,
        longitude=point.longitude,
        police=_to_out(police),
        hospital=_to_out(hospital),
    )
