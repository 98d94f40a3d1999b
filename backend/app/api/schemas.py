"""
Pydantic schemas for the relay and facility APIs.

Separated from the route handlers so they are reusable across the
codebase (socket handlers, the relay client, tests).

Alert bodies keep the browser apps' camelCase keys and allow extra
fields: the relay is a cache and passes through whatever a reporter sent.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from backend.app.spatial.geo import Location


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class LocationInput(BaseModel):
    """
    Accepts location from either device geolocation or manual entry.
    ``lat`` / ``lng`` are accepted as aliases.
    """
    latitude: float = Field(
        ..., ge=-90.0, le=90.0,
        validation_alias=AliasChoices("latitude", "lat"),
        description="Latitude in decimal degrees",
        examples=[12.9716],
    )
    longitude: float = Field(
        ..., ge=-180.0, le=180.0,
        validation_alias=AliasChoices("longitude", "lng"),
        description="Longitude in decimal degrees",
        examples=[77.5946],
    )
    source: str = Field(
        default="manual",
        description="How the location was obtained: 'gps' | 'manual'",
        examples=["gps"],
    )

    def to_location(self) -> Location:
        return Location(self.latitude, self.longitude)


class NearestFacilityIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: str
    lat: float
    lng: float
    distance: float = Field(..., ge=0.0)


class AlertIn(BaseModel):
    """
    Body of POST /sos-alert. ``id`` and ``timestamp`` are filled in by
    the relay when missing.
    """
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = Field(None, examples=["id_k3j9x0a1bm4c2d1e0"])
    timestamp: Optional[str] = Field(None, examples=["2025-09-22T10:30:00.000Z"])
    userName: Optional[str] = Field(None, examples=["Asha Rao"])
    idNumber: Optional[str] = None
    blockchainId: Optional[str] = None
    contact: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90.0, le=90.0)
    longitude: Optional[float] = Field(None, ge=-180.0, le=180.0)
    nearestPolice: Optional[NearestFacilityIn] = None
    nearestHospital: Optional[NearestFacilityIn] = None
    status: Optional[str] = Field(None, examples=["pending"])
    transactionHash: Optional[str] = None
    sentToPolice: Optional[bool] = None
    sentToHospital: Optional[bool] = None

    def to_payload(self) -> Dict[str, Any]:
        """Only the keys the reporter actually sent."""
        return self.model_dump(exclude_unset=True)


class AlertPatch(BaseModel):
    """
    Body of PUT /alerts/{id}. Only status / sentToPolice / sentToHospital
    are applied; anything else is accepted and ignored.
    """
    model_config = ConfigDict(extra="allow")

    status: Optional[str] = Field(None, examples=["resolved"])
    sentToPolice: Optional[bool] = None
    sentToHospital: Optional[bool] = None

    def to_patch(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class SubmitAlertResponse(BaseModel):
    success: bool = True
    message: str = "SOS Alert received successfully"
    alertId: str


class AlertListResponse(BaseModel):
    success: bool = True
    alerts: List[Dict[str, Any]]
    total: int


class AlertUpdatedResponse(BaseModel):
    success: bool = True
    message: str = "Alert updated successfully"
    alert: Dict[str, Any]


class AlertDeletedResponse(BaseModel):
    success: bool = True
    message: str = "Alert deleted successfully"
    deletedAlert: Dict[str, Any]


class FacilityOut(BaseModel):
    id: int
    name: str
    lat: float
    lng: float
    kind: str


class FacilityCatalogResponse(BaseModel):
    police: List[FacilityOut]
    hospitals: List[FacilityOut]
    total: int


class NearestFacilityOut(BaseModel):
    id: int
    name: str
    lat: float
    lng: float
    distance: float = Field(..., description="Distance from the reporter in km")
    distance_display: str = Field(..., description="Human-readable distance string")


class NearestFacilitiesResponse(BaseModel):
    """Response for POST /facilities/nearest."""
    latitude: float
    longitude: float
    police: NearestFacilityOut
    hospital: NearestFacilityOut
