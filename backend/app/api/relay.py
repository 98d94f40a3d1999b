"""
FastAPI routes: the relay's alert cache.

Provides endpoints to:
    POST   /sos-alert       — receive an alert from a reporter
    GET    /alerts          — snapshot for newly connecting dashboards
    PUT    /alerts/{id}     — merge status / sentToPolice / sentToHospital
    DELETE /alerts/{id}     — remove an alert

Each mutation is re-broadcast to connected dashboards (see api.realtime).
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from backend.app.api.schemas import (
    AlertDeletedResponse,
    AlertIn,
    AlertListResponse,
    AlertPatch,
    AlertUpdatedResponse,
    SubmitAlertResponse,
)
from backend.app.core.errors import NotFoundError
from backend.app.relay.hub import RelayHub, get_hub

logger = logging.getLogger(__name__)

router = APIRouter(tags=["relay"])


def _alert_not_found() -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"success": False, "message": "Alert not found"},
    )


@router.post(
    "/sos-alert",
    response_model=SubmitAlertResponse,
    summary="Receive an SOS alert",
    description="Stores the alert (filling id/timestamp if absent) and pushes it to dashboards.",
)
async def submit_sos_alert(body: AlertIn, hub: RelayHub = Depends(get_hub)):
    try:
        alert = await hub.submit(body.to_payload())
    except Exception as e:
        logger.exception("Error processing SOS alert: %s", e)
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Error processing SOS alert"},
        )
    return SubmitAlertResponse(alertId=alert["id"])


@router.get("/alerts", response_model=AlertListResponse, summary="List cached alerts")
async def list_alerts(hub: RelayHub = Depends(get_hub)):
    alerts = hub.list()
    return AlertListResponse(alerts=alerts, total=len(alerts))


@router.put(
    "/alerts/{alert_id}",
    response_model=AlertUpdatedResponse,
    summary="Update an alert's status or dispatch flags",
    responses={404: {"description": "Alert not found"}},
)
async def update_alert(alert_id: str, body: AlertPatch, hub: RelayHub = Depends(get_hub)):
    try:
        alert = await hub.update(alert_id, body.to_patch())
    except NotFoundError:
        return _alert_not_found()
    return AlertUpdatedResponse(alert=alert)


@router.delete(
    "/alerts/{alert_id}",
    response_model=AlertDeletedResponse,
    summary="Delete an alert",
    responses={404: {"description": "Alert not found"}},
)
async def delete_alert(alert_id: str, hub: RelayHub = Depends(get_hub)):
    try:
        deleted = await hub.delete(alert_id)
    except NotFoundError:
        return _alert_not_found()
    return AlertDeletedResponse(deletedAlert=deleted)
