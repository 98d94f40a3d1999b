"""
Async client for the relay's REST surface.

    submit_alert(alert)        POST   /sos-alert     → alertId
    list_alerts()              GET    /alerts        → [alert, ...]
    update_alert(id, patch)    PUT    /alerts/{id}   → merged alert
    delete_alert(id)           DELETE /alerts/{id}   → removed alert

Every failure (transport error, non-2xx, unexpected body) surfaces as
RelayError. Nothing is retried.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx

from backend.app.core.config import settings
from backend.app.core.errors import SafetyAPIError

logger = logging.getLogger(__name__)


class RelayError(SafetyAPIError):
    """The relay could not be reached or rejected the request (502)."""

    def __init__(self, message: str, *, status: Optional[int] = None):
        super().__init__(
            message=message,
            status_code=502,
            error_code="RELAY_ERROR",
            details={"upstream_status": status} if status is not None else None,
        )
        self.upstream_status = status


class RelayClient:
    """
    Usage:
        client = RelayClient("http://localhost:3000")
        alert_id = await client.submit_alert(alert.to_dict())
        await client.close()

    An ``httpx.AsyncClient`` can be injected (tests pass one bound to an
    ASGI or mock transport); it is then not closed by close().
    """

    def __init__(
        self,
        base_url: str = settings.RELAY_URL,
        timeout: float = settings.RELAY_TIMEOUT_SECONDS,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout,
            )
            self._owns_client = True
        return self._http_client

    async def close(self) -> None:
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.warning("Relay %s %s failed: %s", method, path, e)
            raise RelayError(f"Relay unreachable: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error:
            message = body.get("message") if isinstance(body, dict) else None
            raise RelayError(
                message or f"Relay returned {response.status_code}",
                status=response.status_code,
            )
        if not isinstance(body, dict):
            raise RelayError("Relay returned an unexpected body", status=response.status_code)
        return body

    async def submit_alert(self, alert: Mapping[str, Any]) -> str:
        body = await self._request("POST", "/sos-alert", json=alert)
        logger.info("Alert submitted to relay", extra={"alert_id": body.get("alertId")})
        return str(body.get("alertId", ""))

    async def list_alerts(self) -> List[Dict[str, Any]]:
        body = await self._request("GET", "/alerts")
        return list(body.get("alerts", []))

    async def update_alert(self, alert_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
        body = await self._request("PUT", f"/alerts/{alert_id}", json=patch)
        return dict(body.get("alert", {}))

    async def delete_alert(self, alert_id: str) -> Dict[str, Any]:
        body = await self._request("DELETE", f"/alerts/{alert_id}")
        return dict(body.get("deletedAlert", {}))
