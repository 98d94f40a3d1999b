"""
Relay request middleware — correlation IDs, timing, per-action logging.

Every request is tagged with the relay action it performs (``submit``,
``list``, ``update``, ``delete``, ``health``, ``facilities``) and, for
``/alerts/{id}`` routes, the alert id. Both go into the request log
context so downstream log lines (hub, error handlers) carry them too.

Response headers:
    X-Request-ID     — echoed from the request or freshly generated
    X-Process-Time   — wall-clock handling time
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from backend.app.core.logging_config import set_request_context

logger = logging.getLogger(__name__)

_QUIET_PREFIXES = ("/docs", "/redoc", "/openapi", "/favicon", "/health/live")

_ALERT_PATH = re.compile(r"^/alerts/(?P<alert_id>[^/]+)/?$")

_ALERT_ACTIONS = {"PUT": "update", "DELETE": "delete"}


def classify_request(method: str, path: str) -> Tuple[str, Optional[str]]:
    """
    Map a request onto a relay action and the alert id it targets.

    >>> classify_request("PUT", "/alerts/alert_1_abc")
    ('update', 'alert_1_abc')
    >>> classify_request("GET", "/alerts")
    ('list', None)
    """
    match = _ALERT_PATH.match(path)
    if match:
        return _ALERT_ACTIONS.get(method, "read"), match.group("alert_id")
    if path == "/sos-alert":
        return "submit", None
    if path.rstrip("/") == "/alerts":
        return "list", None
    if path.startswith("/health"):
        return "health", None
    if path.startswith("/facilities"):
        return "facilities", None
    return "other", None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    One log line per relay request.

    A 404 on an alert route means a dashboard acted on an alert the relay
    no longer holds; those and every other >= 400 response log at WARNING.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID", uuid.uuid4().hex[:16])
        client_ip = request.client.host if request.client else "unknown"
        path = request.url.path
        action, alert_id = classify_request(request.method, path)

        context = {
            "request_id": request_id,
            "client_ip": client_ip,
            "endpoint": path,
            "method": request.method,
            "relay_action": action,
        }
        if alert_id:
            context["alert_id"] = alert_id
        set_request_context(**context)

        extra = {"endpoint": path, "relay_action": action}
        if alert_id:
            extra["alert_id"] = alert_id

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.error(
                "%s %s failed (%.1fms) [%s]",
                action, path, duration_ms, client_ip,
                extra={**extra, "duration_ms": duration_ms, "status_code": 500},
            )
            set_request_context()
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms:.1f}ms"

        if not path.startswith(_QUIET_PREFIXES):
            logger.log(
                logging.WARNING if response.status_code >= 400 else logging.INFO,
                "%s %s → %d (%.1fms) [%s]",
                action, path, response.status_code, duration_ms, client_ip,
                extra={**extra, "duration_ms": duration_ms, "status_code": response.status_code},
            )

        set_request_context()
        return response
