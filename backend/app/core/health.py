"""
Health check aggregation — probes for the relay's subsystems.

Checks:
    • Alert cache (in-memory relay hub)
    • Mailbox store (memory or Redis key-value backend)
    • Realtime (Socket.IO server)

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from backend.app.core.config import settings
from backend.app.core.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


# Track application start time
_start_time = time.monotonic()


def check_alert_cache(alert_count: int) -> ComponentHealth:
    comp = ComponentHealth(name="alert_cache")
    comp.message = f"{alert_count} alerts cached (not durable)"
    comp.details = {"alerts": alert_count}
    return comp


async def check_mailbox_store(store: Optional[KeyValueStore]) -> ComponentHealth:
    """Ping the key-value backend behind the fallback mailbox."""
    comp = ComponentHealth(name="mailbox_store")
    start = time.monotonic()
    comp.details = {"backend": settings.MAILBOX_BACKEND}
    if store is None:
        comp.status = HealthStatus.DEGRADED
        comp.message = "Store not initialised"
    else:
        try:
            ok = await store.ping()
        except Exception as e:
            ok = False
            comp.message = str(e)
        if ok:
            comp.message = "Store reachable"
        else:
            comp.status = HealthStatus.UNHEALTHY
            comp.message = comp.message or "Store unreachable"
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


def check_realtime(connected_clients: int, mounted: bool) -> ComponentHealth:
    comp = ComponentHealth(name="realtime")
    if mounted:
        comp.message = f"{connected_clients} clients connected"
    else:
        comp.status = HealthStatus.DEGRADED
        comp.message = "Socket.IO server not mounted"
    comp.details = {"clients": connected_clients}
    return comp


async def run_health_check(
    *,
    alert_count: int,
    store: Optional[KeyValueStore],
    connected_clients: int = 0,
    realtime_mounted: bool = True,
) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    report.components.append(check_alert_cache(alert_count))
    report.components.append(await check_mailbox_store(store))
    report.components.append(check_realtime(connected_clients, realtime_mounted))

    # Aggregate status
    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    return report
