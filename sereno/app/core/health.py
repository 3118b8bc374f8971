"""
Health reporting for the load balancer and operators.

``/health`` and ``/health/ready`` run every probe below. The database is the
only hard dependency: losing it makes the service UNHEALTHY. Redis (live
events) and simulated push only degrade it, since alerts still activate
and persist without them.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List

from sqlalchemy import text

from sereno.app.core.config import settings

if TYPE_CHECKING:
    from sereno.app.container import ServiceContainer

logger = logging.getLogger(__name__)

_BOOTED_AT = time.monotonic()


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    message: str = ""
    latency_ms: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name, "status": self.status.value}
        if self.latency_ms:
            out["latency_ms"] = round(self.latency_ms, 2)
        if self.message:
            out["message"] = self.message
        if self.details:
            out["details"] = self.details
        return out


@dataclass
class HealthReport:
    components: List[ComponentHealth]
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def status(self) -> HealthStatus:
        worst = HealthStatus.HEALTHY
        for component in self.components:
            if component.status is HealthStatus.UNHEALTHY:
                return HealthStatus.UNHEALTHY
            if component.status is HealthStatus.DEGRADED:
                worst = HealthStatus.DEGRADED
        return worst

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "checked_at": self.checked_at.isoformat(),
            "uptime_seconds": round(time.monotonic() - _BOOTED_AT, 1),
            "components": [c.to_dict() for c in self.components],
        }


Probe = Callable[["ServiceContainer", ComponentHealth], Awaitable[None]]


async def _probe_database(container: "ServiceContainer", comp: ComponentHealth) -> None:
    try:
        async with container.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("Database health probe failed: %s", exc)
        comp.status = HealthStatus.UNHEALTHY
        comp.message = str(exc)
        return
    comp.details["dialect"] = container.engine.dialect.name


async def _probe_redis(container: "ServiceContainer", comp: ComponentHealth) -> None:
    ping = getattr(container.broadcaster, "ping", None)
    if not settings.BROADCAST_ENABLED or ping is None:
        comp.message = "live events disabled"
        return
    try:
        reachable = await ping()
    except Exception as exc:
        reachable = False
        comp.message = str(exc)
    if not reachable:
        comp.status = HealthStatus.DEGRADED
        comp.message = comp.message or "redis unreachable"


async def _probe_push(container: "ServiceContainer", comp: ComponentHealth) -> None:
    simulated = bool(getattr(container.web_push, "simulate", False))
    comp.details["web_push"] = "simulated" if simulated else "live"
    comp.details["fcm"] = bool(container.fcm is not None and container.fcm.available)
    if simulated and settings.is_production:
        comp.status = HealthStatus.DEGRADED
        comp.message = "web push is simulated"


async def _probe_background(container: "ServiceContainer", comp: ComponentHealth) -> None:
    comp.details.update(container.runner.stats())


_PROBES: Dict[str, Probe] = {
    "database": _probe_database,
    "redis": _probe_redis,
    "push": _probe_push,
    "background_tasks": _probe_background,
}


async def run_health_check(container: "ServiceContainer") -> HealthReport:
    components = []
    for name, probe in _PROBES.items():
        comp = ComponentHealth(name=name)
        started = time.perf_counter()
        await probe(container, comp)
        comp.latency_ms = (time.perf_counter() - started) * 1000
        components.append(comp)
    return HealthReport(components)
