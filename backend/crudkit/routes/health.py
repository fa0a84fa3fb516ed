"""
crudkit — Health Check Routes
===============================

What:  Liveness and readiness probes mounted on every service.
Who:   Container health checks, load balancers, Kubernetes probes, the gateway.

Endpoints (plain JSON, not the envelope, so probes can read them directly):
    GET /health   → {"status": "ok", "service", "environment", "timestamp", "uptime"}
    GET /healthz  → same as /health
    GET /ready    → {"status": "ready", "service"}

Liveness never touches the database: a slow database must not get a healthy
process restarted.
"""

import time
from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel, Field

# Process start, for uptime reporting
_start_time = time.monotonic()


class HealthResponse(BaseModel):
    status: str = Field(description="Always 'ok' while the process serves requests")
    service: str
    environment: str
    timestamp: str = Field(description="Current time, ISO 8601 UTC")
    uptime: float = Field(description="Seconds since the process started")


class ReadyResponse(BaseModel):
    status: str
    service: str


def build_health_router(service_name: str, environment: str) -> APIRouter:
    """Probe routes reporting the given service name and environment."""
    router = APIRouter(tags=["Health"])

    async def health_check() -> HealthResponse:
        return HealthResponse(
            status="ok",
            service=service_name,
            environment=environment,
            timestamp=datetime.now(timezone.utc).isoformat(),
            uptime=round(time.monotonic() - _start_time, 3),
        )

    router.add_api_route("/health", health_check, methods=["GET"], response_model=HealthResponse, summary="Liveness probe")
    router.add_api_route("/healthz", health_check, methods=["GET"], response_model=HealthResponse, include_in_schema=False)

    @router.get("/ready", response_model=ReadyResponse, summary="Readiness probe")
    async def ready_check() -> ReadyResponse:
        return ReadyResponse(status="ready", service=service_name)

    return router
