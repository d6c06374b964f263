"""Schemas for the health check response."""

from typing import Literal

from finance_app.schemas.auth import ApiModel


class HealthResponse(ApiModel):
    """Liveness plus database reachability, for load balancers and monitoring."""

    status: Literal["ok"] = "ok"
    environment: str
    database: Literal["connected", "disconnected"]
