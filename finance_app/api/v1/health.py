"""Health check endpoint with database connectivity check."""

from fastapi import APIRouter, Request

from finance_app.api.v1.deps import DbSession
from finance_app.core.database import check_db_connected
from finance_app.schemas.health import HealthResponse

router = APIRouter()


@router.get("/", response_model=HealthResponse)
async def get_health(request: Request, db: DbSession) -> HealthResponse:
    """
    Return service health status and database connectivity.
    Used by load balancers and monitoring.
    """
    db_status = "connected" if await check_db_connected(db) else "disconnected"
    return HealthResponse(
        status="ok",
        environment=request.app.state.settings.APP_ENV,
        database=db_status,
    )
