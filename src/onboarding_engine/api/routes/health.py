"""Health check endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from onboarding_engine.api.dependencies import AppSettings, DbSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    database: str


class ReadinessResponse(BaseModel):
    """Readiness of the service and its collaborators.

    Invitations and notifications are best effort, so a missing mailer or
    webhook is reported but does not make the service unready.
    """

    status: str
    database: str
    mailer: str  # 'configured' or 'disabled'
    notifications: str  # 'webhook' or 'log'


async def _database_status(db: DbSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Database health check failed", exc_info=True)
        return "unhealthy"
    return "healthy"


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(db: DbSession) -> HealthResponse:
    """Check API and database health."""
    db_status = await _database_status(db)
    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ReadinessResponse}},
)
async def readiness_check(
    db: DbSession, settings: AppSettings, response: Response
) -> ReadinessResponse:
    """Ready once sessions can be stored; reports delivery channels."""
    db_status = await _database_status(db)
    if db_status != "healthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(
        status="ready" if db_status == "healthy" else "not_ready",
        database=db_status,
        mailer="configured" if settings.mailer_api_key else "disabled",
        notifications="webhook" if settings.notification_webhook_url else "log",
    )


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
