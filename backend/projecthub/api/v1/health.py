"""Liveness and readiness probes."""

import structlog
from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from projecthub.config import get_settings
from projecthub.db.session import get_db_session

router = APIRouter()
logger = structlog.get_logger()
settings = get_settings()


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Ready when the database answers.

    Email delivery is reported but never fails the probe: notifications
    degrade to in-app only when SMTP is not configured.
    """
    try:
        await db.execute(text("SELECT 1"))
        database = "healthy"
    except SQLAlchemyError as e:
        logger.warning("readiness_database_unhealthy", error=str(e))
        database = "unhealthy"

    email_sender = request.app.state.email_sender
    email = "enabled" if getattr(email_sender, "enabled", True) else "disabled"

    return {
        "status": database,
        "version": settings.app_version,
        "checks": {"database": database},
        "email": email,
    }
