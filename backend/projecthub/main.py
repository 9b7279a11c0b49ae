"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from projecthub.api import router as api_router
from projecthub.api.v1.websocket import ConnectionManager
from projecthub.config import get_settings
from projecthub.db.session import close_db, init_db
from projecthub.middleware.logging import LoggingMiddleware
from projecthub.middleware.request_id import RequestIDMiddleware
from projecthub.services.email import EmailSender, SMTPEmailSender
from projecthub.services.realtime import RealtimePublisher

logger = structlog.get_logger()
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown events."""
    logger.info("app_starting", app=settings.app_name, version=settings.app_version)
    await init_db()
    logger.info("database_connected")

    yield

    logger.info("app_stopping", app=settings.app_name)
    await close_db()
    logger.info("database_closed")


def create_app(
    realtime: RealtimePublisher | None = None,
    email_sender: EmailSender | None = None,
    use_lifespan: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    The realtime publisher and email sender are process-wide sinks shared
    by every request; tests pass their own.
    """
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Multi-tenant project management: task dependencies, completion rules and notifications",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        default_response_class=ORJSONResponse,
        lifespan=lifespan if use_lifespan else None,
    )

    app.state.realtime = realtime or ConnectionManager()
    app.state.email_sender = email_sender or SMTPEmailSender(settings)

    # Add middleware (order matters - last added is first executed)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    # Trust proxy headers (X-Forwarded-Proto, X-Forwarded-For) from nginx
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint for load balancers."""
        return {"status": "healthy", "version": settings.app_version}

    return app


app = create_app()
