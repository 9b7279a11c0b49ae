"""Shared API dependencies and domain error translation."""

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.db.session import get_db_session
from projecthub.exceptions import NotFoundError, ProjectHubError
from projecthub.services.email import EmailSender
from projecthub.services.notification import NotificationService
from projecthub.services.realtime import RealtimePublisher


def get_realtime(request: Request) -> RealtimePublisher:
    """The process-wide realtime publisher created in ``create_app``."""
    return request.app.state.realtime


def get_email_sender(request: Request) -> EmailSender:
    return request.app.state.email_sender


def get_notification_service(
    db: AsyncSession = Depends(get_db_session),
    realtime: RealtimePublisher = Depends(get_realtime),
    email_sender: EmailSender = Depends(get_email_sender),
) -> NotificationService:
    return NotificationService(db, realtime, email_sender)


def handle_domain_error(error: ProjectHubError) -> HTTPException:
    """Convert domain errors to HTTP exceptions."""
    if isinstance(error, NotFoundError):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error.to_dict(),
        )
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=error.to_dict(),
    )
