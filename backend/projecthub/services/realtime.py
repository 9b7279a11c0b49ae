"""Real-time push interface.

Services receive a publisher at construction time. The web process uses the
websocket ConnectionManager; background workers have no live sockets and use
the logging publisher.
"""

from typing import Any, Protocol

import structlog

logger = structlog.get_logger()


class RealtimePublisher(Protocol):
    """Best-effort, at-most-once delivery of events to connected clients."""

    async def emit_to_user(self, user_id: str, event: str, payload: dict[str, Any]) -> None:
        """Deliver an event to every live session of a user."""
        ...

    async def emit_to_workspace(
        self, workspace_id: str, event: str, payload: dict[str, Any]
    ) -> None:
        """Broadcast an event to every session watching a workspace."""
        ...


class LoggingPublisher:
    """Publisher for processes without websocket connections."""

    async def emit_to_user(self, user_id: str, event: str, payload: dict[str, Any]) -> None:
        logger.debug("realtime_event_dropped", channel="user", user_id=user_id, event=event)

    async def emit_to_workspace(
        self, workspace_id: str, event: str, payload: dict[str, Any]
    ) -> None:
        logger.debug(
            "realtime_event_dropped",
            channel="workspace",
            workspace_id=workspace_id,
            event=event,
        )
