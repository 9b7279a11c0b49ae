"""WebSocket endpoints for real-time updates."""

import json
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from projecthub.api.v1.auth import decode_access_token
from projecthub.db.session import get_db_session
from projecthub.services.access_control import get_membership

router = APIRouter(prefix="/ws", tags=["websocket"])
logger = structlog.get_logger()


class ConnectionManager:
    """Manages WebSocket connections for real-time updates.

    A user may hold several sockets (tabs, devices). Delivery is
    best-effort: a socket that fails to receive is dropped.
    """

    def __init__(self):
        # Map of user_id -> set of websocket connections
        self.user_connections: dict[str, set[WebSocket]] = {}
        # Map of workspace (organization) id -> set of websocket connections
        self.workspace_connections: dict[str, set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, user_id: str) -> None:
        """Accept and register a websocket connection."""
        await websocket.accept()
        self.user_connections.setdefault(user_id, set()).add(websocket)
        logger.debug("websocket_connected", user_id=user_id)

    def join_workspace(self, websocket: WebSocket, workspace_id: str) -> None:
        self.workspace_connections.setdefault(workspace_id, set()).add(websocket)

    def leave_workspace(self, websocket: WebSocket, workspace_id: str) -> None:
        connections = self.workspace_connections.get(workspace_id)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            del self.workspace_connections[workspace_id]

    def disconnect(self, websocket: WebSocket) -> None:
        """Unregister a websocket connection from every channel."""
        for channels in (self.user_connections, self.workspace_connections):
            for key in list(channels):
                channels[key].discard(websocket)
                if not channels[key]:
                    del channels[key]

    async def emit_to_user(self, user_id: str, event: str, payload: dict[str, Any]) -> None:
        """Send an event to every live session of a user."""
        await self._send_all(self.user_connections.get(user_id, set()), event, payload)

    async def emit_to_workspace(
        self, workspace_id: str, event: str, payload: dict[str, Any]
    ) -> None:
        """Broadcast an event to all sessions subscribed to a workspace."""
        await self._send_all(
            self.workspace_connections.get(workspace_id, set()), event, payload
        )

    def connection_count(self, user_id: str) -> int:
        return len(self.user_connections.get(user_id, ()))

    async def _send_all(
        self, connections: set[WebSocket], event: str, payload: dict[str, Any]
    ) -> None:
        message = {"type": event, "payload": payload}
        dead = []
        for connection in list(connections):
            try:
                await connection.send_json(message)
            except Exception:
                # Connection might be closed
                dead.append(connection)
        for connection in dead:
            logger.debug("websocket_dropped", event=event)
            self.disconnect(connection)


def normalize_workspace_id(candidate: Any) -> str | None:
    """Canonical room key for a workspace id, or None if it is not a UUID."""
    try:
        return str(UUID(str(candidate)))
    except ValueError:
        return None


def message_workspace_id(message: dict[str, Any]) -> str | None:
    """Workspace id carried in a client message's payload, normalized."""
    payload = message.get("payload")
    if not isinstance(payload, dict) or not payload.get("workspace_id"):
        return None
    return normalize_workspace_id(payload["workspace_id"])


@router.websocket("/connect")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(...),
    workspace_id: UUID | None = Query(None),
    db: AsyncSession = Depends(get_db_session),
):
    """
    Main WebSocket endpoint for real-time updates.

    Query parameters:
    - token: Required. Access token of the connecting user.
    - workspace_id: Optional. Subscribe to a workspace's task events.

    Client messages: ``{"type": "ping"}``, ``{"type": "join_workspace",
    "payload": {"workspace_id": ...}}`` and ``leave_workspace``.
    """
    manager: ConnectionManager = websocket.app.state.realtime

    try:
        user_id = decode_access_token(token)
    except JWTError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    async def can_join(org_key: str) -> bool:
        membership = await get_membership(db, UUID(org_key), user_id)
        # Release the pooled connection between checks
        await db.close()
        return membership is not None

    initial_workspace = str(workspace_id) if workspace_id is not None else None
    if initial_workspace is not None and not await can_join(initial_workspace):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    user_key = str(user_id)
    await manager.connect(websocket, user_key)
    if initial_workspace is not None:
        manager.join_workspace(websocket, initial_workspace)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                continue
            if not isinstance(message, dict):
                continue

            message_type = message.get("type")
            target = message_workspace_id(message)

            if message_type == "ping":
                await websocket.send_json({"type": "pong"})

            elif message_type == "join_workspace" and target:
                if await can_join(target):
                    manager.join_workspace(websocket, target)
                    await websocket.send_json(
                        {"type": "workspace:joined", "payload": {"workspace_id": target}}
                    )
                else:
                    await websocket.send_json(
                        {"type": "error", "payload": {"code": "NOT_FOUND", "workspace_id": target}}
                    )

            elif message_type == "leave_workspace" and target:
                manager.leave_workspace(websocket, target)

    except WebSocketDisconnect:
        logger.debug("websocket_disconnected", user_id=user_key)
    finally:
        manager.disconnect(websocket)
