"""Job status WebSocket endpoint and scheduler status push router."""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

TOO_MANY_CONNECTIONS_CLOSE_CODE = 4013


class JobStatusChangePayload(BaseModel):
    """Status change pushed by the scheduler monitor."""

    job_id: str = Field(min_length=1)
    project_id: str = Field(min_length=1)
    status: str = Field(min_length=1)
    old_status: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class JobUpdateBroadcaster:
    """Registry of accepted WebSocket clients grouped by subscribed project."""

    def __init__(self, max_clients: int = 200):
        """Initialize empty client registries.

        Args:
            max_clients: Maximum concurrently accepted clients.

        Returns:
            None: Initializer does not return a value.

        Raises:
            ValueError: Raised when max_clients is not positive.
        """

        if max_clients < 1:
            raise ValueError("max_clients must be >= 1")
        self._max_clients = max_clients
        self._client_projects: dict[WebSocket, str | None] = {}
        self._project_clients: dict[str, set[WebSocket]] = {}

    def broadcaster_client_count(self) -> int:
        return len(self._client_projects)

    def broadcaster_project_client_count(self, project_id: str) -> int:
        return len(self._project_clients.get(project_id, ()))

    async def broadcaster_accept(self, websocket: WebSocket) -> bool:
        """Accept a client, closing it with code 4013 when the server is full.

        Args:
            websocket: Incoming client connection.

        Returns:
            bool: True when the client was registered.

        Raises:
            RuntimeError: Raised when the handshake cannot be completed.
        """

        await websocket.accept()
        if len(self._client_projects) >= self._max_clients:
            logger.warning("rejecting websocket client: max clients (%s) reached", self._max_clients)
            await websocket.close(code=TOO_MANY_CONNECTIONS_CLOSE_CODE, reason="Too many connections")
            return False
        self._client_projects[websocket] = None
        return True

    def broadcaster_remove(self, websocket: WebSocket) -> None:
        project_id = self._client_projects.pop(websocket, None)
        if project_id is not None:
            self._broadcaster_detach(websocket, project_id)

    async def broadcaster_handle_message(self, websocket: WebSocket, raw_message: str) -> None:
        """Handle one inbound client frame.

        Args:
            websocket: Registered client connection.
            raw_message: Inbound text frame.

        Returns:
            None: Replies are sent to the client directly.

        Raises:
            WebSocketDisconnect: Raised when the client disconnected while replying.
        """

        try:
            message = json.loads(raw_message)
        except ValueError:
            await websocket.send_json({"type": "error", "message": "Invalid JSON"})
            return
        if not isinstance(message, dict):
            await websocket.send_json({"type": "error", "message": "Invalid JSON"})
            return

        message_type = message.get("type")
        if message_type == "subscribe":
            project_id = message.get("project_id") or message.get("projectId")
            if not project_id:
                await websocket.send_json({"type": "error", "message": "project_id is required"})
                return
            self._broadcaster_attach(websocket, str(project_id))
            await websocket.send_json({"type": "subscribed", "channel": f"project:{project_id}"})
        elif message_type == "unsubscribe":
            project_id = self._client_projects.get(websocket)
            if project_id is not None:
                self._broadcaster_detach(websocket, project_id)
                self._client_projects[websocket] = None
            await websocket.send_json({"type": "unsubscribed", "channel": f"project:{project_id}"})
        elif message_type == "ping":
            await websocket.send_json({"type": "pong"})
        else:
            logger.debug("ignoring websocket message type %r", message_type)

    async def broadcaster_publish(self, change: JobStatusChangePayload) -> int:
        """Send one `job_update` frame to every client of the change's project.

        Clients whose send fails are dropped from the registry.

        Args:
            change: Status change to broadcast.

        Returns:
            int: Number of clients the frame was delivered to.

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        frame: dict[str, Any] = {
            **change.details,
            "type": "job_update",
            "id": change.job_id,
            "project_id": change.project_id,
            "status": change.status,
            "oldStatus": change.old_status,
            "newStatus": change.status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        delivered_count = 0
        for websocket in tuple(self._project_clients.get(change.project_id, ())):
            try:
                await websocket.send_json(frame)
                delivered_count += 1
            except (WebSocketDisconnect, RuntimeError, OSError) as error:
                logger.info("dropping websocket client after failed send: %s", error)
                self.broadcaster_remove(websocket)
        logger.debug("job %s update delivered to %s clients", change.job_id, delivered_count)
        return delivered_count

    def _broadcaster_attach(self, websocket: WebSocket, project_id: str) -> None:
        previous_project_id = self._client_projects.get(websocket)
        if previous_project_id is not None and previous_project_id != project_id:
            self._broadcaster_detach(websocket, previous_project_id)
        self._client_projects[websocket] = project_id
        self._project_clients.setdefault(project_id, set()).add(websocket)

    def _broadcaster_detach(self, websocket: WebSocket, project_id: str) -> None:
        project_clients = self._project_clients.get(project_id)
        if project_clients is None:
            return
        project_clients.discard(websocket)
        if not project_clients:
            del self._project_clients[project_id]


def api_create_notifications_router(broadcaster: JobUpdateBroadcaster) -> APIRouter:
    """Create router exposing the job status WebSocket and status push endpoint.

    Args:
        broadcaster: Process-wide WebSocket client registry.

    Returns:
        APIRouter: Router exposing `/ws` and `/notifications/job-status`.

    Raises:
        ValueError: Raised when broadcaster is None.
    """

    if broadcaster is None:
        raise ValueError("broadcaster must not be None")

    router = APIRouter(tags=["notifications"])

    @router.websocket("/ws")
    async def api_notifications_socket(websocket: WebSocket) -> None:
        """Serve one subscriber connection until it disconnects."""

        if not await broadcaster.broadcaster_accept(websocket):
            return
        try:
            while True:
                raw_message = await websocket.receive_text()
                await broadcaster.broadcaster_handle_message(websocket, raw_message)
        except WebSocketDisconnect as disconnect:
            logger.debug("websocket client disconnected with code %s", disconnect.code)
        finally:
            broadcaster.broadcaster_remove(websocket)

    @router.post("/notifications/job-status")
    async def api_notifications_publish(change: JobStatusChangePayload) -> JSONResponse:
        """Broadcast one job status change to the job's project subscribers.

        Returns:
            JSONResponse: Delivery count payload.

        Raises:
            RuntimeError: Raised when broadcasting fails unexpectedly.
        """

        delivered_count = await broadcaster.broadcaster_publish(change)
        payload = {"status": "ok", "job_id": change.job_id, "delivered": delivered_count}
        return JSONResponse(content=payload, status_code=status.HTTP_202_ACCEPTED)

    return router
