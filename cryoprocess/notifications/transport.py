"""WebSocket transport for the upstream job status stream."""

from __future__ import annotations

import logging
from typing import AsyncIterator

import websockets
from websockets.exceptions import ConnectionClosedError, WebSocketException
from websockets.protocol import State

from .errors import NotificationTransportError
from .interfaces import NotificationConnection

logger = logging.getLogger(__name__)

DEFAULT_OPEN_TIMEOUT_SECONDS = 10.0


class WebSocketNotificationConnection(NotificationConnection):
    """Adapter exposing a `websockets` client connection as a notification connection."""

    def __init__(self, connection, endpoint_url: str):
        """Wrap one open client connection.

        Args:
            connection: Open `websockets` client connection.
            endpoint_url: Endpoint the connection was opened against.

        Returns:
            None: Initializer does not return a value.

        Raises:
            ValueError: Raised when connection is None.
        """

        if connection is None:
            raise ValueError("connection must not be None")
        self._connection = connection
        self._endpoint_url = endpoint_url
        self._closed = False

    def connection_is_open(self) -> bool:
        return not self._closed and self._connection.state is State.OPEN

    async def connection_send(self, message: str) -> None:
        try:
            await self._connection.send(message)
        except WebSocketException as error:
            raise NotificationTransportError(f"send failed: {error}", endpoint_url=self._endpoint_url) from error

    async def connection_close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._connection.close()

    async def __aiter__(self) -> AsyncIterator[str]:
        try:
            async for frame in self._connection:
                if isinstance(frame, bytes):
                    yield frame.decode("utf-8", errors="replace")
                else:
                    yield frame
        except ConnectionClosedError as error:
            raise NotificationTransportError(
                f"connection closed abnormally: {error}", endpoint_url=self._endpoint_url
            ) from error


async def websocket_open_connection(
    endpoint_url: str,
    open_timeout_seconds: float = DEFAULT_OPEN_TIMEOUT_SECONDS,
) -> WebSocketNotificationConnection:
    """Open one WebSocket connection to the job status endpoint.

    Args:
        endpoint_url: `ws://` or `wss://` endpoint URL.
        open_timeout_seconds: Handshake timeout.

    Returns:
        WebSocketNotificationConnection: Open connection wrapper.

    Raises:
        NotificationTransportError: Raised when the connection cannot be opened.
    """

    try:
        connection = await websockets.connect(endpoint_url, open_timeout=open_timeout_seconds)
    except (OSError, TimeoutError, WebSocketException) as error:
        raise NotificationTransportError(
            f"failed to open {endpoint_url}: {error}", endpoint_url=endpoint_url
        ) from error

    logger.debug("opened notification connection to %s", endpoint_url)
    return WebSocketNotificationConnection(connection, endpoint_url=endpoint_url)
