"""Typed interfaces for the notification transport boundary."""

from typing import AsyncIterator, Awaitable, Callable, Protocol

from cryoprocess.domain import JobStatusEvent


class NotificationConnection(Protocol):
    """One open upstream message connection."""

    def connection_is_open(self) -> bool:
        """Return whether frames may currently be sent.

        Returns:
            bool: True while the connection is open.

        Raises:
            RuntimeError: Raised when connection state is unavailable.
        """

    async def connection_send(self, message: str) -> None:
        """Send one text frame.

        Args:
            message: Serialized JSON frame.

        Returns:
            None: Sending does not return a value.

        Raises:
            NotificationTransportError: Raised when the frame cannot be sent.
        """

    async def connection_close(self) -> None:
        """Close the connection, tolerating repeated calls.

        Returns:
            None: Closing does not return a value.

        Raises:
            RuntimeError: This operation should not raise runtime errors.
        """

    def __aiter__(self) -> AsyncIterator[str]:
        """Iterate inbound text frames until the connection closes.

        Returns:
            AsyncIterator[str]: Inbound frames in arrival order.

        Raises:
            NotificationTransportError: Raised when the connection fails abnormally.
        """


TransportOpener = Callable[[str], Awaitable[NotificationConnection]]
JobUpdateCallback = Callable[[JobStatusEvent], None]
CallbackFailureHook = Callable[[Exception, JobStatusEvent, JobUpdateCallback], None]
