"""Project-native typed exceptions for notification transport failures."""

from __future__ import annotations


class NotificationTransportError(ConnectionError):
    """Upstream job status connection could not be opened or was lost.

    Attributes:
        endpoint_url: Endpoint the failure relates to, when known.
    """

    def __init__(self, message: str, endpoint_url: str | None = None):
        super().__init__(message)
        self.endpoint_url = endpoint_url
