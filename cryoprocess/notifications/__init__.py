"""Real-time job status notification package."""

from .errors import NotificationTransportError
from .hub import DEFAULT_RECONNECT_DELAY_SECONDS, NotificationHub
from .interfaces import CallbackFailureHook, JobUpdateCallback, NotificationConnection, TransportOpener
from .subscriptions import JobUpdateListener, NotificationSubscriptions
from .transport import WebSocketNotificationConnection, websocket_open_connection

__all__ = [
    "CallbackFailureHook",
    "DEFAULT_RECONNECT_DELAY_SECONDS",
    "JobUpdateCallback",
    "JobUpdateListener",
    "NotificationConnection",
    "NotificationHub",
    "NotificationSubscriptions",
    "NotificationTransportError",
    "TransportOpener",
    "WebSocketNotificationConnection",
    "websocket_open_connection",
]
