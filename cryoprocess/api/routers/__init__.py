"""API router package for endpoint composition."""

from .health import api_create_health_router
from .jobs import JobRequestPayload, api_create_jobs_router
from .notifications import (
    JobStatusChangePayload,
    JobUpdateBroadcaster,
    TOO_MANY_CONNECTIONS_CLOSE_CODE,
    api_create_notifications_router,
)

__all__ = [
    "JobRequestPayload",
    "JobStatusChangePayload",
    "JobUpdateBroadcaster",
    "TOO_MANY_CONNECTIONS_CLOSE_CODE",
    "api_create_health_router",
    "api_create_jobs_router",
    "api_create_notifications_router",
]
