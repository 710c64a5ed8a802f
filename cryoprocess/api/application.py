"""FastAPI application factory for the job processing service.

This module defines API application composition used by the service runtime.
"""

from fastapi import FastAPI

from cryoprocess.builders import JobBuilderRegistry
from cryoprocess.config import AppSettings
from cryoprocess.jobs import JobSubmissionPort

from .routers import (
    JobUpdateBroadcaster,
    api_create_health_router,
    api_create_jobs_router,
    api_create_notifications_router,
)


def create_api_application(
    settings: AppSettings,
    registry: JobBuilderRegistry,
    coordinator: JobSubmissionPort,
    broadcaster: JobUpdateBroadcaster | None = None,
) -> FastAPI:
    """Create the FastAPI application instance for the service.

    Args:
        settings: Validated application settings used for runtime metadata.
        registry: Job kind registry used by job and health endpoints.
        coordinator: Job submission coordinator for preview and submit APIs.
        broadcaster: Optional WebSocket broadcaster; a new one is created when omitted.

    Returns:
        FastAPI: Framework application instance with all routers mounted.

    Raises:
        RuntimeError: Raised if application initialization fails.
    """
    application = FastAPI(title="Cryo Processing Jobs")
    job_broadcaster = broadcaster or JobUpdateBroadcaster(max_clients=settings.notification_max_clients)
    application.state.broadcaster = job_broadcaster

    @application.get("/", tags=["foundation"])
    def foundation_index() -> dict[str, str]:
        """Return a minimal foundation response for bootstrap verification.

        Returns:
            dict[str, str]: Minimal response for API framework verification.

        Raises:
            RuntimeError: Raised if route handler cannot produce a response.
        """

        return {
            "service": "cryoprocess",
            "status": "foundation-ready",
            "environment": settings.environment_name,
        }

    application.include_router(api_create_health_router(registry=registry, broadcaster=job_broadcaster))
    application.include_router(
        api_create_jobs_router(
            settings=settings,
            registry=registry,
            coordinator=coordinator,
            broadcaster=job_broadcaster,
        )
    )
    application.include_router(api_create_notifications_router(broadcaster=job_broadcaster))

    return application
