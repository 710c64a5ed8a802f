"""Health endpoint router composition for service and notification checks."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from cryoprocess.builders import JobBuilderRegistry
from cryoprocess.domain import HealthStatus

from .notifications import JobUpdateBroadcaster


def api_create_health_router(registry: JobBuilderRegistry, broadcaster: JobUpdateBroadcaster) -> APIRouter:
    """Create health-check router with builder and notification status.

    Args:
        registry: Job kind registry whose kinds are reported.
        broadcaster: WebSocket broadcaster whose client count is reported.

    Returns:
        APIRouter: Router exposing `/health` endpoint.

    Raises:
        ValueError: Raised when dependencies are invalid.
    """

    if registry is None:
        raise ValueError("registry must not be None")
    if broadcaster is None:
        raise ValueError("broadcaster must not be None")

    router = APIRouter(tags=["health"])

    @router.get("/health")
    def api_health_status() -> JSONResponse:
        """Return application health state.

        Returns:
            JSONResponse: Deterministic health payload for operational checks.

        Raises:
            RuntimeError: Raised when registry metadata is unavailable.
        """

        supported_kinds = registry.registry_supported_kinds()
        if supported_kinds:
            health = HealthStatus(status="ok", detail=f"{len(supported_kinds)} job kinds registered")
        else:
            health = HealthStatus(status="degraded", detail="no job kinds registered")
        payload = {
            "status": health.status,
            "app": "up",
            "detail": health.detail,
            "job_kinds": list(supported_kinds),
            "websocket_clients": broadcaster.broadcaster_client_count(),
        }
        status_code = status.HTTP_200_OK if supported_kinds else status.HTTP_503_SERVICE_UNAVAILABLE
        return JSONResponse(content=payload, status_code=status_code)

    return router
