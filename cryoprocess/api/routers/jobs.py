"""Job API router composition for kind listing, command preview and submission."""

from __future__ import annotations

import logging
import posixpath
import re
from typing import Any

from fastapi import APIRouter, Header, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from cryoprocess.adapters import (
    ClusterConnectionError,
    ClusterRequestError,
    ClusterSchedulerError,
    ClusterSubmissionError,
)
from cryoprocess.builders import BuilderContractError, JobBuilderRegistry
from cryoprocess.config import AppSettings
from cryoprocess.domain import ActingUser, JobSpec, ProjectContext
from cryoprocess.jobs import JobSubmissionPort, JobValidationError, UnknownJobKindError

from .notifications import JobStatusChangePayload, JobUpdateBroadcaster

logger = logging.getLogger(__name__)

_PROJECT_ID_PATTERN = re.compile(r"^[\w][\w.-]*$")
_ANONYMOUS_USER_ID = "anonymous"


class JobRequestPayload(BaseModel):
    """Job preview or submission request body.

    Attributes:
        kind: Job kind or alias.
        job_name: Job label such as `Job005`.
        parameters: Untyped parameter bag.
        output_directory: Optional output directory; defaults to `<stage>/<job_name>`.
    """

    kind: str = Field(min_length=1)
    job_name: str = Field(min_length=1, pattern=r"^[\w.-]+$")
    parameters: dict[str, Any] = Field(default_factory=dict)
    output_directory: str | None = None


def _api_error(message: str, status_code: int, **extra: Any) -> JSONResponse:
    payload = {"status": "error", "message": message, **extra}
    return JSONResponse(content=payload, status_code=status_code)


def api_create_jobs_router(
    settings: AppSettings,
    registry: JobBuilderRegistry,
    coordinator: JobSubmissionPort,
    broadcaster: JobUpdateBroadcaster,
) -> APIRouter:
    """Create jobs router with kind listing, preview and submission endpoints.

    Args:
        settings: Runtime settings providing the projects root path.
        registry: Job kind registry for kind metadata and default output folders.
        coordinator: Job-layer submission coordinator.
        broadcaster: WebSocket broadcaster notified about accepted submissions.

    Returns:
        APIRouter: Router exposing job APIs.

    Raises:
        ValueError: Raised when dependencies are invalid.
    """

    if settings is None:
        raise ValueError("settings must not be None")
    if registry is None:
        raise ValueError("registry must not be None")
    if coordinator is None:
        raise ValueError("coordinator must not be None")
    if broadcaster is None:
        raise ValueError("broadcaster must not be None")

    router = APIRouter(tags=["jobs"])

    def _api_build_request(
        project_id: str,
        request_payload: JobRequestPayload,
        user_id: str | None,
    ) -> tuple[JobSpec, ProjectContext, ActingUser]:
        project_path = posixpath.join(settings.projects_root_path, project_id)
        output_directory = request_payload.output_directory
        if not output_directory:
            definition = registry.registry_resolve(request_payload.kind)
            output_directory = posixpath.join(definition.stage_name, request_payload.job_name)
        job_spec = JobSpec(
            kind=request_payload.kind,
            parameters=request_payload.parameters,
            output_directory=output_directory,
            job_name=request_payload.job_name,
        )
        acting_user = ActingUser(user_id=(user_id or _ANONYMOUS_USER_ID).strip() or _ANONYMOUS_USER_ID)
        return job_spec, ProjectContext(project_id=project_id, project_path=project_path), acting_user

    @router.get("/jobs/kinds")
    def api_jobs_list_kinds() -> JSONResponse:
        """Return supported job kinds with stage names, aliases and capabilities.

        Returns:
            JSONResponse: Kind metadata list.

        Raises:
            RuntimeError: Raised when registry metadata is unavailable.
        """

        items = []
        for definition in registry.registry_definitions():
            items.append(
                {
                    "kind": definition.kind,
                    "stage_name": definition.stage_name,
                    "aliases": list(definition.aliases),
                    "supports_gpu": getattr(definition.factory, "supports_gpu", False),
                    "supports_mpi": getattr(definition.factory, "supports_mpi", False),
                }
            )
        return JSONResponse(content={"items": items}, status_code=status.HTTP_200_OK)

    @router.post("/projects/{project_id}/jobs/preview")
    def api_jobs_preview(
        project_id: str,
        request_payload: JobRequestPayload,
        user_id: str | None = Header(default=None, alias="X-User-Id"),
    ) -> JSONResponse:
        """Validate and render one job command without submitting it.

        Returns:
            JSONResponse: Rendered argv payload or error payload.

        Raises:
            RuntimeError: Raised when preview fails unexpectedly.
        """

        if not _PROJECT_ID_PATTERN.match(project_id):
            return _api_error("invalid project_id", status.HTTP_400_BAD_REQUEST)
        try:
            job_spec, project, acting_user = _api_build_request(project_id, request_payload, user_id)
            build_result = coordinator.job_preview(job_spec, project, acting_user)
        except UnknownJobKindError as error:
            return _api_error(str(error), status.HTTP_404_NOT_FOUND, kind=error.kind)
        except JobValidationError as error:
            return _api_error(error.detail, status.HTTP_422_UNPROCESSABLE_ENTITY)
        except BuilderContractError as error:
            return _api_error(str(error), status.HTTP_400_BAD_REQUEST)

        payload = {
            "kind": request_payload.kind,
            "job_name": job_spec.job_name,
            "argv": list(build_result.argv),
            "command": " ".join(build_result.argv),
            "supports_gpu": build_result.supports_gpu,
            "supports_mpi": build_result.supports_mpi,
            "relative_output_path": build_result.relative_output_path,
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    @router.post("/projects/{project_id}/jobs")
    async def api_jobs_submit(
        project_id: str,
        request_payload: JobRequestPayload,
        user_id: str | None = Header(default=None, alias="X-User-Id"),
    ) -> JSONResponse:
        """Validate, build and submit one job, then broadcast its pending state.

        Returns:
            JSONResponse: Submission payload or error payload.

        Raises:
            RuntimeError: Raised when submission fails unexpectedly.
        """

        if not _PROJECT_ID_PATTERN.match(project_id):
            return _api_error("invalid project_id", status.HTTP_400_BAD_REQUEST)
        try:
            job_spec, project, acting_user = _api_build_request(project_id, request_payload, user_id)
            submission_result = await run_in_threadpool(coordinator.job_submit, job_spec, project, acting_user)
        except UnknownJobKindError as error:
            return _api_error(str(error), status.HTTP_404_NOT_FOUND, kind=error.kind)
        except JobValidationError as error:
            return _api_error(error.detail, status.HTTP_422_UNPROCESSABLE_ENTITY)
        except BuilderContractError as error:
            return _api_error(str(error), status.HTTP_400_BAD_REQUEST)
        except ClusterConnectionError as error:
            return _api_error(str(error), status.HTTP_503_SERVICE_UNAVAILABLE)
        except (ClusterSchedulerError, ClusterRequestError, ClusterSubmissionError) as error:
            return _api_error(str(error), status.HTTP_502_BAD_GATEWAY)

        await broadcaster.broadcaster_publish(
            JobStatusChangePayload(
                job_id=submission_result.job_name,
                project_id=project_id,
                status="pending",
                details={"cluster_job_id": submission_result.cluster_job_id, "kind": submission_result.job_kind},
            )
        )
        logger.info(
            "user %s submitted %s in project %s as cluster job %s",
            acting_user.user_id,
            submission_result.job_name,
            project_id,
            submission_result.cluster_job_id,
        )
        payload = {
            "cluster_job_id": submission_result.cluster_job_id,
            "kind": submission_result.job_kind,
            "job_name": submission_result.job_name,
            "argv": list(submission_result.argv),
            "relative_output_path": submission_result.relative_output_path,
            "stage_timeline": submission_result.stage_timeline,
        }
        return JSONResponse(content=payload, status_code=status.HTTP_202_ACCEPTED)

    return router
