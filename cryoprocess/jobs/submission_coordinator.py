"""Job-layer submission coordinator with stage timeline capture."""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass
from pathlib import PurePosixPath

from cryoprocess.adapters import ClusterSubmissionPort, ClusterSubmissionRequest
from cryoprocess.builders import (
    JobBuilderRegistry,
    JobCommandBuilder,
    param_get,
    param_get_gpu_ids,
    param_get_threads,
    param_is_gpu_enabled,
)
from cryoprocess.domain import (
    ActingUser,
    BuildResult,
    JobSpec,
    JobValidationError,
    ProjectContext,
    ResourceRequest,
    StageStatus,
    SubmissionStage,
    domain_build_stage_event,
)

from .interfaces import JobSubmissionPort, SubmissionResult

logger = logging.getLogger(__name__)

_OUTPUT_DIRECTORY_PATTERN = re.compile(r"[\w./-]+")
_JOB_NAME_PATTERN = re.compile(r"[\w.-]+")


@dataclass(frozen=True)
class _PreparedJob:
    """Builder and build result produced by the shared preparation stages."""

    kind: str
    builder: JobCommandBuilder
    build_result: BuildResult
    stage_timeline: list[dict[str, object]]


def job_derive_resources(builder: JobCommandBuilder, default_partition: str | None = None) -> ResourceRequest:
    """Derive cluster resources from builder parameters masked by capabilities.

    GPUs are requested only for GPU-capable kinds with GPU enabled; MPI
    processes only for MPI-capable kinds.

    Args:
        builder: Validated builder for one job instance.
        default_partition: Partition used when the parameters name none.

    Returns:
        ResourceRequest: Resources safe to request for this kind.

    Raises:
        ValueError: Raised when builder is None.
    """

    if builder is None:
        raise ValueError("builder must not be None")

    capabilities = builder.builder_capabilities()
    parameters = builder.parameters
    gpus = 0
    if capabilities.supports_gpu and param_is_gpu_enabled(parameters):
        device_ids = [device_id for device_id in param_get_gpu_ids(parameters).split(",") if device_id.isdigit()]
        gpus = max(1, len(device_ids))

    partition = param_get(parameters, ("queueName", "queuename", "partition"), None)
    return ResourceRequest(
        mpi_procs=builder.builder_mpi_procs() if capabilities.supports_mpi else 1,
        threads=param_get_threads(parameters),
        gpus=gpus,
        partition=str(partition) if partition is not None else default_partition,
    )


class JobSubmissionCoordinator(JobSubmissionPort):
    """Concrete coordinator from job request to cluster submission."""

    def __init__(
        self,
        registry: JobBuilderRegistry,
        cluster_adapter: ClusterSubmissionPort,
        default_partition: str | None = None,
        submit_to_queue: bool = True,
    ):
        """Initialize submission coordinator dependencies.

        Args:
            registry: Job kind registry resolving builders.
            cluster_adapter: Adapter handing built commands to the scheduler.
            default_partition: Partition used when the parameters name none.
            submit_to_queue: Default for the `submitToQueue` parameter when a request omits it.

        Returns:
            None: Initializer does not return a value.

        Raises:
            ValueError: Raised when dependencies are invalid.
        """

        if registry is None:
            raise ValueError("registry must not be None")
        if cluster_adapter is None:
            raise ValueError("cluster_adapter must not be None")

        self._registry = registry
        self._cluster_adapter = cluster_adapter
        self._default_partition = default_partition
        self._submit_to_queue = submit_to_queue

    def job_supported_kinds(self) -> tuple[str, ...]:
        """Return supported canonical job kinds.

        Returns:
            tuple[str, ...]: Supported kinds.

        Raises:
            RuntimeError: This implementation does not raise runtime errors.
        """

        return self._registry.registry_supported_kinds()

    def job_preview(
        self,
        job_spec: JobSpec,
        project: ProjectContext,
        acting_user: ActingUser | None = None,
    ) -> BuildResult:
        """Validate and build one job without submitting it.

        Args:
            job_spec: Submission request.
            project: Project scope.
            acting_user: User on whose behalf the job is built.

        Returns:
            BuildResult: Rendered command.

        Raises:
            UnknownJobKindError: Raised when the kind is not registered.
            JobValidationError: Raised when parameters fail validation.
        """

        return self._job_prepare(job_spec, project, acting_user).build_result

    def job_submit(
        self,
        job_spec: JobSpec,
        project: ProjectContext,
        acting_user: ActingUser | None = None,
    ) -> SubmissionResult:
        """Validate, build and submit one job.

        Adapter errors propagate unchanged and are never retried here.

        Args:
            job_spec: Submission request.
            project: Project scope.
            acting_user: User on whose behalf the job is built.

        Returns:
            SubmissionResult: Accepted submission payload with stage timeline.

        Raises:
            UnknownJobKindError: Raised when the kind is not registered.
            JobValidationError: Raised when parameters fail validation.
            ClusterSubmissionError: Raised by the cluster adapter.
        """

        prepared_job = self._job_prepare(job_spec, project, acting_user)
        build_result = prepared_job.build_result
        stage_timeline = prepared_job.stage_timeline

        request = ClusterSubmissionRequest(
            argv=build_result.argv,
            supports_gpu=build_result.supports_gpu,
            supports_mpi=build_result.supports_mpi,
            relative_output_path=build_result.relative_output_path,
            job_name=job_spec.job_name,
            project_path=project.project_path,
            resources=job_derive_resources(prepared_job.builder, default_partition=self._default_partition),
        )
        try:
            cluster_job_id = self._cluster_adapter.adapter_submit(request)
        except Exception as error:
            failure_details = {"error": str(error)}
            stage_timeline.append(
                domain_build_stage_event(SubmissionStage.SUBMIT, StageStatus.FAILED, job_spec.job_name, failure_details)
            )
            logger.error("submission of %s failed: %s timeline=%s", job_spec.job_name, error, stage_timeline)
            raise

        stage_timeline.append(
            domain_build_stage_event(
                SubmissionStage.SUBMIT, StageStatus.COMPLETED, job_spec.job_name, {"cluster_job_id": cluster_job_id}
            )
        )
        logger.info("submitted %s as cluster job %s timeline=%s", job_spec.job_name, cluster_job_id, stage_timeline)
        return SubmissionResult(
            cluster_job_id=cluster_job_id,
            job_kind=prepared_job.kind,
            job_name=job_spec.job_name,
            argv=build_result.argv,
            relative_output_path=build_result.relative_output_path,
            stage_timeline=stage_timeline,
        )

    def _job_prepare(
        self,
        job_spec: JobSpec,
        project: ProjectContext,
        acting_user: ActingUser | None,
    ) -> _PreparedJob:
        if job_spec is None:
            raise ValueError("job_spec must not be None")
        if project is None:
            raise ValueError("project must not be None")

        stage_timeline: list[dict[str, object]] = []
        definition = self._registry.registry_resolve(job_spec.kind)
        parameters = dict(job_spec.parameters)
        parameters.setdefault("submitToQueue", self._submit_to_queue)
        builder = definition.factory(parameters, project, acting_user)
        job_name = job_spec.job_name
        stage_timeline.append(
            domain_build_stage_event(SubmissionStage.RESOLVE, StageStatus.COMPLETED, job_name, {"kind": definition.kind})
        )

        validation_result = builder.builder_validate()
        if not validation_result.valid:
            failure_details = {"error": validation_result.error}
            stage_timeline.append(
                domain_build_stage_event(SubmissionStage.VALIDATE, StageStatus.FAILED, job_name, failure_details)
            )
            raise JobValidationError(validation_result.error or "validation failed")
        self._job_check_output_directory(job_spec.output_directory, project)
        if not _JOB_NAME_PATTERN.fullmatch(job_name or ""):
            raise JobValidationError(f"Job name contains unsupported characters: {job_name!r}")
        stage_timeline.append(domain_build_stage_event(SubmissionStage.VALIDATE, StageStatus.COMPLETED, job_name))

        build_result = builder.builder_build_command(job_spec.output_directory, job_spec.job_name)
        stage_timeline.append(
            domain_build_stage_event(
                SubmissionStage.BUILD,
                StageStatus.COMPLETED,
                job_spec.job_name,
                {"token_count": len(build_result.argv)},
            )
        )
        return _PreparedJob(
            kind=definition.kind,
            builder=builder,
            build_result=build_result,
            stage_timeline=stage_timeline,
        )

    def _job_check_output_directory(self, output_directory: str, project: ProjectContext) -> None:
        if not output_directory or not output_directory.strip():
            raise JobValidationError("Output directory is required")

        if not _OUTPUT_DIRECTORY_PATTERN.fullmatch(output_directory):
            raise JobValidationError(f"Output directory contains unsupported characters: {output_directory!r}")

        normalized_path = posixpath.normpath(output_directory.strip())
        project_root = posixpath.normpath(project.project_path)
        if PurePosixPath(normalized_path).is_absolute():
            inside_project = normalized_path.startswith(f"{project_root}/")
        else:
            inside_project = normalized_path not in (".", "..") and not normalized_path.startswith("../")
        if not inside_project:
            raise JobValidationError(f"Output directory must be inside the project: {output_directory}")
