"""Typed interfaces for job-layer submission responsibilities."""

from dataclasses import dataclass
from typing import Any, Protocol

from cryoprocess.domain import ActingUser, BuildResult, JobSpec, ProjectContext


@dataclass(frozen=True)
class SubmissionResult:
    """Result contract for one accepted cluster submission.

    Attributes:
        cluster_job_id: Scheduler job identifier.
        job_kind: Canonical job kind.
        job_name: Job label.
        argv: Submitted command tokens.
        relative_output_path: Job output directory relative to the project root.
        stage_timeline: Structured stage timeline entries captured during submission.
    """

    cluster_job_id: str
    job_kind: str
    job_name: str
    argv: tuple[str, ...]
    relative_output_path: str
    stage_timeline: list[dict[str, Any]]


class JobSubmissionPort(Protocol):
    """Port definition for validating, building and submitting jobs."""

    def job_supported_kinds(self) -> tuple[str, ...]:
        """Return the canonical job kinds this coordinator can submit.

        Returns:
            tuple[str, ...]: Deterministic list of supported kinds.

        Raises:
            RuntimeError: Raised when kind metadata is unavailable.
        """

    def job_preview(self, job_spec: JobSpec, project: ProjectContext, acting_user: ActingUser | None) -> BuildResult:
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

    def job_submit(self, job_spec: JobSpec, project: ProjectContext, acting_user: ActingUser | None) -> SubmissionResult:
        """Validate, build and submit one job.

        Args:
            job_spec: Submission request.
            project: Project scope.
            acting_user: User on whose behalf the job is built.

        Returns:
            SubmissionResult: Accepted submission payload.

        Raises:
            UnknownJobKindError: Raised when the kind is not registered.
            JobValidationError: Raised when parameters fail validation.
            ConnectionError: Raised when the cluster cannot be reached.
        """
