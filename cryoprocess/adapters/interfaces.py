"""Typed interfaces for adapter-layer responsibilities."""

from dataclasses import dataclass, field
from typing import Protocol

from cryoprocess.domain import ResourceRequest


@dataclass(frozen=True)
class ClusterSubmissionRequest:
    """Request contract handed to cluster submission adapters.

    Attributes:
        argv: Validated command tokens produced by a builder.
        supports_gpu: Builder capability flag for GPU execution.
        supports_mpi: Builder capability flag for multi-process execution.
        relative_output_path: Job output directory relative to the project root.
        job_name: Job label used as scheduler job name.
        project_path: Absolute project root the job runs in.
        resources: Resources already masked by builder capabilities.
    """

    argv: tuple[str, ...]
    supports_gpu: bool
    supports_mpi: bool
    relative_output_path: str
    job_name: str
    project_path: str
    resources: ResourceRequest = field(default_factory=ResourceRequest)


class ClusterSubmissionPort(Protocol):
    """Port definition for handing built commands to a cluster scheduler."""

    def adapter_source_name(self) -> str:
        """Return adapter source identifier for diagnostics.

        Returns:
            str: Human-readable scheduler identifier.

        Raises:
            RuntimeError: Raised when source metadata is unavailable.
        """

    def adapter_submit(self, request: ClusterSubmissionRequest) -> str:
        """Submit one job to the cluster.

        Args:
            request: Submission request with argv and resources.

        Returns:
            str: Scheduler job identifier.

        Raises:
            ConnectionError: Raised when the scheduler cannot be reached.
            RuntimeError: Raised when the scheduler rejects the job.
        """
