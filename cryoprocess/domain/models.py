"""Typed domain models shared across runtime layers.

This module provides immutable data contracts for cross-layer communication
between the API surface, command builders, the submission coordinator and the
notification hub.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Mapping


@dataclass(frozen=True)
class ProjectContext:
    """Project scope a job is built and submitted for.

    Attributes:
        project_id: Stable project identifier used for notification routing.
        project_path: Absolute project root on the shared filesystem.
    """

    project_id: str
    project_path: str

    def __post_init__(self) -> None:
        if not self.project_id.strip():
            raise ValueError("project_id must not be blank")
        if not PurePosixPath(self.project_path).is_absolute():
            raise ValueError("project_path must be absolute")


@dataclass(frozen=True)
class ActingUser:
    """User on whose behalf a job is built.

    Attributes:
        user_id: External user identifier.
        username: Display or login name.
    """

    user_id: str
    username: str = ""


@dataclass(frozen=True)
class JobSpec:
    """Immutable description of one submission request.

    Attributes:
        kind: Job kind discriminator selecting the builder implementation.
        parameters: Raw, unvalidated parameter bag.
        output_directory: Caller-supplied output directory for this job instance.
        job_name: Caller-supplied job label such as `Job005`.
    """

    kind: str
    parameters: Mapping[str, Any]
    output_directory: str
    job_name: str


@dataclass(frozen=True)
class BuilderCapabilities:
    """Static per-kind resource capability declaration.

    Attributes:
        supports_gpu: Whether GPU resources may be requested for the kind.
        supports_mpi: Whether multi-process execution may be requested for the kind.
    """

    supports_gpu: bool
    supports_mpi: bool


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a builder precondition check.

    Exactly one state holds: `valid=True` without error, or `valid=False` with
    a non-blank human-readable error.

    Attributes:
        valid: Whether validation passed.
        error: Failure reason when validation did not pass.
    """

    valid: bool
    error: str | None = None

    def __post_init__(self) -> None:
        if self.valid and self.error is not None:
            raise ValueError("valid ValidationResult must not carry an error")
        if not self.valid and not (self.error or "").strip():
            raise ValueError("invalid ValidationResult requires a non-blank error")

    @classmethod
    def validation_ok(cls) -> ValidationResult:
        """Return a passing validation result.

        Returns:
            ValidationResult: Result with `valid=True`.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        return cls(valid=True, error=None)

    @classmethod
    def validation_failed(cls, error: str) -> ValidationResult:
        """Return a failing validation result with a reason.

        Args:
            error: Human-readable failure reason.

        Returns:
            ValidationResult: Result with `valid=False`.

        Raises:
            ValueError: Raised when the reason is blank.
        """

        return cls(valid=False, error=error)


@dataclass(frozen=True)
class BuildResult:
    """Rendered command for one validated job instance.

    Attributes:
        argv: Ordered command tokens, never empty.
        supports_gpu: Capability flag declared by the builder.
        supports_mpi: Capability flag declared by the builder.
        relative_output_path: Output directory relative to the project root.
    """

    argv: tuple[str, ...]
    supports_gpu: bool
    supports_mpi: bool
    relative_output_path: str

    def __post_init__(self) -> None:
        if not self.argv:
            raise ValueError("argv must not be empty")
        if any(not isinstance(token, str) for token in self.argv):
            raise ValueError("argv tokens must be strings")
        if PurePosixPath(self.relative_output_path).is_absolute():
            raise ValueError("relative_output_path must not be absolute")


@dataclass(frozen=True)
class ResourceRequest:
    """Cluster resources requested for one submission.

    Attributes:
        mpi_procs: Number of MPI processes (1 means no MPI).
        threads: Threads per process.
        gpus: Number of GPUs (0 means CPU only).
        partition: Optional scheduler partition name.
    """

    mpi_procs: int = 1
    threads: int = 1
    gpus: int = 0
    partition: str | None = None


class ConnectionState(str, Enum):
    """Notification transport connection state."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class JobStatusEvent:
    """Transient job state change pushed by the upstream event source.

    Attributes:
        job_id: Identifier of the job whose status changed.
        project_id: Project the job belongs to.
        status: Current status label.
        previous_status: Status before the change when reported.
        payload: Full decoded frame including kind-specific fields.
    """

    job_id: str
    project_id: str | None
    status: str | None
    previous_status: str | None = None
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class HealthStatus:
    """Health response contract used by health-check surfaces.

    Attributes:
        status: Overall status text for service health.
        detail: Additional message suitable for operational diagnostics.
    """

    status: str
    detail: str
