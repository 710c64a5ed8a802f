"""Domain models used across application layer boundaries."""

from .errors import JobSubmissionError, JobValidationError, UnknownJobKindError
from .models import (
    ActingUser,
    BuilderCapabilities,
    BuildResult,
    ConnectionState,
    HealthStatus,
    JobSpec,
    JobStatusEvent,
    ProjectContext,
    ResourceRequest,
    ValidationResult,
)
from .timeline import StageStatus, SubmissionStage, domain_build_stage_event

__all__ = [
    "ActingUser",
    "BuilderCapabilities",
    "BuildResult",
    "ConnectionState",
    "HealthStatus",
    "JobSpec",
    "JobSubmissionError",
    "JobValidationError",
    "JobStatusEvent",
    "ProjectContext",
    "ResourceRequest",
    "StageStatus",
    "SubmissionStage",
    "UnknownJobKindError",
    "ValidationResult",
    "domain_build_stage_event",
]
