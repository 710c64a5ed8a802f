"""Submission stage timeline entries recorded by the job coordinator."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any


class SubmissionStage(str, Enum):
    """Ordered stages one job passes through on its way to the scheduler."""

    RESOLVE = "resolve"
    VALIDATE = "validate"
    BUILD = "build"
    SUBMIT = "submit"


class StageStatus(str, Enum):
    """Outcome marker of one submission stage."""

    COMPLETED = "completed"
    FAILED = "failed"


def domain_build_stage_event(
    stage: SubmissionStage,
    status: StageStatus,
    job_name: str,
    details: dict[str, Any] | None = None,
) -> dict[str, object]:
    """Build one submission timeline entry for a job.

    Args:
        stage: Submission stage the entry describes.
        status: Stage outcome.
        job_name: Job the stage belongs to.
        details: Optional stage-specific values such as the cluster job id.

    Returns:
        dict[str, object]: JSON-ready timeline entry with plain string markers.

    Raises:
        ValueError: Raised when stage or status is not a known marker.
    """

    event_payload: dict[str, object] = {
        "stage": SubmissionStage(stage).value,
        "status": StageStatus(status).value,
        "job_name": job_name,
        "at_utc": datetime.now(timezone.utc).isoformat(),
    }
    if details:
        event_payload["details"] = details
    return event_payload
