"""Tests for submission stage timeline entries."""

import pytest

from cryoprocess.domain import StageStatus, SubmissionStage, domain_build_stage_event


def test_domain_build_stage_event_uses_plain_markers() -> None:
    """Store stage and status as plain strings next to the job name.

    Returns:
        None: Assertions validate the entry shape.

    Raises:
        AssertionError: Raised when the entry differs.
    """

    entry = domain_build_stage_event(SubmissionStage.SUBMIT, StageStatus.COMPLETED, "Job010", {"cluster_job_id": "7"})

    assert type(entry["stage"]) is str
    assert entry["stage"] == "submit"
    assert entry["status"] == "completed"
    assert entry["job_name"] == "Job010"
    assert entry["details"] == {"cluster_job_id": "7"}
    assert "at_utc" in entry


def test_domain_build_stage_event_omits_empty_details_and_rejects_unknown_stage() -> None:
    entry = domain_build_stage_event("validate", "failed", "Job001")

    assert entry["stage"] == "validate"
    assert "details" not in entry
    with pytest.raises(ValueError):
        domain_build_stage_event("queue", StageStatus.COMPLETED, "Job001")
