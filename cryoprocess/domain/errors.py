"""Project-native typed exceptions for job submission failures."""

from __future__ import annotations


class JobSubmissionError(Exception):
    """Base exception for failures raised before a job reaches the cluster."""


class UnknownJobKindError(JobSubmissionError, LookupError):
    """Requested job kind has no registered builder.

    Attributes:
        kind: Job kind as supplied by the caller.
    """

    def __init__(self, kind: str):
        super().__init__(f"unknown job kind: {kind!r}")
        self.kind = kind


class JobValidationError(JobSubmissionError, ValueError):
    """Job parameters failed builder preconditions.

    Attributes:
        detail: Human-readable failure reason suitable for end users.
    """

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail
