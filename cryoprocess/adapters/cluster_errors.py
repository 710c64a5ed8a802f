"""Project-native typed exceptions for cluster submission failures."""

from __future__ import annotations


class ClusterSubmissionError(Exception):
    """Base exception for adapter-level cluster submission failures.

    Attributes:
        scheduler_output: Optional raw scheduler output captured with the failure.
    """

    def __init__(self, message: str, scheduler_output: str | None = None):
        super().__init__(message)
        self.scheduler_output = scheduler_output


class ClusterConnectionError(ClusterSubmissionError, ConnectionError):
    """Submit command unavailable or unresponsive."""


class ClusterSchedulerError(ClusterSubmissionError, RuntimeError):
    """Scheduler rejected the batch script or replied with unparsable output."""


class ClusterRequestError(ClusterSubmissionError, ValueError):
    """Submission request carries values that cannot be placed in a batch script."""
