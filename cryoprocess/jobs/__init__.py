"""Job layer package for submission orchestration boundaries."""

from cryoprocess.domain import JobSubmissionError, JobValidationError, UnknownJobKindError

from .interfaces import JobSubmissionPort, SubmissionResult
from .submission_coordinator import JobSubmissionCoordinator, job_derive_resources

__all__ = [
	"JobSubmissionCoordinator",
	"JobSubmissionError",
	"JobSubmissionPort",
	"JobValidationError",
	"SubmissionResult",
	"UnknownJobKindError",
	"job_derive_resources",
]
