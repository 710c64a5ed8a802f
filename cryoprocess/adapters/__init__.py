"""Adapter layer package for cluster scheduler integration boundaries."""

from .cluster_errors import (
	ClusterConnectionError,
	ClusterRequestError,
	ClusterSchedulerError,
	ClusterSubmissionError,
)
from .interfaces import ClusterSubmissionPort, ClusterSubmissionRequest
from .slurm_batch import SlurmBatchAdapter

__all__ = [
	"ClusterConnectionError",
	"ClusterRequestError",
	"ClusterSchedulerError",
	"ClusterSubmissionError",
	"ClusterSubmissionPort",
	"ClusterSubmissionRequest",
	"SlurmBatchAdapter",
]
