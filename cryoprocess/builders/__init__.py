"""Command builder package turning job parameters into RELION argument vectors."""

from .auto_refine import AutoRefineBuilder
from .base import BuilderContractError, JobCommandBuilder, builder_format_number
from .join_star import JoinStarBuilder
from .local_resolution import LocalResolutionBuilder
from .mask_create import MaskCreateBuilder
from .params import (
	param_get,
	param_get_bool,
	param_get_float,
	param_get_gpu_ids,
	param_get_int,
	param_get_mpi_procs,
	param_get_threads,
	param_is_gpu_enabled,
)
from .postprocess import PostProcessBuilder, builder_derive_half_map_pair
from .registry import JobBuilderRegistry, JobKindDefinition, builders_create_default_registry

__all__ = [
	"AutoRefineBuilder",
	"BuilderContractError",
	"JobBuilderRegistry",
	"JobCommandBuilder",
	"JobKindDefinition",
	"JoinStarBuilder",
	"LocalResolutionBuilder",
	"MaskCreateBuilder",
	"PostProcessBuilder",
	"builder_derive_half_map_pair",
	"builder_format_number",
	"builders_create_default_registry",
	"param_get",
	"param_get_bool",
	"param_get_float",
	"param_get_gpu_ids",
	"param_get_int",
	"param_get_mpi_procs",
	"param_get_threads",
	"param_is_gpu_enabled",
]
