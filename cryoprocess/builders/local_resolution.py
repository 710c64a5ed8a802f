"""Builder for local resolution estimation with `relion_postprocess --locres`."""

from __future__ import annotations

import posixpath

from cryoprocess.domain import ValidationResult

from .base import JobCommandBuilder, builder_format_number
from .params import param_get, param_get_float


class LocalResolutionBuilder(JobCommandBuilder):
    """Estimate local resolution from a half map and a solvent mask."""

    kind = "local_resolution"
    stage_name = "LocalRes"
    supports_gpu = False
    supports_mpi = True

    def _builder_check_parameters(self) -> ValidationResult:
        file_check = self.builder_validate_file_exists(param_get(self._parameters, "halfMap", None), "Half map")
        if not file_check.valid:
            return file_check
        if not param_get(self._parameters, "solventMask", None):
            return ValidationResult.validation_failed("Solvent mask is required")
        return ValidationResult.validation_ok()

    def _builder_kind_tokens(self, relative_output_dir: str, job_name: str) -> list[str]:
        bag = self._parameters
        argv = self.builder_mpi_program("relion_postprocess", self.builder_mpi_procs())
        argv.extend(
            (
                "--locres",
                "--i",
                self.builder_input_argument(param_get(bag, "halfMap", None)),
                "--mask",
                self.builder_input_argument(param_get(bag, "solventMask", None)),
                "--angpix",
                builder_format_number(param_get_float(bag, ("angpix", "calibratedPixelSize"), 1.0)),
                "--adhoc_bfac",
                builder_format_number(param_get_float(bag, "bFactor", -100.0)),
                "--o",
                posixpath.join(relative_output_dir, "relion"),
            )
        )

        mtf_file = param_get(bag, "mtfDetector", None)
        if mtf_file:
            argv.extend(("--mtf", self.builder_input_argument(mtf_file)))
        return argv
