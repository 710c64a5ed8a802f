"""Builder for solvent mask generation with `relion_mask_create`."""

from __future__ import annotations

import posixpath

from cryoprocess.domain import ValidationResult

from .base import JobCommandBuilder, builder_format_number
from .params import param_get, param_get_bool, param_get_float


class MaskCreateBuilder(JobCommandBuilder):
    """Create a soft-edged solvent mask from an input map."""

    kind = "mask_create"
    stage_name = "MaskCreate"
    supports_gpu = False
    supports_mpi = False

    def _builder_check_parameters(self) -> ValidationResult:
        input_map = param_get(self._parameters, "inputMap", None)
        return self.builder_validate_file_exists(input_map, "Input map")

    def _builder_kind_tokens(self, relative_output_dir: str, job_name: str) -> list[str]:
        bag = self._parameters
        argv = [
            "relion_mask_create",
            "--i",
            self.builder_input_argument(param_get(bag, "inputMap", None)),
            "--o",
            posixpath.join(relative_output_dir, "mask.mrc"),
            "--ini_threshold",
            builder_format_number(param_get_float(bag, "initialThreshold", 0.004)),
            "--extend_inimask",
            builder_format_number(param_get_float(bag, "extendBinaryMask", 3.0)),
            "--width_soft_edge",
            builder_format_number(param_get_float(bag, "softEdgeWidth", 6.0)),
        ]

        pixel_size = param_get_float(bag, ("angpix", "calibratedPixelSize"), -1.0)
        if pixel_size > 0:
            argv.extend(("--angpix", builder_format_number(pixel_size)))

        lowpass = param_get_float(bag, "lowpassFilter", 15.0)
        if lowpass > 0:
            argv.extend(("--lowpass", builder_format_number(lowpass)))

        if param_get_bool(bag, "invertMask", False):
            argv.append("--invert")

        if param_get_bool(bag, "fillWithSpheres", False):
            argv.extend(("--fill", "--sphere_radius", builder_format_number(param_get_float(bag, "sphereRadius", 10.0))))
        return argv
