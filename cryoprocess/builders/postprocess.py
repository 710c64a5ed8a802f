"""Builder for map sharpening with `relion_postprocess`."""

from __future__ import annotations

import logging
import posixpath

from cryoprocess.domain import ValidationResult

from .base import JobCommandBuilder, builder_format_number
from .params import param_get, param_get_bool, param_get_float

logger = logging.getLogger(__name__)

# Checked in order; the first marker found in the selected map decides the pair.
_HALF_MAP_MARKERS: tuple[tuple[str, str], ...] = (
    ("_half2_", "_half1_"),
    ("half2", "half1"),
    ("_half1_", "_half2_"),
    ("half1", "half2"),
)


def builder_derive_half_map_pair(half_map: str) -> tuple[str, str] | None:
    """Derive both half-map paths from either half of a pair.

    Args:
        half_map: Path of the first or second unfiltered half map.

    Returns:
        tuple[str, str] | None: `(half1, half2)` paths, or None when the name
        carries no half-map marker.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    for found_marker, other_marker in _HALF_MAP_MARKERS:
        if found_marker not in half_map:
            continue
        other_map = half_map.replace(found_marker, other_marker, 1)
        if "half2" in found_marker:
            return other_map, half_map
        return half_map, other_map
    return None


class PostProcessBuilder(JobCommandBuilder):
    """Sharpen a refined map from its two half maps."""

    kind = "postprocess"
    stage_name = "PostProcess"
    supports_gpu = False
    supports_mpi = False

    def _builder_check_parameters(self) -> ValidationResult:
        half_map_1 = param_get(self._parameters, "halfMap1", "")
        half_map_2 = param_get(self._parameters, "halfMap2", "")
        selected_half_map = param_get(self._parameters, "halfMap", "")

        if selected_half_map and not half_map_1 and not half_map_2:
            derived_pair = builder_derive_half_map_pair(str(selected_half_map))
            if derived_pair is not None:
                half_map_1, half_map_2 = derived_pair
                self._parameters["halfMap1"] = half_map_1
                self._parameters["halfMap2"] = half_map_2
                logger.info("[%s] derived half maps %s and %s", self.stage_name, half_map_1, half_map_2)

        if not half_map_1:
            return ValidationResult.validation_failed("First half-map is required")
        if not half_map_2:
            return ValidationResult.validation_failed(
                "Second half-map is required (could not auto-derive from first half-map name)"
            )

        first_check = self.builder_validate_file_exists(half_map_1, "Half-map 1")
        if not first_check.valid:
            return first_check
        return self.builder_validate_file_exists(half_map_2, "Half-map 2")

    def _builder_kind_tokens(self, relative_output_dir: str, job_name: str) -> list[str]:
        bag = self._parameters
        argv = [
            "relion_postprocess",
            "--i",
            self.builder_input_argument(param_get(bag, "halfMap1", None)),
            "--i2",
            self.builder_input_argument(param_get(bag, "halfMap2", None)),
            "--o",
            posixpath.join(relative_output_dir, "postprocess"),
            "--angpix",
            builder_format_number(param_get_float(bag, ("angpix", "calibratedPixelSize"), 1.0)),
        ]

        solvent_mask = param_get(bag, "solventMask", None)
        if solvent_mask:
            argv.extend(("--mask", self.builder_input_argument(solvent_mask)))
        elif param_get_bool(bag, "autoMask", False):
            argv.extend(
                (
                    "--auto_mask",
                    "--inimask_threshold",
                    builder_format_number(param_get_float(bag, "initialMaskThreshold", 0.02)),
                    "--extend_inimask",
                    builder_format_number(param_get_float(bag, "extendMaskBinaryMap", 3.0)),
                    "--width_mask_edge",
                    builder_format_number(param_get_float(bag, "addMaskEdge", 6.0)),
                )
            )

        if param_get_bool(bag, "bFactor", True):
            argv.extend(
                (
                    "--auto_bfac",
                    "--autob_lowres",
                    builder_format_number(param_get_float(bag, "lowestResolution", 10.0)),
                    "--autob_highres",
                    builder_format_number(param_get_float(bag, "highestResolution", 0.0)),
                )
            )
        else:
            argv.extend(("--adhoc_bfac", builder_format_number(param_get_float(bag, "providedBFactor", 0.0))))

        mtf_file = param_get(bag, "mtfDetector", None)
        if mtf_file:
            argv.extend(("--mtf", self.builder_input_argument(mtf_file)))

        mtf_pixel_size = param_get_float(bag, "originalDetector", -1.0)
        if mtf_pixel_size > 0:
            argv.extend(("--mtf_angpix", builder_format_number(mtf_pixel_size)))

        if param_get_bool(bag, "skipFSC", False):
            argv.extend(("--skip_fsc_weighting", "--low_pass", builder_format_number(param_get_float(bag, "adHoc", 5.0))))

        if param_get_bool(bag, "estimateLocalResolution", False):
            argv.extend(
                (
                    "--locres",
                    "--locres_sampling",
                    builder_format_number(param_get_float(bag, "localResSampling", 25.0)),
                    "--locres_minres",
                    builder_format_number(param_get_float(bag, "localResMinRes", 50.0)),
                )
            )
        return argv
