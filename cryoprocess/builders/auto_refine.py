"""Builder for 3D auto-refinement with `relion_refine --auto_refine`."""

from __future__ import annotations

import logging

from cryoprocess.domain import ValidationResult

from .base import JobCommandBuilder, builder_format_number
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

logger = logging.getLogger(__name__)

# Split random halves needs one leader and one worker per half set.
MIN_SPLIT_HALVES_MPI_PROCS = 3

_HEALPIX_ORDER_BY_SAMPLING: dict[str, int] = {
    "30 degrees": 0,
    "15 degrees": 1,
    "7.5 degrees": 2,
    "3.7 degrees": 3,
    "1.8 degrees": 4,
    "0.9 degrees": 5,
    "0.5 degrees": 6,
    "0.2 degrees": 7,
    "0.1 degrees": 8,
}
_DEFAULT_HEALPIX_ORDER = 2


class AutoRefineBuilder(JobCommandBuilder):
    """Refine particles against a reference map with gold-standard half sets."""

    kind = "auto_refine"
    stage_name = "AutoRefine"
    supports_gpu = True
    supports_mpi = True

    def builder_mpi_procs(self) -> int:
        """Return the MPI process count raised to the split-halves minimum when MPI is used."""

        mpi_procs = param_get_mpi_procs(self._parameters)
        if 1 < mpi_procs < MIN_SPLIT_HALVES_MPI_PROCS:
            logger.warning(
                "[%s] raising mpi procs from %s to %s for split random halves",
                self.stage_name,
                mpi_procs,
                MIN_SPLIT_HALVES_MPI_PROCS,
            )
            return MIN_SPLIT_HALVES_MPI_PROCS
        return mpi_procs

    def _builder_check_parameters(self) -> ValidationResult:
        input_star = param_get(self._parameters, "inputStarFile", None)
        reference_map = param_get(self._parameters, "referenceMap", None)
        if not input_star:
            return ValidationResult.validation_failed("Input star file is required")
        if not reference_map:
            return ValidationResult.validation_failed("Reference map is required")

        star_check = self.builder_validate_file_exists(input_star, "Input STAR file")
        if not star_check.valid:
            return star_check
        return self.builder_validate_file_exists(reference_map, "Reference map")

    def _builder_kind_tokens(self, relative_output_dir: str, job_name: str) -> list[str]:
        bag = self._parameters
        angular_sampling = str(param_get(bag, "initialAngularSampling", "7.5 degrees"))
        healpix_order = _HEALPIX_ORDER_BY_SAMPLING.get(angular_sampling, _DEFAULT_HEALPIX_ORDER)

        argv = self.builder_mpi_program("relion_refine", self.builder_mpi_procs())
        argv.extend(
            (
                "--i",
                self.builder_input_argument(param_get(bag, "inputStarFile", None)),
                "--o",
                f"{relative_output_dir}/",
                "--auto_refine",
                "--split_random_halves",
                "--ref",
                self.builder_input_argument(param_get(bag, "referenceMap", None)),
                "--ini_high",
                builder_format_number(
                    param_get_float(bag, ("initialLowPassFilter", "lowPassFilter", "ini_high"), 60.0)
                ),
                "--sym",
                str(param_get(bag, ("symmetry", "Symmetry"), "C1")),
                "--particle_diameter",
                str(param_get_int(bag, "maskDiameter", 200)),
                "--healpix_order",
                str(healpix_order),
                "--auto_local_healpix_order",
                "4",
                "--flatten_solvent",
                "--norm",
                "--scale",
                "--oversampling",
                "1",
                "--pool",
                str(max(1, param_get_int(bag, ("pooledParticles", "numberOfPooledParticle"), 3))),
                "--pad",
                "2",
                "--low_resol_join_halves",
                "40",
                "--j",
                str(param_get_threads(bag)),
            )
        )

        if not param_get_bool(bag, "resizeReference", True):
            argv.append("--trust_ref_size")

        reference_mask = param_get(bag, ("referenceMask", "solvent_mask"), None)
        if reference_mask:
            argv.extend(("--solvent_mask", self.builder_input_argument(reference_mask)))

        argv.extend(
            (
                "--offset_range",
                str(param_get_int(bag, ("initialOffsetRange", "offSetRange", "offset_range"), 5)),
                "--offset_step",
                str(param_get_int(bag, ("initialOffsetStep", "offSetStep", "offset_step"), 1)),
            )
        )

        if param_get_bool(bag, "finerAngularSampling", False):
            argv.extend(("--auto_ignore_angles", "--auto_resol_angles"))

        relax_symmetry = param_get(bag, ("relaxSymmetry", "RelaxSymmetry"), None)
        if relax_symmetry:
            argv.extend(("--relax_sym", str(relax_symmetry)))

        if not param_get_bool(bag, ("referenceMapAbsolute", "absoluteGreyscale"), False):
            argv.append("--firstiter_cc")
        if param_get_bool(bag, "ctfCorrection", True):
            argv.append("--ctf")
        if param_get_bool(bag, ("ignoreCTFs", "ctf_intact_first_peak"), False):
            argv.append("--ctf_intact_first_peak")
        if param_get_bool(bag, ("maskIndividualparticles", "maskParticlesWithZeros"), True):
            argv.append("--zero_mask")
        if param_get_bool(bag, "useBlushRegularisation", False):
            argv.append("--blush")
        if param_get_bool(bag, ("useSolventFlattenedFscs", "solvent_correct_fsc"), False):
            argv.append("--solvent_correct_fsc")
        if not param_get_bool(bag, ("useParallelIO", "Useparalleldisc"), True):
            argv.append("--no_parallel_disc_io")
        if not param_get_bool(bag, "combineIterations", False):
            argv.append("--dont_combine_weights_via_disc")

        if param_is_gpu_enabled(bag):
            argv.extend(("--gpu", param_get_gpu_ids(bag)))

        if param_get_bool(bag, ("helicalReconstruction", "helix"), False):
            argv.extend(self._builder_helical_tokens())
        return argv

    def _builder_helical_tokens(self) -> list[str]:
        bag = self._parameters
        argv = ["--helix"]

        tube_inner = param_get_float(bag, ("tubeDiameter1", "innerDiameter"), -1.0)
        tube_outer = param_get_float(bag, ("tubeDiameter2", "outerDiameter"), -1.0)
        if tube_inner > 0:
            argv.extend(("--helical_inner_diameter", builder_format_number(tube_inner)))
        argv.extend(("--helical_outer_diameter", builder_format_number(tube_outer)))
        argv.extend(
            (
                "--helical_nr_asu",
                str(param_get_int(bag, ("numberOfUniqueAsymmetrical", "uniqueAsymmetricalUnits"), 1)),
                "--helical_twist_initial",
                builder_format_number(param_get_float(bag, "initialTwist", 0.0)),
                "--helical_rise_initial",
                builder_format_number(param_get_float(bag, ("rise", "initialRise"), 0.0)),
                "--helical_z_percentage",
                builder_format_number(param_get_float(bag, "centralZlength", 30.0) / 100.0),
            )
        )

        sigma_tilt = param_get_float(bag, "angularTilt", 15.0)
        sigma_psi = param_get_float(bag, "angularPsi", 10.0)
        sigma_rot = param_get_float(bag, "angularRot", -1.0)
        if sigma_tilt > 0:
            argv.extend(("--sigma_tilt", builder_format_number(sigma_tilt)))
        if sigma_psi > 0:
            argv.extend(("--sigma_psi", builder_format_number(sigma_psi / 3.0)))
        if sigma_rot > 0:
            argv.extend(("--sigma_rot", builder_format_number(sigma_rot / 15.0)))

        if param_get_bool(bag, ("keepTiltPriorFixed", "tiltPrior"), True):
            argv.append("--helical_keep_tilt_prior_fixed")
        return argv
