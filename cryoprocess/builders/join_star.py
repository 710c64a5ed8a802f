"""Builder for combining STAR files with `relion_star_handler --combine`."""

from __future__ import annotations

import posixpath

from cryoprocess.domain import ValidationResult

from .base import JobCommandBuilder
from .params import param_get, param_get_bool

_SLOTS_PER_GROUP = 4

# (toggle keys, slot key stem, snake-case slot stem, output file name)
_COMBINE_GROUPS: tuple[tuple[tuple[str, str], str, str, str], ...] = (
    (("combineParticles", "combine_particles"), "particlesStarFile", "particles_star_file_", "join_particles.star"),
    (("combineMicrographs", "combine_micrographs"), "micrographStarFile", "micrograph_star_file_", "join_micrographs.star"),
    (("combineMovies", "combine_movies"), "movieStarFile", "movie_star_file_", "join_movies.star"),
)


class JoinStarBuilder(JobCommandBuilder):
    """Combine up to four particle, micrograph or movie STAR files per group."""

    kind = "join_star"
    stage_name = "JoinStar"
    supports_gpu = False
    supports_mpi = False

    def _builder_check_parameters(self) -> ValidationResult:
        if not any(param_get_bool(self._parameters, toggle_keys, False) for toggle_keys, *_ in _COMBINE_GROUPS):
            return ValidationResult.validation_failed("At least one type of file combination must be selected")
        return ValidationResult.validation_ok()

    def _builder_kind_tokens(self, relative_output_dir: str, job_name: str) -> list[str]:
        argv = ["relion_star_handler", "--combine"]
        for toggle_keys, slot_stem, snake_slot_stem, output_name in _COMBINE_GROUPS:
            if not param_get_bool(self._parameters, toggle_keys, False):
                continue

            group_inputs = [
                str(slot_value)
                for slot_value in (
                    param_get(self._parameters, (f"{slot_stem}{index}", f"{snake_slot_stem}{index}"), None)
                    for index in range(1, _SLOTS_PER_GROUP + 1)
                )
                if slot_value
            ]
            if not group_inputs:
                continue

            argv.extend(("--i", " ".join(group_inputs)))
            argv.extend(("--o", posixpath.join(relative_output_dir, output_name)))
        return argv
