"""Command builder base contract shared by every job kind.

A builder turns one untyped parameter bag into a validated argument vector for
one RELION program. Subclasses provide kind-specific validation and tokens;
this module owns path relativisation, the trailing pipeline-control marker and
sanitising user-supplied extra arguments so every kind behaves the same way.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
import posixpath
import re
from pathlib import Path, PurePosixPath
from typing import Any, ClassVar, Mapping

from cryoprocess.domain import (
    ActingUser,
    BuilderCapabilities,
    BuildResult,
    ProjectContext,
    ValidationResult,
)

from .params import param_get, param_get_bool, param_get_mpi_procs

logger = logging.getLogger(__name__)

_SHELL_METACHARACTER_PATTERN = re.compile(r"[;|&`$()<>{}!\\\n\r]")
_ARGUMENT_TOKEN_PATTERN = re.compile(r'(?:[^\s"]+|"[^"]*")+')
_FLAG_TOKEN_PATTERN = re.compile(r"^--?\w[\w-]*$")
_JOB_REFERENCE_PATTERN = re.compile(r"Job(\d+)", re.IGNORECASE)

_INPUT_REFERENCE_FIELDS: tuple[str, ...] = (
    "inputStarFile",
    "inputMicrographs",
    "micrographStarFile",
    "inputParticles",
    "particlesStarFile",
    "maskFile",
    "referenceMap",
    "referenceMask",
    "inputMap",
    "inputVolume",
    "halfMap",
    "halfMap1",
    "halfMap2",
    "solventMask",
    "inputMask",
    "localresStarFile",
    "particlesStarFile1",
    "particlesStarFile2",
    "particlesStarFile3",
    "particlesStarFile4",
    "micrographStarFile1",
    "micrographStarFile2",
    "micrographStarFile3",
    "micrographStarFile4",
    "movieStarFile1",
    "movieStarFile2",
    "movieStarFile3",
    "movieStarFile4",
)


class BuilderContractError(RuntimeError):
    """Builder used out of contract, such as building before a passing validation."""


def builder_format_number(value: float | int) -> str:
    """Render a numeric flag value without a redundant fractional part.

    Args:
        value: Integer or float flag value.

    Returns:
        str: `3` for `3.0`, `0.004` for `0.004`.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class JobCommandBuilder(ABC):
    """Template for building one RELION command line from a parameter bag.

    Subclasses set `kind`, `stage_name` and the capability flags, then
    implement `_builder_check_parameters` and `_builder_kind_tokens`.
    """

    kind: ClassVar[str] = ""
    stage_name: ClassVar[str] = "Unknown"
    supports_gpu: ClassVar[bool] = True
    supports_mpi: ClassVar[bool] = True

    def __init__(
        self,
        parameters: Mapping[str, Any] | None,
        project: ProjectContext,
        acting_user: ActingUser | None = None,
    ):
        """Initialize builder state for one job instance.

        Args:
            parameters: Raw parameter bag, copied so later caller mutations do not leak in.
            project: Project scope resolving relative input paths.
            acting_user: User on whose behalf the job is built.

        Returns:
            None: Initializer does not return a value.

        Raises:
            ValueError: Raised when project is None.
        """

        if project is None:
            raise ValueError("project must not be None")

        self._parameters: dict[str, Any] = dict(parameters or {})
        self._project = project
        self._acting_user = acting_user
        self._project_root = PurePosixPath(posixpath.normpath(project.project_path))
        self._last_validation: ValidationResult | None = None

    @property
    def parameters(self) -> Mapping[str, Any]:
        """Return the builder-owned parameter bag."""

        return self._parameters

    @property
    def project(self) -> ProjectContext:
        """Return the project this builder targets."""

        return self._project

    def builder_capabilities(self) -> BuilderCapabilities:
        """Return static capability flags for this job kind.

        Returns:
            BuilderCapabilities: GPU and MPI support of the kind.

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        return BuilderCapabilities(supports_gpu=self.supports_gpu, supports_mpi=self.supports_mpi)

    def builder_validate(self) -> ValidationResult:
        """Check kind-specific preconditions and remember the outcome.

        Returns:
            ValidationResult: Passing result or failure with a reason.

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        validation_result = self._builder_check_parameters()
        self._last_validation = validation_result
        if validation_result.valid:
            logger.info("[%s] validation passed", self.stage_name)
        else:
            logger.warning("[%s] validation failed: %s", self.stage_name, validation_result.error)
        return validation_result

    def builder_build_command(self, output_directory: str, job_name: str) -> BuildResult:
        """Render the full argument vector for this job instance.

        Args:
            output_directory: Job output directory, absolute inside the project or project-relative.
            job_name: Job label such as `Job005`.

        Returns:
            BuildResult: Argument vector with capability flags and relative output path.

        Raises:
            BuilderContractError: Raised when called without a passing validation or
                when the output directory lies outside the project.
        """

        if self._last_validation is None or not self._last_validation.valid:
            raise BuilderContractError(
                f"builder_build_command requires a passing builder_validate for kind={self.kind}"
            )

        relative_output_dir = self.builder_make_relative(output_directory)
        if relative_output_dir in ("", "."):
            raise BuilderContractError("output_directory must name a directory below the project root")

        argv = list(self._builder_kind_tokens(relative_output_dir, job_name))
        argv.extend(("--pipeline_control", f"{relative_output_dir}/"))
        argv.extend(self._builder_additional_argument_tokens())

        logger.info("[%s] command built for %s: %s", self.stage_name, job_name, " ".join(argv))
        return BuildResult(
            argv=tuple(argv),
            supports_gpu=self.supports_gpu,
            supports_mpi=self.supports_mpi,
            relative_output_path=relative_output_dir,
        )

    def builder_make_relative(self, path: str) -> str:
        """Convert a path to project-relative form.

        Args:
            path: Absolute path inside the project root or already relative path.

        Returns:
            str: Normalised project-relative path.

        Raises:
            BuilderContractError: Raised when the path resolves outside the project root.
        """

        relative_path = self._builder_try_relative(path)
        if relative_path is None:
            raise BuilderContractError(f"path is outside project root {self._project_root}: {path}")
        return relative_path

    def builder_resolve_input_path(self, input_path: str | None) -> str:
        """Resolve an input path against the project root.

        Args:
            input_path: Absolute or project-relative path.

        Returns:
            str: Absolute path, or empty string for a missing input.

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        if not input_path:
            return ""
        candidate_path = PurePosixPath(str(input_path))
        if candidate_path.is_absolute():
            return str(candidate_path)
        return str(self._project_root / candidate_path)

    def builder_input_argument(self, input_path: str | None) -> str:
        """Return an input path as it should appear on the command line.

        Paths inside the project are rendered relative to it; paths elsewhere
        stay absolute.

        Args:
            input_path: Absolute or project-relative path.

        Returns:
            str: Command-line path token.

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        resolved_path = self.builder_resolve_input_path(input_path)
        relative_path = self._builder_try_relative(resolved_path)
        return relative_path if relative_path is not None else resolved_path

    def builder_validate_file_exists(self, file_path: str | None, field_name: str) -> ValidationResult:
        """Check that a referenced input file exists on the shared filesystem.

        Args:
            file_path: Absolute or project-relative file path.
            field_name: Field label used in the failure reason.

        Returns:
            ValidationResult: Passing result or failure naming the field.

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        if not file_path:
            return ValidationResult.validation_failed(f"{field_name} is required")

        resolved_path = self.builder_resolve_input_path(file_path)
        if not Path(resolved_path).exists():
            logger.warning("[%s] file not found: %s", self.stage_name, resolved_path)
            return ValidationResult.validation_failed(f"{field_name} not found: {file_path}")
        return ValidationResult.validation_ok()

    def builder_input_job_names(self) -> tuple[str, ...]:
        """Return upstream job labels referenced by this job's inputs.

        An explicit `inputJobIds` list wins; otherwise `JobNNN` references are
        extracted from well-known input fields and zero padded to three digits.

        Returns:
            tuple[str, ...]: Unique job labels in first-seen order.

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        explicit_job_ids = self._parameters.get("inputJobIds")
        if isinstance(explicit_job_ids, (list, tuple)) and explicit_job_ids:
            return tuple(str(job_id) for job_id in explicit_job_ids)

        job_names: dict[str, None] = {}
        for field_name in _INPUT_REFERENCE_FIELDS:
            field_value = self._parameters.get(field_name)
            if not isinstance(field_value, str) or not field_value:
                continue
            match = _JOB_REFERENCE_PATTERN.search(field_value)
            if match is not None:
                job_names[f"Job{int(match.group(1)):03d}"] = None
        return tuple(job_names)

    def builder_mpi_procs(self) -> int:
        """Return the MPI process count this job runs with."""

        return param_get_mpi_procs(self._parameters)

    def builder_mpi_program(self, program: str, mpi_procs: int) -> list[str]:
        """Return the program prefix for the requested MPI process count.

        Queue submissions rely on the scheduler to launch processes, so only
        local execution gets an explicit `mpirun` launcher.

        Args:
            program: Serial RELION program name.
            mpi_procs: Requested MPI process count.

        Returns:
            list[str]: Program tokens.

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        if mpi_procs <= 1:
            return [program]

        mpi_program = f"{program}_mpi"
        if param_get_bool(self._parameters, ("submitToQueue", "SubmitToQueue"), True):
            return [mpi_program]
        return ["mpirun", "-np", str(mpi_procs), mpi_program]

    @abstractmethod
    def _builder_check_parameters(self) -> ValidationResult:
        """Return the kind-specific validation outcome."""

    @abstractmethod
    def _builder_kind_tokens(self, relative_output_dir: str, job_name: str) -> list[str]:
        """Return kind-specific tokens preceding the pipeline-control marker."""

    def _builder_try_relative(self, path: str) -> str | None:
        if not path:
            return None

        candidate_path = PurePosixPath(posixpath.normpath(str(path)))
        if candidate_path.is_absolute():
            try:
                candidate_path = candidate_path.relative_to(self._project_root)
            except ValueError:
                return None

        relative_text = str(candidate_path)
        if relative_text == ".." or relative_text.startswith("../"):
            return None
        return relative_text

    def _builder_additional_argument_tokens(self) -> list[str]:
        raw_arguments = param_get(self._parameters, ("additionalArguments", "arguments"), None)
        if raw_arguments is None or not str(raw_arguments).strip():
            return []

        argument_text = str(raw_arguments).strip()
        if _SHELL_METACHARACTER_PATTERN.search(argument_text):
            logger.warning(
                "[%s] rejected additional arguments with shell metacharacters: %s",
                self.stage_name,
                argument_text[:80],
            )
            return []

        tokens: list[str] = []
        for raw_token in _ARGUMENT_TOKEN_PATTERN.findall(argument_text):
            token = raw_token.replace('"', "")
            if token.startswith("-") and not _FLAG_TOKEN_PATTERN.match(token):
                logger.warning("[%s] skipping malformed flag: %s", self.stage_name, token)
                continue
            tokens.append(token)
        return tokens
