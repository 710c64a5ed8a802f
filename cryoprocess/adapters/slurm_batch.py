"""SLURM batch adapter writing a job script and submitting it with `sbatch`."""

from __future__ import annotations

import logging
import re
import shlex
import subprocess
from pathlib import Path
from typing import Callable, Final

from .cluster_errors import (
    ClusterConnectionError,
    ClusterRequestError,
    ClusterSchedulerError,
    ClusterSubmissionError,
)
from .interfaces import ClusterSubmissionPort, ClusterSubmissionRequest

logger = logging.getLogger(__name__)

CommandRunner = Callable[..., "subprocess.CompletedProcess[str]"]


class SlurmBatchAdapter(ClusterSubmissionPort):
    """Adapter implementation for script-based SLURM submission."""

    ALLOWED_SUBMIT_COMMANDS: Final[tuple[str, ...]] = ("sbatch", "/usr/bin/sbatch")
    SCRIPT_FILE_NAME: Final[str] = "run.sh"
    _SUBMITTED_JOB_PATTERN: Final[re.Pattern[str]] = re.compile(r"Submitted batch job (\d+)")
    _PARTITION_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[\w\-.,:/]+$")
    _PARTITION_MAX_LENGTH: Final[int] = 256
    _CONTROL_CHARACTER_PATTERN: Final[re.Pattern[str]] = re.compile(r"[\x00-\x1f\x7f]")
    _MAX_MPI_PROCS: Final[int] = 128
    _MAX_THREADS: Final[int] = 256
    _MAX_GPUS: Final[int] = 16

    def __init__(
        self,
        submit_command: str = "sbatch",
        default_partition: str | None = None,
        submit_timeout_seconds: float = 30.0,
        command_runner: CommandRunner | None = None,
    ):
        """Initialize SLURM batch adapter.

        Args:
            submit_command: Whitelisted submit executable.
            default_partition: Partition used when the request names none.
            submit_timeout_seconds: Timeout for one submit command execution.
            command_runner: Optional replacement for `subprocess.run`.

        Returns:
            None: Initializer does not return a value.

        Raises:
            ValueError: Raised when config values are invalid.
        """

        normalized_submit_command = submit_command.strip()
        if normalized_submit_command not in self.ALLOWED_SUBMIT_COMMANDS:
            raise ValueError(f"submit_command must be one of {', '.join(self.ALLOWED_SUBMIT_COMMANDS)}")
        if submit_timeout_seconds <= 0:
            raise ValueError("submit_timeout_seconds must be > 0")

        self._submit_command = normalized_submit_command
        self._default_partition = (default_partition or "").strip() or None
        self._submit_timeout_seconds = submit_timeout_seconds
        self._command_runner = command_runner or subprocess.run

    def adapter_source_name(self) -> str:
        """Return stable adapter source label.

        Returns:
            str: Source identifier.

        Raises:
            RuntimeError: This implementation does not raise runtime errors.
        """

        return f"slurm:{self._submit_command}"

    def adapter_render_script(self, request: ClusterSubmissionRequest) -> str:
        """Render the batch script for one submission request.

        Args:
            request: Submission request with argv and resources.

        Returns:
            str: Complete bash script text.

        Raises:
            ClusterRequestError: Raised when the request cannot be rendered safely.
        """

        if request is None:
            raise ClusterRequestError("request must not be None")
        if not request.argv:
            raise ClusterRequestError("request.argv must not be empty")

        self._adapter_check_script_value(request.job_name, "job_name")
        self._adapter_check_script_value(request.project_path, "project_path")
        self._adapter_check_script_value(request.relative_output_path, "relative_output_path")
        output_dir = self._adapter_output_dir(request)
        quoted_output_dir = shlex.quote(str(output_dir))
        success_marker = f"{quoted_output_dir}/RELION_JOB_EXIT_SUCCESS"
        failure_marker = f"{quoted_output_dir}/RELION_JOB_EXIT_FAILURE"
        partition = self._adapter_sanitize_partition(request.resources.partition or self._default_partition)
        mpi_procs = min(max(request.resources.mpi_procs, 1), self._MAX_MPI_PROCS)
        threads = min(max(request.resources.threads, 1), self._MAX_THREADS)
        gpus = min(max(request.resources.gpus, 0), self._MAX_GPUS)

        script_lines = [
            "#!/bin/bash",
            f"#SBATCH --job-name={shlex.quote(request.job_name)}",
            f"#SBATCH --output={shlex.quote(str(output_dir / 'run.out'))}",
            f"#SBATCH --error={shlex.quote(str(output_dir / 'run.err'))}",
        ]
        if partition:
            script_lines.append(f"#SBATCH --partition={partition}")
        if mpi_procs > 1:
            script_lines.append(f"#SBATCH --ntasks={mpi_procs}")
        if threads > 1:
            script_lines.append(f"#SBATCH --cpus-per-task={threads}")
        if gpus > 0:
            script_lines.append(f"#SBATCH --gres=gpu:{gpus}")

        command_text = " ".join(shlex.quote(token) for token in request.argv)
        # Local-spawn argv already carries its own launcher.
        if mpi_procs > 1 and request.argv[0] != "mpirun":
            command_text = f"mpirun -n {mpi_procs} {command_text}"

        script_lines.extend(
            (
                "",
                f"cd {shlex.quote(request.project_path)}",
                "",
                command_text,
                "",
                "CMD_EXIT_CODE=$?",
                "if [ $CMD_EXIT_CODE -eq 0 ]; then",
                f"  [ -f {success_marker} ] || touch {success_marker}",
                "else",
                f"  [ -f {failure_marker} ] || touch {failure_marker}",
                "fi",
                "exit $CMD_EXIT_CODE",
            )
        )
        return "\n".join(script_lines) + "\n"

    def adapter_submit(self, request: ClusterSubmissionRequest) -> str:
        """Write the batch script into the job directory and submit it.

        Args:
            request: Submission request with argv and resources.

        Returns:
            str: SLURM job identifier.

        Raises:
            ClusterRequestError: Raised when the request cannot be rendered safely.
            ClusterConnectionError: Raised when the submit command is missing or times out.
            ClusterSchedulerError: Raised when sbatch fails or its output has no job id.
            ClusterSubmissionError: Raised when the script cannot be written.
        """

        script_content = self.adapter_render_script(request)
        script_path = self._adapter_output_dir(request) / self.SCRIPT_FILE_NAME
        try:
            script_path.parent.mkdir(parents=True, exist_ok=True)
            script_path.write_text(script_content, encoding="utf-8")
            script_path.chmod(0o755)
        except OSError as error:
            raise ClusterSubmissionError(f"failed to write batch script {script_path}: {error}") from error
        logger.info("batch script written: %s", script_path)

        try:
            completed = self._command_runner(
                [self._submit_command, str(script_path)],
                cwd=request.project_path,
                capture_output=True,
                text=True,
                timeout=self._submit_timeout_seconds,
                check=False,
            )
        except FileNotFoundError as error:
            raise ClusterConnectionError(f"submit command not found: {self._submit_command}") from error
        except subprocess.TimeoutExpired as error:
            raise ClusterConnectionError(
                f"submit command timed out after {self._submit_timeout_seconds} seconds"
            ) from error

        stdout_text = (completed.stdout or "").strip()
        stderr_text = (completed.stderr or "").strip()
        if completed.returncode != 0:
            logger.error("sbatch exited with %s: %s", completed.returncode, stderr_text)
            raise ClusterSchedulerError(
                f"{self._submit_command} exited with status {completed.returncode}: {stderr_text}",
                scheduler_output=stderr_text or stdout_text,
            )

        match = self._SUBMITTED_JOB_PATTERN.search(stdout_text)
        if match is None:
            logger.error("failed to parse job id from sbatch output: %r", stdout_text)
            raise ClusterSchedulerError(
                f"unexpected {self._submit_command} output: {stdout_text}",
                scheduler_output=stdout_text,
            )

        cluster_job_id = match.group(1)
        logger.info("job %s submitted to SLURM as %s", request.job_name, cluster_job_id)
        return cluster_job_id

    def _adapter_output_dir(self, request: ClusterSubmissionRequest) -> Path:
        return Path(request.project_path) / request.relative_output_path

    def _adapter_sanitize_partition(self, partition: str | None) -> str | None:
        if partition is None:
            return None
        normalized_partition = partition.strip()
        if not normalized_partition:
            return None
        if len(normalized_partition) > self._PARTITION_MAX_LENGTH:
            raise ClusterRequestError("partition exceeds maximum length")
        if not self._PARTITION_PATTERN.match(normalized_partition):
            raise ClusterRequestError(f"partition contains invalid characters: {normalized_partition[:50]}")
        return normalized_partition

    def _adapter_check_script_value(self, value: str, label: str) -> None:
        if self._CONTROL_CHARACTER_PATTERN.search(value or ""):
            raise ClusterRequestError(f"{label} contains control characters")
