"""Typed runtime settings with dotenv support and startup validation."""

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ALLOWED_SUBMIT_COMMANDS = ("sbatch", "/usr/bin/sbatch")
_ALLOWED_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class SettingsLoadError(RuntimeError):
    """Raised when runtime settings cannot be loaded or validated."""


class AppSettings(BaseSettings):
    """Application settings for API runtime, job submission and notifications.

    Environment variable names map directly to field names in uppercase.
    Example: `projects_root_path` reads from `PROJECTS_ROOT_PATH`.

    Attributes:
        environment_name: Runtime environment label.
        application_host: Host interface for web server binding.
        application_port: Web server port.
        projects_root_path: Shared filesystem root holding one folder per project.
        notification_host: Host of the upstream job status WebSocket endpoint.
        notification_port: Port of the upstream job status WebSocket endpoint.
        notification_secure: Whether the notification endpoint uses `wss`.
        notification_reconnect_delay_seconds: Fixed delay between reconnection attempts.
        notification_max_clients: Maximum concurrent WebSocket clients accepted by the server.
        slurm_submit_command: Whitelisted batch submit executable.
        slurm_partition: Optional default SLURM partition.
        slurm_submit_timeout_seconds: Timeout for one submit command execution.
        submit_to_queue: Whether builders target the cluster queue or local execution.
        log_level: Root logging level name.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment_name: str = Field(default="development")
    application_host: str = Field(default="0.0.0.0")
    application_port: int = Field(default=8001, ge=1, le=65535)
    projects_root_path: str = Field(default="/data/projects", min_length=1)
    notification_host: str = Field(default="localhost", min_length=1)
    notification_port: int = Field(default=8001, ge=1, le=65535)
    notification_secure: bool = Field(default=False)
    notification_reconnect_delay_seconds: float = Field(default=5.0, gt=0)
    notification_max_clients: int = Field(default=200, ge=1)
    slurm_submit_command: str = Field(default="sbatch")
    slurm_partition: str | None = Field(default=None)
    slurm_submit_timeout_seconds: float = Field(default=30.0, gt=0)
    submit_to_queue: bool = Field(default=True)
    log_level: str = Field(default="INFO")

    @field_validator("projects_root_path", "notification_host")
    @classmethod
    def _validate_non_empty_string(cls, value: str) -> str:
        stripped_value = value.strip()
        if not stripped_value:
            raise ValueError("value must not be blank")
        return stripped_value

    @field_validator("slurm_submit_command")
    @classmethod
    def _validate_submit_command(cls, value: str) -> str:
        stripped_value = value.strip()
        if stripped_value not in _ALLOWED_SUBMIT_COMMANDS:
            raise ValueError(f"slurm_submit_command must be one of {', '.join(_ALLOWED_SUBMIT_COMMANDS)}")
        return stripped_value

    @field_validator("slurm_partition")
    @classmethod
    def _validate_partition(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped_value = value.strip()
        return stripped_value or None

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        normalized_value = value.strip().upper()
        if normalized_value not in _ALLOWED_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_ALLOWED_LOG_LEVELS)}")
        return normalized_value


def config_load_settings() -> AppSettings:
    """Load and validate runtime settings from environment and dotenv.

    Returns:
        AppSettings: Validated runtime settings object.

    Raises:
        SettingsLoadError: Raised when required settings are missing or invalid.
    """

    try:
        return AppSettings()
    except ValidationError as error:
        raise SettingsLoadError(
            f"Startup configuration validation failed. Update .env or environment variables. Details: {error}"
        ) from error


def config_build_notification_url(settings: AppSettings) -> str:
    """Build the upstream job status WebSocket URL from settings.

    Args:
        settings: Validated runtime settings.

    Returns:
        str: Endpoint in `{scheme}://{host}:{port}/ws` form.

    Raises:
        ValueError: Raised when settings is None.
    """

    if settings is None:
        raise ValueError("settings must not be None")

    scheme = "wss" if settings.notification_secure else "ws"
    return f"{scheme}://{settings.notification_host}:{settings.notification_port}/ws"
