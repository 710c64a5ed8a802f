"""Application bootstrap wiring for startup validation and dependency assembly."""

from fastapi import FastAPI

from cryoprocess.adapters import SlurmBatchAdapter
from cryoprocess.api import create_api_application
from cryoprocess.api.routers import JobUpdateBroadcaster
from cryoprocess.builders import JobBuilderRegistry, builders_create_default_registry
from cryoprocess.config import AppSettings, config_build_notification_url, config_load_settings
from cryoprocess.jobs import JobSubmissionCoordinator
from cryoprocess.notifications import NotificationHub, NotificationSubscriptions


def bootstrap_create_application(settings: AppSettings | None = None) -> FastAPI:
    """Assemble the runtime application after validating startup configuration.

    Args:
        settings: Optional preloaded settings; loaded from the environment when omitted.

    Returns:
        FastAPI: Fully initialized FastAPI application instance.

    Raises:
        SettingsLoadError: Raised when startup configuration validation fails.
    """

    resolved_settings = settings or config_load_settings()
    registry = builders_create_default_registry()
    coordinator = bootstrap_create_coordinator(settings=resolved_settings, registry=registry)
    broadcaster = JobUpdateBroadcaster(max_clients=resolved_settings.notification_max_clients)
    return create_api_application(
        settings=resolved_settings,
        registry=registry,
        coordinator=coordinator,
        broadcaster=broadcaster,
    )


def bootstrap_create_coordinator(
    settings: AppSettings | None = None,
    registry: JobBuilderRegistry | None = None,
) -> JobSubmissionCoordinator:
    """Build the submission coordinator for HTTP and command-line surfaces.

    Args:
        settings: Optional preloaded settings; loaded from the environment when omitted.
        registry: Optional registry; the default registry is created when omitted.

    Returns:
        JobSubmissionCoordinator: Fully wired coordinator instance.

    Raises:
        SettingsLoadError: Raised when startup configuration validation fails.
    """

    resolved_settings = settings or config_load_settings()
    cluster_adapter = SlurmBatchAdapter(
        submit_command=resolved_settings.slurm_submit_command,
        default_partition=resolved_settings.slurm_partition,
        submit_timeout_seconds=resolved_settings.slurm_submit_timeout_seconds,
    )
    return JobSubmissionCoordinator(
        registry=registry or builders_create_default_registry(),
        cluster_adapter=cluster_adapter,
        default_partition=resolved_settings.slurm_partition,
        submit_to_queue=resolved_settings.submit_to_queue,
    )


def bootstrap_create_notification_hub(settings: AppSettings | None = None) -> NotificationHub:
    """Build the process-wide notification hub.

    The hub is created disconnected; the first project subscription connects it.

    Returns:
        NotificationHub: Hub targeting the configured upstream endpoint.

    Raises:
        SettingsLoadError: Raised when startup configuration validation fails.
    """

    resolved_settings = settings or config_load_settings()
    return NotificationHub(
        endpoint_url=config_build_notification_url(resolved_settings),
        reconnect_delay_seconds=resolved_settings.notification_reconnect_delay_seconds,
    )


def bootstrap_create_subscriptions(settings: AppSettings | None = None) -> NotificationSubscriptions:
    """Build the subscription facade over a new process-wide hub."""

    return NotificationSubscriptions(hub=bootstrap_create_notification_hub(settings=settings))
