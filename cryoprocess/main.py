"""Main module entrypoint for local runtime execution.

This module validates startup configuration and launches the FastAPI service,
renders job commands or follows live job status updates.
"""

import argparse
import asyncio
import logging
import posixpath

import uvicorn

from cryoprocess.bootstrap import (
    bootstrap_create_application,
    bootstrap_create_coordinator,
    bootstrap_create_subscriptions,
)
from cryoprocess.builders import builders_create_default_registry
from cryoprocess.config import AppSettings, config_configure_logging, config_load_settings
from cryoprocess.domain import JobSpec, JobStatusEvent, ProjectContext
from cryoprocess.jobs import JobValidationError, UnknownJobKindError
from cryoprocess.notifications import JobUpdateListener

logger = logging.getLogger(__name__)


def main() -> None:
    """Run selected runtime command with validated startup configuration.

    Returns:
        None: This function does not return a runtime value.

    Raises:
        SettingsLoadError: Raised when configuration validation fails.
    """

    argument_parser = argparse.ArgumentParser(description="Cryo processing job runtime entrypoint")
    argument_parser.add_argument(
        "command",
        nargs="?",
        default="api",
        choices=("api", "preview", "watch"),
        help="Runtime command: `api` starts server, `preview` prints one rendered job command, "
        "`watch` prints live job status updates",
        type=str,
    )
    argument_parser.add_argument("--kind", dest="kind", type=str, help="Job kind for `preview`")
    argument_parser.add_argument("--project-id", dest="project_id", type=str, help="Project id for `preview`/`watch`")
    argument_parser.add_argument("--job-name", dest="job_name", type=str, default="Job001", help="Job label for `preview`")
    argument_parser.add_argument(
        "--output-directory",
        dest="output_directory",
        type=str,
        help="Optional output directory for `preview`; defaults to `<stage>/<job name>`",
    )
    argument_parser.add_argument(
        "--param",
        dest="params",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Job parameter for `preview`; may be repeated",
    )
    argument_parser.add_argument(
        "--job-id",
        dest="job_id",
        type=str,
        help="Optional job id for `watch`; without it every project update is printed",
    )
    parsed_arguments = argument_parser.parse_args()

    settings = config_load_settings()
    config_configure_logging(settings.log_level)

    if parsed_arguments.command == "preview":
        if not parsed_arguments.kind or not parsed_arguments.project_id:
            argument_parser.error("`preview` requires --kind and --project-id")
        raise SystemExit(main_preview(settings, parsed_arguments))

    if parsed_arguments.command == "watch":
        if not parsed_arguments.project_id:
            argument_parser.error("`watch` requires --project-id")
        try:
            asyncio.run(main_watch(settings, parsed_arguments.project_id, parsed_arguments.job_id))
        except KeyboardInterrupt:
            logger.info("watch interrupted")
        return

    application = bootstrap_create_application(settings=settings)
    uvicorn.run(
        application,
        host=settings.application_host,
        port=settings.application_port,
    )


def main_parse_parameters(raw_parameters: list[str]) -> dict[str, str]:
    """Parse repeated `KEY=VALUE` arguments into a parameter bag.

    Args:
        raw_parameters: Raw command-line values.

    Returns:
        dict[str, str]: Parameter mapping; later keys override earlier ones.

    Raises:
        ValueError: Raised when one value lacks `=` or has a blank key.
    """

    parameters: dict[str, str] = {}
    for raw_parameter in raw_parameters:
        key, separator, value = raw_parameter.partition("=")
        if not separator or not key.strip():
            raise ValueError(f"invalid parameter {raw_parameter!r}; expected KEY=VALUE")
        parameters[key.strip()] = value
    return parameters


def main_preview(settings: AppSettings, parsed_arguments: argparse.Namespace) -> int:
    """Print one rendered job command.

    Returns:
        int: Process exit code; 1 when the request is rejected.

    Raises:
        ValueError: Raised when parameter arguments are malformed.
    """

    registry = builders_create_default_registry()
    coordinator = bootstrap_create_coordinator(settings=settings, registry=registry)
    project = ProjectContext(
        project_id=parsed_arguments.project_id,
        project_path=posixpath.join(settings.projects_root_path, parsed_arguments.project_id),
    )
    try:
        output_directory = parsed_arguments.output_directory or posixpath.join(
            registry.registry_resolve(parsed_arguments.kind).stage_name,
            parsed_arguments.job_name,
        )
        build_result = coordinator.job_preview(
            JobSpec(
                kind=parsed_arguments.kind,
                parameters=main_parse_parameters(parsed_arguments.params),
                output_directory=output_directory,
                job_name=parsed_arguments.job_name,
            ),
            project,
        )
    except (UnknownJobKindError, JobValidationError) as error:
        print("REJECTED:", error)
        return 1

    print(" ".join(build_result.argv))
    return 0


async def main_watch(settings: AppSettings, project_id: str, job_id: str | None = None) -> None:
    """Print job status updates for one project until cancelled.

    Args:
        settings: Validated runtime settings.
        project_id: Project whose updates are streamed.
        job_id: Optional job filter.

    Returns:
        None: Runs until the task is cancelled.

    Raises:
        SettingsLoadError: Raised when configuration validation fails.
    """

    subscriptions = bootstrap_create_subscriptions(settings=settings)

    def _main_print_event(event: JobStatusEvent) -> None:
        print(f"{event.project_id} {event.job_id}: {event.previous_status} -> {event.status}")

    # The hub only connects through a project subscription.
    subscriptions.hub.hub_connect(project_id)
    listener = JobUpdateListener(
        subscriptions=subscriptions,
        on_update=_main_print_event,
        job_id=job_id,
        project_id=None if job_id else project_id,
    )
    try:
        with listener:
            await asyncio.Event().wait()
    finally:
        subscriptions.hub.hub_close()


if __name__ == "__main__":
    main()
