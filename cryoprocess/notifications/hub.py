"""Process-scoped hub multiplexing upstream job status events to subscribers.

One hub owns one upstream connection, the per-job and per-project subscriber
registries, and a single-slot reconnection timer. Connection management runs
on the asyncio event loop; registration may happen from any thread.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from typing import Any

from cryoprocess.domain import ConnectionState, JobStatusEvent

from .errors import NotificationTransportError
from .interfaces import CallbackFailureHook, JobUpdateCallback, NotificationConnection, TransportOpener
from .transport import websocket_open_connection

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY_SECONDS = 5.0
JOB_UPDATE_MESSAGE_TYPE = "job_update"


def _hub_log_callback_failure(error: Exception, event: JobStatusEvent, callback: JobUpdateCallback) -> None:
    logger.error(
        "job update callback %r failed for job %s: %s",
        callback,
        event.job_id,
        error,
        exc_info=error,
    )


def _hub_first_present(message: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = message.get(key)
        if value is not None and value != "":
            return value
    return None


class NotificationHub:
    """Shared upstream connection with per-job and per-project subscriber sets."""

    def __init__(
        self,
        endpoint_url: str,
        transport_opener: TransportOpener | None = None,
        reconnect_delay_seconds: float = DEFAULT_RECONNECT_DELAY_SECONDS,
        callback_failure_hook: CallbackFailureHook | None = None,
    ):
        """Initialize hub state without opening a connection.

        Args:
            endpoint_url: Upstream `ws://` or `wss://` endpoint URL.
            transport_opener: Coroutine function opening one connection for a URL.
            reconnect_delay_seconds: Fixed delay before each reconnection attempt.
            callback_failure_hook: Receives every exception raised by a subscriber callback.

        Returns:
            None: Initializer does not return a value.

        Raises:
            ValueError: Raised when endpoint or delay values are invalid.
        """

        if not endpoint_url or not endpoint_url.strip():
            raise ValueError("endpoint_url must not be blank")
        if reconnect_delay_seconds <= 0:
            raise ValueError("reconnect_delay_seconds must be > 0")

        self._endpoint_url = endpoint_url.strip()
        self._transport_opener = transport_opener or websocket_open_connection
        self._reconnect_delay_seconds = reconnect_delay_seconds
        self._callback_failure_hook = callback_failure_hook or _hub_log_callback_failure

        self._lock = threading.Lock()
        self._job_subscribers: dict[str, dict[JobUpdateCallback, None]] = {}
        self._project_subscribers: dict[JobUpdateCallback, None] = {}

        self._loop: asyncio.AbstractEventLoop | None = None
        self._state = ConnectionState.DISCONNECTED
        self._project_id: str | None = None
        self._connection: NotificationConnection | None = None
        self._reader_task: asyncio.Task | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._closing_tasks: set[asyncio.Task] = set()

    @property
    def endpoint_url(self) -> str:
        return self._endpoint_url

    def hub_state(self) -> ConnectionState:
        """Return the current connection state."""

        return self._state

    def hub_project_id(self) -> str | None:
        """Return the project the hub is connected or connecting to."""

        return self._project_id

    def hub_job_subscriber_count(self, job_id: str) -> int:
        with self._lock:
            return len(self._job_subscribers.get(str(job_id), {}))

    def hub_project_subscriber_count(self) -> int:
        with self._lock:
            return len(self._project_subscribers)

    def hub_has_pending_reconnect(self) -> bool:
        return self._reconnect_handle is not None

    def hub_connect(self, project_id: str | None) -> None:
        """Connect to the upstream stream for one project.

        No-op for a blank project id or when already connected to the same
        project. Otherwise tears down the current connection, cancels any
        pending reconnection and starts a new connection attempt. Must be
        called from the event loop thread.

        Args:
            project_id: Project whose job updates should be streamed.

        Returns:
            None: Connection proceeds in a background task.

        Raises:
            RuntimeError: Raised when no event loop is running in the calling thread.
        """

        normalized_project_id = (project_id or "").strip()
        if not normalized_project_id:
            return
        if self._state is ConnectionState.CONNECTED and self._project_id == normalized_project_id:
            return

        self._loop = asyncio.get_running_loop()
        self._hub_teardown_connection()
        self._hub_cancel_reconnect()
        self._project_id = normalized_project_id
        self._hub_start_connection()

    def hub_subscribe(self, job_id: str | None, callback: JobUpdateCallback | None) -> None:
        """Register a callback for updates of one job.

        Registering the same callback twice for a job keeps a single entry.

        Args:
            job_id: Job identifier.
            callback: Callable receiving `JobStatusEvent` values.

        Returns:
            None: Registration mutates the hub registry.

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        if job_id is None or job_id == "" or callback is None:
            return
        with self._lock:
            self._job_subscribers.setdefault(str(job_id), {})[callback] = None

    def hub_unsubscribe(self, job_id: str | None, callback: JobUpdateCallback | None) -> None:
        """Remove a per-job callback, dropping the job entry when it was the last one."""

        if job_id is None or job_id == "" or callback is None:
            return
        normalized_job_id = str(job_id)
        with self._lock:
            job_callbacks = self._job_subscribers.get(normalized_job_id)
            if job_callbacks is None:
                return
            job_callbacks.pop(callback, None)
            if not job_callbacks:
                del self._job_subscribers[normalized_job_id]

    def hub_subscribe_project(self, callback: JobUpdateCallback | None) -> None:
        """Register a callback for every update of the connected project."""

        if callback is None:
            return
        with self._lock:
            self._project_subscribers[callback] = None

    def hub_unsubscribe_project(self, callback: JobUpdateCallback | None) -> None:
        """Remove a project-level callback."""

        if callback is None:
            return
        with self._lock:
            self._project_subscribers.pop(callback, None)

    def hub_dispatch_message(self, raw_message: str | bytes) -> int:
        """Decode one inbound frame and deliver it to matching subscribers.

        Per-job callbacks for the event's job run first, then every project
        callback, each in registration order and each in its own failure
        boundary. Frames that are not JSON objects, have another type or lack
        an `id` are dropped.

        Args:
            raw_message: Inbound text frame.

        Returns:
            int: Number of callbacks invoked.

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        try:
            message = json.loads(raw_message)
        except (TypeError, ValueError, RecursionError):
            logger.debug("dropping undecodable notification frame: %r", raw_message)
            return 0

        if not isinstance(message, dict):
            logger.debug("dropping non-object notification frame: %r", message)
            return 0
        if message.get("type") != JOB_UPDATE_MESSAGE_TYPE:
            return 0

        job_id = message.get("id")
        if job_id is None or job_id == "":
            logger.debug("dropping job update without id: %r", message)
            return 0

        event = self._hub_build_event(str(job_id), message)
        with self._lock:
            job_callbacks = tuple(self._job_subscribers.get(event.job_id, ()))
            project_callbacks = tuple(self._project_subscribers)

        invoked_count = 0
        for callback in job_callbacks + project_callbacks:
            invoked_count += 1
            try:
                callback(event)
            except Exception as error:  # pylint: disable=broad-exception-caught
                self._hub_report_callback_failure(error, event, callback)
        return invoked_count

    def hub_close(self) -> None:
        """Tear down the connection and pending reconnection at process exit.

        Subscriber registries are left intact.

        Returns:
            None: Teardown proceeds without waiting for the transport to close.

        Raises:
            RuntimeError: This method does not raise runtime errors.
        """

        self._hub_cancel_reconnect()
        self._hub_teardown_connection()
        self._project_id = None
        self._state = ConnectionState.DISCONNECTED

    def _hub_build_event(self, job_id: str, message: dict[str, Any]) -> JobStatusEvent:
        project_id = _hub_first_present(message, "project_id", "projectId")
        status = _hub_first_present(message, "status", "newStatus")
        previous_status = _hub_first_present(message, "oldStatus", "previousStatus")
        return JobStatusEvent(
            job_id=job_id,
            project_id=str(project_id) if project_id is not None else self._project_id,
            status=str(status) if status is not None else None,
            previous_status=str(previous_status) if previous_status is not None else None,
            payload=message,
        )

    def _hub_start_connection(self) -> None:
        self._state = ConnectionState.CONNECTING
        self._reader_task = self._loop.create_task(self._hub_run_connection(self._project_id))

    def _hub_teardown_connection(self) -> None:
        reader_task = self._reader_task
        connection = self._connection
        self._reader_task = None
        self._connection = None
        if reader_task is not None and not reader_task.done():
            reader_task.cancel()
        if connection is not None and self._loop is not None and not self._loop.is_closed():
            closing_task = self._loop.create_task(connection.connection_close())
            self._closing_tasks.add(closing_task)
            closing_task.add_done_callback(self._hub_collect_closing_task)
        self._state = ConnectionState.DISCONNECTED

    def _hub_collect_closing_task(self, closing_task: asyncio.Task) -> None:
        self._closing_tasks.discard(closing_task)
        if closing_task.cancelled():
            return
        error = closing_task.exception()
        if error is not None:
            logger.warning("closing notification connection to %s failed: %s", self._endpoint_url, error)

    def _hub_report_callback_failure(
        self,
        error: Exception,
        event: JobStatusEvent,
        callback: JobUpdateCallback,
    ) -> None:
        try:
            self._callback_failure_hook(error, event, callback)
        except Exception:  # pylint: disable=broad-exception-caught
            logger.exception("callback failure hook raised while reporting %r for job %s", error, event.job_id)

    def _hub_cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _hub_schedule_reconnect(self) -> None:
        self._hub_cancel_reconnect()
        logger.info("reconnecting to %s in %s seconds", self._endpoint_url, self._reconnect_delay_seconds)
        self._reconnect_handle = self._loop.call_later(self._reconnect_delay_seconds, self._hub_reconnect)

    def _hub_reconnect(self) -> None:
        self._reconnect_handle = None
        if self._project_id is None or self._reader_task is not None:
            return
        self._hub_start_connection()

    async def _hub_run_connection(self, project_id: str) -> None:
        current_task = asyncio.current_task()
        connection: NotificationConnection | None = None
        try:
            connection = await self._transport_opener(self._endpoint_url)
            if self._reader_task is not current_task:
                await connection.connection_close()
                return

            self._connection = connection
            self._state = ConnectionState.CONNECTED
            logger.info("connected to %s for project %s", self._endpoint_url, project_id)
            if connection.connection_is_open():
                await connection.connection_send(json.dumps({"type": "subscribe", "project_id": project_id}))

            async for raw_message in connection:
                self.hub_dispatch_message(raw_message)
            logger.info("notification connection to %s closed", self._endpoint_url)
        except (NotificationTransportError, OSError, TimeoutError) as error:
            logger.warning("notification connection to %s failed: %s", self._endpoint_url, error)
        except Exception:  # pylint: disable=broad-exception-caught
            logger.exception("notification connection to %s stopped unexpectedly", self._endpoint_url)
        finally:
            if self._reader_task is current_task:
                self._reader_task = None
                self._connection = None
                self._state = ConnectionState.DISCONNECTED
                if not current_task.cancelling():
                    self._hub_schedule_reconnect()
