"""Consumer-facing subscription API over one shared notification hub."""

from __future__ import annotations

from cryoprocess.domain import JobStatusEvent

from .hub import NotificationHub
from .interfaces import JobUpdateCallback


class NotificationSubscriptions:
    """Pass-through facade over hub registration calls.

    Callbacks are handed to the hub unchanged so that registering the same
    callback twice keeps one registry entry.
    """

    def __init__(self, hub: NotificationHub):
        if hub is None:
            raise ValueError("hub must not be None")
        self._hub = hub

    @property
    def hub(self) -> NotificationHub:
        return self._hub

    def subscription_watch_job(self, job_id: str | None, callback: JobUpdateCallback | None) -> None:
        """Receive updates for one job."""

        self._hub.hub_subscribe(job_id, callback)

    def subscription_unwatch_job(self, job_id: str | None, callback: JobUpdateCallback | None) -> None:
        """Stop receiving updates for one job."""

        self._hub.hub_unsubscribe(job_id, callback)

    def subscription_watch_project(self, project_id: str | None, callback: JobUpdateCallback | None) -> None:
        """Connect the hub to a project and receive all of its job updates.

        Args:
            project_id: Project to stream; blank ids leave the connection untouched.
            callback: Callable receiving `JobStatusEvent` values.

        Returns:
            None: Registration mutates the hub registry.

        Raises:
            RuntimeError: Raised when called outside the event loop thread with a project id.
        """

        self._hub.hub_connect(project_id)
        self._hub.hub_subscribe_project(callback)

    def subscription_unwatch_project(self, callback: JobUpdateCallback | None) -> None:
        """Stop receiving project-wide updates."""

        self._hub.hub_unsubscribe_project(callback)


class JobUpdateListener:
    """Mountable per-job or per-project subscription with a stable hub identity.

    The hub always sees the bound `listener_handle`, so swapping `on_update`
    between mounts never creates a second registry entry. Exactly one of
    `job_id` or `project_id` selects the subscription scope.
    """

    def __init__(
        self,
        subscriptions: NotificationSubscriptions,
        on_update: JobUpdateCallback | None,
        job_id: str | None = None,
        project_id: str | None = None,
    ):
        """Initialize listener state without registering.

        Args:
            subscriptions: Subscription facade over the shared hub.
            on_update: Current user callback; may be replaced at any time.
            job_id: Job to watch for a per-job listener.
            project_id: Project to watch for a per-project listener.

        Returns:
            None: Initializer does not return a value.

        Raises:
            ValueError: Raised when subscriptions is None or the scope is ambiguous.
        """

        if subscriptions is None:
            raise ValueError("subscriptions must not be None")
        if job_id and project_id:
            raise ValueError("job_id and project_id are mutually exclusive")

        self._subscriptions = subscriptions
        self.on_update = on_update
        self._job_id = job_id
        self._project_id = project_id
        self._mounted = False
        self.listener_handle: JobUpdateCallback = self._listener_forward

    @property
    def mounted(self) -> bool:
        return self._mounted

    def listener_mount(self) -> None:
        """Register the stable handle with the hub; repeated calls are no-ops."""

        if self._mounted:
            return
        if self._project_id:
            self._subscriptions.subscription_watch_project(self._project_id, self.listener_handle)
        elif self._job_id:
            self._subscriptions.subscription_watch_job(self._job_id, self.listener_handle)
        else:
            return
        self._mounted = True

    def listener_unmount(self) -> None:
        """Remove the stable handle from the hub."""

        if self._project_id:
            self._subscriptions.subscription_unwatch_project(self.listener_handle)
        elif self._job_id:
            self._subscriptions.subscription_unwatch_job(self._job_id, self.listener_handle)
        self._mounted = False

    def _listener_forward(self, event: JobStatusEvent) -> None:
        target = self.on_update
        if target is not None:
            target(event)

    def __enter__(self) -> JobUpdateListener:
        self.listener_mount()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.listener_unmount()
