"""Tests for notification hub registries, dispatch and reconnection."""

from __future__ import annotations

import asyncio
import json
import logging

import pytest

from cryoprocess.domain import ConnectionState, JobStatusEvent
from cryoprocess.notifications import NotificationHub, NotificationTransportError

_ENDPOINT_URL = "ws://scheduler.test:8001/ws"
_RECONNECT_DELAY_SECONDS = 0.02


class _FakeConnection:
    """In-memory connection yielding frames pushed by the test."""

    def __init__(self):
        self.sent: list[str] = []
        self.closed = False
        self._frames: asyncio.Queue[str | None] = asyncio.Queue()

    def connection_is_open(self) -> bool:
        return not self.closed

    async def connection_send(self, message: str) -> None:
        self.sent.append(message)

    async def connection_close(self) -> None:
        self.closed = True
        self._frames.put_nowait(None)

    def push(self, frame: str) -> None:
        self._frames.put_nowait(frame)

    def drop(self) -> None:
        """End the inbound stream as if the server went away."""

        self._frames.put_nowait(None)

    async def __aiter__(self):
        while True:
            frame = await self._frames.get()
            if frame is None:
                return
            yield frame


class _FailingCloseConnection(_FakeConnection):
    """Connection whose close handshake fails."""

    async def connection_close(self) -> None:
        await super().connection_close()
        raise NotificationTransportError("close handshake failed", endpoint_url=_ENDPOINT_URL)


class _FakeOpener:
    """Transport opener stub failing a configured number of times first."""

    def __init__(self, failures: int = 0, connection_factory: type[_FakeConnection] = _FakeConnection):
        self.urls: list[str] = []
        self.connections: list[_FakeConnection] = []
        self._failures = failures
        self._connection_factory = connection_factory

    async def __call__(self, endpoint_url: str) -> _FakeConnection:
        """Open one fake connection or fail.

        Args:
            endpoint_url: Requested endpoint.

        Returns:
            _FakeConnection: New in-memory connection.

        Raises:
            NotificationTransportError: Raised while configured failures remain.
        """

        self.urls.append(endpoint_url)
        if self._failures > 0:
            self._failures -= 1
            raise NotificationTransportError("connection refused", endpoint_url=endpoint_url)
        connection = self._connection_factory()
        self.connections.append(connection)
        return connection


async def _settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


def _job_update(job_id: str, status: str = "running", **extra: object) -> str:
    return json.dumps({"type": "job_update", "id": job_id, "status": status, **extra})


def test_hub_dispatch_routes_job_and_project_subscribers() -> None:
    """Deliver J1 to its job callback then project callbacks, J2 to project only.

    Returns:
        None: Assertions validate dispatch routing and ordering.

    Raises:
        AssertionError: Raised when routing differs.
    """

    hub = NotificationHub(_ENDPOINT_URL)
    received: list[tuple[str, str]] = []
    hub.hub_subscribe("J1", lambda event: received.append(("job", event.job_id)))
    hub.hub_subscribe_project(lambda event: received.append(("project", event.job_id)))

    assert hub.hub_dispatch_message(_job_update("J1")) == 2
    assert hub.hub_dispatch_message(_job_update("J2")) == 1
    assert received == [("job", "J1"), ("project", "J1"), ("project", "J2")]


def test_hub_dispatch_builds_event_from_alternate_field_names() -> None:
    """Read project, status and previous status from their alternate keys.

    Returns:
        None: Assertions validate event construction.

    Raises:
        AssertionError: Raised when event fields differ.
    """

    hub = NotificationHub(_ENDPOINT_URL)
    events: list[JobStatusEvent] = []
    hub.hub_subscribe(7, events.append)

    hub.hub_dispatch_message(
        json.dumps(
            {"type": "job_update", "id": 7, "projectId": "P9", "newStatus": "success", "oldStatus": "running", "progress": 1}
        )
    )

    assert events[0].job_id == "7"
    assert events[0].project_id == "P9"
    assert events[0].status == "success"
    assert events[0].previous_status == "running"
    assert events[0].payload["progress"] == 1


@pytest.mark.parametrize(
    "raw_message",
    ["not json", "[1, 2]", '"job_update"', json.dumps({"type": "pong"}), json.dumps({"type": "job_update", "id": ""})],
)
def test_hub_dispatch_drops_malformed_frames(raw_message: str) -> None:
    hub = NotificationHub(_ENDPOINT_URL)
    events: list[JobStatusEvent] = []
    hub.hub_subscribe("J1", events.append)
    hub.hub_subscribe_project(events.append)

    assert hub.hub_dispatch_message(raw_message) == 0
    assert events == []


def test_hub_dispatch_accepts_binary_frames() -> None:
    hub = NotificationHub(_ENDPOINT_URL)
    events: list[JobStatusEvent] = []
    hub.hub_subscribe_project(events.append)

    assert hub.hub_dispatch_message(_job_update("J1").encode("utf-8")) == 1
    assert events[0].job_id == "J1"


def test_hub_subscriptions_are_idempotent_and_cleaned_up() -> None:
    """Keep one entry per callback and drop the job key with the last callback.

    Returns:
        None: Assertions validate registry bookkeeping.

    Raises:
        AssertionError: Raised when registry counts differ.
    """

    hub = NotificationHub(_ENDPOINT_URL)
    events: list[JobStatusEvent] = []

    hub.hub_subscribe("J1", events.append)
    hub.hub_subscribe("J1", events.append)
    hub.hub_subscribe_project(events.append)
    hub.hub_subscribe_project(events.append)

    assert hub.hub_job_subscriber_count("J1") == 1
    assert hub.hub_project_subscriber_count() == 1
    assert hub.hub_dispatch_message(_job_update("J1")) == 2

    hub.hub_unsubscribe("J1", events.append)
    hub.hub_unsubscribe("J1", events.append)
    hub.hub_unsubscribe_project(events.append)

    assert hub.hub_job_subscriber_count("J1") == 0
    assert hub.hub_project_subscriber_count() == 0
    assert hub.hub_dispatch_message(_job_update("J1")) == 0


def test_hub_registration_ignores_missing_arguments() -> None:
    hub = NotificationHub(_ENDPOINT_URL)

    hub.hub_subscribe(None, print)
    hub.hub_subscribe("", print)
    hub.hub_subscribe("J1", None)
    hub.hub_subscribe_project(None)
    hub.hub_unsubscribe("J404", print)

    assert hub.hub_job_subscriber_count("J1") == 0
    assert hub.hub_project_subscriber_count() == 0


def test_hub_isolates_failing_callbacks() -> None:
    """Continue delivery after a callback raises and report the failure.

    Returns:
        None: Assertions validate failure isolation.

    Raises:
        AssertionError: Raised when delivery stops or the hook is skipped.
    """

    failures: list[tuple[str, str]] = []
    hub = NotificationHub(
        _ENDPOINT_URL,
        callback_failure_hook=lambda error, event, callback: failures.append((str(error), event.job_id)),
    )
    events: list[JobStatusEvent] = []

    def _failing_callback(event: JobStatusEvent) -> None:
        raise RuntimeError(f"boom {event.job_id}")

    hub.hub_subscribe("J1", _failing_callback)
    hub.hub_subscribe("J1", events.append)
    hub.hub_subscribe_project(events.append)

    assert hub.hub_dispatch_message(_job_update("J1")) == 3
    assert failures == [("boom J1", "J1")]
    assert [event.job_id for event in events] == ["J1", "J1"]


def test_hub_rejects_invalid_configuration() -> None:
    with pytest.raises(ValueError):
        NotificationHub("  ")
    with pytest.raises(ValueError):
        NotificationHub(_ENDPOINT_URL, reconnect_delay_seconds=0)


def test_hub_connect_ignores_blank_project_without_event_loop() -> None:
    hub = NotificationHub(_ENDPOINT_URL)

    hub.hub_connect("")
    hub.hub_connect(None)

    assert hub.hub_state() is ConnectionState.DISCONNECTED
    assert hub.hub_project_id() is None


def test_hub_connect_subscribes_and_delivers_stream_frames() -> None:
    """Connect, announce the project and dispatch inbound frames.

    Returns:
        None: Assertions validate connection lifecycle.

    Raises:
        AssertionError: Raised when lifecycle behavior differs.
    """

    opener = _FakeOpener()
    hub = NotificationHub(_ENDPOINT_URL, transport_opener=opener, reconnect_delay_seconds=_RECONNECT_DELAY_SECONDS)
    events: list[JobStatusEvent] = []
    hub.hub_subscribe_project(events.append)

    async def _scenario() -> None:
        hub.hub_connect("P1")
        assert hub.hub_state() is ConnectionState.CONNECTING
        await _settle()

        assert hub.hub_state() is ConnectionState.CONNECTED
        assert opener.urls == [_ENDPOINT_URL]
        assert json.loads(opener.connections[0].sent[0]) == {"type": "subscribe", "project_id": "P1"}

        opener.connections[0].push(_job_update("J5", "success"))
        await _settle()
        assert [event.job_id for event in events] == ["J5"]
        assert events[0].project_id == "P1"

        hub.hub_connect("P1")
        await _settle()
        assert len(opener.urls) == 1

        hub.hub_close()
        await _settle()
        assert opener.connections[0].closed is True
        assert hub.hub_state() is ConnectionState.DISCONNECTED

    asyncio.run(_scenario())


def test_hub_connect_to_other_project_replaces_connection() -> None:
    opener = _FakeOpener()
    hub = NotificationHub(_ENDPOINT_URL, transport_opener=opener, reconnect_delay_seconds=_RECONNECT_DELAY_SECONDS)

    async def _scenario() -> None:
        hub.hub_connect("P1")
        await _settle()
        hub.hub_connect("P2")
        await _settle()

        assert opener.connections[0].closed is True
        assert json.loads(opener.connections[1].sent[0])["project_id"] == "P2"
        assert hub.hub_project_id() == "P2"
        assert hub.hub_has_pending_reconnect() is False
        hub.hub_close()

    asyncio.run(_scenario())


def test_hub_reconnects_once_after_failure_with_fixed_delay() -> None:
    """Schedule exactly one reconnection per failure and reconnect after the delay.

    Returns:
        None: Assertions validate single-slot reconnection.

    Raises:
        AssertionError: Raised when reconnection behavior differs.
    """

    opener = _FakeOpener(failures=1)
    hub = NotificationHub(_ENDPOINT_URL, transport_opener=opener, reconnect_delay_seconds=_RECONNECT_DELAY_SECONDS)

    async def _scenario() -> None:
        hub.hub_connect("P1")
        await _settle()

        assert hub.hub_state() is ConnectionState.DISCONNECTED
        assert hub.hub_has_pending_reconnect() is True
        assert len(opener.urls) == 1

        await asyncio.sleep(_RECONNECT_DELAY_SECONDS * 5)
        await _settle()

        assert len(opener.urls) == 2
        assert hub.hub_state() is ConnectionState.CONNECTED
        assert hub.hub_has_pending_reconnect() is False

        opener.connections[0].drop()
        await _settle()
        assert hub.hub_has_pending_reconnect() is True

        await asyncio.sleep(_RECONNECT_DELAY_SECONDS * 5)
        await _settle()
        assert len(opener.urls) == 3
        assert json.loads(opener.connections[1].sent[0]) == {"type": "subscribe", "project_id": "P1"}
        hub.hub_close()

    asyncio.run(_scenario())


def test_hub_close_cancels_pending_reconnect() -> None:
    opener = _FakeOpener(failures=5)
    hub = NotificationHub(_ENDPOINT_URL, transport_opener=opener, reconnect_delay_seconds=_RECONNECT_DELAY_SECONDS)

    async def _scenario() -> None:
        hub.hub_connect("P1")
        await _settle()
        assert hub.hub_has_pending_reconnect() is True

        hub.hub_close()
        await asyncio.sleep(_RECONNECT_DELAY_SECONDS * 5)

        assert hub.hub_has_pending_reconnect() is False
        assert len(opener.urls) == 1
        assert hub.hub_project_id() is None

    asyncio.run(_scenario())


def test_hub_connect_during_pending_reconnect_keeps_single_attempt() -> None:
    """Replace a pending reconnection with the new connection attempt.

    Returns:
        None: Assertions validate that no duplicate attempt fires.

    Raises:
        AssertionError: Raised when an extra attempt is made.
    """

    opener = _FakeOpener(failures=1)
    hub = NotificationHub(_ENDPOINT_URL, transport_opener=opener, reconnect_delay_seconds=_RECONNECT_DELAY_SECONDS)

    async def _scenario() -> None:
        hub.hub_connect("P1")
        await _settle()
        assert hub.hub_has_pending_reconnect() is True

        hub.hub_connect("P2")
        await asyncio.sleep(_RECONNECT_DELAY_SECONDS * 5)
        await _settle()

        assert len(opener.urls) == 2
        assert len(opener.connections) == 1
        assert json.loads(opener.connections[0].sent[0])["project_id"] == "P2"
        hub.hub_close()

    asyncio.run(_scenario())


def test_hub_dispatch_drops_deeply_nested_frames() -> None:
    hub = NotificationHub(_ENDPOINT_URL)
    events: list[JobStatusEvent] = []
    hub.hub_subscribe_project(events.append)

    assert hub.hub_dispatch_message("[" * 200000) == 0
    assert hub.hub_dispatch_message(_job_update("J1")) == 1
    assert [event.job_id for event in events] == ["J1"]


def test_hub_keeps_dispatching_when_failure_hook_raises(caplog: pytest.LogCaptureFixture) -> None:
    """Deliver to later callbacks even when the failure hook itself raises.

    Returns:
        None: Assertions validate hook isolation.

    Raises:
        AssertionError: Raised when delivery stops or the hook error escapes.
    """

    def _failing_hook(error: Exception, event: JobStatusEvent, callback: object) -> None:
        raise RuntimeError("hook down")

    def _failing_callback(event: JobStatusEvent) -> None:
        raise RuntimeError(f"boom {event.job_id}")

    hub = NotificationHub(_ENDPOINT_URL, callback_failure_hook=_failing_hook)
    events: list[JobStatusEvent] = []
    hub.hub_subscribe("J1", _failing_callback)
    hub.hub_subscribe_project(events.append)

    with caplog.at_level(logging.ERROR, logger="cryoprocess.notifications.hub"):
        assert hub.hub_dispatch_message(_job_update("J1")) == 2

    assert [event.job_id for event in events] == ["J1"]
    assert "callback failure hook raised" in caplog.text


def test_hub_dispatch_uses_snapshot_when_callback_unsubscribes_itself() -> None:
    """Finish the current dispatch from its snapshot while callbacks unsubscribe.

    Returns:
        None: Assertions validate snapshot delivery and later removal.

    Raises:
        AssertionError: Raised when delivery differs from the snapshot.
    """

    hub = NotificationHub(_ENDPOINT_URL)
    received: list[str] = []

    def _later_callback(event: JobStatusEvent) -> None:
        received.append(f"later:{event.job_id}")

    def _one_shot_callback(event: JobStatusEvent) -> None:
        received.append(f"once:{event.job_id}")
        hub.hub_unsubscribe(event.job_id, _one_shot_callback)
        hub.hub_unsubscribe(event.job_id, _later_callback)

    hub.hub_subscribe("J1", _one_shot_callback)
    hub.hub_subscribe("J1", _later_callback)

    assert hub.hub_dispatch_message(_job_update("J1")) == 2
    assert received == ["once:J1", "later:J1"]
    assert hub.hub_job_subscriber_count("J1") == 0
    assert hub.hub_dispatch_message(_job_update("J1", "success")) == 0
    assert received == ["once:J1", "later:J1"]


def test_hub_repeated_close_notifications_keep_single_reconnect_timer() -> None:
    """Replace the pending timer when a second close arrives before the delay elapses.

    Returns:
        None: Assertions validate a single reconnection attempt.

    Raises:
        AssertionError: Raised when more than one attempt fires.
    """

    opener = _FakeOpener(failures=1)
    hub = NotificationHub(_ENDPOINT_URL, transport_opener=opener, reconnect_delay_seconds=_RECONNECT_DELAY_SECONDS)

    async def _scenario() -> None:
        hub.hub_connect("P1")
        await _settle()
        assert hub.hub_has_pending_reconnect() is True

        await asyncio.sleep(_RECONNECT_DELAY_SECONDS / 2)
        hub._hub_schedule_reconnect()
        hub._hub_schedule_reconnect()
        await asyncio.sleep(_RECONNECT_DELAY_SECONDS * 5)
        await _settle()

        assert len(opener.urls) == 2
        assert len(opener.connections) == 1
        assert hub.hub_has_pending_reconnect() is False
        assert hub.hub_state() is ConnectionState.CONNECTED
        hub.hub_close()

    asyncio.run(_scenario())


def test_hub_logs_failed_close_of_replaced_connection(caplog: pytest.LogCaptureFixture) -> None:
    opener = _FakeOpener(connection_factory=_FailingCloseConnection)
    hub = NotificationHub(_ENDPOINT_URL, transport_opener=opener, reconnect_delay_seconds=_RECONNECT_DELAY_SECONDS)

    async def _scenario() -> None:
        hub.hub_connect("P1")
        await _settle()
        hub.hub_close()
        await _settle()

    with caplog.at_level(logging.WARNING, logger="cryoprocess.notifications.hub"):
        asyncio.run(_scenario())

    assert opener.connections[0].closed is True
    assert "closing notification connection" in caplog.text
    assert "close handshake failed" in caplog.text


def test_hub_logs_unexpected_connection_errors_and_reconnects(caplog: pytest.LogCaptureFixture) -> None:
    """Log an unexpected opener error and still schedule the next attempt.

    Returns:
        None: Assertions validate logging and reconnection.

    Raises:
        AssertionError: Raised when the error is unlogged or no retry is pending.
    """

    attempts: list[str] = []

    async def _broken_opener(endpoint_url: str) -> _FakeConnection:
        attempts.append(endpoint_url)
        raise RuntimeError("opener bug")

    hub = NotificationHub(_ENDPOINT_URL, transport_opener=_broken_opener, reconnect_delay_seconds=60.0)

    async def _scenario() -> None:
        hub.hub_connect("P1")
        await _settle()
        assert hub.hub_has_pending_reconnect() is True
        assert hub.hub_state() is ConnectionState.DISCONNECTED
        hub.hub_close()

    with caplog.at_level(logging.ERROR, logger="cryoprocess.notifications.hub"):
        asyncio.run(_scenario())

    assert attempts == [_ENDPOINT_URL]
    assert "stopped unexpectedly" in caplog.text
