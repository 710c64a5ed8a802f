"""Regression tests for job kind listing, preview and submission APIs."""
# pylint: disable=duplicate-code

from __future__ import annotations

from pathlib import Path

from fastapi.testclient import TestClient

from cryoprocess.adapters import ClusterConnectionError, ClusterSchedulerError, ClusterSubmissionRequest
from cryoprocess.api.application import create_api_application
from cryoprocess.builders import builders_create_default_registry
from cryoprocess.config import AppSettings
from cryoprocess.jobs import JobSubmissionCoordinator

_JOIN_PAYLOAD = {
    "kind": "joinstar",
    "job_name": "Job010",
    "parameters": {"combineParticles": "Yes", "particlesStarFile1": "a.star", "particlesStarFile2": "b.star"},
}


class _ClusterAdapterStub:
    """Cluster adapter stub returning a fixed id or raising a configured error."""

    def __init__(self, error: Exception | None = None):
        self.requests: list[ClusterSubmissionRequest] = []
        self._error = error

    def adapter_source_name(self) -> str:
        return "stub"

    def adapter_submit(self, request: ClusterSubmissionRequest) -> str:
        """Record request and return deterministic cluster id.

        Args:
            request: Submission request.

        Returns:
            str: Cluster job id.

        Raises:
            Exception: Raised when the stub was configured with an error.
        """

        self.requests.append(request)
        if self._error is not None:
            raise self._error
        return "4242"


def _build_client(tmp_path: Path, cluster_adapter: _ClusterAdapterStub | None = None) -> TestClient:
    """Create API test client with a real registry and coordinator.

    Args:
        tmp_path: Projects root directory.
        cluster_adapter: Optional adapter stub.

    Returns:
        TestClient: Client bound to the test application.

    Raises:
        ValueError: Raised by AppSettings when values are invalid.
    """

    registry = builders_create_default_registry()
    coordinator = JobSubmissionCoordinator(registry=registry, cluster_adapter=cluster_adapter or _ClusterAdapterStub())
    settings = AppSettings(environment_name="test", projects_root_path=str(tmp_path))
    return TestClient(create_api_application(settings, registry, coordinator))


def test_api_jobs_list_kinds_reports_stage_and_capabilities(tmp_path: Path) -> None:
    response = _build_client(tmp_path).get("/jobs/kinds")

    items = {item["kind"]: item for item in response.json()["items"]}
    assert response.status_code == 200
    assert items["auto_refine"]["aliases"] == ["autorefine", "refine3d"]
    assert items["auto_refine"]["supports_gpu"] is True
    assert items["join_star"]["stage_name"] == "JoinStar"
    assert items["join_star"]["supports_mpi"] is False


def test_api_jobs_preview_returns_rendered_command(tmp_path: Path) -> None:
    """Render the default output directory from the kind's stage name.

    Returns:
        None: Assertions validate preview payload.

    Raises:
        AssertionError: Raised when payload differs.
    """

    cluster_adapter = _ClusterAdapterStub()
    response = _build_client(tmp_path, cluster_adapter).post("/projects/p1/jobs/preview", json=_JOIN_PAYLOAD)

    payload = response.json()
    assert response.status_code == 200
    assert payload["argv"][:6] == [
        "relion_star_handler",
        "--combine",
        "--i",
        "a.star b.star",
        "--o",
        "JoinStar/Job010/join_particles.star",
    ]
    assert payload["relative_output_path"] == "JoinStar/Job010"
    assert payload["supports_gpu"] is False
    assert cluster_adapter.requests == []


def test_api_jobs_submit_returns_accepted_and_broadcasts_pending(tmp_path: Path) -> None:
    """Submit one job and push a pending update to project subscribers.

    Returns:
        None: Assertions validate submission payload and broadcast frame.

    Raises:
        AssertionError: Raised when payload or frame differs.
    """

    cluster_adapter = _ClusterAdapterStub()
    with _build_client(tmp_path, cluster_adapter) as client:
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"type": "subscribe", "project_id": "p1"})
            assert websocket.receive_json() == {"type": "subscribed", "channel": "project:p1"}

            response = client.post("/projects/p1/jobs", json=_JOIN_PAYLOAD, headers={"X-User-Id": "u7"})
            frame = websocket.receive_json()

    assert response.status_code == 202
    assert response.json()["cluster_job_id"] == "4242"
    assert response.json()["kind"] == "join_star"
    assert [event["stage"] for event in response.json()["stage_timeline"]] == ["resolve", "validate", "build", "submit"]
    assert cluster_adapter.requests[0].project_path == f"{tmp_path}/p1"
    assert frame["type"] == "job_update"
    assert frame["id"] == "Job010"
    assert frame["project_id"] == "p1"
    assert frame["status"] == "pending"
    assert frame["newStatus"] == "pending"
    assert frame["cluster_job_id"] == "4242"


def test_api_jobs_map_request_errors_to_status_codes(tmp_path: Path) -> None:
    """Map unknown kinds, validation failures and bad project ids.

    Returns:
        None: Assertions validate status code mapping.

    Raises:
        AssertionError: Raised when status codes differ.
    """

    client = _build_client(tmp_path)

    unknown_response = client.post("/projects/p1/jobs/preview", json={**_JOIN_PAYLOAD, "kind": "ctf_refine"})
    invalid_response = client.post(
        "/projects/p1/jobs",
        json={**_JOIN_PAYLOAD, "parameters": {"combineParticles": "No"}},
    )
    outside_response = client.post("/projects/p1/jobs/preview", json={**_JOIN_PAYLOAD, "output_directory": "/etc/job"})
    injected_response = client.post(
        "/projects/p1/jobs",
        json={**_JOIN_PAYLOAD, "output_directory": "JoinStar/Job001;touch PWNED;x"},
    )
    project_response = client.post("/projects/.hidden/jobs", json=_JOIN_PAYLOAD)

    assert unknown_response.status_code == 404
    assert unknown_response.json()["kind"] == "ctf_refine"
    assert invalid_response.status_code == 422
    assert invalid_response.json()["message"] == "At least one type of file combination must be selected"
    assert outside_response.status_code == 422
    assert outside_response.json()["message"] == "Output directory must be inside the project: /etc/job"
    assert injected_response.status_code == 422
    assert injected_response.json()["message"].startswith("Output directory contains unsupported characters")
    assert project_response.status_code == 400


def test_api_jobs_map_cluster_errors_to_gateway_status_codes(tmp_path: Path) -> None:
    connection_client = _build_client(tmp_path, _ClusterAdapterStub(error=ClusterConnectionError("sbatch missing")))
    scheduler_client = _build_client(tmp_path, _ClusterAdapterStub(error=ClusterSchedulerError("rejected")))

    connection_response = connection_client.post("/projects/p1/jobs", json=_JOIN_PAYLOAD)
    scheduler_response = scheduler_client.post("/projects/p1/jobs", json=_JOIN_PAYLOAD)

    assert connection_response.status_code == 503
    assert connection_response.json()["message"] == "sbatch missing"
    assert scheduler_response.status_code == 502
    assert scheduler_response.json()["status"] == "error"


def test_api_foundation_index_reports_environment(tmp_path: Path) -> None:
    response = _build_client(tmp_path).get("/")

    assert response.status_code == 200
    assert response.json() == {"service": "cryoprocess", "status": "foundation-ready", "environment": "test"}
