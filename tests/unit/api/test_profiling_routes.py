"""Tests for the profiling API routes and error translation."""

from __future__ import annotations

import asyncio
import io
import zipfile

import pytest
from fastapi.testclient import TestClient

from clusterprof.api.app import create_app
from clusterprof.config import Settings
from clusterprof.core.exceptions import UpstreamUnavailableError
from clusterprof.gateway import AdminGateway, InMemoryAdminGateway, RawNodeResult
from conftest import TrackingArchiveStream


class _StubGateway(AdminGateway):
    """Gateway double with configurable start/stop behaviour."""

    name = "stub"

    def __init__(self, *, start_error=None, stop_error=None, start_delay: float = 0.0):
        self.start_error = start_error
        self.stop_error = stop_error
        self.start_delay = start_delay
        self.start_calls = 0
        self.streams: list[TrackingArchiveStream] = []
        self.closed = False

    async def start_profiling(self, kind):
        self.start_calls += 1
        if self.start_delay:
            await asyncio.sleep(self.start_delay)
        if self.start_error is not None:
            raise self.start_error
        return [RawNodeResult("node-1", True)]

    async def stop_profiling(self):
        if self.stop_error is not None:
            raise self.stop_error
        stream = TrackingArchiveStream(b"PK" + b"\x00" * 200)
        self.streams.append(stream)
        return stream

    async def aclose(self):
        self.closed = True


def _client(gateway: AdminGateway, **overrides) -> TestClient:
    settings = Settings(gateway="memory", **overrides)
    return TestClient(create_app(settings, gateway=gateway))


@pytest.fixture
def memory_gateway() -> InMemoryAdminGateway:
    return InMemoryAdminGateway(
        ["node1:9000", "node2:9000", "node3:9000"],
        failing_nodes={"node2:9000": "profiler not supported"},
    )


def test_start_returns_created_with_camel_case_results(memory_gateway):
    client = _client(memory_gateway)

    response = client.post("/api/profiling/start", json={"type": "cpu"})

    assert response.status_code == 201
    assert response.json() == {
        "startResults": [
            {"nodeName": "node1:9000", "success": True, "error": ""},
            {"nodeName": "node2:9000", "success": False, "error": "profiler not supported"},
            {"nodeName": "node3:9000", "success": True, "error": ""},
        ],
        "total": 3,
    }


@pytest.mark.parametrize("kwargs", [{}, {"json": {}}, {"json": {"type": ""}}])
def test_start_without_kind_is_rejected_before_gateway(kwargs):
    gateway = _StubGateway()
    client = _client(gateway)

    response = client.post("/api/profiling/start", **kwargs)

    assert response.status_code == 400
    assert response.json()["code"] == 400
    assert response.json()["message"] == "Request body is required"
    assert gateway.start_calls == 0


def test_start_with_unknown_kind_is_rejected():
    gateway = _StubGateway()
    client = _client(gateway)

    response = client.post("/api/profiling/start", json={"type": "heap"})

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Invalid profiling type"
    assert "heap" in body["detailedMessage"]
    assert gateway.start_calls == 0


@pytest.mark.parametrize("payload", [{"type": 5}, {"type": ["cpu"]}])
def test_start_with_non_string_kind_uses_error_payload(payload):
    gateway = _StubGateway()
    client = _client(gateway)

    response = client.post("/api/profiling/start", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == 400
    assert body["message"] == "Invalid profiling type"
    assert body["detailedMessage"].startswith("type:")
    assert "detail" not in body
    assert gateway.start_calls == 0


def test_start_with_unknown_field_uses_error_payload():
    gateway = _StubGateway()
    client = _client(gateway)

    response = client.post("/api/profiling/start", json={"type": "cpu", "extra": 1})

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid request body"
    assert "extra" in response.json()["detailedMessage"]
    assert gateway.start_calls == 0


def test_start_with_malformed_json_uses_error_payload():
    gateway = _StubGateway()
    client = _client(gateway)

    response = client.post(
        "/api/profiling/start",
        content=b"not-json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert set(response.json()) == {"code", "message", "detailedMessage"}
    assert response.json()["message"] == "Invalid request body"
    assert gateway.start_calls == 0


def test_start_while_profiling_reports_upstream_failure(memory_gateway):
    client = _client(memory_gateway)
    assert client.post("/api/profiling/start", json={"type": "cpu"}).status_code == 201

    response = client.post("/api/profiling/start", json={"type": "mem"})

    assert response.status_code == 502
    assert response.json() == {
        "code": 502,
        "message": "Admin API request failed",
        "detailedMessage": "profiler already running: cpu",
    }


def test_start_unreachable_cluster_is_service_unavailable():
    client = _client(_StubGateway(start_error=UpstreamUnavailableError("connection refused")))

    response = client.post("/api/profiling/start", json={"type": "cpu"})

    assert response.status_code == 503
    assert response.json()["detailedMessage"] == "connection refused"


def test_start_deadline_is_gateway_timeout():
    client = _client(_StubGateway(start_delay=5), start_timeout=0.05)

    response = client.post("/api/profiling/start", json={"type": "cpu"})

    assert response.status_code == 504
    assert response.json()["message"] == "Admin API request timed out"


def test_stop_downloads_zip_archive(memory_gateway):
    client = _client(memory_gateway)
    client.post("/api/profiling/start", json={"type": "block"})

    response = client.post("/api/profiling/stop")

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert response.headers["content-disposition"] == "attachment; filename=profile.zip"
    with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
        assert archive.namelist() == [
            "profile-node1_9000-block.pprof",
            "profile-node3_9000-block.pprof",
        ]


def test_stop_closes_archive_stream_exactly_once():
    gateway = _StubGateway()
    client = _client(gateway, chunk_size=16)

    response = client.post("/api/profiling/stop")

    assert response.status_code == 200
    assert response.content == b"PK" + b"\x00" * 200
    assert len(gateway.streams) == 1
    assert gateway.streams[0].release_count == 1


def test_stop_while_idle_reports_upstream_failure(memory_gateway):
    client = _client(memory_gateway)

    response = client.post("/api/profiling/stop")

    assert response.status_code == 502
    assert response.json()["detailedMessage"] == "no profiling session is active"


def test_stop_unreachable_cluster_is_service_unavailable():
    client = _client(_StubGateway(stop_error=UpstreamUnavailableError("down")))

    response = client.post("/api/profiling/stop")

    assert response.status_code == 503
    assert response.json()["message"] == "Admin API is unavailable"


def test_kinds_lists_supported_profiling_types(memory_gateway):
    response = _client(memory_gateway).get("/api/profiling/kinds")

    assert response.status_code == 200
    assert response.json() == {"kinds": ["cpu", "mem", "block", "mutex", "trace", "threads", "goroutines"]}


def test_health_reports_gateway(memory_gateway):
    response = _client(memory_gateway, api_prefix="/v1").get("/v1/health")

    assert response.status_code == 200
    assert response.json()["gateway"] == "memory"


def test_request_id_is_echoed(memory_gateway):
    response = _client(memory_gateway).get("/api/profiling/kinds", headers={"X-Request-ID": "req-42"})

    assert response.headers["X-Request-ID"] == "req-42"


def test_lifespan_closes_gateway():
    gateway = _StubGateway()

    with TestClient(create_app(Settings(gateway="memory"), gateway=gateway)):
        assert not gateway.closed

    assert gateway.closed
