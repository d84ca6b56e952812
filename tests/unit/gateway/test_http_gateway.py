import json

import aiohttp
import pytest

import clusterprof.gateway.http as http_module
from clusterprof.core.exceptions import AdminAPIError, UpstreamUnavailableError
from clusterprof.core.models import ProfilingKind
from clusterprof.gateway.http import DOWNLOAD_PATH, START_PATH, HTTPAdminGateway


class _RespCM:
    """Async context manager wrapper returning a prepared FakeResponse."""
    def __init__(self, resp):
        self._resp = resp

    async def __aenter__(self):
        return self._resp

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeContent:
    def __init__(self, data: bytes):
        self._data = data
        self._offset = 0

    async def read(self, n: int = -1) -> bytes:
        if n < 0:
            n = len(self._data) - self._offset
        chunk = self._data[self._offset:self._offset + n]
        self._offset += len(chunk)
        return chunk


class FakeResponse:
    """Mimics the parts of aiohttp.ClientResponse used by the gateway."""
    def __init__(self, status: int, body: bytes = b"", json_data=None):
        self.status = status
        self._body = json.dumps(json_data).encode() if json_data is not None else body
        self.content = FakeContent(self._body)
        self.close_calls = 0

    async def json(self, content_type="application/json"):
        return json.loads(self._body)

    async def text(self):
        return self._body.decode()

    def close(self):
        self.close_calls += 1


class FakeSession:
    """Mimics aiohttp.ClientSession with the post/get calls the gateway makes."""
    instances: list["FakeSession"] = []
    post_response: FakeResponse | None = None
    get_response: FakeResponse | None = None
    error: Exception | None = None

    def __init__(self, *args, **kwargs):
        self.headers = kwargs.get("headers", {})
        self.closed = False
        self.posts = []
        self.gets = []
        FakeSession.instances.append(self)

    async def close(self):
        self.closed = True

    def post(self, url, params=None, ssl=None, timeout=None):
        self.posts.append((url, params, ssl))
        if FakeSession.error is not None:
            raise FakeSession.error
        return _RespCM(FakeSession.post_response)

    async def get(self, url, ssl=None):
        self.gets.append((url, ssl))
        if FakeSession.error is not None:
            raise FakeSession.error
        return FakeSession.get_response


@pytest.fixture(autouse=True)
def fake_session(monkeypatch):
    FakeSession.instances = []
    FakeSession.post_response = None
    FakeSession.get_response = None
    FakeSession.error = None
    monkeypatch.setattr(http_module.aiohttp, "ClientSession", FakeSession)
    return FakeSession


@pytest.mark.asyncio
async def test_start_posts_profiler_type_and_parses_results():
    FakeSession.post_response = FakeResponse(
        200,
        json_data=[
            {"nodeName": "node1:9000", "success": True, "error": ""},
            {"nodeName": "node2:9000", "success": False, "error": "not supported"},
        ],
    )
    gateway = HTTPAdminGateway("https://cluster.local:9000/", access_token="token-123", verify_ssl=False)

    results = await gateway.start_profiling(ProfilingKind.GOROUTINES)

    session = FakeSession.instances[0]
    assert session.posts == [(f"https://cluster.local:9000{START_PATH}", {"profilerType": "goroutines"}, False)]
    assert session.headers["Authorization"] == "Bearer token-123"
    assert [(r.node_name, r.success, r.error) for r in results] == [
        ("node1:9000", True, ""),
        ("node2:9000", False, "not supported"),
    ]
    await gateway.aclose()
    assert session.closed


@pytest.mark.asyncio
async def test_start_rejection_raises_admin_api_error():
    FakeSession.post_response = FakeResponse(409, json_data={"Code": "XMinioAdminProfilerNotEnabled", "Message": "profiler already running"})
    gateway = HTTPAdminGateway("http://cluster.local:9000")

    with pytest.raises(AdminAPIError) as excinfo:
        await gateway.start_profiling(ProfilingKind.CPU)

    assert excinfo.value.status == 409
    assert excinfo.value.message == "profiler already running"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403])
async def test_start_auth_failure_is_unavailable(status):
    FakeSession.post_response = FakeResponse(status, body=b"access denied")
    gateway = HTTPAdminGateway("http://cluster.local:9000")

    with pytest.raises(UpstreamUnavailableError, match="access denied"):
        await gateway.start_profiling(ProfilingKind.CPU)


@pytest.mark.asyncio
async def test_start_connection_error_is_unavailable():
    FakeSession.error = aiohttp.ClientConnectionError("connection refused")
    gateway = HTTPAdminGateway("http://cluster.local:9000")

    with pytest.raises(UpstreamUnavailableError) as excinfo:
        await gateway.start_profiling(ProfilingKind.CPU)

    assert isinstance(excinfo.value.cause, aiohttp.ClientConnectionError)


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"nodeName": "x"}, [{"success": True}], ["node"]])
async def test_start_malformed_payload_raises_admin_api_error(payload):
    FakeSession.post_response = FakeResponse(200, json_data=payload)
    gateway = HTTPAdminGateway("http://cluster.local:9000")

    with pytest.raises(AdminAPIError):
        await gateway.start_profiling(ProfilingKind.CPU)


@pytest.mark.asyncio
async def test_stop_returns_stream_over_response_body():
    response = FakeResponse(200, body=b"PK\x03\x04archive-bytes")
    FakeSession.get_response = response
    gateway = HTTPAdminGateway("http://cluster.local:9000")

    stream = await gateway.stop_profiling()

    assert FakeSession.instances[0].gets == [(f"http://cluster.local:9000{DOWNLOAD_PATH}", None)]
    assert await stream.read(4) == b"PK\x03\x04"
    assert await stream.read() == b"archive-bytes"
    await stream.aclose()
    await stream.aclose()
    assert response.close_calls == 1


@pytest.mark.asyncio
async def test_stop_failure_closes_response():
    response = FakeResponse(400, json_data={"Message": "profiler not enabled"})
    FakeSession.get_response = response
    gateway = HTTPAdminGateway("http://cluster.local:9000")

    with pytest.raises(AdminAPIError, match="profiler not enabled"):
        await gateway.stop_profiling()

    assert response.close_calls == 1


def test_gateway_requires_endpoint():
    with pytest.raises(ValueError):
        HTTPAdminGateway("")
