"""Tests for the runtime API client against an in-process server."""

import asyncio

import pytest
import pytest_asyncio
from aiohttp import web

from image_flattener.core.runtime_client import RuntimeClient
from image_flattener.core.types import HistoryEntry, Layer, RuntimeConfig
from image_flattener.exceptions import (
    LayerNotFoundError,
    RuntimeAPIError,
    RuntimeUnavailableError,
)

HISTORY = [
    {"Id": "l2", "Tags": ["app:latest"], "CreatedBy": "/bin/sh -c #(nop) CMD"},
    {"Id": "l1", "Tags": None, "CreatedBy": "/bin/sh -c apt-get install"},
    {"Id": "l0", "Tags": None, "CreatedBy": ""},
]

IMAGES = {
    "l2": {
        "id": "l2",
        "parent": "l1",
        "author": "dev@example.com",
        "config": {"PortSpecs": ["8080"], "Cmd": ["/bin/sh", "-c", "run"]},
    },
    "l1": {"Id": "l1", "Parent": "l0", "Config": {}},
    "l0": {"Id": "l0", "Parent": "", "Config": None},
}


def make_app(prefix: str) -> web.Application:
    """Application serving the image endpoints under ``prefix``."""

    async def history(request):
        if request.match_info["name"] != "team/app:latest":
            return web.json_response({"message": "no such image"}, status=404)
        return web.json_response(HISTORY)

    async def inspect(request):
        name = request.match_info["name"]
        if name == "broken":
            return web.Response(status=500, text="daemon exploded")
        if name not in IMAGES:
            return web.json_response({"message": "no such image"}, status=404)
        return web.json_response(IMAGES[name])

    async def ping(request):
        return web.Response(text="OK")

    app = web.Application()
    app.router.add_get(prefix + "/images/{name:.+}/history", history)
    app.router.add_get(prefix + "/images/{name:.+}/json", inspect)
    app.router.add_get(prefix + "/_ping", ping)
    return app


@pytest_asyncio.fixture
async def unix_server(tmp_path):
    """Runtime API served on a unix socket."""
    socket_path = str(tmp_path / "docker.sock")
    runner = web.AppRunner(make_app("/v1.24"))
    await runner.setup()
    site = web.UnixSite(runner, socket_path)
    await site.start()
    yield socket_path
    await runner.cleanup()


@pytest_asyncio.fixture
async def legacy_server():
    """Legacy runtime API served over TCP."""
    runner = web.AppRunner(make_app("/v1.3"))
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    port = runner.addresses[0][1]
    yield f"http://127.0.0.1:{port}/v1.3"
    await runner.cleanup()


@pytest_asyncio.fixture
async def stalled_server(tmp_path):
    """Runtime socket that accepts requests but never answers in time."""

    async def stall(request):
        await asyncio.sleep(2)
        return web.json_response([])

    app = web.Application()
    app.router.add_get("/{tail:.*}", stall)
    socket_path = str(tmp_path / "stalled.sock")
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.UnixSite(runner, socket_path)
    await site.start()
    yield socket_path
    await runner.cleanup()


@pytest.mark.asyncio
async def test_get_history(unix_server):
    """Test history entries are parsed in order."""
    config = RuntimeConfig(socket_path=unix_server, fallback_url=None)
    async with RuntimeClient(config) as client:
        history = await client.get_history("team/app:latest")

    assert history == [
        HistoryEntry(id="l2", tags=("app:latest",), created_by="/bin/sh -c #(nop) CMD"),
        HistoryEntry(id="l1", tags=(), created_by="/bin/sh -c apt-get install"),
        HistoryEntry(id="l0", tags=(), created_by=""),
    ]


@pytest.mark.asyncio
async def test_inspect_layer(unix_server):
    """Test legacy and current inspect payloads are both parsed."""
    config = RuntimeConfig(socket_path=unix_server, fallback_url=None)
    async with RuntimeClient(config) as client:
        head = await client.inspect_layer("l2")
        base = await client.inspect_layer("l0")

    assert head == Layer(
        id="l2",
        parent="l1",
        author="dev@example.com",
        ports=("8080",),
        cmd=("/bin/sh", "-c", "run"),
    )
    assert base.is_base


@pytest.mark.asyncio
async def test_unknown_image(unix_server):
    """Test 404 responses raise LayerNotFoundError."""
    config = RuntimeConfig(socket_path=unix_server, fallback_url=None)
    async with RuntimeClient(config) as client:
        with pytest.raises(LayerNotFoundError):
            await client.get_history("missing:latest")
        with pytest.raises(LayerNotFoundError):
            await client.inspect_layer("missing")


@pytest.mark.asyncio
async def test_server_error(unix_server):
    """Test other error statuses raise RuntimeAPIError."""
    config = RuntimeConfig(socket_path=unix_server, fallback_url=None)
    async with RuntimeClient(config) as client:
        with pytest.raises(RuntimeAPIError, match="daemon exploded"):
            await client.inspect_layer("broken")


@pytest.mark.asyncio
async def test_fallback_to_legacy_endpoint(tmp_path, legacy_server):
    """Test an unreachable socket is retried once against the legacy endpoint."""
    config = RuntimeConfig(
        socket_path=str(tmp_path / "missing.sock"), fallback_url=legacy_server
    )
    async with RuntimeClient(config) as client:
        history = await client.get_history("team/app:latest")
        layer = await client.inspect_layer("l1")
        assert await client.ping()

    assert [entry.id for entry in history] == ["l2", "l1", "l0"]
    assert layer.parent == "l0"


@pytest.mark.asyncio
async def test_unavailable_without_fallback(tmp_path):
    """Test an unreachable socket without fallback raises RuntimeUnavailableError."""
    config = RuntimeConfig(socket_path=str(tmp_path / "missing.sock"), fallback_url=None)
    async with RuntimeClient(config) as client:
        with pytest.raises(RuntimeUnavailableError):
            await client.get_history("team/app:latest")
        assert not await client.ping()


@pytest.mark.asyncio
async def test_unavailable_when_fallback_fails(tmp_path):
    """Test a failing fallback raises RuntimeUnavailableError."""
    config = RuntimeConfig(
        socket_path=str(tmp_path / "missing.sock"),
        fallback_url="http://127.0.0.1:1/v1.3",
        timeout=5,
    )
    async with RuntimeClient(config) as client:
        with pytest.raises(RuntimeUnavailableError):
            await client.inspect_layer("l1")


@pytest.mark.asyncio
async def test_timeout_without_fallback(stalled_server):
    """Test a runtime that does not answer in time raises RuntimeUnavailableError."""
    config = RuntimeConfig(socket_path=stalled_server, fallback_url=None, timeout=1)
    async with RuntimeClient(config) as client:
        with pytest.raises(RuntimeUnavailableError, match="timed out after 1s"):
            await client.get_history("team/app:latest")
        assert not await client.ping()


@pytest.mark.asyncio
async def test_timeout_falls_back_to_legacy_endpoint(stalled_server, legacy_server):
    """Test a stalled socket is retried once against the legacy endpoint."""
    config = RuntimeConfig(
        socket_path=stalled_server, fallback_url=legacy_server, timeout=1
    )
    async with RuntimeClient(config) as client:
        history = await client.get_history("team/app:latest")

    assert [entry.id for entry in history] == ["l2", "l1", "l0"]


@pytest.mark.asyncio
async def test_ping(unix_server):
    """Test ping succeeds over the socket."""
    config = RuntimeConfig(socket_path=unix_server, fallback_url=None)
    async with RuntimeClient(config) as client:
        assert await client.ping()


@pytest.mark.asyncio
async def test_request_without_session():
    """Test requests fail before the session is opened."""
    with pytest.raises(RuntimeAPIError):
        await RuntimeClient().get_history("app")


def test_runtime_config_from_env(monkeypatch):
    """Test environment variables override defaults."""
    monkeypatch.setenv("FLATTEN_DOCKER_SOCKET", "/run/alt.sock")
    monkeypatch.setenv("FLATTEN_API_VERSION", "v1.41")
    monkeypatch.setenv("FLATTEN_FALLBACK_URL", "")
    monkeypatch.setenv("FLATTEN_TIMEOUT", "5")

    config = RuntimeConfig.from_env()

    assert config.socket_path == "/run/alt.sock"
    assert config.base_url == "http://localhost/v1.41"
    assert config.fallback_url is None
    assert config.timeout == 5
