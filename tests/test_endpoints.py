import socket

import pytest
from aiohttp.test_utils import TestClient, TestServer

from sparenode.api import InvokeFunction
from sparenode.db import Instance, connect
from sparenode.endpoints import InstanceError, create_app, offload
from sparenode.global_resources import Node
from sparenode.orchestrator import Orchestrator


def _meminfo(tmp_path, name, available):
    path = tmp_path / name
    path.write_text(f"MemTotal: 16000000 kB\nMemAvailable: {available} kB\n")
    return path


def _request(**changes):
    values = dict(
        function="mandelbrot",
        image="image",
        vcpus=2,
        memory=256,
        payload="test",
        emergency=False,
        hops=0,
    )
    values.update(changes)
    return InvokeFunction(**values)


class _Runner:
    def __init__(self, result=b"done", failures=0):
        self.result = result
        self.failures = failures
        self.calls = []

    async def __call__(self, data):
        self.calls.append(data)
        if self.failures:
            self.failures -= 1
            raise InstanceError("timeout")
        return self.result


def _free_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


IDENTITY = Node("10.0.0.1:8085", (0, 0))


@pytest.mark.asyncio
async def test_index(tmp_path):
    orch = Orchestrator([], IDENTITY, cpus=4, meminfo_path=_meminfo(tmp_path, "m", 8000000))
    app = create_app(connect(":memory:"), orch, _Runner())
    async with TestClient(TestServer(app)) as client:
        response = await client.get("/")
        assert response.status == 200
        assert await response.text() == "Server is up and running!\n"


@pytest.mark.asyncio
async def test_resources_and_emergency(tmp_path):
    orch = Orchestrator([], IDENTITY, cpus=4, meminfo_path=_meminfo(tmp_path, "m", 8000000))
    app = create_app(connect(":memory:"), orch, _Runner())
    async with TestClient(TestServer(app)) as client:
        response = await client.get("/resources")
        assert await response.json() == {"cpus": 4, "memory": 8000000}
        assert await (await client.get("/emergency")).json() is False
        orch.set_emergency(True, (0, 0), 50.0)
        assert await (await client.get("/emergency")).json() is True


@pytest.mark.asyncio
async def test_list(tmp_path):
    conn = connect(":memory:")
    orch = Orchestrator([], IDENTITY, cpus=4, meminfo_path=_meminfo(tmp_path, "m", 8000000))
    Instance("fn", "kernel", "image", 1, 128, 0, "192.168.30.2", 8084).insert(conn)
    app = create_app(conn, orch, _Runner())
    async with TestClient(TestServer(app)) as client:
        instances = await (await client.get("/list")).json()
        assert len(instances) == 1
        assert instances[0]["functions"] == "fn"
        assert instances[0]["port"] == 8084
        assert instances[0]["status"] == "unknown"


@pytest.mark.asyncio
async def test_invoke_runs_locally_and_releases(tmp_path):
    orch = Orchestrator([], IDENTITY, cpus=4, meminfo_path=_meminfo(tmp_path, "m", 8000000))
    runner = _Runner(result=b"fractal")
    app = create_app(connect(":memory:"), orch, runner)
    async with TestClient(TestServer(app)) as client:
        response = await client.post("/invoke", json=_request().to_dict())
        assert response.status == 200
        assert await response.read() == b"fractal"
    assert runner.calls == [_request()]
    assert orch.get_resources().cpus == 4


@pytest.mark.asyncio
async def test_invoke_retries_failed_instances(tmp_path):
    orch = Orchestrator([], IDENTITY, cpus=4, meminfo_path=_meminfo(tmp_path, "m", 8000000))
    runner = _Runner(result=b"ok", failures=2)
    app = create_app(connect(":memory:"), orch, runner)
    async with TestClient(TestServer(app)) as client:
        response = await client.post("/invoke", json=_request().to_dict())
        assert await response.read() == b"ok"
    assert len(runner.calls) == 3


@pytest.mark.asyncio
async def test_invoke_too_many_hops(tmp_path):
    orch = Orchestrator([], IDENTITY, cpus=4, meminfo_path=_meminfo(tmp_path, "m", 8000000))
    runner = _Runner()
    app = create_app(connect(":memory:"), orch, runner)
    async with TestClient(TestServer(app)) as client:
        response = await client.post("/invoke", json=_request(hops=11).to_dict())
        assert response.status == 500
        assert await response.text() == "Too many hops\n"
    assert runner.calls == []


@pytest.mark.asyncio
async def test_invoke_rejects_malformed_request(tmp_path):
    orch = Orchestrator([], IDENTITY, cpus=4, meminfo_path=_meminfo(tmp_path, "m", 8000000))
    app = create_app(connect(":memory:"), orch, _Runner())
    async with TestClient(TestServer(app)) as client:
        response = await client.post("/invoke", json={"function": "mandelbrot"})
        assert response.status == 400


@pytest.mark.asyncio
async def test_invoke_without_resources_offloads(tmp_path):
    orch = Orchestrator([], IDENTITY, cpus=1, meminfo_path=_meminfo(tmp_path, "m", 8000000))
    runner = _Runner()
    app = create_app(connect(":memory:"), orch, runner)
    async with TestClient(TestServer(app)) as client:
        response = await client.post("/invoke", json=_request(vcpus=2).to_dict())
        assert response.status == 500
        assert await response.text() == "Insufficient resources\n"
    assert runner.calls == []
    assert orch.get_resources().cpus == 1


@pytest.mark.asyncio
async def test_invoke_in_emergency_area_skips_origin(tmp_path):
    origin = Node("127.0.0.1:9999", (3, 3))
    orch = Orchestrator([origin], IDENTITY, cpus=4, meminfo_path=_meminfo(tmp_path, "m", 8000000))
    orch.set_emergency(True, (0, 0), 1.0)
    runner = _Runner()
    app = create_app(connect(":memory:"), orch, runner)
    async with TestClient(TestServer(app)) as client:
        response = await client.post("/invoke", json=_request().to_dict())
        assert await response.text() == "Insufficient resources\n"
    assert runner.calls == []
    assert orch.get_resources().cpus == 4


@pytest.mark.asyncio
async def test_offload_forwards_to_remote(tmp_path):
    remote_orch = Orchestrator(
        [], Node("remote", (5, 5)), cpus=8, meminfo_path=_meminfo(tmp_path, "r", 8000000)
    )
    remote_runner = _Runner(result=b"remote-result")
    remote_app = create_app(connect(":memory:"), remote_orch, remote_runner)
    async with TestServer(remote_app, host="127.0.0.1") as server:
        node = Node(f"127.0.0.1:{server.port}", (1, 1))
        orch = Orchestrator([node], IDENTITY, cpus=0, meminfo_path=_meminfo(tmp_path, "m", 8000000))
        response = await offload(orch, _request(), "10.9.9.9")
    assert response.status == 200
    assert response.body == b"remote-result"
    assert [call.hops for call in remote_runner.calls] == [1]


@pytest.mark.asyncio
async def test_offload_skips_remote_short_of_memory(tmp_path):
    remote_orch = Orchestrator(
        [], Node("remote", (5, 5)), cpus=8, meminfo_path=_meminfo(tmp_path, "r", 1000)
    )
    remote_runner = _Runner()
    remote_app = create_app(connect(":memory:"), remote_orch, remote_runner)
    async with TestServer(remote_app, host="127.0.0.1") as server:
        node = Node(f"127.0.0.1:{server.port}", (1, 1))
        orch = Orchestrator([node], IDENTITY, cpus=0, meminfo_path=_meminfo(tmp_path, "m", 8000000))
        response = await offload(orch, _request(), "10.9.9.9")
    assert response.status == 500
    assert response.text == "Insufficient resources\n"
    assert remote_runner.calls == []


@pytest.mark.asyncio
async def test_offload_unreachable_node_fails(tmp_path):
    node = Node(f"127.0.0.1:{_free_port()}", (1, 1))
    orch = Orchestrator([node], IDENTITY, cpus=0, meminfo_path=_meminfo(tmp_path, "m", 8000000))
    response = await offload(orch, _request(), "10.9.9.9")
    assert response.status == 500
    assert response.text == "Failed to offload request\n"


@pytest.mark.asyncio
async def test_offload_without_nodes(tmp_path):
    orch = Orchestrator([], IDENTITY, cpus=0, meminfo_path=_meminfo(tmp_path, "m", 8000000))
    response = await offload(orch, _request(), None)
    assert response.status == 500
    assert response.text == "Insufficient resources\n"