"""HTTP interface of a node: status, resources and function invocation."""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any, Awaitable, Callable

import aiohttp
from aiohttp import web

from sparenode.api import InvokeFunction, Resources
from sparenode.db import Instance, get_list
from sparenode.global_resources import InvokeError
from sparenode.local_resources import InsufficientResourcesError
from sparenode.orchestrator import Orchestrator

log = logging.getLogger(__name__)

MAX_HOPS = 10

Runner = Callable[[InvokeFunction], Awaitable[bytes]]


class InstanceError(Exception):
    """Starting or running a function instance failed, for instance on a timeout."""


def _instance_to_dict(instance: Instance) -> dict[str, Any]:
    return {
        "id": instance.id,
        "functions": instance.functions,
        "kernel": instance.kernel,
        "image": instance.image,
        "vcpus": instance.vcpus,
        "memory": instance.memory,
        "ip": instance.ip,
        "port": instance.port,
        "hops": instance.hops,
        "status": instance.status,
        "created_at": instance.created_at.isoformat(),
    }


async def _remote_resources(
    session: aiohttp.ClientSession, address: str
) -> Resources | None:
    """Fetch the free resources of a remote node.

    Raises aiohttp.ClientError when the node cannot be reached; returns None
    when its answer cannot be understood.
    """
    async with session.get(f"http://{address}/resources") as response:
        try:
            document = await response.json(content_type=None)
            return Resources.from_dict(document)
        except (ValueError, TypeError):
            return None


async def offload(
    orchestrator: Orchestrator, data: InvokeFunction, peer_ip: str | None
) -> web.Response:
    """Forward an invocation to the nearest remote node with enough free resources."""
    async with aiohttp.ClientSession() as session:
        for index in range(orchestrator.number_of_nodes()):
            node = orchestrator.get_remote_nth_node(index)
            if node is None:
                break
            # Never send a request back to where it came from.
            if peer_ip and peer_ip in node.address:
                continue
            try:
                remote = await _remote_resources(session, node.address)
            except aiohttp.ClientError:
                return web.Response(status=500, text="Failed to offload request\n")
            if remote is None:
                continue
            if remote.cpus < data.vcpus or remote.memory < data.memory * 1024:
                continue
            log.warning("Forwarding request to %s", node.address)
            try:
                body = await node.invoke(data)
            except InvokeError:
                log.error("Failed to forward request to %s", node.address)
                continue
            log.error("Successfully forwarded request to %s", node.address)
            return web.Response(body=body)
    return web.Response(status=500, text="Insufficient resources\n")


def create_app(
    conn: sqlite3.Connection, orchestrator: Orchestrator, runner: Runner
) -> web.Application:
    """Build the node's web application.

    ``runner`` starts an instance for an invocation and returns the function's
    output; it raises InstanceError when the instance fails, and is retried.
    """

    async def index(request: web.Request) -> web.Response:
        return web.Response(text="Server is up and running!\n")

    async def list_instances(request: web.Request) -> web.Response:
        return web.json_response([_instance_to_dict(i) for i in get_list(conn)])

    async def resources(request: web.Request) -> web.Response:
        return web.json_response(orchestrator.get_resources().to_dict())

    async def emergency(request: web.Request) -> web.Response:
        return web.json_response(orchestrator.in_emergency_area)

    async def invoke(request: web.Request) -> web.Response:
        try:
            data = InvokeFunction.from_dict(await request.json())
        except (ValueError, TypeError):
            return web.Response(status=400, text="Invalid request\n")

        if data.hops > 0:
            log.warning("Request with number of hops: %s", data.hops)
        if data.hops > MAX_HOPS:
            return web.Response(status=500, text="Too many hops\n")
        if data.vcpus < 0 or data.memory < 0:
            return web.Response(status=400, text="Invalid request\n")

        try:
            orchestrator.check_and_acquire_resources(data.vcpus, data.memory * 1024)
            acquired = True
        except InsufficientResourcesError:
            acquired = False

        # Offload when short of resources, or when this node is in the
        # emergency area and the request is not an emergency one.
        if not acquired or (orchestrator.in_emergency_area and not data.emergency):
            if acquired:
                orchestrator.release_resources(data.vcpus)
            return await offload(orchestrator, data, request.remote)

        while True:
            try:
                body = await runner(data)
            except InstanceError as exc:
                log.error("Error!: %s", exc)
                continue
            try:
                orchestrator.release_resources(data.vcpus)
            except InsufficientResourcesError:
                return web.Response(status=413, text="Payload too large\n")
            return web.Response(body=body)

    app = web.Application()
    app.router.add_get("/", index)
    app.router.add_get("/list", list_instances)
    app.router.add_get("/resources", resources)
    app.router.add_get("/emergency", emergency)
    app.router.add_post("/invoke", invoke)
    return app