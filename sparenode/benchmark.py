"""Load generator that measures invocation latency in normal and emergency mode."""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from itertools import product
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Sequence

import aiohttp

from sparenode.api import InvokeFunction
from sparenode.global_resources import Node

log = logging.getLogger(__name__)

EMERGENCY_RADIUS = 50.0
REQUESTS_PER_NODE = 6
INTER_ARRIVAL = 0.055
RETRY_DELAY = 0.1
EPOCH_PAUSE = 5.0
REQUEST_TIMEOUT = 5.0

FUNCTION_NAME = "mandelbrot"
FUNCTION_VCPUS = 2
FUNCTION_MEMORY = 256
FUNCTION_PAYLOAD = "test"

NORMAL_FILE = "latency_per_epoch_normal.csv"
EMERGENCY_FILE = "latency_per_epoch_emergency.csv"
SUMMARY_FILE = "latency_summary.csv"

EpochCallback = Callable[[str, str], Any]


@dataclass
class ScenarioResult:
    """Outcome of one scenario; latencies are in milliseconds."""

    average_latency: int
    completed: int
    failed: int
    latency_per_epoch: list[int] = field(default_factory=list)


def generate_points(nodes: Iterable[Node], max_x: int, max_y: int) -> list[Node]:
    """Give each node a distinct random position on a ``max_x`` by ``max_y`` grid."""
    nodes = list(nodes)
    positions = list(product(range(max(max_x, 0)), range(max(max_y, 0))))
    if len(nodes) > len(positions):
        raise ValueError(
            f"cannot place {len(nodes)} nodes on a grid of {len(positions)} positions"
        )
    chosen = random.sample(positions, len(nodes))
    return [Node(node.address, position) for node, position in zip(nodes, chosen)]


def choose_emergency(
    nodes: Iterable[Node], max_x: int, max_y: int
) -> tuple[list[Node], Node]:
    """Place the nodes and an emergency point so that a third of the nodes are hit.

    Positions are drawn again until exactly ``len(nodes) // 3`` nodes lie within
    the emergency radius of the emergency point.
    """
    template = Node("emergency", (0, 0))
    placed = generate_points(nodes, max_x, max_y)
    emergency = generate_points([template], max_x, max_y)[0]
    while (
        sum(1 for node in placed if node.distance(emergency) <= EMERGENCY_RADIUS)
        != len(placed) // 3
    ):
        log.info("Recomputing emergency node")
        placed = generate_points(placed, max_x, max_y)
        emergency = generate_points([template], max_x, max_y)[0]
    return placed, emergency


def _now() -> str:
    return str(datetime.now(timezone.utc).replace(tzinfo=None))


@dataclass
class _Tally:
    failed: int = 0


async def _invoke_until_success(
    session: aiohttp.ClientSession,
    address: str,
    request: InvokeFunction,
    tally: _Tally,
) -> int:
    """Invoke the function on ``address`` until it succeeds; return the time spent."""
    url = f"http://{address}/invoke"
    total = 0
    while True:
        start = time.monotonic()
        try:
            async with session.post(url, json=request.to_dict()) as response:
                elapsed = int((time.monotonic() - start) * 1000)
                if 200 <= response.status < 300:
                    await response.read()
                    log.info("Success")
                    return total + elapsed
                log.error("Error: %s", await response.text())
        except asyncio.TimeoutError:
            log.error("Timeout! Now trying again...")
            continue
        except aiohttp.ClientConnectionError as exc:
            log.error("Connection error! Now trying again... (%s)", exc)
            continue
        except aiohttp.ClientError as exc:
            log.error("Error: %s!", exc)
            continue
        await asyncio.sleep(RETRY_DELAY)
        total += elapsed
        tally.failed += 1


async def run_scenario(
    nodes: Sequence[Node],
    iterations: int,
    image: str,
    on_epoch_end: EpochCallback | None = None,
) -> ScenarioResult:
    """Send bursts of invocations to random nodes for ``iterations`` epochs.

    Each epoch sends six requests per node, spaced by the inter-arrival time,
    and waits for all of them. ``on_epoch_end`` receives the epoch's start and
    end timestamps; it may be a coroutine function.
    """
    nodes = list(nodes)
    if not nodes:
        raise ValueError("no nodes to send requests to")
    if iterations < 1:
        raise ValueError(f"at least one iteration is needed, got {iterations}")

    requests_per_epoch = REQUESTS_PER_NODE * len(nodes)
    request = InvokeFunction(
        function=FUNCTION_NAME,
        image=image,
        vcpus=FUNCTION_VCPUS,
        memory=FUNCTION_MEMORY,
        payload=FUNCTION_PAYLOAD,
        emergency=False,
        hops=0,
    )
    tally = _Tally()
    latencies: list[int] = []
    per_epoch: list[int] = []

    timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        for iteration in range(iterations):
            log.info("Iteration: %d", iteration)
            start_time = _now()
            tasks: list[asyncio.Task[int]] = []
            for _ in range(requests_per_epoch):
                node = random.choice(nodes)
                await asyncio.sleep(INTER_ARRIVAL)
                tasks.append(
                    asyncio.create_task(
                        _invoke_until_success(session, node.address, request, tally)
                    )
                )
            epoch = list(await asyncio.gather(*tasks))
            end_time = _now()

            await asyncio.sleep(EPOCH_PAUSE)
            if on_epoch_end is not None:
                outcome = on_epoch_end(start_time, end_time)
                if inspect.isawaitable(outcome):
                    await outcome

            latencies.extend(epoch)
            per_epoch.append(sum(epoch) // requests_per_epoch)
            await asyncio.sleep(EPOCH_PAUSE)

    return ScenarioResult(
        average_latency=sum(latencies) // len(latencies),
        completed=len(latencies),
        failed=tally.failed,
        latency_per_epoch=per_epoch,
    )


def write_results(
    directory: str | Path, normal: ScenarioResult, emergency: ScenarioResult
) -> tuple[Path, Path, Path]:
    """Write per-epoch latencies and a summary as CSV files, replacing old ones."""
    base = Path(directory)
    normal_path = base / NORMAL_FILE
    emergency_path = base / EMERGENCY_FILE
    summary_path = base / SUMMARY_FILE

    def epochs(header: str, result: ScenarioResult) -> str:
        rows = [header]
        rows.extend(f"{epoch},{lat}" for epoch, lat in enumerate(result.latency_per_epoch))
        return "\n".join(rows) + "\n"

    normal_path.write_text(epochs("Epoch,Normal Latency", normal))
    emergency_path.write_text(epochs("Epoch,Emergency Latency", emergency))
    summary_path.write_text(
        "Scenario,Average Latency,Completed Requests,Failed Requests\n"
        f"Normal,{normal.average_latency},{normal.completed},{normal.failed}\n"
        f"Emergency,{emergency.average_latency},{emergency.completed},{emergency.failed}\n"
    )
    return normal_path, emergency_path, summary_path