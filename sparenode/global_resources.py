"""Remote nodes known to this node, ordered by distance."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from itertools import islice
from typing import Any, Iterable, Mapping

import aiohttp

from sparenode.api import InvokeFunction

log = logging.getLogger(__name__)


class InvokeError(Exception):
    """A remote invocation failed."""


@dataclass(frozen=True)
class Node:
    """A node of the system: its ``ip:port`` address and grid position."""

    address: str
    position: tuple[int, int]

    def distance(self, other: "Node") -> float:
        """Euclidean distance between the positions of two nodes."""
        dx = self.position[0] - other.position[0]
        dy = self.position[1] - other.position[1]
        return math.sqrt(dx * dx + dy * dy)

    def to_dict(self) -> dict[str, Any]:
        return {"address": self.address, "position": list(self.position)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Node":
        try:
            address = data["address"]
            x, y = data["position"]
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"invalid node: {data!r}") from exc
        if not isinstance(address, str):
            raise ValueError(f"invalid node address: {address!r}")
        return cls(address, (int(x), int(y)))

    async def invoke(self, data: InvokeFunction) -> bytes:
        """Forward an invocation to this node, one hop further, and return its body."""
        forwarded = replace(data, hops=data.hops + 1)
        url = f"http://{self.address}/invoke"
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(url, json=forwarded.to_dict()) as response:
                    if not 200 <= response.status < 300:
                        raise InvokeError(
                            f"{self.address} answered with status {response.status}"
                        )
                    return await response.read()
        except aiohttp.ClientError as exc:
            raise InvokeError(f"cannot invoke on {self.address}: {exc}") from exc


def nearest_neighbor(nodes: Iterable[Node], identity: Node) -> list[Node]:
    """Return the nodes ordered from nearest to farthest from ``identity``."""
    ordered = sorted(nodes, key=identity.distance)
    for node in ordered:
        log.info(
            "Node position: %s,  distance from node: %s",
            node.position,
            node.distance(identity),
        )
    return ordered


class GlobalResources:
    """The remote nodes of the system and those inside an emergency area."""

    def __init__(self, nodes: Iterable[Node], identity: Node) -> None:
        self.identity = identity
        self.nodes = nearest_neighbor(nodes, identity)
        self.emergency_nodes: list[Node] = []

    def compute_emergency_nodes(self, position: tuple[int, int], radius: float) -> None:
        """Mark the nodes within ``radius`` of ``position`` as emergency nodes."""
        point = Node("emergency", tuple(position))
        self.emergency_nodes = [
            node
            for node in nearest_neighbor(self.nodes, point)
            if node.distance(point) <= radius
        ]

    def clean_emergency_nodes(self) -> None:
        self.emergency_nodes.clear()

    def __len__(self) -> int:
        return len(self.nodes)

    def nth(self, num: int) -> Node | None:
        """Return the ``num``-th nearest node outside the emergency area, if any."""
        if num < 0:
            return None
        usable = (node for node in self.nodes if node not in self.emergency_nodes)
        return next(islice(usable, num, None), None)