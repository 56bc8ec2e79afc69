"""Local resource management and view of the remote nodes."""

from __future__ import annotations

import logging
import os
import threading
from typing import Iterable

from sparenode.api import Resources
from sparenode.global_resources import GlobalResources, Node
from sparenode.local_resources import (
    MEMINFO_PATH,
    InsufficientResourcesError,
    LocalResources,
    available_memory,
)

log = logging.getLogger(__name__)


class Orchestrator:
    """Manages local CPUs and the remote nodes available for offloading."""

    def __init__(
        self,
        nodes: Iterable[Node],
        identity: Node,
        cpus: int | None = None,
        meminfo_path: str | os.PathLike = MEMINFO_PATH,
    ) -> None:
        self._lock = threading.RLock()
        self._in_emergency_area = False
        self._resources = LocalResources(cpus)
        self._global = GlobalResources(nodes, identity)
        self._meminfo_path = meminfo_path

    @property
    def identity(self) -> Node:
        with self._lock:
            return self._global.identity

    @property
    def in_emergency_area(self) -> bool:
        with self._lock:
            return self._in_emergency_area

    def set_emergency(
        self,
        emergency: bool,
        emergency_point: tuple[int, int] = (0, 0),
        radius: float = 0.0,
    ) -> None:
        """Enter or leave emergency mode around ``emergency_point``."""
        with self._lock:
            if emergency:
                log.info("Entering emergency mode. Emergency point: %s", emergency_point)
                self._global.compute_emergency_nodes(emergency_point, radius)
                point = Node("emergency", tuple(emergency_point))
                if self._global.identity.distance(point) <= radius:
                    log.error("Node is in the emergency zone")
                    self._in_emergency_area = True
            else:
                log.info("Leaving emergency mode")
                self._global.clean_emergency_nodes()
                self._in_emergency_area = False

    def number_of_nodes(self) -> int:
        """Number of remote nodes outside the emergency area."""
        with self._lock:
            return len(self._global) - len(self._global.emergency_nodes)

    def get_remote_nth_node(self, index: int) -> Node | None:
        with self._lock:
            return self._global.nth(index)

    def get_resources(self) -> Resources:
        with self._lock:
            cpus = self._resources.available_cpus
        return Resources(cpus=cpus, memory=available_memory(self._meminfo_path))

    def check_and_acquire_resources(self, cpus: int, memory: int) -> None:
        """Reserve ``cpus`` if they and ``memory`` kB are available.

        Raises InsufficientResourcesError otherwise.
        """
        log.info("Requested %s cpus and %s MB", cpus, memory // 1024)
        with self._lock:
            if cpus > self._resources.available_cpus:
                log.warning("Insufficient cpus: %s", self._resources.available_cpus)
                raise InsufficientResourcesError(
                    f"requested {cpus} cpus, {self._resources.available_cpus} available"
                )
            free = available_memory(self._meminfo_path)
            if memory > free:
                log.warning("Insufficient memory: %s", free)
                raise InsufficientResourcesError(
                    f"requested {memory} kB, {free} kB available"
                )
            self._resources.acquire_cpus(cpus)
        log.info("Acquired %s cpus and %s MB", cpus, memory // 1024)

    def release_resources(self, cpus: int) -> None:
        log.info("Releasing %s cpus", cpus)
        with self._lock:
            self._resources.release_cpus(cpus)