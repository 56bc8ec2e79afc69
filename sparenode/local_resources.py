"""CPU bookkeeping and memory figures of the local machine."""

from __future__ import annotations

import os
from pathlib import Path

MEMINFO_PATH = "/proc/meminfo"


class InsufficientResourcesError(Exception):
    """The node does not have the requested resources."""


def _detected_cpus() -> int:
    if hasattr(os, "sched_getaffinity"):
        return len(os.sched_getaffinity(0))
    return os.cpu_count() or 1


class LocalResources:
    """Tracks how many CPUs of this node are free."""

    def __init__(self, cpus: int | None = None) -> None:
        self._cpus_available = _detected_cpus() if cpus is None else cpus
        if self._cpus_available < 0:
            raise ValueError(f"negative CPU count: {self._cpus_available}")

    @property
    def available_cpus(self) -> int:
        return self._cpus_available

    def acquire_cpus(self, cpus: int) -> None:
        if cpus < 0:
            raise ValueError(f"negative CPU count: {cpus}")
        if cpus > self._cpus_available:
            raise InsufficientResourcesError(
                f"requested {cpus} cpus, {self._cpus_available} available"
            )
        self._cpus_available -= cpus

    def release_cpus(self, cpus: int) -> None:
        if cpus < 0:
            raise ValueError(f"negative CPU count: {cpus}")
        self._cpus_available += cpus


def _meminfo_field(path: str | os.PathLike, key: str) -> int:
    for line in Path(path).read_text().splitlines():
        if line.startswith(key):
            parts = line.split()
            if len(parts) < 2:
                raise ValueError(f"no size on {key} line")
            return int(parts[1])
    raise ValueError(f"could not find {key} line in {path}")


def total_memory(meminfo_path: str | os.PathLike = MEMINFO_PATH) -> int:
    """Total memory of the node in kB."""
    return _meminfo_field(meminfo_path, "MemTotal")


def available_memory(meminfo_path: str | os.PathLike = MEMINFO_PATH) -> int:
    """Currently available memory of the node in kB."""
    return _meminfo_field(meminfo_path, "MemAvailable")