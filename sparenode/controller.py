"""Node start-up helpers and the controller that reacts to broker messages."""

from __future__ import annotations

import logging
import os
import sqlite3
import time
from ipaddress import IPv4Address
from pathlib import Path
from typing import Iterable

from sparenode import db
from sparenode.addresses import Addresses
from sparenode.global_resources import Node
from sparenode.messages import Message, Operation
from sparenode.orchestrator import Orchestrator

log = logging.getLogger(__name__)

EMERGENCY_RADIUS = 50.0
STATS_RETRY_DELAY = 0.05

_ROW = "{:<15} {:<10} {:<10} {:<10} {:<10}\n"


def parse_cidr(cidr: str) -> Addresses:
    """Build the guest address pool from ``address/prefix`` notation."""
    base, sep, prefix = cidr.partition("/")
    if not sep:
        raise ValueError(f"missing prefix length in {cidr!r}")
    try:
        address = IPv4Address(base)
        length = int(prefix)
    except ValueError as exc:
        raise ValueError(f"invalid CIDR {cidr!r}: {exc}") from exc
    if not 0 <= length <= 32:
        raise ValueError(f"invalid prefix length in {cidr!r}")
    return Addresses(address, length)


def extract_identity(nodes: Iterable[Node], address: str) -> tuple[Node, list[Node]]:
    """Split off the first node with ``address``; return it and the other nodes."""
    remaining = list(nodes)
    for position, node in enumerate(remaining):
        if node.address == address:
            del remaining[position]
            return node, remaining
    raise LookupError(f"no node with address {address}")


def _format_number(value: float | int) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class EmergencyController:
    """Applies control messages to the orchestrator and records epoch statistics."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        conn: sqlite3.Connection,
        stats_file: str | os.PathLike | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.conn = conn
        if stats_file is None:
            x, y = orchestrator.identity.position
            stats_file = f"node_x{x}_y{y}.stats.data"
        self.stats_file = Path(stats_file)
        self.epochs = 0
        self.stats_file.write_text(
            _ROW.format("epoch", "hops_avg", "vcpus_sum", "memory_sum", "requests")
        )

    def _stats(self, start: str, end: str) -> db.Stats:
        while True:
            try:
                return db.stats(self.conn, start, end)
            except sqlite3.OperationalError as exc:
                log.warning("Retrying statistics query: %s", exc)
                time.sleep(STATS_RETRY_DELAY)

    def _write_stats(self, payload: list[Node]) -> None:
        if len(payload) < 2:
            raise ValueError("statistics message needs start and end timestamps")
        start, end = payload[0].address, payload[1].address
        result = self._stats(start, end)
        with self.stats_file.open("a") as handle:
            handle.write(
                _ROW.format(
                    self.epochs,
                    _format_number(result.hops_avg),
                    result.vcpus,
                    result.memory,
                    result.requests,
                )
            )
        self.epochs += 1

    def handle(self, message: Message) -> bool:
        """Apply one message; return False once the experiment has ended."""
        op = message.op
        if op is Operation.START_EMERGENCY:
            if not message.payload:
                raise ValueError("emergency message carries no position")
            point = message.payload[0].position
            self.orchestrator.set_emergency(True, point, EMERGENCY_RADIUS)
        elif op is Operation.STOP_EMERGENCY:
            self.orchestrator.set_emergency(False, (0, 0), 0.0)
        elif op is Operation.END:
            return False
        elif op is Operation.WRITE_STATS:
            self._write_stats(message.payload or [])
        return True