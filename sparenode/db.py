"""Persistence of function instances and per-epoch statistics."""

from __future__ import annotations

import os
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone

_SCHEMA = """
CREATE TABLE IF NOT EXISTS instances (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    functions TEXT NOT NULL,
    kernel TEXT NOT NULL,
    image TEXT NOT NULL,
    vcpus INTEGER NOT NULL,
    memory INTEGER NOT NULL,
    ip TEXT NOT NULL,
    port INTEGER NOT NULL,
    hops INTEGER NOT NULL,
    status TEXT NOT NULL,
    created_at TEXT NOT NULL
)
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _format_time(moment: datetime) -> str:
    return moment.isoformat(sep=" ")


def connect(url: str | None = None) -> sqlite3.Connection:
    """Open the database and create its tables.

    Without ``url`` the DATABASE_URL environment variable is used.
    """
    if url is None:
        url = os.environ.get("DATABASE_URL")
        if not url:
            raise RuntimeError("DATABASE_URL must be set")
    for prefix in ("sqlite://", "sqlite:"):
        if url.startswith(prefix):
            url = url[len(prefix):]
            break
    conn = sqlite3.connect(url or ":memory:", check_same_thread=False)
    conn.row_factory = sqlite3.Row
    with conn:
        conn.execute(_SCHEMA)
    return conn


@dataclass
class Instance:
    """A function instance as recorded in the database."""

    functions: str
    kernel: str
    image: str
    vcpus: int
    memory: int
    hops: int
    ip: str
    port: int
    id: int = 0
    status: str = "unknown"
    created_at: datetime = field(default_factory=_utcnow)

    def _values(self) -> tuple:
        return (
            self.functions,
            self.kernel,
            self.image,
            self.vcpus,
            self.memory,
            self.ip,
            self.port,
            self.hops,
            self.status,
            _format_time(self.created_at),
        )

    def insert(self, conn: sqlite3.Connection) -> None:
        """Store the instance and record the id it was given."""
        with conn:
            cursor = conn.execute(
                "INSERT INTO instances (functions, kernel, image, vcpus, memory, ip, port,"
                " hops, status, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                self._values(),
            )
        self.id = cursor.lastrowid

    def update(self, conn: sqlite3.Connection) -> None:
        with conn:
            conn.execute(
                "UPDATE instances SET functions = ?, kernel = ?, image = ?, vcpus = ?,"
                " memory = ?, ip = ?, port = ?, hops = ?, status = ?, created_at = ?"
                " WHERE id = ?",
                (*self._values(), self.id),
            )

    def delete(self, conn: sqlite3.Connection) -> None:
        with conn:
            conn.execute("DELETE FROM instances WHERE id = ?", (self.id,))

    @classmethod
    def _from_row(cls, row: sqlite3.Row) -> "Instance":
        return cls(
            functions=row["functions"],
            kernel=row["kernel"],
            image=row["image"],
            vcpus=row["vcpus"],
            memory=row["memory"],
            hops=row["hops"],
            ip=row["ip"],
            port=row["port"],
            id=row["id"],
            status=row["status"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @classmethod
    def list(cls, conn: sqlite3.Connection) -> list["Instance"]:
        rows = conn.execute("SELECT * FROM instances").fetchall()
        return [cls._from_row(row) for row in rows]

    @classmethod
    def get_by_id(cls, id: int, conn: sqlite3.Connection) -> "Instance | None":
        row = conn.execute("SELECT * FROM instances WHERE id = ?", (id,)).fetchone()
        return None if row is None else cls._from_row(row)


def get_list(conn: sqlite3.Connection) -> list[Instance]:
    """All instances in the database."""
    return Instance.list(conn)


@dataclass
class Stats:
    """Aggregates over the terminated instances of one epoch."""

    hops_avg: float
    vcpus: int
    memory: int
    requests: int


def stats(conn: sqlite3.Connection, start_timestamp: str, end_timestamp: str) -> Stats:
    """Aggregate terminated instances created between the two timestamps."""
    row = conn.execute(
        """
        SELECT
            COALESCE(AVG(hops), 0.0) AS hops_avg,
            COALESCE(SUM(vcpus), 0) AS vcpus_sum,
            COALESCE(SUM(memory), 0) AS memory_sum,
            COALESCE(COUNT(id), 0) AS requests
        FROM instances
        WHERE created_at BETWEEN ? AND ?
            AND status = 'terminated'
        """,
        (start_timestamp, end_timestamp),
    ).fetchone()
    return Stats(
        hops_avg=float(row["hops_avg"]),
        vcpus=int(row["vcpus_sum"]),
        memory=int(row["memory_sum"]),
        requests=int(row["requests"]),
    )