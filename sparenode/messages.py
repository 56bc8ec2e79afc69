"""Control messages exchanged between nodes through the message broker."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sparenode.global_resources import Node


class Operation(Enum):
    """Kind of a control message."""

    START_EMERGENCY = 0
    STOP_EMERGENCY = 1
    ADD_NODES = 2
    ANNOUNCE = 3
    END = 4
    WRITE_STATS = 5


@dataclass
class Message:
    """A control message: an operation and an optional list of nodes."""

    op: Operation
    payload: list[Node] | None = None

    def to_json(self) -> str:
        """Serialize the message; the operation is written by name."""
        payload = None if self.payload is None else [node.to_dict() for node in self.payload]
        return json.dumps({"op": self.op.name, "payload": payload})

    @classmethod
    def from_json(cls, data: str | bytes | bytearray) -> "Message":
        """Parse a message, raising ValueError when it is malformed."""
        if isinstance(data, (bytes, bytearray)):
            data = bytes(data).decode("utf-8")
        document: Any = json.loads(data)
        if not isinstance(document, dict):
            raise ValueError(f"message is not an object: {document!r}")
        if "op" not in document:
            raise ValueError("missing field: op")
        name = document["op"]
        if not isinstance(name, str):
            raise ValueError(f"invalid operation: {name!r}")
        try:
            op = Operation[name]
        except KeyError as exc:
            raise ValueError(f"unknown operation: {name}") from exc

        raw_payload = document.get("payload")
        if raw_payload is None:
            payload = None
        elif isinstance(raw_payload, list):
            payload = [Node.from_dict(item) for item in raw_payload]
        else:
            raise ValueError(f"invalid payload: {raw_payload!r}")
        return cls(op, payload)


def announce(node: Node) -> Message:
    """The message a node sends to register itself."""
    return Message(Operation.ANNOUNCE, [node])