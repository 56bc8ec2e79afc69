"""Request and response payloads exchanged by nodes over HTTP."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Mapping


def _checked(cls: type, data: Mapping[str, Any]) -> dict[str, Any]:
    """Validate that ``data`` holds every field of ``cls`` with the right type."""
    values: dict[str, Any] = {}
    for field in fields(cls):
        if field.name not in data:
            raise ValueError(f"missing field: {field.name}")
        value = data[field.name]
        expected = field.type
        if expected in ("int", int):
            ok = isinstance(value, int) and not isinstance(value, bool)
        elif expected in ("bool", bool):
            ok = isinstance(value, bool)
        elif expected in ("str", str):
            ok = isinstance(value, str)
        else:
            ok = True
        if not ok:
            raise ValueError(f"invalid type for field {field.name}: {value!r}")
        values[field.name] = value
    return values


@dataclass
class InvokeFunction:
    """A request to run a function in a fresh instance."""

    function: str
    image: str
    vcpus: int
    memory: int
    payload: str
    emergency: bool
    hops: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "InvokeFunction":
        return cls(**_checked(cls, data))


@dataclass
class Resources:
    """Free resources of a node: CPU count and memory in kB."""

    cpus: int
    memory: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Resources":
        values = _checked(cls, data)
        for name, value in values.items():
            if value < 0:
                raise ValueError(f"negative value for field {name}: {value}")
        return cls(**values)