"""A ready-made model of a key/value store with get, put and append."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .model import Model, Operation, shallow_equal

_GET = 0
_PUT = 1


@dataclass(frozen=True)
class KvInput:
    """A request: ``op`` is 0 for get, 1 for put, anything else for append."""

    op: int
    key: str
    value: str = ""


@dataclass(frozen=True)
class KvOutput:
    """A response; only gets carry a meaningful value."""

    value: str = ""


def _partition_by_key(history: list[Operation]) -> list[list[Operation]]:
    groups: dict[str, list[Operation]] = {}
    for op in history:
        groups.setdefault(op.input.key, []).append(op)
    return list(groups.values())


def _init() -> str:
    # A single key's value: histories are partitioned by key.
    return ""


def _step(state: str, inp: KvInput, out: KvOutput) -> tuple[bool, Any]:
    if inp.op == _GET:
        return out.value == state, state
    if inp.op == _PUT:
        return True, inp.value
    return True, state + inp.value


def kv_model() -> Model:
    """Return the key/value model, partitioned by key."""
    return Model(init=_init, step=_step, partition=_partition_by_key, equal=shallow_equal)