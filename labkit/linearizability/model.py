"""Histories and the model a linearizability check runs against."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class Operation:
    """One completed operation: input, call time, output and return time."""

    input: Any
    call: int
    output: Any
    ret: int


class EventKind(enum.Enum):
    """Whether an event is an invocation or a response."""

    CALL = "call"
    RETURN = "return"


@dataclass(frozen=True)
class Event:
    """A call or return event; matching events share an id."""

    kind: EventKind
    value: Any
    id: int


def no_partition(history: list[Operation]) -> list[list[Operation]]:
    """Treat the whole history as one partition."""
    return [history]


def no_partition_event(history: list[Event]) -> list[list[Event]]:
    """Treat the whole event history as one partition."""
    return [history]


def shallow_equal(state1: Any, state2: Any) -> bool:
    """Compare two states with ``==``."""
    return state1 == state2


@dataclass
class Model:
    """A sequential specification.

    ``step(state, input, output)`` returns ``(ok, new_state)`` and must not
    mutate ``state``. The partition functions split a history into parts
    that are linearizable exactly when the whole is. Missing partition and
    equality functions fall back to the defaults above.
    """

    init: Callable[[], Any]
    step: Callable[[Any, Any, Any], tuple[bool, Any]]
    partition: Callable[[list[Operation]], list[list[Operation]]] | None = None
    partition_event: Callable[[list[Event]], list[list[Event]]] | None = None
    equal: Callable[[Any, Any], bool] | None = None

    def __post_init__(self) -> None:
        if self.partition is None:
            self.partition = no_partition
        if self.partition_event is None:
            self.partition_event = no_partition_event
        if self.equal is None:
            self.equal = shallow_equal