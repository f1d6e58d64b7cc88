"""Linearizability checking of operation and event histories."""

from __future__ import annotations

import queue
import threading
from typing import Any, Iterable, NamedTuple

from .bitset import Bitset
from .model import Event, EventKind, Model, Operation


class _Entry(NamedTuple):
    is_return: bool
    value: Any
    id: int
    time: int


class _Node:
    """Element of the doubly linked history; a call knows its return."""

    __slots__ = ("value", "match", "id", "next", "prev")

    def __init__(self, value: Any, match: _Node | None, node_id: int) -> None:
        self.value = value
        self.match = match
        self.id = node_id
        self.next: _Node | None = None
        self.prev: _Node | None = None


def _make_entries(history: Iterable[Operation]) -> list[_Entry]:
    entries: list[_Entry] = []
    for op_id, op in enumerate(history):
        entries.append(_Entry(False, op.input, op_id, op.call))
        entries.append(_Entry(True, op.output, op_id, op.ret))
    entries.sort(key=lambda entry: entry.time)
    return entries


def _renumber(events: Iterable[Event]) -> list[Event]:
    mapping: dict[int, int] = {}
    renumbered = []
    for event in events:
        new_id = mapping.setdefault(event.id, len(mapping))
        renumbered.append(Event(event.kind, event.value, new_id))
    return renumbered


def _convert_events(events: Iterable[Event]) -> list[_Entry]:
    return [
        _Entry(event.kind is EventKind.RETURN, event.value, event.id, -1) for event in events
    ]


def _insert_before(node: _Node, mark: _Node | None) -> _Node:
    if mark is not None:
        before = mark.prev
        mark.prev = node
        node.next = mark
        if before is not None:
            node.prev = before
            before.next = node
    return node


def _length(node: _Node | None) -> int:
    count = 0
    while node is not None:
        node = node.next
        count += 1
    return count


def _make_linked(entries: list[_Entry]) -> _Node | None:
    root: _Node | None = None
    returns: dict[int, _Node] = {}
    for entry in reversed(entries):
        if entry.is_return:
            node = _Node(entry.value, None, entry.id)
            returns[entry.id] = node
        else:
            node = _Node(entry.value, returns.get(entry.id), entry.id)
        _insert_before(node, root)
        root = node
    return root


def _lift(entry: _Node) -> None:
    entry.prev.next = entry.next
    entry.next.prev = entry.prev
    match = entry.match
    match.prev.next = match.next
    if match.next is not None:
        match.next.prev = match.prev


def _unlift(entry: _Node) -> None:
    match = entry.match
    match.prev.next = match
    if match.next is not None:
        match.next.prev = match
    entry.prev.next = entry
    entry.next.prev = entry


def _cache_contains(
    model: Model, cache: dict[int, list[tuple[Bitset, Any]]], linearized: Bitset, state: Any
) -> bool:
    return any(
        linearized == seen and model.equal(state, seen_state)
        for seen, seen_state in cache.get(linearized.fingerprint(), ())
    )


def _check_single(model: Model, subhistory: _Node | None, kill: threading.Event) -> bool:
    linearized = Bitset(_length(subhistory) // 2)
    cache: dict[int, list[tuple[Bitset, Any]]] = {}
    calls: list[tuple[_Node, Any]] = []

    state = model.init()
    head = _insert_before(_Node(None, None, -1), subhistory)
    entry = subhistory
    while head.next is not None:
        if kill.is_set():
            return False
        if entry.match is not None:
            ok, new_state = model.step(state, entry.value, entry.match.value)
            if ok:
                new_linearized = linearized.clone().set(entry.id)
                if not _cache_contains(model, cache, new_linearized, new_state):
                    cache.setdefault(new_linearized.fingerprint(), []).append(
                        (new_linearized, new_state)
                    )
                    calls.append((entry, state))
                    state = new_state
                    linearized.set(entry.id)
                    _lift(entry)
                    entry = head.next
                else:
                    entry = entry.next
            else:
                entry = entry.next
        else:
            if not calls:
                return False
            entry, state = calls.pop()
            linearized.clear(entry.id)
            _unlift(entry)
            entry = entry.next
    return True


def _run(model: Model, histories: list[_Node | None], timeout: float | None) -> bool:
    if not timeout or timeout <= 0:
        kill = threading.Event()
        return all(_check_single(model, history, kill) for history in histories)

    kill = threading.Event()
    results: queue.SimpleQueue = queue.SimpleQueue()

    def work() -> None:
        try:
            results.put(all(_check_single(model, history, kill) for history in histories))
        except BaseException as exc:  # handed to the waiting caller
            results.put(exc)

    threading.Thread(target=work, daemon=True).start()
    try:
        outcome = results.get(timeout=timeout)
    except queue.Empty:
        # Timed out: nothing failed so far, so the answer may be a false positive.
        return True
    finally:
        kill.set()
    if isinstance(outcome, BaseException):
        raise outcome
    return outcome


def check_operations(
    model: Model, history: Iterable[Operation], timeout: float | None = None
) -> bool:
    """Return whether ``history`` is linearizable under ``model``.

    ``timeout`` is in seconds; None or 0 means no limit. When the limit is
    reached the result is True, which may be a false positive.
    """
    partitions = model.partition(list(history))
    linked = [_make_linked(_make_entries(part)) for part in partitions]
    return _run(model, linked, timeout)


def check_events(model: Model, history: Iterable[Event], timeout: float | None = None) -> bool:
    """Return whether an event history is linearizable under ``model``.

    ``timeout`` behaves as in :func:`check_operations`.
    """
    partitions = model.partition_event(list(history))
    linked = [_make_linked(_convert_events(_renumber(part))) for part in partitions]
    return _run(model, linked, timeout)