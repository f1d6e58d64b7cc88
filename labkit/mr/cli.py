"""Command-line entry points: the master, a worker and a sequential run."""

from __future__ import annotations

import itertools
import sys
import time
from operator import attrgetter
from pathlib import Path
from typing import Iterable

from .apps import MapFunc, ReduceFunc, load_app
from .master import make_master
from .rpc import DEFAULT_SOCKET, KeyValue, RpcError
from .worker import WorkerClient

_N_REDUCE = 10
_POLL = 1.0
_SEQUENTIAL_OUTPUT = "mr-out-0"


def _usage(text: str) -> int:
    print(text, file=sys.stderr)
    return 1


def run_sequential(
    mapf: MapFunc, reducef: ReduceFunc, filenames: Iterable[str], output: str | Path
) -> Path:
    """Run a whole MapReduce job in this process and write it to ``output``.

    Every file is mapped, the pairs are sorted by key, and each distinct
    key is reduced to one ``key result`` line.
    """
    intermediate: list[KeyValue] = []
    for filename in filenames:
        contents = Path(filename).read_text(encoding="utf-8")
        intermediate.extend(mapf(filename, contents))
    intermediate.sort(key=attrgetter("key"))

    path = Path(output)
    with path.open("w", encoding="utf-8") as out:
        for key, group in itertools.groupby(intermediate, key=attrgetter("key")):
            values = [pair.value for pair in group]
            out.write(f"{key} {reducef(key, values)}\n")
    return path


def master_main(argv: list[str] | None = None) -> int:
    """Serve a job over the input files until it is done."""
    files = sys.argv[1:] if argv is None else list(argv)
    if not files:
        return _usage("Usage: mrmaster inputfiles...")
    with make_master(files, _N_REDUCE, DEFAULT_SOCKET) as master:
        while not master.done():
            time.sleep(_POLL)
        time.sleep(_POLL)
    return 0


def worker_main(argv: list[str] | None = None) -> int:
    """Run a worker for the named application until the master shuts it down."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 1:
        return _usage("Usage: mrworker app")
    try:
        mapf, reducef = load_app(args[0])
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1
    try:
        WorkerClient(DEFAULT_SOCKET).run(mapf, reducef)
    except (OSError, RpcError) as exc:
        print(f"dialing: {exc}", file=sys.stderr)
        return 1
    return 0


def sequential_main(argv: list[str] | None = None) -> int:
    """Run the named application over the input files and write ``mr-out-0``."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) < 2:
        return _usage("Usage: mrsequential app inputfiles...")
    try:
        mapf, reducef = load_app(args[0])
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1
    try:
        run_sequential(mapf, reducef, args[1:], _SEQUENTIAL_OUTPUT)
    except OSError as exc:
        print(f"cannot open {exc.filename}", file=sys.stderr)
        return 1
    return 0