"""MapReduce applications: map and reduce function pairs for the workers.

``wc`` counts words and ``indexer`` builds an inverted index. ``crash``
sometimes kills the process or stalls, to exercise recovery, and
``nocrash`` produces the same output without ever doing so. ``mtiming``
and ``rtiming`` report how many workers ran a phase at the same time.
"""

from __future__ import annotations

import itertools
import os
import re
import secrets
import time
from pathlib import Path
from typing import Callable

from .rpc import KeyValue

MapFunc = Callable[[str, str], list[KeyValue]]
ReduceFunc = Callable[[str, list[str]], str]

_CRASH_ODDS = 1000
_CRASH_BELOW = 330
_DELAY_BELOW = 660
_MAX_DELAY_MS = 10 * 1000
_PARALLEL_PAUSE = 1.0


def _words(text: str) -> list[str]:
    """Split ``text`` into maximal runs of letters."""
    return ["".join(run) for is_letter, run in itertools.groupby(text, str.isalpha) if is_letter]


def _byte_length(text: str) -> int:
    return len(text.encode("utf-8"))


def _sorted_join(values: list[str]) -> str:
    # Sorting makes the output deterministic.
    return " ".join(sorted(values))


def _file_summary(filename: str, contents: str) -> list[KeyValue]:
    return [
        KeyValue("a", filename),
        KeyValue("b", str(_byte_length(filename))),
        KeyValue("c", str(_byte_length(contents))),
        KeyValue("d", "xyzzy"),
    ]


# --- word count ---------------------------------------------------------


def wc_map(filename: str, contents: str) -> list[KeyValue]:
    """Emit ``(word, "1")`` for every word in ``contents``; the file name is ignored."""
    return [KeyValue(word, "1") for word in _words(contents)]


def wc_reduce(key: str, values: list[str]) -> str:
    """Return the number of occurrences of the word."""
    return str(len(values))


# --- inverted index -----------------------------------------------------


def indexer_map(document: str, value: str) -> list[KeyValue]:
    """Emit ``(word, document)`` once for each distinct word in ``value``."""
    return [KeyValue(word, document) for word in dict.fromkeys(_words(value))]


def indexer_reduce(key: str, values: list[str]) -> str:
    """Return the document count and the sorted, comma-separated documents."""
    documents = sorted(values)
    return f"{len(documents)} {','.join(documents)}"


# --- crash / nocrash ----------------------------------------------------


def _maybe_crash() -> None:
    roll = secrets.randbelow(_CRASH_ODDS)
    if roll < _CRASH_BELOW:
        os._exit(1)
    elif roll < _DELAY_BELOW:
        time.sleep(secrets.randbelow(_MAX_DELAY_MS) / 1000)


def crash_map(filename: str, contents: str) -> list[KeyValue]:
    """Like :func:`nocrash_map`, but may first exit the process or stall."""
    _maybe_crash()
    return _file_summary(filename, contents)


def crash_reduce(key: str, values: list[str]) -> str:
    """Like :func:`nocrash_reduce`, but may first exit the process or stall."""
    _maybe_crash()
    return _sorted_join(values)


def nocrash_map(filename: str, contents: str) -> list[KeyValue]:
    """Emit the file name, its length, the content length and a marker value."""
    return _file_summary(filename, contents)


def nocrash_reduce(key: str, values: list[str]) -> str:
    """Return the values sorted and joined by spaces."""
    return _sorted_join(values)


# --- parallelism probes -------------------------------------------------


def nparallel(phase: str) -> int:
    """Return how many processes are running ``phase`` in this directory now.

    A marker file ``mr-worker-<phase>-<pid>`` announces this process; the
    other markers whose process is still alive are counted, this one
    included. The call holds its marker for a second before removing it.
    """
    marker = Path(f"mr-worker-{phase}-{os.getpid()}")
    marker.write_bytes(b"x")

    pattern = re.compile(rf"mr-worker-{re.escape(phase)}-([+-]?\d+)")
    running = 0
    for name in os.listdir("."):
        found = pattern.match(name)
        if found is None:
            continue
        try:
            os.kill(int(found.group(1)), 0)
        except (OSError, OverflowError, ValueError):
            continue
        running += 1

    time.sleep(_PARALLEL_PAUSE)
    marker.unlink()
    return running


def mtiming_map(filename: str, contents: str) -> list[KeyValue]:
    """Emit this process's start time and how many map workers ran alongside it."""
    started = time.time()
    pid = os.getpid()
    running = nparallel("map")
    return [
        KeyValue(f"times-{pid}", f"{started:.1f}"),
        KeyValue(f"parallel-{pid}", str(running)),
    ]


def mtiming_reduce(key: str, values: list[str]) -> str:
    """Return the values sorted and joined by spaces."""
    return _sorted_join(values)


def rtiming_map(filename: str, contents: str) -> list[KeyValue]:
    """Emit ten keys, ``a`` to ``j``, each with value ``"1"``."""
    return [KeyValue(key, "1") for key in "abcdefghij"]


def rtiming_reduce(key: str, values: list[str]) -> str:
    """Return how many reduce workers ran at the same time as this one."""
    return str(nparallel("reduce"))


# --- lookup -------------------------------------------------------------

_APPS: dict[str, tuple[MapFunc, ReduceFunc]] = {
    "wc": (wc_map, wc_reduce),
    "indexer": (indexer_map, indexer_reduce),
    "crash": (crash_map, crash_reduce),
    "nocrash": (nocrash_map, nocrash_reduce),
    "mtiming": (mtiming_map, mtiming_reduce),
    "rtiming": (rtiming_map, rtiming_reduce),
}


def load_app(name: str) -> tuple[MapFunc, ReduceFunc]:
    """Return the ``(map, reduce)`` pair of the named application.

    ``name`` may be a bare name such as ``"wc"`` or a path whose file
    stem is one, such as ``"../mrapps/wc.so"``.
    """
    key = Path(name).stem
    try:
        return _APPS[key]
    except KeyError:
        raise ValueError(
            f"cannot load application {name!r}; expecting one of {sorted(_APPS)}"
        ) from None