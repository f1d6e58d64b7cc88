"""The MapReduce worker: asks the master for tasks, runs them and reports back."""

from __future__ import annotations

import itertools
import os
import threading
import time
from operator import attrgetter
from pathlib import Path
from typing import Callable, Iterable

from .rpc import (
    CALL_GET_TASK,
    CALL_PING,
    CALL_REGISTER,
    CALL_REPORT,
    DEFAULT_SOCKET,
    REPORT_MAP,
    REPORT_REDUCE,
    GetTaskReq,
    KeyValue,
    Ping,
    Pong,
    RegisterReq,
    ResultReq,
    ResultRes,
    RpcError,
    Task,
    TaskType,
    call,
    ihash,
)

MapFunc = Callable[[str, str], list[KeyValue]]
ReduceFunc = Callable[[str, list[str]], str]

_by_key = attrgetter("key")


class RetryTask(Exception):
    """There was nothing to report; the worker should ask for another task."""


class ShutdownRequested(Exception):
    """The master told the worker to stop."""


def _map_output_name(m_num: int, r_num: int) -> str:
    return f"mr-worker-{m_num}-{r_num}.out"


def _reduce_output_name(r_num: int) -> str:
    return f"mr-out-{r_num}"


def do_map(mapf: MapFunc, task: Task) -> list[str]:
    """Run a map task and return its intermediate file names, one per reduce task.

    Each pair goes to the file of reduce task ``ihash(key) % rc``; every
    file is sorted by key and holds one ``key value`` line per pair.
    """
    conf = task.conf
    filename = conf.source[0]
    contents = Path(filename).read_text(encoding="utf-8")
    names = [_map_output_name(conf.m_num, r_num) for r_num in range(conf.rc)]
    buckets: list[list[KeyValue]] = [[] for _ in names]
    for pair in mapf(filename, contents):
        buckets[ihash(pair.key) % conf.rc].append(pair)
    for name, bucket in zip(names, buckets):
        bucket.sort(key=_by_key)
        with open(name, "w", encoding="utf-8") as out:
            out.writelines(f"{pair.key} {pair.value}\n" for pair in bucket)
    return names


def read_intermediate(sources: Iterable[str]) -> list[KeyValue]:
    """Read the ``key value`` lines of the given intermediate files, in order."""
    pairs: list[KeyValue] = []
    for source in sources:
        with open(source, encoding="utf-8", newline="") as stream:
            for raw in stream:
                line = raw.removesuffix("\n").removesuffix("\r")
                parts = line.split(" ")
                if len(parts) < 2:
                    raise ValueError(f"{source}: malformed line {line!r}")
                pairs.append(KeyValue(parts[0], parts[1]))
    return pairs


def do_reduce(reducef: ReduceFunc, task: Task) -> list[str]:
    """Run a reduce task and return the name of its output file.

    The output is written to a swap file first and renamed into place
    once complete, so a partial result is never visible.
    """
    r_num = task.conf.r_num
    pairs = read_intermediate(task.conf.source)
    pairs.sort(key=_by_key)
    swap = f"mr-out-{int(time.time())}.{r_num}.swap"
    with open(swap, "a", encoding="utf-8") as out:
        for key, group in itertools.groupby(pairs, key=_by_key):
            values = [pair.value for pair in group]
            out.write(f"{key} {reducef(key, values)}\n")
    final = _reduce_output_name(r_num)
    os.replace(swap, final)
    return [final]


def exec_task(
    mapf: MapFunc, reducef: ReduceFunc, task: Task | None, worker_id: int
) -> ResultReq:
    """Run ``task`` and return the report for the master.

    Raises :class:`RetryTask` when there is no task or nothing came out of
    it, and :class:`ShutdownRequested` for a shutdown order.
    """
    if task is None:
        raise RetryTask("no task was handed out")
    code = REPORT_MAP
    outputs: list[str] = []
    if task.type is TaskType.MAP:
        try:
            outputs = do_map(mapf, task)
        except OSError:
            outputs = []
    elif task.type is TaskType.REDUCE:
        outputs = do_reduce(reducef, task)
        code = REPORT_REDUCE
    elif task.type is TaskType.SHUTDOWN:
        raise ShutdownRequested("the master has finished the job")
    if not outputs:
        raise RetryTask("the task produced no output")
    return ResultReq(worker_id=worker_id, code=code, outputs=outputs)


class WorkerClient:
    """A worker talking to the master on ``socket_path``."""

    ping_interval = 10.0

    def __init__(self, socket_path: str = DEFAULT_SOCKET) -> None:
        self.socket_path = socket_path
        self.worker_id = 0

    def register(self) -> int:
        """Register with the master and remember the id it assigns."""
        reply = call(self.socket_path, CALL_REGISTER, RegisterReq())
        self.worker_id = reply.worker_id
        return self.worker_id

    def ping(self) -> Pong:
        """Tell the master this worker is alive."""
        return call(self.socket_path, CALL_PING, Ping(worker_id=self.worker_id))

    def get_task(self) -> Task | None:
        """Ask for a task; None means none arrived in time."""
        reply = call(self.socket_path, CALL_GET_TASK, GetTaskReq(worker_id=self.worker_id))
        return reply.task

    def report(self, result: ResultReq) -> ResultRes:
        """Send a task result to the master."""
        return call(self.socket_path, CALL_REPORT, result)

    def _ping_loop(self, stop: threading.Event) -> None:
        while not stop.wait(self.ping_interval):
            try:
                self.ping()
            except (OSError, RpcError):
                return

    def run(self, mapf: MapFunc, reducef: ReduceFunc) -> None:
        """Register, then run tasks until the master orders a shutdown."""
        self.register()
        stop = threading.Event()
        threading.Thread(target=self._ping_loop, args=(stop,), daemon=True).start()
        try:
            while True:
                task = self.get_task()
                try:
                    result = exec_task(mapf, reducef, task, self.worker_id)
                except RetryTask:
                    continue
                except ShutdownRequested:
                    return
                self.report(result)
        finally:
            stop.set()