"""The MapReduce master: hands out map and reduce tasks and tracks results."""

from __future__ import annotations

import contextlib
import os
import socketserver
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable

from ..labgob import LabDecoder, LabEncoder
from .rpc import (
    DEFAULT_SOCKET,
    REPORT_FAILED,
    REPORT_MAP,
    REPORT_REDUCE,
    ExampleArgs,
    ExampleReply,
    GetTaskReq,
    GetTaskRes,
    Ping,
    Pong,
    RegisterReq,
    RegisterRes,
    ResultReq,
    ResultRes,
    Task,
    TaskConf,
    TaskStatus,
    TaskType,
)

_SERVICE = "Master"
_SHUTDOWN_MSG = "shut down!!!"
_IDLE = 0
_BUSY = 1


@dataclass
class _WorkerSession:
    worker_id: int
    status: int = _IDLE
    task: Task | None = None
    last_ping: float = field(default_factory=time.time)
    pinged: threading.Event = field(default_factory=threading.Event)


def _shutdown_reply() -> GetTaskRes:
    return GetTaskRes(
        msg=_SHUTDOWN_MSG,
        task=Task(TaskStatus.PENDING, TaskType.SHUTDOWN, TaskConf(source=[])),
    )


class _RpcServer(socketserver.ThreadingUnixStreamServer):
    daemon_threads = True
    master: Master


class _RpcHandler(socketserver.StreamRequestHandler):
    def handle(self) -> None:
        try:
            rpcname, args = LabDecoder(self.rfile).decode(None)
        except (EOFError, ValueError, TypeError):
            return
        try:
            response = ("ok", self.server.master._dispatch(rpcname, args))
        except Exception as exc:  # reported back to the caller
            response = ("error", str(exc))
        LabEncoder(self.wfile).encode(response)


class Master:
    """Coordinates one MapReduce job over ``files`` with ``n_reduce`` reduce tasks.

    Map tasks are queued at construction. When every map result has been
    reported, one reduce task per partition is queued. A worker that does
    not ping within ``session_timeout`` seconds has its task put back in
    the queue; ``get_task`` waits at most ``task_wait`` seconds for work.
    """

    task_wait = 5.0
    session_timeout = 10.0

    def __init__(self, files: list[str], n_reduce: int, socket_path: str = DEFAULT_SOCKET) -> None:
        self.socket_path = socket_path
        self._n_map = len(files)
        self._n_reduce = n_reduce
        # One row of intermediate file names per map task, plus a status row.
        self._matrix: list[list[str]] = [[""] * n_reduce for _ in range(len(files) + 1)]
        self._maps_done = 0
        self._next_worker_id = 0
        self._lock = threading.Lock()
        self._cond = threading.Condition(self._lock)
        self._pool: deque[Task] = deque()
        self._pool_closed = False
        self._workers: dict[int, _WorkerSession] = {}
        self._closed = threading.Event()
        self._server: _RpcServer | None = None
        for num, filename in enumerate(files):
            self._pool.append(
                Task(
                    TaskStatus.PENDING,
                    TaskType.MAP,
                    TaskConf(source=[filename], r_num=-1, m_num=num, rc=n_reduce),
                )
            )

    @property
    def _status_row(self) -> list[str]:
        return self._matrix[self._n_map]

    def _enqueue(self, task: Task) -> None:
        # Caller holds the lock. Once the job is finished nothing is requeued.
        if self._pool_closed:
            return
        self._pool.append(task)
        self._cond.notify_all()

    def example(self, args: ExampleArgs) -> ExampleReply:
        """Answer with ``args.x + 1``."""
        return ExampleReply(y=args.x + 1)

    def register_worker(self, args: RegisterReq) -> RegisterRes:
        """Give a new worker an id and start watching its pings."""
        with self._lock:
            worker_id = self._next_worker_id
            self._next_worker_id += 1
            session = _WorkerSession(worker_id)
            self._workers[worker_id] = session
        threading.Thread(target=self._watch, args=(session,), daemon=True).start()
        return RegisterRes(worker_id=worker_id)

    def get_task(self, args: GetTaskReq) -> GetTaskRes:
        """Hand the worker a task, nothing if none came in time, or a shutdown order."""
        with self._cond:
            session = self._workers.get(args.worker_id)
            if session is None:
                return _shutdown_reply()
            self._cond.wait_for(lambda: self._pool or self._pool_closed, timeout=self.task_wait)
            if self._workers.get(args.worker_id) is not session:
                return _shutdown_reply()
            if self._pool:
                task = self._pool.popleft()
                task.status = TaskStatus.RUNNING
                session.status = _BUSY
                session.task = task
                return GetTaskRes(task=task)
            if self._pool_closed:
                del self._workers[args.worker_id]
                return _shutdown_reply()
            return GetTaskRes()

    def report_result(self, args: ResultReq) -> ResultRes:
        """Record a map or reduce result, or requeue the task of a failed worker."""
        if not args.outputs:
            return ResultRes(code=1, msg="The report cannot be empty")
        with self._cond:
            session = self._workers.get(args.worker_id)
            if session is None:
                return ResultRes(code=1, msg="unregistered")
            if args.code in (REPORT_MAP, REPORT_REDUCE):
                task = session.task
                if task is None:
                    return ResultRes(code=1, msg=_SHUTDOWN_MSG)
                if args.code == REPORT_MAP:
                    self._record_map_output(task.conf.m_num, args.outputs)
                else:
                    self._status_row[task.conf.r_num] = "done"
                task.status = TaskStatus.DONE
            elif args.code == REPORT_FAILED:
                task = session.task
                del self._workers[args.worker_id]
                if task is not None:
                    task.status = TaskStatus.PENDING
                    self._enqueue(task)
                return ResultRes(code=0)
            else:
                return ResultRes(code=1, msg=f"Code {args.code} do not recognize")
            session.status = _IDLE
            session.task = None
            session.last_ping = time.time()
            return ResultRes(code=0)

    def ping_pong(self, args: Ping) -> Pong:
        """Note that the worker is alive."""
        with self._lock:
            session = self._workers.get(args.worker_id)
            if session is not None:
                session.last_ping = time.time()
                session.pinged.set()
        return Pong(code=0)

    def _record_map_output(self, m_index: int, sources: list[str]) -> None:
        # Caller holds the lock.
        self._matrix[m_index] = list(sources)
        self._maps_done += 1
        if self._maps_done != self._n_map:
            return
        for j in range(self._n_reduce):
            column = [row[j] for row in self._matrix[: self._n_map]]
            self._enqueue(
                Task(
                    TaskStatus.PENDING,
                    TaskType.REDUCE,
                    TaskConf(source=column, r_num=j, m_num=-1, rc=self._n_reduce),
                )
            )
            self._status_row[j] = "created"

    def _watch(self, session: _WorkerSession) -> None:
        while not self._closed.is_set():
            if session.pinged.wait(self.session_timeout):
                session.pinged.clear()
                continue
            if self._closed.is_set():
                return
            with self._cond:
                if self._workers.get(session.worker_id) is not session:
                    return
                # The session stays registered; only its task is taken back.
                task, session.task = session.task, None
                if task is not None:
                    task.status = TaskStatus.PENDING
                    self._enqueue(task)

    def _dispatch(self, rpcname: str, args: Any) -> Any:
        handlers: dict[str, Callable[[Any], Any]] = {
            "example": self.example,
            "register_worker": self.register_worker,
            "get_task": self.get_task,
            "report_result": self.report_result,
            "ping_pong": self.ping_pong,
        }
        service, _, method = rpcname.rpartition(".")
        if service != _SERVICE or method not in handlers:
            raise LookupError(f"unknown method {rpcname!r}; expecting one of {sorted(handlers)}")
        return handlers[method](args)

    def serve(self) -> None:
        """Start answering RPCs on ``socket_path`` in a background thread."""
        if self._server is not None:
            raise RuntimeError("master is already serving")
        with contextlib.suppress(FileNotFoundError):
            os.remove(self.socket_path)
        server = _RpcServer(self.socket_path, _RpcHandler)
        server.master = self
        self._server = server
        threading.Thread(target=server.serve_forever, daemon=True).start()

    def done(self) -> bool:
        """Return whether the whole job has finished.

        Once every reduce task is done and the queue is empty, the queue is
        closed so that idle workers are told to shut down.
        """
        with self._cond:
            finished = sum(1 for state in self._status_row if state == "done")
            if finished != self._n_reduce or self._pool:
                return False
            if not self._pool_closed:
                self._pool_closed = True
                self._cond.notify_all()
            return all(session.task is None for session in self._workers.values())

    def close(self) -> None:
        """Stop serving, remove the socket and stop watching workers."""
        self._closed.set()
        with self._lock:
            sessions = list(self._workers.values())
        for session in sessions:
            session.pinged.set()
        server, self._server = self._server, None
        if server is not None:
            server.shutdown()
            server.server_close()
            with contextlib.suppress(FileNotFoundError):
                os.remove(self.socket_path)

    def __enter__(self) -> Master:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def make_master(files: list[str], n_reduce: int, socket_path: str = DEFAULT_SOCKET) -> Master:
    """Create a master for ``files`` and start serving RPCs."""
    master = Master(files, n_reduce, socket_path)
    master.serve()
    return master