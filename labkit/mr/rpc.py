"""Messages exchanged between the MapReduce master and its workers.

Requests travel over a Unix-domain stream socket. The client sends one
labgob frame holding ``(rpcname, args)``; the server answers with one
frame holding ``("ok", reply)`` or ``("error", message)``.
"""

from __future__ import annotations

import enum
import socket
from dataclasses import dataclass, field
from typing import Any

from ..labgob import LabDecoder, LabEncoder, register

DEFAULT_SOCKET = "mr-socket"

CALL_EXAMPLE = "Master.example"
CALL_REGISTER = "Master.register_worker"
CALL_PING = "Master.ping_pong"
CALL_GET_TASK = "Master.get_task"
CALL_REPORT = "Master.report_result"

REPORT_MAP = 0
REPORT_REDUCE = 1
REPORT_FAILED = 2

_FNV_OFFSET = 0x811C9DC5
_FNV_PRIME = 0x01000193


class RpcError(RuntimeError):
    """The server received the call but could not carry it out."""


class TaskType(enum.IntEnum):
    """What a worker is asked to do."""

    MAP = 0
    REDUCE = 1
    SHUTDOWN = 2
    RETRY = 3


class TaskStatus(enum.IntEnum):
    """Where a task is in its life."""

    PENDING = 0
    RUNNING = 1
    DONE = 2


@dataclass
class KeyValue:
    """One key/value pair emitted by a map function."""

    key: str
    value: str


@dataclass
class TaskConf:
    """Inputs and numbering of a task.

    ``m_num`` is the map task number (-1 for reduce tasks), ``r_num`` the
    reduce task number (-1 for map tasks) and ``rc`` the number of reduce
    tasks in the job.
    """

    source: list[str] = field(default_factory=list)
    r_num: int = 0
    m_num: int = 0
    rc: int = 0


@dataclass
class Task:
    """A unit of work handed to a worker."""

    status: TaskStatus = TaskStatus.PENDING
    type: TaskType = TaskType.MAP
    conf: TaskConf = field(default_factory=TaskConf)

    def __post_init__(self) -> None:
        self.status = TaskStatus(self.status)
        self.type = TaskType(self.type)


@dataclass
class ExampleArgs:
    x: int = 0


@dataclass
class ExampleReply:
    y: int = 0


@dataclass
class RegisterReq:
    pass


@dataclass
class RegisterRes:
    worker_id: int = 0


@dataclass
class GetTaskReq:
    worker_id: int = 0


@dataclass
class GetTaskRes:
    code: int = 0
    msg: str = ""
    task: Task | None = None


@dataclass
class ResultReq:
    """A worker's report; ``code`` is REPORT_MAP, REPORT_REDUCE or REPORT_FAILED."""

    worker_id: int = 0
    code: int = REPORT_MAP
    msg: str = ""
    outputs: list[str] = field(default_factory=list)


@dataclass
class ResultRes:
    code: int = 0
    msg: str = ""


@dataclass
class Ping:
    worker_id: int = 0


@dataclass
class Pong:
    code: int = 0


for _message_type in (
    KeyValue,
    TaskConf,
    Task,
    ExampleArgs,
    ExampleReply,
    RegisterReq,
    RegisterRes,
    GetTaskReq,
    GetTaskRes,
    ResultReq,
    ResultRes,
    Ping,
    Pong,
):
    register(_message_type)


def ihash(key: str) -> int:
    """Return the 32-bit FNV-1a hash of ``key`` with the top bit cleared.

    Use ``ihash(key) % n_reduce`` to pick the reduce task for a key.
    """
    value = _FNV_OFFSET
    for byte in key.encode("utf-8"):
        value = ((value ^ byte) * _FNV_PRIME) & 0xFFFFFFFF
    return value & 0x7FFFFFFF


def call(socket_path: str, rpcname: str, args: Any) -> Any:
    """Send one RPC to the server listening on ``socket_path`` and return its reply.

    Connection failures raise :class:`OSError`; a call the server rejects
    raises :class:`RpcError`.
    """
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
        sock.connect(socket_path)
        with sock.makefile("rwb") as stream:
            LabEncoder(stream).encode((rpcname, args))
            stream.flush()
            status, payload = LabDecoder(stream).decode(None)
    if status != "ok":
        raise RpcError(payload)
    return payload