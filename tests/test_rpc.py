import io
import shutil
import socket
import tempfile
import threading
from pathlib import Path

import pytest

from labkit.labgob import LabDecoder, LabEncoder
from labkit.mr.rpc import (
    CALL_EXAMPLE,
    ExampleArgs,
    ExampleReply,
    GetTaskRes,
    KeyValue,
    RpcError,
    Task,
    TaskConf,
    TaskStatus,
    TaskType,
    call,
    ihash,
)


@pytest.fixture
def socket_dir():
    path = tempfile.mkdtemp(prefix="mr")
    yield Path(path)
    shutil.rmtree(path, ignore_errors=True)


def _serve_once(path, respond):
    listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    listener.bind(str(path))
    listener.listen(1)
    received = []

    def run():
        conn, _ = listener.accept()
        with conn, conn.makefile("rwb") as stream:
            request = LabDecoder(stream).decode(None)
            received.append(request)
            LabEncoder(stream).encode(respond(request))
            stream.flush()
        listener.close()

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return thread, received


def _round_trip(value):
    buffer = io.BytesIO()
    LabEncoder(buffer).encode(value)
    buffer.seek(0)
    return LabDecoder(buffer).decode(None)


def test_ihash_of_empty_string_is_masked_offset_basis():
    assert ihash("") == 0x811C9DC5 & 0x7FFFFFFF


def test_ihash_known_vector():
    # FNV-1a 32 of "a" is 0xe40c292c.
    assert ihash("a") == 0xE40C292C & 0x7FFFFFFF


@pytest.mark.parametrize("key", ["the", "quick", "brown", "fox", "émigré", ""])
def test_ihash_is_deterministic_and_non_negative(key):
    first = ihash(key)
    assert first == ihash(key)
    assert 0 <= first <= 0x7FFFFFFF


def test_task_coerces_plain_ints_to_enums():
    task = Task(status=1, type=2, conf=TaskConf())
    assert task.type is TaskType.SHUTDOWN
    assert task.status is TaskStatus.RUNNING


def test_task_round_trips_through_labgob():
    task = Task(TaskStatus.RUNNING, TaskType.REDUCE, TaskConf(["a", "b"], r_num=1, m_num=-1, rc=3))
    decoded = _round_trip(task)
    assert decoded == task
    assert decoded.type is TaskType.REDUCE


def test_nested_reply_round_trips():
    reply = GetTaskRes(msg="hello", task=Task(conf=TaskConf(["in.txt"], m_num=4, r_num=-1)))
    assert _round_trip(reply) == reply


def test_key_value_round_trips():
    pairs = [KeyValue("a", "1"), KeyValue("b", "2")]
    assert _round_trip(pairs) == pairs


def test_call_returns_server_reply(socket_dir):
    path = socket_dir / "sock"
    thread, received = _serve_once(path, lambda req: ("ok", ExampleReply(y=req[1].x + 1)))
    reply = call(str(path), CALL_EXAMPLE, ExampleArgs(x=99))
    thread.join(timeout=5)
    assert reply == ExampleReply(y=100)
    assert received[0][0] == CALL_EXAMPLE


def test_call_raises_on_server_error(socket_dir):
    path = socket_dir / "sock"
    thread, _ = _serve_once(path, lambda req: ("error", "boom"))
    with pytest.raises(RpcError, match="boom"):
        call(str(path), CALL_EXAMPLE, ExampleArgs(x=1))
    thread.join(timeout=5)


def test_call_without_server_raises_oserror(socket_dir):
    with pytest.raises(OSError):
        call(str(socket_dir / "missing"), CALL_EXAMPLE, ExampleArgs(x=1))