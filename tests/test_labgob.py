import io
from dataclasses import dataclass, field

import pytest

from labkit.labgob import LabDecoder, LabEncoder, error_count, register, register_name


@dataclass
class T1:
    t1int0: int = 0
    t1int1: int = 0
    t1string0: str = ""
    t1string1: str = ""


@dataclass
class T3:
    t3int999: int = 0


@dataclass
class T2:
    t2slice: list[T1] = field(default_factory=list)
    t2map: dict[int, T1] = field(default_factory=dict)
    t2t3: object = None


@dataclass(frozen=True)
class T4:
    yes: int = 0
    _no: int = 0


@dataclass
class Named:
    a: int = 0


@dataclass
class Other:
    b: int = 0


def test_gob_round_trip():
    e0 = error_count()
    register(T3())
    buf = io.BytesIO()
    t1 = T1(t1int1=1, t1string1="6.824")
    t2 = T2(t2slice=[T1(), t1], t2map={99: T1(1, 2, "x", "y")}, t2t3=T3(999))
    enc = LabEncoder(buf)
    enc.encode(0)
    enc.encode(1)
    enc.encode(t1)
    enc.encode(t2)

    dec = LabDecoder(io.BytesIO(buf.getvalue()))
    x0 = dec.decode(int)
    x1 = dec.decode(int)
    d1 = dec.decode(T1)
    d2 = dec.decode(T2)

    assert x0 == 0
    assert x1 == 1
    assert d1.t1int0 == 0
    assert d1.t1int1 == 1
    assert d1.t1string0 == ""
    assert d1.t1string1 == "6.824"
    assert len(d2.t2slice) == 2
    assert d2.t2slice[1].t1int1 == 1
    assert len(d2.t2map) == 1
    assert d2.t2map[99].t1string1 == "y"
    assert d2.t2t3.t3int999 == 999
    assert error_count() == e0


def test_capital_warns_once_about_private_field():
    e0 = error_count()
    buf = io.BytesIO()
    LabEncoder(buf).encode([{T4(yes=1): 3}])
    decoded = LabDecoder(io.BytesIO(buf.getvalue())).decode(list)
    assert error_count() == e0 + 1
    assert decoded == [{T4(yes=1): 3}]


def test_default_warns_on_non_default_target():
    e0 = error_count()

    @dataclass
    class DD:
        x: int = 0

    buf = io.BytesIO()
    LabEncoder(buf).encode(DD())
    reply = DD(99)
    result = LabDecoder(io.BytesIO(buf.getvalue())).decode(reply)
    assert error_count() == e0 + 1
    assert result is reply
    assert reply.x == 0


def test_frame_layout_for_integer():
    buf = io.BytesIO()
    LabEncoder(buf).encode(0)
    assert buf.getvalue() == b"\x00\x00\x00\x09" + b'["int",0]'


def test_round_trip_of_builtin_containers():
    value = {"bytes": b"\x00\xff", "tuple": (1, "a"), "set": {1, 2}, "none": None, "f": 1.5}
    buf = io.BytesIO()
    LabEncoder(buf).encode(value)
    assert LabDecoder(io.BytesIO(buf.getvalue())).decode(dict) == value


def test_decode_without_target_returns_value():
    buf = io.BytesIO()
    LabEncoder(buf).encode([True, "x"])
    assert LabDecoder(io.BytesIO(buf.getvalue())).decode(None) == [True, "x"]


def test_empty_stream_raises_eof():
    with pytest.raises(EOFError):
        LabDecoder(io.BytesIO(b"")).decode(int)


def test_truncated_frame_raises():
    buf = io.BytesIO()
    LabEncoder(buf).encode("hello")
    with pytest.raises(ValueError):
        LabDecoder(io.BytesIO(buf.getvalue()[:-2])).decode(str)


def test_wrong_target_type_raises():
    buf = io.BytesIO()
    LabEncoder(buf).encode("text")
    with pytest.raises(ValueError):
        LabDecoder(io.BytesIO(buf.getvalue())).decode(int)


def test_unencodable_value_raises():
    with pytest.raises(TypeError):
        LabEncoder(io.BytesIO()).encode(object())


def test_register_name_is_used_on_the_wire():
    register_name("named-struct", Named)
    buf = io.BytesIO()
    LabEncoder(buf).encode(Named(5))
    assert b'"named-struct"' in buf.getvalue()
    assert LabDecoder(io.BytesIO(buf.getvalue())).decode(Named) == Named(5)


def test_register_name_conflict_raises():
    register_name("other-struct", Other)
    with pytest.raises(ValueError):
        register_name("other-struct", Named)