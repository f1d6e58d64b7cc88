"""Value encoding for RPC and persistence that warns about common mistakes.

Values are written as length-prefixed JSON frames. Dataclass fields whose
names start with an underscore are private: they are not transmitted, and
encoding or decoding a type that has them prints a warning. Decoding into
an object that already holds non-default values prints a warning too.
Both kinds of warning are counted; see :func:`error_count`.
"""

from __future__ import annotations

import dataclasses
import json
import threading
import typing
from typing import Any, BinaryIO

_HEADER_SIZE = 4
_MAX_DEFAULT_DEPTH = 3

_lock = threading.Lock()
_error_count = 0
_checked: set[type] = set()
_names_by_type: dict[type, str] = {}
_types_by_name: dict[str, type] = {}


def error_count() -> int:
    """Return how many warnings have been raised so far."""
    with _lock:
        return _error_count


def _is_private(name: str) -> bool:
    return name.startswith("_")


def _default_name(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


def _register_type(cls: type, name: str | None) -> str:
    with _lock:
        existing = _names_by_type.get(cls)
        if name is None:
            if existing is not None:
                return existing
            name = _default_name(cls)
        elif existing is not None and existing != name:
            raise ValueError(
                f"labgob: type {cls.__qualname__} registered as both {existing!r} and {name!r}"
            )
        other = _types_by_name.get(name)
        if other is not None and other is not cls:
            raise ValueError(f"labgob: name {name!r} already registered for another type")
        _names_by_type[cls] = name
        _types_by_name[name] = cls
        return name


def register(value: Any) -> None:
    """Make a dataclass type (given as class or instance) known to decoders."""
    _check_value(value)
    cls = value if isinstance(value, type) else type(value)
    if dataclasses.is_dataclass(cls):
        _register_type(cls, None)


def register_name(name: str, value: Any) -> None:
    """Make a dataclass type known to decoders under an explicit name."""
    _check_value(value)
    cls = value if isinstance(value, type) else type(value)
    if dataclasses.is_dataclass(cls):
        _register_type(cls, name)


# --- type checks -------------------------------------------------------


def _check_annotation(hint: Any) -> None:
    origin = typing.get_origin(hint)
    if origin is not None:
        for arg in typing.get_args(hint):
            _check_annotation(arg)
        return
    if isinstance(hint, type) and dataclasses.is_dataclass(hint):
        _check_struct(hint)


def _check_struct(cls: type) -> None:
    global _error_count
    with _lock:
        if cls in _checked:
            return
        _checked.add(cls)
    for field in dataclasses.fields(cls):
        if _is_private(field.name):
            print(
                f"labgob error: private field {field.name} of {cls.__name__} "
                "is not transmitted in RPC or persist/snapshot"
            )
            with _lock:
                _error_count += 1
        # Annotations kept as text cannot be followed further.
        if not isinstance(field.type, str):
            _check_annotation(field.type)


def _check_value(value: Any) -> None:
    if typing.get_origin(value) is not None or isinstance(value, type):
        _check_annotation(value)
        return
    if dataclasses.is_dataclass(value):
        _check_struct(type(value))
        for field in dataclasses.fields(value):
            if not _is_private(field.name):
                _check_value(getattr(value, field.name))
    elif isinstance(value, (list, tuple, set, frozenset)):
        for item in value:
            _check_value(item)
    elif isinstance(value, dict):
        for key, item in value.items():
            _check_value(key)
            _check_value(item)


def _check_default(value: Any, depth: int = 1, name: str = "") -> None:
    global _error_count
    if value is None or depth > _MAX_DEFAULT_DEPTH:
        return
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        for field in dataclasses.fields(value):
            path = f"{name}.{field.name}" if name else field.name
            _check_default(getattr(value, field.name), depth + 1, path)
        return
    if isinstance(value, str):
        non_default = value != ""
    elif isinstance(value, (int, float)):
        non_default = value != 0
    else:
        return
    if non_default:
        with _lock:
            if _error_count < 1:
                what = name or type(value).__name__
                print(
                    f"labgob warning: Decoding into a non-default variable/field {what} may not work"
                )
            _error_count += 1


# --- wire format -------------------------------------------------------


def _to_wire(value: Any) -> list:
    if value is None:
        return ["none"]
    if isinstance(value, bool):
        return ["bool", value]
    if isinstance(value, int):
        return ["int", int(value)]
    if isinstance(value, float):
        return ["float", value]
    if isinstance(value, str):
        return ["str", value]
    if isinstance(value, (bytes, bytearray)):
        return ["bytes", bytes(value).hex()]
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        name = _register_type(type(value), None)
        fields = {
            field.name: _to_wire(getattr(value, field.name))
            for field in dataclasses.fields(value)
            if not _is_private(field.name)
        }
        return ["struct", name, fields]
    if isinstance(value, list):
        return ["list", [_to_wire(item) for item in value]]
    if isinstance(value, tuple):
        return ["tuple", [_to_wire(item) for item in value]]
    if isinstance(value, (set, frozenset)):
        return ["set", [_to_wire(item) for item in value]]
    if isinstance(value, dict):
        return ["dict", [[_to_wire(k), _to_wire(v)] for k, v in value.items()]]
    raise TypeError(f"labgob: cannot encode value of type {type(value).__name__}")


def _build_struct(cls: type, data: dict[str, Any]) -> Any:
    init_args: dict[str, Any] = {}
    late: dict[str, Any] = {}
    for field in dataclasses.fields(cls):
        if field.name in data:
            (init_args if field.init else late)[field.name] = data[field.name]
    obj = cls(**init_args)
    for key, item in late.items():
        object.__setattr__(obj, key, item)
    return obj


def _from_wire(node: Any, fallback: type | None = None) -> Any:
    if not isinstance(node, list) or not node:
        raise ValueError("labgob: malformed data")
    tag = node[0]
    if tag == "none":
        return None
    if tag in ("bool", "int", "float", "str"):
        return node[1]
    if tag == "bytes":
        return bytes.fromhex(node[1])
    if tag == "list":
        return [_from_wire(item) for item in node[1]]
    if tag == "tuple":
        return tuple(_from_wire(item) for item in node[1])
    if tag == "set":
        return {_from_wire(item) for item in node[1]}
    if tag == "dict":
        return {_from_wire(k): _from_wire(v) for k, v in node[1]}
    if tag == "struct":
        name, raw_fields = node[1], node[2]
        with _lock:
            cls = _types_by_name.get(name)
        if cls is None:
            if fallback is None:
                raise ValueError(f"labgob: type {name!r} is not registered")
            cls = fallback
        return _build_struct(cls, {key: _from_wire(item) for key, item in raw_fields.items()})
    raise ValueError(f"labgob: unknown tag {tag!r}")


def _fits(value: Any, expected: type | None) -> bool:
    if expected is None or not isinstance(expected, type) or expected is object:
        return True
    if expected is float and isinstance(value, int):
        return True
    return isinstance(value, expected)


class LabEncoder:
    """Writes values to a binary stream, one frame per value."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream

    def encode(self, value: Any) -> None:
        """Check ``value`` for private fields and write it to the stream."""
        _check_value(value)
        payload = json.dumps(_to_wire(value), separators=(",", ":")).encode("utf-8")
        self._stream.write(len(payload).to_bytes(_HEADER_SIZE, "big") + payload)


class LabDecoder:
    """Reads values written by :class:`LabEncoder` from a binary stream."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream

    def _read_frame(self) -> bytes:
        header = self._stream.read(_HEADER_SIZE)
        if not header:
            raise EOFError("labgob: no more values")
        if len(header) < _HEADER_SIZE:
            raise ValueError("labgob: truncated frame header")
        size = int.from_bytes(header, "big")
        payload = self._stream.read(size)
        if len(payload) < size:
            raise ValueError("labgob: truncated frame")
        return payload

    def decode(self, target: Any) -> Any:
        """Read the next value.

        ``target`` is a type the value must have, an existing dataclass
        instance whose public fields are overwritten in place, or None.
        The decoded value (or the updated instance) is returned.
        """
        _check_value(target)
        is_type = typing.get_origin(target) is not None or isinstance(target, type)
        if target is None:
            expected = None
        elif typing.get_origin(target) is not None:
            origin = typing.get_origin(target)
            expected = origin if isinstance(origin, type) else None
        elif is_type:
            expected = target
        else:
            _check_default(target)
            expected = type(target)

        fallback = expected if expected is not None and dataclasses.is_dataclass(expected) else None
        try:
            value = _from_wire(json.loads(self._read_frame().decode("utf-8")), fallback)
        except (IndexError, KeyError, TypeError, AttributeError) as exc:
            raise ValueError("labgob: malformed data") from exc

        if not _fits(value, expected):
            raise ValueError(
                f"labgob: cannot decode {type(value).__name__} into {expected.__name__}"
            )
        if target is not None and not is_type and dataclasses.is_dataclass(target):
            for field in dataclasses.fields(target):
                if not _is_private(field.name):
                    object.__setattr__(target, field.name, getattr(value, field.name))
            return target
        return value