"""Serializer registry for protocol values.

Values travel as text: "<type id>:<payload>". Primitive types are registered
up front; protocol-specific code registers its own types. A payload is
always one line: strings escape backslash, newline and carriage return.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Serializer:
    type_id: str
    cls: type
    write: Callable[[Any], str]
    read: Callable[[str], Any]


_ESCAPES = {"\\": "\\\\", "\n": "\\n", "\r": "\\r"}
_UNESCAPES = {"\\": "\\", "n": "\n", "r": "\r"}


def _write_string(value: str) -> str:
    return "".join(_ESCAPES.get(c, c) for c in value)


def _read_string(payload: str) -> str:
    chars = []
    it = iter(payload)
    for c in it:
        if c != "\\":
            chars.append(c)
            continue
        escaped = next(it, "")
        if escaped not in _UNESCAPES:
            raise ValueError(f"Bad escape in string payload: {payload!r}")
        chars.append(_UNESCAPES[escaped])
    return "".join(chars)


def _read_bool(payload: str) -> bool:
    if payload not in ("true", "false"):
        raise ValueError(f"Not a bool: {payload!r}")
    return payload == "true"


class Serializers:
    """Maps Python types to wire type ids and back."""

    def __init__(self):
        self._by_type: dict[type, Serializer] = {}
        self._by_id: dict[str, Serializer] = {}
        self.register(str, "string", _write_string, _read_string)
        self.register(bool, "bool", lambda v: "true" if v else "false", _read_bool)
        self.register(int, "int", str, int)
        self.register(float, "double", repr, float)

    def register(
        self,
        cls: type,
        type_id: str,
        write: Callable[[Any], str],
        read: Callable[[str], Any],
    ) -> None:
        if ":" in type_id:
            raise ValueError(f"Type id must not contain ':': {type_id!r}")
        if cls in self._by_type:
            raise ValueError(f"{cls.__name__} is already registered")
        if type_id in self._by_id:
            raise ValueError(f"Type id {type_id!r} is already registered")
        serializer = Serializer(type_id, cls, write, read)
        self._by_type[cls] = serializer
        self._by_id[type_id] = serializer

    def __contains__(self, cls: type) -> bool:
        return cls in self._by_type

    def __len__(self) -> int:
        return len(self._by_type)

    def write(self, value: Any) -> str:
        serializer = self._by_type.get(type(value))
        if serializer is None:
            raise KeyError(f"No serializer registered for {type(value).__name__}")
        payload = serializer.write(value)
        if "\n" in payload or "\r" in payload:
            raise ValueError(f"{serializer.type_id} payload spans more than one line: {payload!r}")
        return f"{serializer.type_id}:{payload}"

    def read(self, text: str) -> Any:
        type_id, sep, payload = text.partition(":")
        serializer = self._by_id.get(type_id) if sep else None
        if serializer is None:
            raise KeyError(f"No serializer registered for {text!r}")
        return serializer.read(payload)
