"""Cache value handling: kinds, copies, concatenation and the wire codec.

Stored values are one of: string, integer, float, boolean, blob (bytes),
record (anything structured, e.g. dict or list) or null. Records are copied on
their way into and out of the runtime mirror so callers never share a mutable
object with the cache.

Wire format used by the Redis backend: a one-letter tag, a colon, then the
payload.

    s:<utf-8 text>     i:<decimal>     f:<repr>      t:<1|0>
    x:<raw bytes>      n:              j:<orjson>    p:<pickle>

Plain JSON documents (dicts with string keys, lists, scalars) use the orjson
tag. Every other record (dataclasses, sets, tuples, custom classes) is pickled
so it comes back with its own type.
"""

from __future__ import annotations

import copy
import math
import pickle
import re
from enum import Enum
from typing import Any

import orjson


class ValueKind(str, Enum):
    """Kind of a cached value."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    BLOB = "blob"
    RECORD = "record"
    NULL = "null"


class Direction(str, Enum):
    """Side on which a value is concatenated."""

    APPEND = "append"
    PREPEND = "prepend"


_NUMERIC_PREFIX = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_NUMERIC_STRING = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?\s*$")

_TAG_STRING = b"s"
_TAG_INTEGER = b"i"
_TAG_FLOAT = b"f"
_TAG_BOOLEAN = b"t"
_TAG_BLOB = b"x"
_TAG_NULL = b"n"
_TAG_RECORD = b"j"
_TAG_OBJECT = b"p"


def kind_of(value: Any) -> ValueKind:
    # bool first: it is a subclass of int
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, int):
        return ValueKind.INTEGER
    if isinstance(value, float):
        return ValueKind.FLOAT
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (bytes, bytearray)):
        return ValueKind.BLOB
    if value is None:
        return ValueKind.NULL
    return ValueKind.RECORD


def is_scalar_operand(value: Any) -> bool:
    """Whether a value may be appended or prepended to a stored entry."""
    return kind_of(value) in (ValueKind.STRING, ValueKind.INTEGER, ValueKind.FLOAT)


def clone_value(value: Any) -> Any:
    """Copy records; immutable scalars are returned as-is."""
    if kind_of(value) is ValueKind.RECORD:
        return copy.deepcopy(value)
    if isinstance(value, bytearray):
        return bytearray(value)
    return value


def to_text(value: Any) -> str:
    """String form of a scalar, as used for concatenation."""
    kind = kind_of(value)
    if kind is ValueKind.BOOLEAN:
        return "1" if value else ""
    if kind is ValueKind.FLOAT:
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    if kind is ValueKind.BLOB:
        return bytes(value).decode("utf-8", errors="replace")
    if kind is ValueKind.NULL:
        return ""
    return str(value)


def _leading_number(text: str) -> float | int:
    match = _NUMERIC_PREFIX.match(text)
    if match is None:
        return 0
    number = match.group(0).strip()
    if any(ch in number for ch in ".eE"):
        return float(number)
    return int(number)


def parse_int(text: str) -> int:
    """Integer value of the leading numeric part of a string, 0 if none."""
    number = _leading_number(text)
    if isinstance(number, float):
        if not math.isfinite(number):
            return 0
        return int(number)
    return number


def parse_float(text: str) -> float:
    """Float value of the leading numeric part of a string, 0.0 if none."""
    return float(_leading_number(text))


def as_number(value: Any) -> int | float | None:
    """Numeric interpretation of a stored value, or None if it is not numeric.

    Numeric strings count as numbers; booleans do not.
    """
    kind = kind_of(value)
    if kind in (ValueKind.INTEGER, ValueKind.FLOAT):
        return value
    if kind is ValueKind.STRING and _NUMERIC_STRING.match(value):
        return _leading_number(value)
    return None


def combine(original: Any, pended: Any, direction: Direction | str) -> Any:
    """Concatenate ``pended`` onto ``original`` and keep the original's kind.

    The concatenated string is cast back to the kind of ``original``: numbers
    take the leading numeric part (0 when there is none), booleans are true
    unless the text is empty or "0", blobs stay bytes.

    Raises:
        TypeError: If ``original`` is a record or null.
    """
    direction = Direction(direction)
    kind = kind_of(original)

    if kind in (ValueKind.RECORD, ValueKind.NULL):
        raise TypeError(f"cannot concatenate onto a {kind.value} value")

    if kind is ValueKind.BLOB:
        extra = to_text(pended).encode("utf-8")
        if direction is Direction.PREPEND:
            return extra + bytes(original)
        return bytes(original) + extra

    if direction is Direction.PREPEND:
        combined = to_text(pended) + to_text(original)
    else:
        combined = to_text(original) + to_text(pended)

    if kind is ValueKind.INTEGER:
        return parse_int(combined)
    if kind is ValueKind.FLOAT:
        return parse_float(combined)
    if kind is ValueKind.BOOLEAN:
        return combined not in ("", "0")
    return combined


def _is_json_document(value: Any) -> bool:
    """Whether orjson round-trips a value without changing its type."""
    if value is None or isinstance(value, (str, bool, int)):
        return True
    if isinstance(value, float):
        return math.isfinite(value)
    if type(value) is list:
        return all(_is_json_document(item) for item in value)
    if type(value) is dict:
        return all(
            isinstance(key, str) and _is_json_document(item) for key, item in value.items()
        )
    return False


def encode(value: Any) -> bytes:
    """Serialize a value to its tagged wire form."""
    kind = kind_of(value)
    if kind is ValueKind.STRING:
        return _TAG_STRING + b":" + value.encode("utf-8")
    if kind is ValueKind.INTEGER:
        return _TAG_INTEGER + b":" + str(value).encode("ascii")
    if kind is ValueKind.FLOAT:
        return _TAG_FLOAT + b":" + repr(value).encode("ascii")
    if kind is ValueKind.BOOLEAN:
        return _TAG_BOOLEAN + b":" + (b"1" if value else b"0")
    if kind is ValueKind.BLOB:
        return _TAG_BLOB + b":" + bytes(value)
    if kind is ValueKind.NULL:
        return _TAG_NULL + b":"
    if _is_json_document(value):
        return _TAG_RECORD + b":" + orjson.dumps(value)
    try:
        return _TAG_OBJECT + b":" + pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)
    except (pickle.PicklingError, AttributeError) as e:
        raise TypeError(f"cannot serialize {type(value).__name__}: {e}") from e


def decode(raw: bytes | str | None) -> Any:
    """Deserialize a tagged payload. Untagged payloads decode to ``str``.

    Raises:
        ValueError: If a tagged payload is corrupt.
    """
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = raw.encode("utf-8")

    tag, sep, payload = raw.partition(b":")
    if not sep or len(tag) != 1:
        return raw.decode("utf-8", errors="replace")

    if tag == _TAG_STRING:
        return payload.decode("utf-8")
    if tag == _TAG_INTEGER:
        return int(payload)
    if tag == _TAG_FLOAT:
        return float(payload)
    if tag == _TAG_BOOLEAN:
        return payload == b"1"
    if tag == _TAG_BLOB:
        return payload
    if tag == _TAG_NULL:
        return None
    if tag == _TAG_RECORD:
        return orjson.loads(payload)
    if tag == _TAG_OBJECT:
        try:
            return pickle.loads(payload)
        except (pickle.UnpicklingError, AttributeError, ImportError, EOFError) as e:
            raise ValueError(f"corrupt object payload: {e}") from e
    return raw.decode("utf-8", errors="replace")
