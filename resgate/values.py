"""RES errors and RES values as carried in service responses and events."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from .rid import is_valid_rid

__all__ = [
    "CODE_INTERNAL_ERROR",
    "ResError",
    "internal_error",
    "res_error",
    "ValueType",
    "Value",
    "DELETE_VALUE",
    "decode_value",
]

CODE_INTERNAL_ERROR = "system.internalError"

_ACTION_DELETE = "delete"
_JSON_WHITESPACE = " \t\n\r"


class ResError(Exception):
    """An error as defined by the RES protocol."""

    def __init__(self, code: str, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        """Return the error as a JSON compatible dictionary."""
        out: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        return out

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"ResError(code={self.code!r}, message={self.message!r}, data={self.data!r})"


def internal_error(err: Any) -> ResError:
    """Wrap err as a system.internalError."""
    return ResError(CODE_INTERNAL_ERROR, "Internal error: " + str(err))


def res_error(err: BaseException) -> ResError:
    """Return err itself if it is a ResError, otherwise wrap it as an internal error."""
    if isinstance(err, ResError):
        return err
    return internal_error(err)


_ERR_EMPTY_RID = 'invalid value: resource references requires a non-empty "rid" value'
_ERR_AMBIGUOUS = "invalid value: ambiguous value type"
_ERR_OBJECT_NOT_ALLOWED = "invalid value: nested json object must be wrapped as a data value"
_ERR_ARRAY_NOT_ALLOWED = "invalid value: nested json array must be wrapped as a data value"


class ValueType(IntEnum):
    """Kind of a RES value."""

    NONE = 0
    DELETE = 1
    PRIMITIVE = 2
    REFERENCE = 3
    SOFT_REFERENCE = 4
    DATA = 5


@dataclass(frozen=True, eq=False)
class Value:
    """A RES value holding its JSON text and its decoded kind."""

    raw: str
    type: ValueType = ValueType.NONE
    rid: str = ""
    inner: str = ""

    def is_proper(self) -> bool:
        """True for primitives, references and data values."""
        return self.type >= ValueType.PRIMITIVE

    def _key(self) -> tuple[Any, ...]:
        if self.type in (ValueType.DATA, ValueType.PRIMITIVE):
            return (self.type, self.raw)
        if self.type in (ValueType.REFERENCE, ValueType.SOFT_REFERENCE):
            return (self.type, self.rid)
        return (self.type,)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Value):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())


DELETE_VALUE = Value(raw='{"action":"delete"}', type=ValueType.DELETE)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON literal {name}")


def _compact(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)


def _optional_string(key: str, val: Any) -> str | None:
    if val is None or isinstance(val, str):
        return val
    raise ValueError(f"json: cannot decode {_compact(val)} into string field {key!r}")


def _decode_object(text: str, obj: dict[str, Any]) -> Value:
    rid: str | None = None
    soft = False
    action: str | None = None
    data_raw: str | None = None

    for key, val in obj.items():
        name = key.lower()
        if name == "rid":
            rid = _optional_string(key, val)
        elif name == "action":
            action = _optional_string(key, val)
        elif name == "soft":
            if isinstance(val, bool):
                soft = val
            elif val is not None:
                raise ValueError(f"json: cannot decode {_compact(val)} into bool field {key!r}")
        elif name == "data":
            data_raw = _compact(val)

    if rid is not None:
        if rid == "":
            raise internal_error(_ERR_EMPTY_RID)
        if action is not None or data_raw is not None:
            raise internal_error(_ERR_AMBIGUOUS)
        if not is_valid_rid(rid, True):
            raise internal_error(f'invalid value: resource reference rid "{rid}" is invalid')
        kind = ValueType.SOFT_REFERENCE if soft else ValueType.REFERENCE
        return Value(raw=text, type=kind, rid=rid)

    if action is not None:
        if data_raw is not None:
            raise internal_error(_ERR_AMBIGUOUS)
        if action != _ACTION_DELETE:
            raise internal_error(f'invalid value: unknown action "{action}"')
        return Value(raw=text, type=ValueType.DELETE)

    if data_raw is not None:
        if data_raw[0] in "{[":
            return Value(raw=text, type=ValueType.DATA, inner=data_raw)
        return Value(raw=data_raw, type=ValueType.PRIMITIVE, inner=data_raw)

    raise internal_error(_ERR_OBJECT_NOT_ALLOWED)


def decode_value(data: str | bytes) -> Value:
    """Decode the JSON text of a single RES value.

    Raises ValueError for malformed JSON and ResError for JSON that is
    not a valid RES value.
    """
    text = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
    text = text.strip(_JSON_WHITESPACE)
    parsed = json.loads(text, parse_constant=_reject_constant)
    if isinstance(parsed, dict):
        return _decode_object(text, parsed)
    if isinstance(parsed, list):
        raise internal_error(_ERR_ARRAY_NOT_ALLOWED)
    return Value(raw=text, type=ValueType.PRIMITIVE)