"""Encoding and decoding of RES service requests, responses and events."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from .rid import is_valid_rid
from .values import ResError, Value, decode_value, internal_error, res_error

__all__ = [
    "GetResult",
    "AccessResult",
    "QueryEvent",
    "EventQueryEvent",
    "EventQueryResult",
    "ConnTokenEvent",
    "AddEvent",
    "SystemReset",
    "SystemTokenReset",
    "create_request",
    "create_get_request",
    "create_auth_request",
    "decode_get_response",
    "decode_event",
    "decode_query_event",
    "create_event_query_request",
    "decode_event_query_response",
    "is_legacy_change_event",
    "encode_change_event",
    "decode_change_event",
    "decode_legacy_change_event",
    "encode_add_event",
    "decode_add_event",
    "encode_remove_event",
    "decode_remove_event",
    "decode_access_response",
    "decode_call_response",
    "try_decode_legacy_new_result",
    "decode_conn_token_event",
    "decode_system_reset",
    "decode_system_token_reset",
]

_WS = " \t\n\r"
_NO_QUERY_GET_REQUEST = b"{}"
_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON literal {name}")


_DECODER = json.JSONDecoder(parse_constant=_reject_constant)


def _missing_result() -> ResError:
    return internal_error("response missing result")


def _invalid_response() -> ResError:
    return internal_error("invalid service response")


def _invalid_value() -> ResError:
    return internal_error("invalid value")


# Result types


@dataclass
class GetResult:
    """Result of a get request: either a model or a collection."""

    model: dict[str, Value] | None = None
    collection: list[Value] | None = None
    query: str = ""


@dataclass
class AccessResult:
    """Result of an access request."""

    get: bool = False
    call: str = ""


@dataclass
class QueryEvent:
    """A query event, holding the subject to send query requests to."""

    subject: str = ""


@dataclass
class EventQueryEvent:
    """An event within the result of a query request."""

    event: str = ""
    data: str | None = None


@dataclass
class EventQueryResult:
    """Result of a query request: events, a model or a collection."""

    events: list[EventQueryEvent | None] | None = None
    model: dict[str, Value] | None = None
    collection: list[Value] | None = None


@dataclass
class ConnTokenEvent:
    """A connection token event."""

    token: str | None = None
    tid: str = ""


@dataclass
class AddEvent:
    """A collection add event."""

    idx: int
    value: Value


@dataclass
class SystemReset:
    """A system reset event."""

    resources: list[str] | None = None
    access: list[str] | None = None


@dataclass
class SystemTokenReset:
    """A system token reset event."""

    tids: list[str] | None = None
    subject: str = ""


# JSON helpers


def _text(data: str | bytes | bytearray | memoryview) -> str:
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data).decode("utf-8", errors="replace")
    return data


def _load(data: str | bytes) -> str:
    """Validate a JSON document and return it without surrounding whitespace."""
    text = _text(data)
    _DECODER.decode(text)
    return text.strip(_WS)


def _skip_ws(text: str, i: int) -> int:
    while i < len(text) and text[i] in _WS:
        i += 1
    return i


def _kind(raw: str) -> str:
    first = raw[0]
    if first == "{":
        return "object"
    if first == "[":
        return "array"
    if first == '"':
        return "string"
    if first in "tf":
        return "bool"
    if first == "n":
        return "null"
    return "number"


def _mismatch(raw: str, field: str, typ: str) -> ValueError:
    where = f" into field {field}" if field else ""
    return ValueError(f"json: cannot unmarshal {_kind(raw)}{where} of type {typ}")


def _members(raw: str | None, field: str, typ: str) -> list[tuple[str, str]] | None:
    """Split the raw text of a JSON object into keys and raw member values."""
    if raw is None or raw == "null":
        return None
    if raw[0] != "{":
        raise _mismatch(raw, field, typ)
    members: list[tuple[str, str]] = []
    i = _skip_ws(raw, 1)
    if raw[i] == "}":
        return members
    while True:
        key, i = _DECODER.raw_decode(raw, i)
        i = _skip_ws(raw, _skip_ws(raw, i) + 1)
        _, end = _DECODER.raw_decode(raw, i)
        members.append((key, raw[i:end]))
        i = _skip_ws(raw, end)
        if raw[i] == "}":
            return members
        i = _skip_ws(raw, i + 1)


def _elements(raw: str | None, field: str, typ: str) -> list[str] | None:
    """Split the raw text of a JSON array into raw element values."""
    if raw is None or raw == "null":
        return None
    if raw[0] != "[":
        raise _mismatch(raw, field, typ)
    items: list[str] = []
    i = _skip_ws(raw, 1)
    if raw[i] == "]":
        return items
    while True:
        _, end = _DECODER.raw_decode(raw, i)
        items.append(raw[i:end])
        i = _skip_ws(raw, end)
        if raw[i] == "]":
            return items
        i = _skip_ws(raw, i + 1)


def _fields(raw: str | None, field: str, typ: str) -> dict[str, str] | None:
    """Return the members of a JSON object keyed by lower cased name."""
    members = _members(raw, field, typ)
    if members is None:
        return None
    return {key.lower(): value for key, value in members}


def _string(raw: str | None, field: str) -> str:
    if raw is None or raw == "null":
        return ""
    if raw[0] != '"':
        raise _mismatch(raw, field, "string")
    return _DECODER.decode(raw)


def _bool(raw: str | None, field: str) -> bool:
    if raw is None or raw == "null":
        return False
    if raw not in ("true", "false"):
        raise _mismatch(raw, field, "bool")
    return raw == "true"


def _int(raw: str | None, field: str) -> int:
    if raw is None or raw == "null":
        return 0
    value = _DECODER.decode(raw) if raw[0] in "-0123456789" else None
    if not isinstance(value, int):
        raise _mismatch(raw, field, "int")
    return value


def _string_list(raw: str | None, field: str) -> list[str] | None:
    items = _elements(raw, field, "[]string")
    if items is None:
        return None
    return [_string(item, field) for item in items]


def _value_map(raw: str | None, field: str) -> dict[str, Value] | None:
    members = _members(raw, field, "map[string]Value")
    if members is None:
        return None
    return {key: decode_value(value) for key, value in members}


def _value_list(raw: str | None, field: str) -> list[Value] | None:
    items = _elements(raw, field, "[]Value")
    if items is None:
        return None
    return [decode_value(item) for item in items]


def _res_error_field(raw: str | None) -> ResError | None:
    fields = _fields(raw, "error", "Error")
    if fields is None:
        return None
    data = _DECODER.decode(fields["data"]) if "data" in fields else None
    return ResError(
        _string(fields.get("code"), "error.code"),
        _string(fields.get("message"), "error.message"),
        data,
    )


def _compact_raw(raw: str) -> str:
    """Remove insignificant whitespace and escape HTML characters in strings."""
    out: list[str] = []
    in_string = False
    escaped = False
    for ch in raw:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            out.append(_HTML_ESCAPES.get(ch, ch))
        elif ch not in _WS:
            if ch == '"':
                in_string = True
            out.append(ch)
    return "".join(out)


def _marshal(obj: Any) -> str:
    text = json.dumps(
        obj, ensure_ascii=False, separators=(",", ":"), sort_keys=True, allow_nan=False
    )
    return _compact_raw(text)


def _embed(value: Any) -> str:
    """Encode a value; bytes are taken as JSON text already encoded."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _compact_raw(_load(bytes(value)))
    return _marshal(value)


def _raw_or_null(value: Value) -> str:
    return _compact_raw(value.raw) if value.raw else "null"


# Requests


def _request_members(params: Any, cid: str, query: str, token: Any) -> list[str]:
    parts = []
    if params is not None:
        parts.append('"params":' + _embed(params))
    if token is not None:
        parts.append('"token":' + _embed(token))
    if query:
        parts.append('"query":' + _marshal(query))
    parts.append('"cid":' + _marshal(cid))
    return parts


def create_request(params: Any, cid: str, query: str = "", token: Any = None) -> bytes:
    """Create a JSON encoded service request.

    Params and token given as bytes are embedded as JSON text.
    """
    return ("{" + ",".join(_request_members(params, cid, query, token)) + "}").encode()


def create_get_request(query: str = "") -> bytes:
    """Create a JSON encoded get request."""
    if not query:
        return _NO_QUERY_GET_REQUEST
    return ('{"query":' + _marshal(query) + "}").encode()


def create_auth_request(
    params: Any,
    cid: str,
    query: str = "",
    token: Any = None,
    header: Mapping[str, Sequence[str]] | None = None,
    host: str = "",
    remote_addr: str = "",
    uri: str = "",
) -> bytes:
    """Create a JSON encoded auth request carrying HTTP request details."""
    parts = _request_members(params, cid, query, token)
    if header:
        parts.append('"header":' + _marshal({k: list(v) for k, v in header.items()}))
    if host:
        parts.append('"host":' + _marshal(host))
    if remote_addr:
        parts.append('"remoteAddr":' + _marshal(remote_addr))
    if uri:
        parts.append('"uri":' + _marshal(uri))
    return ("{" + ",".join(parts) + "}").encode()


def create_event_query_request(query: str) -> bytes:
    """Create a JSON encoded event query request."""
    return ('{"query":' + _marshal(query) + "}").encode()


# Responses


def _all_proper(values: Any) -> bool:
    return all(v.is_proper() for v in values)


def decode_get_response(payload: str | bytes) -> GetResult:
    """Decode a get response, raising ResError on errors or invalid content."""
    try:
        fields = _fields(_load(payload), "", "GetResponse") or {}
        result_fields = _fields(fields.get("result"), "result", "GetResult")
        result = None
        if result_fields is not None:
            result = GetResult(
                model=_value_map(result_fields.get("model"), "result.model"),
                collection=_value_list(result_fields.get("collection"), "result.collection"),
                query=_string(result_fields.get("query"), "result.query"),
            )
        err = _res_error_field(fields.get("error"))
    except (ValueError, ResError) as exc:
        raise internal_error(exc) from exc

    if err is not None:
        raise err
    if result is None:
        raise _missing_result()
    if result.model is not None:
        if result.collection is not None or not _all_proper(result.model.values()):
            raise _invalid_response()
    elif result.collection is not None:
        if not _all_proper(result.collection):
            raise _invalid_response()
    else:
        raise _invalid_response()
    return result


def _event_query_event(raw: str) -> EventQueryEvent | None:
    fields = _fields(raw, "result.events", "EventQueryEvent")
    if fields is None:
        return None
    return EventQueryEvent(
        event=_string(fields.get("event"), "event"),
        data=fields.get("data"),
    )


def decode_event_query_response(payload: str | bytes) -> EventQueryResult:
    """Decode an event query response, raising ResError on failure."""
    try:
        fields = _fields(_load(payload), "", "EventQueryResponse") or {}
        result_fields = _fields(fields.get("result"), "result", "EventQueryResult")
        result = None
        if result_fields is not None:
            raw_events = _elements(result_fields.get("events"), "result.events", "[]EventQueryEvent")
            result = EventQueryResult(
                events=None if raw_events is None else [_event_query_event(r) for r in raw_events],
                model=_value_map(result_fields.get("model"), "result.model"),
                collection=_value_list(result_fields.get("collection"), "result.collection"),
            )
        err = _res_error_field(fields.get("error"))
    except (ValueError, ResError) as exc:
        raise res_error(exc) from exc

    if err is not None:
        raise err
    if result is None:
        raise _missing_result()
    if result.events is not None:
        if result.model is not None or result.collection is not None:
            raise _invalid_response()
    elif result.model is not None:
        if result.collection is not None or not _all_proper(result.model.values()):
            raise _invalid_response()
    elif result.collection is not None:
        if not _all_proper(result.collection):
            raise _invalid_response()
    return result


def decode_access_response(payload: str | bytes) -> AccessResult:
    """Decode an access response, raising ResError on failure."""
    try:
        fields = _fields(_load(payload), "", "AccessResponse") or {}
        result_fields = _fields(fields.get("result"), "result", "AccessResult")
        result = None
        if result_fields is not None:
            result = AccessResult(
                get=_bool(result_fields.get("get"), "result.get"),
                call=_string(result_fields.get("call"), "result.call"),
            )
        err = _res_error_field(fields.get("error"))
    except (ValueError, ResError) as exc:
        raise res_error(exc) from exc

    if err is not None:
        raise err
    if result is None:
        raise _missing_result()
    return result


def decode_call_response(payload: str | bytes) -> tuple[str | None, str]:
    """Decode a call response.

    Returns the raw JSON result and an empty resource ID, or no result and
    the resource ID of a resource response. Raises ResError on failure.
    """
    try:
        fields = _fields(_load(payload), "", "Response") or {}
        result = fields.get("result")
        resource = _fields(fields.get("resource"), "resource", "Resource")
        rid = None if resource is None else _string(resource.get("rid"), "resource.rid")
        err = _res_error_field(fields.get("error"))
    except (ValueError, ResError) as exc:
        raise res_error(exc) from exc

    if err is not None:
        raise err
    if rid is not None:
        if not is_valid_rid(rid, True):
            raise _invalid_response()
        return None, rid
    if result is None:
        raise _missing_result()
    return result, ""


def try_decode_legacy_new_result(result: str | bytes | None) -> str:
    """Return the resource ID of a legacy new call result, or "" if not legacy.

    Raises ResError if the result is legacy but holds an invalid resource ID.
    """
    if result is None:
        return ""
    try:
        parsed = _DECODER.decode(_text(result))
    except ValueError:
        return ""
    if not isinstance(parsed, dict) or len(parsed) != 1:
        return ""
    rid = parsed.get("rid")
    if not isinstance(rid, str):
        return ""
    if not is_valid_rid(rid, True):
        raise _invalid_response()
    return rid


# Events


def decode_event(payload: str | bytes) -> str | None:
    """Validate an event payload and return its JSON text, or None if empty."""
    if not payload:
        return None
    try:
        return _load(payload)
    except ValueError as exc:
        raise res_error(exc) from exc


def decode_query_event(payload: str | bytes) -> QueryEvent:
    """Decode a query event, raising ResError on failure."""
    try:
        fields = _fields(_load(payload), "", "QueryEvent") or {}
        return QueryEvent(subject=_string(fields.get("subject"), "subject"))
    except ValueError as exc:
        raise res_error(exc) from exc


def is_legacy_change_event(data: str | bytes) -> bool:
    """Return True if a model change event has the legacy layout without "values"."""
    try:
        members = _members(_load(data), "", "map[string]RawMessage")
    except ValueError:
        return False
    values = dict(members or [])
    if len(values) != 1 or "values" not in values:
        return True
    return values["values"][0] != "{"


def encode_change_event(values: Mapping[str, Value] | None) -> str:
    """Encode a model change event."""
    if values is None:
        return '{"values":null}'
    body = ",".join(
        _marshal(key) + ":" + _raw_or_null(values[key]) for key in sorted(values)
    )
    return '{"values":{' + body + "}}"


def decode_change_event(data: str | bytes) -> dict[str, Value] | None:
    """Decode a model change event.

    Raises ValueError for malformed JSON and ResError for invalid values.
    """
    fields = _fields(_load(data), "", "ChangeEvent") or {}
    return _value_map(fields.get("values"), "values")


def decode_legacy_change_event(data: str | bytes) -> dict[str, Value] | None:
    """Decode a legacy model change event holding the values directly."""
    return _value_map(_load(data), "")


def encode_add_event(idx: int, value: Value) -> str:
    """Encode a collection add event."""
    return f'{{"idx":{int(idx)},"value":{_raw_or_null(value)}}}'


def decode_add_event(data: str | bytes) -> AddEvent:
    """Decode a collection add event.

    Raises ValueError for malformed JSON and ResError for an improper value.
    """
    fields = _fields(_load(data), "", "AddEvent") or {}
    idx = _int(fields.get("idx"), "idx")
    raw_value = fields.get("value")
    value = decode_value(raw_value) if raw_value is not None else Value(raw="")
    if not value.is_proper():
        raise _invalid_value()
    return AddEvent(idx=idx, value=value)


def encode_remove_event(idx: int) -> str:
    """Encode a collection remove event."""
    return f'{{"idx":{int(idx)}}}'


def decode_remove_event(data: str | bytes) -> int:
    """Decode a collection remove event and return its index."""
    fields = _fields(_load(data), "", "RemoveEvent") or {}
    return _int(fields.get("idx"), "idx")


def decode_conn_token_event(payload: str | bytes) -> ConnTokenEvent:
    """Decode a connection token event, raising ResError on failure."""
    try:
        fields = _fields(_load(payload), "", "ConnTokenEvent") or {}
        return ConnTokenEvent(
            token=fields.get("token"),
            tid=_string(fields.get("tid"), "tid"),
        )
    except ValueError as exc:
        raise res_error(exc) from exc


def decode_system_reset(data: str | bytes | None) -> SystemReset:
    """Decode a system reset event; an empty payload gives an empty reset."""
    if not data:
        return SystemReset()
    fields = _fields(_load(data), "", "SystemReset") or {}
    return SystemReset(
        resources=_string_list(fields.get("resources"), "resources"),
        access=_string_list(fields.get("access"), "access"),
    )


def decode_system_token_reset(data: str | bytes | None) -> SystemTokenReset:
    """Decode a system token reset event; an empty payload gives an empty reset."""
    if not data:
        return SystemTokenReset()
    fields = _fields(_load(data), "", "SystemTokenReset") or {}
    return SystemTokenReset(
        tids=_string_list(fields.get("tids"), "tids"),
        subject=_string(fields.get("subject"), "subject"),
    )