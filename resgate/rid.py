"""Resource ID validation and conversion between resource IDs and URL paths."""

from __future__ import annotations

import re
from urllib.parse import quote, unquote

__all__ = [
    "is_valid_rid",
    "is_valid_rid_part",
    "path_to_rid",
    "path_to_rid_action",
    "rid_to_path",
]

_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")

# Characters left unescaped in a URL path segment besides the unreserved set.
_SEGMENT_SAFE = "$&+:=@"


def is_valid_rid(rid: str, allow_query: bool) -> bool:
    """Return True if rid is a valid resource ID.

    A question mark starts the query part, which is only accepted
    when allow_query is true.
    """
    start = True
    for ch in rid:
        if ch == "?":
            return allow_query and not start
        code = ord(ch)
        if code < 33 or code > 126 or ch in "*>":
            return False
        if ch == ".":
            if start:
                return False
            start = True
        else:
            start = False
    return not start


def is_valid_rid_part(part: str) -> bool:
    """Return True if part is a valid single part of a resource ID."""
    for ch in part:
        code = ord(ch)
        if code < 33 or code > 126 or ch in ".*>?":
            return False
    return len(part) > 0


def _path_unescape(segment: str) -> str:
    if _BAD_ESCAPE.search(segment):
        raise ValueError(f"invalid URL escape in {segment!r}")
    return unquote(segment, errors="surrogateescape")


def _split_path(path: str, prefix: str) -> list[str] | None:
    if len(path) == len(prefix) or not path.startswith(prefix):
        return None
    path = path[len(prefix):]
    # Dot separator is not allowed in the path
    if "." in path:
        return None
    if path.startswith("/"):
        path = path[1:]
    return path.split("/")


def _unescape_parts(parts: list[str]) -> list[str] | None:
    try:
        return [_path_unescape(part) for part in parts]
    except ValueError:
        return None


def path_to_rid(path: str, query: str, prefix: str) -> str:
    """Return the resource ID for a raw URL path, or "" if it has none.

    The prefix should both start and end with a slash, e.g. "/api/".
    """
    parts = _split_path(path, prefix)
    if parts is None:
        return ""
    parts = _unescape_parts(parts)
    if parts is None:
        return ""
    rid = ".".join(parts)
    if query:
        rid += "?" + query
    return rid


def path_to_rid_action(path: str, query: str, prefix: str) -> tuple[str, str]:
    """Return the resource ID and action for a raw URL path.

    Both are empty strings if the path holds no resource method.
    """
    parts = _split_path(path, prefix)
    if parts is None or len(parts) < 2:
        return "", ""
    parts = _unescape_parts(parts)
    if parts is None:
        return "", ""
    *rid_parts, action = parts
    rid = ".".join(rid_parts)
    if query:
        rid += "?" + query
    return rid, action


def rid_to_path(rid: str, prefix: str) -> str:
    """Convert a resource ID to a URL path starting with prefix."""
    escaped = quote(rid, safe=_SEGMENT_SAFE, errors="surrogateescape")
    return prefix + escaped.replace(".", "/")