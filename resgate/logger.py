"""Loggers writing timestamped, tagged entries to stderr or to memory."""

from __future__ import annotations

import io
import sys
import threading
from datetime import datetime

__all__ = ["StdLogger", "MemLogger"]


def _format_entry(timestamp_format: str, tag: str, message: str) -> str:
    line = f"{datetime.now().strftime(timestamp_format)} {tag} {message}"
    if not line.endswith("\n"):
        line += "\n"
    return line


class StdLogger:
    """Logger that writes entries to standard error."""

    _TIMESTAMP = "%Y/%m/%d %H:%M:%S.%f"

    def __init__(self, debug: bool, trace: bool) -> None:
        self._debug = bool(debug)
        self._trace = bool(trace)
        self._lock = threading.Lock()

    def _write(self, tag: str, s: str) -> None:
        line = _format_entry(self._TIMESTAMP, tag, s)
        with self._lock:
            stream = sys.stderr
            stream.write(line)
            stream.flush()

    def log(self, s: str) -> None:
        """Write an info entry."""
        self._write("[INF]", s)

    def error(self, s: str) -> None:
        """Write an error entry."""
        self._write("[ERR]", s)

    def debug(self, s: str) -> None:
        """Write a debug entry."""
        self._write("[DBG]", s)

    def trace(self, s: str) -> None:
        """Write a trace entry."""
        self._write("[TRC]", s)

    @property
    def is_debug(self) -> bool:
        """True if debug logging is active."""
        return self._debug

    @property
    def is_trace(self) -> bool:
        """True if trace logging is active."""
        return self._trace


class MemLogger:
    """Logger that keeps its entries in memory."""

    _TIMESTAMP = "%H:%M:%S.%f"

    def __init__(self, debug: bool, trace: bool) -> None:
        self._debug = bool(debug)
        self._trace = bool(trace)
        self._buffer = io.StringIO()
        self._lock = threading.Lock()

    def _write(self, tag: str, s: str) -> None:
        line = _format_entry(self._TIMESTAMP, tag, s)
        with self._lock:
            self._buffer.write(line)

    def log(self, s: str) -> None:
        """Write an info entry."""
        self._write("[INF]", s)

    def error(self, s: str) -> None:
        """Write an error entry."""
        self._write("[ERR]", s)

    def debug(self, s: str) -> None:
        """Write a debug entry."""
        self._write("[DBG]", s)

    def trace(self, s: str) -> None:
        """Write a trace entry."""
        self._write("[TRC]", s)

    def __str__(self) -> str:
        with self._lock:
            return self._buffer.getvalue()

    @property
    def is_debug(self) -> bool:
        """True if debug logging is active."""
        return self._debug

    @property
    def is_trace(self) -> bool:
        """True if trace logging is active."""
        return self._trace