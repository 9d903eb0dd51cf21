# shellrun/runners/base.py
"""
Output sinks for captured command output.

A sink is anything that accepts decoded output chunks through an `append`
method. `StringSink` is the in-memory accumulator used when the caller does
not supply one; callers may pass their own writer (a `StringSink` they keep a
reference to, a list, or any object with a callable `append`).
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any


class Sink(ABC):
    """
    Abstract destination for captured output.
    """

    @abstractmethod
    def append(self, chunk: str) -> None:
        """
        Append a chunk of output. Implementations must never clear or rewind
        previously appended content.
        """
        raise NotImplementedError


class StringSink(Sink):
    """
    Growable string accumulator, safe for concurrent appenders.
    """

    def __init__(self, initial: str = "") -> None:
        self._parts = [initial] if initial else []
        self._lock = threading.Lock()

    def append(self, chunk: str) -> None:
        if not chunk:
            return
        with self._lock:
            self._parts.append(chunk)

    def getvalue(self) -> str:
        with self._lock:
            value = "".join(self._parts)
            self._parts = [value] if value else []
        return value

    def __str__(self) -> str:
        return self.getvalue()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, StringSink):
            return self.getvalue() == other.getvalue()
        if isinstance(other, str):
            return self.getvalue() == other
        return NotImplemented

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        return f"StringSink({self.getvalue()!r})"


def supports_append(obj: Any) -> bool:
    """Returns True if `obj` can be used as an output sink."""
    return callable(getattr(obj, "append", None))


def snapshot(sink: Any) -> str:
    """
    Returns the current contents of a sink as a string.

    Sinks exposing `getvalue()` (StringSink, io.StringIO subclasses) are read
    through it; lists of chunks are joined; anything else falls back to
    `str()`.
    """
    getvalue = getattr(sink, "getvalue", None)
    if callable(getvalue):
        return getvalue()
    if isinstance(sink, (list, tuple)):
        return "".join(str(part) for part in sink)
    return str(sink)
