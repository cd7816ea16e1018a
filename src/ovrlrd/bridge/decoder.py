"""Incremental decoder for newline-delimited JSON from a subprocess pipe."""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

#: Characters of a dropped line to include in debug logs.
_PREVIEW_CHARS = 100


class LineDecoder:
    """Turns arbitrary byte chunks into parsed JSON objects.

    Pipe reads never line up with line boundaries, so everything after the
    last newline is held back until the next ``feed()`` or ``close()``.
    Lines that are not JSON objects (the CLI also prints plain diagnostic
    text) are dropped without interrupting the stream.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._closed = False

    @property
    def pending(self) -> str:
        """Text received after the last newline, not yet parsed."""
        return self._buffer

    def feed(self, chunk: bytes) -> list[dict[str, Any]]:
        """Append *chunk* and return every object completed by it."""
        if self._closed:
            msg = "feed() called on a closed LineDecoder"
            raise RuntimeError(msg)

        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return [obj for obj in map(_parse_line, lines) if obj is not None]

    def close(self) -> list[dict[str, Any]]:
        """Flush the remaining buffer at end of stream.

        Idempotent; a second call returns nothing.
        """
        if self._closed:
            return []
        self._closed = True
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        obj = _parse_line(tail)
        return [obj] if obj is not None else []


def _parse_line(line: str) -> dict[str, Any] | None:
    text = line.strip()
    if not text:
        return None
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        logger.debug("Non-JSON line: %s", text[:_PREVIEW_CHARS])
        return None
    if not isinstance(value, dict):
        logger.debug("Ignoring non-object JSON line: %s", text[:_PREVIEW_CHARS])
        return None
    return value
