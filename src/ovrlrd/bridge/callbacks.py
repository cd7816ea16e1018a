"""Caller-facing callback set for a streaming turn, plus its terminal guard."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from ovrlrd.bridge.signals import PermissionDenial

logger = logging.getLogger(__name__)


def _noop(*_args: object) -> None:
    return None


@dataclass
class TurnOutcome:
    """What a successfully finished turn produced."""

    result_text: str = ""
    resume_token: str | None = None
    segments: list[str] = field(default_factory=list)
    denials: list[PermissionDenial] = field(default_factory=list)


@dataclass
class TurnCallbacks:
    """Synchronous callbacks fired inline, in stream order, during a turn.

    ``on_complete``, ``on_no_response``, ``on_permission_required`` and
    ``on_error`` are terminal: exactly one of them fires per turn unless
    the caller cancelled it.
    """

    on_chunk: Callable[[str], None] = _noop
    on_segment_end: Callable[[str], None] = _noop
    on_tool_start: Callable[[str], None] = _noop
    on_tool_end: Callable[[str], None] = _noop
    on_complete: Callable[[TurnOutcome], None] = _noop
    on_no_response: Callable[[TurnOutcome], None] = _noop
    on_permission_required: Callable[[TurnOutcome], None] = _noop
    on_error: Callable[[str], None] = _noop


class CallbackGate:
    """Forwards to a ``TurnCallbacks`` until the turn is over.

    The first terminal callback closes the gate; ``silence()`` closes it
    without firing anything (used when the caller cancels). Once closed,
    every later callback is dropped, which keeps a timeout racing with
    natural completion from reporting twice.
    """

    def __init__(self, callbacks: TurnCallbacks) -> None:
        self._callbacks = callbacks
        self._finished = False
        self._silenced = False

    @property
    def finished(self) -> bool:
        """True once a terminal callback has fired."""
        return self._finished

    @property
    def closed(self) -> bool:
        return self._finished or self._silenced

    def silence(self) -> None:
        self._silenced = True

    # ------------------------------------------------------------------ #
    # Progress callbacks
    # ------------------------------------------------------------------ #

    def chunk(self, text: str) -> None:
        if not self.closed:
            self._callbacks.on_chunk(text)

    def segment_end(self, content: str) -> None:
        if not self.closed:
            self._callbacks.on_segment_end(content)

    def tool_start(self, tool_name: str) -> None:
        if not self.closed:
            self._callbacks.on_tool_start(tool_name)

    def tool_end(self, tool_name: str) -> None:
        if not self.closed:
            self._callbacks.on_tool_end(tool_name)

    # ------------------------------------------------------------------ #
    # Terminal callbacks
    # ------------------------------------------------------------------ #

    def complete(self, outcome: TurnOutcome) -> None:
        if self._close():
            self._callbacks.on_complete(outcome)

    def no_response(self, outcome: TurnOutcome) -> None:
        if self._close():
            self._callbacks.on_no_response(outcome)

    def permission_required(self, outcome: TurnOutcome) -> None:
        if self._close():
            self._callbacks.on_permission_required(outcome)

    def error(self, message: str) -> None:
        if self._close():
            self._callbacks.on_error(message)
        else:
            logger.debug("Dropping error after turn closed: %s", message)

    def _close(self) -> bool:
        if self.closed:
            return False
        self._finished = True
        return True
