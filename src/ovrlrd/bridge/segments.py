"""Rebuild the text-segment / tool-call structure of an assistant turn."""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable

from ovrlrd.bridge.callbacks import CallbackGate, TurnOutcome
from ovrlrd.bridge.signals import (
    PermissionDenial,
    SessionEstablished,
    Signal,
    TextDelta,
    ToolInvoked,
    TurnFailed,
    TurnSucceeded,
)

logger = logging.getLogger(__name__)


class SegmentState(enum.Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    TOOL_PENDING = "tool_pending"


def dedupe_denials(denials: Iterable[PermissionDenial]) -> list[PermissionDenial]:
    """Drop repeated denials of the same tool call, keeping first-seen order.

    The CLI retries a denied call and reports each attempt with a fresh
    ``tool_use_id``, so identity is ``(tool_name, tool_input)``.
    """
    seen: set[tuple[str, str]] = set()
    unique: list[PermissionDenial] = []
    for denial in denials:
        key = denial.dedupe_key()
        if key in seen:
            continue
        seen.add(key)
        unique.append(denial)
    return unique


class SegmentReconstructor:
    """State machine turning signals into ordered turn callbacks.

    Text accumulates into the current segment until a tool call
    interrupts it, at which point the segment is finalized with
    ``segment_end``. A pending tool is only considered finished when new
    text (or the terminal result) arrives, and that ``tool_end`` always
    fires before anything else the new signal causes.
    """

    def __init__(self, gate: CallbackGate, resume_token: str | None = None) -> None:
        self._gate = gate
        self._current = ""
        self._pending_tool: str | None = None
        self._segments: list[str] = []
        self.resume_token = resume_token

    @property
    def state(self) -> SegmentState:
        if self._pending_tool is not None:
            return SegmentState.TOOL_PENDING
        if self._current:
            return SegmentState.ACCUMULATING
        return SegmentState.IDLE

    @property
    def current_segment(self) -> str:
        return self._current

    @property
    def pending_tool(self) -> str | None:
        return self._pending_tool

    @property
    def segments(self) -> list[str]:
        """Finalized segments, oldest first."""
        return list(self._segments)

    def apply(self, signal: Signal) -> None:
        """Advance the state machine by one signal."""
        match signal:
            case SessionEstablished(resume_token=token):
                logger.info("Session ID: %s", token)
                self.resume_token = token
            case TextDelta(text=text, source="command"):
                logger.debug("Slash command output: %s", text[:200])
                self._on_text(text)
            case TextDelta(text=text):
                self._on_text(text)
            case ToolInvoked(name=name):
                self._on_tool(name)
            case TurnSucceeded():
                self._on_success(signal)
            case TurnFailed(message=message):
                self._settle_pending_tool()
                self._gate.error(message)

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #

    def _on_text(self, text: str) -> None:
        self._settle_pending_tool()
        self._current += text
        self._gate.chunk(text)

    def _on_tool(self, name: str) -> None:
        self._finalize_segment()
        logger.debug("Tool start: %s", name)
        self._gate.tool_start(name)
        self._pending_tool = name

    def _on_success(self, signal: TurnSucceeded) -> None:
        self._settle_pending_tool()
        self._finalize_segment()

        outcome = TurnOutcome(
            result_text=signal.result_text,
            resume_token=self.resume_token,
            segments=self.segments,
            denials=dedupe_denials(signal.permission_denials),
        )
        if outcome.denials:
            logger.info("Permission required for %d tool(s)", len(outcome.denials))
            self._gate.permission_required(outcome)
        elif outcome.segments:
            self._gate.complete(outcome)
        else:
            self._gate.no_response(outcome)

    def _settle_pending_tool(self) -> None:
        if self._pending_tool is None:
            return
        logger.debug("Tool end: %s", self._pending_tool)
        self._gate.tool_end(self._pending_tool)
        self._pending_tool = None

    def _finalize_segment(self) -> None:
        if not self._current.strip():
            self._current = ""
            return
        logger.debug("Segment end (%d chars)", len(self._current))
        self._segments.append(self._current)
        self._gate.segment_end(self._current)
        self._current = ""
