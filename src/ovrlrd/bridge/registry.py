"""Per-conversation registry of live Claude CLI sessions."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from ovrlrd.bridge.callbacks import CallbackGate
from ovrlrd.bridge.process import ClaudeProcess, SubprocessTimeout
from ovrlrd.bridge.segments import SegmentReconstructor

logger = logging.getLogger(__name__)


@dataclass
class SessionHandle:
    """Everything owned by one in-flight turn of one conversation."""

    conversation_id: str
    process: ClaudeProcess
    reconstructor: SegmentReconstructor
    gate: CallbackGate
    timeout: SubprocessTimeout | None = None
    cancelled: bool = field(default=False)
    released: bool = field(default=False)

    @property
    def resume_token(self) -> str | None:
        return self.reconstructor.resume_token

    @property
    def pending_tool(self) -> str | None:
        return self.reconstructor.pending_tool

    @property
    def current_segment(self) -> str:
        return self.reconstructor.current_segment

    def terminate(self) -> None:
        """Stop the session on the caller's behalf.

        No further callbacks fire; the timer is disarmed and the process
        killed. Safe to call on a process that already exited.
        """
        self.cancelled = True
        self.gate.silence()
        if self.timeout is not None:
            self.timeout.cancel()
        self.process.kill()


class SessionRegistry:
    """Maps conversation ids to their single live ``SessionHandle``.

    Thread-safe: the map is only touched under a ``threading.Lock``.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, SessionHandle] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, conversation_id: object) -> bool:
        with self._lock:
            return conversation_id in self._sessions

    def get(self, conversation_id: str) -> SessionHandle | None:
        with self._lock:
            return self._sessions.get(conversation_id)

    def acquire(self, conversation_id: str) -> SessionHandle | None:
        """Evict any live session for *conversation_id* and return it.

        Runs synchronously so the old process is killed before the caller
        spawns a replacement that would resume the same session token.
        """
        with self._lock:
            previous = self._sessions.pop(conversation_id, None)
        if previous is not None:
            logger.info("Killing existing session for %s", conversation_id)
            previous.terminate()
        return previous

    def register(self, conversation_id: str, handle: SessionHandle) -> None:
        with self._lock:
            previous = self._sessions.get(conversation_id)
            self._sessions[conversation_id] = handle
        if previous is not None and previous is not handle:
            logger.warning(
                "Replacing unevicted session for %s", conversation_id
            )
            previous.terminate()

    def release(
        self, conversation_id: str, handle: SessionHandle | None = None
    ) -> bool:
        """Remove the entry for *conversation_id*.

        When *handle* is given, only that exact handle is removed, so a
        late cleanup from an evicted turn leaves its successor in place.
        Returns True if an entry was removed.
        """
        with self._lock:
            current = self._sessions.get(conversation_id)
            if current is None or (handle is not None and current is not handle):
                return False
            del self._sessions[conversation_id]
            return True

    def terminate(self, conversation_id: str) -> bool:
        """Cancel the live session, if any. Returns True if one was found."""
        with self._lock:
            handle = self._sessions.pop(conversation_id, None)
        if handle is None:
            return False
        logger.info("Cancelling session for %s", conversation_id)
        handle.terminate()
        return True
