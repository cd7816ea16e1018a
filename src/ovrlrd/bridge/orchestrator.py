"""Streaming orchestrator: one Claude CLI process per conversation turn."""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ovrlrd.bridge.callbacks import CallbackGate, TurnCallbacks
from ovrlrd.bridge.classifier import classify
from ovrlrd.bridge.decoder import LineDecoder
from ovrlrd.bridge.errors import (
    BridgeError,
    ProcessExitError,
    ReadError,
    SpawnError,
    TurnCancelledError,
    TurnFailedError,
    TurnTimeoutError,
    WriteError,
)
from ovrlrd.bridge.process import (
    ClaudeProcess,
    build_args,
    claude_env,
    spawn,
    with_timeout,
)
from ovrlrd.bridge.registry import SessionHandle, SessionRegistry
from ovrlrd.bridge.segments import SegmentReconstructor
from ovrlrd.config.models import BridgeConfig

logger = logging.getLogger(__name__)

#: Seconds to wait for exit once stdout closed before SIGKILL.
_EXIT_WAIT = 5.0

#: Seconds to wait for a killed process to be reaped.
_KILL_WAIT = 1.0


class TurnRequest(BaseModel):
    """One user turn to run against a conversation."""

    model_config = ConfigDict(extra="forbid")

    conversation_id: str = Field(min_length=1, description="Conversation key")
    input_text: str = Field(description="Prompt piped to the CLI on stdin")
    resume_token: str | None = Field(
        default=None,
        description="CLI session id to resume",
    )
    allowed_tools: list[str] | None = Field(
        default=None,
        description="Tools pre-approved for this turn",
    )


@dataclass
class OneShotReply:
    """Result of a non-streaming request."""

    text: str
    resume_token: str | None = None


class StreamingBridge:
    """Runs Claude CLI turns and reports them through ``TurnCallbacks``.

    Each turn owns one subprocess. At most one turn per conversation is
    live: starting a new one kills the previous process first, because
    two processes resuming the same CLI session would corrupt it.
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        registry: SessionRegistry | None = None,
    ) -> None:
        self._config = config or BridgeConfig()
        self._registry = registry if registry is not None else SessionRegistry()

    @property
    def config(self) -> BridgeConfig:
        return self._config

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def active_session_count(self) -> int:
        return len(self._registry)

    # ------------------------------------------------------------------ #
    # Streaming turns
    # ------------------------------------------------------------------ #

    async def run_turn(self, request: TurnRequest, callbacks: TurnCallbacks) -> None:
        """Run one turn, firing *callbacks* as output arrives.

        Never raises for turn failures; those arrive through
        ``callbacks.on_error``. Returns once the process has exited and
        every resource is released.
        """
        conversation_id = request.conversation_id
        args = build_args(
            self._config,
            resume_token=request.resume_token,
            allowed_tools=request.allowed_tools,
            use_stdin=True,
        )
        logger.info("Starting streaming session for %s", conversation_id)
        logger.debug("Working dir: %s", self._config.work_dir)
        logger.debug("Args: %s", args)

        self._registry.acquire(conversation_id)

        gate = CallbackGate(callbacks)
        try:
            process = await spawn(
                self._config.claude_path, args, self._config.work_dir, claude_env()
            )
        except SpawnError as exc:
            logger.error("%s: %s", conversation_id, exc)
            gate.error("Failed to start Claude")
            return

        session = SessionHandle(
            conversation_id=conversation_id,
            process=process,
            reconstructor=SegmentReconstructor(gate, request.resume_token),
            gate=gate,
        )
        session.timeout = with_timeout(
            process,
            self._config.timeout_seconds,
            lambda: gate.error("Request timed out"),
        )
        self._registry.register(conversation_id, session)

        try:
            await self._drive(session, request.input_text)
        except asyncio.CancelledError:
            logger.info("%s: turn task cancelled, killing process", conversation_id)
            session.terminate()
            self._release(session)
            raise

    def cancel(self, conversation_id: str) -> bool:
        """Kill the live turn for *conversation_id*.

        No further callbacks fire for the cancelled turn. Returns False
        when nothing was running.
        """
        return self._registry.terminate(conversation_id)

    async def _drive(self, session: SessionHandle, input_text: str) -> None:
        process = session.process
        conversation_id = session.conversation_id

        try:
            await process.write_input(input_text)
        except WriteError as exc:
            logger.error("%s: failed to write to stdin: %s", conversation_id, exc)
            self._release(session)
            session.gate.error("Failed to send message")
            process.kill()
            await self._wait_exit(process)
            return

        await self._read_loop(session)

        if session.timeout is not None and session.timeout.fired:
            # Error already reported by the timer.
            await self._wait_exit(process)
            return

        stderr_text, returncode = await self._finish(process)

        if session.cancelled:
            logger.info(
                "%s: cancelled session exited with code %s", conversation_id, returncode
            )
            return

        if returncode != 0:
            logger.error(
                "%s: Process exited with code %d: %s",
                conversation_id,
                returncode,
                stderr_text[:2048],
            )
            session.gate.error("Claude exited unexpectedly")
        elif not session.gate.finished:
            logger.warning("%s: Process exited without a result", conversation_id)
            session.gate.error("No response received")

    async def _read_loop(self, session: SessionHandle) -> None:
        decoder = LineDecoder()
        try:
            async for chunk in session.process.read_chunks():
                for event in decoder.feed(chunk):
                    self._dispatch(session, event)
            for event in decoder.close():
                self._dispatch(session, event)
        except ReadError as exc:
            logger.error("%s: Read error: %s", session.conversation_id, exc)
            if session.timeout is None or not session.timeout.fired:
                session.gate.error("Stream read error")
        finally:
            self._release(session)

    def _dispatch(self, session: SessionHandle, event: dict[str, Any]) -> None:
        logger.debug(
            "Message type: %s/%s", event.get("type"), event.get("subtype") or ""
        )
        for signal in classify(event):
            session.reconstructor.apply(signal)

    def _release(self, session: SessionHandle) -> None:
        """Timer, then reader, then registry entry; once per session."""
        if session.released:
            return
        session.released = True
        if session.timeout is not None:
            session.timeout.cancel()
        session.process.release_reader()
        if session.conversation_id:
            self._registry.release(session.conversation_id, session)

    async def _finish(self, process: ClaudeProcess) -> tuple[str, int]:
        """Drain stderr and reap the process, together under ``_EXIT_WAIT``.

        A CLI that keeps stderr open after stdout closed (or leaves a
        child holding it) is killed, and its stderr is dropped.
        """
        try:
            stderr_text, returncode = await asyncio.wait_for(
                asyncio.gather(process.read_stderr(), process.wait()),
                timeout=_EXIT_WAIT,
            )
        except TimeoutError:
            logger.warning("Process still running after stdout closed, killing")
            process.kill()
            return "", await self._reap(process)
        return stderr_text, returncode

    async def _wait_exit(self, process: ClaudeProcess) -> int:
        try:
            return await asyncio.wait_for(process.wait(), timeout=_EXIT_WAIT)
        except TimeoutError:
            logger.warning("Process still running after stdout closed, killing")
            process.kill()
            return await self._reap(process)

    async def _reap(self, process: ClaudeProcess) -> int:
        try:
            return await asyncio.wait_for(process.wait(), timeout=_KILL_WAIT)
        except TimeoutError:
            # Dead, but a surviving child still holds the pipes.
            logger.warning("Process %s killed but its pipes are still open", process.pid)
            if process.returncode is not None:
                return process.returncode
            return -signal.SIGKILL

    # ------------------------------------------------------------------ #
    # Request/response
    # ------------------------------------------------------------------ #

    async def run_once(
        self,
        message: str,
        *,
        resume_token: str | None = None,
        conversation_id: str | None = None,
        timeout: float | None = None,
        work_dir: str | None = None,
    ) -> OneShotReply:
        """Run a turn to completion and return all of its text at once.

        Used for plain replies and title generation. When
        *conversation_id* is given the turn takes part in per-conversation
        eviction like a streaming turn.

        Raises:
            SpawnError: The CLI could not be started.
            TurnTimeoutError: The turn exceeded its time limit.
            TurnCancelledError: The turn was cancelled or evicted.
            ProcessExitError: The CLI exited with a non-zero status.
            TurnFailedError: The CLI reported an error result.
            ReadError: Reading stdout failed before any timeout.
        """
        args = build_args(self._config, message=message, resume_token=resume_token)
        seconds = timeout if timeout is not None else self._config.timeout_seconds
        logger.debug("Starting request (resume=%s): %s", resume_token, message[:100])

        if conversation_id:
            self._registry.acquire(conversation_id)

        process = await spawn(
            self._config.claude_path,
            args,
            work_dir or self._config.work_dir,
            claude_env(),
            stdin=False,
        )

        parts: list[str] = []
        failures: list[str] = []
        gate = CallbackGate(TurnCallbacks(on_chunk=parts.append, on_error=failures.append))
        session = SessionHandle(
            conversation_id=conversation_id or "",
            process=process,
            reconstructor=SegmentReconstructor(gate, resume_token),
            gate=gate,
        )
        session.timeout = with_timeout(process, seconds, gate.silence)
        if conversation_id:
            self._registry.register(conversation_id, session)

        try:
            await self._collect(session)
            timed_out = session.timeout.fired
            if timed_out:
                await self._wait_exit(process)
                msg = f"Claude CLI request timed out after {seconds:.0f}s"
                raise TurnTimeoutError(msg)

            stderr_text, returncode = await self._finish(process)
        except (BridgeError, asyncio.CancelledError):
            process.kill()
            self._release(session)
            raise

        if session.cancelled:
            raise TurnCancelledError("Request cancelled")
        if returncode != 0:
            logger.error("CLI exited with code %d: %s", returncode, stderr_text[:2048])
            if not gate.finished:
                raise ProcessExitError(returncode, stderr_text)
        if failures:
            raise TurnFailedError(failures[0])

        text = "".join(parts)
        logger.debug("Request completed (%d chars)", len(text))
        return OneShotReply(text=text, resume_token=session.resume_token)

    async def _collect(self, session: SessionHandle) -> None:
        decoder = LineDecoder()
        try:
            async for chunk in session.process.read_chunks():
                for event in decoder.feed(chunk):
                    self._dispatch(session, event)
            for event in decoder.close():
                self._dispatch(session, event)
        except ReadError:
            if session.timeout is None or not session.timeout.fired:
                raise
        finally:
            self._release(session)
