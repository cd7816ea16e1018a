"""Chat service: run turns, relay them as SSE events, persist afterwards."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass

from ovrlrd.bridge.callbacks import TurnCallbacks, TurnOutcome
from ovrlrd.bridge.orchestrator import StreamingBridge, TurnRequest
from ovrlrd.constants import NO_RESPONSE_MESSAGE
from ovrlrd.events import (
    ChunkEvent,
    ClientEvent,
    CompleteEvent,
    ErrorEvent,
    NoResponseEvent,
    PermissionRequiredEvent,
    SegmentEndEvent,
    TitleUpdateEvent,
    ToolEndEvent,
    ToolStartEvent,
    format_sse,
)
from ovrlrd.store.database import MessageStore, StoreError
from ovrlrd.store.models import Conversation
from ovrlrd.titles import generate_title

logger = logging.getLogger(__name__)


@dataclass
class _StreamState:
    outcome: TurnOutcome | None = None
    permission_required: bool = False
    error: str | None = None


class ChatService:
    """Glue between the HTTP layer, the bridge, and the message store.

    Database writes happen only after a turn's callbacks have all fired,
    never while the CLI process is being read.
    """

    def __init__(
        self,
        bridge: StreamingBridge,
        store: MessageStore,
        *,
        generate_titles: bool = True,
    ) -> None:
        self._bridge = bridge
        self._store = store
        self._generate_titles = generate_titles

    def cancel(self, conversation_id: str) -> bool:
        return self._bridge.cancel(conversation_id)

    # ------------------------------------------------------------------ #
    # Streaming
    # ------------------------------------------------------------------ #

    async def stream_message(
        self,
        conversation: Conversation,
        message: str,
        allowed_tools: Sequence[str] | None = None,
    ) -> AsyncIterator[str]:
        """Run one turn and yield its SSE frames as they happen.

        Raises:
            StoreError: When the incoming message can not be stored; no
                turn is started in that case.
        """
        tools = list(allowed_tools) if allowed_tools else None
        self._store_pre_stream_message(conversation.id, message, tools)
        if tools:
            logger.info(
                "Streaming request for %s with allowed tools: %s",
                conversation.id,
                ", ".join(tools),
            )
        else:
            logger.info("Streaming request for conversation: %s", conversation.id)

        queue: asyncio.Queue[ClientEvent | None] = asyncio.Queue()
        state = _StreamState()
        request = TurnRequest(
            conversation_id=conversation.id,
            input_text=message,
            resume_token=conversation.resume_token,
            allowed_tools=tools,
        )
        task = asyncio.create_task(
            self._bridge.run_turn(
                request, self._make_callbacks(conversation, state, queue.put_nowait)
            )
        )
        task.add_done_callback(lambda _t: queue.put_nowait(None))

        try:
            while (event := await queue.get()) is not None:
                yield format_sse(event)
            await task

            if state.error is not None or state.outcome is None:
                return
            for event in await self._persist(conversation, message, state):
                yield format_sse(event)
        finally:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    def _make_callbacks(
        self,
        conversation: Conversation,
        state: _StreamState,
        emit: Callable[[ClientEvent], None],
    ) -> TurnCallbacks:
        conversation_id = conversation.id

        def on_permission_required(outcome: TurnOutcome) -> None:
            state.outcome = outcome
            state.permission_required = True
            emit(
                PermissionRequiredEvent(
                    conversation_id=conversation_id, denials=outcome.denials
                )
            )

        def on_complete(outcome: TurnOutcome) -> None:
            state.outcome = outcome
            emit(CompleteEvent(conversation_id=conversation_id))

        def on_no_response(outcome: TurnOutcome) -> None:
            state.outcome = outcome
            emit(
                NoResponseEvent(
                    conversation_id=conversation_id, message=NO_RESPONSE_MESSAGE
                )
            )

        def on_error(message: str) -> None:
            logger.error("Stream error for %s: %s", conversation_id, message)
            state.error = message
            emit(ErrorEvent(message=message))

        return TurnCallbacks(
            on_chunk=lambda text: emit(ChunkEvent(content=text)),
            on_segment_end=lambda content: emit(
                SegmentEndEvent(conversation_id=conversation_id, content=content)
            ),
            on_tool_start=lambda name: emit(ToolStartEvent(tool_name=name)),
            on_tool_end=lambda name: emit(ToolEndEvent(tool_name=name)),
            on_complete=on_complete,
            on_no_response=on_no_response,
            on_permission_required=on_permission_required,
            on_error=on_error,
        )

    def _store_pre_stream_message(
        self, conversation_id: str, message: str, allowed_tools: list[str] | None
    ) -> None:
        if allowed_tools:
            self._store.create_message(
                conversation_id, "system", f"✓ Approved: {', '.join(allowed_tools)}"
            )
        else:
            self._store.create_message(conversation_id, "user", message)

    async def _persist(
        self, conversation: Conversation, message: str, state: _StreamState
    ) -> list[ClientEvent]:
        outcome = state.outcome
        if outcome is None:
            return []
        try:
            self._update_resume_token(conversation, outcome.resume_token)
            for segment in outcome.segments:
                self._store.create_message(conversation.id, "assistant", segment)
        except StoreError as exc:
            logger.error("Failed to store response: %s", exc)
            return [ErrorEvent(message="Failed to store response")]

        if state.permission_required or not outcome.segments:
            return []
        if not self._generate_titles:
            return []

        title = await self._update_title(conversation, message, outcome.segments)
        if title is None:
            return []
        return [TitleUpdateEvent(conversation_id=conversation.id, title=title)]

    async def _update_title(
        self, conversation: Conversation, message: str, segments: list[str]
    ) -> str | None:
        logger.info(
            "Generating title for conversation %s, current title: %s",
            conversation.id,
            conversation.title,
        )
        result = await generate_title(
            self._bridge,
            conversation.title,
            [("user", message), ("assistant", "\n".join(segments))],
        )
        if result.title is None:
            return None
        try:
            self._store.update_title(conversation.id, result.title)
        except StoreError as exc:
            logger.error("Failed to store title: %s", exc)
            return None
        logger.info("Updated title to: %s", result.title)
        return result.title

    def _update_resume_token(
        self, conversation: Conversation, resume_token: str | None
    ) -> None:
        if resume_token and resume_token != conversation.resume_token:
            self._store.update_resume_token(conversation.id, resume_token)

    # ------------------------------------------------------------------ #
    # Non-streaming
    # ------------------------------------------------------------------ #

    async def send_message(self, conversation: Conversation, message: str) -> str:
        """Store *message*, run a one-shot turn, store and return the reply.

        Raises:
            BridgeError: When the CLI turn fails.
            StoreError: When persistence fails.
        """
        self._store.create_message(conversation.id, "user", message)
        reply = await self._bridge.run_once(
            message,
            resume_token=conversation.resume_token,
            conversation_id=conversation.id,
        )
        self._update_resume_token(conversation, reply.resume_token)
        self._store.create_message(conversation.id, "assistant", reply.text)
        return reply.text
