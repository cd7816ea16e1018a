"""Pydantic v2 models for the client-facing SSE event stream."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag

from ovrlrd.bridge.signals import PermissionDenial


class _ClientEventBase(BaseModel):
    """Common configuration shared by every client event."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ChunkEvent(_ClientEventBase):
    """Incremental assistant text."""

    type: Literal["chunk"] = "chunk"
    content: str = Field(description="Text delta")


class SegmentEndEvent(_ClientEventBase):
    """A text segment was finalized because a tool is about to run."""

    type: Literal["segment_end"] = "segment_end"
    conversation_id: str = Field(alias="conversationId")
    content: str = Field(description="Full text of the finished segment")


class ToolStartEvent(_ClientEventBase):
    type: Literal["tool_start"] = "tool_start"
    tool_name: str = Field(alias="toolName")


class ToolEndEvent(_ClientEventBase):
    type: Literal["tool_end"] = "tool_end"
    tool_name: str = Field(alias="toolName")


class CompleteEvent(_ClientEventBase):
    """Turn finished with visible output."""

    type: Literal["complete"] = "complete"
    conversation_id: str = Field(alias="conversationId")


class NoResponseEvent(_ClientEventBase):
    """Turn finished without any visible output."""

    type: Literal["no_response"] = "no_response"
    conversation_id: str = Field(alias="conversationId")
    message: str = Field(description="Human-readable explanation")


class PermissionRequiredEvent(_ClientEventBase):
    """Turn halted until the user approves the denied tools."""

    type: Literal["permission_required"] = "permission_required"
    conversation_id: str = Field(alias="conversationId")
    denials: list[PermissionDenial] = Field(description="Deduplicated denials")


class ErrorEvent(_ClientEventBase):
    """Turn failed. ``message`` is short and safe to show the user."""

    type: Literal["error"] = "error"
    message: str


class TitleUpdateEvent(_ClientEventBase):
    """The conversation was given a new title after the turn."""

    type: Literal["title_update"] = "title_update"
    conversation_id: str = Field(alias="conversationId")
    title: str


def _event_discriminator(v: Any) -> str:
    if isinstance(v, dict):
        return str(v.get("type", ""))
    return str(getattr(v, "type", ""))


ClientEvent = Annotated[
    Annotated[ChunkEvent, Tag("chunk")]
    | Annotated[SegmentEndEvent, Tag("segment_end")]
    | Annotated[ToolStartEvent, Tag("tool_start")]
    | Annotated[ToolEndEvent, Tag("tool_end")]
    | Annotated[CompleteEvent, Tag("complete")]
    | Annotated[NoResponseEvent, Tag("no_response")]
    | Annotated[PermissionRequiredEvent, Tag("permission_required")]
    | Annotated[ErrorEvent, Tag("error")]
    | Annotated[TitleUpdateEvent, Tag("title_update")],
    Discriminator(_event_discriminator),
]
"""Discriminated union of all client events."""


def format_sse(event: ClientEvent) -> str:
    """Frame *event* as one SSE message: ``data: <json>`` plus a blank line."""
    return f"data: {event.model_dump_json(by_alias=True)}\n\n"
