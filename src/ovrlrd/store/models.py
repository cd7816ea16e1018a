"""Pydantic v2 models for stored conversations and messages."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "assistant", "system"]


class Conversation(BaseModel):
    """A chat thread and the CLI session it resumes."""

    model_config = ConfigDict(extra="forbid")

    id: str
    user_id: str
    resume_token: str | None = Field(
        default=None,
        description="CLI session id to pass as --resume on the next turn",
    )
    title: str | None = None
    created_at: str
    updated_at: str


class Message(BaseModel):
    """One stored message of a conversation."""

    model_config = ConfigDict(extra="forbid")

    id: str
    conversation_id: str
    role: Role
    content: str
    created_at: str
