"""Domain signals produced from raw Claude CLI stream events."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class PermissionDenial(BaseModel):
    """A tool call the CLI attempted but was not allowed to run."""

    model_config = ConfigDict(extra="ignore")

    tool_name: str = Field(description="Name of the denied tool")
    tool_use_id: str = Field(default="", description="CLI tool invocation id")
    tool_input: dict[str, Any] = Field(
        default_factory=dict,
        description="Arguments the tool was called with",
    )

    def dedupe_key(self) -> tuple[str, str]:
        """Identity of the logical denial, ignoring the invocation id."""
        return self.tool_name, json.dumps(self.tool_input, sort_keys=True)


@dataclass(frozen=True)
class SessionEstablished:
    """The CLI announced the session id to resume the next turn with."""

    resume_token: str


@dataclass(frozen=True)
class TextDelta:
    """A run of assistant text, or the output of a local slash command."""

    text: str
    source: Literal["assistant", "command"] = "assistant"


@dataclass(frozen=True)
class ToolInvoked:
    """The assistant started a tool call."""

    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TurnSucceeded:
    """Final ``result`` event without an error flag."""

    result_text: str = ""
    permission_denials: tuple[PermissionDenial, ...] = ()


@dataclass(frozen=True)
class TurnFailed:
    """Final ``result`` event with ``is_error`` set."""

    message: str


Signal = SessionEstablished | TextDelta | ToolInvoked | TurnSucceeded | TurnFailed
"""Union of every signal the classifier can emit."""
