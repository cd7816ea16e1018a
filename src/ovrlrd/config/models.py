"""Pydantic v2 models for ovrlrd configuration."""

from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ovrlrd.constants import CLAUDE_TIMEOUT_SECONDS, TITLE_TIMEOUT_SECONDS


def _default_work_dir() -> str:
    return os.environ.get("HOME") or "/"


class BridgeConfig(BaseModel):
    """Settings for spawning the Claude CLI and storing conversations."""

    model_config = ConfigDict(extra="forbid")

    claude_path: str = Field(
        default="claude",
        description="Executable name or path of the Claude CLI",
    )
    work_dir: str = Field(
        default_factory=_default_work_dir,
        description="Working directory the CLI runs in",
    )
    additional_dirs: list[str] = Field(
        default_factory=list,
        description="Extra directories the CLI may access (--add-dir)",
    )
    timeout_seconds: float = Field(
        default=CLAUDE_TIMEOUT_SECONDS,
        gt=0,
        description="Wall-clock limit for one turn, spawn to exit",
    )
    title_timeout_seconds: float = Field(
        default=TITLE_TIMEOUT_SECONDS,
        gt=0,
        description="Wall-clock limit for title generation",
    )
    db_path: str = Field(
        default="./ovrlrd.db",
        description="SQLite database file",
    )
    log_path: str = Field(
        default="./debug.log",
        description="Log file written by the CLI",
    )

    @field_validator("claude_path", "work_dir")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            msg = "must not be empty"
            raise ValueError(msg)
        return value

    @field_validator("additional_dirs", mode="before")
    @classmethod
    def _split_dirs(cls, value: object) -> object:
        # Accept the colon-separated form used by CLAUDE_ADDITIONAL_DIRS.
        if isinstance(value, str):
            return [part for part in value.split(":") if part]
        return value
