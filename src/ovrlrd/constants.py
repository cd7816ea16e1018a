"""Shared constants for the ovrlrd runtime."""

from __future__ import annotations

#: Wall-clock limit for one Claude CLI turn, spawn to exit (seconds).
CLAUDE_TIMEOUT_SECONDS = 120.0

#: Wall-clock limit for a title-generation call (seconds).
TITLE_TIMEOUT_SECONDS = 15.0

#: Message sent to the client when a turn ends without visible output.
NO_RESPONSE_MESSAGE = "This command completed but produced no visible output."
