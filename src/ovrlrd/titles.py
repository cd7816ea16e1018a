"""Conversation title generation via a short one-shot CLI call."""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass

from ovrlrd.bridge.errors import BridgeError
from ovrlrd.bridge.orchestrator import StreamingBridge

logger = logging.getLogger(__name__)

#: How many of the latest messages feed the prompt.
_CONTEXT_MESSAGES = 4

#: Characters kept from each message.
_CONTEXT_CHARS = 200

_MAX_TITLE_CHARS = 60

_KEEP = "KEEP"


@dataclass
class TitleResult:
    """``title`` is None when the current title should stay."""

    title: str | None
    error: str | None = None


def build_title_prompt(
    current_title: str | None, recent_messages: Sequence[tuple[str, str]]
) -> str:
    context = "\n".join(
        f"{role}: {content[:_CONTEXT_CHARS]}"
        for role, content in recent_messages[-_CONTEXT_MESSAGES:]
    )
    if current_title:
        return (
            f'Current title: "{current_title}"\n\n'
            f"Recent conversation:\n{context}\n\n"
            "If the topic has significantly shifted, provide a new short title "
            "(3-6 words) that captures the current topic. If the topic is the "
            f"same, respond with just: {_KEEP}\n\n"
            f"Respond with ONLY the new title or {_KEEP}, nothing else."
        )
    return (
        f"Conversation:\n{context}\n\n"
        "Provide a short title (3-6 words) that captures what this conversation "
        "is about. Respond with ONLY the title, nothing else."
    )


def clean_title(raw: str) -> str | None:
    """Normalize model output into a title, or None to keep the old one."""
    text = raw.strip()
    if not text or text == _KEEP:
        return None
    if text[0] in "\"'":
        text = text[1:]
    if text and text[-1] in "\"'":
        text = text[:-1]
    text = text.strip()
    if not text:
        return None
    if len(text) > _MAX_TITLE_CHARS:
        text = text[: _MAX_TITLE_CHARS - 3] + "..."
    return text


async def generate_title(
    bridge: StreamingBridge,
    current_title: str | None,
    recent_messages: Sequence[tuple[str, str]],
) -> TitleResult:
    """Ask the CLI for a title for *recent_messages* (``(role, content)`` pairs).

    Never raises; failures come back as ``TitleResult(title=None, error=...)``.
    """
    if not recent_messages:
        return TitleResult(title=None, error="No messages to generate title from")

    logger.info("Generating title, current: %s", current_title)
    prompt = build_title_prompt(current_title, recent_messages)

    try:
        reply = await bridge.run_once(
            prompt,
            timeout=bridge.config.title_timeout_seconds,
            work_dir=os.environ.get("HOME") or "/",
        )
    except BridgeError as exc:
        logger.error("Title generation failed: %s", exc)
        return TitleResult(title=None, error="Title generation failed")

    title = clean_title(reply.text)
    if title is None:
        logger.info("Keeping existing title")
    else:
        logger.info("Generated title: %s", title)
    return TitleResult(title=title)
