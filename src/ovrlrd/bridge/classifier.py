"""Map raw Claude CLI ``stream-json`` events onto domain signals."""

from __future__ import annotations

import logging
import re
from typing import Any

from pydantic import ValidationError

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

#: Wrapper the CLI puts around the output of local slash commands.
_COMMAND_OUTPUT_RE = re.compile(
    r"<local-command-stdout>(.*?)</local-command-stdout>", re.DOTALL
)


def classify(event: dict[str, Any]) -> list[Signal]:
    """Translate one decoded event into zero or more signals.

    Claude CLI ``--output-format stream-json --verbose`` emits these
    top-level event types:

    * ``system``    -- ``init`` subtype carries the ``session_id``.
    * ``assistant`` -- content blocks in ``message.content[]``; ``text``
      and ``tool_use`` blocks are kept in array order.
    * ``user``      -- tool results fed back to the model; a string body
      may wrap slash-command output.
    * ``result``    -- final event with ``result``, ``is_error`` and
      ``permission_denials``.

    Everything else is ignored.
    """
    event_type = event.get("type")

    if event_type == "system":
        session_id = event.get("session_id")
        if event.get("subtype") == "init" and isinstance(session_id, str) and session_id:
            return [SessionEstablished(session_id)]
        return []

    if event_type == "assistant":
        return _classify_content_blocks(event)

    if event_type == "result":
        return [_classify_result(event)]

    if event_type == "user":
        return _classify_command_output(event)

    return []


def _classify_content_blocks(event: dict[str, Any]) -> list[Signal]:
    message = event.get("message")
    if not isinstance(message, dict):
        return []
    blocks = message.get("content")
    if not isinstance(blocks, list):
        return []

    signals: list[Signal] = []
    for block in blocks:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text":
            text = block.get("text")
            if isinstance(text, str) and text:
                signals.append(TextDelta(text))
        elif block_type == "tool_use":
            name = block.get("name")
            if isinstance(name, str) and name:
                tool_input = block.get("input")
                if not isinstance(tool_input, dict):
                    tool_input = {}
                signals.append(ToolInvoked(name, tool_input))
    return signals


def _classify_result(event: dict[str, Any]) -> Signal:
    result = event.get("result")
    result_text = result if isinstance(result, str) else ""

    if event.get("is_error"):
        return TurnFailed(result_text or "Unknown error")

    return TurnSucceeded(result_text, _parse_denials(event.get("permission_denials")))


def _parse_denials(raw: object) -> tuple[PermissionDenial, ...]:
    if not isinstance(raw, list):
        return ()
    denials: list[PermissionDenial] = []
    for item in raw:
        try:
            denials.append(PermissionDenial.model_validate(item))
        except ValidationError as exc:
            logger.warning("Skipping malformed permission denial: %s", exc)
    return tuple(denials)


def _classify_command_output(event: dict[str, Any]) -> list[Signal]:
    message = event.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if not isinstance(content, str):
        return []
    match = _COMMAND_OUTPUT_RE.search(content)
    if match is None:
        return []
    output = match.group(1).strip()
    if not output:
        return []
    return [TextDelta(output, source="command")]
