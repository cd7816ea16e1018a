"""Tests for mapping raw CLI events onto signals."""

from __future__ import annotations

from typing import Any

from ovrlrd.bridge.classifier import classify
from ovrlrd.bridge.signals import (
    PermissionDenial,
    SessionEstablished,
    TextDelta,
    ToolInvoked,
    TurnFailed,
    TurnSucceeded,
)


def _assistant(*blocks: dict[str, Any]) -> dict[str, Any]:
    return {"type": "assistant", "message": {"content": list(blocks)}}


class TestSystemEvents:
    def test_init_establishes_session(self) -> None:
        event = {"type": "system", "subtype": "init", "session_id": "abc-123"}
        assert classify(event) == [SessionEstablished("abc-123")]

    def test_init_without_session_id_ignored(self) -> None:
        assert classify({"type": "system", "subtype": "init"}) == []

    def test_other_subtypes_ignored(self) -> None:
        event = {"type": "system", "subtype": "compact", "session_id": "abc"}
        assert classify(event) == []


class TestAssistantEvents:
    def test_blocks_in_array_order(self) -> None:
        event = _assistant(
            {"type": "text", "text": "Let me check."},
            {"type": "tool_use", "id": "t1", "name": "Bash", "input": {"command": "ls"}},
            {"type": "text", "text": "Done."},
        )
        assert classify(event) == [
            TextDelta("Let me check."),
            ToolInvoked("Bash", {"command": "ls"}),
            TextDelta("Done."),
        ]

    def test_empty_text_skipped(self) -> None:
        assert classify(_assistant({"type": "text", "text": ""})) == []

    def test_tool_without_name_skipped(self) -> None:
        assert classify(_assistant({"type": "tool_use", "input": {}})) == []

    def test_non_dict_tool_input_becomes_empty(self) -> None:
        signals = classify(_assistant({"type": "tool_use", "name": "Read", "input": "x"}))
        assert signals == [ToolInvoked("Read", {})]

    def test_thinking_blocks_ignored(self) -> None:
        assert classify(_assistant({"type": "thinking", "thinking": "hmm"})) == []

    def test_malformed_message_ignored(self) -> None:
        assert classify({"type": "assistant", "message": "nope"}) == []
        assert classify({"type": "assistant", "message": {"content": "nope"}}) == []
        assert classify({"type": "assistant"}) == []


class TestResultEvents:
    def test_success(self) -> None:
        event = {"type": "result", "subtype": "success", "result": "All good", "is_error": False}
        assert classify(event) == [TurnSucceeded("All good")]

    def test_error_carries_message(self) -> None:
        event = {"type": "result", "result": "boom", "is_error": True}
        assert classify(event) == [TurnFailed("boom")]

    def test_error_without_message(self) -> None:
        assert classify({"type": "result", "is_error": True}) == [TurnFailed("Unknown error")]

    def test_permission_denials_parsed(self) -> None:
        event = {
            "type": "result",
            "result": "",
            "is_error": False,
            "permission_denials": [
                {"tool_name": "Write", "tool_use_id": "1", "tool_input": {"path": "/a"}},
            ],
        }
        [signal] = classify(event)
        assert isinstance(signal, TurnSucceeded)
        assert signal.permission_denials == (
            PermissionDenial(tool_name="Write", tool_use_id="1", tool_input={"path": "/a"}),
        )

    def test_malformed_denial_skipped(self) -> None:
        event = {
            "type": "result",
            "is_error": False,
            "permission_denials": [
                {"tool_use_id": "no-name"},
                {"tool_name": "Bash", "tool_input": {"command": "ls"}},
            ],
        }
        [signal] = classify(event)
        assert isinstance(signal, TurnSucceeded)
        assert [d.tool_name for d in signal.permission_denials] == ["Bash"]


class TestUserEvents:
    def test_command_output_extracted(self) -> None:
        event = {
            "type": "user",
            "message": {
                "content": "<local-command-stdout>\n  Total cost: $0.01\n</local-command-stdout>"
            },
        }
        assert classify(event) == [TextDelta("Total cost: $0.01", source="command")]

    def test_tool_results_ignored(self) -> None:
        event = {
            "type": "user",
            "message": {"content": [{"type": "tool_result", "content": "file.txt"}]},
        }
        assert classify(event) == []

    def test_plain_string_without_marker_ignored(self) -> None:
        assert classify({"type": "user", "message": {"content": "hi"}}) == []

    def test_empty_command_output_ignored(self) -> None:
        event = {
            "type": "user",
            "message": {"content": "<local-command-stdout>  </local-command-stdout>"},
        }
        assert classify(event) == []


class TestUnknownEvents:
    def test_unknown_type_ignored(self) -> None:
        assert classify({"type": "stream_event", "event": {}}) == []

    def test_missing_type_ignored(self) -> None:
        assert classify({"foo": "bar"}) == []
