"""Claude CLI streaming bridge: decode, classify, reconstruct, orchestrate."""

from ovrlrd.bridge.callbacks import CallbackGate, TurnCallbacks, TurnOutcome
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
from ovrlrd.bridge.orchestrator import OneShotReply, StreamingBridge, TurnRequest
from ovrlrd.bridge.registry import SessionHandle, SessionRegistry
from ovrlrd.bridge.segments import SegmentReconstructor, SegmentState, dedupe_denials
from ovrlrd.bridge.signals import (
    PermissionDenial,
    SessionEstablished,
    Signal,
    TextDelta,
    ToolInvoked,
    TurnFailed,
    TurnSucceeded,
)

__all__ = [
    "BridgeError",
    "CallbackGate",
    "LineDecoder",
    "OneShotReply",
    "PermissionDenial",
    "ProcessExitError",
    "ReadError",
    "SegmentReconstructor",
    "SegmentState",
    "SessionEstablished",
    "SessionHandle",
    "SessionRegistry",
    "Signal",
    "SpawnError",
    "StreamingBridge",
    "TextDelta",
    "ToolInvoked",
    "TurnCallbacks",
    "TurnCancelledError",
    "TurnFailed",
    "TurnFailedError",
    "TurnOutcome",
    "TurnRequest",
    "TurnSucceeded",
    "TurnTimeoutError",
    "WriteError",
    "classify",
    "dedupe_denials",
]
