"""Exception hierarchy for the Claude CLI bridge."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for every failure raised by the bridge."""


class SpawnError(BridgeError):
    """The Claude CLI could not be started."""


class WriteError(BridgeError):
    """Writing the turn input to the process failed."""


class ReadError(BridgeError):
    """Reading the process output stream failed."""


class TurnTimeoutError(BridgeError):
    """The turn exceeded its wall-clock limit and the process was killed."""


class TurnFailedError(BridgeError):
    """The CLI reported an error result for the turn."""


class ProcessExitError(BridgeError):
    """The CLI exited with a non-zero status."""

    def __init__(self, returncode: int, stderr: str = "") -> None:
        super().__init__(f"Claude CLI exited with code {returncode}")
        self.returncode = returncode
        self.stderr = stderr


class TurnCancelledError(BridgeError):
    """The turn was cancelled or evicted by a newer turn."""
