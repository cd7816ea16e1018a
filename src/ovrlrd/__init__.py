"""ovrlrd: streaming bridge between the Claude CLI and SSE clients."""

__version__ = "0.1.0"
