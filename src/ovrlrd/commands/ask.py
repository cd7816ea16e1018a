"""ovrlrd ask — one-shot prompt, whole reply printed at once."""

from __future__ import annotations

import asyncio

import click

from ovrlrd.bridge.errors import BridgeError
from ovrlrd.bridge.orchestrator import StreamingBridge
from ovrlrd.commands._common import config_option, load_or_exit, verbose_option


@click.command()
@click.argument("prompt")
@click.option(
    "--resume", "resume_token", default=None, help="CLI session id to resume."
)
@config_option
@verbose_option
def ask(
    prompt: str,
    resume_token: str | None,
    config_file: str | None,
    verbose: bool,
) -> None:
    """Send PROMPT to Claude and print the reply."""
    config = load_or_exit(config_file, verbose)
    bridge = StreamingBridge(config)
    try:
        reply = asyncio.run(bridge.run_once(prompt, resume_token=resume_token))
    except BridgeError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    click.echo(reply.text)
    if reply.resume_token:
        click.echo(f"Session: {reply.resume_token}", err=True)
