"""ovrlrd chat — stream one conversation turn as SSE frames."""

from __future__ import annotations

import asyncio

import click

from ovrlrd.bridge.orchestrator import StreamingBridge
from ovrlrd.chat import ChatService
from ovrlrd.commands._common import (
    CLI_USER_ID,
    config_option,
    load_or_exit,
    verbose_option,
)
from ovrlrd.store.database import MessageStore, StoreError
from ovrlrd.store.models import Conversation


@click.command()
@click.argument("message")
@click.option(
    "-c",
    "--conversation",
    "conversation_id",
    default=None,
    help="Conversation to continue (default: start a new one).",
)
@click.option(
    "--allow",
    "allowed_tools",
    multiple=True,
    help="Pre-approve a tool for this turn. Repeatable.",
)
@config_option
@verbose_option
def chat(
    message: str,
    conversation_id: str | None,
    allowed_tools: tuple[str, ...],
    config_file: str | None,
    verbose: bool,
) -> None:
    """Send MESSAGE and print each server-sent event as it arrives."""
    config = load_or_exit(config_file, verbose)
    store = MessageStore(config.db_path)
    try:
        store.initialize()
        conversation = _open_conversation(store, conversation_id)
        service = ChatService(StreamingBridge(config), store)
        asyncio.run(_stream(service, conversation, message, list(allowed_tools)))
    except StoreError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc
    finally:
        store.close()


def _open_conversation(
    store: MessageStore, conversation_id: str | None
) -> Conversation:
    if conversation_id is None:
        conversation = store.create_conversation(CLI_USER_ID)
        click.echo(f"Conversation: {conversation.id}", err=True)
        return conversation

    found = store.get_conversation(conversation_id)
    if found is None:
        click.echo(f"Error: Conversation not found: {conversation_id}", err=True)
        raise SystemExit(1)
    return found


async def _stream(
    service: ChatService,
    conversation: Conversation,
    message: str,
    allowed_tools: list[str],
) -> None:
    async for frame in service.stream_message(
        conversation, message, allowed_tools or None
    ):
        click.echo(frame, nl=False)
