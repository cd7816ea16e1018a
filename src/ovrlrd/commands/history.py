"""ovrlrd history — print the stored messages of a conversation."""

from __future__ import annotations

import click

from ovrlrd.commands._common import config_option, load_or_exit, verbose_option
from ovrlrd.store.database import DEFAULT_MESSAGE_LIMIT, MessageStore, StoreError


@click.command()
@click.argument("conversation_id")
@click.option(
    "-n",
    "--limit",
    type=int,
    default=DEFAULT_MESSAGE_LIMIT,
    show_default=True,
    help="Number of most recent messages to show.",
)
@config_option
@verbose_option
def history(
    conversation_id: str,
    limit: int,
    config_file: str | None,
    verbose: bool,
) -> None:
    """Show the title and messages of CONVERSATION_ID, oldest first."""
    config = load_or_exit(config_file, verbose)
    store = MessageStore(config.db_path)
    try:
        store.initialize()
        conversation = store.get_conversation(conversation_id)
        if conversation is None:
            click.echo(f"Error: Conversation not found: {conversation_id}", err=True)
            raise SystemExit(1)

        click.echo(f"# {conversation.title or '(untitled)'}")
        for msg in store.get_messages(conversation_id, limit=limit):
            click.echo(f"[{msg.created_at}] {msg.role}: {msg.content}")
    except StoreError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc
    finally:
        store.close()
