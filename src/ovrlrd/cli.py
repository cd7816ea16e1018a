"""Root CLI group and version flag."""

import click

from ovrlrd import __version__
from ovrlrd.commands.ask import ask
from ovrlrd.commands.chat import chat
from ovrlrd.commands.history import history


@click.group()
@click.version_option(version=__version__, prog_name="ovrlrd")
def cli() -> None:
    """Ovrlrd — stream Claude CLI conversations as server-sent events."""


cli.add_command(ask)
cli.add_command(chat)
cli.add_command(history)
