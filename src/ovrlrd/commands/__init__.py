"""Click subcommands of the ``ovrlrd`` CLI."""
