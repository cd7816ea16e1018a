"""Setup shared by every subcommand: config loading and logging."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from ovrlrd.config.models import BridgeConfig
from ovrlrd.config.parser import ConfigError, load_config

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

#: User id stored on conversations created from the command line.
CLI_USER_ID = "cli"

config_option = click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
verbose_option = click.option(
    "-v", "--verbose", is_flag=True, help="Also log debug output to stderr."
)


def configure_logging(log_path: str, verbose: bool = False) -> None:
    """Log everything to *log_path*; warnings (all with -v) to stderr."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(_LOG_FORMAT)
    try:
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
    except OSError as exc:
        click.echo(f"Warning: cannot open log file {log_path}: {exc}", err=True)
    else:
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    stderr_handler.setFormatter(formatter)
    root.addHandler(stderr_handler)


def load_or_exit(config_file: str | None, verbose: bool) -> BridgeConfig:
    """Load config and set up logging, or print the error and exit 1."""
    try:
        config = load_config(Path(config_file) if config_file else None)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc
    configure_logging(config.log_path, verbose)
    return config
