from ovrlrd.cli import cli

cli()
