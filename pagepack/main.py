"""CLI entry point for pagepack."""

from __future__ import annotations

import click
from dotenv import load_dotenv

from pagepack.commands.archive.cmd import inspect
from pagepack.commands.capture.cmd import capture

load_dotenv()


@click.group()
@click.version_option(version="0.1.0", prog_name="pagepack")
def cli() -> None:
    """Capture single web pages into WACZ archives."""


cli.add_command(capture)
cli.add_command(inspect)


if __name__ == "__main__":
    cli()
