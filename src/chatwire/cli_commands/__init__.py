"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from chatwire.cli_commands.count import count
    from chatwire.cli_commands.transcode import pairs, transcode
    from chatwire.cli_commands.validate import validate

    cli.add_command(validate)
    cli.add_command(transcode)
    cli.add_command(pairs)
    cli.add_command(count)
