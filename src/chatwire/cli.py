"""Command-line entry point for ``chatwire``."""

from __future__ import annotations

import click

from chatwire import __version__
from chatwire.cli_commands import register_commands
from chatwire.utils.telemetry import configure_telemetry


@click.group()
@click.version_option(version=__version__, prog_name="chatwire")
@click.option("--trace", is_flag=True, help="Print transcode spans to stdout (needs chatwire[otel]).")
@click.option("--otlp-endpoint", default=None, help="Also export spans to this OTLP/gRPC collector.")
def main(trace: bool, otlp_endpoint: str | None) -> None:
    """chatwire: inspect and translate LLM chat wire payloads."""
    if trace or otlp_endpoint:
        try:
            configure_telemetry(service_name="chatwire-cli", export_to_console=trace, otlp_endpoint=otlp_endpoint)
        except ImportError as exc:
            raise click.UsageError(str(exc)) from exc


register_commands(main)

if __name__ == "__main__":
    main()
