"""``chatwire transcode`` / ``chatwire pairs``: translate payloads between providers."""

from __future__ import annotations

import json
import sys

import click

from chatwire.cli_commands._output import console, load_payload, print_pairs_table
from chatwire.core.errors import ChatwireError
from chatwire.core.interface.config import TranscodeConfig
from chatwire.core.interface.registry_data import KNOWN_PROVIDERS
from chatwire.core.interface.transcode import (
    REQUEST,
    RESPONSE,
    TOOL_CALL,
    TOOL_RESULT,
    TOOLS,
    supported_pairs,
)
from chatwire.core.interface.transcode import transcode as run_transcode

_KINDS = [REQUEST, RESPONSE, TOOLS, TOOL_CALL, TOOL_RESULT]


@click.command()
@click.argument("payload_file", type=click.Path(exists=True))
@click.option("--from", "source", type=click.Choice(sorted(KNOWN_PROVIDERS)), required=True, help="Source shape.")
@click.option("--to", "target", type=click.Choice(sorted(KNOWN_PROVIDERS)), required=True, help="Target shape.")
@click.option("--kind", type=click.Choice(_KINDS), default=REQUEST, help="Payload kind.")
@click.option("--model", default="", help="Model name for Gemini, whose request body has none.")
@click.option("--split-parallel", is_flag=True, help="Split parallel tool calls into sequential pairs.")
@click.option("--merge-roles", is_flag=True, help="Fold consecutive same-role messages into one turn.")
def transcode(
    payload_file: str,
    source: str,
    target: str,
    kind: str,
    model: str,
    split_parallel: bool,
    merge_roles: bool,
) -> None:
    """Translate PAYLOAD_FILE from one provider's shape to another's.

    The translated payload is written to stdout as JSON.
    """
    payload = load_payload(payload_file)
    config = TranscodeConfig(split_parallel_tool_calls=split_parallel, merge_consecutive_roles=merge_roles)
    options: dict[str, str] = {}
    if kind in (REQUEST, RESPONSE):
        options["model"] = model

    try:
        result = run_transcode(payload, source, target, kind, config, **options)
    except ChatwireError as exc:
        console.print(f"[red]{type(exc).__name__}:[/red] {exc}")
        sys.exit(1)

    click.echo(json.dumps(result, indent=2, ensure_ascii=False))


@click.command()
def pairs() -> None:
    """List the registered provider pairs per payload kind."""
    print_pairs_table({kind: supported_pairs(kind) for kind in _KINDS})
