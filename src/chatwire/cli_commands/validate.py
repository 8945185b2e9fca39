"""``chatwire validate``: decode a payload file and report every schema error."""

from __future__ import annotations

import sys

import click

from chatwire.cli_commands._output import (
    PROVIDER_CHOICES,
    console,
    load_payload,
    print_request_summary,
    print_response_summary,
    print_schema_errors,
)
from chatwire.core.errors import ChatwireError, SchemaError, SchemaErrorGroup
from chatwire.core.interface.config import TranscodeConfig
from chatwire.core.interface.transcode import get_transpiler
from chatwire.core.wire.base import DecodeMode


@click.command()
@click.argument("payload_file", type=click.Path(exists=True))
@click.option(
    "--provider", "-p", type=click.Choice(PROVIDER_CHOICES), default="openai", help="Wire shape of the payload."
)
@click.option("--kind", type=click.Choice(["request", "response"]), default="request", help="Payload kind.")
@click.option("--model", default="", help="Model name for Gemini payloads, whose body has none.")
@click.option("--json", "as_json", is_flag=True, help="Print the decoded canonical value as JSON.")
def validate(payload_file: str, provider: str, kind: str, model: str, as_json: bool) -> None:
    """Validate PAYLOAD_FILE against a provider's wire schema.

    All schema errors are collected and listed; the exit status is 1 when
    there are any.
    """
    payload = load_payload(payload_file)
    transpiler = get_transpiler(provider, TranscodeConfig(decode_mode=DecodeMode.COLLECT), model=model)

    try:
        if kind == "request":
            value = transpiler.request_from_wire(payload)
        else:
            value = transpiler.response_from_wire(payload)
    except SchemaErrorGroup as group:
        print_schema_errors(list(group.exceptions))
        sys.exit(1)
    except SchemaError as exc:
        print_schema_errors([exc])
        sys.exit(1)
    except ChatwireError as exc:
        console.print(f"[red]{type(exc).__name__}:[/red] {exc}")
        sys.exit(1)

    if as_json:
        console.print_json(value.model_dump_json())
    elif kind == "request":
        print_request_summary(value, provider)
    else:
        print_response_summary(value, provider)
