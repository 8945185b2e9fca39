"""``chatwire count``: estimate the prompt tokens of a request payload."""

from __future__ import annotations

import sys

import click

from chatwire.cli_commands._output import PROVIDER_CHOICES, console, load_payload, print_count_table
from chatwire.core.context.counter_registry import get_counter
from chatwire.core.context.pricing import estimate_cost
from chatwire.core.errors import ChatwireError
from chatwire.core.interface.models import Usage
from chatwire.core.interface.transcode import get_transpiler


@click.command()
@click.argument("payload_file", type=click.Path(exists=True))
@click.option(
    "--provider", "-p", type=click.Choice(PROVIDER_CHOICES), default="openai", help="Wire shape of the payload."
)
@click.option("--model", default="", help="Count for this model instead of the payload's.")
def count(payload_file: str, provider: str, model: str) -> None:
    """Estimate the prompt tokens of the request in PAYLOAD_FILE."""
    payload = load_payload(payload_file)
    try:
        request = get_transpiler(provider, model=model).request_from_wire(payload)
    except ChatwireError as exc:
        console.print(f"[red]{type(exc).__name__}:[/red] {exc}")
        sys.exit(1)

    name = model or request.model
    counts = get_counter(name, provider).count(request.messages, request.tools)
    cost = estimate_cost(name, Usage(input_tokens=counts.total))
    print_count_table(request, counts, cost)
