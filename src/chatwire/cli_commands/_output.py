"""Shared CLI helpers: payload loading and rich output formatters."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from chatwire.core.context.counter import TokenCount
    from chatwire.core.errors import SchemaError
    from chatwire.core.interface.models import ChatRequest, ChatResponse

console = Console()

PROVIDER_CHOICES = ["openai", "claude", "gemini"]


def load_payload(payload_file: str) -> Any:
    """Read a JSON payload from *payload_file*; exits with status 1 on bad JSON."""
    try:
        return json.loads(Path(payload_file).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        console.print(f"[red]Error reading payload:[/red] {exc}")
        sys.exit(1)


def print_schema_errors(errors: list[SchemaError]) -> None:
    """Pretty-print schema errors as a table."""
    table = Table(title=f"{len(errors)} schema error(s)")
    table.add_column("Path", style="cyan")
    table.add_column("Error")
    table.add_column("Message")

    for error in errors:
        table.add_row(error.path or "<root>", type(error).__name__, _truncate(str(error)))

    console.print(table)


def print_request_summary(request: ChatRequest, provider: str) -> None:
    console.print(f"[green]Valid {provider} request.[/green]")
    console.print(f"  Model: {request.model or '(none)'}")
    console.print(f"  Messages: {len(request.messages)}")
    console.print(f"  Tools: {len(request.tools)}")
    if request.extra:
        console.print(f"  Extra fields: {', '.join(sorted(request.extra))}")


def print_response_summary(response: ChatResponse, provider: str) -> None:
    console.print(f"[green]Valid {provider} response.[/green]")
    console.print(f"  Id: {response.id}")
    console.print(f"  Model: {response.model}")
    finish = response.finish_reason.kind.value if response.finish_reason else "-"
    console.print(f"  Finish reason: {finish}")
    console.print(f"  Tool calls: {len(response.tool_calls)}")
    console.print(f"  Usage: {response.usage.input_tokens} in / {response.usage.output_tokens} out")


def print_count_table(request: ChatRequest, counts: TokenCount, cost: float) -> None:
    """Pretty-print per-message token counts, the total and its estimated cost."""
    table = Table(title=f"Token estimate for {request.model or 'unknown model'}")
    table.add_column("#", justify="right")
    table.add_column("Role", style="cyan")
    table.add_column("Tokens", justify="right")
    table.add_column("Preview")

    for index, (message, tokens) in enumerate(zip(request.messages, counts.per_message, strict=True)):
        table.add_row(str(index), message.role.value, str(tokens), _truncate(message.text, 40))
    if counts.tools:
        table.add_row("", "tools", str(counts.tools), f"{len(request.tools)} definition(s)")

    console.print(table)
    console.print(f"Total: {counts.total}")
    console.print(f"Estimated input cost: ${cost:.6f}")


def print_pairs_table(pairs: dict[str, list[tuple[str, str]]]) -> None:
    table = Table(title="Registered transcoders")
    table.add_column("Kind", style="cyan")
    table.add_column("Source")
    table.add_column("Target")

    for kind, entries in pairs.items():
        for source, target in entries:
            table.add_row(kind, source, target)

    console.print(table)


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
