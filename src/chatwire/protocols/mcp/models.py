"""MCP models: JSON-RPC 2.0 envelopes and tool payloads.

Covers the subset of the Model Context Protocol that carries tools:
definitions returned by ``tools/list`` and the ``tools/call`` request and
result.  Result content items are discriminated by ``type``.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from chatwire.core.wire.base import TagTable, WireModel, adapter, decode, tagged_union

TOOLS_LIST = "tools/list"
TOOLS_CALL = "tools/call"

# ---------------------------------------------------------------------------
# JSON-RPC 2.0 envelope
# ---------------------------------------------------------------------------


class JsonRpcRequest(WireModel):
    """A JSON-RPC 2.0 request message."""

    wire_tags = ("jsonrpc",)

    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    id: int | str = 1
    params: dict[str, Any] | None = None


class JsonRpcError(WireModel):
    """A JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None


class JsonRpcResponse(WireModel):
    """A JSON-RPC 2.0 response message."""

    wire_tags = ("jsonrpc",)

    jsonrpc: Literal["2.0"] = "2.0"
    id: int | str | None = 1
    result: dict[str, Any] | None = None
    error: JsonRpcError | None = None


# ---------------------------------------------------------------------------
# Tool payloads
# ---------------------------------------------------------------------------


class MCPToolDef(WireModel):
    """A tool definition as returned by ``tools/list``."""

    name: str
    description: str | None = None
    input_schema: dict[str, Any] = Field(alias="inputSchema")


class CallToolParams(WireModel):
    """``params`` of a ``tools/call`` request."""

    name: str
    arguments: dict[str, Any] | None = None


class TextContent(WireModel):
    wire_tags = ("type",)

    type: Literal["text"] = "text"
    text: str


class ImageContent(WireModel):
    wire_tags = ("type",)

    type: Literal["image"] = "image"
    data: str
    mime_type: str = Field(alias="mimeType")


class AudioContent(WireModel):
    wire_tags = ("type",)

    type: Literal["audio"] = "audio"
    data: str
    mime_type: str = Field(alias="mimeType")


class EmbeddedResource(WireModel):
    wire_tags = ("type",)

    type: Literal["resource"] = "resource"
    resource: dict[str, Any]


CONTENT_TAGS: TagTable = {
    "text": TextContent,
    "image": ImageContent,
    "audio": AudioContent,
    "resource": EmbeddedResource,
}
Content = tagged_union("type", CONTENT_TAGS)


class CallToolResult(WireModel):
    """``result`` of a ``tools/call`` response."""

    wire_tags = ("content",)

    content: list[Content] = Field(default_factory=list)
    is_error: bool | None = Field(default=None, alias="isError")


TOOL_LIST_ADAPTER = adapter(list[MCPToolDef])


def decode_call_params(request: JsonRpcRequest, **kwargs: Any) -> CallToolParams:
    """Decode the ``params`` of a ``tools/call`` request."""
    return decode(CallToolParams, request.params or {}, **kwargs)
