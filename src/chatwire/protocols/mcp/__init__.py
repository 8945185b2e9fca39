"""MCP protocol: tool definitions, ``tools/call`` and results."""

from chatwire.protocols.mcp.models import (
    CallToolResult,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    MCPToolDef,
)

__all__ = [
    "CallToolResult",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "MCPToolDef",
]
