"""Tests for MCP JSON-RPC and tool payload models."""

import pytest

from chatwire.core.errors import UnknownVariantError
from chatwire.core.wire.base import decode
from chatwire.protocols.mcp.models import (
    TOOL_LIST_ADAPTER,
    CallToolResult,
    ImageContent,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    MCPToolDef,
    TextContent,
    decode_call_params,
)


class TestJsonRpcRequest:
    def test_defaults(self) -> None:
        req = JsonRpcRequest(method="tools/list")
        assert req.jsonrpc == "2.0"
        assert req.id == 1
        assert req.params is None

    def test_wire_shape(self) -> None:
        req = JsonRpcRequest(method="tools/call", id="call_1", params={"name": "read_file"})
        assert req.to_wire() == {
            "jsonrpc": "2.0",
            "method": "tools/call",
            "id": "call_1",
            "params": {"name": "read_file"},
        }

    def test_call_params(self) -> None:
        req = decode(JsonRpcRequest, {"jsonrpc": "2.0", "method": "tools/call", "id": 3, "params": {"name": "ls"}})
        params = decode_call_params(req)
        assert params.name == "ls"
        assert params.arguments is None


class TestJsonRpcResponse:
    def test_error(self) -> None:
        resp = decode(JsonRpcResponse, {"jsonrpc": "2.0", "id": 5, "error": {"code": -32601, "message": "Not found"}})
        assert resp.error == JsonRpcError(code=-32601, message="Not found")
        assert resp.result is None

    def test_extra_members_survive(self) -> None:
        payload = {"jsonrpc": "2.0", "id": 5, "result": {}, "x-trace": "t"}
        assert decode(JsonRpcResponse, payload).to_wire() == payload


class TestToolPayloads:
    def test_tool_list_uses_camel_case(self) -> None:
        (tool,) = decode(TOOL_LIST_ADAPTER, [{"name": "ls", "inputSchema": {"type": "object"}}])
        assert tool.input_schema == {"type": "object"}
        assert tool.to_wire() == {"name": "ls", "inputSchema": {"type": "object"}}

    def test_tool_def_by_field_name(self) -> None:
        tool = MCPToolDef(name="ls", input_schema={"type": "object"}, description="List")
        assert tool.to_wire()["inputSchema"] == {"type": "object"}

    def test_result_content_variants(self) -> None:
        result = decode(
            CallToolResult,
            {
                "content": [
                    {"type": "text", "text": "hi"},
                    {"type": "image", "data": "aGk=", "mimeType": "image/png"},
                ],
                "isError": False,
            },
        )
        assert result.content == [
            TextContent(text="hi"),
            ImageContent(data="aGk=", mime_type="image/png"),
        ]
        assert result.is_error is False

    def test_empty_result_still_emits_content(self) -> None:
        assert CallToolResult().to_wire() == {"content": []}

    def test_unknown_content_type(self) -> None:
        with pytest.raises(UnknownVariantError) as exc_info:
            decode(CallToolResult, {"content": [{"type": "video", "data": "x"}]})
        assert exc_info.value.value == "video"
        assert exc_info.value.path == "content[0]"
