"""Mapping between canonical tool values and MCP tool payloads.

- ``ToolDefinition`` <-> ``MCPToolDef`` (``parameters`` <-> ``inputSchema``)
- ``ToolCallPart`` <-> ``tools/call`` JSON-RPC request; the call id is the
  JSON-RPC request id
- ``ToolResultPart`` <-> ``CallToolResult``; ``is_error`` <-> ``isError``

Audio and embedded-resource content have no canonical counterpart and
raise ``UnrepresentableError`` when read.
"""

from __future__ import annotations

import json
from typing import Any

from chatwire.core.errors import InvalidFieldError, UnrepresentableError
from chatwire.core.interface.config import DEFAULT_CONFIG, TranscodeConfig
from chatwire.core.interface.models import ImagePart, TextPart, ToolCallPart, ToolDefinition, ToolResultPart
from chatwire.core.interface.registry_data import MCP
from chatwire.core.interface.transpilers.openai import OpenAITranspiler
from chatwire.core.wire.base import decode
from chatwire.protocols.mcp.models import (
    TOOL_LIST_ADAPTER,
    TOOLS_CALL,
    AudioContent,
    CallToolParams,
    CallToolResult,
    EmbeddedResource,
    ImageContent,
    JsonRpcRequest,
    JsonRpcResponse,
    MCPToolDef,
    TextContent,
    decode_call_params,
)

EMPTY_INPUT_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


def tool_definition_to_mcp(tool: ToolDefinition) -> MCPToolDef:
    """A tool without parameters gets an empty object schema."""
    fields: dict[str, Any] = {
        "name": tool.name,
        "input_schema": tool.parameters if tool.parameters is not None else EMPTY_INPUT_SCHEMA,
    }
    if tool.description is not None:
        fields["description"] = tool.description
    return MCPToolDef(**fields)


def tool_definition_from_mcp(tool: MCPToolDef) -> ToolDefinition:
    parameters = None if tool.input_schema == EMPTY_INPUT_SCHEMA else tool.input_schema
    return ToolDefinition(name=tool.name, description=tool.description, parameters=parameters)


# ---------------------------------------------------------------------------
# Tool calls
# ---------------------------------------------------------------------------


def tool_call_to_mcp(call: ToolCallPart) -> JsonRpcRequest:
    """Build the ``tools/call`` request that executes *call*."""
    try:
        arguments = json.loads(call.arguments) if call.arguments.strip() else {}
    except json.JSONDecodeError as exc:
        raise UnrepresentableError(
            f"arguments of tool call {call.id}", f"not valid JSON ({exc.msg})", MCP
        ) from exc
    if not isinstance(arguments, dict):
        raise UnrepresentableError(
            f"arguments of tool call {call.id}", "tools/call arguments must be a JSON object", MCP
        )
    params = CallToolParams(name=call.name, arguments=arguments)
    return JsonRpcRequest(method=TOOLS_CALL, id=call.id, params=params.to_wire())


def tool_call_from_mcp(request: JsonRpcRequest, **kwargs: Any) -> ToolCallPart:
    """Read a ``tools/call`` request as a tool call; the request id becomes the call id."""
    if request.method != TOOLS_CALL:
        raise InvalidFieldError("method", f"expected {TOOLS_CALL!r}, got {request.method!r}")
    call = decode_call_params(request, **kwargs)
    return ToolCallPart(id=str(request.id), name=call.name, arguments=json.dumps(call.arguments or {}))


# ---------------------------------------------------------------------------
# Tool results
# ---------------------------------------------------------------------------


def tool_result_to_mcp(result: ToolResultPart) -> CallToolResult:
    content: list[Any] = []
    for item in result.content:
        if isinstance(item, TextPart):
            content.append(TextContent(text=item.text))
        elif item.data is not None:
            content.append(ImageContent(data=item.data, mime_type=item.media_type or ""))
        else:
            raise UnrepresentableError("image URL in tool result", "MCP images are inline data", MCP)
    fields: dict[str, Any] = {"content": content}
    if result.is_error:
        fields["is_error"] = True
    return CallToolResult(**fields)


def tool_result_from_mcp(result: CallToolResult, call_id: str) -> ToolResultPart:
    content: list[TextPart | ImagePart] = []
    for item in result.content:
        if isinstance(item, TextContent):
            content.append(TextPart(text=item.text))
        elif isinstance(item, ImageContent):
            content.append(ImagePart(data=item.data, media_type=item.mime_type))
        elif isinstance(item, AudioContent):
            raise UnrepresentableError("audio content", "tool results hold text and images", "canonical")
        elif isinstance(item, EmbeddedResource):
            raise UnrepresentableError("embedded resource", "tool results hold text and images", "canonical")
    return ToolResultPart(call_id=call_id, content=tuple(content), is_error=bool(result.is_error))


def tool_result_to_response(result: ToolResultPart) -> JsonRpcResponse:
    """Wrap *result* in the JSON-RPC response answering call ``result.call_id``."""
    return JsonRpcResponse(id=result.call_id, result=tool_result_to_mcp(result).to_wire())


def tool_result_from_response(response: JsonRpcResponse, **kwargs: Any) -> ToolResultPart:
    """Read a ``tools/call`` response; a JSON-RPC error becomes an error result."""
    call_id = str(response.id)
    if response.error is not None:
        return ToolResultPart.from_text(call_id, response.error.message, is_error=True)
    if response.result is None:
        raise InvalidFieldError("result", "a response needs a result or an error")
    return tool_result_from_mcp(decode(CallToolResult, response.result, **kwargs), call_id)


# ---------------------------------------------------------------------------
# OpenAI <-> MCP pair
# ---------------------------------------------------------------------------


def openai_tools_to_mcp(payload: Any, config: TranscodeConfig = DEFAULT_CONFIG) -> list[dict[str, Any]]:
    """OpenAI ``tools`` array to a ``tools/list`` result's ``tools``."""
    tools = OpenAITranspiler(config).tools_from_wire(payload)
    return [tool_definition_to_mcp(tool).to_wire() for tool in tools]


def mcp_tools_to_openai(payload: Any, config: TranscodeConfig = DEFAULT_CONFIG) -> list[dict[str, Any]]:
    tools = decode(TOOL_LIST_ADAPTER, payload, config.decode_mode)
    return OpenAITranspiler(config).tools_to_wire(tool_definition_from_mcp(tool) for tool in tools)


def openai_tool_call_to_mcp(payload: Any, config: TranscodeConfig = DEFAULT_CONFIG) -> dict[str, Any]:
    """One OpenAI ``tool_calls`` entry to a ``tools/call`` request."""
    call = OpenAITranspiler(config).tool_call_from_wire(payload)
    return tool_call_to_mcp(call).to_wire()


def mcp_tool_call_to_openai(payload: Any, config: TranscodeConfig = DEFAULT_CONFIG) -> dict[str, Any]:
    request = decode(JsonRpcRequest, payload, config.decode_mode)
    call = tool_call_from_mcp(request, mode=config.decode_mode)
    return OpenAITranspiler(config).tool_call_to_wire(call)


def openai_tool_result_to_mcp(payload: Any, config: TranscodeConfig = DEFAULT_CONFIG) -> dict[str, Any]:
    """OpenAI ``tool`` message to the JSON-RPC response of the call it answers."""
    result = OpenAITranspiler(config).tool_result_from_wire(payload)
    return tool_result_to_response(result).to_wire()


def mcp_tool_result_to_openai(payload: Any, config: TranscodeConfig = DEFAULT_CONFIG) -> dict[str, Any]:
    response = decode(JsonRpcResponse, payload, config.decode_mode)
    result = tool_result_from_response(response, mode=config.decode_mode)
    return OpenAITranspiler(config).tool_result_to_wire(result)
