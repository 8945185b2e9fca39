"""Claude (Anthropic messages API) wire shapes.

The system prompt is a top-level field rather than a message, content
blocks are discriminated by ``type``, and streaming responses are a
sequence of typed events rather than uniform chunks.
"""

from typing import Any, Literal

from chatwire.core.wire.base import (
    TagTable,
    WireModel,
    adapter,
    decode,
    tagged_union,
    text_or_parts,
)

# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------


class TextBlock(WireModel):
    wire_tags = ("type",)

    type: Literal["text"] = "text"
    text: str


class Base64Source(WireModel):
    wire_tags = ("type",)

    type: Literal["base64"] = "base64"
    media_type: str
    data: str


class URLSource(WireModel):
    wire_tags = ("type",)

    type: Literal["url"] = "url"
    url: str


IMAGE_SOURCE_TAGS: TagTable = {"base64": Base64Source, "url": URLSource}
ImageSource = tagged_union("type", IMAGE_SOURCE_TAGS)


class ImageBlock(WireModel):
    wire_tags = ("type",)

    type: Literal["image"] = "image"
    source: ImageSource


class ToolUseBlock(WireModel):
    wire_tags = ("type",)

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]


TOOL_RESULT_CONTENT_TAGS: TagTable = {"text": TextBlock, "image": ImageBlock}
ToolResultContent = text_or_parts(tagged_union("type", TOOL_RESULT_CONTENT_TAGS))


class ToolResultBlock(WireModel):
    wire_tags = ("type",)

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: ToolResultContent | None = None
    is_error: bool | None = None


CONTENT_BLOCK_TAGS: TagTable = {
    "text": TextBlock,
    "image": ImageBlock,
    "tool_use": ToolUseBlock,
    "tool_result": ToolResultBlock,
}
ContentBlock = tagged_union("type", CONTENT_BLOCK_TAGS)
MessageContent = text_or_parts(ContentBlock)

SYSTEM_BLOCK_TAGS: TagTable = {"text": TextBlock}
SystemPrompt = text_or_parts(tagged_union("type", SYSTEM_BLOCK_TAGS))

# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


class Message(WireModel):
    role: Literal["user", "assistant"]
    content: MessageContent


class Tool(WireModel):
    name: str
    description: str | None = None
    input_schema: dict[str, Any]


class ToolChoiceAuto(WireModel):
    wire_tags = ("type",)

    type: Literal["auto"] = "auto"
    disable_parallel_tool_use: bool | None = None


class ToolChoiceAny(WireModel):
    wire_tags = ("type",)

    type: Literal["any"] = "any"
    disable_parallel_tool_use: bool | None = None


class ToolChoiceTool(WireModel):
    wire_tags = ("type",)

    type: Literal["tool"] = "tool"
    name: str
    disable_parallel_tool_use: bool | None = None


class ToolChoiceNone(WireModel):
    wire_tags = ("type",)

    type: Literal["none"] = "none"


TOOL_CHOICE_TAGS: TagTable = {
    "auto": ToolChoiceAuto,
    "any": ToolChoiceAny,
    "tool": ToolChoiceTool,
    "none": ToolChoiceNone,
}
ToolChoice = tagged_union("type", TOOL_CHOICE_TAGS)


class MessagesRequest(WireModel):
    """Body of ``POST /v1/messages``; ``max_tokens`` is required."""

    model: str
    messages: list[Message]
    max_tokens: int
    system: SystemPrompt | None = None
    tools: list[Tool] | None = None
    tool_choice: ToolChoice | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    stop_sequences: list[str] | None = None
    stream: bool | None = None
    metadata: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Non-streaming response
# ---------------------------------------------------------------------------


class Usage(WireModel):
    input_tokens: int
    output_tokens: int
    cache_creation_input_tokens: int | None = None
    cache_read_input_tokens: int | None = None


RESPONSE_BLOCK_TAGS: TagTable = {"text": TextBlock, "tool_use": ToolUseBlock}
ResponseBlock = tagged_union("type", RESPONSE_BLOCK_TAGS)


class MessageResponse(WireModel):
    wire_tags = ("type", "role")

    id: str
    type: Literal["message"] = "message"
    role: Literal["assistant"] = "assistant"
    model: str
    content: list[ResponseBlock]
    stop_reason: str | None = None
    stop_sequence: str | None = None
    usage: Usage


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------


class MessageStartEvent(WireModel):
    wire_tags = ("type",)

    type: Literal["message_start"] = "message_start"
    message: MessageResponse


class ContentBlockStartEvent(WireModel):
    wire_tags = ("type",)

    type: Literal["content_block_start"] = "content_block_start"
    index: int
    content_block: ResponseBlock


class TextDelta(WireModel):
    wire_tags = ("type",)

    type: Literal["text_delta"] = "text_delta"
    text: str


class InputJSONDelta(WireModel):
    wire_tags = ("type",)

    type: Literal["input_json_delta"] = "input_json_delta"
    partial_json: str


DELTA_TAGS: TagTable = {"text_delta": TextDelta, "input_json_delta": InputJSONDelta}
BlockDelta = tagged_union("type", DELTA_TAGS)


class ContentBlockDeltaEvent(WireModel):
    wire_tags = ("type",)

    type: Literal["content_block_delta"] = "content_block_delta"
    index: int
    delta: BlockDelta


class ContentBlockStopEvent(WireModel):
    wire_tags = ("type",)

    type: Literal["content_block_stop"] = "content_block_stop"
    index: int


class MessageDeltaBody(WireModel):
    stop_reason: str | None = None
    stop_sequence: str | None = None


class MessageDeltaUsage(WireModel):
    output_tokens: int
    input_tokens: int | None = None


class MessageDeltaEvent(WireModel):
    wire_tags = ("type",)

    type: Literal["message_delta"] = "message_delta"
    delta: MessageDeltaBody
    usage: MessageDeltaUsage | None = None


class MessageStopEvent(WireModel):
    wire_tags = ("type",)

    type: Literal["message_stop"] = "message_stop"


class PingEvent(WireModel):
    wire_tags = ("type",)

    type: Literal["ping"] = "ping"


class ErrorBody(WireModel):
    type: str
    message: str


class ErrorEvent(WireModel):
    wire_tags = ("type",)

    type: Literal["error"] = "error"
    error: ErrorBody


STREAM_EVENT_TAGS: TagTable = {
    "message_start": MessageStartEvent,
    "content_block_start": ContentBlockStartEvent,
    "content_block_delta": ContentBlockDeltaEvent,
    "content_block_stop": ContentBlockStopEvent,
    "message_delta": MessageDeltaEvent,
    "message_stop": MessageStopEvent,
    "ping": PingEvent,
    "error": ErrorEvent,
}
StreamEvent = tagged_union("type", STREAM_EVENT_TAGS)

STREAM_EVENT_ADAPTER = adapter(StreamEvent)


def decode_event(payload: Any, **kwargs: Any) -> Any:
    """Decode one server-sent event payload, selected by its ``type`` tag."""
    return decode(STREAM_EVENT_ADAPTER, payload, **kwargs)
