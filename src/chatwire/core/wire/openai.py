"""OpenAI chat-completions wire shapes.

Requests, non-streaming completions and streaming chunks are separate
top-level types.  Completions and chunks are told apart by their
``object`` tag; the SSE terminator ``[DONE]`` decodes to :data:`DONE`.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import Discriminator, Tag

from chatwire.core.wire.base import (
    TagTable,
    WireModel,
    adapter,
    decode,
    tagged_union,
    text_or_parts,
)

DONE = "[DONE]"
"""Sentinel for the ``data: [DONE]`` line that ends an OpenAI stream."""

# ---------------------------------------------------------------------------
# Content parts
# ---------------------------------------------------------------------------


class TextContentPart(WireModel):
    wire_tags = ("type",)

    type: Literal["text"] = "text"
    text: str


class ImageURL(WireModel):
    url: str
    detail: Literal["auto", "low", "high"] | None = None


class ImageURLContentPart(WireModel):
    wire_tags = ("type",)

    type: Literal["image_url"] = "image_url"
    image_url: ImageURL


USER_CONTENT_PART_TAGS: TagTable = {
    "text": TextContentPart,
    "image_url": ImageURLContentPart,
}
TEXT_CONTENT_PART_TAGS: TagTable = {"text": TextContentPart}

UserContentPart = tagged_union("type", USER_CONTENT_PART_TAGS)
TextOnlyPart = tagged_union("type", TEXT_CONTENT_PART_TAGS)

UserContent = text_or_parts(UserContentPart)
TextContent = text_or_parts(TextOnlyPart)

# ---------------------------------------------------------------------------
# Tool calls and tool definitions
# ---------------------------------------------------------------------------


class FunctionCall(WireModel):
    name: str
    arguments: str


class ToolCall(WireModel):
    """An assistant tool call; ``arguments`` stays an opaque JSON string."""

    wire_tags = ("type",)

    id: str
    type: Literal["function"] = "function"
    function: FunctionCall


TOOL_CALL_TAGS: TagTable = {"function": ToolCall}
ToolCallItem = tagged_union("type", TOOL_CALL_TAGS)


class FunctionDefinition(WireModel):
    name: str
    description: str | None = None
    parameters: dict[str, Any] | None = None
    strict: bool | None = None


class Tool(WireModel):
    wire_tags = ("type",)

    type: Literal["function"] = "function"
    function: FunctionDefinition


TOOL_TAGS: TagTable = {"function": Tool}
ToolItem = tagged_union("type", TOOL_TAGS)


class ToolChoiceFunction(WireModel):
    name: str


class NamedToolChoice(WireModel):
    wire_tags = ("type",)

    type: Literal["function"] = "function"
    function: ToolChoiceFunction


TOOL_CHOICE_MODES = ("none", "auto", "required")

ToolChoice = Annotated[
    Union[  # noqa: UP007
        Annotated[Literal["none", "auto", "required"], Tag("mode")],
        Annotated[tagged_union("type", {"function": NamedToolChoice}), Tag("named")],
    ],
    Discriminator(lambda v: "mode" if isinstance(v, str) else "named"),
]

# ---------------------------------------------------------------------------
# Request messages (discriminated by ``role``)
# ---------------------------------------------------------------------------


class SystemMessage(WireModel):
    wire_tags = ("role",)

    role: Literal["system"] = "system"
    content: TextContent
    name: str | None = None


class UserMessage(WireModel):
    wire_tags = ("role",)

    role: Literal["user"] = "user"
    content: UserContent
    name: str | None = None


class AssistantMessage(WireModel):
    wire_tags = ("role",)

    role: Literal["assistant"] = "assistant"
    content: TextContent | None = None
    name: str | None = None
    refusal: str | None = None
    tool_calls: list[ToolCallItem] | None = None


class ToolMessage(WireModel):
    wire_tags = ("role",)

    role: Literal["tool"] = "tool"
    content: TextContent
    tool_call_id: str


MESSAGE_TAGS: TagTable = {
    "system": SystemMessage,
    "user": UserMessage,
    "assistant": AssistantMessage,
    "tool": ToolMessage,
}
Message = tagged_union("role", MESSAGE_TAGS)


class ChatCompletionRequest(WireModel):
    """Body of ``POST /v1/chat/completions``.

    Parameters not modelled here (``n``, ``seed``, ``response_format``...)
    are kept as extra fields and re-emitted unchanged.
    """

    model: str
    messages: list[Message]
    tools: list[ToolItem] | None = None
    tool_choice: ToolChoice | None = None
    parallel_tool_calls: bool | None = None
    max_tokens: int | None = None
    max_completion_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    stop: str | list[str] | None = None
    stream: bool | None = None


# ---------------------------------------------------------------------------
# Non-streaming completion
# ---------------------------------------------------------------------------


class CompletionUsage(WireModel):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ResponseMessage(WireModel):
    wire_tags = ("role",)

    role: Literal["assistant"] = "assistant"
    content: str | None = None
    refusal: str | None = None
    tool_calls: list[ToolCallItem] | None = None


class Choice(WireModel):
    index: int
    message: ResponseMessage
    finish_reason: str | None = None
    logprobs: Any = None


class ChatCompletion(WireModel):
    wire_tags = ("object",)

    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: list[Choice]
    usage: CompletionUsage | None = None
    system_fingerprint: str | None = None


# ---------------------------------------------------------------------------
# Streaming chunk
# ---------------------------------------------------------------------------


class FunctionCallDelta(WireModel):
    name: str | None = None
    arguments: str | None = None


class ToolCallDelta(WireModel):
    index: int
    id: str | None = None
    type: Literal["function"] | None = None
    function: FunctionCallDelta | None = None


class ChoiceDelta(WireModel):
    role: Literal["assistant"] | None = None
    content: str | None = None
    refusal: str | None = None
    tool_calls: list[ToolCallDelta] | None = None


class ChunkChoice(WireModel):
    index: int
    delta: ChoiceDelta
    finish_reason: str | None = None
    logprobs: Any = None


class ChatCompletionChunk(WireModel):
    """One ``data:`` line of a streamed completion.

    The optional usage-only chunk sent with ``stream_options.include_usage``
    has an empty ``choices`` list.
    """

    wire_tags = ("object",)

    id: str
    object: Literal["chat.completion.chunk"] = "chat.completion.chunk"
    created: int
    model: str
    choices: list[ChunkChoice]
    usage: CompletionUsage | None = None
    system_fingerprint: str | None = None


RESPONSE_OBJECT_TAGS: TagTable = {
    "chat.completion": ChatCompletion,
    "chat.completion.chunk": ChatCompletionChunk,
}
ResponseObject = tagged_union("object", RESPONSE_OBJECT_TAGS)

RESPONSE_ADAPTER = adapter(ResponseObject)
MESSAGE_ADAPTER = adapter(Message)


def decode_response(payload: Any, **kwargs: Any) -> ChatCompletion | ChatCompletionChunk:
    """Decode a completion or a chunk, selected by its ``object`` tag."""
    return decode(RESPONSE_ADAPTER, payload, **kwargs)


def decode_chunk(payload: Any, **kwargs: Any) -> ChatCompletionChunk | str:
    """Decode one streamed item; the ``[DONE]`` terminator returns :data:`DONE`."""
    if payload == DONE:
        return DONE
    return decode(ChatCompletionChunk, payload, **kwargs)
