"""OpenAI transpiler: the canonical model is closest to ChatML, so this is the simplest mapping.

Encoding defaults, which decoding reverses without hints:

- ``content`` is a string when a message holds exactly one text part and
  an array otherwise (``content_array`` records an array holding one part)
- an assistant message without text sends ``"content": null``
  (``content_absent`` records a missing key)
- each tool-result part becomes its own ``tool`` message
- ``max_tokens`` goes out as ``max_completion_tokens`` (``legacy_max_tokens``
  records the older field); ``stop`` goes out as a list (``stop_string``)
- message fields the canonical model lacks (``refusal``, ``annotations``...)
  ride in ``Message.extra``; an explicit ``"refusal": null`` is only a
  hint (``refusal_null``)
"""

import logging
import re
from typing import Any

from chatwire.core.errors import InvalidFieldError, UnrepresentableError
from chatwire.core.interface.capabilities import ProviderCapabilities
from chatwire.core.interface.config import DEFAULT_CONFIG, TranscodeConfig
from chatwire.core.interface.models import (
    ChatRequest,
    ChatResponse,
    FinishKind,
    ImagePart,
    Message,
    Role,
    TextPart,
    ToolCallPart,
    ToolChoice,
    ToolDefinition,
    ToolResultPart,
    Usage,
)
from chatwire.core.interface.registry_data import KNOWN_PROVIDERS, OPENAI
from chatwire.core.interface.transpiler import FinishReasonTable, request_extra, response_extra
from chatwire.core.wire import openai as wire
from chatwire.core.wire.base import adapter, decode

logger = logging.getLogger(__name__)

FINISH_REASONS = FinishReasonTable(
    OPENAI,
    known={
        "stop": FinishKind.STOP,
        "length": FinishKind.LENGTH,
        "tool_calls": FinishKind.TOOL_CALLS,
        "content_filter": FinishKind.CONTENT_FILTER,
        "function_call": FinishKind.TOOL_CALLS,
    },
    defaults={
        FinishKind.STOP: "stop",
        FinishKind.LENGTH: "length",
        FinishKind.TOOL_CALLS: "tool_calls",
        FinishKind.CONTENT_FILTER: "content_filter",
    },
)

_DATA_URI = re.compile(r"^data:(?P<media_type>[^;,]+);base64,(?P<data>.*)$", re.DOTALL)

HINT_CONTENT_ARRAY = "content_array"
HINT_CONTENT_ABSENT = "content_absent"
HINT_LEGACY_MAX_TOKENS = "legacy_max_tokens"
HINT_STOP_STRING = "stop_string"
HINT_NO_USAGE = "no_usage"
HINT_REFUSAL_NULL = "refusal_null"

_TOOLS_ADAPTER = adapter(list[wire.ToolItem])
_TOOL_CALL_ADAPTER = adapter(wire.ToolCallItem)


class OpenAITranspiler:
    """Converts between the canonical model and OpenAI's chat completion format."""

    provider = OPENAI

    def __init__(
        self,
        config: TranscodeConfig = DEFAULT_CONFIG,
        capabilities: ProviderCapabilities | None = None,
    ) -> None:
        self.config = config
        self.capabilities = capabilities or KNOWN_PROVIDERS[OPENAI]

    # -- requests -------------------------------------------------------------

    def request_from_wire(self, payload: Any) -> ChatRequest:
        """Convert an OpenAI request body to a ``ChatRequest``."""
        body = self._decode(wire.ChatCompletionRequest, payload)

        messages: list[Message] = []
        for msg in body.messages:
            messages.extend(_message_from_openai(msg))

        hints: set[str] = set()
        max_tokens = body.max_completion_tokens
        extra = dict(body.model_extra or {})
        if body.max_tokens is not None:
            if max_tokens is None:
                max_tokens = body.max_tokens
                hints.add(HINT_LEGACY_MAX_TOKENS)
            else:
                extra["max_tokens"] = body.max_tokens

        stop: tuple[str, ...] | None = None
        if isinstance(body.stop, str):
            stop = (body.stop,)
            hints.add(HINT_STOP_STRING)
        elif body.stop is not None:
            stop = tuple(body.stop)

        return ChatRequest(
            model=body.model,
            messages=tuple(messages),
            tools=tuple(_tool_from_openai(t) for t in body.tools or []),
            tool_choice=_tool_choice_from_openai(body.tool_choice),
            parallel_tool_calls=body.parallel_tool_calls,
            max_tokens=max_tokens,
            temperature=body.temperature,
            top_p=body.top_p,
            stop=stop,
            stream=body.stream,
            extra=extra,
            extra_provider=OPENAI if extra else None,
            hints=frozenset(hints),
        )

    def request_to_wire(self, request: ChatRequest) -> dict[str, Any]:
        """Convert a ``ChatRequest`` to an OpenAI request body."""
        self.capabilities.check_request(request)
        fields: dict[str, Any] = {"model": request.model}
        fields["messages"] = [out for msg in request.messages for out in _message_to_openai(msg)]

        if request.tools:
            fields["tools"] = [_tool_to_openai(tool) for tool in request.tools]
        if request.tool_choice is not None:
            fields["tool_choice"] = _tool_choice_to_openai(request.tool_choice)
        if request.parallel_tool_calls is not None:
            fields["parallel_tool_calls"] = request.parallel_tool_calls
        if request.max_tokens is not None:
            key = "max_tokens" if HINT_LEGACY_MAX_TOKENS in request.hints else "max_completion_tokens"
            fields[key] = request.max_tokens
        if request.temperature is not None:
            fields["temperature"] = request.temperature
        if request.top_p is not None:
            fields["top_p"] = request.top_p
        if request.stop is not None:
            if HINT_STOP_STRING in request.hints and len(request.stop) == 1:
                fields["stop"] = request.stop[0]
            else:
                fields["stop"] = list(request.stop)
        if request.stream is not None:
            fields["stream"] = request.stream
        fields.update(request_extra(request, OPENAI))

        return wire.ChatCompletionRequest(**fields).to_wire()

    # -- responses ------------------------------------------------------------

    def response_from_wire(self, payload: Any) -> ChatResponse:
        """Convert an OpenAI chat completion to a ``ChatResponse``."""
        completion = self._decode(wire.ChatCompletion, payload)
        if not completion.choices:
            raise InvalidFieldError("choices", "a completion needs one choice")
        if len(completion.choices) > 1:
            raise UnrepresentableError("multiple choices", "a response holds one message", "canonical")

        choice = completion.choices[0]
        message = choice.message
        message_hints: set[str] = set()
        parts: list[Any] = []
        if message.content is not None:
            parts.append(TextPart(text=message.content))
        elif "content" not in message.model_fields_set:
            message_hints.add(HINT_CONTENT_ABSENT)
        parts.extend(_tool_call_from_openai(tc) for tc in message.tool_calls or [])
        message_extra = _extra_from_openai(message, message_hints)

        hints: set[str] = set()
        usage = Usage()
        if completion.usage is not None:
            usage = Usage(
                input_tokens=completion.usage.prompt_tokens,
                output_tokens=completion.usage.completion_tokens,
            )
        else:
            hints.add(HINT_NO_USAGE)

        extra = dict(completion.model_extra or {})
        if completion.system_fingerprint is not None:
            extra["system_fingerprint"] = completion.system_fingerprint
        if choice.logprobs is not None:
            extra["logprobs"] = choice.logprobs

        return ChatResponse(
            id=completion.id,
            model=completion.model,
            message=Message(
                role=Role.ASSISTANT,
                parts=tuple(parts),
                hints=frozenset(message_hints),
                extra=message_extra,
                extra_provider=OPENAI if message_extra else None,
            ),
            finish_reason=FINISH_REASONS.decode(choice.finish_reason),
            usage=usage,
            created=completion.created,
            extra=extra,
            extra_provider=OPENAI if extra else None,
            hints=frozenset(hints),
        )

    def response_to_wire(self, response: ChatResponse) -> dict[str, Any]:
        """Convert a ``ChatResponse`` to an OpenAI chat completion."""
        self.capabilities.check_response(response)
        text, tool_calls = _split_assistant(response.message)

        message: dict[str, Any] = {}
        if text:
            message["content"] = "".join(p.text for p in text)
        elif HINT_CONTENT_ABSENT not in response.message.hints:
            message["content"] = None
        if tool_calls:
            message["tool_calls"] = [_tool_call_to_openai(tc) for tc in tool_calls]
        message.update(_extra_to_openai(response.message))

        extra = response_extra(response, OPENAI)
        choice: dict[str, Any] = {
            "index": 0,
            "message": wire.ResponseMessage(**message),
            "finish_reason": FINISH_REASONS.encode(response.finish_reason),
            "logprobs": extra.pop("logprobs", None),
        }

        fields: dict[str, Any] = {
            "id": response.id,
            "created": response.created,
            "model": response.model,
            "choices": [wire.Choice(**choice)],
        }
        if HINT_NO_USAGE not in response.hints:
            fields["usage"] = wire.CompletionUsage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
                total_tokens=response.usage.total_tokens,
            )
        fields.update(extra)
        return wire.ChatCompletion(**fields).to_wire()

    # -- tool payloads --------------------------------------------------------

    def tools_from_wire(self, payload: Any) -> list[ToolDefinition]:
        """Decode a ``tools`` array."""
        return [_tool_from_openai(tool) for tool in self._decode(_TOOLS_ADAPTER, payload)]

    def tools_to_wire(self, tools: Any) -> list[dict[str, Any]]:
        return [_tool_to_openai(tool).to_wire() for tool in tools]

    def tool_call_from_wire(self, payload: Any) -> ToolCallPart:
        """Decode one entry of an assistant message's ``tool_calls``."""
        return _tool_call_from_openai(self._decode(_TOOL_CALL_ADAPTER, payload))

    def tool_call_to_wire(self, call: ToolCallPart) -> dict[str, Any]:
        return _tool_call_to_openai(call).to_wire()

    def tool_result_from_wire(self, payload: Any) -> ToolResultPart:
        """Decode a ``tool`` message into the result it carries."""
        (message,) = _message_from_openai(self._decode(wire.ToolMessage, payload))
        if message.extra:
            keys = ", ".join(sorted(message.extra))
            raise UnrepresentableError(
                f"tool message fields ({keys})", "a tool result carries no message fields", "canonical"
            )
        return message.tool_results[0]

    def tool_result_to_wire(self, result: ToolResultPart) -> dict[str, Any]:
        """Encode *result* as a ``tool`` message."""
        message = Message.tool(result)
        self.capabilities.check_message(message)
        (out,) = _message_to_openai(message)
        return out.to_wire()

    def _decode(self, model: Any, payload: Any) -> Any:
        if isinstance(model, type) and isinstance(payload, model):
            return payload
        return decode(model, payload, self.config.decode_mode)


# ---------------------------------------------------------------------------
# Message mapping
# ---------------------------------------------------------------------------


def _message_from_openai(msg: Any) -> list[Message]:
    """Convert one OpenAI message; a tool message maps to a Tool-role message."""
    hints: set[str] = set()

    extra = _extra_from_openai(msg, hints)
    provider = OPENAI if extra else None

    if isinstance(msg, wire.ToolMessage):
        content = _parts_from_openai(msg.content, hints)
        result = ToolResultPart(call_id=msg.tool_call_id, content=tuple(content))
        return [
            Message(role=Role.TOOL, parts=(result,), hints=frozenset(hints), extra=extra, extra_provider=provider)
        ]

    if isinstance(msg, wire.AssistantMessage):
        parts: list[Any] = []
        if msg.content is not None:
            parts.extend(_parts_from_openai(msg.content, hints))
        elif "content" not in msg.model_fields_set:
            hints.add(HINT_CONTENT_ABSENT)
        parts.extend(_tool_call_from_openai(tc) for tc in msg.tool_calls or [])
        return [
            Message(
                role=Role.ASSISTANT,
                parts=tuple(parts),
                name=msg.name,
                hints=frozenset(hints),
                extra=extra,
                extra_provider=provider,
            )
        ]

    role = Role.SYSTEM if isinstance(msg, wire.SystemMessage) else Role.USER
    parts = _parts_from_openai(msg.content, hints)
    return [
        Message(
            role=role,
            parts=tuple(parts),
            name=msg.name,
            hints=frozenset(hints),
            extra=extra,
            extra_provider=provider,
        )
    ]


def _extra_from_openai(msg: Any, hints: set[str]) -> dict[str, Any]:
    extra = dict(msg.model_extra or {})
    if "refusal" in type(msg).model_fields and "refusal" in msg.model_fields_set:
        if msg.refusal is None:
            hints.add(HINT_REFUSAL_NULL)
        else:
            extra["refusal"] = msg.refusal
    return extra


def _extra_to_openai(msg: Message) -> dict[str, Any]:
    """Message fields to re-emit; foreign ones were already rejected by the capability check."""
    fields: dict[str, Any] = {}
    if HINT_REFUSAL_NULL in msg.hints:
        fields["refusal"] = None
    fields.update(msg.extra)
    return fields


def _parts_from_openai(content: str | list[Any], hints: set[str]) -> list[Any]:
    if isinstance(content, str):
        return [TextPart(text=content)]
    if len(content) == 1 and isinstance(content[0], wire.TextContentPart):
        hints.add(HINT_CONTENT_ARRAY)
    parts: list[Any] = []
    for item in content:
        if isinstance(item, wire.TextContentPart):
            parts.append(TextPart(text=item.text))
        else:
            parts.append(_image_from_openai(item.image_url))
    return parts


def _image_from_openai(image: wire.ImageURL) -> ImagePart:
    match = _DATA_URI.match(image.url)
    if match:
        return ImagePart(
            data=match.group("data"),
            media_type=match.group("media_type"),
            detail=image.detail,
        )
    return ImagePart(url=image.url, detail=image.detail)


def _tool_call_from_openai(tc: wire.ToolCall) -> ToolCallPart:
    return ToolCallPart(id=tc.id, name=tc.function.name, arguments=tc.function.arguments)


def _message_to_openai(msg: Message) -> list[Any]:
    """Convert a canonical message to one or more OpenAI messages."""
    if msg.role is Role.TOOL:
        if msg.name is not None:
            raise UnrepresentableError("tool message name", "tool messages carry no name", OPENAI)
        if len(msg.tool_results) > 1:
            logger.debug("Splitting %d tool results into separate tool messages", len(msg.tool_results))
        return [
            wire.ToolMessage(
                tool_call_id=result.call_id,
                content=_content_to_openai(result.content, msg.hints),
                **msg.extra,
            )
            for result in msg.tool_results
        ]

    extra: dict[str, Any] = {}
    if msg.name is not None:
        extra["name"] = msg.name

    if msg.role is Role.ASSISTANT:
        text, tool_calls = _split_assistant(msg)
        if text:
            extra["content"] = _content_to_openai(text, msg.hints)
        elif HINT_CONTENT_ABSENT not in msg.hints:
            extra["content"] = None
        if tool_calls:
            extra["tool_calls"] = [_tool_call_to_openai(tc) for tc in tool_calls]
        extra.update(_extra_to_openai(msg))
        return [wire.AssistantMessage(**extra)]

    extra.update(msg.extra)
    content = _content_to_openai(msg.parts, msg.hints)
    if msg.role is Role.SYSTEM:
        return [wire.SystemMessage(content=content, **extra)]
    return [wire.UserMessage(content=content, **extra)]


def _split_assistant(msg: Message) -> tuple[list[TextPart], list[ToolCallPart]]:
    """Separate text from tool calls; text after a tool call has no place on the wire."""
    text: list[TextPart] = []
    calls: list[ToolCallPart] = []
    for part in msg.parts:
        if isinstance(part, ToolCallPart):
            calls.append(part)
        elif isinstance(part, TextPart):
            if calls:
                raise UnrepresentableError(
                    "text after tool call",
                    "assistant text always precedes tool_calls",
                    OPENAI,
                )
            text.append(part)
    return text, calls


def _content_to_openai(parts: Any, hints: frozenset[str]) -> str | list[Any]:
    """String for a lone text part, otherwise a content array."""
    parts = list(parts)
    if len(parts) == 1 and isinstance(parts[0], TextPart) and HINT_CONTENT_ARRAY not in hints:
        return parts[0].text
    items: list[Any] = []
    for part in parts:
        if isinstance(part, TextPart):
            items.append(wire.TextContentPart(text=part.text))
        else:
            image: dict[str, Any] = {"url": part.data_uri}
            if part.detail is not None:
                image["detail"] = part.detail
            items.append(wire.ImageURLContentPart(image_url=wire.ImageURL(**image)))
    return items


def _tool_call_to_openai(tc: ToolCallPart) -> wire.ToolCall:
    return wire.ToolCall(
        id=tc.id,
        function=wire.FunctionCall(name=tc.name, arguments=tc.arguments),
    )


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


def _tool_from_openai(tool: wire.Tool) -> ToolDefinition:
    return ToolDefinition(
        name=tool.function.name,
        description=tool.function.description,
        parameters=tool.function.parameters,
    )


def _tool_to_openai(tool: ToolDefinition) -> wire.Tool:
    function: dict[str, Any] = {"name": tool.name}
    if tool.description is not None:
        function["description"] = tool.description
    if tool.parameters is not None:
        function["parameters"] = tool.parameters
    return wire.Tool(function=wire.FunctionDefinition(**function))


def _tool_choice_from_openai(choice: Any) -> ToolChoice | None:
    if choice is None:
        return None
    if isinstance(choice, str):
        return ToolChoice(mode=choice)
    return ToolChoice.tool(choice.function.name)


def _tool_choice_to_openai(choice: ToolChoice) -> Any:
    if choice.mode == "tool":
        return wire.NamedToolChoice(function=wire.ToolChoiceFunction(name=choice.name or ""))
    return choice.mode
