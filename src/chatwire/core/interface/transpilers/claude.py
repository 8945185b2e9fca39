"""Claude transpiler: handles system hoisting, tool-result splitting and role alternation.

Key differences from the canonical model:
- System messages become the top-level ``system`` field, joined with a
  single newline (or kept as one text block each when the request arrived
  with block-form ``system``, hint ``system_blocks``).
- Only ``user`` and ``assistant`` roles exist; tool results are
  ``tool_result`` blocks inside user messages.  Decoding splits such a user
  message into Tool-role and User-role messages in block order; the split-off
  messages carry hint ``continues_turn`` and encoding folds them back into
  one message.  Other same-role neighbours stay separate messages unless
  ``TranscodeConfig.merge_consecutive_roles`` is set.
- Tool-call arguments travel as a JSON object (``input``), so they are
  parsed on encode and re-serialised with ``json.dumps`` on decode.
- ``max_tokens`` is required; the configured default fills it in.
"""

import json
import logging
from typing import Any

from chatwire.core.errors import UnrepresentableError
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
from chatwire.core.interface.registry_data import CLAUDE, KNOWN_PROVIDERS
from chatwire.core.interface.transpiler import (
    HINT_CONTINUES_TURN,
    FinishReasonTable,
    request_extra,
    response_extra,
)
from chatwire.core.wire import claude as wire
from chatwire.core.wire.base import decode

logger = logging.getLogger(__name__)

FINISH_REASONS = FinishReasonTable(
    CLAUDE,
    known={
        "end_turn": FinishKind.STOP,
        "stop_sequence": FinishKind.STOP,
        "max_tokens": FinishKind.LENGTH,
        "tool_use": FinishKind.TOOL_CALLS,
        "refusal": FinishKind.CONTENT_FILTER,
    },
    defaults={
        FinishKind.STOP: "end_turn",
        FinishKind.LENGTH: "max_tokens",
        FinishKind.TOOL_CALLS: "tool_use",
        FinishKind.CONTENT_FILTER: "refusal",
    },
)

HINT_CONTENT_ARRAY = "content_array"
HINT_SYSTEM_BLOCKS = "system_blocks"
HINT_IS_ERROR_FALSE = "is_error_false"
HINT_EMPTY_CONTENT = "content_empty"

# Tool schema sent when a definition has no parameters; Claude requires one.
EMPTY_INPUT_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}
CACHE_USAGE_FIELDS = ("cache_creation_input_tokens", "cache_read_input_tokens")


class ClaudeTranspiler:
    """Converts between the canonical model and Claude's messages API format."""

    provider = CLAUDE

    def __init__(
        self,
        config: TranscodeConfig = DEFAULT_CONFIG,
        capabilities: ProviderCapabilities | None = None,
    ) -> None:
        self.config = config
        self.capabilities = capabilities or KNOWN_PROVIDERS[CLAUDE]

    # -- requests -------------------------------------------------------------

    def request_from_wire(self, payload: Any) -> ChatRequest:
        """Convert a Claude request body to a ``ChatRequest``."""
        body = self._decode(wire.MessagesRequest, payload)
        hints: set[str] = set()

        messages: list[Message] = []
        if isinstance(body.system, str):
            messages.append(Message.system(body.system))
        elif body.system is not None:
            hints.add(HINT_SYSTEM_BLOCKS)
            messages.extend(Message.system(block.text) for block in body.system)
        for msg in body.messages:
            messages.extend(_message_from_claude(msg))

        tool_choice, parallel = _tool_choice_from_claude(body.tool_choice)
        extra = dict(body.model_extra or {})
        if body.metadata is not None:
            extra["metadata"] = body.metadata

        return ChatRequest(
            model=body.model,
            messages=tuple(messages),
            tools=tuple(
                ToolDefinition(name=t.name, description=t.description, parameters=t.input_schema)
                for t in body.tools or []
            ),
            tool_choice=tool_choice,
            parallel_tool_calls=parallel,
            max_tokens=body.max_tokens,
            temperature=body.temperature,
            top_p=body.top_p,
            top_k=body.top_k,
            stop=tuple(body.stop_sequences) if body.stop_sequences is not None else None,
            stream=body.stream,
            extra=extra,
            extra_provider=CLAUDE if extra else None,
            hints=frozenset(hints),
        )

    def request_to_wire(self, request: ChatRequest) -> dict[str, Any]:
        """Convert a ``ChatRequest`` to a Claude request body.

        System messages are extracted into the ``system`` parameter.  A
        message hinted ``continues_turn`` joins the preceding wire message.
        """
        self.capabilities.check_request(request)
        fields: dict[str, Any] = {"model": request.model}

        system = [msg.text for msg in request.system_messages]
        if system:
            if HINT_SYSTEM_BLOCKS in request.hints:
                fields["system"] = [wire.TextBlock(text=text) for text in system]
            else:
                fields["system"] = "\n".join(system)

        messages = _join_turns(request.non_system_messages, merge_all=self.config.merge_consecutive_roles)
        fields["messages"] = [wire.Message(role=msg["role"], content=msg["content"]) for msg in messages]
        if request.max_tokens is None:
            logger.debug(
                "Request has no max_tokens; using default %d",
                self.config.claude_default_max_tokens,
            )
            fields["max_tokens"] = self.config.claude_default_max_tokens
        else:
            fields["max_tokens"] = request.max_tokens

        if request.tools:
            fields["tools"] = [_tool_to_claude(tool) for tool in request.tools]
        tool_choice = _tool_choice_to_claude(request.tool_choice, request.parallel_tool_calls)
        if tool_choice is not None:
            fields["tool_choice"] = tool_choice
        if request.temperature is not None:
            fields["temperature"] = request.temperature
        if request.top_p is not None:
            fields["top_p"] = request.top_p
        if request.top_k is not None:
            fields["top_k"] = request.top_k
        if request.stop is not None:
            fields["stop_sequences"] = list(request.stop)
        if request.stream is not None:
            fields["stream"] = request.stream
        fields.update(request_extra(request, CLAUDE))

        return wire.MessagesRequest(**fields).to_wire()

    # -- responses ------------------------------------------------------------

    def response_from_wire(self, payload: Any) -> ChatResponse:
        """Convert a Claude messages response to a ``ChatResponse``."""
        response = self._decode(wire.MessageResponse, payload)

        parts: list[Any] = []
        for block in response.content:
            if isinstance(block, wire.TextBlock):
                parts.append(TextPart(text=block.text))
            else:
                parts.append(_tool_call_from_claude(block))

        extra = dict(response.model_extra or {})
        if response.stop_sequence is not None:
            extra["stop_sequence"] = response.stop_sequence
        for key in CACHE_USAGE_FIELDS:
            value = getattr(response.usage, key)
            if value is not None:
                extra[key] = value

        return ChatResponse(
            id=response.id,
            model=response.model,
            message=Message(role=Role.ASSISTANT, parts=tuple(parts)),
            finish_reason=FINISH_REASONS.decode(response.stop_reason),
            usage=Usage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            ),
            extra=extra,
            extra_provider=CLAUDE if extra else None,
        )

    def response_to_wire(self, response: ChatResponse) -> dict[str, Any]:
        """Convert a ``ChatResponse`` to a Claude messages response."""
        self.capabilities.check_response(response)
        extra = response_extra(response, CLAUDE)
        content: list[Any] = []
        for part in response.message.parts:
            if isinstance(part, TextPart):
                content.append(wire.TextBlock(text=part.text))
            else:
                content.append(_tool_call_to_claude(part))

        return wire.MessageResponse(
            id=response.id,
            model=response.model,
            content=content,
            stop_reason=FINISH_REASONS.encode(response.finish_reason),
            stop_sequence=extra.pop("stop_sequence", None),
            usage=wire.Usage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                **{key: extra.pop(key) for key in CACHE_USAGE_FIELDS if key in extra},
            ),
            **extra,
        ).to_wire()

    def _decode(self, model: Any, payload: Any) -> Any:
        if isinstance(payload, model):
            return payload
        return decode(model, payload, self.config.decode_mode)


# ---------------------------------------------------------------------------
# Message mapping
# ---------------------------------------------------------------------------


def _message_from_claude(msg: wire.Message) -> list[Message]:
    """Convert one Claude message.

    A user message carrying ``tool_result`` blocks becomes a Tool-role
    message per result, with the surrounding text and images grouped into
    User-role messages in their original order.  Every message after the
    first is hinted ``continues_turn``.
    """
    role = Role.ASSISTANT if msg.role == "assistant" else Role.USER
    if isinstance(msg.content, str):
        return [Message(role=role, parts=(TextPart(text=msg.content),))]

    hints: frozenset[str] = frozenset()
    if len(msg.content) == 1 and isinstance(msg.content[0], wire.TextBlock):
        hints = frozenset({HINT_CONTENT_ARRAY})

    out: list[Message] = []
    pending: list[Any] = []
    for block in msg.content:
        if isinstance(block, wire.ToolResultBlock):
            if pending:
                out.append(Message(role=role, parts=tuple(pending), hints=_turn_hints(out)))
                pending = []
            out.append(_tool_result_from_claude(block, _turn_hints(out)))
        elif isinstance(block, wire.TextBlock):
            pending.append(TextPart(text=block.text))
        elif isinstance(block, wire.ImageBlock):
            pending.append(_image_from_claude(block))
        else:
            pending.append(_tool_call_from_claude(block))
    if pending or not out:
        out.append(Message(role=role, parts=tuple(pending), hints=hints | _turn_hints(out)))
    return out


def _turn_hints(decoded: list[Message]) -> frozenset[str]:
    return frozenset({HINT_CONTINUES_TURN}) if decoded else frozenset()


def _tool_result_from_claude(block: wire.ToolResultBlock, turn_hints: frozenset[str]) -> Message:
    hints = set(turn_hints)
    if block.is_error is False:
        hints.add(HINT_IS_ERROR_FALSE)
    content: list[Any] = []
    if isinstance(block.content, str):
        content.append(TextPart(text=block.content))
    elif block.content is not None:
        if not block.content:
            hints.add(HINT_EMPTY_CONTENT)
        if len(block.content) == 1 and isinstance(block.content[0], wire.TextBlock):
            hints.add(HINT_CONTENT_ARRAY)
        for item in block.content:
            if isinstance(item, wire.TextBlock):
                content.append(TextPart(text=item.text))
            else:
                content.append(_image_from_claude(item))
    result = ToolResultPart(
        call_id=block.tool_use_id,
        content=tuple(content),
        is_error=bool(block.is_error),
    )
    return Message(role=Role.TOOL, parts=(result,), hints=frozenset(hints))


def _image_from_claude(block: wire.ImageBlock) -> ImagePart:
    source = block.source
    if isinstance(source, wire.Base64Source):
        return ImagePart(data=source.data, media_type=source.media_type)
    return ImagePart(url=source.url)


def _tool_call_from_claude(block: wire.ToolUseBlock) -> ToolCallPart:
    return ToolCallPart(id=block.id, name=block.name, arguments=json.dumps(block.input))


def _message_to_claude(msg: Message) -> dict[str, Any]:
    """Convert a single canonical message to a Claude message dict."""
    if msg.role is Role.TOOL:
        return {
            "role": "user",
            "content": [_tool_result_to_claude(result, msg.hints) for result in msg.tool_results],
        }

    role = "assistant" if msg.role is Role.ASSISTANT else "user"
    if (
        len(msg.parts) == 1
        and isinstance(msg.parts[0], TextPart)
        and HINT_CONTENT_ARRAY not in msg.hints
    ):
        return {"role": role, "content": msg.parts[0].text}
    return {"role": role, "content": [_block_to_claude(part) for part in msg.parts]}


def _block_to_claude(part: Any) -> Any:
    if isinstance(part, TextPart):
        return wire.TextBlock(text=part.text)
    if isinstance(part, ImagePart):
        return _image_to_claude(part)
    return _tool_call_to_claude(part)


def _image_to_claude(image: ImagePart) -> wire.ImageBlock:
    source: Any
    if image.data is not None:
        source = wire.Base64Source(media_type=image.media_type or "", data=image.data)
    else:
        source = wire.URLSource(url=image.url or "")
    return wire.ImageBlock(source=source)


def _tool_call_to_claude(call: ToolCallPart) -> wire.ToolUseBlock:
    return wire.ToolUseBlock(id=call.id, name=call.name, input=_arguments_to_input(call))


def _arguments_to_input(call: ToolCallPart) -> dict[str, Any]:
    if not call.arguments.strip():
        return {}
    try:
        parsed = json.loads(call.arguments)
    except json.JSONDecodeError as exc:
        raise UnrepresentableError(
            f"arguments of tool call {call.id}",
            f"not valid JSON ({exc.msg})",
            CLAUDE,
        ) from exc
    if not isinstance(parsed, dict):
        raise UnrepresentableError(
            f"arguments of tool call {call.id}",
            "tool input must be a JSON object",
            CLAUDE,
        )
    return parsed


def _tool_result_to_claude(result: ToolResultPart, hints: frozenset[str]) -> wire.ToolResultBlock:
    fields: dict[str, Any] = {"tool_use_id": result.call_id}
    items = list(result.content)
    if len(items) == 1 and isinstance(items[0], TextPart) and HINT_CONTENT_ARRAY not in hints:
        fields["content"] = items[0].text
    elif items or HINT_EMPTY_CONTENT in hints:
        fields["content"] = [
            wire.TextBlock(text=item.text) if isinstance(item, TextPart) else _image_to_claude(item)
            for item in items
        ]
    if result.is_error:
        fields["is_error"] = True
    elif HINT_IS_ERROR_FALSE in hints:
        fields["is_error"] = False
    return wire.ToolResultBlock(**fields)


def _join_turns(messages: list[Message], *, merge_all: bool) -> list[dict[str, Any]]:
    """Encode *messages*, folding hinted continuations into the previous message.

    With *merge_all* every same-role neighbour is folded, which yields the
    strict user/assistant alternation some Claude-compatible servers require.
    """
    joined: list[dict[str, Any]] = []
    for msg in messages:
        encoded = _message_to_claude(msg)
        fold = merge_all or HINT_CONTINUES_TURN in msg.hints
        if fold and joined and joined[-1]["role"] == encoded["role"]:
            joined[-1]["content"] = _merge_content(joined[-1]["content"], encoded["content"])
        else:
            joined.append(encoded)
    return joined


def _merge_content(existing: str | list[Any], new: str | list[Any]) -> list[Any]:
    """Merge two content values (str or list of blocks) into a single list."""
    result: list[Any] = []
    for item in (existing, new):
        if isinstance(item, str):
            result.append(wire.TextBlock(text=item))
        else:
            result.extend(item)
    return result


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


def _tool_to_claude(tool: ToolDefinition) -> wire.Tool:
    fields: dict[str, Any] = {
        "name": tool.name,
        "input_schema": tool.parameters if tool.parameters is not None else EMPTY_INPUT_SCHEMA,
    }
    if tool.description is not None:
        fields["description"] = tool.description
    return wire.Tool(**fields)


def _tool_choice_from_claude(choice: Any) -> tuple[ToolChoice | None, bool | None]:
    """Return the canonical tool choice and the parallel-tool-calls flag."""
    if choice is None:
        return None, None
    parallel: bool | None = None
    disable = getattr(choice, "disable_parallel_tool_use", None)
    if disable is not None:
        parallel = not disable
    if isinstance(choice, wire.ToolChoiceTool):
        return ToolChoice.tool(choice.name), parallel
    if isinstance(choice, wire.ToolChoiceAny):
        return ToolChoice.required(), parallel
    if isinstance(choice, wire.ToolChoiceNone):
        return ToolChoice.none(), parallel
    return ToolChoice.auto(), parallel


def _tool_choice_to_claude(choice: ToolChoice | None, parallel: bool | None) -> Any:
    if choice is None and parallel is None:
        return None
    mode = choice.mode if choice is not None else "auto"
    if mode == "none":
        return wire.ToolChoiceNone()

    fields: dict[str, Any] = {}
    if parallel is not None:
        fields["disable_parallel_tool_use"] = not parallel
    if mode == "tool":
        return wire.ToolChoiceTool(name=choice.name if choice else "", **fields)
    if mode == "required":
        return wire.ToolChoiceAny(**fields)
    return wire.ToolChoiceAuto(**fields)
