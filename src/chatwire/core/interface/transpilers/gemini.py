"""Gemini transpiler: maps assistant->model role and tool calls to functionCall parts.

Key differences from the canonical model:
- Role "assistant" becomes "model"; tool results are ``functionResponse``
  parts inside a user turn.
- System messages go to ``systemInstruction``, one text part each.
- The model name travels in the URL, so ``request_from_wire`` takes it
  from the transpiler (or a ``model`` key some proxies put in the body).
- ``functionCall``/``functionResponse`` ids are optional.  Missing call
  ids are synthesised as ``call_<n>`` (``n`` counting calls in the
  conversation) and responses are linked to the latest unanswered call of
  the same name; hint ``synthetic_ids`` keeps them off the wire on encode.
- Messages split from one decoded turn are hinted ``continues_turn`` and
  re-joined on encode; other same-role neighbours stay separate contents
  unless ``TranscodeConfig.merge_consecutive_roles`` is set.
- A tool result is sent as ``{"content": text}``, or as the JSON object
  itself when the text is a ``json.dumps``-formatted object.
"""

import json
import logging
from typing import Any

from chatwire.core.errors import InvalidFieldError, UnrepresentableError
from chatwire.core.interface.capabilities import ProviderCapabilities
from chatwire.core.interface.config import DEFAULT_CONFIG, TranscodeConfig
from chatwire.core.interface.models import (
    ChatRequest,
    ChatResponse,
    FinishKind,
    FinishReason,
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
from chatwire.core.interface.registry_data import GEMINI, KNOWN_PROVIDERS
from chatwire.core.interface.transpiler import (
    HINT_CONTINUES_TURN,
    FinishReasonTable,
    request_extra,
    response_extra,
)
from chatwire.core.wire import gemini as wire
from chatwire.core.wire.base import as_list, decode

logger = logging.getLogger(__name__)

FINISH_REASONS = FinishReasonTable(
    GEMINI,
    known={
        "STOP": FinishKind.STOP,
        "MAX_TOKENS": FinishKind.LENGTH,
        "SAFETY": FinishKind.CONTENT_FILTER,
        "RECITATION": FinishKind.CONTENT_FILTER,
        "BLOCKLIST": FinishKind.CONTENT_FILTER,
        "PROHIBITED_CONTENT": FinishKind.CONTENT_FILTER,
        "SPII": FinishKind.CONTENT_FILTER,
    },
    defaults={
        FinishKind.STOP: "STOP",
        FinishKind.LENGTH: "MAX_TOKENS",
        FinishKind.TOOL_CALLS: "STOP",
        FinishKind.CONTENT_FILTER: "SAFETY",
    },
)

HINT_SYNTHETIC_IDS = "synthetic_ids"
HINT_NO_ROLE = "no_role"
HINT_MODEL_IN_BODY = "model_in_body"
HINT_NO_USAGE = "no_usage"

_CONTENT_KEY = "content"
_GENERATION_EXTRA = "generationConfig"
_CANDIDATE_EXTRA = "candidate"


class GeminiTranspiler:
    """Converts between the canonical model and Gemini's generateContent format."""

    provider = GEMINI

    def __init__(
        self,
        config: TranscodeConfig = DEFAULT_CONFIG,
        capabilities: ProviderCapabilities | None = None,
        *,
        model: str = "",
    ) -> None:
        self.config = config
        self.capabilities = capabilities or KNOWN_PROVIDERS[GEMINI]
        self.model = model

    # -- requests -------------------------------------------------------------

    def request_from_wire(self, payload: Any) -> ChatRequest:
        """Convert a Gemini request body to a ``ChatRequest``."""
        body = self._decode(wire.GenerateContentRequest, payload)
        extra = dict(body.model_extra or {})
        hints: set[str] = set()

        model = self.model
        if "model" in extra:
            model = str(extra.pop("model"))
            hints.add(HINT_MODEL_IN_BODY)

        messages: list[Message] = []
        if body.system_instruction is not None:
            for part in as_list(body.system_instruction.parts):
                if not isinstance(part, wire.TextPart):
                    raise UnrepresentableError(
                        "non-text system instruction", "system messages are text only", "canonical"
                    )
                messages.append(Message.system(part.text))

        linker = CallLinker()
        for content in as_list(body.contents):
            messages.extend(_content_from_gemini(content, linker))

        tools: list[ToolDefinition] = []
        other_tools: list[Any] = []
        for tool in as_list(body.tools):
            for decl in tool.function_declarations or []:
                tools.append(
                    ToolDefinition(name=decl.name, description=decl.description, parameters=decl.parameters)
                )
            if tool.model_extra:
                other_tools.append(dict(tool.model_extra))
        if other_tools:
            extra["tools"] = other_tools

        tool_choice = _tool_choice_from_gemini(body.tool_config, extra)
        if body.safety_settings is not None:
            extra["safetySettings"] = body.safety_settings

        gen = body.generation_config or wire.GenerationConfig()
        gen_extra = dict(gen.model_extra or {})
        if gen.candidate_count is not None:
            gen_extra["candidateCount"] = gen.candidate_count
        if gen_extra:
            extra[_GENERATION_EXTRA] = gen_extra

        return ChatRequest(
            model=model,
            messages=tuple(messages),
            tools=tuple(tools),
            tool_choice=tool_choice,
            max_tokens=gen.max_output_tokens,
            temperature=gen.temperature,
            top_p=gen.top_p,
            top_k=gen.top_k,
            stop=tuple(gen.stop_sequences) if gen.stop_sequences is not None else None,
            extra=extra,
            extra_provider=GEMINI if extra else None,
            hints=frozenset(hints),
        )

    def request_to_wire(self, request: ChatRequest) -> dict[str, Any]:
        """Convert a ``ChatRequest`` to a Gemini request body."""
        self.capabilities.check_request(request)
        if request.parallel_tool_calls is False:
            raise UnrepresentableError(
                "parallel_tool_calls=false", "parallel function calls cannot be disabled", GEMINI
            )
        if request.stream is not None:
            logger.debug("stream=%s selects the Gemini endpoint; not part of the body", request.stream)

        extra = request_extra(request, GEMINI)
        fields: dict[str, Any] = {}
        if HINT_MODEL_IN_BODY in request.hints:
            fields["model"] = request.model

        system = request.system_messages
        if system:
            fields["system_instruction"] = wire.Content(
                parts=[wire.TextPart(text=msg.text) for msg in system]
            )

        names = request.tool_call_names()
        contents = _join_turns(request.non_system_messages, names, merge_all=self.config.merge_consecutive_roles)
        fields["contents"] = [wire.Content(**content) for content in contents]

        tools: list[Any] = []
        if request.tools:
            tools.append(
                wire.Tool(function_declarations=[_declaration_to_gemini(t) for t in request.tools])
            )
        tools.extend(wire.Tool(**other) for other in extra.pop("tools", []))
        if tools:
            fields["tools"] = tools

        tool_config = _tool_choice_to_gemini(request.tool_choice)
        if tool_config is not None:
            fields["tool_config"] = tool_config

        gen: dict[str, Any] = dict(extra.pop(_GENERATION_EXTRA, {}))
        if request.temperature is not None:
            gen["temperature"] = request.temperature
        if request.top_p is not None:
            gen["top_p"] = request.top_p
        if request.top_k is not None:
            gen["top_k"] = request.top_k
        if request.max_tokens is not None:
            gen["max_output_tokens"] = request.max_tokens
        if request.stop is not None:
            gen["stop_sequences"] = list(request.stop)
        if gen:
            fields["generation_config"] = wire.GenerationConfig(**gen)

        if "safetySettings" in extra:
            fields["safety_settings"] = extra.pop("safetySettings")
        fields.update(extra)
        return wire.GenerateContentRequest(**fields).to_wire()

    # -- responses ------------------------------------------------------------

    def response_from_wire(self, payload: Any) -> ChatResponse:
        """Convert a Gemini generateContent response to a ``ChatResponse``."""
        response = self._decode(wire.GenerateContentResponse, payload)
        if not response.candidates:
            raise InvalidFieldError("candidates", "a response needs one candidate")
        if len(response.candidates) > 1:
            raise UnrepresentableError("multiple candidates", "a response holds one message", "canonical")

        candidate = response.candidates[0]
        message = _candidate_message(candidate, CallLinker())
        finish = decode_finish_reason(candidate.finish_reason, message)

        hints: set[str] = set()
        usage = Usage()
        if response.usage_metadata is not None:
            usage = Usage(
                input_tokens=response.usage_metadata.prompt_token_count or 0,
                output_tokens=response.usage_metadata.candidates_token_count or 0,
            )
        else:
            hints.add(HINT_NO_USAGE)

        extra = dict(response.model_extra or {})
        if response.prompt_feedback is not None:
            extra["promptFeedback"] = response.prompt_feedback
        if candidate.safety_ratings is not None:
            extra["safetyRatings"] = candidate.safety_ratings
        if candidate.index is not None:
            extra["index"] = candidate.index
        if candidate.model_extra:
            extra[_CANDIDATE_EXTRA] = dict(candidate.model_extra)

        return ChatResponse(
            id=response.response_id or "",
            model=response.model_version or "",
            message=message,
            finish_reason=finish,
            usage=usage,
            extra=extra,
            extra_provider=GEMINI if extra else None,
            hints=frozenset(hints),
        )

    def response_to_wire(self, response: ChatResponse) -> dict[str, Any]:
        """Convert a ``ChatResponse`` to a Gemini generateContent response."""
        self.capabilities.check_response(response)
        extra = response_extra(response, GEMINI)

        content = _content_to_gemini(response.message, {})
        candidate: dict[str, Any] = {"content": wire.Content(**content)}
        finish = FINISH_REASONS.encode(response.finish_reason)
        if finish is not None:
            candidate["finish_reason"] = finish
        if "index" in extra:
            candidate["index"] = extra.pop("index")
        if "safetyRatings" in extra:
            candidate["safety_ratings"] = extra.pop("safetyRatings")
        candidate.update(extra.pop(_CANDIDATE_EXTRA, {}))

        fields: dict[str, Any] = {"candidates": [wire.Candidate(**candidate)]}
        if HINT_NO_USAGE not in response.hints:
            fields["usage_metadata"] = wire.UsageMetadata(
                prompt_token_count=response.usage.input_tokens,
                candidates_token_count=response.usage.output_tokens,
                total_token_count=response.usage.total_tokens,
            )
        if response.model:
            fields["model_version"] = response.model
        if response.id:
            fields["response_id"] = response.id
        if "promptFeedback" in extra:
            fields["prompt_feedback"] = extra.pop("promptFeedback")
        fields.update(extra)
        return wire.GenerateContentResponse(**fields).to_wire()

    def _decode(self, model: Any, payload: Any) -> Any:
        if isinstance(payload, model):
            return payload
        return decode(model, payload, self.config.decode_mode)


def decode_finish_reason(raw: str | None, message: Message) -> FinishReason | None:
    """Map ``finishReason``; a plain ``STOP`` after function calls means ``TOOL_CALLS``."""
    finish = FINISH_REASONS.decode(raw)
    if finish is not None and finish.kind is FinishKind.STOP and finish.raw is None and message.tool_calls:
        return FinishReason(kind=FinishKind.TOOL_CALLS)
    return finish


# ---------------------------------------------------------------------------
# Call id linkage
# ---------------------------------------------------------------------------


class CallLinker:
    """Assigns ids to id-less function calls and links responses to them."""

    def __init__(self) -> None:
        self._count = 0
        self._pending: dict[str, list[str]] = {}

    def call_id(self, call: wire.FunctionCall) -> str:
        call_id = call.id if call.id is not None else f"call_{self._count}"
        self._count += 1
        self._pending.setdefault(call.name, []).append(call_id)
        return call_id

    def response_id(self, response: wire.FunctionResponse) -> str:
        pending = self._pending.get(response.name, [])
        if response.id is not None:
            if response.id in pending:
                pending.remove(response.id)
            return response.id
        if not pending:
            raise InvalidFieldError(
                "functionResponse.id",
                f"no earlier call to {response.name!r} to answer",
            )
        return pending.pop()


# ---------------------------------------------------------------------------
# Content mapping
# ---------------------------------------------------------------------------


def _content_from_gemini(content: wire.Content, linker: CallLinker) -> list[Message]:
    """Convert one Gemini content into canonical messages.

    A user turn carrying ``functionResponse`` parts is split into Tool-role
    messages and User-role messages in part order; every message after the
    first is hinted ``continues_turn``.
    """
    role = Role.ASSISTANT if content.role == "model" else Role.USER
    base_hints = {HINT_NO_ROLE} if content.role is None else set()

    out: list[Message] = []
    pending: list[Any] = []
    synthetic = False

    def flush() -> None:
        nonlocal pending, synthetic
        hints = set(base_hints)
        if out:
            hints.add(HINT_CONTINUES_TURN)
        if synthetic:
            hints.add(HINT_SYNTHETIC_IDS)
        out.append(Message(role=role, parts=tuple(pending), hints=frozenset(hints)))
        pending = []
        synthetic = False

    for part in as_list(content.parts):
        if isinstance(part, wire.FunctionResponsePart):
            if pending:
                flush()
            turn_hints = (base_hints | {HINT_CONTINUES_TURN}) if out else base_hints
            out.append(_tool_message(part.function_response, linker, turn_hints))
        elif isinstance(part, wire.FunctionCallPart):
            synthetic = synthetic or part.function_call.id is None
            pending.append(tool_call_from_gemini(part.function_call, linker))
        else:
            pending.append(part_from_gemini(part))
    if pending or not out:
        flush()
    return out


def _candidate_message(candidate: wire.Candidate, linker: CallLinker) -> Message:
    if candidate.content is None:
        return Message(role=Role.ASSISTANT)
    parts: list[Any] = []
    synthetic = False
    for part in as_list(candidate.content.parts):
        if isinstance(part, wire.FunctionCallPart):
            synthetic = synthetic or part.function_call.id is None
            parts.append(tool_call_from_gemini(part.function_call, linker))
        else:
            parts.append(part_from_gemini(part))
    hints = frozenset({HINT_SYNTHETIC_IDS}) if synthetic else frozenset()
    return Message(role=Role.ASSISTANT, parts=tuple(parts), hints=hints)


def part_from_gemini(part: Any) -> Any:
    if isinstance(part, wire.TextPart):
        return TextPart(text=part.text)
    if isinstance(part, wire.InlineDataPart):
        return ImagePart(data=part.inline_data.data, media_type=part.inline_data.mime_type)
    if isinstance(part, wire.FileDataPart):
        return ImagePart(url=part.file_data.file_uri, media_type=part.file_data.mime_type)
    raise UnrepresentableError("functionResponse outside a user turn", "tool results are user input", "canonical")


def tool_call_from_gemini(call: wire.FunctionCall, linker: CallLinker) -> ToolCallPart:
    return ToolCallPart(id=linker.call_id(call), name=call.name, arguments=json.dumps(call.args or {}))


def _tool_message(response: wire.FunctionResponse, linker: CallLinker, base_hints: set[str]) -> Message:
    hints = set(base_hints)
    if response.id is None:
        hints.add(HINT_SYNTHETIC_IDS)
    result = ToolResultPart(
        call_id=linker.response_id(response),
        content=_result_content_from_gemini(response.response),
    )
    return Message(role=Role.TOOL, parts=(result,), hints=frozenset(hints))


def _result_content_from_gemini(response: dict[str, Any]) -> tuple[TextPart, ...]:
    if not response:
        return ()
    if set(response) == {_CONTENT_KEY} and isinstance(response[_CONTENT_KEY], str):
        return (TextPart(text=response[_CONTENT_KEY]),)
    return (TextPart(text=json.dumps(response)),)


def _content_to_gemini(msg: Message, names: dict[str, str]) -> dict[str, Any]:
    """Convert a canonical message to Gemini content fields."""
    omit_ids = HINT_SYNTHETIC_IDS in msg.hints
    parts: list[Any] = []
    if msg.role is Role.TOOL:
        for result in msg.tool_results:
            parts.append(_function_response_to_gemini(result, names, omit_ids))
    else:
        for part in msg.parts:
            if isinstance(part, TextPart):
                parts.append(wire.TextPart(text=part.text))
            elif isinstance(part, ImagePart):
                parts.append(_image_to_gemini(part))
            else:
                parts.append(_function_call_to_gemini(part, omit_ids))

    content: dict[str, Any] = {"parts": parts}
    if HINT_NO_ROLE not in msg.hints:
        content["role"] = "model" if msg.role is Role.ASSISTANT else "user"
    return content


def _image_to_gemini(image: ImagePart) -> Any:
    if image.data is not None:
        return wire.InlineDataPart(inline_data=wire.Blob(mime_type=image.media_type or "", data=image.data))
    fields: dict[str, Any] = {"file_uri": image.url or ""}
    if image.media_type:
        fields["mime_type"] = image.media_type
    return wire.FileDataPart(file_data=wire.FileData(**fields))


def _function_call_to_gemini(call: ToolCallPart, omit_id: bool) -> wire.FunctionCallPart:
    try:
        args = json.loads(call.arguments) if call.arguments.strip() else {}
    except json.JSONDecodeError as exc:
        raise UnrepresentableError(
            f"arguments of tool call {call.id}", f"not valid JSON ({exc.msg})", GEMINI
        ) from exc
    if not isinstance(args, dict):
        raise UnrepresentableError(
            f"arguments of tool call {call.id}", "function args must be a JSON object", GEMINI
        )
    fields: dict[str, Any] = {"name": call.name, "args": args}
    if not omit_id:
        fields["id"] = call.id
    return wire.FunctionCallPart(function_call=wire.FunctionCall(**fields))


def _function_response_to_gemini(
    result: ToolResultPart, names: dict[str, str], omit_id: bool
) -> wire.FunctionResponsePart:
    name = names.get(result.call_id)
    if name is None:
        raise UnrepresentableError(
            f"tool result {result.call_id}",
            "functionResponse needs the name of the call it answers",
            GEMINI,
        )
    if len(result.content) > 1:
        raise UnrepresentableError(
            f"tool result {result.call_id}",
            "functionResponse carries a single value",
            GEMINI,
        )
    fields: dict[str, Any] = {"name": name, "response": _result_content_to_gemini(result)}
    if not omit_id:
        fields["id"] = result.call_id
    return wire.FunctionResponsePart(function_response=wire.FunctionResponse(**fields))


def _result_content_to_gemini(result: ToolResultPart) -> dict[str, Any]:
    if not result.content:
        return {}
    text = result.text
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return {_CONTENT_KEY: text}
    is_wrapper = isinstance(parsed, dict) and set(parsed) == {_CONTENT_KEY}
    if isinstance(parsed, dict) and parsed and not is_wrapper and json.dumps(parsed) == text:
        return parsed
    return {_CONTENT_KEY: text}


def _join_turns(messages: list[Message], names: dict[str, str], *, merge_all: bool) -> list[dict[str, Any]]:
    """Encode *messages*, folding hinted continuations into the previous content.

    With *merge_all* every same-role neighbour is folded.
    """
    joined: list[dict[str, Any]] = []
    for msg in messages:
        content = _content_to_gemini(msg, names)
        fold = merge_all or HINT_CONTINUES_TURN in msg.hints
        if fold and joined and joined[-1].get("role") == content.get("role"):
            joined[-1]["parts"] = joined[-1]["parts"] + content["parts"]
        else:
            joined.append(content)
    return joined


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


def _declaration_to_gemini(tool: ToolDefinition) -> wire.FunctionDeclaration:
    fields: dict[str, Any] = {"name": tool.name}
    if tool.description is not None:
        fields["description"] = tool.description
    if tool.parameters is not None:
        fields["parameters"] = tool.parameters
    return wire.FunctionDeclaration(**fields)


def _tool_choice_from_gemini(config: wire.ToolConfig | None, extra: dict[str, Any]) -> ToolChoice | None:
    """Map ``functionCallingConfig``; configurations with no canonical form stay in *extra*."""
    if config is None:
        return None
    fcc = config.function_calling_config
    allowed = (fcc.allowed_function_names or []) if fcc is not None else []
    if fcc is None or config.model_extra or fcc.model_extra:
        choice = None
    elif fcc.mode == "AUTO" and not allowed:
        choice = ToolChoice.auto()
    elif fcc.mode == "NONE" and not allowed:
        choice = ToolChoice.none()
    elif fcc.mode == "ANY" and not allowed:
        choice = ToolChoice.required()
    elif fcc.mode == "ANY" and len(allowed) == 1:
        choice = ToolChoice.tool(allowed[0])
    else:
        choice = None
    if choice is None:
        extra["toolConfig"] = config.to_wire()
    return choice


def _tool_choice_to_gemini(choice: ToolChoice | None) -> wire.ToolConfig | None:
    if choice is None:
        return None
    if choice.mode == "tool":
        fcc = wire.FunctionCallingConfig(mode="ANY", allowed_function_names=[choice.name or ""])
    else:
        mode = {"auto": "AUTO", "none": "NONE", "required": "ANY"}[choice.mode]
        fcc = wire.FunctionCallingConfig(mode=mode)
    return wire.ToolConfig(function_calling_config=fcc)


# ---------------------------------------------------------------------------
# Turn normalisation
# ---------------------------------------------------------------------------

CONVERSATION_START = "Starting the conversation..."
CONTINUE = "continue"


def normalize_contents(contents: list[wire.Content]) -> list[wire.Content]:
    """Make a contents list acceptable to Gemini's strict turn rules.

    Consecutive contents with the same role are merged into one turn.  A
    conversation that opens with a model turn gets a user turn in front of
    it, and one that ends with a model turn gets a trailing ``"continue"``
    user turn.  Contents without a role count as user turns.
    """
    merged: list[wire.Content] = []
    for content in contents:
        role = content.role or "user"
        if merged and (merged[-1].role or "user") == role:
            parts = as_list(merged[-1].parts) + as_list(content.parts)
            merged[-1] = wire.Content(role=role, parts=parts)
        else:
            merged.append(content)

    if merged and merged[0].role == "model":
        merged.insert(0, wire.Content(role="user", parts=[wire.TextPart(text=CONVERSATION_START)]))
    if merged and merged[-1].role == "model":
        merged.append(wire.Content(role="user", parts=[wire.TextPart(text=CONTINUE)]))
    return merged
