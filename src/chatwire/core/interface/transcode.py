"""Cross-provider transcoding: a table of pure functions keyed by ordered pair.

Each entry maps a wire payload of the source shape to the target shape::

    body = transcode_request(openai_body, source="openai", target="claude")

Chat pairs decode with the source transpiler, split parallel tool calls
when the target cannot take them (or ``split_parallel_tool_calls`` asks
for it) and encode with the target transpiler.  The OpenAI <-> MCP pair
covers tool definitions, calls and results.  Adding a provider means
adding a transpiler and its table entries; existing entries never change.
"""

import logging
from collections.abc import Callable
from typing import Any

from chatwire.core.errors import UnsupportedPairError
from chatwire.core.interface.config import DEFAULT_CONFIG, TranscodeConfig
from chatwire.core.interface.models import (
    ChatRequest,
    Message,
    Role,
    ToolCallPart,
    ToolResultPart,
)
from chatwire.core.interface.registry_data import CLAUDE, GEMINI, MCP, OPENAI
from chatwire.core.interface.transpiler import Transpiler
from chatwire.core.interface.transpilers.claude import ClaudeTranspiler
from chatwire.core.interface.transpilers.gemini import GeminiTranspiler
from chatwire.core.interface.transpilers.openai import OpenAITranspiler
from chatwire.protocols.mcp import transcode as mcp
from chatwire.utils.telemetry import (
    ATTR_FINISH_REASON,
    ATTR_MESSAGE_COUNT,
    ATTR_MODEL,
    ATTR_SPLIT,
    ATTR_TOKENS_INPUT,
    ATTR_TOKENS_OUTPUT,
    ATTR_TOOL_COUNT,
    SPAN_TRANSCODE_REQUEST,
    SPAN_TRANSCODE_RESPONSE,
    get_tracer,
    set_attributes,
    transcode_span,
)

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

REQUEST = "request"
RESPONSE = "response"
TOOLS = "tools"
TOOL_CALL = "tool_call"
TOOL_RESULT = "tool_result"

TranscodeFn = Callable[..., Any]
"""``fn(payload, config, **options) -> target payload``."""


def get_transpiler(provider: str, config: TranscodeConfig = DEFAULT_CONFIG, *, model: str = "") -> Transpiler:
    """Return the transpiler for *provider*.

    *model* names the model for Gemini, whose request body has none.
    """
    if provider == OPENAI:
        return OpenAITranspiler(config)
    if provider == CLAUDE:
        return ClaudeTranspiler(config)
    if provider == GEMINI:
        return GeminiTranspiler(config, model=model)
    msg = f"Unknown provider: {provider!r}"
    raise ValueError(msg)


# ---------------------------------------------------------------------------
# Chat pairs
# ---------------------------------------------------------------------------


def _request_fn(source: str, target: str) -> TranscodeFn:
    def transcode(payload: Any, config: TranscodeConfig = DEFAULT_CONFIG, *, model: str = "") -> dict[str, Any]:
        decoder = get_transpiler(source, config, model=model)
        encoder = get_transpiler(target, config, model=model)
        with transcode_span(_tracer, SPAN_TRANSCODE_REQUEST, source=source, target=target, kind=REQUEST) as span:
            request = decoder.request_from_wire(payload)
            split = config.split_parallel_tool_calls or not encoder.capabilities.supports_parallel_tool_calls
            if split:
                request = split_parallel_tool_calls(request)
            set_attributes(
                span,
                {
                    ATTR_MODEL: request.model,
                    ATTR_MESSAGE_COUNT: len(request.messages),
                    ATTR_TOOL_COUNT: len(request.tools),
                    ATTR_SPLIT: split,
                },
            )
            return encoder.request_to_wire(request)

    transcode.__name__ = f"{source}_to_{target}_request"
    return transcode


def _response_fn(source: str, target: str) -> TranscodeFn:
    def transcode(payload: Any, config: TranscodeConfig = DEFAULT_CONFIG, *, model: str = "") -> dict[str, Any]:
        decoder = get_transpiler(source, config, model=model)
        encoder = get_transpiler(target, config, model=model)
        with transcode_span(_tracer, SPAN_TRANSCODE_RESPONSE, source=source, target=target, kind=RESPONSE) as span:
            response = decoder.response_from_wire(payload)
            finish = response.finish_reason
            set_attributes(
                span,
                {
                    ATTR_FINISH_REASON: finish.kind.value if finish is not None else None,
                    ATTR_TOKENS_INPUT: response.usage.input_tokens,
                    ATTR_TOKENS_OUTPUT: response.usage.output_tokens,
                },
            )
            return encoder.response_to_wire(response)

    transcode.__name__ = f"{source}_to_{target}_response"
    return transcode


_CHAT_PAIRS = ((OPENAI, CLAUDE), (CLAUDE, OPENAI), (OPENAI, GEMINI), (GEMINI, OPENAI))

TRANSCODERS: dict[tuple[str, str, str], TranscodeFn] = {}
for _source, _target in _CHAT_PAIRS:
    TRANSCODERS[(_source, _target, REQUEST)] = _request_fn(_source, _target)
    TRANSCODERS[(_source, _target, RESPONSE)] = _response_fn(_source, _target)

TRANSCODERS.update(
    {
        (OPENAI, MCP, TOOLS): mcp.openai_tools_to_mcp,
        (MCP, OPENAI, TOOLS): mcp.mcp_tools_to_openai,
        (OPENAI, MCP, TOOL_CALL): mcp.openai_tool_call_to_mcp,
        (MCP, OPENAI, TOOL_CALL): mcp.mcp_tool_call_to_openai,
        (OPENAI, MCP, TOOL_RESULT): mcp.openai_tool_result_to_mcp,
        (MCP, OPENAI, TOOL_RESULT): mcp.mcp_tool_result_to_openai,
    }
)


def get_transcoder(source: str, target: str, kind: str = REQUEST) -> TranscodeFn:
    """Look up the function for ``source -> target``; raises ``UnsupportedPairError``."""
    try:
        return TRANSCODERS[(source, target, kind)]
    except KeyError:
        raise UnsupportedPairError(source, target) from None


def supported_pairs(kind: str = REQUEST) -> list[tuple[str, str]]:
    return [(source, target) for source, target, k in TRANSCODERS if k == kind]


def transcode(
    payload: Any,
    source: str,
    target: str,
    kind: str = REQUEST,
    config: TranscodeConfig = DEFAULT_CONFIG,
    **options: Any,
) -> Any:
    """Translate *payload* from the *source* shape to the *target* shape."""
    fn = get_transcoder(source, target, kind)
    logger.debug("Transcoding %s %s -> %s with %s", kind, source, target, fn.__name__)
    return fn(payload, config, **options)


def transcode_request(
    payload: Any, source: str, target: str, config: TranscodeConfig = DEFAULT_CONFIG, *, model: str = ""
) -> dict[str, Any]:
    return transcode(payload, source, target, REQUEST, config, model=model)


def transcode_response(
    payload: Any, source: str, target: str, config: TranscodeConfig = DEFAULT_CONFIG, *, model: str = ""
) -> dict[str, Any]:
    return transcode(payload, source, target, RESPONSE, config, model=model)


# ---------------------------------------------------------------------------
# Parallel tool call splitting
# ---------------------------------------------------------------------------


def split_parallel_tool_calls(request: ChatRequest) -> ChatRequest:
    """Rewrite assistant turns with several tool calls as sequential pairs.

    An assistant message with calls ``c1..ck`` followed by Tool messages
    becomes ``assistant(text, c1), tool(r1), assistant(c2), tool(r2), ...``.
    Results are matched by ``call_id``; results answering no call of the
    turn keep their place after the rewritten pairs.
    """
    messages = list(request.messages)
    out: list[Message] = []
    i = 0
    while i < len(messages):
        message = messages[i]
        calls = message.tool_calls
        if message.role is not Role.ASSISTANT or len(calls) < 2:
            out.append(message)
            i += 1
            continue

        j = i + 1
        results: dict[str, ToolResultPart] = {}
        unmatched: list[ToolResultPart] = []
        call_ids = {call.id for call in calls}
        while j < len(messages) and messages[j].role is Role.TOOL:
            for result in messages[j].tool_results:
                if result.call_id in call_ids and result.call_id not in results:
                    results[result.call_id] = result
                else:
                    unmatched.append(result)
            j += 1

        out.extend(_split_turn(message, calls, results))
        if unmatched:
            out.append(Message(role=Role.TOOL, parts=tuple(unmatched)))
        logger.debug("Split assistant turn with %d tool calls", len(calls))
        i = j

    return request.model_copy(update={"messages": tuple(out)})


def _split_turn(
    message: Message, calls: list[ToolCallPart], results: dict[str, ToolResultPart]
) -> list[Message]:
    leading = tuple(p for p in message.parts if not isinstance(p, ToolCallPart))
    out: list[Message] = []
    for index, call in enumerate(calls):
        if index == 0:
            out.append(message.with_parts((*leading, call)))
        else:
            out.append(Message(role=Role.ASSISTANT, parts=(call,), name=message.name))
        if call.id in results:
            out.append(Message(role=Role.TOOL, parts=(results[call.id],)))
    return out
