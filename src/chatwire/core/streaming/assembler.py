"""Streaming assembler: folds provider chunks into complete responses.

One assembler holds a table of accumulators keyed by response id.  Each
accumulator is ``OPEN`` until its terminal chunk arrives, then ``CLOSED``
with a finished :class:`~chatwire.core.interface.models.ChatResponse`; a
caller may ``abandon`` an open stream instead.  Chunks for a closed or
abandoned stream raise, so redelivery by the transport shows up at once.

Usage::

    assembler = OpenAIStreamAssembler()
    for chunk in chunks:
        response_id = assembler.feed(chunk)
    response = assembler.result(response_id)

The assembler does no locking: chunks of one response id must be fed from
one execution context at a time.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel

from chatwire.core.errors import (
    AlreadyClosedError,
    InvalidFieldError,
    MissingResponseIdError,
    ProviderStreamError,
    StreamAbandonedError,
    StreamNotClosedError,
    UnknownStreamError,
    UnrepresentableError,
)
from chatwire.core.interface.config import DEFAULT_CONFIG, TranscodeConfig
from chatwire.core.interface.models import (
    ChatResponse,
    FinishReason,
    Message,
    Role,
    TextPart,
    ToolCallPart,
    Usage,
)
from chatwire.core.interface.registry_data import CLAUDE, GEMINI, OPENAI
from chatwire.core.interface.transpilers import claude as claude_codec
from chatwire.core.interface.transpilers import gemini as gemini_codec
from chatwire.core.interface.transpilers import openai as openai_codec
from chatwire.core.wire import claude as claude_wire
from chatwire.core.wire import gemini as gemini_wire
from chatwire.core.wire import openai as openai_wire
from chatwire.core.wire.base import as_list, decode

logger = logging.getLogger(__name__)

# Same hint as the OpenAI and Gemini codecs use for a response without usage.
HINT_NO_USAGE = openai_codec.HINT_NO_USAGE


class StreamState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    ABANDONED = "abandoned"


@dataclass
class _TextBuffer:
    chunks: list[str] = field(default_factory=list)

    def part(self) -> TextPart:
        return TextPart(text="".join(self.chunks))


@dataclass
class _ToolCallBuffer:
    id: str
    name: str
    chunks: list[str] = field(default_factory=list)
    # Claude streams input as JSON fragments; the finished text is re-dumped.
    initial_input: dict[str, Any] | None = None

    def part(self) -> ToolCallPart:
        if self.initial_input is None:
            return ToolCallPart(id=self.id, name=self.name, arguments="".join(self.chunks))
        text = "".join(self.chunks)
        if not text.strip():
            return ToolCallPart(id=self.id, name=self.name, arguments=json.dumps(self.initial_input))
        try:
            value = json.loads(text)
        except json.JSONDecodeError as exc:
            raise InvalidFieldError(f"tool_use[{self.id}].input", f"streamed input is not JSON ({exc.msg})") from exc
        return ToolCallPart(id=self.id, name=self.name, arguments=json.dumps(value))


@dataclass
class StreamAccumulator:
    """In-progress state of one streamed response."""

    response_id: str
    state: StreamState = StreamState.OPEN
    model: str = ""
    created: int = 0
    blocks: list[_TextBuffer | _ToolCallBuffer] = field(default_factory=list)
    finish_reason: FinishReason | None = None
    usage: Usage | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    message_hints: set[str] = field(default_factory=set)
    message_extra: dict[str, Any] = field(default_factory=dict)
    response: ChatResponse | None = None

    def message(self, provider: str | None = None) -> Message:
        return Message(
            role=Role.ASSISTANT,
            parts=tuple(block.part() for block in self.blocks),
            hints=frozenset(self.message_hints),
            extra=dict(self.message_extra),
            extra_provider=provider if self.message_extra else None,
        )


class StreamAssembler:
    """Base assembler; subclasses fold one provider's chunk shape."""

    provider: str = ""

    def __init__(self, config: TranscodeConfig = DEFAULT_CONFIG) -> None:
        self.config = config
        self._streams: dict[str, StreamAccumulator] = {}

    def feed(self, chunk: Any, response_id: str | None = None) -> str | None:
        """Apply one chunk and return the response id it belongs to."""
        raise NotImplementedError

    def state(self, response_id: str) -> StreamState:
        return self._get(response_id).state

    def result(self, response_id: str) -> ChatResponse:
        """The finished response; raises unless the stream is closed."""
        acc = self._get(response_id)
        if acc.state is StreamState.ABANDONED:
            raise StreamAbandonedError(response_id)
        if acc.response is None:
            raise StreamNotClosedError(response_id)
        return acc.response

    def abandon(self, response_id: str) -> None:
        """Give up on an open stream; later chunks for it raise ``StreamAbandonedError``."""
        acc = self._get(response_id)
        if acc.state is StreamState.CLOSED:
            raise AlreadyClosedError(response_id)
        acc.state = StreamState.ABANDONED
        logger.debug("Stream %s abandoned", response_id)

    def discard(self, response_id: str) -> None:
        """Forget a stream in any state."""
        self._get(response_id)
        del self._streams[response_id]

    def open_streams(self) -> list[str]:
        return [rid for rid, acc in self._streams.items() if acc.state is StreamState.OPEN]

    # -- helpers --------------------------------------------------------------

    def _get(self, response_id: str) -> StreamAccumulator:
        try:
            return self._streams[response_id]
        except KeyError:
            raise UnknownStreamError(response_id) from None

    def _open(self, response_id: str, *, create: bool = True) -> StreamAccumulator:
        acc = self._streams.get(response_id)
        if acc is None:
            if not create:
                raise UnknownStreamError(response_id)
            acc = StreamAccumulator(response_id=response_id)
            self._streams[response_id] = acc
            logger.debug("Stream %s opened (%s)", response_id, self.provider)
            return acc
        if acc.state is StreamState.CLOSED:
            raise AlreadyClosedError(response_id)
        if acc.state is StreamState.ABANDONED:
            raise StreamAbandonedError(response_id)
        return acc

    def _check_writable(self, response_id: str) -> None:
        """Raise if *response_id* names a stream that takes no more chunks."""
        if response_id in self._streams:
            self._open(response_id)

    def _close(self, acc: StreamAccumulator) -> None:
        acc.response = self._build(acc)
        acc.state = StreamState.CLOSED
        logger.debug("Stream %s closed", acc.response_id)

    def _build(self, acc: StreamAccumulator) -> ChatResponse:
        hints = frozenset() if acc.usage is not None else frozenset({HINT_NO_USAGE})
        return ChatResponse(
            id=acc.response_id,
            model=acc.model,
            message=acc.message(self.provider),
            finish_reason=acc.finish_reason,
            usage=acc.usage or Usage(),
            created=acc.created,
            extra=dict(acc.extra),
            extra_provider=self.provider if acc.extra else None,
            hints=hints,
        )

    def _decode(self, target: Any, chunk: Any) -> Any:
        if isinstance(chunk, BaseModel):
            return chunk
        return decode(target, chunk, self.config.decode_mode)


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------


class OpenAIStreamAssembler(StreamAssembler):
    """Folds ``chat.completion.chunk`` objects.

    A chunk with ``finish_reason`` closes the stream.  With
    ``expect_usage_chunk=True`` (``stream_options.include_usage``) the
    stream stays open for the trailing usage-only chunk, which closes it.
    ``[DONE]`` needs no handling except to close a stream still waiting for
    that usage chunk.
    """

    provider = OPENAI

    def __init__(self, config: TranscodeConfig = DEFAULT_CONFIG, *, expect_usage_chunk: bool = False) -> None:
        super().__init__(config)
        self.expect_usage_chunk = expect_usage_chunk
        self._call_slots: dict[str, list[_ToolCallBuffer]] = {}
        self._logprobs: dict[str, list[Any]] = {}

    def feed(self, chunk: Any, response_id: str | None = None) -> str | None:
        if chunk == openai_wire.DONE:
            if response_id is not None:
                acc = self._get(response_id)
                if acc.state is StreamState.OPEN and acc.finish_reason is not None:
                    self._close(acc)
            return response_id

        payload = self._decode(openai_wire.ChatCompletionChunk, chunk)
        rid = response_id or payload.id
        self._check_writable(rid)
        slots = self._call_slots.get(rid, [])
        # A rejected chunk leaves no trace: every delta is checked before any is applied.
        for choice in payload.choices:
            if choice.index != 0:
                raise UnrepresentableError("multiple choices", "a response holds one message", "canonical")
            _check_tool_call_deltas(choice.delta.tool_calls or [], slots)

        acc = self._open(rid)
        slots = self._call_slots.setdefault(rid, slots)
        acc.model = payload.model
        acc.created = payload.created
        if payload.system_fingerprint is not None:
            acc.extra["system_fingerprint"] = payload.system_fingerprint
        if payload.usage is not None:
            acc.usage = Usage(
                input_tokens=payload.usage.prompt_tokens,
                output_tokens=payload.usage.completion_tokens,
            )

        if not payload.choices:
            if acc.finish_reason is not None:
                self._close(acc)
            return rid

        for choice in payload.choices:
            delta = choice.delta
            if delta.content is not None:
                if not acc.blocks or not isinstance(acc.blocks[0], _TextBuffer):
                    acc.blocks.insert(0, _TextBuffer())
                acc.blocks[0].chunks.append(delta.content)
            if delta.refusal is not None:
                acc.message_extra["refusal"] = acc.message_extra.get("refusal", "") + delta.refusal
            for tc in delta.tool_calls or []:
                _apply_tool_call_delta(acc, slots, tc)
            if isinstance(choice.logprobs, dict):
                self._logprobs.setdefault(rid, []).extend(choice.logprobs.get("content") or [])
            if choice.finish_reason is not None:
                acc.finish_reason = openai_codec.FINISH_REASONS.decode(choice.finish_reason)
                if not self.expect_usage_chunk:
                    self._close(acc)
        return rid

    def discard(self, response_id: str) -> None:
        super().discard(response_id)
        self._call_slots.pop(response_id, None)
        self._logprobs.pop(response_id, None)

    def _build(self, acc: StreamAccumulator) -> ChatResponse:
        logprobs = self._logprobs.get(acc.response_id)
        if logprobs:
            acc.extra["logprobs"] = {"content": logprobs}
        return super()._build(acc)


def _check_tool_call_deltas(deltas: list[openai_wire.ToolCallDelta], slots: list[_ToolCallBuffer]) -> None:
    """Raise ``InvalidFieldError`` unless every delta extends a known call or opens the next one."""
    ids = [buffer.id for buffer in slots]
    for position, tc in enumerate(deltas):
        path = f"choices[0].delta.tool_calls[{position}]"
        function = tc.function or openai_wire.FunctionCallDelta()
        if tc.index == len(ids):
            if tc.id is None or function.name is None:
                raise InvalidFieldError(f"{path}.id", "the first delta of a tool call carries its id and name")
            ids.append(tc.id)
        elif 0 <= tc.index < len(ids):
            if tc.id is not None and tc.id != ids[tc.index]:
                raise InvalidFieldError(f"{path}.id", f"index {tc.index} belongs to call {ids[tc.index]!r}")
        else:
            raise InvalidFieldError(f"{path}.index", f"expected an index up to {len(ids)}, got {tc.index}")


def _apply_tool_call_delta(acc: StreamAccumulator, slots: list[_ToolCallBuffer], tc: openai_wire.ToolCallDelta) -> None:
    function = tc.function or openai_wire.FunctionCallDelta()
    if tc.index == len(slots):
        buffer = _ToolCallBuffer(id=tc.id or "", name=function.name or "")
        slots.append(buffer)
        acc.blocks.append(buffer)
    else:
        buffer = slots[tc.index]
    if function.arguments:
        buffer.chunks.append(function.arguments)


# ---------------------------------------------------------------------------
# Claude
# ---------------------------------------------------------------------------


class ClaudeStreamAssembler(StreamAssembler):
    """Folds Claude ``messages`` stream events.

    Only ``message_start`` carries the response id; every later event must
    be fed with ``response_id``.  ``message_stop`` closes the stream.
    """

    provider = CLAUDE

    def __init__(self, config: TranscodeConfig = DEFAULT_CONFIG) -> None:
        super().__init__(config)
        self._stopped: dict[str, set[int]] = {}

    def feed(self, chunk: Any, response_id: str | None = None) -> str | None:
        event = self._decode(claude_wire.STREAM_EVENT_ADAPTER, chunk)

        if isinstance(event, claude_wire.ErrorEvent):
            raise ProviderStreamError(event.error.type, event.error.message, response_id)

        if isinstance(event, claude_wire.MessageStartEvent):
            message = event.message
            acc = self._open(message.id)
            acc.model = message.model
            acc.usage = Usage(
                input_tokens=message.usage.input_tokens,
                output_tokens=message.usage.output_tokens,
            )
            for key in claude_codec.CACHE_USAGE_FIELDS:
                value = getattr(message.usage, key)
                if value is not None:
                    acc.extra[key] = value
            self._stopped[message.id] = set()
            return message.id

        if response_id is None:
            raise MissingResponseIdError(event.type)
        acc = self._open(response_id, create=False)
        stopped = self._stopped.setdefault(response_id, set())

        if isinstance(event, claude_wire.ContentBlockStartEvent):
            if event.index != len(acc.blocks):
                raise InvalidFieldError(
                    "content_block_start.index",
                    f"expected block {len(acc.blocks)}, got {event.index}",
                )
            block = event.content_block
            if isinstance(block, claude_wire.TextBlock):
                acc.blocks.append(_TextBuffer(chunks=[block.text]))
            else:
                acc.blocks.append(_ToolCallBuffer(id=block.id, name=block.name, initial_input=block.input))
        elif isinstance(event, claude_wire.ContentBlockDeltaEvent):
            buffer = self._live_block(acc, stopped, event.index, "content_block_delta")
            delta = event.delta
            if isinstance(delta, claude_wire.TextDelta) and isinstance(buffer, _TextBuffer):
                buffer.chunks.append(delta.text)
            elif isinstance(delta, claude_wire.InputJSONDelta) and isinstance(buffer, _ToolCallBuffer):
                buffer.chunks.append(delta.partial_json)
            else:
                raise InvalidFieldError(
                    "content_block_delta.delta.type",
                    f"{delta.type} does not apply to block {event.index}",
                )
        elif isinstance(event, claude_wire.ContentBlockStopEvent):
            self._live_block(acc, stopped, event.index, "content_block_stop")
            stopped.add(event.index)
        elif isinstance(event, claude_wire.MessageDeltaEvent):
            acc.finish_reason = claude_codec.FINISH_REASONS.decode(event.delta.stop_reason)
            if event.delta.stop_sequence is not None:
                acc.extra["stop_sequence"] = event.delta.stop_sequence
            if event.usage is not None:
                usage = acc.usage or Usage()
                acc.usage = Usage(
                    input_tokens=event.usage.input_tokens
                    if event.usage.input_tokens is not None
                    else usage.input_tokens,
                    output_tokens=event.usage.output_tokens,
                )
        elif isinstance(event, claude_wire.MessageStopEvent):
            self._close(acc)
            self._stopped.pop(response_id, None)
        return response_id

    def discard(self, response_id: str) -> None:
        super().discard(response_id)
        self._stopped.pop(response_id, None)

    @staticmethod
    def _live_block(
        acc: StreamAccumulator, stopped: set[int], index: int, event: str
    ) -> _TextBuffer | _ToolCallBuffer:
        if not 0 <= index < len(acc.blocks):
            raise InvalidFieldError(f"{event}.index", f"no content block {index} was started")
        if index in stopped:
            raise InvalidFieldError(f"{event}.index", f"content block {index} already stopped")
        return acc.blocks[index]

    def _build(self, acc: StreamAccumulator) -> ChatResponse:
        response = super()._build(acc)
        # Claude responses always carry usage.
        return response.model_copy(update={"hints": frozenset()})


# ---------------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------------


class GeminiStreamAssembler(StreamAssembler):
    """Folds ``streamGenerateContent`` chunks; a ``finishReason`` closes the stream.

    Text of consecutive chunks is joined into one part.  Chunks without a
    ``responseId`` must be fed with ``response_id``.
    """

    provider = GEMINI

    def __init__(self, config: TranscodeConfig = DEFAULT_CONFIG, *, model: str = "") -> None:
        super().__init__(config)
        self.model = model
        self._linkers: dict[str, gemini_codec.CallLinker] = {}

    def feed(self, chunk: Any, response_id: str | None = None) -> str | None:
        payload = self._decode(gemini_wire.GenerateContentChunk, chunk)
        rid = response_id or payload.response_id
        if rid is None:
            raise MissingResponseIdError("generateContent chunk")
        acc = self._open(rid)
        linker = self._linkers.setdefault(rid, gemini_codec.CallLinker())
        acc.model = payload.model_version or acc.model or self.model
        if payload.usage_metadata is not None:
            acc.usage = Usage(
                input_tokens=payload.usage_metadata.prompt_token_count or 0,
                output_tokens=payload.usage_metadata.candidates_token_count or 0,
            )
        if payload.prompt_feedback is not None:
            acc.extra["promptFeedback"] = payload.prompt_feedback

        candidates = payload.candidates or []
        if len(candidates) > 1:
            raise UnrepresentableError("multiple candidates", "a response holds one message", "canonical")
        for candidate in candidates:
            if candidate.index is not None:
                acc.extra["index"] = candidate.index
            if candidate.safety_ratings is not None:
                acc.extra["safetyRatings"] = candidate.safety_ratings
            if candidate.model_extra:
                acc.extra.setdefault("candidate", {}).update(candidate.model_extra)
            parts = as_list(candidate.content.parts) if candidate.content is not None else []
            for part in parts:
                self._apply_part(acc, linker, part)
            if candidate.finish_reason is not None:
                acc.finish_reason = gemini_codec.decode_finish_reason(candidate.finish_reason, acc.message())
                self._close(acc)
                self._linkers.pop(rid, None)
        return rid

    def discard(self, response_id: str) -> None:
        super().discard(response_id)
        self._linkers.pop(response_id, None)

    @staticmethod
    def _apply_part(acc: StreamAccumulator, linker: gemini_codec.CallLinker, part: Any) -> None:
        if isinstance(part, gemini_wire.TextPart):
            if acc.blocks and isinstance(acc.blocks[-1], _TextBuffer):
                acc.blocks[-1].chunks.append(part.text)
            else:
                acc.blocks.append(_TextBuffer(chunks=[part.text]))
        elif isinstance(part, gemini_wire.FunctionCallPart):
            if part.function_call.id is None:
                acc.message_hints.add(gemini_codec.HINT_SYNTHETIC_IDS)
            call = gemini_codec.tool_call_from_gemini(part.function_call, linker)
            acc.blocks.append(_ToolCallBuffer(id=call.id, name=call.name, chunks=[call.arguments]))
        else:
            raise UnrepresentableError(
                f"{type(part).__name__} in model output", "assistant messages hold text and tool calls", "canonical"
            )


def stream_assembler(provider: str, config: TranscodeConfig = DEFAULT_CONFIG, **options: Any) -> StreamAssembler:
    """Return a new assembler for *provider*'s chunk shape."""
    if provider == OPENAI:
        return OpenAIStreamAssembler(config, **options)
    if provider == CLAUDE:
        return ClaudeStreamAssembler(config, **options)
    if provider == GEMINI:
        return GeminiStreamAssembler(config, **options)
    msg = f"Unknown provider: {provider!r}"
    raise ValueError(msg)
