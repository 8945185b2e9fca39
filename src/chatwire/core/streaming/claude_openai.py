"""Translate a Claude event stream into OpenAI ``chat.completion.chunk`` payloads.

Lets a service that talks to Claude serve OpenAI-style streaming clients::

    translator = ClaudeChunkTranslator()
    for event in claude_events:
        for chunk in translator.translate(event):
            send(chunk)                    # dict, or "[DONE]" at the end
    completion = translator.completion()   # aggregated chat.completion

Text blocks become ``content`` deltas and ``tool_use`` blocks become
``tool_calls`` deltas numbered in order of appearance.  ``ping`` events
produce nothing; an ``error`` event raises ``ProviderStreamError``.
Usage in the aggregated completion is the ``message_start`` usage plus
every ``message_delta`` usage.
"""

import time
from typing import Any

from chatwire.core.errors import InvalidFieldError, ProviderStreamError
from chatwire.core.interface.config import DEFAULT_CONFIG, TranscodeConfig
from chatwire.core.interface.models import Usage
from chatwire.core.interface.transpilers import claude as claude_codec
from chatwire.core.interface.transpilers import openai as openai_codec
from chatwire.core.streaming.assembler import OpenAIStreamAssembler
from chatwire.core.wire import claude as claude_wire
from chatwire.core.wire import openai as openai_wire
from chatwire.core.wire.base import WireModel, decode


class ClaudeChunkTranslator:
    """Stateful translator for one Claude response stream."""

    def __init__(self, config: TranscodeConfig = DEFAULT_CONFIG, *, created: int | None = None) -> None:
        self.config = config
        self.created = int(time.time()) if created is None else created
        self.id = ""
        self.model = ""
        self.usage = Usage()
        self._tool_index: dict[int, int] = {}
        self._assembler = OpenAIStreamAssembler(config)
        self._done = False

    def translate(self, event: Any) -> list[dict[str, Any] | str]:
        """Return the OpenAI payloads for one Claude event (possibly none)."""
        if not isinstance(event, WireModel):
            event = decode(claude_wire.STREAM_EVENT_ADAPTER, event, self.config.decode_mode)

        if isinstance(event, claude_wire.ErrorEvent):
            raise ProviderStreamError(event.error.type, event.error.message, self.id or None)
        if isinstance(event, claude_wire.MessageStartEvent):
            self.id = event.message.id
            self.model = event.message.model
            self.usage = Usage(
                input_tokens=event.message.usage.input_tokens,
                output_tokens=event.message.usage.output_tokens,
            )
            return [self._chunk(openai_wire.ChoiceDelta(role="assistant"))]
        if isinstance(event, claude_wire.ContentBlockStartEvent):
            return self._block_start(event)
        if isinstance(event, claude_wire.ContentBlockDeltaEvent):
            return self._block_delta(event)
        if isinstance(event, claude_wire.MessageDeltaEvent):
            if event.usage is not None:
                self.usage = self.usage + Usage(
                    input_tokens=event.usage.input_tokens or 0,
                    output_tokens=event.usage.output_tokens,
                )
            finish = claude_codec.FINISH_REASONS.decode(event.delta.stop_reason)
            reason = openai_codec.FINISH_REASONS.encode(finish)
            return [self._chunk(openai_wire.ChoiceDelta(), finish_reason=reason or "stop")]
        if isinstance(event, claude_wire.MessageStopEvent):
            self._done = True
            return [openai_wire.DONE]
        # ping, content_block_stop
        return []

    def completion(self) -> dict[str, Any]:
        """The aggregated ``chat.completion`` for everything translated so far."""
        response = self._assembler.result(self.id)
        response = response.model_copy(update={"usage": self.usage, "hints": frozenset()})
        return openai_codec.OpenAITranspiler(self.config).response_to_wire(response)

    @property
    def done(self) -> bool:
        return self._done

    # -- helpers --------------------------------------------------------------

    def _block_start(self, event: claude_wire.ContentBlockStartEvent) -> list[dict[str, Any] | str]:
        block = event.content_block
        if isinstance(block, claude_wire.TextBlock):
            if not block.text:
                return []
            return [self._chunk(openai_wire.ChoiceDelta(content=block.text))]
        index = len(self._tool_index)
        self._tool_index[event.index] = index
        call = openai_wire.ToolCallDelta(
            index=index,
            id=block.id,
            type="function",
            function=openai_wire.FunctionCallDelta(name=block.name, arguments=""),
        )
        return [self._chunk(openai_wire.ChoiceDelta(tool_calls=[call]))]

    def _block_delta(self, event: claude_wire.ContentBlockDeltaEvent) -> list[dict[str, Any] | str]:
        delta = event.delta
        if isinstance(delta, claude_wire.TextDelta):
            return [self._chunk(openai_wire.ChoiceDelta(content=delta.text))]
        if event.index not in self._tool_index:
            raise InvalidFieldError("content_block_delta.index", f"block {event.index} is not a tool_use block")
        call = openai_wire.ToolCallDelta(
            index=self._tool_index[event.index],
            function=openai_wire.FunctionCallDelta(arguments=delta.partial_json),
        )
        return [self._chunk(openai_wire.ChoiceDelta(tool_calls=[call]))]

    def _chunk(self, delta: openai_wire.ChoiceDelta, finish_reason: str | None = None) -> dict[str, Any]:
        choice: dict[str, Any] = {"index": 0, "delta": delta}
        if finish_reason is not None:
            choice["finish_reason"] = finish_reason
        chunk = openai_wire.ChatCompletionChunk(
            id=self.id,
            created=self.created,
            model=self.model,
            choices=[openai_wire.ChunkChoice(**choice)],
        )
        self._assembler.feed(chunk)
        return chunk.to_wire()
