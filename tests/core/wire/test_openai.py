"""Tests for the OpenAI chat-completions wire shapes."""

import pytest

from chatwire.core.errors import UnknownVariantError
from chatwire.core.wire import openai
from chatwire.core.wire.base import decode

COMPLETION = {
    "id": "chatcmpl-1",
    "object": "chat.completion",
    "created": 1700000000,
    "model": "gpt-4o",
    "choices": [
        {"index": 0, "message": {"role": "assistant", "content": "Hi"}, "finish_reason": "stop", "logprobs": None}
    ],
    "usage": {"prompt_tokens": 5, "completion_tokens": 1, "total_tokens": 6},
}

CHUNK = {
    "id": "chatcmpl-1",
    "object": "chat.completion.chunk",
    "created": 1700000000,
    "model": "gpt-4o",
    "choices": [{"index": 0, "delta": {"content": "Hi"}}],
}


class TestResponses:
    def test_completion_by_object_tag(self) -> None:
        value = openai.decode_response(COMPLETION)
        assert isinstance(value, openai.ChatCompletion)
        assert value.to_wire() == COMPLETION

    def test_chunk_by_object_tag(self) -> None:
        value = openai.decode_response(CHUNK)
        assert isinstance(value, openai.ChatCompletionChunk)
        assert value.to_wire() == CHUNK

    def test_unknown_object(self) -> None:
        with pytest.raises(UnknownVariantError) as exc_info:
            openai.decode_response({**COMPLETION, "object": "response"})
        assert exc_info.value.tag == "object"

    def test_done_sentinel(self) -> None:
        assert openai.decode_chunk("[DONE]") is openai.DONE
        assert isinstance(openai.decode_chunk(CHUNK), openai.ChatCompletionChunk)

    def test_usage_only_chunk(self) -> None:
        chunk = {**CHUNK, "choices": [], "usage": {"prompt_tokens": 5, "completion_tokens": 1, "total_tokens": 6}}
        value = openai.decode_chunk(chunk)
        assert value.choices == []
        assert value.usage is not None


class TestRequests:
    def test_tool_choice_forms(self) -> None:
        base = {"model": "gpt-4o", "messages": [{"role": "user", "content": "hi"}]}
        assert decode(openai.ChatCompletionRequest, {**base, "tool_choice": "required"}).tool_choice == "required"
        named = {"type": "function", "function": {"name": "lookup"}}
        body = decode(openai.ChatCompletionRequest, {**base, "tool_choice": named})
        assert isinstance(body.tool_choice, openai.NamedToolChoice)
        assert body.to_wire()["tool_choice"] == named

    def test_content_string_or_array(self) -> None:
        text = decode(openai.MESSAGE_ADAPTER, {"role": "user", "content": "hi"})
        parts = decode(openai.MESSAGE_ADAPTER, {"role": "user", "content": [{"type": "text", "text": "hi"}]})
        assert text.content == "hi"
        assert isinstance(parts.content[0], openai.TextContentPart)

    def test_system_content_is_text_only(self) -> None:
        payload = {"role": "system", "content": [{"type": "image_url", "image_url": {"url": "https://x"}}]}
        with pytest.raises(UnknownVariantError) as exc_info:
            decode(openai.MESSAGE_ADAPTER, payload)
        assert exc_info.value.path == "content[0]"

    def test_tool_call_arguments_stay_text(self) -> None:
        payload = {
            "role": "assistant",
            "content": None,
            "tool_calls": [{"id": "c1", "type": "function", "function": {"name": "f", "arguments": "{\"a\":1}"}}],
        }
        msg = decode(openai.MESSAGE_ADAPTER, payload)
        assert msg.tool_calls[0].function.arguments == '{"a":1}'
        assert msg.to_wire() == payload
