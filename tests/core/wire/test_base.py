"""Tests for wire primitives: tagged unions, decode modes and error paths."""

import pytest
from pydantic import ValidationError

from chatwire.core.errors import (
    InvalidFieldError,
    SchemaErrorGroup,
    UnknownVariantError,
)
from chatwire.core.wire import openai
from chatwire.core.wire.base import DecodeMode, as_list, decode, decode_batch, encode


class TestTaggedUnion:
    def test_selects_variant_by_tag(self) -> None:
        body = decode(
            openai.ChatCompletionRequest,
            {"model": "gpt-4o", "messages": [{"role": "user", "content": "hi"}]},
        )
        assert isinstance(body.messages[0], openai.UserMessage)

    def test_unknown_tag(self) -> None:
        payload = {"model": "gpt-4o", "messages": [{"role": "robot", "content": "beep"}]}
        with pytest.raises(UnknownVariantError) as exc_info:
            decode(openai.ChatCompletionRequest, payload)
        err = exc_info.value
        assert err.tag == "role"
        assert err.value == "robot"
        assert err.path == "messages[0]"
        assert err.raw == {"role": "robot", "content": "beep"}

    def test_missing_tag(self) -> None:
        payload = {"model": "gpt-4o", "messages": [{"content": "hi"}]}
        with pytest.raises(InvalidFieldError) as exc_info:
            decode(openai.ChatCompletionRequest, payload)
        assert exc_info.value.path == "messages[0].role"

    def test_missing_required_field(self) -> None:
        payload = {"model": "gpt-4o", "messages": [{"role": "tool", "content": "42"}]}
        with pytest.raises(InvalidFieldError) as exc_info:
            decode(openai.ChatCompletionRequest, payload)
        assert exc_info.value.path == "messages[0].tool_call_id"

    def test_unknown_part_inside_content_array(self) -> None:
        payload = {
            "model": "gpt-4o",
            "messages": [{"role": "user", "content": [{"type": "input_audio", "input_audio": {}}]}],
        }
        with pytest.raises(UnknownVariantError) as exc_info:
            decode(openai.ChatCompletionRequest, payload)
        assert exc_info.value.path == "messages[0].content[0]"
        assert exc_info.value.value == "input_audio"


class TestDecodeModes:
    PAYLOAD = {"messages": [{"role": "robot"}, {"role": "tool", "content": "x"}]}

    def test_fail_fast_reports_unknown_variant_first(self) -> None:
        with pytest.raises(UnknownVariantError):
            decode(openai.ChatCompletionRequest, self.PAYLOAD, DecodeMode.FAIL_FAST)

    def test_collect_reports_everything(self) -> None:
        with pytest.raises(SchemaErrorGroup) as exc_info:
            decode(openai.ChatCompletionRequest, self.PAYLOAD, DecodeMode.COLLECT)
        errors = exc_info.value.exceptions
        assert isinstance(errors[0], UnknownVariantError)
        assert {e.path for e in errors} == {"model", "messages[0]", "messages[1].tool_call_id"}

    def test_decode_batch_isolates_items(self) -> None:
        report = decode_batch(
            openai.MESSAGE_ADAPTER,
            [
                {"role": "user", "content": "hi"},
                {"role": "robot"},
                {"role": "system", "content": "sys"},
            ],
        )
        assert not report.ok
        assert isinstance(report.values[0], openai.UserMessage)
        assert report.values[1] is None
        assert isinstance(report.values[2], openai.SystemMessage)
        assert list(report.errors) == [1]
        assert isinstance(report.errors[1][0], UnknownVariantError)

    def test_decode_batch_all_good(self) -> None:
        report = decode_batch(openai.MESSAGE_ADAPTER, [{"role": "user", "content": "hi"}])
        assert report.ok


class TestEncoding:
    def test_wire_tags_always_emitted(self) -> None:
        assert openai.TextContentPart(text="x").to_wire() == {"type": "text", "text": "x"}

    def test_unset_fields_are_omitted(self) -> None:
        assert openai.ImageURL(url="https://x/a.png").to_wire() == {"url": "https://x/a.png"}

    def test_explicit_null_is_kept(self) -> None:
        msg = decode(openai.MESSAGE_ADAPTER, {"role": "assistant", "content": None})
        assert msg.to_wire() == {"role": "assistant", "content": None}

    def test_unmodelled_fields_round_trip(self) -> None:
        payload = {
            "model": "gpt-4o",
            "messages": [{"role": "user", "content": "hi"}],
            "seed": 7,
            "response_format": {"type": "json_object"},
        }
        assert decode(openai.ChatCompletionRequest, payload).to_wire() == payload

    def test_encode_lists(self) -> None:
        parts = [openai.TextContentPart(text="a"), {"plain": True}]
        assert encode(parts) == [{"type": "text", "text": "a"}, {"plain": True}]

    def test_models_are_frozen(self) -> None:
        part = openai.TextContentPart(text="a")
        with pytest.raises(ValidationError):
            part.text = "b"  # type: ignore[misc]


class TestAsList:
    def test_values(self) -> None:
        assert as_list(None) == []
        assert as_list(1) == [1]
        assert as_list((1, 2)) == [1, 2]
