"""Tests for the Gemini generateContent wire shapes."""

import pytest

from chatwire.core.errors import InvalidFieldError, UnknownVariantError
from chatwire.core.wire import gemini
from chatwire.core.wire.base import decode


def _request(*parts: object) -> dict[str, object]:
    return {"contents": [{"role": "user", "parts": list(parts)}]}


class TestParts:
    def test_variant_by_member_key(self) -> None:
        body = decode(
            gemini.GenerateContentRequest,
            _request(
                {"text": "hi"},
                {"inlineData": {"mimeType": "image/png", "data": "aGk="}},
                {"functionCall": {"name": "f", "args": {}}},
            ),
        )
        text, image, call = body.contents[0].parts
        assert isinstance(text, gemini.TextPart)
        assert isinstance(image, gemini.InlineDataPart)
        assert image.inline_data.mime_type == "image/png"
        assert isinstance(call, gemini.FunctionCallPart)

    def test_unknown_part(self) -> None:
        payload = _request({"executableCode": {"language": "PYTHON", "code": "print(1)"}})
        with pytest.raises(UnknownVariantError) as exc_info:
            decode(gemini.GenerateContentRequest, payload)
        assert exc_info.value.tag == "part"
        assert exc_info.value.value == "executableCode"
        assert exc_info.value.path == "contents[0].parts[0]"

    def test_ambiguous_part(self) -> None:
        with pytest.raises(InvalidFieldError):
            decode(gemini.GenerateContentRequest, _request({"text": "a", "functionCall": {"name": "f"}}))

    def test_empty_part(self) -> None:
        with pytest.raises(InvalidFieldError):
            decode(gemini.GenerateContentRequest, _request({}))


class TestShapes:
    def test_single_objects_are_preserved(self) -> None:
        payload = {"contents": {"role": "user", "parts": {"text": "hi"}}}
        body = decode(gemini.GenerateContentRequest, payload)
        assert body.to_wire() == payload

    def test_camel_case_on_the_wire(self) -> None:
        payload = {
            "contents": [{"role": "user", "parts": [{"text": "hi"}]}],
            "systemInstruction": {"parts": [{"text": "be brief"}]},
            "generationConfig": {"maxOutputTokens": 10, "topK": 3},
        }
        body = decode(gemini.GenerateContentRequest, payload)
        assert body.generation_config.max_output_tokens == 10
        assert body.to_wire() == payload

    def test_snake_case_is_accepted(self) -> None:
        body = decode(
            gemini.GenerateContentRequest,
            {"contents": [{"parts": [{"text": "hi"}]}], "generation_config": {"max_output_tokens": 5}},
        )
        assert body.to_wire()["generationConfig"] == {"maxOutputTokens": 5}

    def test_chunk_without_candidates(self) -> None:
        chunk = decode(gemini.GenerateContentChunk, {"usageMetadata": {"promptTokenCount": 3}})
        assert chunk.candidates is None

    def test_response_needs_candidates(self) -> None:
        with pytest.raises(InvalidFieldError) as exc_info:
            decode(gemini.GenerateContentResponse, {"usageMetadata": {}})
        assert exc_info.value.path == "candidates"
