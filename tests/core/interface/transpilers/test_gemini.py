"""Tests for the Gemini transpiler."""

import copy

import pytest

from chatwire.core.errors import InvalidFieldError, UnrepresentableError
from chatwire.core.interface.config import TranscodeConfig
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
)
from chatwire.core.interface.transpiler import HINT_CONTINUES_TURN
from chatwire.core.interface.transpilers.gemini import (
    CONTINUE,
    CONVERSATION_START,
    HINT_MODEL_IN_BODY,
    HINT_NO_ROLE,
    HINT_SYNTHETIC_IDS,
    CallLinker,
    GeminiTranspiler,
    normalize_contents,
)
from chatwire.core.wire import gemini as wire

REQUEST = {
    "systemInstruction": {"parts": [{"text": "Be brief."}]},
    "contents": [
        {"role": "user", "parts": [{"text": "Weather in Paris?"}]},
        {"role": "model", "parts": [{"functionCall": {"name": "weather", "args": {"city": "Paris"}}}]},
        {"role": "user", "parts": [{"functionResponse": {"name": "weather", "response": {"content": "18C"}}}]},
    ],
    "tools": [
        {
            "functionDeclarations": [
                {
                    "name": "weather",
                    "description": "Get weather",
                    "parameters": {"type": "object", "properties": {"city": {"type": "string"}}},
                }
            ]
        }
    ],
    "toolConfig": {"functionCallingConfig": {"mode": "AUTO"}},
    "generationConfig": {"temperature": 0.5, "maxOutputTokens": 256},
}

RESPONSE = {
    "candidates": [
        {"content": {"role": "model", "parts": [{"text": "Sunny."}]}, "finishReason": "STOP", "index": 0}
    ],
    "usageMetadata": {"promptTokenCount": 12, "candidatesTokenCount": 3, "totalTokenCount": 15},
    "modelVersion": "gemini-1.5-pro",
    "responseId": "resp-1",
}


@pytest.fixture
def transpiler() -> GeminiTranspiler:
    return GeminiTranspiler(model="gemini-1.5-pro")


def _call_request(result: ToolResultPart, **kwargs: object) -> ChatRequest:
    return ChatRequest(
        model="gemini-1.5-pro",
        messages=(
            Message.user("weather?"),
            Message.assistant(tool_calls=[ToolCallPart(id="call_abc", name="weather", arguments='{"city": "Paris"}')]),
            Message.tool(result),
        ),
        **kwargs,
    )


class TestRequestFromWire:
    def test_model_comes_from_the_caller(self, transpiler: GeminiTranspiler) -> None:
        assert transpiler.request_from_wire(REQUEST).model == "gemini-1.5-pro"

    def test_synthetic_ids_link_calls_and_responses(self, transpiler: GeminiTranspiler) -> None:
        request = transpiler.request_from_wire(REQUEST)
        _, _, assistant, tool = request.messages
        assert assistant.tool_calls[0].id == "call_0"
        assert tool.tool_results[0].call_id == "call_0"
        assert HINT_SYNTHETIC_IDS in assistant.hints
        assert HINT_SYNTHETIC_IDS in tool.hints

    def test_parameters(self, transpiler: GeminiTranspiler) -> None:
        request = transpiler.request_from_wire(REQUEST)
        assert request.messages[0] == Message.system("Be brief.")
        assert request.tool_choice == ToolChoice.auto()
        assert request.max_tokens == 256
        assert request.temperature == 0.5
        assert request.extra == {}

    def test_model_in_body(self) -> None:
        payload = {"model": "gemini-1.5-flash", "contents": [{"role": "user", "parts": [{"text": "hi"}]}]}
        transpiler = GeminiTranspiler()
        request = transpiler.request_from_wire(payload)
        assert request.model == "gemini-1.5-flash"
        assert HINT_MODEL_IN_BODY in request.hints
        assert transpiler.request_to_wire(request) == payload

    def test_content_without_role(self, transpiler: GeminiTranspiler) -> None:
        payload = {"contents": [{"parts": [{"text": "hi"}]}]}
        request = transpiler.request_from_wire(payload)
        assert request.messages[0].role is Role.USER
        assert HINT_NO_ROLE in request.messages[0].hints
        assert transpiler.request_to_wire(request) == payload

    def test_response_without_a_call(self, transpiler: GeminiTranspiler) -> None:
        payload = {
            "contents": [
                {"role": "user", "parts": [{"functionResponse": {"name": "weather", "response": {}}}]},
            ]
        }
        with pytest.raises(InvalidFieldError) as exc_info:
            transpiler.request_from_wire(payload)
        assert exc_info.value.path == "functionResponse.id"

    def test_unmapped_tool_config_is_extra(self, transpiler: GeminiTranspiler) -> None:
        payload = copy.deepcopy(REQUEST)
        payload["toolConfig"] = {"functionCallingConfig": {"mode": "ANY", "allowedFunctionNames": ["a", "b"]}}
        request = transpiler.request_from_wire(payload)
        assert request.tool_choice is None
        assert request.extra == {"toolConfig": payload["toolConfig"]}
        assert transpiler.request_to_wire(request) == payload

    def test_safety_settings_and_candidate_count(self, transpiler: GeminiTranspiler) -> None:
        payload = copy.deepcopy(REQUEST)
        payload["safetySettings"] = [{"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"}]
        payload["generationConfig"]["candidateCount"] = 1
        request = transpiler.request_from_wire(payload)
        assert request.extra_provider == "gemini"
        assert request.extra["generationConfig"] == {"candidateCount": 1}
        assert transpiler.request_to_wire(request) == payload


class TestRoundTrip:
    def test_request(self, transpiler: GeminiTranspiler) -> None:
        original = copy.deepcopy(REQUEST)
        assert transpiler.request_to_wire(transpiler.request_from_wire(REQUEST)) == original

    def test_response(self, transpiler: GeminiTranspiler) -> None:
        response = transpiler.response_from_wire(RESPONSE)
        assert response.id == "resp-1"
        assert response.text == "Sunny."
        assert transpiler.response_to_wire(response) == RESPONSE

    def test_function_call_response(self, transpiler: GeminiTranspiler) -> None:
        payload = {
            "candidates": [
                {
                    "content": {
                        "role": "model",
                        "parts": [{"functionCall": {"name": "weather", "args": {"city": "Rome"}}}],
                    },
                    "finishReason": "STOP",
                }
            ],
        }
        response = transpiler.response_from_wire(payload)
        assert response.finish_reason == FinishReason(kind=FinishKind.TOOL_CALLS)
        assert response.tool_calls[0].id == "call_0"
        assert transpiler.response_to_wire(response) == payload

    def test_unmodelled_candidate_fields(self, transpiler: GeminiTranspiler) -> None:
        payload = copy.deepcopy(RESPONSE)
        payload["candidates"][0]["avgLogprobs"] = -0.25
        response = transpiler.response_from_wire(payload)
        assert response.extra["candidate"] == {"avgLogprobs": -0.25}
        assert transpiler.response_to_wire(response) == payload


class TestEncoding:
    def test_real_ids_are_sent(self, transpiler: GeminiTranspiler) -> None:
        body = transpiler.request_to_wire(_call_request(ToolResultPart.from_text("call_abc", "18C")))
        assert body["contents"][1] == {
            "role": "model",
            "parts": [{"functionCall": {"id": "call_abc", "name": "weather", "args": {"city": "Paris"}}}],
        }
        assert body["contents"][2] == {
            "role": "user",
            "parts": [{"functionResponse": {"id": "call_abc", "name": "weather", "response": {"content": "18C"}}}],
        }

    def test_json_object_result_is_sent_as_is(self, transpiler: GeminiTranspiler) -> None:
        body = transpiler.request_to_wire(_call_request(ToolResultPart.from_text("call_abc", '{"temp": 18}')))
        assert body["contents"][2]["parts"][0]["functionResponse"]["response"] == {"temp": 18}

    def test_json_scalar_result_is_wrapped(self, transpiler: GeminiTranspiler) -> None:
        body = transpiler.request_to_wire(_call_request(ToolResultPart.from_text("call_abc", "18")))
        assert body["contents"][2]["parts"][0]["functionResponse"]["response"] == {"content": "18"}

    def test_empty_result(self, transpiler: GeminiTranspiler) -> None:
        body = transpiler.request_to_wire(_call_request(ToolResultPart(call_id="call_abc")))
        assert body["contents"][2]["parts"][0]["functionResponse"]["response"] == {}

    def test_multi_part_result(self, transpiler: GeminiTranspiler) -> None:
        result = ToolResultPart(call_id="call_abc", content=(TextPart(text="a"), TextPart(text="b")))
        with pytest.raises(UnrepresentableError, match="single value"):
            transpiler.request_to_wire(_call_request(result))

    def test_parallel_tool_calls_cannot_be_disabled(self, transpiler: GeminiTranspiler) -> None:
        request = _call_request(ToolResultPart.from_text("call_abc", "18C"), parallel_tool_calls=False)
        with pytest.raises(UnrepresentableError, match="parallel_tool_calls"):
            transpiler.request_to_wire(request)

    def test_no_tool_choice(self, transpiler: GeminiTranspiler) -> None:
        request = ChatRequest(model="m", messages=(Message.user("hi"),))
        assert "toolConfig" not in transpiler.request_to_wire(request)

    def test_named_tool_choice(self, transpiler: GeminiTranspiler) -> None:
        request = ChatRequest(
            model="m",
            messages=(Message.user("hi"),),
            tools=(ToolDefinition(name="f"),),
            tool_choice=ToolChoice.tool("f"),
        )
        assert transpiler.request_to_wire(request)["toolConfig"] == {
            "functionCallingConfig": {"mode": "ANY", "allowedFunctionNames": ["f"]}
        }

    def test_images(self, transpiler: GeminiTranspiler) -> None:
        request = ChatRequest(
            model="m",
            messages=(
                Message.user(
                    "see",
                    ImagePart(data="aGk=", media_type="image/png"),
                    ImagePart(url="gs://bucket/a.png", media_type="image/png"),
                ),
            ),
        )
        assert transpiler.request_to_wire(request)["contents"][0]["parts"] == [
            {"text": "see"},
            {"inlineData": {"mimeType": "image/png", "data": "aGk="}},
            {"fileData": {"mimeType": "image/png", "fileUri": "gs://bucket/a.png"}},
        ]

    def test_tool_result_and_user_text_stay_separate(self, transpiler: GeminiTranspiler) -> None:
        request = ChatRequest(
            model="m",
            messages=(
                Message.assistant(tool_calls=[ToolCallPart(id="c1", name="f")]),
                Message.tool(ToolResultPart.from_text("c1", "ok")),
                Message.user("thanks"),
            ),
        )
        contents = transpiler.request_to_wire(request)["contents"]
        assert [c["role"] for c in contents] == ["model", "user", "user"]
        assert GeminiTranspiler(model="m").request_from_wire(transpiler.request_to_wire(request)) == request

    def test_merge_consecutive_roles_config(self) -> None:
        transpiler = GeminiTranspiler(TranscodeConfig(merge_consecutive_roles=True), model="m")
        request = ChatRequest(
            model="m",
            messages=(
                Message.assistant(tool_calls=[ToolCallPart(id="c1", name="f")]),
                Message.tool(ToolResultPart.from_text("c1", "ok")),
                Message.user("thanks"),
            ),
        )
        contents = transpiler.request_to_wire(request)["contents"]
        assert [c["role"] for c in contents] == ["model", "user"]
        assert len(contents[1]["parts"]) == 2

    def test_split_user_turn_is_rejoined(self, transpiler: GeminiTranspiler) -> None:
        payload = {
            "contents": [
                {"role": "model", "parts": [{"functionCall": {"id": "c1", "name": "f", "args": {}}}]},
                {
                    "role": "user",
                    "parts": [
                        {"functionResponse": {"id": "c1", "name": "f", "response": {"content": "ok"}}},
                        {"text": "thanks"},
                    ],
                },
            ],
        }
        request = transpiler.request_from_wire(payload)
        assert [m.role for m in request.messages] == [Role.ASSISTANT, Role.TOOL, Role.USER]
        assert HINT_CONTINUES_TURN in request.messages[2].hints
        assert transpiler.request_to_wire(request) == payload

    def test_foreign_response_extra_is_omitted(self, transpiler: GeminiTranspiler) -> None:
        response = ChatResponse(
            id="r",
            model="m",
            message=Message.assistant("hi"),
            extra={"system_fingerprint": "fp"},
            extra_provider="openai",
        )
        body = transpiler.response_to_wire(response)
        assert "system_fingerprint" not in body
        assert body["candidates"][0]["content"] == {"role": "model", "parts": [{"text": "hi"}]}


class TestCallLinker:
    def test_latest_pending_call_of_the_same_name(self) -> None:
        linker = CallLinker()
        first = linker.call_id(wire.FunctionCall(name="f"))
        second = linker.call_id(wire.FunctionCall(name="f"))
        other = linker.call_id(wire.FunctionCall(name="g"))
        assert (first, second, other) == ("call_0", "call_1", "call_2")
        assert linker.response_id(wire.FunctionResponse(name="f", response={})) == "call_1"
        assert linker.response_id(wire.FunctionResponse(name="f", response={})) == "call_0"

    def test_explicit_ids(self) -> None:
        linker = CallLinker()
        assert linker.call_id(wire.FunctionCall(id="x", name="f")) == "x"
        assert linker.response_id(wire.FunctionResponse(id="x", name="f", response={})) == "x"
        with pytest.raises(InvalidFieldError):
            linker.response_id(wire.FunctionResponse(name="f", response={}))


class TestNormalizeContents:
    def test_wraps_model_turns(self) -> None:
        contents = normalize_contents([wire.Content(role="model", parts=[wire.TextPart(text="hi")])])
        assert [c.role for c in contents] == ["user", "model", "user"]
        assert contents[0].parts[0].text == CONVERSATION_START
        assert contents[-1].parts[0].text == CONTINUE

    def test_merges_same_role(self) -> None:
        contents = normalize_contents(
            [
                wire.Content(role="user", parts=[wire.TextPart(text="a")]),
                wire.Content(parts=[wire.TextPart(text="b")]),
            ]
        )
        assert len(contents) == 1
        assert [p.text for p in contents[0].parts] == ["a", "b"]

    def test_empty(self) -> None:
        assert normalize_contents([]) == []
