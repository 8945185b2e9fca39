"""Tests for the Claude transpiler."""

import copy

import pytest

from chatwire.core.errors import UnrepresentableError
from chatwire.core.interface.config import TranscodeConfig
from chatwire.core.interface.models import (
    ChatRequest,
    FinishKind,
    ImagePart,
    Message,
    Role,
    ToolCallPart,
    ToolChoice,
    ToolDefinition,
    ToolResultPart,
)
from chatwire.core.interface.transpiler import HINT_CONTINUES_TURN
from chatwire.core.interface.transpilers.claude import (
    EMPTY_INPUT_SCHEMA,
    HINT_IS_ERROR_FALSE,
    HINT_SYSTEM_BLOCKS,
    ClaudeTranspiler,
)

REQUEST = {
    "model": "claude-3-5-sonnet-20241022",
    "max_tokens": 1024,
    "system": "You are terse.",
    "messages": [
        {"role": "user", "content": "Weather in Paris?"},
        {
            "role": "assistant",
            "content": [
                {"type": "text", "text": "Checking."},
                {"type": "tool_use", "id": "toolu_1", "name": "weather", "input": {"city": "Paris"}},
            ],
        },
        {
            "role": "user",
            "content": [
                {"type": "tool_result", "tool_use_id": "toolu_1", "content": "18C"},
                {"type": "text", "text": "Thanks"},
            ],
        },
    ],
    "tools": [
        {
            "name": "weather",
            "description": "Get weather",
            "input_schema": {"type": "object", "properties": {"city": {"type": "string"}}},
        }
    ],
    "tool_choice": {"type": "auto"},
    "top_k": 5,
}

RESPONSE = {
    "id": "msg_1",
    "type": "message",
    "role": "assistant",
    "model": "claude-3-5-sonnet-20241022",
    "content": [
        {"type": "text", "text": "Let me check."},
        {"type": "tool_use", "id": "toolu_2", "name": "weather", "input": {"city": "Rome"}},
    ],
    "stop_reason": "tool_use",
    "stop_sequence": None,
    "usage": {"input_tokens": 20, "output_tokens": 8},
}


@pytest.fixture
def transpiler() -> ClaudeTranspiler:
    return ClaudeTranspiler()


class TestRequestFromWire:
    def test_system_becomes_a_message(self, transpiler: ClaudeTranspiler) -> None:
        request = transpiler.request_from_wire(REQUEST)
        assert request.messages[0] == Message.system("You are terse.")

    def test_tool_results_split_from_user_text(self, transpiler: ClaudeTranspiler) -> None:
        request = transpiler.request_from_wire(REQUEST)
        roles = [m.role for m in request.messages]
        assert roles == [Role.SYSTEM, Role.USER, Role.ASSISTANT, Role.TOOL, Role.USER]
        assert request.messages[3].tool_results[0] == ToolResultPart.from_text("toolu_1", "18C")
        assert request.messages[4].text == "Thanks"

    def test_tool_input_becomes_json_text(self, transpiler: ClaudeTranspiler) -> None:
        request = transpiler.request_from_wire(REQUEST)
        (call,) = request.messages[2].tool_calls
        assert call.arguments == '{"city": "Paris"}'

    def test_parallel_flag(self, transpiler: ClaudeTranspiler) -> None:
        payload = {**REQUEST, "tool_choice": {"type": "any", "disable_parallel_tool_use": True}}
        request = transpiler.request_from_wire(payload)
        assert request.tool_choice == ToolChoice.required()
        assert request.parallel_tool_calls is False

    def test_system_blocks(self, transpiler: ClaudeTranspiler) -> None:
        payload = {
            "model": "m",
            "max_tokens": 10,
            "system": [{"type": "text", "text": "A"}, {"type": "text", "text": "B"}],
            "messages": [{"role": "user", "content": "hi"}],
        }
        request = transpiler.request_from_wire(payload)
        assert HINT_SYSTEM_BLOCKS in request.hints
        assert [m.text for m in request.system_messages] == ["A", "B"]
        assert transpiler.request_to_wire(request) == payload

    def test_metadata_is_extra(self, transpiler: ClaudeTranspiler) -> None:
        payload = {**REQUEST, "metadata": {"user_id": "u-1"}}
        request = transpiler.request_from_wire(payload)
        assert request.extra == {"metadata": {"user_id": "u-1"}}
        assert request.extra_provider == "claude"
        assert transpiler.request_to_wire(request) == payload


class TestRoundTrip:
    def test_request(self, transpiler: ClaudeTranspiler) -> None:
        original = copy.deepcopy(REQUEST)
        assert transpiler.request_to_wire(transpiler.request_from_wire(REQUEST)) == original

    def test_split_user_turn_is_rejoined(self, transpiler: ClaudeTranspiler) -> None:
        payload = {
            "model": "m",
            "max_tokens": 10,
            "messages": [
                {
                    "role": "assistant",
                    "content": [
                        {"type": "tool_use", "id": "t1", "name": "f", "input": {}},
                        {"type": "tool_use", "id": "t2", "name": "f", "input": {}},
                    ],
                },
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": "before"},
                        {"type": "tool_result", "tool_use_id": "t1", "content": "a"},
                        {"type": "tool_result", "tool_use_id": "t2", "content": "b"},
                        {"type": "text", "text": "after"},
                    ],
                },
                {"role": "user", "content": "next"},
            ],
        }
        request = transpiler.request_from_wire(payload)
        assert [HINT_CONTINUES_TURN in m.hints for m in request.messages] == [False, False, True, True, True, False]
        assert transpiler.request_to_wire(request) == payload

    @pytest.mark.parametrize(
        "block",
        [
            {"type": "tool_result", "tool_use_id": "t1", "content": "ok", "is_error": False},
            {"type": "tool_result", "tool_use_id": "t1", "content": []},
            {"type": "tool_result", "tool_use_id": "t1", "content": [], "is_error": False},
            {"type": "tool_result", "tool_use_id": "t1", "content": [{"type": "text", "text": "ok"}]},
            {"type": "tool_result", "tool_use_id": "t1", "is_error": True},
        ],
    )
    def test_tool_result_keys(self, transpiler: ClaudeTranspiler, block: dict[str, object]) -> None:
        payload = {
            "model": "m",
            "max_tokens": 10,
            "messages": [
                {"role": "assistant", "content": [{"type": "tool_use", "id": "t1", "name": "f", "input": {}}]},
                {"role": "user", "content": [block]},
            ],
        }
        assert transpiler.request_to_wire(transpiler.request_from_wire(payload)) == payload

    def test_explicit_is_error_false_is_not_an_error(self, transpiler: ClaudeTranspiler) -> None:
        payload = {
            "model": "m",
            "max_tokens": 10,
            "messages": [
                {"role": "assistant", "content": [{"type": "tool_use", "id": "t1", "name": "f", "input": {}}]},
                {"role": "user", "content": [{"type": "tool_result", "tool_use_id": "t1", "is_error": False}]},
            ],
        }
        message = transpiler.request_from_wire(payload).messages[1]
        assert HINT_IS_ERROR_FALSE in message.hints
        assert message.tool_results[0].is_error is False
        assert message.tool_results[0].content == ()

    def test_response(self, transpiler: ClaudeTranspiler) -> None:
        response = transpiler.response_from_wire(RESPONSE)
        assert response.finish_reason is not None
        assert response.finish_reason.kind is FinishKind.TOOL_CALLS
        assert response.usage.total_tokens == 28
        assert transpiler.response_to_wire(response) == RESPONSE

    def test_response_with_cache_usage(self, transpiler: ClaudeTranspiler) -> None:
        payload = copy.deepcopy(RESPONSE)
        payload["usage"]["cache_read_input_tokens"] = 12
        payload["stop_sequence"] = None
        response = transpiler.response_from_wire(payload)
        assert response.extra == {"cache_read_input_tokens": 12}
        assert transpiler.response_to_wire(response) == payload

    def test_image_blocks(self, transpiler: ClaudeTranspiler) -> None:
        payload = {
            "model": "m",
            "max_tokens": 10,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": "aGk="}},
                        {"type": "image", "source": {"type": "url", "url": "https://x/a.png"}},
                    ],
                }
            ],
        }
        request = transpiler.request_from_wire(payload)
        assert request.messages[0].images == [
            ImagePart(data="aGk=", media_type="image/png"),
            ImagePart(url="https://x/a.png"),
        ]
        assert transpiler.request_to_wire(request) == payload


class TestEncodingDefaults:
    def test_system_messages_are_joined(self, transpiler: ClaudeTranspiler) -> None:
        request = ChatRequest(
            model="m",
            messages=(Message.system("A"), Message.system("B"), Message.user("hi")),
        )
        assert transpiler.request_to_wire(request) == {
            "model": "m",
            "system": "A\nB",
            "messages": [{"role": "user", "content": "hi"}],
            "max_tokens": 4000,
        }

    def test_configured_default_max_tokens(self) -> None:
        transpiler = ClaudeTranspiler(TranscodeConfig(claude_default_max_tokens=256))
        request = ChatRequest(model="m", messages=(Message.user("hi"),))
        assert transpiler.request_to_wire(request)["max_tokens"] == 256

    def test_consecutive_roles_stay_separate(self, transpiler: ClaudeTranspiler) -> None:
        request = ChatRequest(model="m", messages=(Message.user("a"), Message.user("b")), max_tokens=5)
        body = transpiler.request_to_wire(request)
        assert body["messages"] == [{"role": "user", "content": "a"}, {"role": "user", "content": "b"}]
        assert transpiler.request_from_wire(body) == request

    def test_canonical_tool_turns_round_trip(self, transpiler: ClaudeTranspiler) -> None:
        request = ChatRequest(
            model="m",
            messages=(
                Message.user("go"),
                Message.assistant(tool_calls=[ToolCallPart(id="t1", name="f"), ToolCallPart(id="t2", name="f")]),
                Message.tool(ToolResultPart.from_text("t1", "a")),
                Message.tool(ToolResultPart.from_text("t2", "b")),
                Message.user("thanks"),
            ),
            max_tokens=5,
        )
        assert transpiler.request_from_wire(transpiler.request_to_wire(request)) == request

    def test_merge_consecutive_roles_config(self) -> None:
        transpiler = ClaudeTranspiler(TranscodeConfig(merge_consecutive_roles=True))
        request = ChatRequest(model="m", messages=(Message.user("a"), Message.user("b")), max_tokens=5)
        assert transpiler.request_to_wire(request)["messages"] == [
            {"role": "user", "content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]}
        ]

    def test_tool_without_parameters(self, transpiler: ClaudeTranspiler) -> None:
        request = ChatRequest(model="m", messages=(Message.user("hi"),), tools=(ToolDefinition(name="ping"),))
        assert transpiler.request_to_wire(request)["tools"] == [{"name": "ping", "input_schema": EMPTY_INPUT_SCHEMA}]

    def test_parallel_flag_without_choice(self, transpiler: ClaudeTranspiler) -> None:
        request = ChatRequest(model="m", messages=(Message.user("hi"),), parallel_tool_calls=False)
        assert transpiler.request_to_wire(request)["tool_choice"] == {
            "type": "auto",
            "disable_parallel_tool_use": True,
        }

    def test_error_result(self, transpiler: ClaudeTranspiler) -> None:
        request = ChatRequest(
            model="m",
            messages=(
                Message.assistant(tool_calls=[ToolCallPart(id="t1", name="f")]),
                Message.tool(ToolResultPart.from_text("t1", "boom", is_error=True)),
            ),
            max_tokens=5,
        )
        body = transpiler.request_to_wire(request)
        assert body["messages"][1] == {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": "t1", "content": "boom", "is_error": True}],
        }

    @pytest.mark.parametrize("arguments", ["not json", "[1, 2]"])
    def test_arguments_must_be_an_object(self, transpiler: ClaudeTranspiler, arguments: str) -> None:
        request = ChatRequest(
            model="m",
            messages=(Message.assistant(tool_calls=[ToolCallPart(id="t1", name="f", arguments=arguments)]),),
            max_tokens=5,
        )
        with pytest.raises(UnrepresentableError, match="arguments of tool call t1"):
            transpiler.request_to_wire(request)

    def test_message_name(self, transpiler: ClaudeTranspiler) -> None:
        request = ChatRequest(model="m", messages=(Message.user("hi", name="ann"),))
        with pytest.raises(UnrepresentableError, match="message name"):
            transpiler.request_to_wire(request)

    def test_image_detail(self, transpiler: ClaudeTranspiler) -> None:
        image = ImagePart(url="https://x/a.png", detail="high")
        request = ChatRequest(model="m", messages=(Message.user("see", image),))
        with pytest.raises(UnrepresentableError, match="image detail"):
            transpiler.request_to_wire(request)
