"""Canonical chat model: the provider-neutral format every codec reads and writes.

All values are immutable.  Sequences are tuples, so a transform always
builds new messages instead of editing shared ones.  Invariants are
checked when a value is built and reported as
:class:`~chatwire.core.errors.ConstructionError` subclasses:

- a role only carries the content kinds listed in :data:`ROLE_CONTENT`
- tool names are unique within a request
- every tool result answers a tool call made earlier in the conversation
- a named ``tool_choice`` refers to a defined tool
"""

import json
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from chatwire.core.errors import (
    DanglingToolResultError,
    DuplicateToolNameError,
    RoleContentError,
    UnknownToolChoiceError,
)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


# ---------------------------------------------------------------------------
# Content parts
# ---------------------------------------------------------------------------


class TextPart(_Frozen):
    """Plain text content part."""

    kind: Literal["text"] = "text"
    text: str


class ImagePart(_Frozen):
    """Image reference: a URL, or inline base64 ``data`` with its media type.

    ``width``/``height`` never reach the wire; they are only used by token
    estimation.
    """

    kind: Literal["image"] = "image"
    url: str | None = None
    data: str | None = None
    media_type: str | None = None
    detail: Literal["auto", "low", "high"] | None = None
    width: int | None = None
    height: int | None = None

    @model_validator(mode="after")
    def _check_reference(self) -> "ImagePart":
        if (self.url is None) == (self.data is None):
            raise ValueError("ImagePart needs exactly one of url or data")
        if self.data is not None and not self.media_type:
            raise ValueError("Inline image data needs a media_type")
        return self

    @property
    def data_uri(self) -> str:
        """The image as a ``data:`` URI (inline images) or its URL."""
        if self.data is not None:
            return f"data:{self.media_type};base64,{self.data}"
        return self.url or ""


class ToolCallPart(_Frozen):
    """A tool invocation emitted by the assistant.

    ``arguments`` is kept as the JSON text the model produced; it is not
    parsed or re-serialised on the way through.
    """

    kind: Literal["tool_call"] = "tool_call"
    id: str
    name: str
    arguments: str = "{}"

    def parsed_arguments(self) -> Any:
        """Decode ``arguments`` (raises ``json.JSONDecodeError`` when malformed)."""
        return json.loads(self.arguments) if self.arguments else {}


class ToolResultPart(_Frozen):
    """The result of a tool call, linked to it by ``call_id``."""

    kind: Literal["tool_result"] = "tool_result"
    call_id: str
    content: tuple[TextPart | ImagePart, ...] = ()
    is_error: bool = False

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.content if isinstance(p, TextPart))

    @classmethod
    def from_text(cls, call_id: str, text: str, *, is_error: bool = False) -> "ToolResultPart":
        """Create a result with a single text part."""
        return cls(call_id=call_id, content=(TextPart(text=text),), is_error=is_error)


ContentPart = Annotated[
    TextPart | ImagePart | ToolCallPart | ToolResultPart,
    Field(discriminator="kind"),
]

ROLE_CONTENT: dict[Role, frozenset[str]] = {
    Role.SYSTEM: frozenset({"text"}),
    Role.USER: frozenset({"text", "image"}),
    Role.ASSISTANT: frozenset({"text", "tool_call"}),
    Role.TOOL: frozenset({"tool_result"}),
}


# ---------------------------------------------------------------------------
# Message
# ---------------------------------------------------------------------------


class Message(_Frozen):
    """One message of a conversation.

    ``hints`` are formatting annotations recorded by a codec when decoding
    (for example ``"content_array"`` when OpenAI content arrived as a list)
    so the same codec can re-emit the original shape.  Other codecs ignore
    them.

    ``extra`` holds message fields this model does not cover (an OpenAI
    ``refusal``, ``annotations``...) as decoded from ``extra_provider``.
    Unlike hints they carry meaning, so any other codec refuses to encode
    the message.
    """

    role: Role
    parts: tuple[ContentPart, ...] = ()
    name: str | None = None
    hints: frozenset[str] = frozenset()
    extra: dict[str, Any] = Field(default_factory=lambda: dict[str, Any]())
    extra_provider: str | None = None

    @model_validator(mode="after")
    def _check_content(self) -> "Message":
        allowed = ROLE_CONTENT[self.role]
        for part in self.parts:
            if part.kind not in allowed:
                raise RoleContentError(self.role.value, part.kind)
        if self.role is Role.TOOL and not self.parts:
            raise RoleContentError(self.role.value, "empty")
        return self

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def tool_calls(self) -> list[ToolCallPart]:
        return [p for p in self.parts if isinstance(p, ToolCallPart)]

    @property
    def tool_results(self) -> list[ToolResultPart]:
        return [p for p in self.parts if isinstance(p, ToolResultPart)]

    @property
    def images(self) -> list[ImagePart]:
        return [p for p in self.parts if isinstance(p, ImagePart)]

    @classmethod
    def system(cls, text: str, **kwargs: Any) -> "Message":
        """Create a system message."""
        return cls(role=Role.SYSTEM, parts=(TextPart(text=text),), **kwargs)

    @classmethod
    def user(cls, text: str, *images: ImagePart, **kwargs: Any) -> "Message":
        """Create a user message, optionally followed by images."""
        return cls(role=Role.USER, parts=(TextPart(text=text), *images), **kwargs)

    @classmethod
    def assistant(
        cls,
        text: str = "",
        tool_calls: list[ToolCallPart] | None = None,
        **kwargs: Any,
    ) -> "Message":
        """Create an assistant message; empty text is omitted."""
        parts: list[Any] = [TextPart(text=text)] if text else []
        parts.extend(tool_calls or [])
        return cls(role=Role.ASSISTANT, parts=tuple(parts), **kwargs)

    @classmethod
    def tool(cls, *results: ToolResultPart, **kwargs: Any) -> "Message":
        """Create a tool-result message."""
        return cls(role=Role.TOOL, parts=results, **kwargs)

    def with_parts(self, parts: tuple[Any, ...]) -> "Message":
        """Copy of this message carrying *parts* instead."""
        return Message(
            role=self.role,
            parts=parts,
            name=self.name,
            hints=self.hints,
            extra=self.extra,
            extra_provider=self.extra_provider,
        )


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class ToolDefinition(_Frozen):
    """A tool the model may call; ``parameters`` is an opaque JSON schema."""

    name: str
    description: str | None = None
    parameters: dict[str, Any] | None = None


class ToolChoice(_Frozen):
    """How the model should pick tools: ``auto``, ``none``, ``required`` or one ``tool``."""

    mode: Literal["auto", "none", "required", "tool"]
    name: str | None = None

    @model_validator(mode="after")
    def _check_name(self) -> "ToolChoice":
        if (self.mode == "tool") != (self.name is not None):
            raise ValueError("A tool name is given exactly when mode is 'tool'")
        return self

    @classmethod
    def auto(cls) -> "ToolChoice":
        return cls(mode="auto")

    @classmethod
    def none(cls) -> "ToolChoice":
        return cls(mode="none")

    @classmethod
    def required(cls) -> "ToolChoice":
        return cls(mode="required")

    @classmethod
    def tool(cls, name: str) -> "ToolChoice":
        return cls(mode="tool", name=name)


# ---------------------------------------------------------------------------
# Usage and finish reasons
# ---------------------------------------------------------------------------


class Usage(_Frozen):
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


class FinishKind(str, Enum):
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"
    OTHER = "other"


class FinishReason(_Frozen):
    """Why generation ended.

    ``raw`` keeps the provider's own string.  Unrecognised strings decode to
    ``FinishKind.OTHER`` instead of failing; ``provider`` then names the
    codec that decoded the string, and other codecs refuse to encode it.
    """

    kind: FinishKind
    raw: str | None = None
    provider: str | None = None

    @model_validator(mode="after")
    def _check_raw(self) -> "FinishReason":
        if self.kind is FinishKind.OTHER and not self.raw:
            raise ValueError("FinishKind.OTHER needs the raw provider string")
        return self

    @classmethod
    def other(cls, raw: str, provider: str | None = None) -> "FinishReason":
        return cls(kind=FinishKind.OTHER, raw=raw, provider=provider)


# ---------------------------------------------------------------------------
# Request and response
# ---------------------------------------------------------------------------


class ChatRequest(_Frozen):
    """A chat-completion request in canonical form.

    ``extra`` holds provider parameters this model does not cover, copied
    verbatim from the ``extra_provider`` wire shape; only that provider's
    codec can emit them.
    """

    model: str
    messages: tuple[Message, ...]
    tools: tuple[ToolDefinition, ...] = ()
    tool_choice: ToolChoice | None = None
    parallel_tool_calls: bool | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    stop: tuple[str, ...] | None = None
    stream: bool | None = None
    extra: dict[str, Any] = Field(default_factory=lambda: dict[str, Any]())
    extra_provider: str | None = None
    hints: frozenset[str] = frozenset()

    @model_validator(mode="after")
    def _check_invariants(self) -> "ChatRequest":
        names: set[str] = set()
        for tool in self.tools:
            if tool.name in names:
                raise DuplicateToolNameError(tool.name)
            names.add(tool.name)

        if self.tool_choice is not None and self.tool_choice.mode == "tool":
            if self.tool_choice.name not in names:
                raise UnknownToolChoiceError(self.tool_choice.name or "")

        emitted: set[str] = set()
        for message in self.messages:
            for part in message.parts:
                if isinstance(part, ToolCallPart):
                    emitted.add(part.id)
                elif isinstance(part, ToolResultPart) and part.call_id not in emitted:
                    raise DanglingToolResultError(part.call_id)
        return self

    @property
    def system_messages(self) -> list[Message]:
        """Return all system messages."""
        return [m for m in self.messages if m.role is Role.SYSTEM]

    @property
    def non_system_messages(self) -> list[Message]:
        """Return all non-system messages (for providers that hoist the system prompt)."""
        return [m for m in self.messages if m.role is not Role.SYSTEM]

    def tool_call_names(self) -> dict[str, str]:
        """Map each tool call id in the conversation to the tool's name."""
        return {
            part.id: part.name
            for message in self.messages
            for part in message.parts
            if isinstance(part, ToolCallPart)
        }

    def first_user_text(self) -> str | None:
        """Text of the first user message, parts joined without a separator."""
        for message in self.messages:
            if message.role is Role.USER:
                return "".join(p.text for p in message.parts if isinstance(p, TextPart))
        return None

    def last_user_text(self) -> str | None:
        """Text of the last user message, parts joined with single spaces."""
        for message in reversed(self.messages):
            if message.role is Role.USER:
                return " ".join(p.text for p in message.parts if isinstance(p, TextPart))
        return None


class ChatResponse(_Frozen):
    """A completed (non-streaming or fully assembled) chat response."""

    id: str
    model: str
    message: Message
    finish_reason: FinishReason | None = None
    usage: Usage = Usage()
    created: int = 0
    extra: dict[str, Any] = Field(default_factory=lambda: dict[str, Any]())
    extra_provider: str | None = None
    hints: frozenset[str] = frozenset()

    @model_validator(mode="after")
    def _check_role(self) -> "ChatResponse":
        if self.message.role is not Role.ASSISTANT:
            raise RoleContentError(self.message.role.value, "response")
        return self

    @property
    def text(self) -> str:
        return self.message.text

    @property
    def tool_calls(self) -> list[ToolCallPart]:
        return self.message.tool_calls
