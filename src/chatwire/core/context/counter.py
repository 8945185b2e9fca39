"""Token counting: protocol and implementations for estimating prompt size.

Counters read canonical values only and never call a provider.  Accurate
counts come from tiktoken for OpenAI-family models; a character-based
estimator is the fallback for everything else.
"""

from __future__ import annotations

import json
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import tiktoken

from chatwire.core.interface.models import ImagePart, TextPart, ToolCallPart, ToolResultPart

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from chatwire.core.interface.models import ChatRequest, Message, ToolDefinition


@dataclass(frozen=True)
class TokenCount:
    """Per-message counts, the tool definition count and the prompt total."""

    per_message: list[int] = field(default_factory=list)
    tools: int = 0
    total: int = 0


@runtime_checkable
class TokenCounter(Protocol):
    """Protocol for counting tokens in canonical messages."""

    def count_message(self, message: Message) -> int:
        """Return the token count for a single message."""
        ...

    def count_messages(self, messages: Sequence[Message]) -> int:
        """Return the total token count for a conversation."""
        ...

    def count(self, messages: Sequence[Message], tools: Iterable[ToolDefinition] = ()) -> TokenCount:
        """Return per-message counts and the total for a prompt."""
        ...


# ---------------------------------------------------------------------------
# Image tokens
# ---------------------------------------------------------------------------

_IMAGE_BASE_TOKENS = 85
_TOKENS_PER_TILE = 170
_TILE_SIZE = 512
_HIGH_DETAIL_MAX_SIDE = 2048.0
_HIGH_DETAIL_SHORT_SIDE = 768.0


def image_tokens(width: int, height: int, detail: str | None = None) -> int:
    """Token cost of one image under OpenAI's tiling rules.

    ``low`` detail is a flat base cost.  ``high`` detail scales the image to
    fit a 2048px square, then scales its short side to 768px and counts
    512px tiles.  ``auto`` (or no detail) tiles the image as is unless its
    long side reaches 2048px, in which case it is costed like ``high``.
    """
    if detail == "low":
        return _IMAGE_BASE_TOKENS
    short, long = sorted((float(width), float(height)))
    if detail != "high" and long < _HIGH_DETAIL_MAX_SIDE:
        tiles = math.ceil(width / _TILE_SIZE) * math.ceil(height / _TILE_SIZE)
        return _IMAGE_BASE_TOKENS + _TOKENS_PER_TILE * tiles
    return _high_detail_tokens(short, long)


def _high_detail_tokens(short: float, long: float) -> int:
    if long > _HIGH_DETAIL_MAX_SIDE:
        short *= _HIGH_DETAIL_MAX_SIDE / long
        long = _HIGH_DETAIL_MAX_SIDE
    long *= _HIGH_DETAIL_SHORT_SIDE / short
    # The 768px short side always spans two tiles.
    return _IMAGE_BASE_TOKENS + 2 * _TOKENS_PER_TILE * math.ceil(long / _TILE_SIZE)


def _image_cost(image: ImagePart) -> int:
    """Images of unknown size are not counted."""
    if image.width is None or image.height is None:
        return 0
    return image_tokens(image.width, image.height, image.detail)


# ---------------------------------------------------------------------------
# Shared counting walk
# ---------------------------------------------------------------------------

# Every reply is primed with <|start|>assistant<|message|>.
_REPLY_PRIMING = 3


class _BaseCounter(ABC):
    tokens_per_message = 3
    tokens_per_name = 1

    @abstractmethod
    def _text(self, text: str) -> int:
        """Tokens in a plain string."""

    def count_message(self, message: Message) -> int:
        """Count tokens in a single message including its framing."""
        tokens = self.tokens_per_message
        if message.name is not None:
            tokens += self.tokens_per_name + self._text(message.name)
        for part in message.parts:
            tokens += self._part(part)
        return tokens

    def count_messages(self, messages: Sequence[Message]) -> int:
        """Count total tokens for a conversation, including reply priming."""
        return sum(self.count_message(m) for m in messages) + _REPLY_PRIMING

    def count_tools(self, tools: Iterable[ToolDefinition]) -> int:
        return sum(self._text(json.dumps(tool.model_dump(exclude_none=True))) for tool in tools)

    def count(self, messages: Sequence[Message], tools: Iterable[ToolDefinition] = ()) -> TokenCount:
        per_message = [self.count_message(m) for m in messages]
        tool_tokens = self.count_tools(tools)
        return TokenCount(
            per_message=per_message,
            tools=tool_tokens,
            total=sum(per_message) + tool_tokens + _REPLY_PRIMING,
        )

    def count_request(self, request: ChatRequest) -> TokenCount:
        return self.count(request.messages, request.tools)

    def _part(self, part: object) -> int:
        if isinstance(part, TextPart):
            return self._text(part.text)
        if isinstance(part, ImagePart):
            return _image_cost(part)
        if isinstance(part, ToolCallPart):
            return self._text(part.name) + self._text(part.arguments)
        if isinstance(part, ToolResultPart):
            return sum(self._part(item) for item in part.content)
        return 0


# ---------------------------------------------------------------------------
# Tiktoken-based counter (accurate for OpenAI models)
# ---------------------------------------------------------------------------


class TiktokenCounter(_BaseCounter):
    """Token counter using tiktoken encodings.

    Falls back to ``cl100k_base`` when the model's encoding is unknown.
    gpt-3.5 models frame each message with 4 tokens and a name replaces
    the role (-1); later models use 3 and +1.
    """

    def __init__(self, model: str) -> None:
        self.model = model
        try:
            self._enc = tiktoken.encoding_for_model(model)
        except KeyError:
            self._enc = tiktoken.get_encoding("cl100k_base")
        if model.startswith("gpt-3.5"):
            self.tokens_per_message = 4
            self.tokens_per_name = -1

    def _text(self, text: str) -> int:
        return len(self._enc.encode(text, disallowed_special=()))


# ---------------------------------------------------------------------------
# Estimating counter (universal fallback)
# ---------------------------------------------------------------------------

_CHARS_PER_TOKEN = 4


class EstimatingCounter(_BaseCounter):
    """Fallback token counter that estimates ~4 characters per token."""

    def _text(self, text: str) -> int:
        return len(text) // _CHARS_PER_TOKEN
