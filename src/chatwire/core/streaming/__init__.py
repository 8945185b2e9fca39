"""Streaming: chunk assembly and Claude-to-OpenAI chunk translation."""

from chatwire.core.streaming.assembler import (
    ClaudeStreamAssembler,
    GeminiStreamAssembler,
    OpenAIStreamAssembler,
    StreamAssembler,
    StreamState,
    stream_assembler,
)
from chatwire.core.streaming.claude_openai import ClaudeChunkTranslator

__all__ = [
    "ClaudeChunkTranslator",
    "ClaudeStreamAssembler",
    "GeminiStreamAssembler",
    "OpenAIStreamAssembler",
    "StreamAssembler",
    "StreamState",
    "stream_assembler",
]
