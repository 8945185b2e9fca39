"""Provider codecs: one transpiler per wire shape."""

from chatwire.core.interface.transpilers.claude import ClaudeTranspiler
from chatwire.core.interface.transpilers.gemini import GeminiTranspiler
from chatwire.core.interface.transpilers.openai import OpenAITranspiler

__all__ = ["ClaudeTranspiler", "GeminiTranspiler", "OpenAITranspiler"]
