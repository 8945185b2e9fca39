"""Canonical chat model, provider codecs and capability profiles."""

from chatwire.core.interface.capabilities import CapabilityRegistry, ProviderCapabilities
from chatwire.core.interface.config import DEFAULT_CONFIG, TranscodeConfig
from chatwire.core.interface.models import (
    ChatRequest,
    ChatResponse,
    ContentPart,
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
    Usage,
)
from chatwire.core.interface.transpiler import Transpiler

__all__ = [
    "DEFAULT_CONFIG",
    "CapabilityRegistry",
    "ChatRequest",
    "ChatResponse",
    "ContentPart",
    "FinishKind",
    "FinishReason",
    "ImagePart",
    "Message",
    "ProviderCapabilities",
    "Role",
    "TextPart",
    "ToolCallPart",
    "ToolChoice",
    "ToolDefinition",
    "ToolResultPart",
    "Transpiler",
    "TranscodeConfig",
    "Usage",
]
