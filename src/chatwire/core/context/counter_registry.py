"""Counter registry: picks the TokenCounter that fits a provider and model."""

from __future__ import annotations

from chatwire.core.context.counter import EstimatingCounter, TiktokenCounter, TokenCounter
from chatwire.core.interface.registry_data import OPENAI

# Providers whose tokenization is well-served by tiktoken.
_TIKTOKEN_PROVIDERS = frozenset({OPENAI, "azure"})


def get_counter(model: str, provider: str = OPENAI) -> TokenCounter:
    """Return the most appropriate TokenCounter for *model* served by *provider*.

    Uses tiktoken for OpenAI models and the estimating fallback for
    everything else (Claude, Gemini, local models).
    """
    if provider in _TIKTOKEN_PROVIDERS:
        # tiktoken expects bare model names.
        return TiktokenCounter(model.rsplit("/", 1)[-1])
    return EstimatingCounter()
