"""Token counting and cost estimation."""

from chatwire.core.context.counter import (
    EstimatingCounter,
    TiktokenCounter,
    TokenCount,
    TokenCounter,
    image_tokens,
)
from chatwire.core.context.counter_registry import get_counter
from chatwire.core.context.pricing import PRICES, estimate_cost

__all__ = [
    "PRICES",
    "EstimatingCounter",
    "TiktokenCounter",
    "TokenCount",
    "TokenCounter",
    "estimate_cost",
    "get_counter",
    "image_tokens",
]
