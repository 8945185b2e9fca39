"""Per-1K-token prices and cost estimation for known models."""

from __future__ import annotations

from typing import NamedTuple

from chatwire.core.interface.models import Usage


class Price(NamedTuple):
    """USD per 1K input tokens and per 1K output tokens."""

    input: float
    output: float


PRICES: dict[str, Price] = {
    "gpt-4o": Price(0.005, 0.015),
    "gpt-4-turbo": Price(0.01, 0.03),
    "gpt-4": Price(0.03, 0.06),
    "gpt-3.5-turbo": Price(0.0005, 0.0015),
    "gpt-3.5-turbo-instruct": Price(0.0015, 0.002),
    "claude-3-opus-20240229": Price(0.015, 0.075),
    "claude-3-sonnet-20240229": Price(0.003, 0.015),
    "claude-3-haiku-20240307": Price(0.00025, 0.00125),
}
"""Exact model names only; dated or suffixed variants are not matched."""

_FREE = Price(0.0, 0.0)


def price_for(model: str) -> Price:
    """Price of *model*, zero when the model is not listed."""
    return PRICES.get(model, _FREE)


def estimate_cost(model: str, usage: Usage) -> float:
    """USD cost of *usage* on *model*."""
    price = price_for(model)
    return (usage.input_tokens * price.input + usage.output_tokens * price.output) / 1000
