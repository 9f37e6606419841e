"""Token estimation and per-model cost table."""

from __future__ import annotations

import math

from ..models import ModelRate

DEFAULT_MODEL_KEY = "default"

DEFAULT_PRICING: dict[str, ModelRate] = {
    "claude-sonnet-4-5-20250929": ModelRate(input=3.00, output=15.00),
    "claude-haiku-4-5-20251001": ModelRate(input=1.00, output=5.00),
    DEFAULT_MODEL_KEY: ModelRate(input=3.00, output=15.00),
}


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters."""
    return math.ceil(len(text or "") / 4)


def rate_for(model_id: str, pricing: dict[str, ModelRate] | None = None) -> ModelRate:
    """Look up the rate for *model_id*, falling back to the default entry."""
    table = {**DEFAULT_PRICING, **(pricing or {})}
    return table.get(model_id) or table[DEFAULT_MODEL_KEY]


def cost(
    model_id: str,
    input_tokens: int,
    output_tokens: int,
    pricing: dict[str, ModelRate] | None = None,
) -> float:
    """Estimated USD cost of one call. Unknown models use the default rate."""
    rates = rate_for(model_id, pricing)
    return (max(input_tokens, 0) / 1_000_000) * rates.input + (max(output_tokens, 0) / 1_000_000) * rates.output
