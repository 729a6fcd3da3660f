"""Static OpenAI price table for cost estimation (not a billing authority)."""

from __future__ import annotations

DEFAULT_MODEL = "gpt-4"

# USD per 1000 tokens
PRICING: dict[str, dict[str, float]] = {
    "gpt-4": {"input": 0.03, "output": 0.06},
    "gpt-4-turbo": {"input": 0.01, "output": 0.03},
    "gpt-3.5-turbo": {"input": 0.001, "output": 0.002},
}

# 70/30 input/output split, in tenths
INPUT_TENTHS = 7
OUTPUT_TENTHS = 3


def model_pricing(model: str) -> dict[str, float]:
    return PRICING.get(model, PRICING[DEFAULT_MODEL])


def _ceil_tenths(value: int) -> int:
    return -(-value // 10)


def calculate_cost(token_count: int, model: str = DEFAULT_MODEL) -> float:
    """Blended cost assuming a 70/30 input/output token split."""
    prices = model_pricing(model)
    input_tokens = _ceil_tenths(token_count * INPUT_TENTHS)
    output_tokens = _ceil_tenths(token_count * OUTPUT_TENTHS)
    return (input_tokens * prices["input"] + output_tokens * prices["output"]) / 1000


# Rough per-product budget: instruction template plus the labelled metadata sections
PROMPT_TOKENS_PER_PRODUCT = 400
METADATA_TOKENS_PER_PRODUCT = 100


def estimate_tokens(product_count: int, word_count: int = 150) -> int:
    """Estimate total tokens for generating *product_count* descriptions (~4 tokens / 3 words)."""
    completion = -(-word_count * 4 // 3) + METADATA_TOKENS_PER_PRODUCT
    return product_count * (PROMPT_TOKENS_PER_PRODUCT + completion)
