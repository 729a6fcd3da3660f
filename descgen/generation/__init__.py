"""Product description generation: prompt, completion, best-effort parse."""

from descgen.generation.client import DescriptionGenerator
from descgen.generation.cost import PRICING, calculate_cost, estimate_tokens
from descgen.generation.parser import parse_generation_response, parse_optimized_response
from descgen.generation.schemas import (
    BatchGenerationResult,
    GeneratedDescription,
    GenerationOptions,
    ItemOutcome,
    ProductAttributes,
    Tone,
)

__all__ = [
    "BatchGenerationResult",
    "DescriptionGenerator",
    "GeneratedDescription",
    "GenerationOptions",
    "ItemOutcome",
    "PRICING",
    "ProductAttributes",
    "Tone",
    "calculate_cost",
    "estimate_tokens",
    "parse_generation_response",
    "parse_optimized_response",
]
