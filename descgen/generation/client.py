"""Description generation client: one prompt, one completion, best-effort parse."""

from __future__ import annotations

import logging

from descgen.errors import ErrorCause, ExternalServiceError
from descgen.generation.cost import calculate_cost
from descgen.generation.parser import parse_generation_response, parse_optimized_response
from descgen.generation.schemas import GeneratedDescription, GenerationOptions, ProductAttributes
from descgen.generation.templates import (
    OPTIMIZE_SYSTEM_MESSAGE,
    build_optimize_prompt,
    build_prompt,
    system_message,
)
from descgen.llm.base import LLMProvider

logger = logging.getLogger(__name__)


class DescriptionGenerator:
    """Generate and optimise product descriptions through an LLM provider."""

    def __init__(self, llm: LLMProvider):
        self._llm = llm

    @property
    def model(self) -> str:
        return self._llm.model

    async def generate(
        self,
        product: ProductAttributes,
        options: GenerationOptions | None = None,
    ) -> GeneratedDescription:
        """Issue exactly one completion for *product* and parse it.

        Raises ExternalServiceError (cause ``malformed_response``) when the
        model returns nothing; upstream failures arrive already translated by
        the provider.
        """
        options = options or GenerationOptions()
        prompt = build_prompt(product, options)
        raw = await self._llm.complete(prompt, system=system_message(options))
        text = raw.strip()
        if not text:
            raise ExternalServiceError(
                "OpenAI",
                "No content generated",
                cause=ErrorCause.MALFORMED_RESPONSE,
                details={"product_title": product.title},
            )

        result = parse_generation_response(text)
        logger.info(
            "Generated description for %r (%d words, language=%s, tone=%s)",
            product.title, result.word_count, options.language, options.tone,
        )
        return result

    async def optimize(
        self,
        description: str,
        product: ProductAttributes,
        *,
        language: str = "en",
        target_keywords: list[str] | tuple[str, ...] = (),
        target_score: int = 80,
    ) -> GeneratedDescription:
        """Rewrite an existing description for SEO."""
        prompt = build_optimize_prompt(
            description,
            product,
            language=language,
            target_keywords=target_keywords,
            target_score=target_score,
        )
        raw = await self._llm.complete(
            prompt, system=OPTIMIZE_SYSTEM_MESSAGE, temperature=0.3, max_tokens=800,
        )
        text = raw.strip()
        if not text:
            raise ExternalServiceError(
                "OpenAI",
                "No optimized content generated",
                cause=ErrorCause.MALFORMED_RESPONSE,
            )
        result = parse_optimized_response(text)
        logger.info(
            "Optimized description (%d -> %d chars, seo_score=%s)",
            len(description), len(result.content), result.seo_score,
        )
        return result

    def usage_stats(self) -> dict[str, float | int]:
        usage = self._llm.usage
        return {
            "total_tokens": usage.total_tokens,
            "total_requests": usage.total_requests,
            "cost": calculate_cost(usage.total_tokens, self.model),
        }
