"""LLM adapter layer: OpenAI behind a common async protocol."""

from descgen.llm.base import LLMProvider, UsageStats
from descgen.llm.openai_provider import OpenAIProvider, translate_openai_error

__all__ = ["LLMProvider", "OpenAIProvider", "UsageStats", "translate_openai_error"]
