"""Abstract LLM provider protocol."""

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass
class UsageStats:
    """Running totals reported by a provider since it was created."""

    total_requests: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class LLMProvider(Protocol):
    """Protocol for async chat-completion backends."""

    model: str
    usage: UsageStats

    async def complete(self, prompt: str, *, system: str | None = None, **kwargs: Any) -> str:
        """Return raw text completion ("" when the model produced nothing)."""
        ...
