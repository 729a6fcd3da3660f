"""OpenAI chat completion provider (async)."""

import logging
from typing import Any

from openai import (
    APIError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    RateLimitError,
)

from descgen.errors import ErrorCause, ExternalServiceError
from descgen.llm.base import UsageStats

logger = logging.getLogger(__name__)


def _error_code(exc: APIError) -> str | None:
    code = getattr(exc, "code", None)
    if code:
        return str(code)
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        inner = body.get("error", body)
        if isinstance(inner, dict) and inner.get("code"):
            return str(inner["code"])
    return None


def translate_openai_error(exc: APIError) -> ExternalServiceError:
    """Map OpenAI SDK exceptions onto ExternalServiceError cause tags."""
    code = _error_code(exc)
    status = exc.status_code if isinstance(exc, APIStatusError) else None
    details = {"error": str(exc), "code": code}
    if code == "insufficient_quota":
        return ExternalServiceError(
            "OpenAI", "API quota exceeded",
            cause=ErrorCause.QUOTA_EXCEEDED, details=details, upstream_status=status,
        )
    if isinstance(exc, RateLimitError) or code == "rate_limit_exceeded":
        return ExternalServiceError(
            "OpenAI", "Rate limit exceeded",
            cause=ErrorCause.RATE_LIMITED, details=details, upstream_status=status,
        )
    if isinstance(exc, APITimeoutError):
        return ExternalServiceError(
            "OpenAI", "Request timed out", cause=ErrorCause.TIMEOUT, details=details,
        )
    return ExternalServiceError(
        "OpenAI", "Request failed", details=details, upstream_status=status,
    )


class OpenAIProvider:
    """OpenAI chat completion with usage accounting."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4",
        *,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        timeout: float = 30.0,
        client: AsyncOpenAI | None = None,
    ):
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout)
        self.model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self.usage = UsageStats()

    async def complete(self, prompt: str, *, system: str | None = None, **kwargs: Any) -> str:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        try:
            response = await self._client.chat.completions.create(
                model=kwargs.get("model") or self.model,
                messages=messages,
                temperature=kwargs.get("temperature", self._temperature),
                max_tokens=kwargs.get("max_tokens", self._max_tokens),
            )
        except APIError as e:
            logger.warning("OpenAI completion failed: %s", e)
            raise translate_openai_error(e) from e

        self.usage.total_requests += 1
        if response.usage:
            self.usage.prompt_tokens += response.usage.prompt_tokens or 0
            self.usage.completion_tokens += response.usage.completion_tokens or 0

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def close(self) -> None:
        await self._client.close()
