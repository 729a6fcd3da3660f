"""Pydantic models for description generation: request, result, batch summary."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Tone = Literal["professional", "casual", "friendly", "formal", "playful", "luxury"]


class ProductAttributes(BaseModel):
    """Product data fed into the prompt. Mirrors the Shopify product fields we use."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    title: str = Field(min_length=1, max_length=255)
    existing_description: str | None = Field(default=None, max_length=5000)
    vendor: str | None = Field(default=None, max_length=100)
    product_type: str | None = Field(default=None, max_length=100)
    tags: tuple[str, ...] = Field(default=(), max_length=50)
    images: tuple[str, ...] = Field(default=(), max_length=20)


class GenerationOptions(BaseModel):
    """Shared generation options (bulk jobs apply one set to every product)."""

    model_config = ConfigDict(frozen=True)

    tone: Tone = "professional"
    language: str = Field(default="en", min_length=2, max_length=5)
    keywords: tuple[str, ...] = Field(default=(), max_length=20)
    word_count: int = Field(default=150, ge=50, le=1000)
    seo_optimization: bool = True
    include_features: bool = True
    include_benefits: bool = True
    custom_prompt: str | None = Field(default=None, max_length=1000)

    @field_validator("keywords")
    @classmethod
    def _keywords_not_blank(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        cleaned = tuple(k.strip() for k in value)
        for k in cleaned:
            if not 1 <= len(k) <= 100:
                raise ValueError("Each keyword must be between 1 and 100 characters")
        return cleaned


class GeneratedDescription(BaseModel):
    """Parsed model output. Only ``content`` is guaranteed; the rest is best effort."""

    content: str
    word_count: int = 0
    seo_score: int | None = Field(default=None, ge=0, le=100)
    keywords: list[str] = Field(default_factory=list)
    meta_description: str | None = None
    title_tag: str | None = None


class ItemOutcome(BaseModel):
    """Per-product result inside a batch."""

    product_id: str
    success: bool
    description: GeneratedDescription | None = None
    error: str | None = None


class BatchGenerationResult(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    results: list[ItemOutcome] = Field(default_factory=list)
