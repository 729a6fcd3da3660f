"""Prompt rendering for description generation (Jinja2 templates in ./prompts)."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from descgen.generation.schemas import GenerationOptions, ProductAttributes

PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"

_env = Environment(
    loader=FileSystemLoader(str(PROMPTS_DIR)),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    undefined=StrictUndefined,
)


def _render(template_name: str, **kwargs: Any) -> str:
    return _env.get_template(template_name).render(**kwargs)


def system_message(options: GenerationOptions) -> str:
    return (
        "You are an expert e-commerce copywriter specializing in creating compelling, "
        "SEO-optimized product descriptions that convert browsers into buyers. "
        f"Write in {options.language} language with a {options.tone} tone."
    )


OPTIMIZE_SYSTEM_MESSAGE = (
    "You are an SEO expert specializing in e-commerce product descriptions. "
    "Optimize content while maintaining readability and conversion potential."
)


def build_prompt(product: ProductAttributes, options: GenerationOptions) -> str:
    """Render the generation prompt. Same inputs always give the same text."""
    return _render("description.j2", product=product, options=options)


def build_optimize_prompt(
    description: str,
    product: ProductAttributes,
    *,
    language: str = "en",
    target_keywords: list[str] | tuple[str, ...] = (),
    target_score: int = 80,
) -> str:
    return _render(
        "optimize.j2",
        description=description,
        product=product,
        language=language,
        target_keywords=list(target_keywords),
        target_score=target_score,
    )
