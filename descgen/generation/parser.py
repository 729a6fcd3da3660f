"""Best-effort extraction of structured fields from free-text model output.

The upstream call enforces no schema, so every field except ``content`` may
come back empty. Callers must treat ``seo_score``, ``meta_description`` and
``title_tag`` as optional and ``keywords`` as possibly empty.
"""

from __future__ import annotations

import re

from descgen.generation.schemas import GeneratedDescription

# A labelled section runs until the next "**Label:**" line or end of text.
_SECTION_END = r"(?=\n\s*\*\*|\Z)"

_DESCRIPTION_RE = re.compile(r"\*\*Product Description:\*\*[ \t]*\n?(.*?)" + _SECTION_END, re.S)
_KEYWORDS_RE = re.compile(r"\*\*Keywords Used:\*\*[ \t]*\n?(.*?)" + _SECTION_END, re.S)
_SEO_SCORE_RE = re.compile(r"\*\*SEO Score:\*\*\s*(\d+)")
_META_RE = re.compile(r"\*\*Meta Description:\*\*[ \t]*\n?(.*?)" + _SECTION_END, re.S)
_TITLE_RE = re.compile(r"\*\*Title Tag:\*\*[ \t]*\n?(.*?)" + _SECTION_END, re.S)


def count_words(text: str) -> int:
    return len(text.split())


def _section(pattern: re.Pattern[str], text: str) -> str | None:
    m = pattern.search(text)
    if not m:
        return None
    value = m.group(1).strip()
    return value or None


def _split_keywords(raw: str | None) -> list[str]:
    if not raw:
        return []
    raw = raw.strip().strip("[]")
    return [k.strip() for k in raw.split(",") if k.strip()]


def _score(raw: str | None) -> int | None:
    if raw is None:
        return None
    score = int(raw)
    # Out-of-range scores are model noise, not data.
    return score if 0 <= score <= 100 else None


def parse_generation_response(text: str) -> GeneratedDescription:
    """Parse a response produced by the ``description.j2`` output format."""
    content = _section(_DESCRIPTION_RE, text) or text.strip()
    seo_match = _SEO_SCORE_RE.search(text)
    return GeneratedDescription(
        content=content,
        word_count=count_words(content),
        seo_score=_score(seo_match.group(1) if seo_match else None),
        keywords=_split_keywords(_section(_KEYWORDS_RE, text)),
        meta_description=_section(_META_RE, text),
        title_tag=_section(_TITLE_RE, text),
    )


def parse_optimized_response(text: str) -> GeneratedDescription:
    """Line-oriented parse for the free-form numbered output of the optimize prompt.

    Any ``**Label:** value`` line is classified by keywords in its label; the
    description is the first plain line following a description label.
    """
    lines = text.split("\n")
    description = ""
    keywords: list[str] = []
    seo_score: int | None = None
    meta: str | None = None
    title: str | None = None

    for idx, line in enumerate(lines):
        if "**" not in line or ":" not in line:
            continue
        key, _, value = line.partition(":")
        label = key.replace("*", "").strip().lower()
        value = value.replace("*", "").strip()

        if "description" in label and "meta" not in label:
            if description:
                continue
            if value:
                description = value
                continue
            for follow in lines[idx + 1:]:
                if follow.strip() and "**" not in follow:
                    description = follow.strip()
                    break
        elif "keyword" in label:
            keywords = _split_keywords(value)
        elif "seo" in label or "score" in label:
            digits = re.search(r"\d+", value)
            seo_score = _score(digits.group(0) if digits else None)
        elif "meta" in label:
            meta = value or None
        elif "title" in label:
            title = value or None

    content = description or text.strip()
    return GeneratedDescription(
        content=content,
        word_count=count_words(content),
        seo_score=seo_score,
        keywords=keywords,
        meta_description=meta,
        title_tag=title,
    )
