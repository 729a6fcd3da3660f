"""CLI entry-point: one-off and bulk description generation."""

import asyncio
import json
import logging
from pathlib import Path

import typer
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.table import Table

from descgen.config import get_settings
from descgen.errors import AppError
from descgen.generation import (
    DescriptionGenerator,
    GenerationOptions,
    ProductAttributes,
    calculate_cost,
    estimate_tokens,
)
from descgen.generation.cost import PRICING
from descgen.jobs.orchestrator import BatchOrchestrator
from descgen.llm import OpenAIProvider
from descgen.plans import all_plans

app = typer.Typer(help="AI product description generator")
console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_generator(model: str | None) -> tuple[DescriptionGenerator, OpenAIProvider]:
    settings = get_settings()
    if not settings.openai_api_key:
        console.print("[red]Error: OPENAI_API_KEY is not set[/red]")
        raise typer.Exit(1)
    llm = OpenAIProvider(
        settings.openai_api_key,
        model or settings.openai_model,
        temperature=settings.openai_temperature,
        max_tokens=settings.openai_max_tokens,
        timeout=settings.openai_timeout,
    )
    return DescriptionGenerator(llm), llm


def _options(
    tone: str, language: str, keyword: list[str], word_count: int, no_seo: bool, custom_prompt: str | None
) -> GenerationOptions:
    try:
        return GenerationOptions(
            tone=tone,
            language=language,
            keywords=tuple(keyword),
            word_count=word_count,
            seo_optimization=not no_seo,
            custom_prompt=custom_prompt,
        )
    except PydanticValidationError as e:
        console.print(f"[red]Invalid options: {e}[/red]")
        raise typer.Exit(1)


def _print_usage(generator: DescriptionGenerator) -> None:
    stats = generator.usage_stats()
    console.print(
        f"[dim]{stats['total_requests']} request(s), {stats['total_tokens']} tokens, "
        f"~${stats['cost']:.4f} ({generator.model})[/dim]"
    )


@app.command()
def generate(
    title: str = typer.Argument(..., help="Product title"),
    description: str = typer.Option(None, help="Existing description to improve on"),
    vendor: str = typer.Option(None, help="Brand / vendor"),
    product_type: str = typer.Option(None, "--type", help="Product type"),
    tag: list[str] = typer.Option(default=[], help="Product tag (repeatable)"),
    tone: str = typer.Option("professional", help="Writing tone"),
    language: str = typer.Option("en", help="Language code"),
    keyword: list[str] = typer.Option(default=[], help="Target keyword (repeatable)"),
    word_count: int = typer.Option(150, help="Target word count (50-1000)"),
    no_seo: bool = typer.Option(False, "--no-seo", help="Skip SEO instructions"),
    custom_prompt: str = typer.Option(None, help="Extra free-text instruction"),
    model: str = typer.Option(None, help="OpenAI model (default from env)"),
    as_json: bool = typer.Option(False, "--json", help="Print the parsed result as JSON"),
):
    """Generate one description for a product given on the command line."""
    options = _options(tone, language, keyword, word_count, no_seo, custom_prompt)
    product = ProductAttributes(
        title=title,
        existing_description=description,
        vendor=vendor,
        product_type=product_type,
        tags=tuple(tag),
    )
    generator, llm = _build_generator(model)

    async def _run():
        try:
            return await generator.generate(product, options)
        finally:
            await llm.close()

    try:
        result = asyncio.run(_run())
    except AppError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1)

    if as_json:
        console.print_json(result.model_dump_json())
    else:
        console.print(result.content)
        if result.keywords:
            console.print(f"\n[bold]Keywords:[/bold] {', '.join(result.keywords)}")
        if result.meta_description:
            console.print(f"[bold]Meta:[/bold] {result.meta_description}")
        if result.seo_score is not None:
            console.print(f"[bold]SEO score:[/bold] {result.seo_score}")
    _print_usage(generator)


@app.command()
def bulk(
    products_file: Path = typer.Argument(..., help="JSON file: a list of product objects"),
    output: Path = typer.Option(None, help="Write the batch result JSON here"),
    tone: str = typer.Option("professional", help="Writing tone"),
    language: str = typer.Option("en", help="Language code"),
    keyword: list[str] = typer.Option(default=[], help="Target keyword (repeatable)"),
    word_count: int = typer.Option(150, help="Target word count (50-1000)"),
    chunk_size: int = typer.Option(None, help="Products per chunk (default from env)"),
    delay: float = typer.Option(None, help="Seconds between chunks (default from env)"),
    model: str = typer.Option(None, help="OpenAI model (default from env)"),
):
    """Generate descriptions for every product in a JSON file, in throttled chunks."""
    settings = get_settings()
    try:
        raw = json.loads(products_file.read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ValueError("expected a JSON list of products")
        if not all(isinstance(item, dict) for item in raw):
            raise ValueError("every product must be a JSON object")
        products = [
            ProductAttributes.model_validate({**item, "id": str(item.get("id") or i + 1)})
            for i, item in enumerate(raw)
        ]
    except (OSError, ValueError) as e:
        console.print(f"[red]Error reading {products_file}: {e}[/red]")
        raise typer.Exit(1)
    if not products:
        console.print("[yellow]No products in file.[/yellow]")
        raise typer.Exit(0)

    options = _options(tone, language, keyword, word_count, False, None)
    generator, llm = _build_generator(model)
    orchestrator = BatchOrchestrator(
        generator,
        chunk_size=chunk_size or settings.batch_chunk_size,
        delay_seconds=settings.batch_delay_seconds if delay is None else delay,
    )

    async def _run():
        try:
            return await orchestrator.generate_batch(products, options)
        finally:
            await llm.close()

    console.print(f"Generating {len(products)} description(s)...")
    result = asyncio.run(_run())

    table = Table(title="Batch result")
    table.add_column("Product")
    table.add_column("Status")
    table.add_column("Words / error")
    for outcome in result.results:
        if outcome.success and outcome.description:
            table.add_row(outcome.product_id, "[green]ok[/green]", str(outcome.description.word_count))
        else:
            table.add_row(outcome.product_id, "[red]failed[/red]", outcome.error or "")
    console.print(table)
    console.print(f"{result.successful}/{result.total} successful, {result.failed} failed")

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(result.model_dump_json(indent=2), encoding="utf-8")
        console.print(f"Wrote {output}")
    _print_usage(generator)
    if result.failed:
        raise typer.Exit(2)


@app.command("estimate-cost")
def estimate_cost(
    product_count: int = typer.Argument(..., min=1, help="Number of products"),
    word_count: int = typer.Option(150, help="Target word count per description"),
    model: str = typer.Option(None, help="Pricing model (default from env)"),
):
    """Estimate tokens and USD cost of generating descriptions for N products."""
    model = model or get_settings().openai_model
    if model not in PRICING:
        console.print(f"[yellow]Unknown model {model!r}; using gpt-4 pricing[/yellow]")
    tokens = estimate_tokens(product_count, word_count)
    console.print(f"Products: {product_count}")
    console.print(f"Estimated tokens: {tokens}")
    console.print(f"Estimated cost: ${calculate_cost(tokens, model):.4f} ({model})")


@app.command()
def plans():
    """Show the subscription plan catalogue."""
    table = Table(title="Plans")
    for column in ("Plan", "Price", "Products", "Descriptions", "Languages", "Features"):
        table.add_column(column)
    for limits in all_plans():
        table.add_row(
            limits.name,
            f"${limits.price}/{limits.interval}",
            "unlimited" if limits.products < 0 else str(limits.products),
            "unlimited" if limits.descriptions < 0 else str(limits.descriptions),
            str(limits.languages),
            ", ".join(sorted(f.value for f in limits.features)),
        )
    console.print(table)


if __name__ == "__main__":
    app()
