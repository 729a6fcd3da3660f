"""Single-product description generation, SEO optimisation and cost estimates."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, model_validator

from backend.auth import require_active_subscription, require_auth, require_feature
from backend.deps import get_services
from descgen.accounts.models import Account
from descgen.errors import NotFoundError
from descgen.generation.cost import DEFAULT_MODEL, PRICING, calculate_cost, estimate_tokens
from descgen.generation.schemas import GeneratedDescription, GenerationOptions, ProductAttributes
from descgen.plans import Feature, check_generation_options
from descgen.services import Services
from descgen.shopify.client import product_from_shopify

logger = logging.getLogger(__name__)
router = APIRouter()


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class GenerateRequest(BaseModel):
    """Either inline product attributes or the id of a product in the connected store."""

    product: ProductAttributes | None = None
    product_id: str | None = None
    options: GenerationOptions = Field(default_factory=GenerationOptions)

    @model_validator(mode="after")
    def _product_or_id(self) -> GenerateRequest:
        if self.product is None and not self.product_id:
            raise ValueError("Either product or product_id is required")
        return self


class GenerateResponse(BaseModel):
    success: bool = True
    data: GeneratedDescription
    usage: dict


class OptimizeRequest(BaseModel):
    description: str = Field(min_length=1, max_length=10000)
    product: ProductAttributes
    language: str = Field(default="en", min_length=2, max_length=5)
    target_keywords: list[str] = Field(default_factory=list, max_length=20)
    target_score: int = Field(default=80, ge=0, le=100)


class EstimateCostRequest(BaseModel):
    product_count: int = Field(ge=1, le=10000)
    word_count: int = Field(default=150, ge=50, le=1000)
    model: str = DEFAULT_MODEL


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/descriptions/generate", response_model=GenerateResponse)
async def generate_description(
    request: GenerateRequest,
    account: Account = Depends(require_active_subscription),
    services: Services = Depends(get_services),
):
    """Generate one description; store products are fetched by id."""
    check_generation_options(account.plan, request.options.tone, request.options.language)
    generator = services.require_generator()

    product = request.product
    if product is None:
        data = await services.require_shopify(account).get_product(request.product_id)
        if data is None:
            raise NotFoundError(f"Product {request.product_id} not found")
        product = product_from_shopify(data)

    result = await generator.generate(product, request.options)
    return GenerateResponse(data=result, usage=generator.usage_stats())


@router.post("/descriptions/optimize", response_model=GenerateResponse)
async def optimize_description(
    request: OptimizeRequest,
    account: Account = Depends(require_feature(Feature.SEO_OPTIMIZATION)),
    services: Services = Depends(get_services),
):
    """Rewrite an existing description for SEO."""
    check_generation_options(account.plan, "professional", request.language)
    generator = services.require_generator()
    result = await generator.optimize(
        request.description,
        request.product,
        language=request.language,
        target_keywords=request.target_keywords,
        target_score=request.target_score,
    )
    return GenerateResponse(data=result, usage=generator.usage_stats())


@router.post("/descriptions/estimate-cost")
async def estimate_cost(request: EstimateCostRequest, _account: Account = Depends(require_auth)):
    """Estimate OpenAI spend for generating descriptions in bulk."""
    tokens = estimate_tokens(request.product_count, request.word_count)
    model = request.model if request.model in PRICING else DEFAULT_MODEL
    return {
        "product_count": request.product_count,
        "estimated_tokens": tokens,
        "model": model,
        "estimated_cost": round(calculate_cost(tokens, model), 4),
        "currency": "usd",
    }


@router.get("/descriptions/usage")
async def usage(
    _account: Account = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Token and request totals since this process started."""
    return services.require_generator().usage_stats()
