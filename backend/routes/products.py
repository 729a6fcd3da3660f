"""Connected-store product browsing and description write-back."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from backend.auth import require_auth
from backend.deps import get_services
from descgen.accounts.models import Account
from descgen.errors import NotFoundError
from descgen.services import Services
from descgen.shopify.adapter import product_cache_key

logger = logging.getLogger(__name__)
router = APIRouter()


class UpdateDescriptionRequest(BaseModel):
    description: str = Field(min_length=1, max_length=20000)


@router.get("/products")
async def list_products(
    limit: int = Query(default=50, ge=1, le=250),
    since_id: Optional[str] = None,
    title: Optional[str] = None,
    vendor: Optional[str] = None,
    product_type: Optional[str] = None,
    status: Optional[str] = None,
    published_status: Optional[str] = None,
    account: Account = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """List products from the connected Shopify store."""
    products = await services.require_shopify(account).get_products(
        limit=limit,
        since_id=since_id,
        title=title,
        vendor=vendor,
        product_type=product_type,
        status=status,
        published_status=published_status,
    )
    return {"products": products, "count": len(products)}


@router.get("/products/{product_id}")
async def get_product(
    product_id: str,
    account: Account = Depends(require_auth),
    services: Services = Depends(get_services),
):
    client = services.require_shopify(account)
    key = product_cache_key(client.shop_domain, product_id)
    product = await services.cache.get_json(key) if services.cache else None
    if product is None:
        product = await client.get_product(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        if services.cache:
            await services.cache.set_json(key, product)
    return {"product": product}


@router.put("/products/{product_id}/description")
async def update_description(
    product_id: str,
    request: UpdateDescriptionRequest,
    account: Account = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Overwrite the product's description in the store."""
    client = services.require_shopify(account)
    product = await client.update_product_description(product_id, request.description)
    if services.cache:
        await services.cache.delete(product_cache_key(client.shop_domain, product_id))
    return {"product": product}
