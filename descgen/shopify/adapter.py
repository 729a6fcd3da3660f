"""Connect a Shopify store to the job orchestrator (product source + description sink)."""

from __future__ import annotations

import logging

from descgen.cache import RedisCache
from descgen.errors import ExternalServiceError
from descgen.generation.schemas import GeneratedDescription, ProductAttributes
from descgen.shopify.client import ShopifyClient, product_from_shopify

logger = logging.getLogger(__name__)


def product_cache_key(shop_domain: str, product_id: str) -> str:
    return f"shopify:{shop_domain}:product:{product_id}"


class ShopifyStoreAdapter:
    """Reads products (through the optional Redis cache) and pushes descriptions."""

    def __init__(self, client: ShopifyClient, cache: RedisCache | None = None):
        self._client = client
        self._cache = cache

    async def verify(self) -> None:
        shop = await self._client.get_shop()
        if not shop:
            raise ExternalServiceError("Shopify", "Store info unavailable")

    async def fetch(self, product_id: str) -> ProductAttributes | None:
        key = product_cache_key(self._client.shop_domain, product_id)
        data = await self._cache.get_json(key) if self._cache else None
        if data is None:
            data = await self._client.get_product(product_id)
            if data is None:
                return None
            if self._cache:
                await self._cache.set_json(key, data)
        return product_from_shopify(data)

    async def push(self, product_id: str, description: GeneratedDescription) -> None:
        await self._client.update_product_description(product_id, description.content)
        if self._cache:
            await self._cache.delete(product_cache_key(self._client.shop_domain, product_id))
