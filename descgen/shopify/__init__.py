"""Shopify Admin API integration."""

from descgen.shopify.adapter import ShopifyStoreAdapter, product_cache_key
from descgen.shopify.client import ShopifyClient, product_from_shopify, render_body_html

__all__ = [
    "ShopifyClient",
    "ShopifyStoreAdapter",
    "product_cache_key",
    "product_from_shopify",
    "render_body_html",
]
