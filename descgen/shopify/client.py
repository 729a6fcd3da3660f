"""Shopify Admin REST client (one instance per connected store)."""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from typing import Any

import httpx
import markdown

from descgen.batching import chunked_throttled_map
from descgen.errors import ExternalServiceError, upstream_error
from descgen.generation.schemas import ProductAttributes

logger = logging.getLogger(__name__)

SERVICE = "Shopify"
MAX_PAGE_SIZE = 250

# Documented REST Admin API budget (leaky bucket, standard plan)
RATE_LIMITS = {
    "calls_per_second": 2,
    "calls_per_minute": 40,
    "calls_per_hour": 4500,
    "calls_per_day": 100000,
}


def render_body_html(description: str) -> str:
    """Render generated (markdown-ish) text to the HTML Shopify stores."""
    return markdown.markdown(description.strip())


def _clip(value: str | None, limit: int) -> str | None:
    return value[:limit] if value else None


def product_from_shopify(data: dict[str, Any]) -> ProductAttributes:
    """Map a Shopify product payload to generator input."""
    tags = [t.strip() for t in (data.get("tags") or "").split(",") if t.strip()]
    images = [img["src"] for img in data.get("images") or [] if img.get("src")]
    return ProductAttributes(
        id=str(data.get("id", "")),
        title=(data.get("title") or "Untitled product")[:255],
        existing_description=_clip(data.get("body_html"), 5000),
        vendor=_clip(data.get("vendor"), 100),
        product_type=_clip(data.get("product_type"), 100),
        tags=tuple(tags[:50]),
        images=tuple(images[:20]),
    )


class ShopifyClient:
    """Thin async wrapper over ``/admin/api/{version}/...json`` for one shop."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        *,
        http: httpx.AsyncClient,
        api_version: str = "2023-10",
    ):
        if not shop_domain or not access_token:
            raise ValueError("shop_domain and access_token are required")
        self.shop_domain = shop_domain
        self._token = access_token
        self._http = http
        self._base = f"https://{shop_domain}/admin/api/{api_version}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        failure: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        details: dict[str, Any] | None = None,
    ) -> httpx.Response:
        try:
            resp = await self._http.request(
                method,
                f"{self._base}/{path}.json",
                params=params,
                json=json,
                headers={"X-Shopify-Access-Token": self._token},
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            err = upstream_error(SERVICE, failure, e)
            if details:
                err.details = {**details, **(err.details or {})}
            logger.error("%s (%s): %s", failure, self.shop_domain, e)
            raise err from e
        return resp

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def get_products(
        self,
        *,
        limit: int = MAX_PAGE_SIZE,
        since_id: str | None = None,
        title: str | None = None,
        vendor: str | None = None,
        product_type: str | None = None,
        status: str | None = None,
        published_status: str | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"limit": max(1, min(limit, MAX_PAGE_SIZE))}
        filters = {
            "since_id": since_id,
            "title": title,
            "vendor": vendor,
            "product_type": product_type,
            "status": status,
            "published_status": published_status,
        }
        params.update({k: v for k, v in filters.items() if v})
        resp = await self._request("GET", "products", params=params, failure="Failed to fetch products")
        return resp.json().get("products") or []

    async def get_product(self, product_id: str) -> dict[str, Any] | None:
        """Fetch one product; None when Shopify reports 404."""
        try:
            resp = await self._request(
                "GET",
                f"products/{product_id}",
                failure="Failed to fetch product",
                details={"product_id": product_id},
            )
        except ExternalServiceError as e:
            if e.upstream_status == 404:
                return None
            raise
        return resp.json().get("product") or None

    async def update_product_description(self, product_id: str, description: str) -> dict[str, Any]:
        """Overwrite ``body_html``. Repeating the call with the same text is a no-op change."""
        resp = await self._request(
            "PUT",
            f"products/{product_id}",
            json={"product": {"id": product_id, "body_html": render_body_html(description)}},
            failure="Failed to update product",
            details={"product_id": product_id},
        )
        logger.info("Updated product description for product %s", product_id)
        return resp.json().get("product") or {}

    async def bulk_update_descriptions(
        self,
        updates: list[tuple[str, str]],
        *,
        chunk_size: int = 5,
        delay_seconds: float = 1.0,
    ) -> dict[str, Any]:
        """Push ``(product_id, description)`` pairs in throttled chunks.

        Returns ``{"success": n, "failed": n, "errors": [{product_id, error}]}``.
        """

        async def _push(update: tuple[str, str]) -> str | None:
            product_id, description = update
            try:
                await self.update_product_description(product_id, description)
            except ExternalServiceError as e:
                return e.message
            return None

        outcomes = await chunked_throttled_map(
            updates, _push, chunk_size=chunk_size, delay_seconds=delay_seconds
        )
        errors = [
            {"product_id": pid, "error": err}
            for (pid, _), err in zip(updates, outcomes)
            if err is not None
        ]
        return {"success": len(updates) - len(errors), "failed": len(errors), "errors": errors}

    # ------------------------------------------------------------------
    # Shop & webhooks
    # ------------------------------------------------------------------

    async def get_shop(self) -> dict[str, Any] | None:
        resp = await self._request("GET", "shop", failure="Failed to fetch store info")
        return resp.json().get("shop") or None

    async def create_webhook(self, topic: str, address: str, fmt: str = "json") -> dict[str, Any]:
        resp = await self._request(
            "POST",
            "webhooks",
            json={"webhook": {"topic": topic, "address": address, "format": fmt}},
            failure="Failed to create webhook",
            details={"topic": topic},
        )
        return resp.json().get("webhook") or {}

    async def get_webhooks(self) -> list[dict[str, Any]]:
        resp = await self._request("GET", "webhooks", failure="Failed to fetch webhooks")
        return resp.json().get("webhooks") or []

    async def delete_webhook(self, webhook_id: str) -> None:
        await self._request(
            "DELETE",
            f"webhooks/{webhook_id}",
            failure="Failed to delete webhook",
            details={"webhook_id": webhook_id},
        )
        logger.info("Deleted webhook %s", webhook_id)

    @staticmethod
    def verify_webhook(raw_body: bytes, signature: str | None, secret: str | None) -> bool:
        """Check ``X-Shopify-Hmac-Sha256`` (base64 HMAC-SHA256 of the raw body)."""
        if not signature or not secret:
            return False
        digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
        expected = base64.b64encode(digest).decode("ascii")
        received = signature.strip().encode("utf-8", "surrogateescape")
        return hmac.compare_digest(expected.encode("ascii"), received)

    @staticmethod
    def rate_limit_info() -> dict[str, int]:
        return dict(RATE_LIMITS)
