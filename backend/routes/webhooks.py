"""Inbound webhooks. Signatures are verified on the raw body before any parsing."""

import json
import logging

from fastapi import APIRouter, Depends, Request

from backend.deps import get_services
from descgen.errors import WebhookSignatureError
from descgen.services import Services
from descgen.shopify.adapter import product_cache_key
from descgen.shopify.client import ShopifyClient

logger = logging.getLogger(__name__)
router = APIRouter()

PRODUCT_TOPICS = ("products/update", "products/delete")
UNINSTALLED_TOPIC = "app/uninstalled"


@router.post("/webhooks/stripe")
async def stripe_webhook(request: Request, services: Services = Depends(get_services)):
    """Billing events drive the local subscription mirror."""
    raw = await request.body()
    event = services.require_stripe().construct_event(raw, request.headers.get("stripe-signature"))
    account = services.subscription_sync().apply_event(event)
    logger.info("Stripe webhook %s (%s)", event.get("type"), event.get("id"))
    return {"received": True, "applied": account is not None}


@router.post("/webhooks/shopify")
async def shopify_webhook(request: Request, services: Services = Depends(get_services)):
    raw = await request.body()
    settings = services.settings
    secret = settings.shopify_webhook_secret or settings.shopify_api_secret
    if not ShopifyClient.verify_webhook(raw, request.headers.get("x-shopify-hmac-sha256"), secret):
        raise WebhookSignatureError()

    topic = request.headers.get("x-shopify-topic", "")
    shop_domain = request.headers.get("x-shopify-shop-domain", "")
    try:
        payload = json.loads(raw or b"{}")
    except ValueError:
        payload = {}

    if topic in PRODUCT_TOPICS:
        product_id = str(payload.get("id", ""))
        if services.cache and product_id:
            await services.cache.delete(product_cache_key(shop_domain, product_id))
        logger.info("Shopify %s for %s product %s", topic, shop_domain, product_id)
    elif topic == UNINSTALLED_TOPIC:
        account = services.accounts.get_by_shop_domain(shop_domain)
        if account is not None:
            account.shop_domain = None
            account.shop_access_token = None
            services.accounts.update(account)
            logger.info("App uninstalled from %s; cleared credentials for %s", shop_domain, account.id)
    else:
        logger.info("Unhandled Shopify webhook topic: %s", topic)
    return {"received": True}
