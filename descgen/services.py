"""Process-wide service container.

Built once (FastAPI lifespan or CLI command) and passed explicitly; nothing in
descgen keeps module-level clients.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx
import redis.asyncio as redis

from descgen.accounts.models import Account
from descgen.accounts.store import AccountStore, create_account_store
from descgen.billing.stripe_client import StripeClient
from descgen.billing.sync import SubscriptionSync
from descgen.cache import RateLimiter, RedisCache, close_redis, create_rate_limiter, create_redis
from descgen.config import Settings
from descgen.errors import ServiceUnavailableError, ValidationError
from descgen.generation.client import DescriptionGenerator
from descgen.jobs.orchestrator import BatchOrchestrator
from descgen.jobs.store import JobStore, create_job_store
from descgen.llm.base import LLMProvider
from descgen.llm.openai_provider import OpenAIProvider
from descgen.shopify.adapter import ShopifyStoreAdapter
from descgen.shopify.client import ShopifyClient

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    http: httpx.AsyncClient
    accounts: AccountStore
    jobs: JobStore
    rate_limiter: RateLimiter
    llm: LLMProvider | None = None
    generator: DescriptionGenerator | None = None
    orchestrator: BatchOrchestrator | None = None
    stripe: StripeClient | None = None
    redis_client: redis.Redis | None = None
    cache: RedisCache | None = None
    _stripe_http: httpx.AsyncClient | None = field(default=None, repr=False)

    # ------------------------------------------------------------------
    # Accessors that fail with a reportable error when unconfigured
    # ------------------------------------------------------------------

    def require_generator(self) -> DescriptionGenerator:
        if self.generator is None:
            raise ServiceUnavailableError("OpenAI is not configured (set OPENAI_API_KEY)")
        return self.generator

    def require_orchestrator(self) -> BatchOrchestrator:
        if self.orchestrator is None:
            raise ServiceUnavailableError("OpenAI is not configured (set OPENAI_API_KEY)")
        return self.orchestrator

    def require_stripe(self) -> StripeClient:
        if self.stripe is None:
            raise ServiceUnavailableError("Stripe is not configured (set STRIPE_SECRET_KEY)")
        return self.stripe

    def subscription_sync(self) -> SubscriptionSync:
        plan_for_price = self.stripe.plan_for_price if self.stripe else (lambda _price: None)
        return SubscriptionSync(self.accounts, plan_for_price)

    def shopify_for(self, account: Account) -> ShopifyClient | None:
        if not account.has_store:
            return None
        return ShopifyClient(
            account.shop_domain,
            account.shop_access_token,
            http=self.http,
            api_version=self.settings.shopify_api_version,
        )

    def require_shopify(self, account: Account) -> ShopifyClient:
        client = self.shopify_for(account)
        if client is None:
            raise ValidationError("Shopify store not connected")
        return client

    def store_adapter(self, account: Account) -> ShopifyStoreAdapter | None:
        client = self.shopify_for(account)
        if client is None:
            return None
        return ShopifyStoreAdapter(client, self.cache)

    async def aclose(self) -> None:
        await self.http.aclose()
        if self._stripe_http is not None:
            await self._stripe_http.aclose()
        if isinstance(self.llm, OpenAIProvider):
            await self.llm.close()
        await close_redis(self.redis_client)
        self.jobs.close()
        self.accounts.close()
        logger.info("Services closed")


def build_services(
    settings: Settings,
    *,
    llm: LLMProvider | None = None,
    http: httpx.AsyncClient | None = None,
    stripe_http: httpx.AsyncClient | None = None,
    redis_client: redis.Redis | None = None,
) -> Services:
    """Wire stores, clients and the orchestrator from *settings*.

    Arguments override the configured clients (tests pass fakes here).
    """
    http = http or httpx.AsyncClient(timeout=settings.shopify_timeout)

    if llm is None and settings.openai_api_key:
        llm = OpenAIProvider(
            settings.openai_api_key,
            settings.openai_model,
            temperature=settings.openai_temperature,
            max_tokens=settings.openai_max_tokens,
            timeout=settings.openai_timeout,
        )
    if llm is None:
        logger.warning("OPENAI_API_KEY not set; generation endpoints are disabled")

    redis_client = redis_client or create_redis(settings.redis_url)
    cache = RedisCache(redis_client, ttl_seconds=settings.cache_ttl_seconds) if redis_client else None

    services = Services(
        settings=settings,
        http=http,
        accounts=create_account_store(settings),
        jobs=create_job_store(settings),
        rate_limiter=create_rate_limiter(
            redis_client,
            limit=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        ),
        llm=llm,
        redis_client=redis_client,
        cache=cache,
    )

    if llm is not None:
        services.generator = DescriptionGenerator(llm)
        services.orchestrator = BatchOrchestrator(
            services.generator,
            services.jobs,
            chunk_size=settings.batch_chunk_size,
            delay_seconds=settings.batch_delay_seconds,
        )

    if settings.stripe_secret_key:
        stripe_http = stripe_http or httpx.AsyncClient(timeout=settings.stripe_timeout)
        services._stripe_http = stripe_http
        services.stripe = StripeClient(
            settings.stripe_secret_key,
            http=stripe_http,
            price_ids=settings.stripe_price_ids,
            webhook_secret=settings.stripe_webhook_secret,
            currency=settings.stripe_currency,
        )
    else:
        logger.warning("STRIPE_SECRET_KEY not set; billing endpoints are disabled")

    return services


__all__ = ["Services", "build_services"]
