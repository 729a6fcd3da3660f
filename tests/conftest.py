"""Pytest configuration and shared fixtures."""

import httpx
import pytest
from fastapi.testclient import TestClient

from descgen.accounts.models import SubscriptionStatus
from descgen.config import Settings
from descgen.plans import Plan
from descgen.services import build_services
from tests.fakes import SHOP_DOMAIN, SHOP_TOKEN, FakeLLM, FakeShopify, FakeStripe


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        environment="test",
        descgen_data_dir=str(tmp_path / "data"),
        openai_api_key=None,
        database_url=None,
        redis_url=None,
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret="whsec_test",
        stripe_price_basic_id="price_basic",
        stripe_price_pro_id="price_pro",
        stripe_price_enterprise_id="price_enterprise",
        shopify_webhook_secret="shopify_secret",
        batch_chunk_size=5,
        batch_delay_seconds=0,
    )


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def shopify():
    store = FakeShopify()
    for i in range(1, 13):
        store.add_product(str(1000 + i), f"Product {i}", vendor="Acme", tags="outdoor, wool")
    return store


@pytest.fixture
def stripe():
    return FakeStripe()


@pytest.fixture
def services(settings, fake_llm, shopify, stripe):
    return build_services(
        settings,
        llm=fake_llm,
        http=httpx.AsyncClient(transport=httpx.MockTransport(shopify.handler)),
        stripe_http=httpx.AsyncClient(transport=httpx.MockTransport(stripe.handler)),
    )


@pytest.fixture
def client(services):
    from backend.main import create_app

    with TestClient(create_app(services=services)) as test_client:
        yield test_client


@pytest.fixture
def make_account(client, services):
    """Register an account and return (headers, account) with the given plan and store state."""

    def _make(
        email: str = "owner@example.com",
        *,
        plan: Plan = Plan.PRO,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        connect_store: bool = True,
    ):
        resp = client.post("/api/auth/register", json={"email": email, "password": "s3cret-pass"})
        assert resp.status_code == 200, resp.text
        token = resp.json()["token"]
        account = services.accounts.get_by_email(email)
        account.plan = plan
        account.subscription_status = status
        account.stripe_customer_id = f"cus_{account.id}"
        if connect_store:
            account.shop_domain = SHOP_DOMAIN
            account.shop_access_token = SHOP_TOKEN
        services.accounts.update(account)
        return {"Authorization": f"Bearer {token}"}, account

    return _make
