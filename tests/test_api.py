"""HTTP tests for the FastAPI backend using fake OpenAI, Shopify and Stripe backends."""

import base64
import hashlib
import hmac
import json
import time

import httpx
from fastapi.testclient import TestClient

from backend.main import create_app
from descgen.accounts import SubscriptionStatus
from descgen.billing import compute_signature
from descgen.jobs import JobStatus
from descgen.plans import Plan
from descgen.services import build_services

PRODUCT_IDS = [str(1000 + i) for i in range(1, 13)]


# ---------------------------------------------------------------------------
# Health, envelope, auth
# ---------------------------------------------------------------------------

def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.json()["version"] == "1.0.0"


def test_protected_route_without_token(client):
    resp = client.get("/api/jobs")
    assert resp.status_code == 401
    body = resp.json()
    assert body["code"] == "AUTHENTICATION_ERROR"
    assert body["path"] == "/api/jobs"
    assert body["method"] == "GET"
    assert "timestamp" in body
    assert resp.headers["www-authenticate"] == "Bearer"


def test_invalid_token(client):
    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid or expired token"


def test_unknown_route_envelope(client, make_account):
    headers, _ = make_account()
    resp = client.get("/api/nothing-here", headers=headers)
    assert resp.status_code == 404
    body = resp.json()
    assert body["code"] == "NOT_FOUND_ERROR"
    assert body["error"] == "Route GET /api/nothing-here not found"
    assert "suggestion" in body


def test_register_validation_error(client):
    resp = client.post("/api/auth/register", json={"email": "not-an-email", "password": "short"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert {d["field"] for d in body["details"]} == {"email", "password"}


def test_register_login_me_logout(client):
    resp = client.post(
        "/api/auth/register", json={"email": "New@Example.com", "password": "s3cret-pass", "name": "New"}
    )
    assert resp.status_code == 200
    account = resp.json()["account"]
    assert account["email"] == "new@example.com"
    assert "password_hash" not in account
    assert account["store_connected"] is False

    duplicate = client.post("/api/auth/register", json={"email": "new@example.com", "password": "s3cret-pass"})
    assert duplicate.status_code == 409

    bad = client.post("/api/auth/login", json={"email": "new@example.com", "password": "wrong-pass"})
    assert bad.status_code == 401

    token = client.post(
        "/api/auth/login", json={"email": "new@example.com", "password": "s3cret-pass"}
    ).json()["token"]
    headers = {"Authorization": f"Bearer {token}"}
    me = client.get("/api/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["plan"] == "basic"

    assert client.post("/api/auth/logout", headers=headers).json() == {"status": "logged_out"}
    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_connect_store(client, make_account):
    headers, _ = make_account(connect_store=False)
    resp = client.post(
        "/api/auth/shopify/connect",
        headers=headers,
        json={"shop_domain": "test-store.myshopify.com", "access_token": "shpat_test"},
    )
    assert resp.status_code == 200
    assert resp.json()["connected"] is True
    assert client.get("/api/auth/me", headers=headers).json()["store_connected"] is True


def test_connect_store_rejects_bad_token(client, make_account):
    headers, _ = make_account(connect_store=False)
    resp = client.post(
        "/api/auth/shopify/connect",
        headers=headers,
        json={"shop_domain": "test-store.myshopify.com", "access_token": "wrong"},
    )
    assert resp.status_code == 502
    assert resp.json()["details"]["service"] == "Shopify"
    assert client.get("/api/auth/me", headers=headers).json()["store_connected"] is False


# ---------------------------------------------------------------------------
# Descriptions
# ---------------------------------------------------------------------------

def test_generate_requires_active_subscription(client, make_account):
    headers, _ = make_account(status=SubscriptionStatus.PAST_DUE)
    resp = client.post("/api/descriptions/generate", headers=headers, json={"product": {"title": "Hoodie"}})
    assert resp.status_code == 403
    assert resp.json()["details"]["subscription_status"] == "past_due"


def test_generate_inline_product(client, make_account, fake_llm):
    headers, _ = make_account(plan=Plan.BASIC)
    resp = client.post(
        "/api/descriptions/generate",
        headers=headers,
        json={"product": {"title": "Merino Hoodie", "vendor": "Acme"}, "options": {"word_count": 120}},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["seo_score"] == 87
    assert body["usage"]["total_requests"] == 1
    assert "Target word count: 120 words" in fake_llm.prompts[0]


def test_generate_from_store_product(client, make_account, fake_llm):
    headers, _ = make_account()
    resp = client.post("/api/descriptions/generate", headers=headers, json={"product_id": "1003"})
    assert resp.status_code == 200
    assert "Product: Product 3" in fake_llm.prompts[0]

    missing = client.post("/api/descriptions/generate", headers=headers, json={"product_id": "999999"})
    assert missing.status_code == 404


def test_generate_needs_product_or_id(client, make_account):
    headers, _ = make_account()
    resp = client.post("/api/descriptions/generate", headers=headers, json={"options": {}})
    assert resp.status_code == 400


def test_basic_plan_cannot_use_custom_tone(client, make_account):
    headers, _ = make_account(plan=Plan.BASIC)
    resp = client.post(
        "/api/descriptions/generate",
        headers=headers,
        json={"product": {"title": "Hoodie"}, "options": {"tone": "playful"}},
    )
    assert resp.status_code == 403
    assert resp.json()["details"]["feature"] == "custom_tone"


def test_optimize(client, make_account, fake_llm):
    headers, _ = make_account()
    fake_llm.reply = "1. **Optimized Description:** Better hoodie copy.\n2. **SEO Score:** 92\n"
    resp = client.post(
        "/api/descriptions/optimize",
        headers=headers,
        json={"description": "Old copy", "product": {"title": "Hoodie"}, "target_keywords": ["merino"]},
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["content"] == "Better hoodie copy."
    assert resp.json()["data"]["seo_score"] == 92


def test_estimate_cost(client, make_account):
    headers, _ = make_account()
    resp = client.post("/api/descriptions/estimate-cost", headers=headers, json={"product_count": 10})
    assert resp.status_code == 200
    body = resp.json()
    assert body["estimated_tokens"] == 7000
    assert body["model"] == "gpt-4"
    assert body["estimated_cost"] == 0.273


def test_generation_unavailable_without_openai(settings):
    services = build_services(settings, http=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(404))))
    with TestClient(create_app(services=services)) as client:
        token = client.post(
            "/api/auth/register", json={"email": "a@example.com", "password": "s3cret-pass"}
        ).json()["token"]
        account = services.accounts.get_by_email("a@example.com")
        account.subscription_status = SubscriptionStatus.ACTIVE
        services.accounts.update(account)
        resp = client.post(
            "/api/descriptions/generate",
            headers={"Authorization": f"Bearer {token}"},
            json={"product": {"title": "Hoodie"}},
        )
    assert resp.status_code == 503
    assert resp.json()["code"] == "SERVICE_UNAVAILABLE"


# ---------------------------------------------------------------------------
# Bulk jobs
# ---------------------------------------------------------------------------

def test_bulk_generate_requires_pro(client, make_account):
    headers, _ = make_account(plan=Plan.BASIC)
    resp = client.post("/api/jobs/bulk-generate", headers=headers, json={"product_ids": PRODUCT_IDS})
    assert resp.status_code == 403
    assert resp.json()["details"]["feature"] == "bulk_generation"


def test_bulk_generate_runs_to_completion(client, make_account, shopify):
    headers, _ = make_account()
    resp = client.post(
        "/api/jobs/bulk-generate",
        headers=headers,
        json={"product_ids": PRODUCT_IDS + ["999999"], "push_to_store": True},
    )
    assert resp.status_code == 200, resp.text
    start = resp.json()
    assert start["status"] == "queued"
    assert start["total"] == 13
    assert start["deduplicated"] is False

    job = client.get(f"/api/jobs/{start['job_id']}", headers=headers).json()
    assert job["status"] == "completed"
    assert job["processed"] == 13
    assert job["successful"] == 12
    assert job["failed"] == 1
    assert job["progress"] == 100
    assert [r["product_id"] for r in job["results"]] == PRODUCT_IDS + ["999999"]
    assert job["results"][-1]["error"] == "Product not found"
    assert len(shopify.updates) == 12

    listing = client.get("/api/jobs", headers=headers).json()
    assert [j["job_id"] for j in listing] == [start["job_id"]]


def test_bulk_generate_deduplicates_in_flight_job(client, make_account, services, monkeypatch):
    async def hold(*args, **kwargs):
        return None

    monkeypatch.setattr(services.orchestrator, "run_job", hold)
    headers, _ = make_account()
    payload = {"product_ids": PRODUCT_IDS, "options": {"tone": "casual"}}
    first = client.post("/api/jobs/bulk-generate", headers=headers, json=payload).json()
    second = client.post("/api/jobs/bulk-generate", headers=headers, json=payload).json()
    assert second["job_id"] == first["job_id"]
    assert second["deduplicated"] is True

    other = client.post(
        "/api/jobs/bulk-generate", headers=headers, json={**payload, "push_to_store": True}
    ).json()
    assert other["job_id"] != first["job_id"]


def test_cancel_queued_job(client, make_account, services, monkeypatch):
    async def hold(*args, **kwargs):
        return None

    monkeypatch.setattr(services.orchestrator, "run_job", hold)
    headers, _ = make_account()
    job_id = client.post(
        "/api/jobs/bulk-generate", headers=headers, json={"product_ids": PRODUCT_IDS}
    ).json()["job_id"]

    resp = client.post(f"/api/jobs/{job_id}/cancel", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["cancel_requested"] is True
    assert services.jobs.is_cancel_requested(job_id)


def test_cancel_finished_job_conflicts(client, make_account):
    headers, _ = make_account()
    job_id = client.post(
        "/api/jobs/bulk-generate", headers=headers, json={"product_ids": PRODUCT_IDS[:2]}
    ).json()["job_id"]
    resp = client.post(f"/api/jobs/{job_id}/cancel", headers=headers)
    assert resp.status_code == 409
    assert resp.json()["details"]["status"] == "completed"


def test_job_without_store_fails(client, make_account):
    headers, _ = make_account(connect_store=False)
    job_id = client.post(
        "/api/jobs/bulk-generate", headers=headers, json={"product_ids": PRODUCT_IDS[:3]}
    ).json()["job_id"]
    job = client.get(f"/api/jobs/{job_id}", headers=headers).json()
    assert job["status"] == JobStatus.FAILED.value
    assert job["error_message"] == "Shopify store not connected"
    assert job["processed"] == 0


def test_jobs_are_private(client, make_account):
    owner_headers, _ = make_account("owner@example.com")
    other_headers, _ = make_account("other@example.com")
    job_id = client.post(
        "/api/jobs/bulk-generate", headers=owner_headers, json={"product_ids": PRODUCT_IDS[:1]}
    ).json()["job_id"]
    assert client.get(f"/api/jobs/{job_id}", headers=other_headers).status_code == 404
    assert client.post(f"/api/jobs/{job_id}/cancel", headers=other_headers).status_code == 404


def test_bulk_request_limits(client, make_account):
    headers, _ = make_account()
    assert client.post("/api/jobs/bulk-generate", headers=headers, json={"product_ids": []}).status_code == 400
    too_many = [str(i) for i in range(1001)]
    assert client.post("/api/jobs/bulk-generate", headers=headers, json={"product_ids": too_many}).status_code == 400


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

def test_products_listing_and_update(client, make_account, shopify):
    headers, _ = make_account()
    listing = client.get("/api/products", headers=headers, params={"limit": 5})
    assert listing.status_code == 200
    assert listing.json()["count"] == 12

    resp = client.put("/api/products/1001/description", headers=headers, json={"description": "Fresh copy."})
    assert resp.status_code == 200
    assert shopify.products["1001"]["body_html"] == "<p>Fresh copy.</p>"
    assert client.get("/api/products/404404", headers=headers).status_code == 404


def test_products_need_connected_store(client, make_account):
    headers, _ = make_account(connect_store=False)
    resp = client.get("/api/products", headers=headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Shopify store not connected"


# ---------------------------------------------------------------------------
# Subscriptions and webhooks
# ---------------------------------------------------------------------------

def test_plans_are_public(client):
    resp = client.get("/api/subscriptions/plans")
    assert resp.status_code == 200
    plans = {p["id"]: p for p in resp.json()["plans"]}
    assert set(plans) == {"basic", "pro", "enterprise"}
    assert "bulk_generation" in plans["pro"]["features"]
    assert "bulk_generation" not in plans["basic"]["features"]


def test_create_subscription(client, make_account, services):
    headers, account = make_account(status=SubscriptionStatus.INACTIVE)
    resp = client.post("/api/subscriptions", headers=headers, json={"plan": "pro"})
    assert resp.status_code == 200, resp.text
    assert resp.json()["client_secret"] == "pi_secret"
    stored = services.accounts.get(account.id)
    assert stored.stripe_subscription_id == "sub_test"
    assert stored.subscription_status == SubscriptionStatus.INCOMPLETE


def test_create_subscription_when_already_active(client, make_account, services):
    headers, account = make_account()
    account.stripe_subscription_id = "sub_existing"
    services.accounts.update(account)
    resp = client.post("/api/subscriptions", headers=headers, json={"plan": "pro"})
    assert resp.status_code == 409


def test_cancel_without_subscription_is_404(client, make_account):
    headers, _ = make_account()
    assert client.delete("/api/subscriptions", headers=headers).status_code == 404


def test_billing_portal(client, make_account):
    headers, _ = make_account()
    resp = client.post("/api/subscriptions/portal", headers=headers, json={})
    assert resp.json() == {"url": "https://billing.stripe.com/session/test"}


def _stripe_post(client, event: dict, secret: str = "whsec_test"):
    body = json.dumps(event).encode()
    timestamp = int(time.time())
    header = f"t={timestamp},v1={compute_signature(secret, timestamp, body)}"
    return client.post(
        "/api/webhooks/stripe",
        content=body,
        headers={"Stripe-Signature": header, "Content-Type": "application/json"},
    )


def test_stripe_webhook_updates_mirror(client, make_account, services):
    _, account = make_account(plan=Plan.BASIC, status=SubscriptionStatus.INCOMPLETE)
    event = {
        "id": "evt_1",
        "type": "customer.subscription.updated",
        "data": {"object": {
            "id": "sub_9",
            "customer": account.stripe_customer_id,
            "status": "active",
            "items": {"data": [{"id": "si_1", "price": {"id": "price_enterprise"}}]},
        }},
    }
    resp = _stripe_post(client, event)
    assert resp.status_code == 200
    assert resp.json() == {"received": True, "applied": True}
    stored = services.accounts.get(account.id)
    assert stored.plan == Plan.ENTERPRISE
    assert stored.subscription_status == SubscriptionStatus.ACTIVE


def test_stripe_webhook_bad_signature_leaves_mirror(client, make_account, services):
    _, account = make_account(plan=Plan.PRO)
    event = {
        "id": "evt_2",
        "type": "customer.subscription.deleted",
        "data": {"object": {"customer": account.stripe_customer_id}},
    }
    resp = _stripe_post(client, event, secret="whsec_forged")
    assert resp.status_code == 400
    assert resp.json()["code"] == "WEBHOOK_SIGNATURE_ERROR"
    assert services.accounts.get(account.id).subscription_status == SubscriptionStatus.ACTIVE


def _shopify_post(client, topic: str, payload: dict, secret: str = "shopify_secret"):
    body = json.dumps(payload).encode()
    signature = base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()
    return client.post(
        "/api/webhooks/shopify",
        content=body,
        headers={
            "X-Shopify-Hmac-Sha256": signature,
            "X-Shopify-Topic": topic,
            "X-Shopify-Shop-Domain": "test-store.myshopify.com",
        },
    )


def test_shopify_uninstall_clears_credentials(client, make_account, services):
    _, account = make_account()
    resp = _shopify_post(client, "app/uninstalled", {"id": 1})
    assert resp.status_code == 200
    assert services.accounts.get(account.id).has_store is False


def test_shopify_webhook_bad_hmac(client, make_account, services):
    _, account = make_account()
    resp = _shopify_post(client, "app/uninstalled", {"id": 1}, secret="forged")
    assert resp.status_code == 400
    assert services.accounts.get(account.id).has_store is True


def test_stripe_webhook_non_ascii_signature(client, make_account, services):
    _, account = make_account(plan=Plan.PRO)
    body = json.dumps({
        "id": "evt_3",
        "type": "customer.subscription.deleted",
        "data": {"object": {"customer": account.stripe_customer_id}},
    }).encode()
    resp = client.post(
        "/api/webhooks/stripe",
        content=body,
        headers={"Stripe-Signature": f"t={int(time.time())},v1=\xe9abc".encode("latin-1")},
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "WEBHOOK_SIGNATURE_ERROR"
    assert services.accounts.get(account.id).subscription_status == SubscriptionStatus.ACTIVE


def test_shopify_webhook_non_ascii_hmac(client, make_account, services):
    _, account = make_account()
    resp = client.post(
        "/api/webhooks/shopify",
        content=b'{"id": 1}',
        headers={
            "X-Shopify-Hmac-Sha256": b"\xe9abc",
            "X-Shopify-Topic": "app/uninstalled",
            "X-Shopify-Shop-Domain": "test-store.myshopify.com",
        },
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "WEBHOOK_SIGNATURE_ERROR"
    assert services.accounts.get(account.id).has_store is True


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------

def test_rate_limit(settings, fake_llm):
    limited = settings.model_copy(update={"rate_limit_max_requests": 2})
    services = build_services(limited, llm=fake_llm)
    with TestClient(create_app(services=services)) as client:
        assert client.get("/api/health").status_code == 200
        assert client.get("/api/health").status_code == 200
        resp = client.get("/api/health")
    assert resp.status_code == 429
    assert resp.json()["code"] == "RATE_LIMIT_ERROR"
    assert resp.headers["retry-after"] == str(limited.rate_limit_window_seconds)
