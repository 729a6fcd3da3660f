"""Fake OpenAI, Shopify and Stripe backends shared by the test suite."""

import json
import re
from collections.abc import Callable
from urllib.parse import parse_qsl

import httpx

from descgen.llm.base import UsageStats

SHOP_DOMAIN = "test-store.myshopify.com"
SHOP_TOKEN = "shpat_test"

SAMPLE_RESPONSE = """**Product Description:**
Stay warm on every trail with this lightweight merino hoodie. Breathable fabric
keeps you comfortable from sunrise to summit.

**Keywords Used:** merino hoodie, hiking layer, breathable
**SEO Score:** 87
**Meta Description:** Lightweight merino hoodie for hiking and everyday wear.
**Title Tag:** Merino Trail Hoodie | Lightweight Hiking Layer
"""


class FakeLLM:
    """Scripted LLM provider. ``reply`` is a string or a callable(prompt) -> str."""

    def __init__(self, reply: str | Callable[[str], str] = SAMPLE_RESPONSE, model: str = "gpt-4"):
        self.model = model
        self.usage = UsageStats()
        self.reply = reply
        self.prompts: list[str] = []

    async def complete(self, prompt: str, *, system: str | None = None, **kwargs) -> str:
        self.prompts.append(prompt)
        self.usage.total_requests += 1
        self.usage.prompt_tokens += 100
        self.usage.completion_tokens += 50
        if callable(self.reply):
            return self.reply(prompt)
        return self.reply


class FakeShopify:
    """In-memory Admin REST API behind an httpx.MockTransport."""

    _PRODUCT_PATH = re.compile(r"/admin/api/[^/]+/products/(\d+)\.json$")
    _WEBHOOK_PATH = re.compile(r"/admin/api/[^/]+/webhooks/(\d+)\.json$")

    def __init__(self, products: dict[str, dict] | None = None):
        self.products = products if products is not None else {}
        self.updates: list[tuple[str, str]] = []
        self.fail_updates_for: set[str] = set()
        self.shop_ok = True
        self.webhooks: dict[str, dict] = {}
        self._next_webhook_id = 9001

    def add_product(self, product_id: str, title: str, **extra) -> dict:
        product = {"id": int(product_id), "title": title, "body_html": "", "tags": "", **extra}
        self.products[product_id] = product
        return product

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.headers.get("X-Shopify-Access-Token") != SHOP_TOKEN:
            return httpx.Response(401, json={"errors": "Invalid API key or access token"})
        path = request.url.path
        if path.endswith("/shop.json"):
            if not self.shop_ok:
                return httpx.Response(403, json={"errors": "Forbidden"})
            return httpx.Response(200, json={"shop": {"domain": SHOP_DOMAIN, "name": "Test Store"}})
        if path.endswith("/webhooks.json"):
            if request.method == "POST":
                webhook = {"id": self._next_webhook_id, **json.loads(request.content)["webhook"]}
                self._next_webhook_id += 1
                self.webhooks[str(webhook["id"])] = webhook
                return httpx.Response(201, json={"webhook": webhook})
            return httpx.Response(200, json={"webhooks": list(self.webhooks.values())})
        match = self._WEBHOOK_PATH.search(path)
        if match and request.method == "DELETE":
            if self.webhooks.pop(match.group(1), None) is None:
                return httpx.Response(404, json={"errors": "Not Found"})
            return httpx.Response(200, json={})
        if path.endswith("/products.json"):
            return httpx.Response(200, json={"products": list(self.products.values())})
        match = self._PRODUCT_PATH.search(path)
        if match:
            product_id = match.group(1)
            product = self.products.get(product_id)
            if product is None:
                return httpx.Response(404, json={"errors": "Not Found"})
            if request.method == "PUT":
                if product_id in self.fail_updates_for:
                    return httpx.Response(500, json={"errors": "Internal Server Error"})
                body = json.loads(request.content)["product"]
                product["body_html"] = body["body_html"]
                self.updates.append((product_id, body["body_html"]))
            return httpx.Response(200, json={"product": product})
        return httpx.Response(404, json={"errors": "Not Found"})


class FakeStripe:
    """Records Stripe calls and answers with canned objects."""

    def __init__(self):
        self.calls: list[tuple[str, str, str]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = request.content.decode() if request.content else request.url.query.decode()
        self.calls.append((request.method, request.url.path, body))
        path = request.url.path
        if path == "/v1/customers" and request.method == "POST":
            return httpx.Response(200, json={"id": "cus_test", "object": "customer"})
        if path == "/v1/subscriptions" and request.method == "POST":
            return httpx.Response(200, json={
                "id": "sub_test",
                "status": "incomplete",
                "latest_invoice": {"payment_intent": {"client_secret": "pi_secret"}},
            })
        if path.startswith("/v1/customers/") and request.method == "POST":
            customer = {"id": path.rsplit("/", 1)[-1], "object": "customer"}
            customer.update(parse_qsl(body))
            return httpx.Response(200, json=customer)
        if path == "/v1/subscriptions" and request.method == "GET":
            return httpx.Response(200, json={"object": "list", "data": [{"id": "sub_1", "status": "active"}]})
        if path == "/v1/payment_methods" and request.method == "GET":
            return httpx.Response(200, json={"object": "list", "data": [{"id": "pm_1", "type": "card"}]})
        if path == "/v1/payment_intents" and request.method == "POST":
            return httpx.Response(200, json={"id": "pi_test", "client_secret": "pi_test_secret"})
        if path.startswith("/v1/payment_methods/") and path.endswith("/attach"):
            return httpx.Response(200, json={"id": path.split("/")[3], "object": "payment_method"})
        if path.startswith("/v1/subscriptions/"):
            status = "canceled" if request.method == "DELETE" else "active"
            return httpx.Response(200, json={
                "id": path.rsplit("/", 1)[-1],
                "status": status,
                "cancel_at_period_end": "cancel_at_period_end=true" in body,
                "items": {"data": [{"id": "si_1", "price": {"id": "price_basic"}}]},
            })
        if path == "/v1/billing_portal/sessions":
            return httpx.Response(200, json={"url": "https://billing.stripe.com/session/test"})
        return httpx.Response(404, json={"error": {"code": "resource_missing", "message": "No such object"}})


