"""Stripe REST client over httpx (form-encoded requests, JSON responses)."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from typing import Any
from urllib.parse import urlencode

import httpx

from descgen.errors import ExternalServiceError, ValidationError, WebhookSignatureError, upstream_error
from descgen.plans import Plan

logger = logging.getLogger(__name__)

SERVICE = "Stripe"
API_BASE = "https://api.stripe.com/v1"
API_VERSION = "2023-10-16"
SIGNATURE_TOLERANCE_SECONDS = 300


def encode_form(params: dict[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    """Flatten nested params into Stripe's bracket notation (``items[0][price]``)."""
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(encode_form(value, name))
        elif isinstance(value, (list, tuple)):
            for i, item in enumerate(value):
                if isinstance(item, dict):
                    pairs.extend(encode_form(item, f"{name}[{i}]"))
                else:
                    pairs.append((f"{name}[{i}]", _scalar(item)))
        else:
            pairs.append((name, _scalar(value)))
    return pairs


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _error_code(err: ExternalServiceError) -> str | None:
    details = err.details if isinstance(err.details, dict) else {}
    body = details.get("error")
    if isinstance(body, dict):
        inner = body.get("error")
        if isinstance(inner, dict):
            return inner.get("code")
    return None


def parse_signature_header(header: str) -> tuple[int | None, list[str]]:
    timestamp: int | None = None
    signatures: list[str] = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None, []
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


def compute_signature(secret: str, timestamp: int, payload: bytes) -> str:
    signed = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def _digest_equals(expected: str, received: str) -> bool:
    # Headers arrive latin-1 decoded; compare bytes so non-ASCII input is a mismatch.
    return hmac.compare_digest(
        expected.encode("ascii"), received.encode("utf-8", "surrogateescape")
    )


class StripeClient:
    def __init__(
        self,
        secret_key: str,
        *,
        http: httpx.AsyncClient,
        price_ids: dict[str, str | None] | None = None,
        webhook_secret: str | None = None,
        currency: str = "usd",
    ):
        if not secret_key:
            raise ValueError("Stripe secret key is required")
        self._key = secret_key
        self._http = http
        self._price_ids = {k: v for k, v in (price_ids or {}).items() if v}
        self._webhook_secret = webhook_secret
        self.currency = currency

    async def _request(
        self,
        method: str,
        path: str,
        *,
        failure: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._key}",
            "Stripe-Version": API_VERSION,
        }
        kwargs: dict[str, Any] = {}
        if params:
            if method == "GET":
                kwargs["params"] = encode_form(params)
            else:
                headers["Content-Type"] = "application/x-www-form-urlencoded"
                kwargs["content"] = urlencode(encode_form(params))
        try:
            resp = await self._http.request(method, f"{API_BASE}/{path}", headers=headers, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("%s: %s", failure, e)
            raise upstream_error(SERVICE, failure, e) from e
        return resp.json()

    async def _get_or_none(self, path: str, *, failure: str, params: dict[str, Any] | None = None):
        try:
            return await self._request("GET", path, failure=failure, params=params)
        except ExternalServiceError as e:
            if e.upstream_status == 404 or _error_code(e) == "resource_missing":
                return None
            raise

    # ------------------------------------------------------------------
    # Plans & prices
    # ------------------------------------------------------------------

    def price_id_for(self, plan: Plan | str) -> str:
        name = plan.value if isinstance(plan, Plan) else str(plan)
        price_id = self._price_ids.get(name)
        if not price_id:
            raise ValidationError(f"Price ID not found for plan: {name}")
        return price_id

    def plan_for_price(self, price_id: str | None) -> Plan | None:
        for name, configured in self._price_ids.items():
            if configured == price_id:
                return Plan(name)
        return None

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    async def create_customer(
        self,
        email: str,
        *,
        name: str | None = None,
        phone: str | None = None,
        address: dict[str, str] | None = None,
        metadata: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        customer = await self._request(
            "POST",
            "customers",
            failure="Failed to create customer",
            params={
                "email": email,
                "name": name,
                "phone": phone,
                "address": address,
                "metadata": metadata or {},
            },
        )
        logger.info("Created Stripe customer %s for %s", customer.get("id"), email)
        return customer

    async def get_customer(self, customer_id: str) -> dict[str, Any] | None:
        customer = await self._get_or_none(f"customers/{customer_id}", failure="Failed to get customer")
        if customer is None or customer.get("deleted"):
            return None
        return customer

    async def update_customer(self, customer_id: str, **updates: Any) -> dict[str, Any]:
        customer = await self._request(
            "POST", f"customers/{customer_id}", failure="Failed to update customer", params=updates
        )
        logger.info("Updated Stripe customer %s", customer_id)
        return customer

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def create_subscription(
        self,
        customer_id: str,
        plan: Plan | str,
        *,
        payment_method_id: str | None = None,
        trial_days: int | None = None,
        coupon: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "customer": customer_id,
            "items": [{"price": self.price_id_for(plan), "quantity": 1}],
            "payment_behavior": "default_incomplete",
            "payment_settings": {"save_default_payment_method": "on_subscription"},
            "expand": ["latest_invoice.payment_intent"],
            "metadata": metadata or {},
        }
        if trial_days:
            params["trial_period_days"] = trial_days
        if coupon:
            params["coupon"] = coupon
        if payment_method_id:
            await self.attach_payment_method(payment_method_id, customer_id)
            params["default_payment_method"] = payment_method_id

        subscription = await self._request(
            "POST", "subscriptions", failure="Failed to create subscription", params=params
        )
        logger.info(
            "Created Stripe subscription %s for customer %s (plan=%s)",
            subscription.get("id"), customer_id, plan,
        )
        return subscription

    async def update_subscription(
        self,
        subscription_id: str,
        *,
        plan: Plan | str | None = None,
        payment_method_id: str | None = None,
        coupon: str | None = None,
        trial_days: int | None = None,
    ) -> dict[str, Any]:
        current = await self._request(
            "GET", f"subscriptions/{subscription_id}", failure="Failed to update subscription"
        )
        params: dict[str, Any] = {}

        if plan is not None:
            new_price = self.price_id_for(plan)
            items = current.get("items", {}).get("data", [])
            if items and items[0].get("price", {}).get("id") != new_price:
                params["items"] = [{"id": items[0]["id"], "price": new_price}]
        if payment_method_id:
            await self.attach_payment_method(payment_method_id, current.get("customer"))
            params["default_payment_method"] = payment_method_id
        if coupon is not None:
            params["coupon"] = coupon
        if trial_days is not None:
            params["trial_period_days"] = trial_days

        subscription = await self._request(
            "POST", f"subscriptions/{subscription_id}",
            failure="Failed to update subscription", params=params,
        )
        logger.info("Updated Stripe subscription %s (plan=%s)", subscription_id, plan)
        return subscription

    async def cancel_subscription(
        self, subscription_id: str, *, at_period_end: bool = True
    ) -> dict[str, Any]:
        if at_period_end:
            subscription = await self._request(
                "POST", f"subscriptions/{subscription_id}",
                failure="Failed to cancel subscription",
                params={"cancel_at_period_end": True},
            )
        else:
            subscription = await self._request(
                "DELETE", f"subscriptions/{subscription_id}", failure="Failed to cancel subscription"
            )
        logger.info("Canceled Stripe subscription %s (at_period_end=%s)", subscription_id, at_period_end)
        return subscription

    async def resume_subscription(self, subscription_id: str) -> dict[str, Any]:
        subscription = await self._request(
            "POST", f"subscriptions/{subscription_id}",
            failure="Failed to resume subscription",
            params={"cancel_at_period_end": False},
        )
        logger.info("Resumed Stripe subscription %s", subscription_id)
        return subscription

    async def get_subscription(self, subscription_id: str) -> dict[str, Any] | None:
        return await self._get_or_none(
            f"subscriptions/{subscription_id}",
            failure="Failed to get subscription",
            params={"expand": ["latest_invoice"]},
        )

    async def list_customer_subscriptions(self, customer_id: str) -> list[dict[str, Any]]:
        result = await self._request(
            "GET", "subscriptions", failure="Failed to get subscriptions",
            params={"customer": customer_id, "status": "all"},
        )
        return result.get("data", [])

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def attach_payment_method(self, payment_method_id: str, customer_id: str) -> None:
        await self._request(
            "POST", f"payment_methods/{payment_method_id}/attach",
            failure="Failed to attach payment method",
            params={"customer": customer_id},
        )

    async def list_payment_methods(self, customer_id: str, method_type: str = "card") -> list[dict[str, Any]]:
        result = await self._request(
            "GET", "payment_methods", failure="Failed to get payment methods",
            params={"customer": customer_id, "type": method_type},
        )
        return result.get("data", [])

    async def create_payment_intent(
        self,
        customer_id: str,
        amount: int,
        *,
        currency: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        intent = await self._request(
            "POST", "payment_intents", failure="Failed to create payment intent",
            params={
                "amount": amount,
                "currency": currency or self.currency,
                "customer": customer_id,
                "automatic_payment_methods": {"enabled": True},
                "metadata": metadata or {},
            },
        )
        logger.info("Created payment intent %s for customer %s", intent.get("id"), customer_id)
        return intent

    async def create_billing_portal_session(self, customer_id: str, return_url: str) -> str:
        session = await self._request(
            "POST", "billing_portal/sessions",
            failure="Failed to create billing portal session",
            params={"customer": customer_id, "return_url": return_url},
        )
        return session["url"]

    async def get_invoice_pdf(self, invoice_id: str) -> str | None:
        try:
            invoice = await self._request("GET", f"invoices/{invoice_id}", failure="Failed to get invoice")
        except ExternalServiceError as e:
            logger.error("Failed to get invoice PDF for %s: %s", invoice_id, e)
            return None
        return invoice.get("invoice_pdf") or None

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def construct_event(
        self,
        payload: bytes,
        sig_header: str | None,
        *,
        tolerance: int = SIGNATURE_TOLERANCE_SECONDS,
        now: float | None = None,
    ) -> dict[str, Any]:
        """Verify ``Stripe-Signature`` and decode the event. Raises WebhookSignatureError."""
        if not self._webhook_secret:
            raise WebhookSignatureError("Stripe webhook secret not configured")
        if not sig_header:
            raise WebhookSignatureError("Missing Stripe-Signature header")

        timestamp, signatures = parse_signature_header(sig_header)
        if timestamp is None or not signatures:
            raise WebhookSignatureError("Malformed Stripe-Signature header")

        expected = compute_signature(self._webhook_secret, timestamp, payload)
        if not any(_digest_equals(expected, s) for s in signatures):
            raise WebhookSignatureError()

        current = time.time() if now is None else now
        if abs(current - timestamp) > tolerance:
            raise WebhookSignatureError("Timestamp outside the tolerance zone")

        try:
            event = json.loads(payload)
        except ValueError as e:
            raise WebhookSignatureError("Webhook payload is not valid JSON") from e
        if not isinstance(event, dict) or "type" not in event:
            raise WebhookSignatureError("Webhook payload is not a Stripe event")
        return event
