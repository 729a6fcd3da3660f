"""Apply verified Stripe events to the local subscription mirror on Account."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from descgen.accounts.models import Account, SubscriptionStatus
from descgen.accounts.store import AccountStore
from descgen.plans import Plan

logger = logging.getLogger(__name__)

SUBSCRIPTION_CHANGED = ("customer.subscription.created", "customer.subscription.updated")
SUBSCRIPTION_DELETED = "customer.subscription.deleted"
PAYMENT_FAILED = "invoice.payment_failed"
PAYMENT_SUCCEEDED = "invoice.payment_succeeded"

HANDLED_EVENTS = (*SUBSCRIPTION_CHANGED, SUBSCRIPTION_DELETED, PAYMENT_FAILED, PAYMENT_SUCCEEDED)


def _first_price_id(subscription: dict[str, Any]) -> str | None:
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        return None
    return (items[0].get("price") or {}).get("id")


class SubscriptionSync:
    """Webhook-driven mirror updates. Events are assumed already signature-verified."""

    def __init__(self, accounts: AccountStore, plan_for_price: Callable[[str | None], Plan | None]):
        self._accounts = accounts
        self._plan_for_price = plan_for_price

    def apply_event(self, event: dict[str, Any]) -> Account | None:
        """Update the mirror for *event*; returns the changed account or None if ignored."""
        event_type = event.get("type", "")
        if event_type not in HANDLED_EVENTS:
            logger.info("Unhandled Stripe event type: %s", event_type)
            return None

        obj = (event.get("data") or {}).get("object") or {}
        customer_id = obj.get("customer")
        if isinstance(customer_id, dict):
            customer_id = customer_id.get("id")
        account = self._accounts.get_by_customer_id(customer_id) if customer_id else None
        if account is None:
            logger.warning("Stripe event %s for unknown customer %s", event_type, customer_id)
            return None

        if event_type in SUBSCRIPTION_CHANGED:
            plan = self._plan_for_price(_first_price_id(obj))
            if plan is not None:
                account.plan = plan
            account.subscription_status = SubscriptionStatus.from_stripe(obj.get("status"))
            account.stripe_subscription_id = obj.get("id") or account.stripe_subscription_id
        elif event_type == SUBSCRIPTION_DELETED:
            account.subscription_status = SubscriptionStatus.CANCELED
        elif event_type == PAYMENT_FAILED:
            account.subscription_status = SubscriptionStatus.PAST_DUE
        elif event_type == PAYMENT_SUCCEEDED:
            account.subscription_status = SubscriptionStatus.ACTIVE

        self._accounts.update(account)
        logger.info(
            "Account %s subscription now %s/%s after %s",
            account.id, account.plan.value, account.subscription_status.value, event_type,
        )
        return account
