"""Account record: login identity, subscription mirror, Shopify credentials."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from descgen.jobs.models import utcnow
from descgen.plans import Plan


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    UNPAID = "unpaid"

    @classmethod
    def from_stripe(cls, value: str | None) -> SubscriptionStatus:
        """Map a Stripe subscription status; unknown values count as inactive."""
        if value == "incomplete_expired":
            return cls.CANCELED
        try:
            return cls(value)
        except ValueError:
            return cls.INACTIVE


ENTITLED_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)


def new_account_id() -> str:
    return f"acct_{uuid.uuid4().hex[:16]}"


class Account(BaseModel):
    id: str = Field(default_factory=new_account_id)
    email: str
    password_hash: str = ""
    name: str | None = None

    # Mirror of Stripe state; written by webhooks and plan-change calls
    plan: Plan = Plan.BASIC
    subscription_status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None

    shop_domain: str | None = None
    shop_access_token: str | None = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_entitled(self) -> bool:
        return self.subscription_status in ENTITLED_STATUSES

    @property
    def has_store(self) -> bool:
        return bool(self.shop_domain and self.shop_access_token)

    def public_dict(self) -> dict:
        """Account fields safe to return to the owner (no secrets)."""
        return self.model_dump(
            mode="json", exclude={"password_hash", "shop_access_token"}
        ) | {"store_connected": self.has_store}
