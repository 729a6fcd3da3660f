"""Subscription management over Stripe, mirrored onto the account record."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from backend.auth import require_auth
from backend.deps import get_services
from descgen.accounts.models import Account, SubscriptionStatus
from descgen.errors import ConflictError, NotFoundError
from descgen.plans import Plan, all_plans, plan_limits
from descgen.services import Services

logger = logging.getLogger(__name__)
router = APIRouter()


class CreateSubscriptionRequest(BaseModel):
    plan: Plan
    payment_method_id: str | None = None
    trial_days: int | None = Field(default=None, ge=1, le=90)
    coupon: str | None = None


class ChangePlanRequest(BaseModel):
    plan: Plan


class PortalRequest(BaseModel):
    return_url: str | None = None


def _plan_dict(plan: Plan) -> dict[str, Any]:
    limits = plan_limits(plan)
    data = limits.model_dump(mode="json", exclude={"plan", "features"})
    data["id"] = plan.value
    data["features"] = sorted(f.value for f in limits.features)
    return data


def _apply_subscription(account: Account, subscription: dict[str, Any], plan: Plan | None = None) -> None:
    account.stripe_subscription_id = subscription.get("id") or account.stripe_subscription_id
    account.subscription_status = SubscriptionStatus.from_stripe(subscription.get("status"))
    if plan is not None:
        account.plan = plan


def _require_subscription_id(account: Account) -> str:
    if not account.stripe_subscription_id:
        raise NotFoundError("No subscription found for this account")
    return account.stripe_subscription_id


@router.get("/subscriptions/plans")
async def list_plans():
    """Public plan catalogue."""
    return {"plans": [_plan_dict(p.plan) for p in all_plans()]}


@router.get("/subscriptions/current")
async def current_subscription(
    account: Account = Depends(require_auth),
    services: Services = Depends(get_services),
):
    stripe_subscription = None
    if services.stripe and account.stripe_subscription_id:
        stripe_subscription = await services.stripe.get_subscription(account.stripe_subscription_id)
    return {
        "plan": _plan_dict(account.plan),
        "status": account.subscription_status.value,
        "subscription_id": account.stripe_subscription_id,
        "cancel_at_period_end": bool(stripe_subscription and stripe_subscription.get("cancel_at_period_end")),
        "current_period_end": stripe_subscription.get("current_period_end") if stripe_subscription else None,
    }


@router.post("/subscriptions")
async def create_subscription(
    request: CreateSubscriptionRequest,
    account: Account = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Start a subscription; the client confirms payment with the returned secret."""
    stripe = services.require_stripe()
    if account.stripe_subscription_id and account.is_entitled:
        raise ConflictError("Account already has an active subscription")

    if not account.stripe_customer_id:
        customer = await stripe.create_customer(
            account.email, name=account.name, metadata={"account_id": account.id}
        )
        account.stripe_customer_id = customer["id"]
        services.accounts.update(account)

    subscription = await stripe.create_subscription(
        account.stripe_customer_id,
        request.plan,
        payment_method_id=request.payment_method_id,
        trial_days=request.trial_days,
        coupon=request.coupon,
        metadata={"account_id": account.id},
    )
    _apply_subscription(account, subscription, request.plan)
    services.accounts.update(account)

    intent = (subscription.get("latest_invoice") or {}).get("payment_intent") or {}
    return {
        "subscription_id": subscription.get("id"),
        "status": account.subscription_status.value,
        "plan": account.plan.value,
        "client_secret": intent.get("client_secret") if isinstance(intent, dict) else None,
    }


@router.put("/subscriptions")
async def change_plan(
    request: ChangePlanRequest,
    account: Account = Depends(require_auth),
    services: Services = Depends(get_services),
):
    subscription = await services.require_stripe().update_subscription(
        _require_subscription_id(account), plan=request.plan
    )
    _apply_subscription(account, subscription, request.plan)
    services.accounts.update(account)
    logger.info("Account %s changed plan to %s", account.id, request.plan.value)
    return {"plan": account.plan.value, "status": account.subscription_status.value}


@router.delete("/subscriptions")
async def cancel_subscription(
    at_period_end: bool = Query(default=True),
    account: Account = Depends(require_auth),
    services: Services = Depends(get_services),
):
    subscription = await services.require_stripe().cancel_subscription(
        _require_subscription_id(account), at_period_end=at_period_end
    )
    _apply_subscription(account, subscription)
    services.accounts.update(account)
    return {
        "status": account.subscription_status.value,
        "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
    }


@router.post("/subscriptions/resume")
async def resume_subscription(
    account: Account = Depends(require_auth),
    services: Services = Depends(get_services),
):
    subscription = await services.require_stripe().resume_subscription(_require_subscription_id(account))
    _apply_subscription(account, subscription)
    services.accounts.update(account)
    return {"status": account.subscription_status.value, "cancel_at_period_end": False}


@router.post("/subscriptions/portal")
async def billing_portal(
    request: PortalRequest,
    account: Account = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Stripe-hosted billing portal link."""
    if not account.stripe_customer_id:
        raise NotFoundError("No billing customer for this account")
    url = await services.require_stripe().create_billing_portal_session(
        account.stripe_customer_id,
        request.return_url or f"{services.settings.frontend_url}/billing",
    )
    return {"url": url}
