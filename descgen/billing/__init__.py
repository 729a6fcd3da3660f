"""Stripe billing client and subscription mirror sync."""

from descgen.billing.stripe_client import StripeClient, compute_signature, encode_form
from descgen.billing.sync import HANDLED_EVENTS, SubscriptionSync

__all__ = [
    "HANDLED_EVENTS",
    "StripeClient",
    "SubscriptionSync",
    "compute_signature",
    "encode_form",
]
