"""Payments module: Stripe checkout and webhook handling."""

from .events import PaymentEvent, PaymentEventHandler, PaymentEventType, PaymentOutcome
from .gateway import CheckoutSession, StripeGateway, WebhookError


__all__ = [
    "CheckoutSession",
    "PaymentEvent",
    "PaymentEventHandler",
    "PaymentEventType",
    "PaymentOutcome",
    "StripeGateway",
    "WebhookError",
]
