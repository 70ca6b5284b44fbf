"""Stripe integration: checkout sessions and webhook verification."""

import asyncio
from dataclasses import dataclass

import orjson
import stripe

from dripcourse.core.logging import get_logger
from dripcourse.enrollments.exceptions import DependencyError, EnrollmentError
from dripcourse.enrollments.models import Enrollment

from .events import PaymentEvent


logger = get_logger(__name__)


class WebhookError(EnrollmentError):
    """Webhook could not be verified or decoded."""

    def __init__(self, message: str = "Invalid webhook"):
        super().__init__(message, "invalid_webhook")


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str


class StripeGateway:
    """Thin wrapper over the Stripe API.

    The API key is passed per request so several gateways (tests, other
    accounts) can coexist in one process.
    """

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        price_ids: dict[str, str | None],
        frontend_url: str,
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.price_ids = price_ids
        self.frontend_url = frontend_url.rstrip("/")

    def price_id_for(self, plan: str) -> str | None:
        return self.price_ids.get(plan)

    async def create_checkout_session(self, enrollment: Enrollment) -> CheckoutSession:
        """Create a one-time payment checkout for a pending enrollment.

        Raises:
            DependencyError: No price for the plan, or Stripe rejected the call
        """
        price_id = self.price_id_for(enrollment.plan.value)
        if not price_id:
            logger.error("stripe_price_missing", plan=enrollment.plan.value)
            raise DependencyError("Checkout is not available for this plan")

        params = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "customer_email": enrollment.email,
            "success_url": (
                f"{self.frontend_url}/success.html?session_id={{CHECKOUT_SESSION_ID}}"
            ),
            "cancel_url": f"{self.frontend_url}/cancel",
            "metadata": {
                "enrollment_id": str(enrollment.enrollment_id),
                "plan": enrollment.plan.value,
            },
        }

        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create, api_key=self.secret_key, **params
            )
        except stripe.StripeError as e:
            logger.exception(
                "stripe_checkout_failed",
                enrollment_id=str(enrollment.enrollment_id),
                error=getattr(e, "user_message", None) or str(e),
            )
            raise DependencyError("Payment provider unavailable", retryable=True) from e

        logger.info(
            "stripe_checkout_created",
            enrollment_id=str(enrollment.enrollment_id),
            session_id=session.id,
        )
        return CheckoutSession(session_id=session.id, url=session.url)

    def parse_webhook(self, payload: bytes, signature: str | None) -> PaymentEvent:
        """Verify a webhook signature and decode the event.

        Raises:
            WebhookError: Missing or invalid signature, or undecodable payload
        """
        if not signature:
            raise WebhookError("Missing webhook signature")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.warning("stripe_webhook_payload_undecodable")
            raise WebhookError("Malformed webhook payload") from e

        try:
            stripe.WebhookSignature.verify_header(
                body, signature, self.webhook_secret
            )
        except stripe.SignatureVerificationError as e:
            logger.warning("stripe_webhook_signature_invalid")
            raise WebhookError("Invalid webhook signature") from e

        try:
            event = orjson.loads(payload)
        except orjson.JSONDecodeError as e:
            raise WebhookError("Malformed webhook payload") from e

        return PaymentEvent.from_stripe(event)
