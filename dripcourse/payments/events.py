"""Payment events and their effect on enrollments.

The gateway turns a verified provider webhook into a `PaymentEvent`; the
handler applies it through the scheduler. Events that can never succeed
(unknown enrollment, missing metadata) are acknowledged so the provider
stops redelivering them. Store failures propagate so it retries.
"""

from enum import Enum
from typing import Any
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from dripcourse.core.context import set_enrollment_id
from dripcourse.core.logging import get_logger
from dripcourse.enrollments.exceptions import InvalidStateError, NotFoundError
from dripcourse.enrollments.scheduler import UnlockScheduler


logger = get_logger(__name__)


class PaymentEventType(str, Enum):
    CHECKOUT_COMPLETED = "checkout.session.completed"
    PAYMENT_FAILED = "payment_intent.payment_failed"
    UNKNOWN = "unknown"


class PaymentOutcome(str, Enum):
    """What handling an event did."""

    ACTIVATED = "activated"
    ALREADY_ACTIVE = "already_active"
    FAILURE_RECORDED = "failure_recorded"
    IGNORED = "ignored"


class PaymentEvent(BaseModel):
    """Provider-neutral view of a payment webhook."""

    event_id: str | None = Field(None, description="Provider event id")
    type: PaymentEventType
    raw_type: str = Field(..., description="Event type as sent by the provider")
    enrollment_id: UUID | None = Field(None, description="From checkout metadata")
    payment_reference: str | None = Field(None, description="Checkout session id")
    customer_id: str | None = Field(None, description="Provider customer id")
    failure_message: str | None = None

    @classmethod
    def from_stripe(cls, event: dict[str, Any]) -> "PaymentEvent":
        """Build from a decoded Stripe event payload."""
        raw_type = event.get("type") or ""
        try:
            event_type = PaymentEventType(raw_type)
        except ValueError:
            event_type = PaymentEventType.UNKNOWN

        obj = (event.get("data") or {}).get("object") or {}
        metadata = obj.get("metadata") or {}

        enrollment_id = None
        raw_enrollment_id = metadata.get("enrollment_id")
        if raw_enrollment_id:
            try:
                enrollment_id = UUID(str(raw_enrollment_id))
            except ValueError:
                logger.warning(
                    "payment_event_bad_enrollment_id", event_id=event.get("id")
                )

        failure_message = None
        if event_type == PaymentEventType.PAYMENT_FAILED:
            failure_message = (obj.get("last_payment_error") or {}).get("message")

        return cls(
            event_id=event.get("id"),
            type=event_type,
            raw_type=raw_type,
            enrollment_id=enrollment_id,
            payment_reference=obj.get("id"),
            customer_id=obj.get("customer"),
            failure_message=failure_message,
        )


class PaymentEventHandler:
    """Apply payment events to enrollments."""

    def __init__(self, scheduler: UnlockScheduler):
        self.scheduler = scheduler

    async def handle(self, event: PaymentEvent) -> PaymentOutcome:
        if event.enrollment_id is not None:
            set_enrollment_id(event.enrollment_id)

        log = logger.bind(event_id=event.event_id, event_type=event.raw_type)

        if event.type == PaymentEventType.CHECKOUT_COMPLETED:
            return await self._handle_checkout_completed(event, log)

        if event.type == PaymentEventType.PAYMENT_FAILED:
            # No state transition; the enrollment stays pending
            log.warning(
                "payment_failed",
                enrollment_id=str(event.enrollment_id) if event.enrollment_id else None,
                reason=event.failure_message,
            )
            return PaymentOutcome.FAILURE_RECORDED

        log.info("payment_event_unhandled")
        return PaymentOutcome.IGNORED

    async def _handle_checkout_completed(
        self, event: PaymentEvent, log: structlog.stdlib.BoundLogger
    ) -> PaymentOutcome:
        if event.enrollment_id is None:
            log.error("checkout_completed_missing_enrollment")
            return PaymentOutcome.IGNORED

        try:
            await self.scheduler.activate(
                event.enrollment_id,
                payment_reference=event.payment_reference,
                payment_customer_id=event.customer_id,
            )
        except NotFoundError:
            log.error(
                "checkout_completed_unknown_enrollment",
                enrollment_id=str(event.enrollment_id),
            )
            return PaymentOutcome.IGNORED
        except InvalidStateError:
            # Providers redeliver webhooks; the first delivery already activated
            log.info(
                "checkout_completed_duplicate",
                enrollment_id=str(event.enrollment_id),
            )
            return PaymentOutcome.ALREADY_ACTIVE

        log.info("payment_succeeded", enrollment_id=str(event.enrollment_id))
        return PaymentOutcome.ACTIVATED
