"""API router for checkout and payment webhooks."""

from typing import Annotated

from fastapi import APIRouter, Header, Request, status

from dripcourse.core.context import set_enrollment_id
from dripcourse.core.logging import get_logger
from dripcourse.enrollments.dependencies import SchedulerDep
from dripcourse.enrollments.schemas import CheckoutRequest, CheckoutResponse

from .dependencies import PaymentGatewayDep, PaymentHandlerDep


logger = get_logger(__name__)

router = APIRouter(prefix="/v1", tags=["payments"])


@router.post(
    "/checkout/sessions",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start checkout for a plan",
)
async def create_checkout_session(
    data: CheckoutRequest,
    scheduler: SchedulerDep,
    gateway: PaymentGatewayDep,
) -> CheckoutResponse:
    """Create (or reuse) the pending enrollment and a Stripe checkout session."""
    enrollment = await scheduler.create_pending(data.email, data.plan)
    set_enrollment_id(enrollment.enrollment_id)

    session = await gateway.create_checkout_session(enrollment)
    return CheckoutResponse(
        session_id=session.session_id,
        url=session.url,
        enrollment_id=enrollment.enrollment_id,
    )


@router.post(
    "/payments/webhook",
    summary="Stripe webhook",
)
async def payment_webhook(
    request: Request,
    gateway: PaymentGatewayDep,
    handler: PaymentHandlerDep,
    stripe_signature: Annotated[str | None, Header()] = None,
) -> dict[str, bool | str]:
    """Verify and apply a payment event.

    Events are acknowledged unless the store failed, in which case the
    error response makes the provider redeliver.
    """
    payload = await request.body()
    event = gateway.parse_webhook(payload, stripe_signature)
    outcome = await handler.handle(event)

    logger.info(
        "payment_webhook_processed",
        event_type=event.raw_type,
        outcome=outcome.value,
    )
    return {"received": True, "outcome": outcome.value}
