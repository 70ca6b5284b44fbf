"""Dependency injection for payment endpoints."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .events import PaymentEventHandler
from .gateway import StripeGateway


def get_payment_gateway(request: Request) -> StripeGateway:
    """Get StripeGateway from app state (503 when Stripe is not configured)."""
    gateway = getattr(request.app.state, "payment_gateway", None)
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payments are not configured",
        )
    return gateway


def get_payment_handler(request: Request) -> PaymentEventHandler:
    """Get PaymentEventHandler from app state."""
    handler = getattr(request.app.state, "payment_handler", None)
    if handler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not available",
        )
    return handler


PaymentGatewayDep = Annotated[StripeGateway, Depends(get_payment_gateway)]
PaymentHandlerDep = Annotated[PaymentEventHandler, Depends(get_payment_handler)]
