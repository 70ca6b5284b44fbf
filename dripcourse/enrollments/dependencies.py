"""Dependency injection for enrollment endpoints.

Services are built once in the application lifespan and stored on
`app.state`; these helpers hand them to route handlers.
"""

import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Query, Request, status

from dripcourse.config import Settings, get_settings

from .access import AccessGate
from .scheduler import UnlockScheduler
from .security import extract_bearer_token


def _from_state(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not available",
        )
    return service


def get_scheduler(request: Request) -> UnlockScheduler:
    """Get UnlockScheduler from app state."""
    return _from_state(request, "scheduler")


def get_access_gate(request: Request) -> AccessGate:
    """Get AccessGate from app state."""
    return _from_state(request, "access_gate")


SchedulerDep = Annotated[UnlockScheduler, Depends(get_scheduler)]
AccessGateDep = Annotated[AccessGate, Depends(get_access_gate)]


def get_access_token(
    authorization: Annotated[str | None, Header()] = None,
    token: Annotated[str | None, Query(description="Portal link token")] = None,
) -> str | None:
    """Access token from the Authorization header, else the `token` query.

    Portal links carry the token as a query parameter.
    """
    return extract_bearer_token(authorization) or token


AccessToken = Annotated[str | None, Depends(get_access_token)]


async def verify_master_api_key(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> str:
    """Verify X-API-Key header against the master API key.

    Raises:
        HTTPException(401): If API key is missing
        HTTPException(403): If API key is invalid
        HTTPException(503): If API key is not configured
    """
    api_key = request.headers.get("X-API-Key")

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API Key required",
        )

    if not settings.master_api_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="API Key authentication not configured",
        )

    # Timing-safe comparison to prevent timing attacks
    if not secrets.compare_digest(
        api_key.encode(), settings.master_api_key.encode()
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API Key",
        )

    return api_key


MasterApiKey = Annotated[str, Depends(verify_master_api_key)]
