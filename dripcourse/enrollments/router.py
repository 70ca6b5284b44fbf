"""API router for portal access and enrollment operations.

Endpoints:
- /v1/access: token-gated enrollment view and progress
- /v1/admin: manual activation and unlock passes (X-API-Key)
"""

from uuid import UUID

from fastapi import APIRouter, status

from dripcourse.core.context import set_enrollment_id
from dripcourse.core.logging import get_logger

from .dependencies import AccessGateDep, AccessToken, MasterApiKey, SchedulerDep
from .schemas import (
    ActivateRequest,
    AdminEnrollmentResponse,
    EnrollmentView,
    ProgressSummary,
    RunUnlocksRequest,
    RunUnlocksResponse,
    UnlockTransition,
)


logger = get_logger(__name__)

router = APIRouter(prefix="/v1/access", tags=["access"])
admin_router = APIRouter(prefix="/v1/admin", tags=["admin"])


# ==============================================================================
# Portal Endpoints
# ==============================================================================


@router.get(
    "/verify",
    response_model=EnrollmentView,
    summary="Verify portal access token",
)
async def verify_access(token: AccessToken, gate: AccessGateDep) -> EnrollmentView:
    """Return the enrollment behind a valid access token."""
    return await gate.verify(token)


@router.get(
    "/progress",
    response_model=ProgressSummary,
    summary="Course progress for a portal token",
)
async def get_progress(token: AccessToken, gate: AccessGateDep) -> ProgressSummary:
    """Completed weeks, sessions and percentage for a valid access token."""
    return await gate.progress(token)


# ==============================================================================
# Admin Endpoints
# ==============================================================================


@admin_router.post(
    "/enrollments/{enrollment_id}/activate",
    response_model=AdminEnrollmentResponse,
    summary="Activate a pending enrollment (admin)",
)
async def activate_enrollment(
    enrollment_id: UUID,
    scheduler: SchedulerDep,
    _: MasterApiKey,
    data: ActivateRequest | None = None,
) -> AdminEnrollmentResponse:
    """Activate an enrollment whose payment was confirmed outside the webhook."""
    set_enrollment_id(enrollment_id)
    enrollment = await scheduler.activate(
        enrollment_id,
        payment_reference=data.payment_reference if data else None,
    )
    logger.info("enrollment_activated_manually", enrollment_id=str(enrollment_id))
    return AdminEnrollmentResponse.from_enrollment(enrollment)


@admin_router.post(
    "/unlocks/run",
    response_model=RunUnlocksResponse,
    status_code=status.HTTP_200_OK,
    summary="Run an unlock pass now (admin)",
)
async def run_unlocks(
    scheduler: SchedulerDep,
    _: MasterApiKey,
    data: RunUnlocksRequest | None = None,
) -> RunUnlocksResponse:
    """Unlock every due week. Safe to call at any time."""
    transitions = await scheduler.tick(data.now if data else None)
    return RunUnlocksResponse(
        unlocked=[
            UnlockTransition(enrollment_id=enrollment.enrollment_id, week=week)
            for enrollment, week in transitions
        ],
        count=len(transitions),
    )
