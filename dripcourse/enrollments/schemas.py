"""Pydantic schemas for enrollments.

Request/Response models for:
- Starting a checkout
- Verifying portal access and reading progress
- Operational endpoints (manual activation, unlock runs)
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from .models import Enrollment, Plan, WeekUnlock


# ==============================================================================
# Request Schemas
# ==============================================================================


class CheckoutRequest(BaseModel):
    """Request to start a checkout for a plan."""

    email: EmailStr = Field(..., description="Customer email")
    plan: Plan = Field(..., description="Plan to purchase")


class ActivateRequest(BaseModel):
    """Manual activation of a pending enrollment."""

    payment_reference: str | None = Field(
        None, max_length=255, description="Payment provider reference"
    )


class RunUnlocksRequest(BaseModel):
    """Manual unlock pass."""

    now: datetime | None = Field(
        None, description="Evaluation time (defaults to the current time)"
    )


# ==============================================================================
# Response Schemas
# ==============================================================================


class WeekUnlockResponse(BaseModel):
    """One entry of the unlock schedule."""

    model_config = ConfigDict(from_attributes=True)

    week: int = Field(..., ge=1)
    unlock_at: datetime
    unlocked: bool

    @classmethod
    def from_entry(cls, entry: WeekUnlock) -> "WeekUnlockResponse":
        return cls(week=entry.week, unlock_at=entry.unlock_at, unlocked=entry.unlocked)


class EnrollmentView(BaseModel):
    """What a token holder may see about their enrollment."""

    email: str
    plan: Plan
    current_week: int = Field(..., description="Highest unlocked week")
    week_schedule: list[WeekUnlockResponse]
    enrollment_date: datetime | None = None

    @classmethod
    def from_enrollment(cls, enrollment: Enrollment) -> "EnrollmentView":
        return cls(
            email=enrollment.email,
            plan=enrollment.plan,
            current_week=enrollment.current_week,
            week_schedule=[
                WeekUnlockResponse.from_entry(e) for e in enrollment.week_schedule
            ],
            enrollment_date=enrollment.enrollment_date,
        )


class ProgressSummary(BaseModel):
    """Course progress derived from the unlock schedule."""

    current_week: int
    completed_weeks: int = Field(..., ge=0)
    total_sessions: int = Field(..., ge=0)
    progress_percentage: int = Field(..., ge=0, le=100)
    week_schedule: list[WeekUnlockResponse]


class CheckoutResponse(BaseModel):
    """Checkout session created for a pending enrollment."""

    session_id: str
    url: str
    enrollment_id: UUID


class AdminEnrollmentResponse(BaseModel):
    """Enrollment as seen by operators (no access token)."""

    enrollment_id: UUID
    email: str
    plan: Plan
    status: str
    current_week: int
    enrollment_date: datetime | None = None
    week_schedule: list[WeekUnlockResponse]

    @classmethod
    def from_enrollment(cls, enrollment: Enrollment) -> "AdminEnrollmentResponse":
        return cls(
            enrollment_id=enrollment.enrollment_id,
            email=enrollment.email,
            plan=enrollment.plan,
            status=enrollment.status.value,
            current_week=enrollment.current_week,
            enrollment_date=enrollment.enrollment_date,
            week_schedule=[
                WeekUnlockResponse.from_entry(e) for e in enrollment.week_schedule
            ],
        )


class UnlockTransition(BaseModel):
    """A week unlocked during a pass."""

    enrollment_id: UUID
    week: int


class RunUnlocksResponse(BaseModel):
    """Result of a manual unlock pass."""

    unlocked: list[UnlockTransition]
    count: int
