"""Token-gated read access to an enrollment."""

import asyncio
from decimal import ROUND_HALF_UP, Decimal

from dripcourse.core.logging import get_logger

from .exceptions import DependencyError, UnauthorizedError
from .models import DEFAULT_TOTAL_WEEKS, Enrollment
from .schemas import EnrollmentView, ProgressSummary, WeekUnlockResponse
from .store import EnrollmentStore


logger = get_logger(__name__)

DEFAULT_SESSIONS_PER_WEEK = 3


def progress_percentage(completed_weeks: int, total_weeks: int) -> int:
    """Percentage of weeks completed, rounded half up."""
    if total_weeks <= 0:
        return 0
    ratio = Decimal(completed_weeks * 100) / Decimal(total_weeks)
    return int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP))


class AccessGate:
    """Resolve portal tokens to active enrollments."""

    def __init__(
        self,
        store: EnrollmentStore,
        *,
        total_weeks: int = DEFAULT_TOTAL_WEEKS,
        sessions_per_week: int = DEFAULT_SESSIONS_PER_WEEK,
        store_timeout_seconds: float = 5.0,
    ):
        self.store = store
        self.total_weeks = total_weeks
        self.sessions_per_week = sessions_per_week
        self.store_timeout_seconds = store_timeout_seconds

    async def _resolve(self, token: str | None) -> Enrollment:
        if not token:
            raise UnauthorizedError("Access token required")

        try:
            enrollment = await asyncio.wait_for(
                self.store.get_by_token(token), timeout=self.store_timeout_seconds
            )
        except TimeoutError as e:
            logger.warning("access_lookup_timeout")
            raise DependencyError(
                "Enrollment store did not respond in time", retryable=True
            ) from e
        except Exception as e:
            logger.exception("access_lookup_failed")
            raise DependencyError() from e

        # Exact match is enforced by the token index; inactive records never verify
        if enrollment is None or not enrollment.is_active:
            logger.info("access_denied")
            raise UnauthorizedError()

        return enrollment

    async def verify(self, token: str | None) -> EnrollmentView:
        """Return the enrollment view for a valid token.

        Raises:
            UnauthorizedError: Token missing, unknown, or not active
        """
        enrollment = await self._resolve(token)
        return EnrollmentView.from_enrollment(enrollment)

    async def progress(self, token: str | None) -> ProgressSummary:
        """Completed weeks and sessions for a valid token.

        The current week counts as in progress, so completion trails the
        number of unlocked weeks by one.
        """
        enrollment = await self._resolve(token)

        unlocked = len(enrollment.unlocked_weeks)
        completed_weeks = max(unlocked - 1, 0)
        return ProgressSummary(
            current_week=enrollment.current_week,
            completed_weeks=completed_weeks,
            total_sessions=completed_weeks * self.sessions_per_week,
            progress_percentage=progress_percentage(completed_weeks, self.total_weeks),
            week_schedule=[
                WeekUnlockResponse.from_entry(e) for e in enrollment.week_schedule
            ],
        )
