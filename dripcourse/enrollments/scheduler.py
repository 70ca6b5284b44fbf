"""Enrollment lifecycle and weekly content unlocks.

`UnlockScheduler` owns every state transition of an enrollment:
- create_pending: checkout started (one enrollment per email)
- activate: payment confirmed; schedule generated, token issued
- tick: periodic pass that unlocks every week whose time has come

All writes go through conditional store updates. The scheduler keeps no
enrollment state between calls and re-reads before each mutation, so any
number of request handlers and ticks may run at the same time.
"""

import asyncio
import copy
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import TypeVar
from uuid import UUID

from dripcourse.core.logging import get_logger
from dripcourse.notifications import NotificationDispatcher, NotificationKind

from .content import get_week_content
from .exceptions import (
    ConflictError,
    DependencyError,
    EnrollmentError,
    InvalidStateError,
    NotFoundError,
)
from .models import (
    DEFAULT_TOTAL_WEEKS,
    DEFAULT_UNLOCK_INTERVAL,
    Enrollment,
    EnrollmentStatus,
    Plan,
    build_week_schedule,
    create_pending_enrollment,
    ensure_utc_aware,
    normalize_email,
)
from .security import generate_access_token
from .store import EnrollmentStore


logger = get_logger(__name__)

T = TypeVar("T")


class UnlockScheduler:
    """Create, activate and advance enrollments."""

    def __init__(
        self,
        store: EnrollmentStore,
        dispatcher: NotificationDispatcher,
        *,
        total_weeks: int = DEFAULT_TOTAL_WEEKS,
        unlock_interval: timedelta = DEFAULT_UNLOCK_INTERVAL,
        store_timeout_seconds: float = 5.0,
        max_conflict_retries: int = 3,
        token_factory: Callable[[], str] = generate_access_token,
        max_token_attempts: int = 5,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.total_weeks = total_weeks
        self.unlock_interval = unlock_interval
        self.store_timeout_seconds = store_timeout_seconds
        self.max_conflict_retries = max_conflict_retries
        self.token_factory = token_factory
        self.max_token_attempts = max_token_attempts

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Run one store call under the store timeout.

        Raises:
            DependencyError: On timeout (retryable) or store failure
        """
        try:
            return await asyncio.wait_for(
                awaitable, timeout=self.store_timeout_seconds
            )
        except TimeoutError as e:
            logger.warning(
                "enrollment_store_timeout",
                operation=operation,
                timeout_seconds=self.store_timeout_seconds,
            )
            raise DependencyError(
                "Enrollment store did not respond in time", retryable=True
            ) from e
        except EnrollmentError:
            raise
        except Exception as e:
            logger.exception("enrollment_store_error", operation=operation)
            raise DependencyError() from e

    async def _with_conflict_retries(
        self, operation: str, attempt: Callable[[], Awaitable[T]]
    ) -> T:
        """Re-run an operation whose conditional write lost a race."""
        for attempt_number in range(1, self.max_conflict_retries + 2):
            try:
                return await attempt()
            except ConflictError:
                logger.info(
                    "enrollment_write_conflict",
                    operation=operation,
                    attempt=attempt_number,
                )

        logger.warning(
            "enrollment_conflict_retries_exhausted",
            operation=operation,
            retries=self.max_conflict_retries,
        )
        raise DependencyError(
            "Enrollment is being updated concurrently, try again", retryable=True
        )

    async def _notify(
        self, kind: NotificationKind, enrollment: Enrollment, context: dict
    ) -> bool:
        try:
            return await self.dispatcher.send(kind, enrollment, context)
        except Exception:
            # State is already committed; delivery problems are only reported
            logger.exception(
                "notification_dispatch_error",
                kind=kind.value,
                enrollment_id=str(enrollment.enrollment_id),
            )
            return False

    # ==========================================================================
    # Pending enrollments
    # ==========================================================================

    async def create_pending(
        self, email: str, plan: Plan, now: datetime | None = None
    ) -> Enrollment:
        """Create or update the pending enrollment for an email.

        Args:
            email: Customer email (normalized before use)
            plan: Chosen plan
            now: Creation time (defaults to current UTC time)

        Returns:
            The pending enrollment; an existing one keeps its id

        Raises:
            InvalidStateError: The email already has a paid enrollment
            DependencyError: Store failure or conflict retries exhausted
        """
        now = ensure_utc_aware(now) or datetime.now(UTC)
        email = normalize_email(email)
        return await self._with_conflict_retries(
            "create_pending", lambda: self._create_pending_once(email, plan, now)
        )

    async def _create_pending_once(
        self, email: str, plan: Plan, now: datetime
    ) -> Enrollment:
        existing = await self._call("get_by_email", self.store.get_by_email(email))

        if existing is None:
            enrollment = create_pending_enrollment(email, plan, now)
            inserted = await self._call(
                "insert_pending", self.store.insert_pending(enrollment)
            )
            if not inserted:
                raise ConflictError()

            logger.info(
                "enrollment_created",
                enrollment_id=str(enrollment.enrollment_id),
                plan=plan.value,
            )
            return enrollment

        if existing.status != EnrollmentStatus.PENDING:
            raise InvalidStateError(
                "An enrollment for this email has already been completed"
            )

        if existing.plan == plan:
            return existing

        updated = await self._call(
            "update_pending_plan",
            self.store.update_pending_plan(existing.enrollment_id, plan, now),
        )
        if not updated:
            raise ConflictError()

        logger.info(
            "enrollment_plan_updated",
            enrollment_id=str(existing.enrollment_id),
            plan=plan.value,
        )
        return replace(existing, plan=plan, updated_at=now)

    # ==========================================================================
    # Activation
    # ==========================================================================

    async def activate(
        self,
        enrollment_id: UUID,
        activation_time: datetime | None = None,
        payment_reference: str | None = None,
        payment_customer_id: str | None = None,
    ) -> Enrollment:
        """Activate a pending enrollment after payment.

        Generates the unlock schedule (week 1 unlocked), issues the access
        token and sends the welcome notification once the update is committed.

        Raises:
            NotFoundError: Unknown enrollment id
            InvalidStateError: Enrollment is not pending
            DependencyError: Store failure or conflict retries exhausted
        """
        activation_time = ensure_utc_aware(activation_time) or datetime.now(UTC)

        enrollment = await self._with_conflict_retries(
            "activate",
            lambda: self._activate_once(
                enrollment_id,
                activation_time,
                payment_reference,
                payment_customer_id,
            ),
        )

        await self._notify(NotificationKind.WELCOME, enrollment, {"week": 1})
        return enrollment

    async def _reserve_token(self, enrollment_id: UUID) -> str:
        for _ in range(self.max_token_attempts):
            token = self.token_factory()
            claimed = await self._call(
                "claim_token", self.store.claim_token(token, enrollment_id)
            )
            if claimed:
                return token
            logger.warning(
                "access_token_collision", enrollment_id=str(enrollment_id)
            )

        raise DependencyError("Could not allocate an access token")

    async def _release_token(self, token: str, enrollment_id: UUID) -> None:
        try:
            await self._call("release_token", self.store.release_token(token))
        except DependencyError:
            # An orphaned claim maps to no active enrollment and never verifies
            logger.warning(
                "access_token_release_failed", enrollment_id=str(enrollment_id)
            )

    async def _recover_activation(
        self, enrollment_id: UUID, token: str
    ) -> Enrollment | None:
        """Settle an activation write whose outcome is unknown.

        A timed-out conditional update may still have been applied by the
        store. The token claim is kept unless the enrollment is known not to
        carry it.

        Returns:
            The stored enrollment when the write was applied, else None
        """
        try:
            current = await self._call("get", self.store.get(enrollment_id))
        except DependencyError:
            logger.warning(
                "activation_outcome_unknown", enrollment_id=str(enrollment_id)
            )
            return None

        if (
            current is not None
            and current.is_active
            and current.access_token == token
        ):
            logger.info(
                "enrollment_activated",
                enrollment_id=str(enrollment_id),
                plan=current.plan.value,
                total_weeks=len(current.week_schedule),
                recovered=True,
            )
            return current

        await self._release_token(token, enrollment_id)
        if current is not None and current.is_active:
            raise ConflictError()
        return None

    async def _activate_once(
        self,
        enrollment_id: UUID,
        activation_time: datetime,
        payment_reference: str | None,
        payment_customer_id: str | None,
    ) -> Enrollment:
        enrollment = await self._call("get", self.store.get(enrollment_id))
        if enrollment is None:
            raise NotFoundError()
        if enrollment.status != EnrollmentStatus.PENDING:
            raise InvalidStateError(
                f"Enrollment is {enrollment.status.value}, expected pending"
            )

        schedule = build_week_schedule(
            activation_time, self.total_weeks, self.unlock_interval
        )
        token = await self._reserve_token(enrollment_id)

        try:
            applied = await self._call(
                "activate",
                self.store.activate(
                    enrollment_id,
                    access_token=token,
                    enrollment_date=activation_time,
                    week_schedule=schedule,
                    payment_reference=payment_reference,
                    payment_customer_id=payment_customer_id,
                    updated_at=activation_time,
                ),
            )
        except DependencyError:
            committed = await self._recover_activation(enrollment_id, token)
            if committed is None:
                raise
            return committed

        if not applied:
            await self._release_token(token, enrollment_id)
            raise ConflictError()

        activated = replace(
            enrollment,
            status=EnrollmentStatus.ACTIVE,
            enrollment_date=activation_time,
            current_week=1,
            week_schedule=schedule,
            access_token=token,
            payment_reference=payment_reference,
            payment_customer_id=payment_customer_id,
            paid_at=activation_time,
            updated_at=activation_time,
        )

        logger.info(
            "enrollment_activated",
            enrollment_id=str(enrollment_id),
            plan=activated.plan.value,
            total_weeks=len(schedule),
        )
        return activated

    # ==========================================================================
    # Periodic unlocks
    # ==========================================================================

    async def tick(self, now: datetime | None = None) -> list[tuple[Enrollment, int]]:
        """Unlock every week whose unlock time has passed.

        Safe to run repeatedly and concurrently: each week flips at most once
        and only the caller whose conditional update applied notifies.

        Args:
            now: Evaluation time (defaults to current UTC time)

        Returns:
            (enrollment, week) for each week unlocked by this pass
        """
        now = ensure_utc_aware(now) or datetime.now(UTC)
        candidates = await self._call("list_active", self.store.list_active())

        transitions: list[tuple[Enrollment, int]] = []
        failures = 0
        for candidate in candidates:
            if not candidate.due_entries(now):
                continue
            try:
                transitions.extend(await self._advance(candidate.enrollment_id, now))
            except Exception as e:
                failures += 1
                logger.exception(
                    "enrollment_unlock_failed",
                    enrollment_id=str(candidate.enrollment_id),
                    error=str(e),
                )

        logger.info(
            "unlock_tick_completed",
            scanned=len(candidates),
            unlocked=len(transitions),
            failures=failures,
            now=now.isoformat(),
        )
        return transitions

    async def _advance(
        self, enrollment_id: UUID, now: datetime
    ) -> list[tuple[Enrollment, int]]:
        enrollment = await self._call("get", self.store.get(enrollment_id))
        if enrollment is None or not enrollment.is_active:
            return []

        transitions = []
        for entry in enrollment.due_entries(now):
            applied = await self._call(
                "unlock_week", self.store.unlock_week(enrollment_id, entry.week, now)
            )
            if not applied:
                logger.debug(
                    "week_unlock_skipped",
                    enrollment_id=str(enrollment_id),
                    week=entry.week,
                )
                continue

            entry.unlocked = True
            enrollment.current_week = max(enrollment.current_week, entry.week)
            enrollment.updated_at = now
            snapshot = copy.deepcopy(enrollment)
            transitions.append((snapshot, entry.week))

            logger.info(
                "week_unlocked",
                enrollment_id=str(enrollment_id),
                week=entry.week,
                unlock_at=entry.unlock_at.isoformat(),
            )
            await self._notify(
                NotificationKind.WEEK_UNLOCK,
                snapshot,
                {"week": entry.week, "title": get_week_content(entry.week).title},
            )

        return transitions
