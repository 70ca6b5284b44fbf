"""In-process enrollment store with the same conditional-write semantics.

Used for local development (`ENROLLMENT_STORE_BACKEND=memory`) and tests.
Each operation yields to the event loop once, like a network round trip, and
then performs its check-and-set without awaiting, so it is atomic with
respect to other coroutines. Records are copied in and out; callers never
hold a reference to stored state.
"""

import asyncio
import copy
from dataclasses import replace
from datetime import datetime
from uuid import UUID

from .models import Enrollment, EnrollmentStatus, Plan, WeekUnlock, normalize_email


class InMemoryEnrollmentStore:
    """Dict-backed enrollment store."""

    def __init__(self) -> None:
        self._enrollments: dict[UUID, Enrollment] = {}
        self._by_email: dict[str, UUID] = {}
        self._by_token: dict[str, UUID] = {}

    async def _round_trip(self) -> None:
        await asyncio.sleep(0)

    def _copy(self, enrollment: Enrollment | None) -> Enrollment | None:
        return copy.deepcopy(enrollment) if enrollment is not None else None

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        await self._round_trip()
        return self._copy(self._enrollments.get(enrollment_id))

    async def get_by_email(self, email: str) -> Enrollment | None:
        await self._round_trip()
        enrollment_id = self._by_email.get(normalize_email(email))
        if enrollment_id is None:
            return None
        return self._copy(self._enrollments.get(enrollment_id))

    async def get_by_token(self, access_token: str) -> Enrollment | None:
        await self._round_trip()
        enrollment_id = self._by_token.get(access_token)
        enrollment = self._enrollments.get(enrollment_id) if enrollment_id else None
        if enrollment is None or enrollment.access_token != access_token:
            return None
        return self._copy(enrollment)

    async def list_active(self) -> list[Enrollment]:
        await self._round_trip()
        return [
            self._copy(enrollment)
            for enrollment in self._enrollments.values()
            if enrollment.status == EnrollmentStatus.ACTIVE
        ]

    async def insert_pending(self, enrollment: Enrollment) -> bool:
        await self._round_trip()
        if (
            enrollment.email in self._by_email
            or enrollment.enrollment_id in self._enrollments
        ):
            return False
        self._enrollments[enrollment.enrollment_id] = replace(
            copy.deepcopy(enrollment), status=EnrollmentStatus.PENDING
        )
        self._by_email[enrollment.email] = enrollment.enrollment_id
        return True

    async def update_pending_plan(
        self, enrollment_id: UUID, plan: Plan, updated_at: datetime
    ) -> bool:
        await self._round_trip()
        enrollment = self._enrollments.get(enrollment_id)
        if enrollment is None or enrollment.status != EnrollmentStatus.PENDING:
            return False
        enrollment.plan = plan
        enrollment.updated_at = updated_at
        return True

    async def claim_token(self, access_token: str, enrollment_id: UUID) -> bool:
        await self._round_trip()
        if access_token in self._by_token:
            return False
        self._by_token[access_token] = enrollment_id
        return True

    async def release_token(self, access_token: str) -> None:
        await self._round_trip()
        self._by_token.pop(access_token, None)

    async def activate(
        self,
        enrollment_id: UUID,
        *,
        access_token: str,
        enrollment_date: datetime,
        week_schedule: list[WeekUnlock],
        payment_reference: str | None,
        payment_customer_id: str | None,
        updated_at: datetime,
    ) -> bool:
        await self._round_trip()
        enrollment = self._enrollments.get(enrollment_id)
        if enrollment is None or enrollment.status != EnrollmentStatus.PENDING:
            return False

        enrollment.status = EnrollmentStatus.ACTIVE
        enrollment.enrollment_date = enrollment_date
        enrollment.week_schedule = copy.deepcopy(week_schedule)
        enrollment.current_week = max(
            (entry.week for entry in week_schedule if entry.unlocked), default=0
        )
        enrollment.access_token = access_token
        enrollment.payment_reference = payment_reference
        enrollment.payment_customer_id = payment_customer_id
        enrollment.paid_at = updated_at
        enrollment.updated_at = updated_at
        return True

    async def unlock_week(
        self, enrollment_id: UUID, week: int, updated_at: datetime
    ) -> bool:
        await self._round_trip()
        enrollment = self._enrollments.get(enrollment_id)
        if enrollment is None or enrollment.status != EnrollmentStatus.ACTIVE:
            return False

        entry = next((e for e in enrollment.week_schedule if e.week == week), None)
        if entry is None or entry.unlocked:
            return False

        entry.unlocked = True
        enrollment.current_week = week
        enrollment.updated_at = updated_at
        return True
