# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Enrollment state store.

The store is the single source of truth for enrollments. Every mutation is a
conditional write (Cassandra lightweight transaction) keyed by enrollment id,
and reports whether it was applied instead of raising, so callers decide how
to handle a lost race.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from dripcourse.core.logging import get_logger

from .models import Enrollment, EnrollmentStatus, Plan, WeekUnlock, normalize_email


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = get_logger(__name__)


class EnrollmentStore(Protocol):
    """Document store keyed by enrollment id, indexed by email and token."""

    async def get(self, enrollment_id: UUID) -> Enrollment | None: ...

    async def get_by_email(self, email: str) -> Enrollment | None: ...

    async def get_by_token(self, access_token: str) -> Enrollment | None: ...

    async def list_active(self) -> list[Enrollment]: ...

    async def insert_pending(self, enrollment: Enrollment) -> bool:
        """Insert a pending enrollment unless its email is already claimed."""
        ...

    async def update_pending_plan(
        self, enrollment_id: UUID, plan: Plan, updated_at: datetime
    ) -> bool:
        """Change the plan while the enrollment is still pending."""
        ...

    async def claim_token(self, access_token: str, enrollment_id: UUID) -> bool:
        """Reserve a token for an enrollment; False if already taken."""
        ...

    async def release_token(self, access_token: str) -> None: ...

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
        """Move pending -> active; False if the enrollment is no longer pending."""
        ...

    async def unlock_week(
        self, enrollment_id: UUID, week: int, updated_at: datetime
    ) -> bool:
        """Flip one schedule entry to unlocked and set current_week to it.

        Applied only while the entry is still locked on an active enrollment.
        """
        ...


class CassandraEnrollmentStore:
    """Enrollment store backed by Cassandra lightweight transactions."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        self._get_enrollment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments
            WHERE enrollment_id = ?
        """)

        self._get_by_email = self.session.prepare(f"""
            SELECT enrollment_id FROM {self.keyspace}.enrollments_by_email
            WHERE email = ?
        """)

        self._get_by_token = self.session.prepare(f"""
            SELECT enrollment_id FROM {self.keyspace}.enrollments_by_token
            WHERE access_token = ?
        """)

        self._list_by_status = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments
            WHERE status = ?
        """)

        self._insert_enrollment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments
            (enrollment_id, email, plan, status, current_week, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._delete_enrollment = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.enrollments
            WHERE enrollment_id = ?
            IF status = ?
        """)

        self._claim_email = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_email (email, enrollment_id)
            VALUES (?, ?)
            IF NOT EXISTS
        """)

        self._update_plan = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET plan = ?, updated_at = ?
            WHERE enrollment_id = ?
            IF status = ?
        """)

        self._claim_token = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_token (access_token, enrollment_id)
            VALUES (?, ?)
            IF NOT EXISTS
        """)

        self._release_token = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.enrollments_by_token
            WHERE access_token = ?
            IF EXISTS
        """)

        self._activate = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET status = ?, enrollment_date = ?, current_week = ?,
                week_unlock_at = ?, week_unlocked = ?, access_token = ?,
                payment_reference = ?, payment_customer_id = ?, paid_at = ?,
                updated_at = ?
            WHERE enrollment_id = ?
            IF status = ?
        """)

        self._unlock_week = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET week_unlocked[?] = true, current_week = ?, updated_at = ?
            WHERE enrollment_id = ?
            IF status = ? AND week_unlocked[?] = false
        """)

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        result = await self.session.aexecute(self._get_enrollment, [enrollment_id])
        row = result.one()
        return Enrollment.from_row(row) if row else None

    async def get_by_email(self, email: str) -> Enrollment | None:
        result = await self.session.aexecute(
            self._get_by_email, [normalize_email(email)]
        )
        row = result.one()
        if not row:
            return None
        return await self.get(row.enrollment_id)

    async def get_by_token(self, access_token: str) -> Enrollment | None:
        result = await self.session.aexecute(self._get_by_token, [access_token])
        row = result.one()
        if not row:
            return None

        enrollment = await self.get(row.enrollment_id)
        # A reserved-but-unused token has no matching enrollment field
        if enrollment is None or enrollment.access_token != access_token:
            return None
        return enrollment

    async def list_active(self) -> list[Enrollment]:
        result = await self.session.aexecute(
            self._list_by_status, [EnrollmentStatus.ACTIVE.value]
        )
        return [Enrollment.from_row(row) for row in result]

    # ==========================================================================
    # Conditional writes
    # ==========================================================================

    async def insert_pending(self, enrollment: Enrollment) -> bool:
        """Insert the row, then claim the email; roll back the row on conflict."""
        inserted = await self.session.aexecute(
            self._insert_enrollment,
            [
                enrollment.enrollment_id,
                enrollment.email,
                enrollment.plan.value,
                EnrollmentStatus.PENDING.value,
                0,
                enrollment.created_at,
                enrollment.updated_at,
            ],
        )
        if not inserted.was_applied:
            return False

        claimed = await self.session.aexecute(
            self._claim_email, [enrollment.email, enrollment.enrollment_id]
        )
        if claimed.was_applied:
            return True

        await self.session.aexecute(
            self._delete_enrollment,
            [enrollment.enrollment_id, EnrollmentStatus.PENDING.value],
        )
        logger.debug(
            "enrollment_email_claim_lost",
            enrollment_id=str(enrollment.enrollment_id),
        )
        return False

    async def update_pending_plan(
        self, enrollment_id: UUID, plan: Plan, updated_at: datetime
    ) -> bool:
        result = await self.session.aexecute(
            self._update_plan,
            [plan.value, updated_at, enrollment_id, EnrollmentStatus.PENDING.value],
        )
        return result.was_applied

    async def claim_token(self, access_token: str, enrollment_id: UUID) -> bool:
        result = await self.session.aexecute(
            self._claim_token, [access_token, enrollment_id]
        )
        return result.was_applied

    async def release_token(self, access_token: str) -> None:
        await self.session.aexecute(self._release_token, [access_token])

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
        unlocked = [entry.week for entry in week_schedule if entry.unlocked]
        result = await self.session.aexecute(
            self._activate,
            [
                EnrollmentStatus.ACTIVE.value,
                enrollment_date,
                max(unlocked, default=0),
                {entry.week: entry.unlock_at for entry in week_schedule},
                {entry.week: entry.unlocked for entry in week_schedule},
                access_token,
                payment_reference,
                payment_customer_id,
                updated_at,
                updated_at,
                enrollment_id,
                EnrollmentStatus.PENDING.value,
            ],
        )
        return result.was_applied

    async def unlock_week(
        self, enrollment_id: UUID, week: int, updated_at: datetime
    ) -> bool:
        result = await self.session.aexecute(
            self._unlock_week,
            [
                week,
                week,
                updated_at,
                enrollment_id,
                EnrollmentStatus.ACTIVE.value,
                week,
            ],
        )
        return result.was_applied
