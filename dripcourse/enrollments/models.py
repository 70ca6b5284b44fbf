"""Enrollment models and Cassandra schema.

An enrollment tracks one customer's purchase and content-unlock progress:
- PENDING: checkout started, awaiting payment confirmation
- ACTIVE: paid; weekly schedule generated and access token issued
- CANCELLED: reserved for a future cancellation/refund flow
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4


if TYPE_CHECKING:
    from cassandra.cluster import Row


DEFAULT_TOTAL_WEEKS = 6
DEFAULT_UNLOCK_INTERVAL = timedelta(days=7)


class EnrollmentStatus(str, Enum):
    """Payment/access status of an enrollment."""

    PENDING = "pending"
    ACTIVE = "active"
    CANCELLED = "cancelled"


class Plan(str, Enum):
    """Product tiers sold at checkout."""

    INDIVIDUAL = "individual"
    COACHING = "coaching"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    enrollment_id UUID PRIMARY KEY,
    email TEXT,
    plan TEXT,
    status TEXT,
    enrollment_date TIMESTAMP,
    current_week INT,
    week_unlock_at MAP<INT, TIMESTAMP>,
    week_unlocked MAP<INT, BOOLEAN>,
    access_token TEXT,
    payment_reference TEXT,
    payment_customer_id TEXT,
    paid_at TIMESTAMP,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Lookup tables double as uniqueness claims (INSERT ... IF NOT EXISTS)
ENROLLMENTS_BY_EMAIL_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_email (
    email TEXT PRIMARY KEY,
    enrollment_id UUID
)
"""

ENROLLMENTS_BY_TOKEN_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_token (
    access_token TEXT PRIMARY KEY,
    enrollment_id UUID
)
"""

ENROLLMENTS_STATUS_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS ON {keyspace}.enrollments (status)
"""


ENROLLMENTS_TABLES_CQL = [
    ENROLLMENTS_TABLE_CQL,
    ENROLLMENTS_BY_EMAIL_TABLE_CQL,
    ENROLLMENTS_BY_TOKEN_TABLE_CQL,
    ENROLLMENTS_STATUS_INDEX_CQL,
]


def get_enrollments_tables_cql(keyspace: str) -> list[str]:
    """Get all CQL statements for enrollment tables."""
    return [cql.format(keyspace=keyspace) for cql in ENROLLMENTS_TABLES_CQL]


# ==============================================================================
# Entities
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def normalize_email(email: str) -> str:
    """Canonical form used for the one-enrollment-per-email rule."""
    return email.strip().lower()


@dataclass
class WeekUnlock:
    """One entry of an enrollment's unlock schedule."""

    week: int
    unlock_at: datetime
    unlocked: bool = False

    def is_due(self, now: datetime) -> bool:
        """Locked and its unlock time has passed."""
        return not self.unlocked and self.unlock_at <= now

    def to_dict(self) -> dict:
        return {
            "week": self.week,
            "unlock_at": self.unlock_at.isoformat(),
            "unlocked": self.unlocked,
        }


@dataclass
class Enrollment:
    """A customer's enrollment in the course."""

    email: str
    plan: Plan
    status: EnrollmentStatus = EnrollmentStatus.PENDING
    enrollment_id: UUID = field(default_factory=uuid4)
    enrollment_date: datetime | None = None
    current_week: int = 0
    week_schedule: list[WeekUnlock] = field(default_factory=list)
    access_token: str | None = None
    payment_reference: str | None = None
    payment_customer_id: str | None = None
    paid_at: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_row(cls, row: "Row") -> "Enrollment":
        """Create instance from Cassandra row."""
        unlock_at = row.week_unlock_at or {}
        unlocked = row.week_unlocked or {}
        schedule = [
            WeekUnlock(
                week=week,
                unlock_at=ensure_utc_aware(unlock_at[week]),
                unlocked=bool(unlocked.get(week, False)),
            )
            for week in sorted(unlock_at)
        ]
        return cls(
            enrollment_id=row.enrollment_id,
            email=row.email,
            plan=Plan(row.plan),
            status=EnrollmentStatus(row.status),
            enrollment_date=ensure_utc_aware(row.enrollment_date),
            current_week=row.current_week or 0,
            week_schedule=schedule,
            access_token=row.access_token,
            payment_reference=row.payment_reference,
            payment_customer_id=row.payment_customer_id,
            paid_at=ensure_utc_aware(row.paid_at),
            created_at=ensure_utc_aware(row.created_at) or datetime.now(UTC),
            updated_at=ensure_utc_aware(row.updated_at) or datetime.now(UTC),
        )

    @property
    def is_active(self) -> bool:
        return self.status == EnrollmentStatus.ACTIVE

    @property
    def unlocked_weeks(self) -> list[int]:
        return [entry.week for entry in self.week_schedule if entry.unlocked]

    def due_entries(self, now: datetime) -> list[WeekUnlock]:
        """Locked entries whose unlock time has passed, oldest first."""
        return [
            entry
            for entry in sorted(self.week_schedule, key=lambda e: e.week)
            if entry.is_due(now)
        ]

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization (token excluded)."""
        return {
            "enrollment_id": str(self.enrollment_id),
            "email": self.email,
            "plan": self.plan.value,
            "status": self.status.value,
            "enrollment_date": (
                self.enrollment_date.isoformat() if self.enrollment_date else None
            ),
            "current_week": self.current_week,
            "week_schedule": [entry.to_dict() for entry in self.week_schedule],
            "payment_reference": self.payment_reference,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


# ==============================================================================
# Factory Functions
# ==============================================================================


def build_week_schedule(
    activation_time: datetime,
    total_weeks: int = DEFAULT_TOTAL_WEEKS,
    interval: timedelta = DEFAULT_UNLOCK_INTERVAL,
) -> list[WeekUnlock]:
    """Compute the unlock schedule for an enrollment activated at a given time.

    Week 1 unlocks immediately; week i unlocks (i - 1) intervals later.
    """
    if total_weeks < 1:
        raise ValueError("total_weeks must be at least 1")
    if interval <= timedelta(0):
        raise ValueError("interval must be positive")

    activation_time = ensure_utc_aware(activation_time)
    return [
        WeekUnlock(
            week=index + 1,
            unlock_at=activation_time + index * interval,
            unlocked=index == 0,
        )
        for index in range(total_weeks)
    ]


def create_pending_enrollment(
    email: str,
    plan: Plan,
    now: datetime | None = None,
) -> Enrollment:
    """Create a new enrollment awaiting payment."""
    now = ensure_utc_aware(now) or datetime.now(UTC)
    return Enrollment(
        email=normalize_email(email),
        plan=plan,
        status=EnrollmentStatus.PENDING,
        created_at=now,
        updated_at=now,
    )
