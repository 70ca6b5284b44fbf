"""Enrollments module.

Provides the enrollment state machine: pending checkout, activation on
payment, weekly content unlocks and token-gated portal access.
"""

from .access import AccessGate
from .exceptions import (
    ConflictError,
    DependencyError,
    EnrollmentError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)
from .memory_store import InMemoryEnrollmentStore
from .models import Enrollment, EnrollmentStatus, Plan, WeekUnlock
from .scheduler import UnlockScheduler
from .store import CassandraEnrollmentStore, EnrollmentStore
from .worker import UnlockWorker


__all__ = [
    "AccessGate",
    "CassandraEnrollmentStore",
    "ConflictError",
    "DependencyError",
    "Enrollment",
    "EnrollmentError",
    "EnrollmentStatus",
    "EnrollmentStore",
    "InMemoryEnrollmentStore",
    "InvalidStateError",
    "NotFoundError",
    "Plan",
    "UnauthorizedError",
    "UnlockScheduler",
    "UnlockWorker",
    "WeekUnlock",
]
