"""Shared fixtures.

The environment is fixed before the application module is imported: the
in-memory store, no Redis, no email, no background worker and no log files.
"""

import os
from collections.abc import Iterator
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest


os.environ.update(
    {
        "ENVIRONMENT": "testing",
        "ENROLLMENT_STORE_BACKEND": "memory",
        "REDIS_ENABLED": "false",
        "EMAIL_ENABLED": "false",
        "UNLOCK_WORKER_ENABLED": "false",
        "LOG_TO_FILE": "false",
        "LOG_LEVEL": "WARNING",
        "MASTER_API_KEY": "test-master-key",
        "STRIPE_SECRET_KEY": "sk_test_dripcourse",
        "STRIPE_WEBHOOK_SECRET": "whsec_test_dripcourse",
        "STRIPE_PRICE_INDIVIDUAL": "price_individual",
        "STRIPE_PRICE_COACHING": "price_coaching",
    }
)

from fastapi.testclient import TestClient  # noqa: E402

from dripcourse.enrollments.memory_store import InMemoryEnrollmentStore  # noqa: E402
from dripcourse.enrollments.scheduler import UnlockScheduler  # noqa: E402


# Monday 09:00 UTC
ACTIVATION_TIME = datetime(2026, 1, 5, 9, 0, tzinfo=UTC)


@pytest.fixture
def activation_time() -> datetime:
    return ACTIVATION_TIME


@pytest.fixture
def store() -> InMemoryEnrollmentStore:
    return InMemoryEnrollmentStore()


@pytest.fixture
def dispatcher() -> AsyncMock:
    """Notification dispatcher that records calls and always succeeds."""
    mock = AsyncMock()
    mock.send = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def scheduler(store, dispatcher) -> UnlockScheduler:
    return UnlockScheduler(store, dispatcher, store_timeout_seconds=1.0)


@pytest.fixture
def client() -> Iterator[TestClient]:
    """Test client with the application lifespan running."""
    from dripcourse.main import create_app

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
