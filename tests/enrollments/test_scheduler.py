"""Tests for UnlockScheduler.

Covers:
- create_pending (insert, plan update, already paid)
- activate (schedule, token, welcome notification, races)
- tick (due weeks, catch-up, idempotence, concurrent passes)
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from dripcourse.enrollments.access import AccessGate
from dripcourse.enrollments.exceptions import (
    DependencyError,
    InvalidStateError,
    NotFoundError,
)
from dripcourse.enrollments.memory_store import InMemoryEnrollmentStore
from dripcourse.enrollments.models import EnrollmentStatus, Plan
from dripcourse.enrollments.scheduler import UnlockScheduler
from dripcourse.notifications import NotificationKind


def week_unlock_calls(dispatcher: AsyncMock) -> list[int]:
    """Weeks announced through the dispatcher, in call order."""
    return [
        call.args[2]["week"]
        for call in dispatcher.send.call_args_list
        if call.args[0] == NotificationKind.WEEK_UNLOCK
    ]


async def activated(scheduler: UnlockScheduler, activation_time, email="ana@example.com"):
    pending = await scheduler.create_pending(email, Plan.INDIVIDUAL, now=activation_time)
    return await scheduler.activate(pending.enrollment_id, activation_time)


class TestCreatePending:
    """Tests for create_pending."""

    @pytest.mark.asyncio
    async def test_creates_pending_enrollment(self, scheduler, store) -> None:
        enrollment = await scheduler.create_pending("Ana@Example.com ", Plan.INDIVIDUAL)

        assert enrollment.status == EnrollmentStatus.PENDING
        assert enrollment.email == "ana@example.com"
        assert enrollment.current_week == 0
        assert enrollment.access_token is None

        stored = await store.get(enrollment.enrollment_id)
        assert stored is not None
        assert stored.plan == Plan.INDIVIDUAL

    @pytest.mark.asyncio
    async def test_same_email_keeps_id_and_updates_plan(self, scheduler, store) -> None:
        first = await scheduler.create_pending("ana@example.com", Plan.INDIVIDUAL)
        second = await scheduler.create_pending("ANA@example.com", Plan.COACHING)

        assert second.enrollment_id == first.enrollment_id
        assert second.plan == Plan.COACHING
        stored = await store.get(first.enrollment_id)
        assert stored.plan == Plan.COACHING

    @pytest.mark.asyncio
    async def test_active_enrollment_is_not_reset(
        self, scheduler, activation_time
    ) -> None:
        await activated(scheduler, activation_time)

        with pytest.raises(InvalidStateError):
            await scheduler.create_pending("ana@example.com", Plan.COACHING)

    @pytest.mark.asyncio
    async def test_concurrent_creates_share_one_enrollment(self, scheduler) -> None:
        results = await asyncio.gather(
            *(
                scheduler.create_pending("ana@example.com", Plan.INDIVIDUAL)
                for _ in range(3)
            )
        )

        assert len({r.enrollment_id for r in results}) == 1

    @pytest.mark.asyncio
    async def test_lost_updates_exhaust_retries(self, dispatcher) -> None:
        class LosingStore(InMemoryEnrollmentStore):
            attempts = 0

            async def update_pending_plan(self, enrollment_id, plan, updated_at):
                self.attempts += 1
                return False

        store = LosingStore()
        scheduler = UnlockScheduler(store, dispatcher, max_conflict_retries=2)
        await scheduler.create_pending("ana@example.com", Plan.INDIVIDUAL)

        with pytest.raises(DependencyError) as exc_info:
            await scheduler.create_pending("ana@example.com", Plan.COACHING)

        assert exc_info.value.retryable is True
        assert store.attempts == 3

    @pytest.mark.asyncio
    async def test_store_timeout_is_retryable(self, dispatcher) -> None:
        class SlowStore(InMemoryEnrollmentStore):
            async def get_by_email(self, email):
                await asyncio.sleep(1)

        scheduler = UnlockScheduler(
            SlowStore(), dispatcher, store_timeout_seconds=0.01
        )

        with pytest.raises(DependencyError) as exc_info:
            await scheduler.create_pending("ana@example.com", Plan.INDIVIDUAL)

        assert exc_info.value.retryable is True


class TestActivate:
    """Tests for activate."""

    @pytest.mark.asyncio
    async def test_schedule_is_generated_from_activation_time(
        self, scheduler, activation_time
    ) -> None:
        enrollment = await activated(scheduler, activation_time)

        assert enrollment.status == EnrollmentStatus.ACTIVE
        assert enrollment.enrollment_date == activation_time
        assert enrollment.current_week == 1
        assert [e.week for e in enrollment.week_schedule] == [1, 2, 3, 4, 5, 6]
        assert [e.unlock_at for e in enrollment.week_schedule] == [
            activation_time + timedelta(days=7 * i) for i in range(6)
        ]
        assert enrollment.unlocked_weeks == [1]

    @pytest.mark.asyncio
    async def test_state_is_persisted(self, scheduler, store, activation_time) -> None:
        enrollment = await activated(scheduler, activation_time)

        stored = await store.get(enrollment.enrollment_id)
        assert stored.status == EnrollmentStatus.ACTIVE
        assert stored.current_week == 1
        assert stored.access_token == enrollment.access_token
        assert stored.unlocked_weeks == [1]
        assert await store.get_by_token(enrollment.access_token) is not None

    @pytest.mark.asyncio
    async def test_token_is_url_safe_and_long(self, scheduler, activation_time) -> None:
        enrollment = await activated(scheduler, activation_time)

        # 32 random bytes -> 43 url-safe base64 characters
        assert len(enrollment.access_token) >= 43
        assert all(c.isalnum() or c in "-_" for c in enrollment.access_token)

    @pytest.mark.asyncio
    async def test_sends_welcome_notification(
        self, scheduler, dispatcher, activation_time
    ) -> None:
        enrollment = await activated(scheduler, activation_time)

        dispatcher.send.assert_awaited_once()
        kind, notified, context = dispatcher.send.call_args.args
        assert kind == NotificationKind.WELCOME
        assert notified.access_token == enrollment.access_token
        assert context == {"week": 1}

    @pytest.mark.asyncio
    async def test_welcome_failure_keeps_activation(
        self, scheduler, store, dispatcher, activation_time
    ) -> None:
        dispatcher.send.side_effect = RuntimeError("smtp down")

        enrollment = await activated(scheduler, activation_time)

        stored = await store.get(enrollment.enrollment_id)
        assert stored.status == EnrollmentStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_unknown_enrollment(self, scheduler) -> None:
        with pytest.raises(NotFoundError):
            await scheduler.activate(uuid4())

    @pytest.mark.asyncio
    async def test_second_activation_is_rejected(
        self, scheduler, dispatcher, activation_time
    ) -> None:
        enrollment = await activated(scheduler, activation_time)

        with pytest.raises(InvalidStateError):
            await scheduler.activate(enrollment.enrollment_id)

        assert dispatcher.send.await_count == 1

    @pytest.mark.asyncio
    async def test_token_collision_draws_new_token(
        self, store, dispatcher, activation_time
    ) -> None:
        tokens = iter(["taken-token", "fresh-token"])
        scheduler = UnlockScheduler(store, dispatcher, token_factory=lambda: next(tokens))
        await store.claim_token("taken-token", uuid4())

        enrollment = await activated(scheduler, activation_time)

        assert enrollment.access_token == "fresh-token"

    @pytest.mark.asyncio
    async def test_lost_race_releases_token_and_retries(
        self, dispatcher, activation_time
    ) -> None:
        class RacyStore(InMemoryEnrollmentStore):
            lost_once = False

            async def activate(self, enrollment_id, **kwargs):
                if not self.lost_once:
                    self.lost_once = True
                    return False
                return await super().activate(enrollment_id, **kwargs)

        store = RacyStore()
        tokens = iter(["first-token", "second-token"])
        scheduler = UnlockScheduler(store, dispatcher, token_factory=lambda: next(tokens))

        enrollment = await activated(scheduler, activation_time)

        assert enrollment.access_token == "second-token"
        assert await store.get_by_token("first-token") is None
        assert "first-token" not in store._by_token

    @pytest.mark.asyncio
    async def test_losing_to_another_activation_is_invalid_state(
        self, dispatcher, activation_time
    ) -> None:
        class ConcurrentWinnerStore(InMemoryEnrollmentStore):
            async def activate(self, enrollment_id, **kwargs):
                # Another worker activates first with its own token
                await self.claim_token("winner-token", enrollment_id)
                await super().activate(
                    enrollment_id, **{**kwargs, "access_token": "winner-token"}
                )
                return False

        store = ConcurrentWinnerStore()
        scheduler = UnlockScheduler(store, dispatcher)
        pending = await scheduler.create_pending("ana@example.com", Plan.INDIVIDUAL)

        with pytest.raises(InvalidStateError):
            await scheduler.activate(pending.enrollment_id, activation_time)

        stored = await store.get(pending.enrollment_id)
        assert stored.access_token == "winner-token"
        dispatcher.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_write_committed_before_timeout_keeps_token(
        self, dispatcher, activation_time
    ) -> None:
        class StallingStore(InMemoryEnrollmentStore):
            async def activate(self, enrollment_id, **kwargs):
                applied = await super().activate(enrollment_id, **kwargs)
                await asyncio.sleep(0.5)
                return applied

        store = StallingStore()
        scheduler = UnlockScheduler(
            store,
            dispatcher,
            store_timeout_seconds=0.05,
            token_factory=lambda: "committed-token",
        )

        enrollment = await activated(scheduler, activation_time)

        assert enrollment.status == EnrollmentStatus.ACTIVE
        assert enrollment.access_token == "committed-token"
        assert "committed-token" in store._by_token
        view = await AccessGate(store).verify("committed-token")
        assert view.current_week == 1
        dispatcher.send.assert_awaited_once()
        assert dispatcher.send.call_args.args[0] == NotificationKind.WELCOME

    @pytest.mark.asyncio
    async def test_write_not_applied_before_timeout_releases_token(
        self, dispatcher, activation_time
    ) -> None:
        class StalledStore(InMemoryEnrollmentStore):
            async def activate(self, enrollment_id, **kwargs):
                await asyncio.sleep(0.5)
                return await super().activate(enrollment_id, **kwargs)

        store = StalledStore()
        scheduler = UnlockScheduler(
            store,
            dispatcher,
            store_timeout_seconds=0.05,
            token_factory=lambda: "stalled-token",
        )
        pending = await scheduler.create_pending("ana@example.com", Plan.INDIVIDUAL)

        with pytest.raises(DependencyError) as exc_info:
            await scheduler.activate(pending.enrollment_id, activation_time)

        assert exc_info.value.retryable is True
        assert "stalled-token" not in store._by_token
        stored = await store.get(pending.enrollment_id)
        assert stored.status == EnrollmentStatus.PENDING
        dispatcher.send.assert_not_awaited()


class TestTick:
    """Tests for the periodic unlock pass."""

    @pytest.mark.asyncio
    async def test_nothing_due_right_after_activation(
        self, scheduler, dispatcher, activation_time
    ) -> None:
        await activated(scheduler, activation_time)
        dispatcher.send.reset_mock()

        transitions = await scheduler.tick(activation_time + timedelta(days=6))

        assert transitions == []
        dispatcher.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unlocks_week_two_after_seven_days(
        self, scheduler, store, dispatcher, activation_time
    ) -> None:
        enrollment = await activated(scheduler, activation_time)
        dispatcher.send.reset_mock()

        transitions = await scheduler.tick(activation_time + timedelta(days=10))

        assert [(e.enrollment_id, week) for e, week in transitions] == [
            (enrollment.enrollment_id, 2)
        ]
        stored = await store.get(enrollment.enrollment_id)
        assert stored.current_week == 2
        assert stored.unlocked_weeks == [1, 2]
        assert week_unlock_calls(dispatcher) == [2]
        context = dispatcher.send.call_args.args[2]
        assert context["title"] == "Hearing God's Voice"

    @pytest.mark.asyncio
    async def test_overdue_weeks_unlock_in_order_in_one_pass(
        self, scheduler, store, dispatcher, activation_time
    ) -> None:
        enrollment = await activated(scheduler, activation_time)
        await scheduler.tick(activation_time + timedelta(days=10))
        dispatcher.send.reset_mock()

        transitions = await scheduler.tick(activation_time + timedelta(days=100))

        assert [week for _, week in transitions] == [3, 4, 5, 6]
        assert [e.current_week for e, _ in transitions] == [3, 4, 5, 6]
        assert week_unlock_calls(dispatcher) == [3, 4, 5, 6]
        stored = await store.get(enrollment.enrollment_id)
        assert stored.current_week == 6
        assert stored.unlocked_weeks == [1, 2, 3, 4, 5, 6]

    @pytest.mark.asyncio
    async def test_unlock_happens_exactly_at_unlock_time(
        self, scheduler, activation_time
    ) -> None:
        await activated(scheduler, activation_time)

        transitions = await scheduler.tick(activation_time + timedelta(days=7))

        assert [week for _, week in transitions] == [2]

    @pytest.mark.asyncio
    async def test_repeated_tick_is_idempotent(
        self, scheduler, store, dispatcher, activation_time
    ) -> None:
        enrollment = await activated(scheduler, activation_time)
        now = activation_time + timedelta(days=15)
        await scheduler.tick(now)
        before = await store.get(enrollment.enrollment_id)
        dispatcher.send.reset_mock()

        transitions = await scheduler.tick(now)

        assert transitions == []
        dispatcher.send.assert_not_awaited()
        assert await store.get(enrollment.enrollment_id) == before

    @pytest.mark.asyncio
    async def test_current_week_never_decreases(
        self, scheduler, store, activation_time
    ) -> None:
        enrollment = await activated(scheduler, activation_time)

        seen = []
        for days in (3, 8, 20, 9, 1, 40, 36):
            await scheduler.tick(activation_time + timedelta(days=days))
            seen.append((await store.get(enrollment.enrollment_id)).current_week)

        assert seen == sorted(seen)
        assert seen[-1] == 6

    @pytest.mark.asyncio
    async def test_concurrent_ticks_notify_once(
        self, scheduler, dispatcher, activation_time
    ) -> None:
        await activated(scheduler, activation_time)
        dispatcher.send.reset_mock()
        now = activation_time + timedelta(days=8)

        results = await asyncio.gather(*(scheduler.tick(now) for _ in range(5)))

        assert sum(len(r) for r in results) == 1
        assert week_unlock_calls(dispatcher) == [2]

    @pytest.mark.asyncio
    async def test_notification_failure_keeps_unlock(
        self, scheduler, store, dispatcher, activation_time
    ) -> None:
        enrollment = await activated(scheduler, activation_time)
        dispatcher.send.return_value = False
        now = activation_time + timedelta(days=8)

        await scheduler.tick(now)
        dispatcher.send.reset_mock()
        transitions = await scheduler.tick(now)

        assert transitions == []
        dispatcher.send.assert_not_awaited()
        stored = await store.get(enrollment.enrollment_id)
        assert stored.unlocked_weeks == [1, 2]

    @pytest.mark.asyncio
    async def test_pending_enrollments_are_ignored(
        self, scheduler, activation_time
    ) -> None:
        await scheduler.create_pending("ana@example.com", Plan.INDIVIDUAL)

        transitions = await scheduler.tick(activation_time + timedelta(days=100))

        assert transitions == []

    @pytest.mark.asyncio
    async def test_failure_on_one_enrollment_does_not_stop_pass(
        self, dispatcher, activation_time
    ) -> None:
        class FlakyStore(InMemoryEnrollmentStore):
            broken_id = None

            async def unlock_week(self, enrollment_id, week, updated_at):
                if enrollment_id == self.broken_id:
                    raise RuntimeError("write failed")
                return await super().unlock_week(enrollment_id, week, updated_at)

        store = FlakyStore()
        scheduler = UnlockScheduler(store, dispatcher)
        broken = await activated(scheduler, activation_time, "broken@example.com")
        healthy = await activated(scheduler, activation_time, "healthy@example.com")
        store.broken_id = broken.enrollment_id

        transitions = await scheduler.tick(activation_time + timedelta(days=8))

        assert [(e.enrollment_id, w) for e, w in transitions] == [
            (healthy.enrollment_id, 2)
        ]
