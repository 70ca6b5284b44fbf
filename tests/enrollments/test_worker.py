"""Tests for the background unlock worker."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from dripcourse.enrollments.models import Plan
from dripcourse.enrollments.worker import UnlockWorker


@pytest.fixture
def mock_redis():
    redis_mock = AsyncMock()
    redis_mock.set = AsyncMock(return_value=True)
    redis_mock.eval = AsyncMock(return_value=1)
    return redis_mock


@pytest.fixture
async def due_enrollment(scheduler, activation_time):
    pending = await scheduler.create_pending("ana@example.com", Plan.INDIVIDUAL)
    return await scheduler.activate(pending.enrollment_id, activation_time)


class TestRunOnce:
    """Tests for a single worker pass."""

    @pytest.mark.asyncio
    async def test_runs_tick_without_redis(
        self, scheduler, due_enrollment, activation_time
    ) -> None:
        worker = UnlockWorker(scheduler)

        transitions = await worker.run_once(activation_time + timedelta(days=8))

        assert [week for _, week in transitions] == [2]

    @pytest.mark.asyncio
    async def test_takes_and_releases_lock(
        self, scheduler, mock_redis, due_enrollment, activation_time
    ) -> None:
        worker = UnlockWorker(
            scheduler, redis_client=mock_redis, lock_key="test:lock", lock_ttl_seconds=60
        )

        await worker.run_once(activation_time + timedelta(days=8))

        set_call = mock_redis.set.call_args
        assert set_call.args[0] == "test:lock"
        assert set_call.kwargs == {"nx": True, "ex": 60}
        owner = set_call.args[1]
        mock_redis.eval.assert_awaited_once()
        assert mock_redis.eval.call_args.args[1:] == (1, "test:lock", owner)

    @pytest.mark.asyncio
    async def test_skips_when_lock_held(
        self, scheduler, mock_redis, dispatcher, due_enrollment, activation_time
    ) -> None:
        mock_redis.set.return_value = None
        dispatcher.send.reset_mock()
        worker = UnlockWorker(scheduler, redis_client=mock_redis)

        result = await worker.run_once(activation_time + timedelta(days=8))

        assert result is None
        dispatcher.send.assert_not_awaited()
        mock_redis.eval.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_runs_when_redis_is_down(
        self, scheduler, mock_redis, due_enrollment, activation_time
    ) -> None:
        mock_redis.set.side_effect = RedisConnectionError("down")
        mock_redis.eval.side_effect = RedisConnectionError("down")
        worker = UnlockWorker(scheduler, redis_client=mock_redis)

        transitions = await worker.run_once(activation_time + timedelta(days=8))

        assert [week for _, week in transitions] == [2]


class TestLifecycle:
    """Tests for start/stop."""

    @pytest.mark.asyncio
    async def test_start_runs_pass_and_stop_cancels(self) -> None:
        scheduler = AsyncMock()
        scheduler.tick = AsyncMock(return_value=[])
        worker = UnlockWorker(scheduler, interval_seconds=3600)

        await worker.start()
        await asyncio.sleep(0.01)

        assert worker.is_running
        scheduler.tick.assert_awaited_once()

        await worker.stop()
        assert not worker.is_running

    @pytest.mark.asyncio
    async def test_loop_survives_tick_errors(self) -> None:
        scheduler = AsyncMock()
        calls = []

        async def tick(now):
            calls.append(now)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return []

        scheduler.tick = AsyncMock(side_effect=tick)
        worker = UnlockWorker(scheduler, interval_seconds=0)

        await worker.start()
        await asyncio.sleep(0.05)
        await worker.stop()

        assert scheduler.tick.await_count >= 2
