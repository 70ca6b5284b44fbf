"""Background worker that runs the periodic unlock pass.

Started from the application lifespan. Any other trigger (cron, an
orchestrator) can call the admin unlock endpoint instead; passes are
idempotent so overlapping triggers are harmless.
"""

import asyncio
import contextlib
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from redis.exceptions import RedisError

from dripcourse.core.context import JobContext
from dripcourse.core.logging import get_logger

from .models import Enrollment


if TYPE_CHECKING:
    import redis.asyncio as redis

    from .scheduler import UnlockScheduler


logger = get_logger(__name__)

# Delete the lock only if this run still owns it
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class UnlockWorker:
    """Run `UnlockScheduler.tick` on a fixed interval.

    With Redis available each pass holds a short-lived lock so that several
    app instances don't scan the same enrollments at once.
    """

    def __init__(
        self,
        scheduler: "UnlockScheduler",
        *,
        interval_seconds: int = 86400,
        redis_client: "redis.Redis | None" = None,
        lock_key: str = "dripcourse:locks:unlock_tick",
        lock_ttl_seconds: int = 900,
    ) -> None:
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds
        self.redis = redis_client
        self.lock_key = lock_key
        self.lock_ttl_seconds = lock_ttl_seconds
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background loop."""
        if self._running:
            logger.warning("unlock_worker_already_running")
            return

        self._running = True
        self._task = asyncio.create_task(self._worker_loop(), name="unlock_worker")
        logger.info(
            "unlock_worker_started",
            interval_seconds=self.interval_seconds,
            lock=self.redis is not None,
        )

    async def stop(self) -> None:
        """Stop the background loop."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        logger.info("unlock_worker_stopped")

    async def _worker_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("unlock_worker_error")

            await asyncio.sleep(self.interval_seconds)

    async def _acquire_lock(self, owner: str) -> bool:
        if self.redis is None:
            return True
        try:
            acquired = await self.redis.set(
                self.lock_key, owner, nx=True, ex=self.lock_ttl_seconds
            )
        except RedisError as e:
            # Unlocks are conditional writes; running unlocked is only wasteful
            logger.warning("unlock_lock_unavailable", error=str(e))
            return True
        return bool(acquired)

    async def _release_lock(self, owner: str) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.eval(RELEASE_LOCK_SCRIPT, 1, self.lock_key, owner)
        except RedisError as e:
            logger.warning("unlock_lock_release_failed", error=str(e))

    async def run_once(
        self, now: datetime | None = None
    ) -> list[tuple[Enrollment, int]] | None:
        """Run one unlock pass.

        Returns:
            Transitions made by the pass, or None when another worker holds
            the lock
        """
        run_id = str(uuid4())
        with JobContext("unlock_tick", run_id=run_id):
            if not await self._acquire_lock(run_id):
                logger.info("unlock_tick_skipped", reason="lock_held")
                return None

            try:
                return await self.scheduler.tick(now or datetime.now(UTC))
            finally:
                await self._release_lock(run_id)
