"""Periodic reconciliation of every monitored instance.

The scheduler ticks on a fixed period (one minute by default). Each tick
lists instances, keeps the ones whose check interval has elapsed since
``last_check`` and runs their passes one after another.
Ticks never overlap. The injected clock drives every due-ness decision.
"""

import asyncio
import logging
import os
from datetime import datetime, timedelta

from n8n_monitor.db.base import PersistenceError, PersistenceGateway
from n8n_monitor.models import Instance, ReconciliationResult, SchedulerStats
from n8n_monitor.services.reconciler import Clock, InstanceReconciler, error_note, utc_now

logger = logging.getLogger(__name__)

DEFAULT_TICK_SECONDS = 60.0

# Singleton scheduler instance
_scheduler: "ReconciliationScheduler | None" = None


def is_due(instance: Instance, now: datetime) -> bool:
    """Return True when the instance's check interval has elapsed."""
    if instance.last_check is None:
        return True
    return now > instance.last_check + timedelta(minutes=instance.effective_interval_mins)


class ReconciliationScheduler:
    """Drives reconciliation passes for all instances on a fixed tick."""

    def __init__(
        self,
        store: PersistenceGateway,
        reconciler: InstanceReconciler,
        clock: Clock = utc_now,
        interval_seconds: float = DEFAULT_TICK_SECONDS,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: Gateway used to list instances
            reconciler: Runs the per-instance pass
            clock: Returns the current time; drives due-ness checks
            interval_seconds: Tick period
        """
        self._store = store
        self._reconciler = reconciler
        self._clock = clock
        self._interval = interval_seconds
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self._stats = SchedulerStats()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def get_stats(self) -> SchedulerStats:
        return self._stats.model_copy(update={"running": self.is_running})

    # === Tick processing ===

    async def tick(self) -> list[ReconciliationResult]:
        """Run one tick: reconcile every due instance, sequentially.

        A tick requested while another is still running is skipped.
        """
        if self._lock.locked():
            logger.warning("Previous tick still running, skipping this one")
            return []

        async with self._lock:
            now = self._clock()
            self._stats.tick_count += 1
            self._stats.last_tick = now

            try:
                instances = await self._store.list_instances()
            except PersistenceError as e:
                self._stats.last_error = str(e)
                logger.error(f"Failed to fetch n8n instances: {e}")
                return []

            results = []
            for instance in instances:
                if not is_due(instance, now):
                    self._stats.instances_skipped += 1
                    continue
                results.append(await self._run_instance(instance))

            if results:
                logger.info(f"Tick {self._stats.tick_count}: checked {len(results)} instance(s)")
            else:
                logger.debug("No instances due")
            return results

    async def check_now(self, instance: Instance) -> ReconciliationResult:
        """Reconcile one instance immediately, waiting for any running tick."""
        async with self._lock:
            return await self._run_instance(instance)

    async def _run_instance(self, instance: Instance) -> ReconciliationResult:
        try:
            result = await self._reconciler.reconcile(instance)
        except Exception as e:
            # Anything the pass did not handle itself still only affects this instance
            note = error_note(e)
            logger.exception(f"Failed to sync instance {instance.host}: {note}")
            now = self._clock()
            await self._reconciler.record_failure(instance, note, now)
            result = ReconciliationResult(
                instance_id=instance.id, success=False, error=note, checked_at=now
            )

        if result.success:
            self._stats.instances_checked += 1
        else:
            self._stats.instances_failed += 1
            self._stats.last_error = result.error
        return result

    # === Lifecycle ===

    def start(self) -> None:
        """Start the background tick loop."""
        if self.is_running:
            logger.warning("Reconciliation scheduler already running")
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Started reconciliation scheduler (interval={self._interval}s)")

    async def stop(self) -> None:
        """Stop the background tick loop."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Stopped reconciliation scheduler")

    async def _loop(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._stats.last_error = str(e)
                logger.exception(f"Error in reconciliation tick: {e}")

            await asyncio.sleep(max(0.0, self._interval - (loop.time() - started)))


def get_scheduler() -> ReconciliationScheduler:
    """Get the singleton scheduler.

    Raises:
        RuntimeError: If init_scheduler has not been called
    """
    if _scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler first.")
    return _scheduler


async def init_scheduler(
    store: PersistenceGateway,
    reconciler: InstanceReconciler,
    start: bool = True,
) -> ReconciliationScheduler:
    """Create the singleton scheduler and optionally start its loop."""
    global _scheduler
    interval = float(os.getenv("CHECK_TICK_SECONDS", str(DEFAULT_TICK_SECONDS)))
    _scheduler = ReconciliationScheduler(store, reconciler, interval_seconds=interval)
    if start:
        _scheduler.start()
    return _scheduler


async def shutdown_scheduler() -> None:
    """Stop and discard the singleton scheduler."""
    global _scheduler
    if _scheduler:
        await _scheduler.stop()
        _scheduler = None
