"""Tests for the reconciliation scheduler."""

import asyncio
from datetime import timedelta

import pytest

from conftest import build_node, build_workflow, corrupt_api_key
from n8n_monitor.db.base import PersistenceError
from n8n_monitor.db.monitor_store import MonitorStore
from n8n_monitor.models import Instance, InstanceStatus, InstanceUpdate
from n8n_monitor.services import scheduler as scheduler_module
from n8n_monitor.services.reconciler import InstanceReconciler
from n8n_monitor.services.scheduler import (
    ReconciliationScheduler,
    get_scheduler,
    init_scheduler,
    is_due,
    shutdown_scheduler,
)


class ExplodingReconciler(InstanceReconciler):
    """Reconciler whose pass crashes for selected hosts."""

    def __init__(self, *args, explode_hosts: set[str], **kwargs):
        super().__init__(*args, **kwargs)
        self.explode_hosts = explode_hosts

    async def reconcile(self, instance):
        if instance.host in self.explode_hosts:
            raise RuntimeError("unexpected payload")
        return await super().reconcile(instance)


class BrokenListStore(MonitorStore):
    """MonitorStore whose instance listing fails."""

    async def list_instances(self):
        raise PersistenceError("database is locked", "instances")


@pytest.fixture
def reconciler(store, n8n_client, clock) -> InstanceReconciler:
    return InstanceReconciler(store, n8n_client, clock=clock)


@pytest.fixture
def scheduler(store, reconciler, clock) -> ReconciliationScheduler:
    return ReconciliationScheduler(store, reconciler, clock=clock)


async def mark_checked(store, instance, when) -> None:
    await store.save_instance_status(
        instance.id, InstanceStatus(availability_status=True, last_check=when)
    )


class TestIsDue:
    """Tests for is_due."""

    def make_instance(self, clock, minutes_ago: int | None, interval: int = 5) -> Instance:
        last_check = None if minutes_ago is None else clock.now - timedelta(minutes=minutes_ago)
        return Instance(
            id="inst-1",
            host="https://alpha.example.com",
            check_interval_mins=interval,
            last_check=last_check,
        )

    def test_never_checked(self, clock):
        """Test an instance without last_check is due."""
        assert is_due(self.make_instance(clock, None), clock.now) is True

    def test_within_interval(self, clock):
        """Test a recent check is not due."""
        assert is_due(self.make_instance(clock, 4), clock.now) is False

    def test_interval_elapsed(self, clock):
        """Test an instance checked longer ago than its interval is due."""
        assert is_due(self.make_instance(clock, 6), clock.now) is True

    def test_exactly_at_interval(self, clock):
        """Test the boundary itself is not yet due."""
        assert is_due(self.make_instance(clock, 5), clock.now) is False

    def test_zero_interval_uses_default(self, clock):
        """Test a zero interval behaves like the five minute default."""
        assert is_due(self.make_instance(clock, 4, interval=0), clock.now) is False
        assert is_due(self.make_instance(clock, 6, interval=0), clock.now) is True

    def test_custom_interval(self, clock):
        """Test per-instance intervals are honored."""
        assert is_due(self.make_instance(clock, 20, interval=30), clock.now) is False
        assert is_due(self.make_instance(clock, 31, interval=30), clock.now) is True


class TestTick:
    """Tests for ReconciliationScheduler.tick."""

    @pytest.mark.asyncio
    async def test_only_due_instances_processed(self, store, scheduler, clock, alpha, beta):
        """Test instances checked within their interval are skipped."""
        await mark_checked(store, alpha, clock.now - timedelta(minutes=4))
        await mark_checked(store, beta, clock.now - timedelta(minutes=6))

        results = await scheduler.tick()

        assert [r.instance_id for r in results] == [beta.id]
        assert (await store.get_instance(alpha.id)).last_check == clock.now - timedelta(minutes=4)
        assert (await store.get_instance(beta.id)).last_check == clock.now
        stats = scheduler.get_stats()
        assert stats.tick_count == 1
        assert stats.instances_checked == 1
        assert stats.instances_skipped == 1

    @pytest.mark.asyncio
    async def test_new_instances_processed_in_order(self, scheduler, alpha, beta):
        """Test never-checked instances run sequentially in creation order."""
        results = await scheduler.tick()

        assert [r.instance_id for r in results] == [alpha.id, beta.id]
        assert all(r.success for r in results)

    @pytest.mark.asyncio
    async def test_failure_isolated_between_instances(self, fake_n8n, store, scheduler, alpha, beta):
        """Test one unreachable instance does not affect the next."""
        fake_n8n.down.add("alpha.example.com")
        fake_n8n.workflows["beta.example.com"] = [build_workflow(nodes=[build_node()])]

        results = await scheduler.tick()

        assert [r.success for r in results] == [False, True]
        failed = await store.get_instance(alpha.id)
        assert failed.availability_status is False
        assert failed.availability_note != ""
        assert len(await store.find_webhooks(beta.id)) == 1
        stats = scheduler.get_stats()
        assert stats.instances_failed == 1
        assert stats.instances_checked == 1
        assert "connection refused" in stats.last_error

    @pytest.mark.asyncio
    async def test_unreadable_api_key_isolated(self, fake_n8n, store, scheduler, clock, alpha, beta):
        """Test an instance whose key cannot be decrypted fails alone."""
        await corrupt_api_key(alpha.id)
        fake_n8n.workflows["beta.example.com"] = [build_workflow(nodes=[build_node()])]

        results = await scheduler.tick()

        assert [r.success for r in results] == [False, True]
        assert "decrypt" in results[0].error
        failed = await store.get_instance(alpha.id)
        assert failed.availability_status is False
        assert failed.last_check == clock.now
        assert (await store.get_instance(beta.id)).last_check == clock.now
        assert len(await store.find_webhooks(beta.id)) == 1
        assert not any(r.url.host == "alpha.example.com" for r in fake_n8n.requests)

    @pytest.mark.asyncio
    async def test_failed_instance_waits_for_interval(self, fake_n8n, store, scheduler, clock, alpha):
        """Test a failed check still advances last_check."""
        fake_n8n.down.add("alpha.example.com")
        await scheduler.tick()

        clock.advance(minutes=1)
        assert await scheduler.tick() == []

        clock.advance(minutes=5)
        assert len(await scheduler.tick()) == 1

    @pytest.mark.asyncio
    async def test_unexpected_exception_isolated(self, store, n8n_client, clock, alpha, beta):
        """Test a crashing pass marks that instance unavailable and the tick continues."""
        reconciler = ExplodingReconciler(
            store, n8n_client, clock=clock, explode_hosts={"https://alpha.example.com"}
        )
        scheduler = ReconciliationScheduler(store, reconciler, clock=clock)

        results = await scheduler.tick()

        assert [r.success for r in results] == [False, True]
        assert results[0].error == "unexpected payload"
        failed = await store.get_instance(alpha.id)
        assert failed.availability_status is False
        assert failed.availability_note == "unexpected payload"
        assert failed.last_check == clock.now

    @pytest.mark.asyncio
    async def test_list_failure_ends_tick(self, n8n_client, clock):
        """Test a failed instance listing aborts the tick without raising."""
        store = BrokenListStore()
        scheduler = ReconciliationScheduler(
            store, InstanceReconciler(store, n8n_client, clock=clock), clock=clock
        )

        assert await scheduler.tick() == []
        stats = scheduler.get_stats()
        assert stats.tick_count == 1
        assert "database is locked" in stats.last_error

    @pytest.mark.asyncio
    async def test_interval_change_applies_next_tick(self, store, scheduler, clock, alpha):
        """Test interval updates take effect on the following tick."""
        await scheduler.tick()
        await store.update_instance(alpha.id, InstanceUpdate(check_interval_mins=1))

        clock.advance(minutes=2)
        assert len(await scheduler.tick()) == 1

    @pytest.mark.asyncio
    async def test_overlapping_tick_skipped(self, scheduler, alpha):
        """Test a tick requested while one runs is skipped."""
        async with scheduler._lock:
            assert await scheduler.tick() == []

        assert scheduler.get_stats().tick_count == 0

    @pytest.mark.asyncio
    async def test_check_now_ignores_interval(self, store, scheduler, clock, alpha):
        """Test an explicit check runs even when not due."""
        await mark_checked(store, alpha, clock.now - timedelta(minutes=1))

        result = await scheduler.check_now(await store.get_instance(alpha.id))

        assert result.success is True
        assert scheduler.get_stats().instances_checked == 1


class TestLifecycle:
    """Tests for the background loop and singleton."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, store, reconciler, clock, alpha):
        """Test the loop ticks immediately and stops cleanly."""
        scheduler = ReconciliationScheduler(store, reconciler, clock=clock, interval_seconds=3600)

        scheduler.start()
        for _ in range(100):
            if scheduler.get_stats().tick_count:
                break
            await asyncio.sleep(0.01)

        assert scheduler.is_running
        assert scheduler.get_stats().running is True
        await scheduler.stop()
        assert not scheduler.is_running
        assert scheduler.get_stats().tick_count == 1

    @pytest.mark.asyncio
    async def test_singleton(self, store, reconciler, monkeypatch):
        """Test init/get/shutdown of the process-wide scheduler."""
        monkeypatch.setenv("CHECK_TICK_SECONDS", "30")

        created = await init_scheduler(store, reconciler, start=False)
        try:
            assert get_scheduler() is created
            assert created._interval == 30.0
            assert not created.is_running
        finally:
            await shutdown_scheduler()

        assert scheduler_module._scheduler is None
        with pytest.raises(RuntimeError):
            get_scheduler()
