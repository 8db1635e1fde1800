"""Aggregate and result models produced by reconciliation."""

from datetime import datetime

from pydantic import BaseModel


class InstanceStats(BaseModel):
    """Workflow, webhook and trigger counts for one instance."""

    total_workflows: int = 0
    active_workflows: int = 0
    inactive_workflows: int = 0
    total_webhooks: int = 0
    active_webhooks: int = 0
    inactive_webhooks: int = 0
    queue_triggers: int = 0
    scheduled_triggers: int = 0


class ReconciliationResult(BaseModel):
    """Summary of one reconciliation pass over a single instance."""

    instance_id: str
    success: bool
    error: str | None = None
    retriable: bool = False
    checked_at: datetime
    workflows_seen: int = 0
    workflows_changed: int = 0
    webhooks_written: int = 0
    webhook_failures: int = 0
    stats: InstanceStats | None = None


class SchedulerStats(BaseModel):
    """Counters describing the scheduler's activity since startup."""

    running: bool = False
    tick_count: int = 0
    last_tick: datetime | None = None
    instances_checked: int = 0
    instances_failed: int = 0
    instances_skipped: int = 0
    last_error: str | None = None
