"""Pydantic models for the n8n instance monitor."""

from n8n_monitor.models.instance import (
    DEFAULT_CHECK_INTERVAL_MINS,
    Instance,
    InstanceCreate,
    InstanceStatus,
    InstanceUpdate,
)
from n8n_monitor.models.remote import (
    QUEUE_TRIGGER_NODE_TYPE,
    SCHEDULE_TRIGGER_NODE_TYPE,
    WEBHOOK_NODE_TYPE,
    NodeCredential,
    NodeParameters,
    RemoteNode,
    RemoteWorkflow,
    WorkflowListResponse,
)
from n8n_monitor.models.stats import InstanceStats, ReconciliationResult, SchedulerStats
from n8n_monitor.models.webhook import Webhook, WebhookCreate, WebhookCredentials
from n8n_monitor.models.workflow import WorkflowSnapshot, WorkflowSnapshotCreate

__all__ = [
    # Instances
    "DEFAULT_CHECK_INTERVAL_MINS",
    "Instance",
    "InstanceCreate",
    "InstanceStatus",
    "InstanceUpdate",
    # Remote API payloads
    "NodeCredential",
    "NodeParameters",
    "RemoteNode",
    "RemoteWorkflow",
    "WorkflowListResponse",
    "WEBHOOK_NODE_TYPE",
    "SCHEDULE_TRIGGER_NODE_TYPE",
    "QUEUE_TRIGGER_NODE_TYPE",
    # Stored records
    "WorkflowSnapshot",
    "WorkflowSnapshotCreate",
    "Webhook",
    "WebhookCreate",
    "WebhookCredentials",
    # Aggregates
    "InstanceStats",
    "ReconciliationResult",
    "SchedulerStats",
]
