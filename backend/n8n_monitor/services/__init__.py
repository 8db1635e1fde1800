"""Services for the n8n instance monitor."""

from n8n_monitor.services.change_detector import has_changed
from n8n_monitor.services.reconciler import InstanceReconciler, snapshot_from_workflow
from n8n_monitor.services.scheduler import ReconciliationScheduler, is_due
from n8n_monitor.services.stats import compute_instance_stats
from n8n_monitor.services.webhook_extractor import extract_route, extract_webhooks

__all__ = [
    "InstanceReconciler",
    "ReconciliationScheduler",
    "compute_instance_stats",
    "extract_route",
    "extract_webhooks",
    "has_changed",
    "is_due",
    "snapshot_from_workflow",
]
