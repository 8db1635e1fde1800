"""Workflow, webhook and trigger counts for an instance."""

from collections.abc import Iterable

from n8n_monitor.models import InstanceStats, RemoteWorkflow


def compute_instance_stats(workflows: Iterable[RemoteWorkflow]) -> InstanceStats:
    """Count workflows and trigger nodes in a single pass.

    Webhooks are split active/inactive by their owning workflow's flag.
    """
    stats = InstanceStats()

    for workflow in workflows:
        stats.total_workflows += 1
        if workflow.active:
            stats.active_workflows += 1
        else:
            stats.inactive_workflows += 1

        for node in workflow.nodes:
            if node.is_webhook:
                stats.total_webhooks += 1
                if workflow.active:
                    stats.active_webhooks += 1
                else:
                    stats.inactive_webhooks += 1
            elif node.is_queue_trigger:
                stats.queue_triggers += 1
            elif node.is_schedule_trigger:
                stats.scheduled_triggers += 1

    return stats
