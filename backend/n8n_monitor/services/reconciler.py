"""Reconciliation pass for a single n8n instance.

One pass:
1. fetches the instance's workflows
2. stores a new snapshot for every workflow that changed since the last one
3. replaces that workflow's webhooks with the freshly extracted set
4. writes availability and counters back onto the instance

A fetch failure marks the instance unavailable and stops the pass. Store
failures on individual workflows or webhooks are logged and skipped so the
rest of the pass still runs. Snapshot writes and webhook replacement are not
transactional; a pass interrupted between them leaves the webhook set stale
until the workflow next changes.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from n8n_monitor.connectors import ConnectorError, N8nClient
from n8n_monitor.db.base import PersistenceError, PersistenceGateway
from n8n_monitor.models import (
    Instance,
    InstanceStatus,
    ReconciliationResult,
    RemoteWorkflow,
    WorkflowSnapshotCreate,
)
from n8n_monitor.services.change_detector import has_changed
from n8n_monitor.services.stats import compute_instance_stats
from n8n_monitor.services.webhook_extractor import extract_webhooks

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def error_note(error: BaseException) -> str:
    """Text stored as an instance's availability note; never empty."""
    return str(error) or type(error).__name__


def snapshot_from_workflow(workflow: RemoteWorkflow, instance: Instance) -> WorkflowSnapshotCreate:
    """Build the snapshot record for a remote workflow."""
    return WorkflowSnapshotCreate(
        instance_id=instance.id,
        workflow_id=workflow.id,
        workflow_name=workflow.name,
        active=workflow.active,
        created_at=workflow.created_at,
        updated_at=workflow.updated_at,
        number_of_nodes=len(workflow.nodes),
        workflow_data=workflow.to_json(),
        nodes=workflow.node_names,
    )


class InstanceReconciler:
    """Runs reconciliation passes against a persistence gateway."""

    def __init__(
        self,
        store: PersistenceGateway,
        client: N8nClient,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._client = client
        self._clock = clock

    async def reconcile(self, instance: Instance) -> ReconciliationResult:
        """Run one full pass for ``instance`` and record its outcome."""
        now = self._clock()

        if instance.key_error:
            logger.error(f"Skipping {instance.host}, API key unreadable: {instance.key_error}")
            await self.record_failure(instance, instance.key_error, now)
            return ReconciliationResult(
                instance_id=instance.id, success=False, error=instance.key_error, checked_at=now
            )

        try:
            workflows = await self._client.get_workflows(instance)
        except ConnectorError as e:
            note = error_note(e)
            logger.error(
                f"Failed to get workflows from {instance.host} "
                f"({'retriable' if e.retriable else 'not retriable'}): {note}"
            )
            await self.record_failure(instance, note, now)
            return ReconciliationResult(
                instance_id=instance.id,
                success=False,
                error=note,
                retriable=e.retriable,
                checked_at=now,
            )

        result = ReconciliationResult(
            instance_id=instance.id,
            success=True,
            checked_at=now,
            workflows_seen=len(workflows),
        )

        for workflow in workflows:
            await self._sync_workflow(instance, workflow, result)

        stats = compute_instance_stats(workflows)
        result.stats = stats

        await self._save_status(
            instance,
            InstanceStatus(
                availability_status=True,
                availability_note="",
                last_check=now,
                workflows_active=stats.active_workflows,
                workflows_inactive=stats.inactive_workflows,
                webhooks_active=stats.active_webhooks,
                webhooks_inactive=stats.inactive_webhooks,
            ),
        )

        logger.info(
            f"Updated n8n instance {instance.id} ({instance.host}): "
            f"{stats.total_workflows} workflows, {stats.active_workflows} active, "
            f"{stats.total_webhooks} webhooks, {result.workflows_changed} changed"
        )
        return result

    async def record_failure(self, instance: Instance, note: str, now: datetime) -> None:
        """Mark an instance unavailable with ``note``; counters are left as they were."""
        await self._save_status(
            instance,
            InstanceStatus(availability_status=False, availability_note=note, last_check=now),
        )

    async def _save_status(self, instance: Instance, status: InstanceStatus) -> None:
        try:
            await self._store.save_instance_status(instance.id, status)
        except PersistenceError as e:
            logger.error(f"Failed to update instance status for {instance.id}: {e}")

    async def _sync_workflow(
        self, instance: Instance, workflow: RemoteWorkflow, result: ReconciliationResult
    ) -> None:
        logger.info(
            f"Processing workflow {workflow.id} ({workflow.name!r}, active={workflow.active})"
        )

        try:
            stored = await self._store.latest_snapshot(instance.id, workflow.id)
        except PersistenceError as e:
            logger.warning(f"Could not load stored snapshot of {workflow.id}, treating as changed: {e}")
            stored = None

        if not has_changed(workflow, stored):
            logger.debug(f"Workflow {workflow.id} unchanged, skipping")
            return

        try:
            await self._store.create_snapshot(snapshot_from_workflow(workflow, instance))
        except PersistenceError as e:
            logger.error(f"Failed to save workflow {workflow.id}: {e}")
            return

        result.workflows_changed += 1
        await self._replace_webhooks(instance, workflow, result)

        logger.info(f"Created new workflow version {workflow.id} (active={workflow.active})")

    async def _replace_webhooks(
        self, instance: Instance, workflow: RemoteWorkflow, result: ReconciliationResult
    ) -> None:
        """Delete every stored webhook of the workflow, then insert the extracted set."""
        try:
            deleted = await self._store.delete_webhooks(instance.id, workflow.id)
        except PersistenceError as e:
            logger.error(f"Failed to clear webhooks of workflow {workflow.id}: {e}")
            return

        logger.debug(f"Removed {deleted} existing webhook(s) of workflow {workflow.id}")

        for webhook in extract_webhooks(workflow, instance):
            try:
                await self._store.create_webhook(webhook)
            except PersistenceError as e:
                logger.warning(
                    f"Failed to save webhook of node {webhook.node_id} "
                    f"in workflow {workflow.id}: {e}"
                )
                result.webhook_failures += 1
                continue

            logger.info(
                f"Created webhook record for node {webhook.node_id} "
                f"of workflow {workflow.id} ({workflow.name!r})"
            )
            result.webhooks_written += 1
