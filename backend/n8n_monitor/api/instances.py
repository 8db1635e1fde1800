"""API routes for monitored instances and their reconciled state."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from n8n_monitor.api.deps import get_n8n_client, get_reconciliation_scheduler, get_store
from n8n_monitor.connectors import N8nClient
from n8n_monitor.db import PersistenceGateway
from n8n_monitor.models import (
    Instance,
    InstanceCreate,
    InstanceStats,
    InstanceUpdate,
    ReconciliationResult,
    RemoteWorkflow,
    Webhook,
    WorkflowSnapshot,
)
from n8n_monitor.services.scheduler import ReconciliationScheduler
from n8n_monitor.services.stats import compute_instance_stats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/instances", tags=["instances"])

Store = Annotated[PersistenceGateway, Depends(get_store)]


class InstancesResponse(BaseModel):
    """Response for instance list queries."""

    instances: list[Instance]
    total: int


class HealthResponse(BaseModel):
    """Result of probing an instance's health endpoint."""

    instance_id: str
    healthy: bool


async def _get_instance_or_404(store: PersistenceGateway, instance_id: str) -> Instance:
    instance = await store.get_instance(instance_id)
    if not instance:
        raise HTTPException(status_code=404, detail="Instance not found")
    return instance


# ==================== Instance CRUD ====================


@router.get("", response_model=InstancesResponse)
async def list_instances(store: Store):
    """List all monitored instances."""
    instances = await store.list_instances()
    return InstancesResponse(instances=instances, total=len(instances))


@router.post("", response_model=Instance, status_code=201)
async def create_instance(data: InstanceCreate, store: Store):
    """Register a new instance. It is checked on the next scheduler tick."""
    instance = await store.create_instance(data)
    logger.info(f"Registered n8n instance {instance.id} ({instance.host})")
    return instance


@router.get("/{instance_id}", response_model=Instance)
async def get_instance(instance_id: str, store: Store):
    """Get an instance by ID."""
    return await _get_instance_or_404(store, instance_id)


@router.patch("/{instance_id}", response_model=Instance)
async def update_instance(instance_id: str, data: InstanceUpdate, store: Store):
    """Update an instance's connection settings or check interval."""
    instance = await store.update_instance(instance_id, data)
    if not instance:
        raise HTTPException(status_code=404, detail="Instance not found")
    return instance


# ==================== Checks ====================


@router.post("/{instance_id}/check", response_model=ReconciliationResult)
async def check_instance(
    instance_id: str,
    store: Store,
    scheduler: Annotated[ReconciliationScheduler, Depends(get_reconciliation_scheduler)],
):
    """Run a reconciliation pass now, regardless of the check interval."""
    instance = await _get_instance_or_404(store, instance_id)
    return await scheduler.check_now(instance)


@router.get("/{instance_id}/health", response_model=HealthResponse)
async def instance_health(
    instance_id: str,
    store: Store,
    client: Annotated[N8nClient, Depends(get_n8n_client)],
):
    """Probe the instance's health endpoint."""
    instance = await _get_instance_or_404(store, instance_id)
    return HealthResponse(instance_id=instance.id, healthy=await client.is_healthy(instance))


@router.get("/{instance_id}/stats", response_model=InstanceStats)
async def instance_stats(instance_id: str, store: Store):
    """Aggregate counters over the instance's current stored snapshots."""
    instance = await _get_instance_or_404(store, instance_id)
    snapshots = await store.list_current_snapshots(instance.id)
    workflows = [RemoteWorkflow.model_validate_json(s.workflow_data) for s in snapshots]
    return compute_instance_stats(workflows)


# ==================== Workflows & Webhooks ====================


@router.get("/{instance_id}/workflows", response_model=list[WorkflowSnapshot])
async def list_workflows(instance_id: str, store: Store):
    """Current snapshot of every workflow seen on the instance."""
    instance = await _get_instance_or_404(store, instance_id)
    return await store.list_current_snapshots(instance.id)


@router.get(
    "/{instance_id}/workflows/{workflow_id}/history",
    response_model=list[WorkflowSnapshot],
)
async def workflow_history(instance_id: str, workflow_id: str, store: Store):
    """All stored versions of a workflow, newest first."""
    instance = await _get_instance_or_404(store, instance_id)
    history = await store.list_snapshot_history(instance.id, workflow_id)
    if not history:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return history


@router.get("/{instance_id}/webhooks", response_model=list[Webhook])
async def list_webhooks(instance_id: str, store: Store, workflow_id: str | None = None):
    """Webhooks of the instance, optionally limited to one workflow."""
    instance = await _get_instance_or_404(store, instance_id)
    return await store.find_webhooks(instance.id, workflow_id)
