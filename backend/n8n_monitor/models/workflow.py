"""Pydantic models for stored workflow snapshots."""

from datetime import datetime

from pydantic import BaseModel, Field


class WorkflowSnapshotCreate(BaseModel):
    """A new version of a remote workflow to persist.

    ``created_at``/``updated_at`` are the timestamps reported by the remote
    instance, not the time the snapshot row was written.
    """

    instance_id: str
    workflow_id: str
    workflow_name: str = ""
    active: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    number_of_nodes: int = 0
    workflow_data: str = "{}"
    nodes: list[str] = Field(default_factory=list)


class WorkflowSnapshot(WorkflowSnapshotCreate):
    """A persisted workflow version."""

    id: str
    created: datetime  # when this snapshot row was written
