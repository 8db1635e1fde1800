"""Pydantic models for webhook endpoints derived from workflow nodes."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class WebhookCredentials(BaseModel):
    """The credential attached to a webhook node (first one only)."""

    type: str
    id: str | None = None
    name: str = ""


class WebhookCreate(BaseModel):
    """A webhook extracted from a workflow, ready to be persisted."""

    instance_id: str
    workflow_id: str
    workflow_name: str = ""
    node_id: str
    node_name: str = ""
    webhook_id: str | None = None
    methods: list[str] = Field(default_factory=list)
    path: str = ""
    webhook_url: str = ""
    options: dict[str, Any] = Field(default_factory=dict)
    notes: str = ""
    route: str = ""
    auth_type: str = ""
    credentials: WebhookCredentials | None = None


class Webhook(WebhookCreate):
    """A persisted webhook record."""

    id: str
    created: datetime
