"""Pydantic models for the n8n public REST API payloads.

These mirror what a remote instance returns from ``/api/v1/workflows``.
Unknown keys (positions, connections, typeVersion, ...) are kept so that the
serialized workflow stored with each snapshot is the full node graph.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator
from pydantic import Field as PydanticField

WEBHOOK_NODE_TYPE = "n8n-nodes-base.webhook"
SCHEDULE_TRIGGER_NODE_TYPE = "n8n-nodes-base.scheduleTrigger"
QUEUE_TRIGGER_NODE_TYPE = "n8n-nodes-base.redisTrigger"


class NodeCredential(BaseModel):
    """A credential reference attached to a node."""

    id: str | None = None
    name: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class NodeParameters(BaseModel):
    """The subset of node parameters the monitor reads."""

    http_method: str = PydanticField(default="GET", alias="httpMethod")
    path: str = ""
    authentication: str = ""
    options: dict[str, Any] = PydanticField(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("options", mode="before")
    @classmethod
    def none_to_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("http_method", "path", "authentication", mode="before")
    @classmethod
    def none_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        return cls.model_fields[info.field_name].default if value is None else value


class RemoteNode(BaseModel):
    """One node of a remote workflow graph."""

    id: str = ""
    name: str = ""
    type: str = ""
    parameters: NodeParameters = PydanticField(default_factory=NodeParameters)
    credentials: dict[str, NodeCredential] = PydanticField(default_factory=dict)
    webhook_id: str | None = PydanticField(default=None, alias="webhookId")
    notes: str = ""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("parameters", "credentials", mode="before")
    @classmethod
    def none_to_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("id", "name", "type", "notes", mode="before")
    @classmethod
    def none_to_blank(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def is_webhook(self) -> bool:
        return self.type == WEBHOOK_NODE_TYPE

    @property
    def is_schedule_trigger(self) -> bool:
        return self.type == SCHEDULE_TRIGGER_NODE_TYPE

    @property
    def is_queue_trigger(self) -> bool:
        return self.type == QUEUE_TRIGGER_NODE_TYPE


class RemoteWorkflow(BaseModel):
    """A workflow as reported by a remote instance.

    ``instance_id`` is not part of the API payload; the client stamps it after
    decoding so downstream code always knows which instance owns the workflow.
    """

    id: str
    name: str = ""
    active: bool = False
    created_at: datetime | None = PydanticField(default=None, alias="createdAt")
    updated_at: datetime | None = PydanticField(default=None, alias="updatedAt")
    nodes: list[RemoteNode] = PydanticField(default_factory=list)
    instance_id: str | None = PydanticField(default=None, exclude=True)

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("nodes", mode="before")
    @classmethod
    def none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("name", "active", mode="before")
    @classmethod
    def none_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        return cls.model_fields[info.field_name].default if value is None else value

    @property
    def node_names(self) -> list[str]:
        return [node.name for node in self.nodes]

    def to_json(self, indent: int | None = None) -> str:
        """Serialize back to the API shape (camelCase keys)."""
        return self.model_dump_json(by_alias=True, indent=indent)


class WorkflowListResponse(BaseModel):
    """Envelope of ``GET /api/v1/workflows``."""

    data: list[RemoteWorkflow] = PydanticField(default_factory=list)
    next_cursor: str | None = PydanticField(default=None, alias="nextCursor")

    model_config = ConfigDict(populate_by_name=True)
