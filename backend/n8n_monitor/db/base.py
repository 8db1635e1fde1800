"""Persistence gateway interface.

The monitor only needs four primitive operations over three collections
(``instances``, ``workflows``, ``webhooks``):

1. create a record
2. save (upsert) a record by id
3. delete a record by id
4. find records by column-equality filters, sorted and paginated

Backends implement those primitives on plain dict records. Everything the
reconciliation engine calls (latest snapshot lookup, webhook replacement,
instance status updates) is built here on top of them, so a new backend
never has to reimplement domain logic.
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from n8n_monitor.db.secrets import (
    SecretsError,
    decrypt_secret,
    encrypt_secret,
    rotate_encryption_key,
)
from n8n_monitor.models import (
    Instance,
    InstanceCreate,
    InstanceStatus,
    InstanceUpdate,
    Webhook,
    WebhookCreate,
    WorkflowSnapshot,
    WorkflowSnapshotCreate,
)

INSTANCES = "instances"
WORKFLOWS = "workflows"
WEBHOOKS = "webhooks"

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """A store read or write failed."""

    def __init__(self, message: str, collection: str | None = None):
        super().__init__(message)
        self.collection = collection


def _generate_id() -> str:
    """Generate a unique ID."""
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class PersistenceGateway(ABC):
    """Abstract record store used by the reconciliation engine."""

    # =========================================================================
    # Primitive operations (must implement)
    # =========================================================================

    @abstractmethod
    async def create(self, collection: str, record: dict[str, Any]) -> dict[str, Any]:
        """Insert a new record and return it as stored.

        Raises:
            PersistenceError: If the record could not be written
        """

    @abstractmethod
    async def save(self, collection: str, record: dict[str, Any]) -> dict[str, Any]:
        """Insert or replace a record by its ``id``."""

    @abstractmethod
    async def delete(self, collection: str, record_id: str) -> bool:
        """Delete a record by id. Returns False if it did not exist."""

    @abstractmethod
    async def find_by_filter(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        sort: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Find records whose columns equal every value in ``filters``.

        Args:
            collection: Collection name
            filters: Column/value pairs, ANDed together
            sort: Column to sort by, prefixed with ``-`` for descending.
                Records written earlier sort first on ties.
            limit: Maximum number of records
            offset: Number of records to skip
        """

    # =========================================================================
    # Instances
    # =========================================================================

    async def list_instances(self) -> list[Instance]:
        records = await self.find_by_filter(INSTANCES, sort="created")
        return [self._record_to_instance(r) for r in records]

    async def get_instance(self, instance_id: str) -> Instance | None:
        records = await self.find_by_filter(INSTANCES, {"id": instance_id}, limit=1)
        if not records:
            return None
        return self._record_to_instance(records[0])

    async def create_instance(self, data: InstanceCreate) -> Instance:
        now = _iso(_now())
        record = await self.create(
            INSTANCES,
            {
                "id": _generate_id(),
                "host": data.host,
                "api_key_encrypted": encrypt_secret(data.api_key),
                "ignore_ssl_errors": data.ignore_ssl_errors,
                "check_interval_mins": data.check_interval_mins,
                "last_check": None,
                "availability_status": False,
                "availability_note": "",
                "workflows_active": 0,
                "workflows_inactive": 0,
                "webhooks_active": 0,
                "webhooks_inactive": 0,
                "created": now,
                "updated": now,
            },
        )
        return self._record_to_instance(record)

    async def update_instance(self, instance_id: str, data: InstanceUpdate) -> Instance | None:
        records = await self.find_by_filter(INSTANCES, {"id": instance_id}, limit=1)
        if not records:
            return None

        record = dict(records[0])
        updates = data.model_dump(exclude_unset=True, exclude_none=True)
        if "api_key" in updates:
            record["api_key_encrypted"] = encrypt_secret(updates.pop("api_key"))
        record.update(updates)
        record["updated"] = _iso(_now())

        return self._record_to_instance(await self.save(INSTANCES, record))

    async def rotate_api_keys(self, old_key_material: str, new_key_material: str) -> int:
        """Re-encrypt every stored API key under a new SECRETS_KEY.

        Every key is decrypted before any record is written, so a wrong old
        key leaves the store untouched. Returns the number of keys rotated.
        """
        records = await self.find_by_filter(INSTANCES)
        rotated = rotate_encryption_key(
            [r["api_key_encrypted"] for r in records], old_key_material, new_key_material
        )
        for record, encrypted in zip(records, rotated):
            await self.save(
                INSTANCES, {**record, "api_key_encrypted": encrypted, "updated": _iso(_now())}
            )
        return len(rotated)

    async def save_instance_status(self, instance_id: str, status: InstanceStatus) -> Instance:
        """Write the outcome of a reconciliation pass onto an instance.

        ``last_check`` never moves backwards, and an unavailable instance
        always carries a note.
        """
        records = await self.find_by_filter(INSTANCES, {"id": instance_id}, limit=1)
        if not records:
            raise PersistenceError(f"Instance {instance_id} not found", INSTANCES)

        record = dict(records[0])
        previous = record.get("last_check")
        last_check = status.last_check
        if previous and datetime.fromisoformat(previous) > last_check:
            last_check = datetime.fromisoformat(previous)

        note = status.availability_note
        if not status.availability_status and not note:
            note = "unavailable"

        record.update(
            {
                "last_check": _iso(last_check),
                "availability_status": status.availability_status,
                "availability_note": note,
                "updated": _iso(_now()),
            }
        )
        counters = status.model_dump(
            include={"workflows_active", "workflows_inactive", "webhooks_active", "webhooks_inactive"},
            exclude_none=True,
        )
        record.update(counters)

        return self._record_to_instance(await self.save(INSTANCES, record))

    # =========================================================================
    # Workflow snapshots
    # =========================================================================

    async def latest_snapshot(self, instance_id: str, workflow_id: str) -> WorkflowSnapshot | None:
        """Return the current (most recently written) snapshot of a workflow."""
        records = await self.find_by_filter(
            WORKFLOWS,
            {"instance_id": instance_id, "workflow_id": workflow_id},
            sort="-created",
            limit=1,
        )
        if not records:
            return None
        return self._record_to_snapshot(records[0])

    async def list_snapshot_history(self, instance_id: str, workflow_id: str) -> list[WorkflowSnapshot]:
        """All versions of a workflow, newest first."""
        records = await self.find_by_filter(
            WORKFLOWS,
            {"instance_id": instance_id, "workflow_id": workflow_id},
            sort="-created",
        )
        return [self._record_to_snapshot(r) for r in records]

    async def list_current_snapshots(self, instance_id: str) -> list[WorkflowSnapshot]:
        """The current snapshot of every workflow seen on an instance."""
        records = await self.find_by_filter(
            WORKFLOWS, {"instance_id": instance_id}, sort="-created"
        )
        current: dict[str, WorkflowSnapshot] = {}
        for record in records:
            if record["workflow_id"] not in current:
                current[record["workflow_id"]] = self._record_to_snapshot(record)
        return list(current.values())

    async def create_snapshot(self, data: WorkflowSnapshotCreate) -> WorkflowSnapshot:
        record = await self.create(
            WORKFLOWS,
            {
                "id": _generate_id(),
                "instance_id": data.instance_id,
                "workflow_id": data.workflow_id,
                "workflow_name": data.workflow_name,
                "active": data.active,
                "created_at": _iso(data.created_at),
                "updated_at": _iso(data.updated_at),
                "number_of_nodes": data.number_of_nodes,
                "workflow_data": data.workflow_data,
                "nodes_json": json.dumps(data.nodes),
                "created": _iso(_now()),
            },
        )
        return self._record_to_snapshot(record)

    # =========================================================================
    # Webhooks
    # =========================================================================

    async def find_webhooks(self, instance_id: str, workflow_id: str | None = None) -> list[Webhook]:
        filters = {"instance_id": instance_id}
        if workflow_id is not None:
            filters["workflow_id"] = workflow_id
        records = await self.find_by_filter(WEBHOOKS, filters, sort="created")
        return [self._record_to_webhook(r) for r in records]

    async def create_webhook(self, data: WebhookCreate) -> Webhook:
        record = await self.create(
            WEBHOOKS,
            {
                "id": _generate_id(),
                "instance_id": data.instance_id,
                "workflow_id": data.workflow_id,
                "workflow_name": data.workflow_name,
                "node_id": data.node_id,
                "node_name": data.node_name,
                "webhook_id": data.webhook_id,
                "methods_json": json.dumps(data.methods),
                "path": data.path,
                "webhook_url": data.webhook_url,
                "options_json": json.dumps(data.options),
                "notes": data.notes,
                "route": data.route,
                "auth_type": data.auth_type,
                "credentials_json": (
                    data.credentials.model_dump_json() if data.credentials else None
                ),
                "created": _iso(_now()),
            },
        )
        return self._record_to_webhook(record)

    async def delete_webhook(self, webhook_id: str) -> bool:
        return await self.delete(WEBHOOKS, webhook_id)

    async def delete_webhooks(self, instance_id: str, workflow_id: str) -> int:
        """Delete every webhook stored for one (instance, workflow) pair."""
        records = await self.find_by_filter(
            WEBHOOKS, {"instance_id": instance_id, "workflow_id": workflow_id}
        )
        deleted = 0
        for record in records:
            if await self.delete_webhook(record["id"]):
                deleted += 1
        return deleted

    # =========================================================================
    # Record conversion
    # =========================================================================

    @staticmethod
    def _record_to_instance(record: dict[str, Any]) -> Instance:
        data = {k: v for k, v in record.items() if k != "api_key_encrypted"}
        try:
            data["api_key"] = decrypt_secret(record["api_key_encrypted"])
        except SecretsError as e:
            # An unreadable key fails only this instance's passes
            logger.error(f"Cannot decrypt API key of instance {record['id']}: {e}")
            data["key_error"] = str(e)
        return Instance.model_validate(data)

    @staticmethod
    def _record_to_snapshot(record: dict[str, Any]) -> WorkflowSnapshot:
        data = {k: v for k, v in record.items() if k != "nodes_json"}
        data["nodes"] = json.loads(record.get("nodes_json") or "[]")
        return WorkflowSnapshot.model_validate(data)

    @staticmethod
    def _record_to_webhook(record: dict[str, Any]) -> Webhook:
        credentials = record.get("credentials_json")
        return Webhook(
            id=record["id"],
            instance_id=record["instance_id"],
            workflow_id=record["workflow_id"],
            workflow_name=record.get("workflow_name") or "",
            node_id=record["node_id"],
            node_name=record.get("node_name") or "",
            webhook_id=record.get("webhook_id"),
            methods=json.loads(record.get("methods_json") or "[]"),
            path=record.get("path") or "",
            webhook_url=record.get("webhook_url") or "",
            options=json.loads(record.get("options_json") or "{}"),
            notes=record.get("notes") or "",
            route=record.get("route") or "",
            auth_type=record.get("auth_type") or "",
            credentials=json.loads(credentials) if credentials else None,
            created=record["created"],
        )
