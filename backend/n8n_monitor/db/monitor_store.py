"""MonitorStore - SQLite implementation of the persistence gateway."""

from typing import Any

import aiosqlite

from n8n_monitor.db.base import INSTANCES, WEBHOOKS, WORKFLOWS, PersistenceError, PersistenceGateway
from n8n_monitor.db.database import get_db

# Columns per collection; filters and sort keys are checked against these
# before being interpolated into SQL.
COLUMNS: dict[str, tuple[str, ...]] = {
    INSTANCES: (
        "id",
        "host",
        "api_key_encrypted",
        "ignore_ssl_errors",
        "check_interval_mins",
        "last_check",
        "availability_status",
        "availability_note",
        "workflows_active",
        "workflows_inactive",
        "webhooks_active",
        "webhooks_inactive",
        "created",
        "updated",
    ),
    WORKFLOWS: (
        "id",
        "instance_id",
        "workflow_id",
        "workflow_name",
        "active",
        "created_at",
        "updated_at",
        "number_of_nodes",
        "workflow_data",
        "nodes_json",
        "created",
    ),
    WEBHOOKS: (
        "id",
        "instance_id",
        "workflow_id",
        "workflow_name",
        "node_id",
        "node_name",
        "webhook_id",
        "methods_json",
        "path",
        "webhook_url",
        "options_json",
        "notes",
        "route",
        "auth_type",
        "credentials_json",
        "created",
    ),
}


def _columns(collection: str) -> tuple[str, ...]:
    try:
        return COLUMNS[collection]
    except KeyError:
        raise PersistenceError(f"Unknown collection: {collection}", collection) from None


def _checked_record(collection: str, record: dict[str, Any]) -> dict[str, Any]:
    columns = _columns(collection)
    unknown = set(record) - set(columns)
    if unknown:
        raise PersistenceError(
            f"Unknown columns for {collection}: {', '.join(sorted(unknown))}", collection
        )
    if not record.get("id"):
        raise PersistenceError(f"Record for {collection} has no id", collection)
    return record


def _to_param(value: Any) -> Any:
    # SQLite has no boolean type
    if isinstance(value, bool):
        return int(value)
    return value


class MonitorStore(PersistenceGateway):
    """Persistence gateway backed by the shared aiosqlite connection."""

    async def create(self, collection: str, record: dict[str, Any]) -> dict[str, Any]:
        record = _checked_record(collection, record)
        columns = list(record)
        placeholders = ", ".join("?" for _ in columns)

        db = await get_db()
        try:
            await db.execute(
                f"INSERT INTO {collection} ({', '.join(columns)}) VALUES ({placeholders})",
                [_to_param(record[c]) for c in columns],
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to create {collection} record: {e}", collection) from e

        return dict(record)

    async def save(self, collection: str, record: dict[str, Any]) -> dict[str, Any]:
        record = _checked_record(collection, record)
        columns = list(record)
        placeholders = ", ".join("?" for _ in columns)
        assignments = ", ".join(f"{c} = excluded.{c}" for c in columns if c != "id")

        db = await get_db()
        try:
            await db.execute(
                f"""
                INSERT INTO {collection} ({', '.join(columns)}) VALUES ({placeholders})
                ON CONFLICT(id) DO UPDATE SET {assignments}
                """,
                [_to_param(record[c]) for c in columns],
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to save {collection} record: {e}", collection) from e

        return dict(record)

    async def delete(self, collection: str, record_id: str) -> bool:
        _columns(collection)

        db = await get_db()
        try:
            cursor = await db.execute(f"DELETE FROM {collection} WHERE id = ?", (record_id,))
            await db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to delete {collection} record: {e}", collection) from e

        return cursor.rowcount > 0

    async def find_by_filter(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        sort: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        columns = _columns(collection)

        # Build query
        conditions = []
        params: list[Any] = []
        for column, value in (filters or {}).items():
            if column not in columns:
                raise PersistenceError(f"Unknown filter column for {collection}: {column}", collection)
            if value is None:
                conditions.append(f"{column} IS NULL")
            else:
                conditions.append(f"{column} = ?")
                params.append(_to_param(value))

        where_clause = " AND ".join(conditions) if conditions else "1=1"

        # rowid keeps insertion order stable for records with equal sort keys
        order_clause = "rowid ASC"
        if sort:
            descending = sort.startswith("-")
            column = sort.lstrip("-")
            if column not in columns:
                raise PersistenceError(f"Unknown sort column for {collection}: {column}", collection)
            direction = "DESC" if descending else "ASC"
            order_clause = f"{column} {direction}, rowid {direction}"

        query = f"SELECT * FROM {collection} WHERE {where_clause} ORDER BY {order_clause}"
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        elif offset:
            query += " LIMIT -1 OFFSET ?"
            params.append(offset)

        db = await get_db()
        try:
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to query {collection}: {e}", collection) from e

        return [dict(row) for row in rows]


# Global instance
monitor_store = MonitorStore()
