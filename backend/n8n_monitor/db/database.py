"""SQLite database connection and schema initialization."""

from pathlib import Path

import aiosqlite

# Global connection holder
_db_connection: aiosqlite.Connection | None = None


async def init_database(db_path: str) -> None:
    """Initialize the database connection and create schema."""
    global _db_connection

    # Ensure the data directory exists
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    _db_connection = await aiosqlite.connect(db_path)
    _db_connection.row_factory = aiosqlite.Row

    await _db_connection.execute("PRAGMA foreign_keys = ON")

    await _create_schema(_db_connection)


async def close_database() -> None:
    """Close the database connection."""
    global _db_connection
    if _db_connection:
        await _db_connection.close()
        _db_connection = None


async def get_db() -> aiosqlite.Connection:
    """Get the database connection."""
    if _db_connection is None:
        raise RuntimeError("Database not initialized. Call init_database first.")
    return _db_connection


async def _create_schema(db: aiosqlite.Connection) -> None:
    """Create database tables and indexes."""
    # Monitored n8n instances
    await db.execute("""
        CREATE TABLE IF NOT EXISTS instances (
            id TEXT PRIMARY KEY,
            host TEXT NOT NULL,
            api_key_encrypted TEXT NOT NULL,
            ignore_ssl_errors INTEGER NOT NULL DEFAULT 0,
            check_interval_mins INTEGER NOT NULL DEFAULT 5,
            last_check TEXT,
            availability_status INTEGER NOT NULL DEFAULT 0,
            availability_note TEXT NOT NULL DEFAULT '',
            workflows_active INTEGER NOT NULL DEFAULT 0,
            workflows_inactive INTEGER NOT NULL DEFAULT 0,
            webhooks_active INTEGER NOT NULL DEFAULT 0,
            webhooks_inactive INTEGER NOT NULL DEFAULT 0,
            created TEXT NOT NULL,
            updated TEXT NOT NULL
        )
    """)

    # Workflow snapshots: append-only, one row per detected change
    await db.execute("""
        CREATE TABLE IF NOT EXISTS workflows (
            id TEXT PRIMARY KEY,
            instance_id TEXT NOT NULL,
            workflow_id TEXT NOT NULL,
            workflow_name TEXT NOT NULL DEFAULT '',
            active INTEGER NOT NULL DEFAULT 0,
            created_at TEXT,
            updated_at TEXT,
            number_of_nodes INTEGER NOT NULL DEFAULT 0,
            workflow_data TEXT NOT NULL DEFAULT '{}',
            nodes_json TEXT NOT NULL DEFAULT '[]',
            created TEXT NOT NULL,
            FOREIGN KEY (instance_id) REFERENCES instances(id) ON DELETE CASCADE
        )
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_workflows_instance_workflow
        ON workflows(instance_id, workflow_id, created)
    """)

    # Webhooks: replaced wholesale per (instance, workflow) on every change
    await db.execute("""
        CREATE TABLE IF NOT EXISTS webhooks (
            id TEXT PRIMARY KEY,
            instance_id TEXT NOT NULL,
            workflow_id TEXT NOT NULL,
            workflow_name TEXT NOT NULL DEFAULT '',
            node_id TEXT NOT NULL,
            node_name TEXT NOT NULL DEFAULT '',
            webhook_id TEXT,
            methods_json TEXT NOT NULL DEFAULT '[]',
            path TEXT NOT NULL DEFAULT '',
            webhook_url TEXT NOT NULL DEFAULT '',
            options_json TEXT NOT NULL DEFAULT '{}',
            notes TEXT NOT NULL DEFAULT '',
            route TEXT NOT NULL DEFAULT '',
            auth_type TEXT NOT NULL DEFAULT '',
            credentials_json TEXT,
            created TEXT NOT NULL,
            FOREIGN KEY (instance_id) REFERENCES instances(id) ON DELETE CASCADE
        )
    """)

    await db.execute("""
        CREATE INDEX IF NOT EXISTS idx_webhooks_instance_workflow
        ON webhooks(instance_id, workflow_id)
    """)

    await db.commit()
