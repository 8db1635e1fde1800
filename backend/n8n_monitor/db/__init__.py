"""Database module."""

from n8n_monitor.db.base import PersistenceError, PersistenceGateway
from n8n_monitor.db.database import close_database, get_db, init_database
from n8n_monitor.db.monitor_store import MonitorStore, monitor_store

__all__ = [
    "get_db",
    "init_database",
    "close_database",
    "PersistenceError",
    "PersistenceGateway",
    "MonitorStore",
    "monitor_store",
]
