"""Shared dependencies for API routes."""

from functools import lru_cache

from n8n_monitor.connectors import N8nClient
from n8n_monitor.db import PersistenceGateway, monitor_store
from n8n_monitor.services.scheduler import ReconciliationScheduler, get_scheduler


def get_store() -> PersistenceGateway:
    """The process-wide persistence gateway."""
    return monitor_store


@lru_cache(maxsize=1)
def get_n8n_client() -> N8nClient:
    """The process-wide n8n API client."""
    return N8nClient()


def get_reconciliation_scheduler() -> ReconciliationScheduler:
    return get_scheduler()
