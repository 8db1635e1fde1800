"""API route exposing scheduler activity."""

from typing import Annotated

from fastapi import APIRouter, Depends

from n8n_monitor.api.deps import get_reconciliation_scheduler
from n8n_monitor.models import SchedulerStats
from n8n_monitor.services.scheduler import ReconciliationScheduler

router = APIRouter(prefix="/scheduler", tags=["scheduler"])


@router.get("", response_model=SchedulerStats)
async def scheduler_stats(
    scheduler: Annotated[ReconciliationScheduler, Depends(get_reconciliation_scheduler)],
):
    """Tick count, last tick and pass outcomes since startup."""
    return scheduler.get_stats()
