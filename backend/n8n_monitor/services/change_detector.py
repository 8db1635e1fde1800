"""Decide whether a remote workflow differs from its last stored snapshot.

Only ``createdAt``, ``updatedAt`` and ``active`` are compared. An edit on the
remote side that does not bump ``updatedAt`` goes unnoticed until something
else changes.
"""

from n8n_monitor.models import RemoteWorkflow, WorkflowSnapshot


def has_changed(remote: RemoteWorkflow, stored: WorkflowSnapshot | None) -> bool:
    """Return True if ``remote`` should be persisted as a new snapshot."""
    if stored is None:
        return True

    return (
        remote.created_at != stored.created_at
        or remote.updated_at != stored.updated_at
        or remote.active != stored.active
    )
