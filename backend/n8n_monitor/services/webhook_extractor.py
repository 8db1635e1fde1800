"""Derive webhook endpoints from a workflow's node graph.

Every ``n8n-nodes-base.webhook`` node becomes one webhook record. Authors can
pin an explicit route for a webhook by writing a ``route:`` line in the node's
notes, for example::

    Creates a user
    route: /users/{id}

The text after the marker on the first line containing it, trimmed, is the
route label. Notes without the marker yield an empty label. Nothing else in
the notes is interpreted.
"""

from n8n_monitor.models import Instance, RemoteNode, RemoteWorkflow, WebhookCreate, WebhookCredentials

ROUTE_MARKER = "route:"


def extract_route(notes: str) -> str:
    """Return the route label declared in free-text node notes, or ""."""
    # Lines end at "\n" only; a trailing "\r" is trimmed with the label
    for line in notes.split("\n"):
        if ROUTE_MARKER in line:
            return line.split(ROUTE_MARKER, 1)[1].strip()
    return ""


def _first_credential(node: RemoteNode) -> WebhookCredentials | None:
    # Only the first attached credential is kept, in source order
    for cred_type, cred in node.credentials.items():
        return WebhookCredentials(type=cred_type, id=cred.id, name=cred.name)
    return None


def extract_webhooks(workflow: RemoteWorkflow, instance: Instance) -> list[WebhookCreate]:
    """Build webhook records for every webhook-trigger node of a workflow."""
    webhooks = []
    for node in workflow.nodes:
        if not node.is_webhook:
            continue

        params = node.parameters
        webhooks.append(
            WebhookCreate(
                instance_id=instance.id,
                workflow_id=workflow.id,
                workflow_name=workflow.name,
                node_id=node.id,
                node_name=node.name,
                webhook_id=node.webhook_id,
                methods=[params.http_method],
                path=params.path,
                webhook_url=instance.webhook_url(params.path),
                options=params.options,
                notes=node.notes,
                route=extract_route(node.notes),
                auth_type=params.authentication,
                credentials=_first_credential(node),
            )
        )
    return webhooks
