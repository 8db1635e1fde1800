"""Client for the n8n public REST API.

One client serves every monitored instance: each call opens a short-lived
``httpx.AsyncClient`` configured for that instance (API key header, TLS
verification). No retries happen here; a failed call is retried by the
scheduler on the instance's next due tick.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from n8n_monitor.connectors.base import DecodeError, RemoteAPIError, TransportError
from n8n_monitor.models import Instance, RemoteWorkflow, WorkflowListResponse

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-N8N-API-KEY"
REQUEST_TIMEOUT = 30.0  # seconds, shared by every request

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def clean_name(value: str) -> str:
    """Reduce a name to ``[A-Za-z0-9_-]``, turning spaces into underscores."""
    return _UNSAFE_CHARS.sub("", value.replace(" ", "_"))


def file_name_from_host(host: str) -> str:
    """Filesystem-friendly name for an instance host."""
    host = host.replace("https://", "").replace("http://", "")
    return clean_name(host.replace(".", "_"))


class N8nClient:
    """Fetches workflow state from remote n8n instances."""

    system = "n8n"

    def __init__(
        self,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        debug_dir: str | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
            debug_dir: Where to dump raw workflow listings when N8N_DEBUG=true
        """
        self._timeout = timeout
        self._transport = transport
        self._debug_dir = debug_dir or os.getenv("N8N_DEBUG_DIR", ".")

    def _http_client(self, instance: Instance) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers={API_KEY_HEADER: instance.api_key},
            timeout=self._timeout,
            verify=not instance.ignore_ssl_errors,
            transport=self._transport,
        )

    async def _get(
        self, instance: Instance, url: str, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        """GET a URL, mapping every failure onto the connector error taxonomy."""
        logger.debug(f"GET {url} params={params}")
        try:
            async with self._http_client(instance) as client:
                response = await client.get(url, params=params)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(
                f"error making request to {url}: {str(e) or type(e).__name__}",
                system=self.system,
            ) from e

        if response.status_code != httpx.codes.OK:
            raise RemoteAPIError(response.status_code, response.text, system=self.system)

        return response

    def _decode(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"error decoding response: {e}", system=self.system) from e

    async def is_healthy(self, instance: Instance) -> bool:
        """Return True when the instance's health endpoint answers 200.

        Never raises.
        """
        try:
            await self._get(instance, instance.health_url)
        except (TransportError, RemoteAPIError) as e:
            logger.debug(f"Health check failed for {instance.host}: {e}")
            return False
        return True

    async def get_workflows(self, instance: Instance) -> list[RemoteWorkflow]:
        """Fetch every workflow of an instance, following pagination cursors.

        Raises:
            TransportError: Connection failure or timeout
            RemoteAPIError: Non-200 response
            DecodeError: Malformed JSON or unexpected payload shape
        """
        workflows: list[RemoteWorkflow] = []
        params: dict[str, Any] | None = None
        page = 0

        while True:
            response = await self._get(instance, instance.workflows_url, params=params)
            self._dump_debug(instance, response.content, page)

            try:
                listing = WorkflowListResponse.model_validate(self._decode(response))
            except ValidationError as e:
                raise DecodeError(f"error decoding response: {e}", system=self.system) from e

            workflows.extend(listing.data)
            if not listing.next_cursor:
                break
            params = {"cursor": listing.next_cursor}
            page += 1

        for workflow in workflows:
            workflow.instance_id = instance.id

        logger.debug(f"Fetched {len(workflows)} workflow(s) from {instance.host}")
        return workflows

    async def get_workflow(self, instance: Instance, workflow_id: str) -> RemoteWorkflow:
        """Fetch one workflow with its full node graph."""
        response = await self._get(instance, instance.workflow_url(workflow_id))

        try:
            workflow = RemoteWorkflow.model_validate(self._decode(response))
        except ValidationError as e:
            raise DecodeError(f"error decoding response: {e}", system=self.system) from e

        workflow.instance_id = instance.id
        return workflow

    async def download_workflows(self, instance: Instance) -> dict[str, str]:
        """Download every workflow in full.

        Returns:
            Mapping of ``workflow_<name>.json`` file names to pretty-printed JSON
        """
        result: dict[str, str] = {}
        for summary in await self.get_workflows(instance):
            workflow = await self.get_workflow(instance, summary.id)

            filename = f"workflow_{clean_name(workflow.name)}.json"
            if filename in result:
                filename = f"workflow_{clean_name(workflow.name)}_{clean_name(workflow.id)}.json"

            result[filename] = workflow.to_json(indent=2)

        return result

    def _dump_debug(self, instance: Instance, content: bytes, page: int) -> None:
        """Save a raw workflow listing to disk when N8N_DEBUG is enabled."""
        if os.getenv("N8N_DEBUG", "").lower() != "true":
            return

        suffix = f"_{page}" if page else ""
        path = Path(self._debug_dir) / f"{file_name_from_host(instance.host)}_workflows{suffix}.json"
        try:
            path.write_bytes(content)
        except OSError as e:
            logger.warning(f"Failed to write debug file {path}: {e}")
