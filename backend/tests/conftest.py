"""Pytest configuration and fixtures."""

import os
import tempfile
from collections.abc import AsyncGenerator, Generator
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from n8n_monitor.connectors import N8nClient
from n8n_monitor.db.database import close_database, get_db, init_database
from n8n_monitor.db.monitor_store import MonitorStore
from n8n_monitor.db.secrets import _get_fernet
from n8n_monitor.main import app
from n8n_monitor.models import SCHEDULE_TRIGGER_NODE_TYPE, WEBHOOK_NODE_TYPE, InstanceCreate


class FakeClock:
    """Settable clock handed to the reconciler and scheduler."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeN8nServer:
    """In-memory stand-in for the public API of one or more n8n instances.

    Instances are keyed by hostname. ``workflows`` holds the raw JSON the
    listing endpoint returns; hostnames in ``down`` refuse connections.
    """

    def __init__(self):
        self.workflows: dict[str, list[dict[str, Any]]] = {}
        self.api_keys: dict[str, str] = {}
        self.down: set[str] = set()
        self.page_size: int | None = None
        self.requests: list[httpx.Request] = []

    def add_instance(self, hostname: str, api_key: str = "test-key") -> None:
        self.workflows.setdefault(hostname, [])
        self.api_keys[hostname] = api_key

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        hostname = request.url.host

        if hostname in self.down:
            raise httpx.ConnectError("connection refused", request=request)
        if hostname not in self.api_keys:
            raise httpx.ConnectError(f"unknown host {hostname}", request=request)
        if request.headers.get("X-N8N-API-KEY") != self.api_keys[hostname]:
            return httpx.Response(401, json={"message": "unauthorized"})

        path = request.url.path
        workflows = self.workflows[hostname]

        if path == "/api/v1/health":
            return httpx.Response(200, json={"status": "ok"})

        if path == "/api/v1/workflows":
            if self.page_size is None:
                return httpx.Response(200, json={"data": workflows, "nextCursor": None})
            start = int(request.url.params.get("cursor", "0"))
            end = start + self.page_size
            next_cursor = str(end) if end < len(workflows) else None
            return httpx.Response(200, json={"data": workflows[start:end], "nextCursor": next_cursor})

        if path.startswith("/api/v1/workflows/"):
            workflow_id = path.rsplit("/", 1)[1]
            for workflow in workflows:
                if str(workflow["id"]) == workflow_id:
                    return httpx.Response(200, json=workflow)
            return httpx.Response(404, json={"message": "Not Found"})

        return httpx.Response(404, json={"message": "Not Found"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def build_node(
    name: str = "Webhook",
    node_type: str = WEBHOOK_NODE_TYPE,
    node_id: str | None = None,
    path: str = "hook",
    method: str | None = "POST",
    notes: str | None = None,
    credentials: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """A node as the n8n API returns it."""
    parameters: dict[str, Any] = {}
    if node_type == WEBHOOK_NODE_TYPE:
        parameters["path"] = path
        if method:
            parameters["httpMethod"] = method
    elif node_type == SCHEDULE_TRIGGER_NODE_TYPE:
        parameters["rule"] = {"interval": [{"field": "hours"}]}

    node: dict[str, Any] = {
        "id": node_id or f"node-{name.lower().replace(' ', '-')}",
        "name": name,
        "type": node_type,
        "typeVersion": 1,
        "position": [250, 300],
        "parameters": parameters,
    }
    if notes is not None:
        node["notes"] = notes
    if credentials is not None:
        node["credentials"] = credentials
    return node


def build_workflow(
    workflow_id: str = "wf-1",
    name: str = "My Workflow",
    active: bool = True,
    nodes: list[dict[str, Any]] | None = None,
    created_at: str = "2024-01-01T00:00:00.000Z",
    updated_at: str = "2024-01-15T10:00:00.000Z",
) -> dict[str, Any]:
    """A workflow as the n8n API returns it."""
    return {
        "id": workflow_id,
        "name": name,
        "active": active,
        "createdAt": created_at,
        "updatedAt": updated_at,
        "nodes": nodes if nodes is not None else [],
        "connections": {},
        "settings": {"executionOrder": "v1"},
    }


async def corrupt_api_key(instance_id: str) -> None:
    """Overwrite a stored API key with ciphertext no key can decrypt."""
    db = await get_db()
    await db.execute(
        "UPDATE instances SET api_key_encrypted = ? WHERE id = ?", ("garbage", instance_id)
    )
    await db.commit()


@pytest.fixture(autouse=True)
async def setup_test_db():
    """Set up a test database for each test."""
    # Create a temporary database file
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    # Initialize the database
    await init_database(db_path)

    yield

    # Clean up
    await close_database()
    os.unlink(db_path)


@pytest.fixture
def secrets_key(monkeypatch) -> Generator[str, None, None]:
    """Pin SECRETS_KEY to a known value for the duration of a test."""
    monkeypatch.setenv("SECRETS_KEY", "old-secrets-key")
    _get_fernet.cache_clear()
    yield "old-secrets-key"
    _get_fernet.cache_clear()


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


@pytest.fixture
def store() -> MonitorStore:
    return MonitorStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def fake_n8n() -> FakeN8nServer:
    server = FakeN8nServer()
    server.add_instance("alpha.example.com")
    server.add_instance("beta.example.com")
    return server


@pytest.fixture
def n8n_client(fake_n8n: FakeN8nServer) -> N8nClient:
    return N8nClient(transport=fake_n8n.transport())


@pytest.fixture
async def alpha(store: MonitorStore):
    """A registered instance served by the fake n8n server."""
    return await store.create_instance(
        InstanceCreate(host="https://alpha.example.com", api_key="test-key")
    )


@pytest.fixture
async def beta(store: MonitorStore):
    """A second registered instance served by the fake n8n server."""
    return await store.create_instance(
        InstanceCreate(host="https://beta.example.com", api_key="test-key")
    )
