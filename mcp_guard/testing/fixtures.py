"""Pytest fixtures for gateway tests.

Register via ``from mcp_guard.testing.fixtures import *`` in conftest.py.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import pytest
from fastmcp.client import Client

from mcp_guard.config import GatewayConfig
from mcp_guard.moderation import GuardClient, ModerationGate
from mcp_guard.orchestrator import Gateway
from mcp_guard.registry import CapabilityRegistry
from mcp_guard.testing.backends import inproc_connection, make_filesystem_server

GUARD_TEST_URL = "https://guard.test"
GUARD_TEST_KEY = "test-key"

# Returns an httpx.Response, or an awaitable of one
GuardHandler = Callable[[httpx.Request], Any]


def guard_response(*, heuristic: bool = False, classifier: bool = False) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "injection_heuristic": {"flagged": heuristic, "info": {}},
            "injection_guard": {"flagged": classifier, "info": {}},
        },
    )


@pytest.fixture
def guard_requests() -> list[httpx.Request]:
    """Requests received by the fake classifier, in order."""
    return []


@pytest.fixture
async def make_gate(guard_requests):
    """Factory: ModerationGate whose classifier is served by ``handler``.

    The handler receives each request (already recorded in guard_requests).
    """
    clients: list[GuardClient] = []

    def _make(handler: GuardHandler, timeout: float = 5.0) -> ModerationGate:
        async def _record(request: httpx.Request) -> httpx.Response:
            guard_requests.append(request)
            response = handler(request)
            if not isinstance(response, httpx.Response):
                response = await response
            return response

        client = GuardClient(
            GUARD_TEST_KEY, base_url=GUARD_TEST_URL, timeout=timeout, transport=httpx.MockTransport(_record)
        )
        clients.append(client)
        config = GatewayConfig(moderation_enabled=True, credential=GUARD_TEST_KEY, guard_api_url=GUARD_TEST_URL)
        return ModerationGate(config, client=client)

    yield _make
    for client in clients:
        await client.aclose()


@pytest.fixture
def disabled_gate() -> ModerationGate:
    return ModerationGate(GatewayConfig())


@pytest.fixture
async def filesystem_connection():
    """Open in-memory connection to the filesystem test backend."""
    connection = await inproc_connection("filesystem", make_filesystem_server())
    try:
        yield connection
    finally:
        await connection.aclose()


@pytest.fixture
async def gateway():
    """Gateway with moderation disabled; closed automatically."""
    async with Gateway(GatewayConfig()) as gw:
        yield gw


@pytest.fixture
def registry(gateway) -> CapabilityRegistry:
    return gateway.registry


@pytest.fixture
async def gateway_client(gateway):
    """Client connected to the gateway's aggregate endpoint."""
    async with Client(gateway.server) as client:
        yield client
