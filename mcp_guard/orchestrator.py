"""Gateway orchestrator: connects every backend and publishes the aggregate endpoint.

Backends connect one at a time. A backend that fails to connect is logged and
recorded in the ConnectionReport; it never stops the backends after it. Each
successful connection is registered before the next one is attempted, so
capabilities appear incrementally.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from contextlib import AsyncExitStack
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any

from fastmcp import FastMCP
from fastmcp.prompts import Message, PromptResult

from mcp_guard import __version__
from mcp_guard.config import GatewayConfig
from mcp_guard.descriptors import BackendName, LocalBackend, RemoteBackend, check_unique_names
from mcp_guard.errors import BackendConnectionError
from mcp_guard.moderation import ModerationGate
from mcp_guard.registry import CapabilityKind, CapabilityRegistry
from mcp_guard.transport import BackendConnection, connect

logger = logging.getLogger(__name__)

SERVER_NAME = "GA-MCP-GUARDRAIL"
STATUS_TOOL = "_guardrail_status"
INFO_PROMPT = "_guardrail_info"
STATUS_RESOURCE = "_guardrail_status"
STATUS_URI = "guardrail://status"

INFO_TEXT = (
    "This is the GA MCP Guardrail. It aggregates multiple MCP servers and provides AI-powered moderation "
    "for tool outputs to prevent prompt injection attacks."
)

Connector = Callable[[LocalBackend | RemoteBackend, float], Awaitable[BackendConnection]]


class BackendStatus(StrEnum):
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass(frozen=True)
class BackendOutcome:
    name: BackendName
    status: BackendStatus
    transport: str | None = None
    error: str | None = None
    tools: int = 0
    prompts: int = 0
    resources: int = 0


@dataclass(frozen=True)
class ConnectionReport:
    configured: int
    connected: int
    outcomes: list[BackendOutcome] = field(default_factory=list)

    @property
    def failed(self) -> list[BackendOutcome]:
        return [o for o in self.outcomes if o.status is BackendStatus.FAILED]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class Gateway:
    """The aggregate endpoint and the backend sessions behind it.

    Usage:
        async with Gateway(config) as gateway:
            report = await gateway.connect_all(descriptors)
            await gateway.server.run_async(transport="stdio")
    """

    def __init__(self, config: GatewayConfig, *, gate: ModerationGate | None = None, connector: Connector = connect):
        self.config = config.validate()
        self.gate = gate or ModerationGate(config)
        self.server = FastMCP(
            SERVER_NAME,
            instructions=INFO_TEXT,
            version=__version__,
            on_duplicate="error",
        )
        self.registry = CapabilityRegistry(self.server, self.gate)
        self._connector = connector
        # Written only during connect_all; read-only afterwards.
        self._connections: dict[BackendName, BackendConnection] = {}
        self._stack = AsyncExitStack()
        self._register_builtins()

    async def __aenter__(self) -> Gateway:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    @property
    def connections(self) -> dict[BackendName, BackendConnection]:
        return dict(self._connections)

    def status_text(self) -> str:
        moderation = "Enabled" if self.config.moderation_enabled else "Disabled"
        return (
            "GA MCP Guardrail Status\n"
            f"Connected servers: {len(self._connections)}\n"
            f"Moderation: {moderation}\n"
            "Purpose: AI-powered security for MCP tool outputs"
        )

    def _register_builtins(self) -> None:
        # Always present so no capability list is ever empty.
        @self.server.tool(
            name=STATUS_TOOL,
            title="Guardrail Status",
            description="Report connected servers and moderation status of this guardrail",
        )
        def guardrail_status() -> str:
            return self.status_text()

        @self.server.prompt(
            name=INFO_PROMPT,
            title="Guardrail Information",
            description="Information about this MCP guardrail system",
        )
        def guardrail_info() -> PromptResult:
            return PromptResult([Message(INFO_TEXT, role="assistant")])

        @self.server.resource(
            STATUS_URI,
            name=STATUS_RESOURCE,
            title="Guardrail Status",
            description="Status information about connected servers and moderation",
            mime_type="text/plain",
        )
        def guardrail_status_resource() -> str:
            return self.status_text()

    async def connect_all(self, descriptors: Sequence[LocalBackend | RemoteBackend]) -> ConnectionReport:
        """Connect to every backend in order and register what each one offers."""
        check_unique_names(descriptors)
        outcomes = [await self._connect_one(descriptor) for descriptor in descriptors]
        report = ConnectionReport(
            configured=len(descriptors),
            connected=sum(1 for o in outcomes if o.status is BackendStatus.CONNECTED),
            outcomes=outcomes,
        )
        logger.info(f"Connected to {report.connected}/{report.configured} servers")
        for outcome in report.failed:
            logger.warning(f"Server '{outcome.name}' unavailable: {outcome.error}")
        return report

    async def _connect_one(self, descriptor: LocalBackend | RemoteBackend) -> BackendOutcome:
        if descriptor.name in self._connections:
            raise RuntimeError(f"Backend '{descriptor.name}' is already connected")
        try:
            connection = await self._connector(descriptor, self.config.connect_timeout)
        except BackendConnectionError as e:
            logger.warning(f"Failed to connect to server {descriptor.name}: {e}")
            return BackendOutcome(name=descriptor.name, status=BackendStatus.FAILED, error=str(e))

        self._stack.push_async_callback(connection.aclose)
        self._connections[descriptor.name] = connection
        try:
            summary = await self.registry.register_all(connection)
        except Exception as e:
            logger.exception(f"Registering capabilities of '{descriptor.name}' failed")
            return BackendOutcome(
                name=descriptor.name,
                status=BackendStatus.CONNECTED,
                transport=connection.transport,
                error=f"Capability registration failed: {e}",
            )
        return BackendOutcome(
            name=descriptor.name,
            status=BackendStatus.CONNECTED,
            transport=connection.transport,
            tools=summary.count(CapabilityKind.TOOL),
            prompts=summary.count(CapabilityKind.PROMPT),
            resources=summary.count(CapabilityKind.RESOURCE),
        )

    async def aclose(self) -> None:
        """Close every backend session (reverse connection order) and the classifier client."""
        try:
            await self._stack.aclose()
        finally:
            self._connections.clear()
            await self.gate.aclose()
