"""Open one client session to one backend.

Local backends are spawned over stdio in a single attempt. Remote backends try
streamable HTTP first and fall back to SSE; if both fail, the raised error
carries both causes.
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import AsyncExitStack
from dataclasses import dataclass, field

import mcp_types
from fastmcp.client import Client
from fastmcp.client.transports import ClientTransport, SSETransport, StdioTransport, StreamableHttpTransport

from mcp_guard import __version__
from mcp_guard.descriptors import BackendName, LocalBackend, RemoteBackend, TransportKind
from mcp_guard.errors import BackendConnectionError

logger = logging.getLogger(__name__)


@dataclass
class BackendConnection:
    """An open session to one backend. Closed only at gateway shutdown."""

    name: BackendName
    client: Client
    kind: TransportKind
    transport: str  # "stdio", "streamable-http" or "sse"
    _stack: AsyncExitStack = field(repr=False)

    async def aclose(self) -> None:
        try:
            await self._stack.aclose()
        except Exception as e:
            logger.exception(f"Error closing connection to '{self.name}'", exc_info=e)


def client_name(backend: BackendName) -> str:
    return f"wrapper-client-{backend}"


def local_transport(descriptor: LocalBackend) -> StdioTransport:
    """Stdio transport whose environment is the ambient one overlaid by the descriptor's."""
    return StdioTransport(
        command=descriptor.command,
        args=list(descriptor.args),
        env={**os.environ, **descriptor.env},
        keep_alive=False,
    )


async def _open_session(transport: ClientTransport, name: BackendName, timeout: float) -> tuple[Client, AsyncExitStack]:
    """Connect and initialize a client over ``transport``, bounded by ``timeout``.

    On failure the partially opened stack is closed before re-raising.
    """
    stack = AsyncExitStack()
    client = Client(
        transport,
        name=client_name(name),
        client_info=mcp_types.Implementation(name=client_name(name), version=__version__),
        init_timeout=timeout,
    )
    try:
        async with asyncio.timeout(timeout):
            await stack.enter_async_context(client)
    except Exception:
        await stack.aclose()
        raise
    return client, stack


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


async def connect(descriptor: LocalBackend | RemoteBackend, timeout: float) -> BackendConnection:
    """Open a session to the backend described by ``descriptor``.

    Raises:
        BackendConnectionError: If no transport could be established
    """
    if isinstance(descriptor, LocalBackend):
        return await _connect_local(descriptor, timeout)
    return await _connect_remote(descriptor, timeout)


async def _connect_local(descriptor: LocalBackend, timeout: float) -> BackendConnection:
    logger.debug(f"Spawning backend '{descriptor.name}': {descriptor.command} {descriptor.args}")
    try:
        client, stack = await _open_session(local_transport(descriptor), descriptor.name, timeout)
    except Exception as e:
        raise BackendConnectionError(
            descriptor.name, f"Failed to connect to server {descriptor.name}: {_describe(e)}", causes=(e,)
        ) from e
    return BackendConnection(
        name=descriptor.name, client=client, kind=TransportKind.LOCAL, transport="stdio", _stack=stack
    )


async def _connect_remote(descriptor: RemoteBackend, timeout: float) -> BackendConnection:
    try:
        client, stack = await _open_session(StreamableHttpTransport(descriptor.url), descriptor.name, timeout)
        return BackendConnection(
            name=descriptor.name, client=client, kind=TransportKind.REMOTE, transport="streamable-http", _stack=stack
        )
    except Exception as http_error:
        logger.info(f"Streamable HTTP failed for '{descriptor.name}', trying SSE: {_describe(http_error)}")
        try:
            client, stack = await _open_session(SSETransport(descriptor.url), descriptor.name, timeout)
        except Exception as sse_error:
            raise BackendConnectionError(
                descriptor.name,
                f"Failed to connect to remote server {descriptor.url}: "
                f"StreamableHTTP error: {_describe(http_error)}, SSE error: {_describe(sse_error)}",
                causes=(http_error, sse_error),
            ) from ExceptionGroup(f"all transports failed for {descriptor.url}", [http_error, sse_error])
        return BackendConnection(
            name=descriptor.name, client=client, kind=TransportKind.REMOTE, transport="sse", _stack=stack
        )
