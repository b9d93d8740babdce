"""Command-line interface for the MCP guardrail gateway."""

from __future__ import annotations

import asyncio
import functools
import json
from collections.abc import Callable
from typing import Annotated, Any

import structlog
import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from mcp_guard.config import GatewayConfig, load_config
from mcp_guard.descriptors import LocalBackend, RemoteBackend, parse_descriptors
from mcp_guard.errors import ConfigurationError
from mcp_guard.logging_config import LogLevel, make_logging_callback
from mcp_guard.orchestrator import BackendStatus, ConnectionReport, Gateway

log = structlog.get_logger(__name__)

app = typer.Typer(help="Aggregate MCP servers behind one endpoint with moderated tool outputs")
app.callback()(make_logging_callback(default_level=LogLevel.INFO))

# stdout is the MCP channel while serving; everything human-readable goes to stderr.
err_console = Console(stderr=True)
console = Console()

ServersArg = Annotated[
    str,
    typer.Argument(help='JSON array of server configs, e.g. \'[{"name": "fs", "command": "npx -y server"}]\''),
]


def async_run(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator to run an async Typer command via asyncio.run.

    Usage:
        @app.command()
        @async_run
        async def cmd_example(...) -> None:
            await some_async_operation()
    """

    @functools.wraps(fn)
    def _wrapper(*args, **kwargs):
        return asyncio.run(fn(*args, **kwargs))

    return _wrapper


def _load(servers: str) -> tuple[GatewayConfig, list[LocalBackend | RemoteBackend]]:
    """Validate settings and descriptors; both must pass before any backend is contacted."""
    load_dotenv()
    try:
        config = load_config()
        descriptors = parse_descriptors(servers)
    except ConfigurationError as e:
        err_console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(code=2) from e
    return config, descriptors


def _log_report(report: ConnectionReport) -> None:
    log.info(
        "connection_report",
        configured=report.configured,
        connected=report.connected,
        failed=[o.name for o in report.failed],
    )


@app.command()
@async_run
async def serve(servers: ServersArg) -> None:
    """Connect to all servers and serve the aggregate endpoint over stdio."""
    config, descriptors = _load(servers)
    async with Gateway(config) as gateway:
        report = await gateway.connect_all(descriptors)
        _log_report(report)
        await gateway.server.run_async(transport="stdio", show_banner=False)


@app.command()
@async_run
async def check(
    servers: ServersArg,
    as_json: Annotated[bool, typer.Option("--json", help="Print the report as JSON")] = False,
) -> None:
    """Connect to all servers, print the connection report, and exit."""
    config, descriptors = _load(servers)
    async with Gateway(config) as gateway:
        report = await gateway.connect_all(descriptors)
        _log_report(report)

    if as_json:
        console.print_json(json.dumps(report.to_dict()))
    else:
        table = Table(title=f"Connected {report.connected}/{report.configured} servers")
        for column in ("Server", "Status", "Transport", "Tools", "Prompts", "Resources", "Error"):
            table.add_column(column)
        for o in report.outcomes:
            status = "[green]connected[/green]" if o.status is BackendStatus.CONNECTED else "[red]failed[/red]"
            table.add_row(
                o.name, status, o.transport or "-", str(o.tools), str(o.prompts), str(o.resources), o.error or ""
            )
        console.print(table)

    if report.failed:
        raise typer.Exit(code=1)


def main() -> None:
    app()
