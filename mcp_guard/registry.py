"""Republish a connected backend's tools, prompts and resources on the gateway.

Each backend capability becomes a gateway component named
``{backend}_{original}`` that forwards to the backend session:

- GatewayTool: validates arguments, calls the backend tool, then routes the
  result (or the normalized error) through the moderation gate.
- GatewayPrompt: forwards prompts/get, result unmodified.
- GatewayResource / GatewayResourceTemplate: forward resources/read, result
  unmodified.

Listing each capability kind is independent: a backend that does not support
prompts (or fails to list them) still gets its tools and resources published.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import mcp_types
from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.prompts import Message, Prompt, PromptResult
from fastmcp.prompts.base import PromptArgument
from fastmcp.resources import Resource, ResourceTemplate
from fastmcp.resources.base import ResourceContent, ResourceResult
from fastmcp.tools.base import Tool, ToolResult
from pydantic import BaseModel, ValidationError

from mcp_guard.descriptors import BackendName
from mcp_guard.errors import CapabilityEnumerationError, InvocationError, ModerationCallError
from mcp_guard.moderation import ModerationGate
from mcp_guard.naming import build_published_name
from mcp_guard.schema import translate
from mcp_guard.transport import BackendConnection

logger = logging.getLogger(__name__)


class CapabilityKind(StrEnum):
    TOOL = "tool"
    PROMPT = "prompt"
    RESOURCE = "resource"


@dataclass(frozen=True)
class CapabilityRecord:
    backend_name: BackendName
    original_name: str
    published_name: str
    kind: CapabilityKind
    schema: dict[str, Any] | None = None


# Enumeration outcome: the backend either listed the kind, or it did not.
@dataclass(frozen=True)
class Present[T]:
    items: list[T]


@dataclass(frozen=True)
class Absent:
    error: CapabilityEnumerationError


type Enumeration[T] = Present[T] | Absent


@dataclass
class RegistrationSummary:
    backend: BackendName
    registered: list[CapabilityRecord] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    absent: dict[CapabilityKind, str] = field(default_factory=dict)

    def count(self, kind: CapabilityKind) -> int:
        return sum(1 for r in self.registered if r.kind is kind)


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


def error_result(text: str) -> mcp_types.CallToolResult:
    return mcp_types.CallToolResult(content=[mcp_types.TextContent(type="text", text=text)], is_error=True)


class GatewayTool(Tool):
    """A backend tool republished on the gateway, moderated on the way back."""

    def __init__(
        self,
        connection: BackendConnection,
        original_name: str,
        gate: ModerationGate,
        validator: type[BaseModel],
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self._connection = connection
        self._original_name = original_name
        self._gate = gate
        self._validator = validator

    async def run(self, arguments: dict[str, Any]) -> ToolResult:
        try:
            self._validator.model_validate(arguments)
        except ValidationError as e:
            raise ToolError(f"Invalid arguments for tool {self.name}: {e}") from e

        try:
            result = await self._connection.client.call_tool_mcp(name=self._original_name, arguments=arguments)
        except Exception as e:
            error = InvocationError(f"Error executing tool: {_describe(e)}")
            logger.warning(f"Backend '{self._connection.name}' failed tool {self._original_name!r}: {error}")
            result = error_result(str(error))

        try:
            moderated = await self._gate.moderate(result)
        except ModerationCallError as e:
            logger.error(f"Moderation failed for tool {self.name}: {e}")
            raise ToolError(str(e)) from e
        return ToolResult.from_mcp_result(moderated)


class GatewayPrompt(Prompt):
    """A backend prompt republished on the gateway. Never moderated."""

    def __init__(self, connection: BackendConnection, original_name: str, **kwargs: Any):
        super().__init__(**kwargs)
        self._connection = connection
        self._original_name = original_name

    async def render(self, arguments: dict[str, Any] | None = None) -> PromptResult:
        args = {k: str(v) for k, v in (arguments or {}).items() if v is not None}
        try:
            result = await self._connection.client.get_prompt(self._original_name, args)
        except Exception as e:
            error = InvocationError(f"Error executing prompt: {_describe(e)}")
            logger.warning(f"Backend '{self._connection.name}' failed prompt {self._original_name!r}: {error}")
            return PromptResult([Message(str(error), role="assistant")], description=self.description)

        messages = [Message(content=m.content, role=m.role) for m in result.messages]
        return PromptResult(messages, description=result.description, meta=result.meta)


async def _read_backend_resource(connection: BackendConnection, uri: str) -> ResourceResult:
    try:
        result = await connection.client.read_resource_mcp(uri)
    except Exception as e:
        error = InvocationError(f"Error reading resource: {_describe(e)}")
        logger.warning(f"Backend '{connection.name}' failed reading {uri!r}: {error}")
        return ResourceResult(str(error))

    contents: list[ResourceContent] = []
    for item in result.contents:
        if isinstance(item, mcp_types.TextResourceContents):
            contents.append(ResourceContent(content=item.text, mime_type=item.mime_type, meta=item.meta))
        elif isinstance(item, mcp_types.BlobResourceContents):
            contents.append(
                ResourceContent(content=base64.b64decode(item.blob), mime_type=item.mime_type, meta=item.meta)
            )
    return ResourceResult(contents, meta=result.meta)


class GatewayResource(Resource):
    """A backend resource republished on the gateway. Never moderated."""

    def __init__(self, connection: BackendConnection, backend_uri: str, **kwargs: Any):
        super().__init__(**kwargs)
        self._connection = connection
        self._backend_uri = backend_uri

    async def read(self) -> ResourceResult:
        return await _read_backend_resource(self._connection, self._backend_uri)


class GatewayResourceTemplate(ResourceTemplate):
    """A parameterized backend resource; reads forward the caller-resolved URI."""

    def __init__(self, connection: BackendConnection, **kwargs: Any):
        super().__init__(**kwargs)
        self._connection = connection

    async def create_resource(self, uri: str, params: dict[str, Any]) -> Resource:
        return GatewayResource(
            connection=self._connection,
            backend_uri=uri,
            uri=uri,
            name=self.name,
            description=self.description,
            mime_type=self.mime_type,
        )


def is_templated(uri: str) -> bool:
    return "{" in uri and "}" in uri


class CapabilityRegistry:
    """Owns the gateway's published components and the record of where each came from.

    Usage:
        registry = CapabilityRegistry(server, gate)
        summary = await registry.register_all(connection)
    """

    def __init__(self, server: FastMCP, gate: ModerationGate):
        self._server = server
        self._gate = gate
        self._records: dict[str, CapabilityRecord] = {}

    @property
    def records(self) -> list[CapabilityRecord]:
        return list(self._records.values())

    async def register_all(self, connection: BackendConnection) -> RegistrationSummary:
        """Enumerate and publish every capability kind of one backend."""
        summary = RegistrationSummary(backend=connection.name)
        client = connection.client

        tools = await self._enumerate(connection, CapabilityKind.TOOL, client.list_tools)
        if isinstance(tools, Present):
            for tool in tools.items:
                self._add(summary, CapabilityKind.TOOL, tool.name, lambda t=tool: self._tool(connection, t))
        else:
            summary.absent[CapabilityKind.TOOL] = str(tools.error)

        prompts = await self._enumerate(connection, CapabilityKind.PROMPT, client.list_prompts)
        if isinstance(prompts, Present):
            for prompt in prompts.items:
                self._add(summary, CapabilityKind.PROMPT, prompt.name, lambda p=prompt: self._prompt(connection, p))
        else:
            summary.absent[CapabilityKind.PROMPT] = str(prompts.error)

        resources = await self._enumerate(connection, CapabilityKind.RESOURCE, client.list_resources)
        if isinstance(resources, Present):
            for resource in resources.items:
                original = resource.name or resource.uri
                self._add(summary, CapabilityKind.RESOURCE, original, lambda r=resource: self._resource(connection, r))
        else:
            summary.absent[CapabilityKind.RESOURCE] = str(resources.error)

        # Templates are optional; a backend without them contributes nothing here.
        templates = await self._enumerate(connection, CapabilityKind.RESOURCE, client.list_resource_templates)
        if isinstance(templates, Present):
            for template in templates.items:
                self._add(
                    summary, CapabilityKind.RESOURCE, template.name, lambda t=template: self._template(connection, t)
                )

        logger.info(
            f"Registered backend '{connection.name}': "
            f"{summary.count(CapabilityKind.TOOL)} tools, "
            f"{summary.count(CapabilityKind.PROMPT)} prompts, "
            f"{summary.count(CapabilityKind.RESOURCE)} resources"
        )
        return summary

    async def _enumerate[T](
        self, connection: BackendConnection, kind: CapabilityKind, fetch: Callable[[], Awaitable[list[T]]]
    ) -> Enumeration[T]:
        try:
            return Present(await fetch())
        except Exception as e:
            error = CapabilityEnumerationError(f"Listing {kind}s on '{connection.name}' failed: {_describe(e)}")
            logger.debug(str(error))
            return Absent(error)

    def _add(
        self,
        summary: RegistrationSummary,
        kind: CapabilityKind,
        original: str,
        build: Callable[[], Tool | Prompt | Resource | ResourceTemplate],
    ) -> None:
        try:
            published = build_published_name(summary.backend, original)
        except ValueError as e:
            logger.warning(f"Skipping {kind} from '{summary.backend}': {e}")
            return
        if published in self._records:
            logger.warning(f"Skipping {kind} {published!r}: name already published")
            summary.skipped.append(published)
            return
        # One bad capability never costs the backend its others.
        try:
            component = build()
            match component:
                case Tool():
                    self._server.add_tool(component)
                case Prompt():
                    self._server.add_prompt(component)
                case ResourceTemplate():
                    self._server.add_template(component)
                case Resource():
                    self._server.add_resource(component)
        except Exception as e:
            logger.warning(f"Skipping {kind} {published!r} from '{summary.backend}': {e}")
            summary.skipped.append(published)
            return

        schema = component.parameters if isinstance(component, Tool) else None
        record = CapabilityRecord(summary.backend, original, published, kind, schema)
        self._records[published] = record
        summary.registered.append(record)

    def _tool(self, connection: BackendConnection, tool: mcp_types.Tool) -> GatewayTool:
        published = build_published_name(connection.name, tool.name)
        validator = translate(tool.input_schema, model_name=published)
        return GatewayTool(
            connection=connection,
            original_name=tool.name,
            gate=self._gate,
            validator=validator,
            name=published,
            title=tool.title or published,
            description=tool.description or f"Tool from {connection.name}",
            parameters=validator.model_json_schema(),
            annotations=tool.annotations,
        )

    def _prompt(self, connection: BackendConnection, prompt: mcp_types.Prompt) -> GatewayPrompt:
        published = build_published_name(connection.name, prompt.name)
        arguments = [
            PromptArgument(name=arg.name, description=arg.description, required=bool(arg.required))
            for arg in prompt.arguments or []
            if arg.name
        ]
        return GatewayPrompt(
            connection=connection,
            original_name=prompt.name,
            name=published,
            title=prompt.title or published,
            description=prompt.description or f"Prompt from {connection.name}",
            arguments=arguments,
        )

    def _resource(
        self, connection: BackendConnection, resource: mcp_types.Resource
    ) -> GatewayResource | GatewayResourceTemplate:
        published = build_published_name(connection.name, resource.name or resource.uri)
        description = resource.description or f"Resource from {connection.name}"
        if is_templated(resource.uri):
            return GatewayResourceTemplate(
                connection=connection,
                uri_template=resource.uri,
                name=published,
                title=resource.title or published,
                description=description,
                mime_type=resource.mime_type,
                parameters={},
            )
        return GatewayResource(
            connection=connection,
            backend_uri=resource.uri,
            uri=resource.uri,
            name=published,
            title=resource.title or published,
            description=description,
            mime_type=resource.mime_type,
        )

    def _template(self, connection: BackendConnection, template: mcp_types.ResourceTemplate) -> GatewayResourceTemplate:
        published = build_published_name(connection.name, template.name)
        return GatewayResourceTemplate(
            connection=connection,
            uri_template=template.uri_template,
            name=published,
            title=template.title or published,
            description=template.description or f"Resource from {connection.name}",
            mime_type=template.mime_type,
            parameters={},
        )
