"""Backend descriptors: validated config records, one per backend server.

Input is an ordered JSON array whose records are either local
(``{name, command, args?, env?}``) or remote (``{name, url}``).
The presence of ``url`` selects the remote shape.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Sequence
from enum import StrEnum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter, ValidationError, model_validator
from pydantic_core import core_schema

from mcp_guard.errors import ConfigurationError

_WHITESPACE = re.compile(r"\s+")


class TransportKind(StrEnum):
    LOCAL = "local"
    REMOTE = "remote"


class BackendName(str):
    """Normalized backend name (str subclass with normalizing constructor).

    Used as the namespace in published identifiers: {name}_{capability}

    Normalization: surrounding whitespace stripped, inner whitespace runs
    replaced with "_", lowercased.

        BackendName("My Files")  # -> "my_files"
    """

    __slots__ = ()

    _adapter: TypeAdapter = TypeAdapter(Annotated[str, Field(min_length=1, max_length=64)])

    def __new__(cls, value: str) -> BackendName:
        normalized = _WHITESPACE.sub("_", value.strip()).lower()
        return str.__new__(cls, cls._adapter.validate_python(normalized))

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        return core_schema.no_info_after_validator_function(cls, core_schema.str_schema())


class LocalBackend(BaseModel):
    """Backend spawned as a subprocess and spoken to over stdio."""

    model_config = ConfigDict(frozen=True)

    name: BackendName
    command: str = Field(min_length=1)
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _split_command(cls, data: Any) -> Any:
        # "npx -y server" with no args -> executable + argument list
        if isinstance(data, dict) and not data.get("args"):
            command = data.get("command")
            if isinstance(command, str) and _WHITESPACE.search(command.strip()):
                executable, *args = command.split()
                return {**data, "command": executable, "args": args}
        return data

    @property
    def transport_kind(self) -> TransportKind:
        return TransportKind.LOCAL


class RemoteBackend(BaseModel):
    """Backend reached over HTTP (streamable HTTP, falling back to SSE)."""

    model_config = ConfigDict(frozen=True)

    name: BackendName
    url: str = Field(min_length=1)

    @property
    def transport_kind(self) -> TransportKind:
        return TransportKind.REMOTE


def _descriptor_kind(value: Any) -> str | None:
    if isinstance(value, dict):
        if "url" in value and "command" in value:
            # Ambiguous record; no tag fails validation
            return None
        return TransportKind.REMOTE if "url" in value else TransportKind.LOCAL
    return getattr(value, "transport_kind", None)


BackendDescriptor = Annotated[
    Annotated[LocalBackend, Tag(TransportKind.LOCAL)] | Annotated[RemoteBackend, Tag(TransportKind.REMOTE)],
    Discriminator(
        _descriptor_kind,
        custom_error_type="invalid_descriptor",
        custom_error_message="Server config needs exactly one of 'command' or 'url'",
    ),
]

_descriptor_list_adapter: TypeAdapter[list[BackendDescriptor]] = TypeAdapter(list[BackendDescriptor])


def parse_descriptors(raw: str | Sequence[Any]) -> list[LocalBackend | RemoteBackend]:
    """Parse and validate an ordered list of backend descriptors.

    Accepts either a JSON document (as passed on the command line) or already
    decoded Python data.

    Raises:
        ConfigurationError: If the input is not a list of valid records or
            two records normalize to the same backend name.
    """
    try:
        if isinstance(raw, str):
            descriptors = _descriptor_list_adapter.validate_json(raw)
        else:
            descriptors = _descriptor_list_adapter.validate_python(list(raw))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid server configuration: {e}") from e

    check_unique_names(descriptors)
    return descriptors


def check_unique_names(descriptors: Sequence[LocalBackend | RemoteBackend]) -> None:
    counts = Counter(d.name for d in descriptors)
    duplicates = sorted(name for name, count in counts.items() if count > 1)
    if duplicates:
        raise ConfigurationError(f"Duplicate backend names after normalization: {', '.join(duplicates)}")
