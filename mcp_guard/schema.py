"""Translate a backend's JSON schema into a pydantic validator model.

Translation is total: anything it cannot make sense of turns into a field (or a
whole model) that accepts any value, so a backend with a sloppy schema still
gets its tools republished.
"""

from __future__ import annotations

import keyword
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, create_model

logger = logging.getLogger(__name__)

_PRIMITIVES: dict[str, type] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
}

# Strict: "5" is not an integer, "true" is not a boolean
_MODEL_CONFIG = ConfigDict(extra="allow", strict=True)


def translate(schema: Any, model_name: str = "Arguments") -> type[BaseModel]:
    """Build a validator model for an MCP ``inputSchema``.

    Object schemas with ``properties`` map field by field; properties missing
    from ``required`` are optional. Non-object, absent or malformed schemas
    yield an empty model that accepts anything.
    """
    try:
        return _object_model(schema, model_name)
    except Exception as e:
        logger.debug(f"Schema for {model_name} could not be translated, accepting anything: {e}")
        return _empty_model(model_name)


def _empty_model(model_name: str) -> type[BaseModel]:
    return create_model(model_name, __config__=_MODEL_CONFIG)


def _object_model(schema: Any, model_name: str) -> type[BaseModel]:
    if not isinstance(schema, dict) or schema.get("type", "object") != "object":
        return _empty_model(model_name)
    properties = schema.get("properties")
    if not isinstance(properties, dict):
        return _empty_model(model_name)

    required = schema.get("required")
    required_names = {r for r in required if isinstance(r, str)} if isinstance(required, list) else set()

    fields: dict[str, Any] = {}
    for index, (prop_name, prop_schema) in enumerate(properties.items()):
        field_type = _field_type(prop_schema, f"{model_name}_{prop_name}")
        description = prop_schema.get("description") if isinstance(prop_schema, dict) else None
        if not isinstance(description, str):
            description = None
        if prop_name in required_names:
            info = Field(..., alias=prop_name, description=description)
        else:
            if field_type is not Any:
                field_type = field_type | None
            info = Field(None, alias=prop_name, description=description)
        attr = _python_name(prop_name, index)
        while attr in fields:
            attr += "_"
        fields[attr] = (field_type, info)

    return create_model(model_name, __config__=_MODEL_CONFIG, **fields)


def _field_type(prop_schema: Any, nested_name: str) -> Any:
    if not isinstance(prop_schema, dict):
        return Any
    kind = prop_schema.get("type")
    if not isinstance(kind, str):
        # Missing type, or a union like ["string", "null"]
        return Any
    if kind in _PRIMITIVES:
        return _PRIMITIVES[kind]
    if kind == "array":
        return list[Any]
    if kind == "object":
        return translate(prop_schema, nested_name)
    return Any


def _python_name(prop_name: str, index: int) -> str:
    """Attribute name for a property; the wire name always travels as the alias."""
    if (
        prop_name.isidentifier()
        and not keyword.iskeyword(prop_name)
        and not prop_name.startswith(("_", "model_"))
        and not hasattr(BaseModel, prop_name)
    ):
        return prop_name
    return f"field_{index}"
