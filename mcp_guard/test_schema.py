"""Tests for JSON schema translation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from mcp_guard.schema import translate

FILE_SCHEMA = {
    "type": "object",
    "properties": {
        "path": {"type": "string", "description": "File to read"},
        "limit": {"type": "integer"},
        "ratio": {"type": "number"},
        "follow": {"type": "boolean"},
        "tags": {"type": "array", "items": {"type": "string"}},
        "options": {
            "type": "object",
            "properties": {"encoding": {"type": "string"}},
            "required": ["encoding"],
        },
        "anything": {"type": ["string", "null"]},
    },
    "required": ["path"],
}


def test_primitives_and_required():
    model = translate(FILE_SCHEMA)

    parsed = model.model_validate({"path": "/etc/hosts", "limit": 3, "ratio": 0.5, "follow": True})
    assert parsed.path == "/etc/hosts"
    assert parsed.limit == 3
    assert parsed.options is None

    with pytest.raises(ValidationError):
        model.model_validate({"limit": 3})


def test_wrong_primitive_type_rejected():
    model = translate(FILE_SCHEMA)
    with pytest.raises(ValidationError):
        model.model_validate({"path": "x", "limit": "many"})


def test_array_elements_unconstrained():
    model = translate(FILE_SCHEMA)
    parsed = model.model_validate({"path": "x", "tags": [1, "two", None]})
    assert parsed.tags == [1, "two", None]


def test_nested_object_recurses():
    model = translate(FILE_SCHEMA)
    model.model_validate({"path": "x", "options": {"encoding": "utf-8"}})
    with pytest.raises(ValidationError):
        model.model_validate({"path": "x", "options": {}})


def test_unrecognized_type_accepts_anything():
    model = translate(FILE_SCHEMA)
    assert model.model_validate({"path": "x", "anything": {"a": 1}}).anything == {"a": 1}


def test_json_schema_keeps_wire_names():
    schema = translate(
        {"type": "object", "properties": {"from": {"type": "string"}, "max-items": {"type": "integer"}}}
    ).model_json_schema()
    assert set(schema["properties"]) == {"from", "max-items"}
    assert "required" not in schema


def test_awkward_property_names_validate_by_wire_name():
    model = translate(
        {
            "type": "object",
            "properties": {"class": {"type": "string"}, "_id": {"type": "integer"}, "json": {"type": "string"}},
            "required": ["class", "_id", "json"],
        }
    )
    parsed = model.model_validate({"class": "a", "_id": 1, "json": "{}"})
    assert parsed.model_dump(by_alias=True) == {"class": "a", "_id": 1, "json": "{}"}


@pytest.mark.parametrize(
    "schema",
    [
        None,
        "not a schema",
        42,
        [],
        {},
        {"type": "string"},
        {"type": "object"},
        {"type": "object", "properties": "nope"},
        {"type": "object", "properties": {"a": "nope"}, "required": "a"},
        {"type": "object", "properties": {"a": {"type": 7}}, "required": [1, None]},
        {"type": "object", "properties": {"a": {"type": "object", "properties": []}}},
    ],
)
def test_never_raises_and_accepts_extra(schema):
    model = translate(schema)
    parsed = model.model_validate({"unexpected": 1})
    assert parsed.model_extra == {"unexpected": 1}


@pytest.mark.parametrize("args", [{"path": "x", "limit": "5"}, {"path": "x", "follow": "true"}, {"path": 5}])
def test_no_coercion_from_strings(args):
    with pytest.raises(ValidationError):
        translate(FILE_SCHEMA).model_validate(args)


def test_integer_accepted_for_number():
    assert translate(FILE_SCHEMA).model_validate({"path": "x", "ratio": 1}).ratio == 1
