# Copyright (c) Syntropy Systems
"""Schema document shapes and their normalization.

Three shapes reach the pipeline:

- a bare JSON Schema object: ``{"type": "object", "properties": {...}}``
- a wrapper with a ``fields`` object (itself JSON Schema, or a bare
  property map) and optional ``views``
- a wrapper with a ``fields`` list of field definitions

:func:`normalize_schema` turns any of them into a :class:`SchemaDocument`
whose ``fields`` is always a JSON Schema object with ``properties``.
Components call it once at their boundary and work on the normalized value.
"""

from __future__ import annotations

import copy
from enum import Enum
from typing import TYPE_CHECKING, cast

from schemasmith.errors import SchemaShapeError
from schemasmith.models.base import JSONObject, JSONValue, SchemaSmithModel

if TYPE_CHECKING:
    from collections.abc import Mapping

JSON_SCHEMA_DRAFT = "http://json-schema.org/draft-07/schema#"
SPECIFICATION_VERSION = 1

_FIELD_TYPE_MAP = {
    "string": "string",
    "number": "number",
    "integer": "number",
    "boolean": "boolean",
    "object": "object",
    "array": "array",
    "date": "string",
    "datetime": "string",
}


class SchemaShape(str, Enum):
    """Which input shape a schema document was read from."""

    JSON_SCHEMA = "json_schema"
    WRAPPED = "wrapped"
    FIELD_LIST = "field_list"


class SchemaDocument(SchemaSmithModel):
    """A normalized schema document."""

    shape: SchemaShape
    fields: JSONObject
    views: JSONObject | None = None
    specification_version: int | None = None

    @property
    def properties(self) -> dict[str, JSONValue]:
        """The ``properties`` map of the JSON Schema."""
        return cast("dict[str, JSONValue]", self.fields["properties"])

    @property
    def field_names(self) -> frozenset[str]:
        """Names of all top-level fields."""
        return frozenset(self.properties)

    @property
    def required(self) -> list[str]:
        """Names listed as required, if any."""
        required = self.fields.get("required")
        if isinstance(required, list):
            return [name for name in required if isinstance(name, str)]
        return []

    def to_artifact(self, views: JSONObject | None = None) -> JSONObject:
        """Render the canonical dataset schema artifact."""
        fields = copy.deepcopy(self.fields)
        fields.setdefault("$schema", JSON_SCHEMA_DRAFT)
        fields.setdefault("type", "object")
        return {
            "actorSpecification": SPECIFICATION_VERSION,
            "fields": fields,
            "views": copy.deepcopy(views) if views else {},
        }


def is_schema_shaped(item: object) -> bool:
    """Whether ``item`` looks like something :func:`normalize_schema` accepts."""
    return isinstance(item, dict) and any(
        key in item for key in ("schema", "fields", "properties")
    )


def normalize_schema(raw: Mapping[str, JSONValue] | object) -> SchemaDocument:
    """Normalize any accepted schema shape.

    Raises:
        SchemaShapeError: If ``raw`` matches none of the accepted shapes.

    """
    if isinstance(raw, SchemaDocument):
        return raw
    if not isinstance(raw, dict):
        msg = f"Schema document must be an object, got {type(raw).__name__}"
        raise SchemaShapeError(msg)

    data = cast("dict[str, JSONValue]", raw)

    # Inference output wraps the schema under "schema"
    inner = data.get("schema")
    if isinstance(inner, dict) and "fields" not in data and "properties" not in data:
        return normalize_schema(inner)

    views = data.get("views")
    view_map = cast("JSONObject", copy.deepcopy(views)) if isinstance(views, dict) else None
    version = data.get("actorSpecification")
    spec_version = version if isinstance(version, int) else None

    fields = data.get("fields")
    if isinstance(fields, list):
        return SchemaDocument(
            shape=SchemaShape.FIELD_LIST,
            fields=_fields_from_list(fields),
            views=view_map,
            specification_version=spec_version,
        )
    if isinstance(fields, dict):
        if isinstance(fields.get("properties"), dict):
            schema = copy.deepcopy(fields)
        else:
            schema = {"type": "object", "properties": copy.deepcopy(fields)}
        return SchemaDocument(
            shape=SchemaShape.WRAPPED,
            fields=schema,
            views=view_map,
            specification_version=spec_version,
        )

    if isinstance(data.get("properties"), dict):
        schema = {
            key: copy.deepcopy(value)
            for key, value in data.items()
            if key not in ("views", "actorSpecification")
        }
        schema.setdefault("type", "object")
        return SchemaDocument(
            shape=SchemaShape.JSON_SCHEMA,
            fields=schema,
            views=view_map,
            specification_version=spec_version,
        )

    msg = 'Schema document must contain a "fields" or "properties" object'
    raise SchemaShapeError(msg)


def _fields_from_list(fields: list[JSONValue]) -> JSONObject:
    """Convert a list of field definitions into a JSON Schema object."""
    properties: dict[str, JSONValue] = {}
    required: list[JSONValue] = []

    for entry in fields:
        if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
            msg = "Every entry of a fields list must be an object with a name"
            raise SchemaShapeError(msg)
        name = cast("str", entry["name"])
        field_type = str(entry.get("type") or "string").lower()
        is_required = bool(entry.get("required"))

        definition: dict[str, JSONValue] = {
            "type": _FIELD_TYPE_MAP.get(field_type, "string"),
            "description": entry.get("description") or f"The {name} field",
            "nullable": not is_required,
        }
        if "example" in entry:
            definition["example"] = entry["example"]
        if field_type == "array":
            definition["items"] = {"type": "string"}
        if field_type == "object":
            definition["properties"] = {}
            definition["required"] = []

        properties[name] = definition
        if is_required:
            required.append(name)

    return {
        "$schema": JSON_SCHEMA_DRAFT,
        "type": "object",
        "properties": properties,
        "required": required,
        "additionalProperties": True,
    }
