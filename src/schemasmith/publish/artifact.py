# Copyright (c) Syntropy Systems
"""Building the dataset schema artifact and its default view."""
from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING

from schemasmith.schema_document import SchemaDocument, normalize_schema

if TYPE_CHECKING:
    from schemasmith.models import JSONObject, JSONValue

_CAPITAL = re.compile(r"([A-Z])")
_NUMERIC_TYPES = ("number", "integer")
_DATE_FORMATS = ("date", "date-time")


def format_label(name: str) -> str:
    """Turn a camelCase field name into a Title Case label."""
    spaced = _CAPITAL.sub(r" \1", name).strip()
    return spaced[:1].upper() + spaced[1:]


def _primary_type(definition: JSONValue) -> str | None:
    if not isinstance(definition, dict):
        return None
    kind = definition.get("type")
    if isinstance(kind, list):
        kinds = [k for k in kind if isinstance(k, str) and k != "null"]
        return kinds[0] if kinds else None
    return kind if isinstance(kind, str) else None


def display_format(name: str, definition: JSONValue) -> str:
    """Display format of a field in a table view."""
    kind = _primary_type(definition)
    lowered = name.lower()
    if kind in _NUMERIC_TYPES:
        return "number"
    if "url" in lowered:
        return "link"
    string_format = definition.get("format") if isinstance(definition, dict) else None
    if kind == "date" or string_format in _DATE_FORMATS or "date" in lowered:
        return "date"
    return "text"


def overview_view(document: SchemaDocument) -> JSONObject:
    """A table view with one row per top-level field."""
    names = list(document.properties)
    return {
        "overview": {
            "title": "Overview",
            "description": "",
            "transformation": {"fields": list(names)},
            "display": {
                "component": "table",
                "properties": {
                    name: {
                        "label": format_label(name),
                        "format": display_format(name, document.properties[name]),
                    }
                    for name in names
                },
            },
        }
    }


def select_views(
    document: SchemaDocument,
    existing: JSONObject | None,
    want_views: bool,
) -> JSONObject:
    """Pick the views for the artifact.

    Views already configured in the metadata file win. Otherwise views the
    refiner designed are used when they were requested, and a derived
    overview view in every other case.
    """
    if existing:
        return existing
    if want_views and document.views:
        return document.views
    return overview_view(document)


def build_artifact(
    schema: JSONObject | SchemaDocument,
    existing: JSONObject | None = None,
    want_views: bool = False,
) -> JSONObject:
    """Build the canonical artifact from a schema in any accepted shape."""
    document = normalize_schema(schema)
    return document.to_artifact(select_views(document, existing, want_views))


def render_artifact(artifact: JSONObject) -> str:
    """Serialize an artifact the way it is committed."""
    return json.dumps(artifact, indent=4, ensure_ascii=False) + "\n"
