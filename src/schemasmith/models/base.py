# Copyright (c) Syntropy Systems
"""Shared Pydantic model helpers for schemasmith."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict, JsonValue
from typing_extensions import TypeAlias

JSONValue: TypeAlias = JsonValue
JSONObject: TypeAlias = dict[str, JSONValue]


class SchemaSmithModel(BaseModel):
    """Base model with shared config for schemasmith records.

    Records are frozen: a stage creates them and the next stage only reads them.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )


class ApiModel(BaseModel):
    """Base model for third-party API payloads, which carry many extra keys."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
    )

