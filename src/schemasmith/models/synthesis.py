# Copyright (c) Syntropy Systems
"""Pydantic model for schema synthesis results."""

from __future__ import annotations

from pydantic import Field

from .base import JSONObject, SchemaSmithModel
from .runs import DatasetSample


class SynthesisResult(SchemaSmithModel):
    """Outcome of inferring a draft schema.

    Exactly one of ``schema`` and ``error`` is set. ``no_data`` marks the
    case where nothing could be inferred because no datasets were found, as
    opposed to inference running without producing a schema.
    """

    schema_: JSONObject | None = Field(default=None, alias="schema")
    error: str | None = None
    no_data: bool = False
    inference_handle: str | None = None
    datasets_used: list[DatasetSample] = Field(default_factory=list)
    reserved_for_validation: list[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        """Whether a schema was produced."""
        return self.schema_ is not None
