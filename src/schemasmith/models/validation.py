# Copyright (c) Syntropy Systems
"""Pydantic models for schema validation against production data."""

from __future__ import annotations

from pydantic import Field, computed_field

from .base import SchemaSmithModel


class DatasetFailure(SchemaSmithModel):
    """Diagnostics for one dataset that failed validation."""

    handle: str
    errors: list[str] = Field(default_factory=list)
    item_count: int = 0


class ValidationOutcome(SchemaSmithModel):
    """Result of validating a schema against a set of datasets."""

    target: str
    total_datasets: int
    valid_datasets: int = 0
    invalid_datasets: int = 0
    not_found: list[str] = Field(default_factory=list)
    failures: list[DatasetFailure] = Field(default_factory=list)
    total_items: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success_rate(self) -> float:
        """Share of examined datasets that validated; 0.0 when none were examined."""
        if self.total_datasets == 0:
            return 0.0
        return self.valid_datasets / self.total_datasets

    @property
    def succeeded(self) -> bool:
        """Every examined dataset validated, and at least one was examined."""
        return self.total_datasets > 0 and self.valid_datasets == self.total_datasets
